"""
Error handling utilities for Flow Dashboard.

Provides a logging decorator and the user-facing error payload used by
whatever front end drives the dashboard.
"""

from __future__ import annotations

import inspect
import logging
from collections.abc import Callable
from functools import wraps
from typing import Any, TypeVar

from flow_dashboard.utils.redaction import redact_dict, redact_sensitive_data

logger = logging.getLogger(__name__)

T = TypeVar("T")


def log_errors(operation_name: str) -> Callable[[Callable[..., T]], Callable[..., T]]:
    """
    Decorator to log errors with context.

    The exception is logged with the operation name, function name and
    error type, then re-raised.

    Example:
        @log_errors("discover_repositories")
        async def discover(self, scope: Scope) -> None:
            ...
    """

    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @wraps(func)
        async def async_wrapper(*args: Any, **kwargs: Any) -> T:
            try:
                return await func(*args, **kwargs)
            except Exception as e:
                logger.exception(
                    f"Error in {operation_name}",
                    extra={
                        "operation": operation_name,
                        "error_type": type(e).__name__,
                        "function": func.__name__,
                    },
                )
                raise

        @wraps(func)
        def sync_wrapper(*args: Any, **kwargs: Any) -> T:
            try:
                return func(*args, **kwargs)
            except Exception as e:
                logger.exception(
                    f"Error in {operation_name}",
                    extra={
                        "operation": operation_name,
                        "error_type": type(e).__name__,
                        "function": func.__name__,
                    },
                )
                raise

        if inspect.iscoroutinefunction(func):
            return async_wrapper  # type: ignore[return-value]
        return sync_wrapper  # type: ignore[return-value]

    return decorator


def format_exception_for_user(e: Exception) -> dict[str, object]:
    """
    Format an exception for display next to a retry control.

    Never includes a traceback. Token-like strings are redacted from both the
    message and the context.

    Example:
        try:
            await engine.discover(scope)
        except FlowDashboardError as e:
            view.show_error(format_exception_for_user(e))
    """
    from flow_dashboard.exceptions import (
        ApiError,
        FlowDashboardError,
        InvalidCredentialError,
        NetworkError,
    )

    retryable = isinstance(e, NetworkError) or (
        isinstance(e, ApiError) and not e.is_auth_error and e.status != 404
    )

    error_dict: dict[str, object] = {
        "error": type(e).__name__,
        "message": redact_sensitive_data(str(e)),
        "retryable": retryable,
    }

    if isinstance(e, ApiError):
        error_dict["status"] = e.status
        error_dict["credential_invalid"] = e.is_auth_error
    elif isinstance(e, InvalidCredentialError):
        error_dict["credential_invalid"] = True

    if isinstance(e, FlowDashboardError) and e.context:
        error_dict["context"] = redact_dict(dict(e.context))

    return error_dict
