"""Personal access token validation."""

from __future__ import annotations

import logging
import re

import httpx
from pydantic import ValidationError as PydanticValidationError

from flow_dashboard.exceptions import ApiError, NetworkError
from flow_dashboard.models.credential import TokenValidationResult
from flow_dashboard.models.github import User
from flow_dashboard.services.github_client import (
    DEFAULT_API_VERSION,
    DEFAULT_BASE_URL,
    GitHubClient,
)

logger = logging.getLogger(__name__)

_PREFIXED_TOKEN = re.compile(r"^gh[ps]_[A-Za-z0-9_]{36,}$")
_FINE_GRAINED_TOKEN = re.compile(r"^github_pat_[A-Za-z0-9_]{29,}$")
_CLASSIC_TOKEN = re.compile(r"^[a-f0-9]{40}$")


def is_valid_token_format(token: str) -> bool:
    """
    Cheap local shape check, no network.

    Accepts ``ghp_``/``ghs_`` tokens and ``github_pat_`` tokens of at least
    40 characters, and legacy 40-hex-char tokens.
    """
    if not token:
        return False
    return bool(
        _PREFIXED_TOKEN.match(token)
        or _FINE_GRAINED_TOKEN.match(token)
        or _CLASSIC_TOKEN.match(token)
    )


async def validate_github_token(
    token: str,
    *,
    base_url: str = DEFAULT_BASE_URL,
    api_version: str = DEFAULT_API_VERSION,
    timeout_seconds: float = 30.0,
    transport: httpx.AsyncBaseTransport | None = None,
) -> TokenValidationResult:
    """
    Round-trip identity check against ``GET /user``.

    Never raises: API and network failures come back as an invalid result
    carrying the error message and, for API errors, the status.
    """
    if not token or not token.strip():
        return TokenValidationResult(is_valid=False, error="Token is required")

    client = GitHubClient(
        token.strip(),
        base_url,
        api_version=api_version,
        timeout_seconds=timeout_seconds,
        transport=transport,
    )

    try:
        response = await client.request("/user")
    except ApiError as e:
        logger.info("Token rejected by GitHub", extra={"status": e.status})
        return TokenValidationResult(is_valid=False, error=e.message, status=e.status)
    except NetworkError as e:
        logger.warning("Token validation failed", extra={"error": e.message})
        return TokenValidationResult(is_valid=False, error=e.message)

    try:
        user = User.model_validate(response.data)
    except PydanticValidationError:
        return TokenValidationResult(
            is_valid=False,
            error="Unexpected response from GitHub",
            status=response.status,
        )

    return TokenValidationResult(
        is_valid=True,
        user=user,
        status=response.status,
        rate_limit=response.rate_limit,
    )
