"""
Tests for error handling and custom exceptions.

Verifies that custom exceptions include proper context and that
error handling utilities work correctly.
"""

from __future__ import annotations

import logging

import pytest

from flow_dashboard.exceptions import (
    ApiError,
    CredentialRequiredError,
    DecryptionFailedError,
    FlowDashboardError,
    InvalidCredentialError,
    NetworkError,
    PerResourceError,
    StorageError,
    ValidationError,
)
from flow_dashboard.utils.error_handling import format_exception_for_user, log_errors


class TestCustomExceptions:
    """Test custom exception classes."""

    def test_base_error_with_context(self) -> None:
        error = FlowDashboardError("Test error", context={"operation": "test", "value": 123})

        assert str(error) == "Test error"
        assert error.message == "Test error"
        assert error.context == {"operation": "test", "value": 123}

    def test_base_error_without_context(self) -> None:
        assert FlowDashboardError("Test error").context == {}

    @pytest.mark.parametrize(
        ("status", "auth"),
        [(401, True), (403, True), (404, False), (500, False)],
    )
    def test_api_error_auth_statuses(self, status: int, auth: bool) -> None:
        assert ApiError(status, "x").is_auth_error is auth

    def test_per_resource_error(self) -> None:
        error = PerResourceError(7, "boom", context={"repository": "acme/app"})

        assert error.repository_id == 7
        assert error.context["repository"] == "acme/app"

    def test_hierarchy(self) -> None:
        assert issubclass(DecryptionFailedError, StorageError)
        for cls in (NetworkError, ApiError, StorageError, InvalidCredentialError, ValidationError):
            assert issubclass(cls, FlowDashboardError)


class TestLogErrors:
    @pytest.mark.asyncio
    async def test_async_logs_and_reraises(self, caplog: pytest.LogCaptureFixture) -> None:
        @log_errors("load_things")
        async def failing() -> None:
            raise NetworkError("offline")

        with caplog.at_level(logging.ERROR), pytest.raises(NetworkError):
            await failing()

        record = next(r for r in caplog.records if r.getMessage() == "Error in load_things")
        assert record.operation == "load_things"
        assert record.error_type == "NetworkError"
        assert record.function == "failing"

    def test_sync_logs_and_reraises(self, caplog: pytest.LogCaptureFixture) -> None:
        @log_errors("parse")
        def failing() -> None:
            raise ValueError("bad")

        with caplog.at_level(logging.ERROR), pytest.raises(ValueError):
            failing()

        assert any(r.getMessage() == "Error in parse" for r in caplog.records)

    @pytest.mark.asyncio
    async def test_success_passes_through(self) -> None:
        @log_errors("ok")
        async def succeed() -> int:
            return 42

        assert await succeed() == 42
        assert succeed.__name__ == "succeed"


class TestFormatExceptionForUser:
    def test_network_error_is_retryable(self) -> None:
        payload = format_exception_for_user(NetworkError("Network error", context={"endpoint": "/user"}))

        assert payload["error"] == "NetworkError"
        assert payload["retryable"] is True
        assert payload["context"] == {"endpoint": "/user"}

    def test_server_error_is_retryable(self) -> None:
        payload = format_exception_for_user(ApiError(502, "API Error: 502"))

        assert payload["retryable"] is True
        assert payload["status"] == 502
        assert payload["credential_invalid"] is False

    @pytest.mark.parametrize("status", [401, 403])
    def test_auth_error_flags_credential(self, status: int) -> None:
        payload = format_exception_for_user(ApiError(status, "Bad credentials"))

        assert payload["retryable"] is False
        assert payload["credential_invalid"] is True

    def test_invalid_credential(self) -> None:
        payload = format_exception_for_user(InvalidCredentialError("Token is required"))

        assert payload["credential_invalid"] is True
        assert payload["retryable"] is False

    def test_token_never_leaks(self) -> None:
        token = "ghp_" + "q" * 36
        error = CredentialRequiredError(f"no client for {token}", context={"token": token})

        payload = format_exception_for_user(error)

        assert token not in str(payload)

    def test_plain_exception(self) -> None:
        payload = format_exception_for_user(RuntimeError("unexpected"))

        assert payload == {"error": "RuntimeError", "message": "unexpected", "retryable": False}
