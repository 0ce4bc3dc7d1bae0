"""Tests for structured JSON logging configuration and output."""

from __future__ import annotations

import json
import logging
from io import StringIO

import pytest
from pythonjsonlogger.json import JsonFormatter

from flow_dashboard.logging_config import RedactionFilter, configure_json_logging
from flow_dashboard.utils.redaction import mask_token, redact_dict, redact_sensitive_data

TOKEN = "ghp_" + "Z" * 36


@pytest.fixture
def json_logger() -> tuple[logging.Logger, StringIO]:
    """Logger writing JSON through the redaction filter into a buffer."""
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(JsonFormatter(timestamp=True))
    handler.addFilter(RedactionFilter())

    logger = logging.getLogger("test_structured_logging")
    logger.handlers.clear()
    logger.addHandler(handler)
    logger.setLevel(logging.DEBUG)
    logger.propagate = False

    yield logger, stream

    logger.removeHandler(handler)
    handler.close()


def last_record(stream: StringIO) -> dict:
    return json.loads(stream.getvalue().strip().splitlines()[-1])


def test_structured_logging_outputs_json(json_logger: tuple[logging.Logger, StringIO]) -> None:
    logger, stream = json_logger

    logger.info("Discovery finished", extra={"scope": "acme", "count": 242})

    data = last_record(stream)
    assert data["message"] == "Discovery finished"
    assert data["scope"] == "acme"
    assert data["count"] == 242
    assert "timestamp" in data


def test_token_in_message_is_redacted(json_logger: tuple[logging.Logger, StringIO]) -> None:
    logger, stream = json_logger

    logger.warning(f"Request failed for token {TOKEN}")

    output = stream.getvalue()
    assert TOKEN not in output
    assert "[REDACTED_GITHUB_TOKEN]" in output


def test_token_in_args_is_redacted(json_logger: tuple[logging.Logger, StringIO]) -> None:
    logger, stream = json_logger

    logger.info("Using %s", TOKEN)

    assert TOKEN not in stream.getvalue()


def test_sensitive_extra_keys_are_redacted(json_logger: tuple[logging.Logger, StringIO]) -> None:
    logger, stream = json_logger

    logger.info("Token set", extra={"token": "anything", "authorization": f"Bearer {TOKEN}"})

    data = last_record(stream)
    assert data["token"] == "[REDACTED]"
    assert data["authorization"] == "[REDACTED]"


def test_configure_json_logging_installs_single_handler() -> None:
    root = logging.getLogger()
    saved_handlers = root.handlers[:]
    saved_level = root.level
    try:
        configure_json_logging("DEBUG", use_json=True)
        configure_json_logging("WARNING", use_json=False)

        assert len(root.handlers) == 1
        assert root.level == logging.WARNING
        handler = root.handlers[0]
        assert any(isinstance(f, RedactionFilter) for f in handler.filters)
        assert not isinstance(handler.formatter, JsonFormatter)
        assert logging.getLogger("httpx").level == logging.WARNING
    finally:
        root.handlers[:] = saved_handlers
        root.setLevel(saved_level)


class TestRedaction:
    def test_mask_token(self) -> None:
        assert mask_token(TOKEN) == "****ZZZZ"
        assert mask_token(None) == "****"
        assert mask_token("abc") == "****"

    @pytest.mark.parametrize(
        "secret",
        [
            TOKEN,
            "github_pat_" + "A1_" * 10,
            "Bearer abcdefghijklmnopqrstuvwxyz",
            "pwd_" + "0f" * 16,
        ],
    )
    def test_patterns(self, secret: str) -> None:
        assert secret not in redact_sensitive_data(f"value={secret} end")

    def test_plain_text_untouched(self) -> None:
        assert redact_sensitive_data("acme/repo-1 refreshed") == "acme/repo-1 refreshed"

    def test_redact_dict_nested(self) -> None:
        data = {
            "repository": "acme/app",
            "github_token": TOKEN,
            "nested": {"password": "hunter2", "note": f"used {TOKEN}"},
            "items": [{"secret": "x"}, 3],
        }

        redacted = redact_dict(data)

        assert redacted["repository"] == "acme/app"
        assert redacted["github_token"] == "[REDACTED]"
        assert redacted["nested"]["password"] == "[REDACTED]"
        assert TOKEN not in redacted["nested"]["note"]
        assert redacted["items"] == [{"secret": "[REDACTED]"}, 3]
        assert data["github_token"] == TOKEN
