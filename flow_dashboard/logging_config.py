"""Structured logging configuration with JSON output."""

from __future__ import annotations

import logging
import sys

from pythonjsonlogger.json import JsonFormatter

from flow_dashboard.utils.redaction import SENSITIVE_KEYS, redact_sensitive_data

_STANDARD_RECORD_FIELDS = frozenset(
    logging.LogRecord("", 0, "", 0, "", None, None).__dict__.keys()
) | {"message", "asctime"}


class RedactionFilter(logging.Filter):
    """Mask GitHub tokens in log messages and structured extras."""

    def filter(self, record: logging.LogRecord) -> bool:
        """Redact record message, args and extra fields in place."""
        if isinstance(record.msg, str):
            record.msg = redact_sensitive_data(record.msg)
        if record.args:
            if isinstance(record.args, dict):
                record.args = {
                    k: redact_sensitive_data(v) if isinstance(v, str) else v
                    for k, v in record.args.items()
                }
            else:
                record.args = tuple(
                    redact_sensitive_data(a) if isinstance(a, str) else a for a in record.args
                )

        for key, value in list(record.__dict__.items()):
            if key in _STANDARD_RECORD_FIELDS:
                continue
            if key.lower() in SENSITIVE_KEYS:
                setattr(record, key, "[REDACTED]")
            elif isinstance(value, str):
                setattr(record, key, redact_sensitive_data(value))
        return True


def configure_json_logging(
    log_level: str = "INFO",
    use_json: bool = True,
) -> None:
    """Configure application logging with optional JSON output.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        use_json: Whether to use JSON output (True) or text output (False)
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, log_level.upper()))

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    stream_handler = logging.StreamHandler(sys.stdout)
    stream_handler.setLevel(getattr(logging, log_level.upper()))
    stream_handler.addFilter(RedactionFilter())

    if use_json:
        json_formatter = JsonFormatter(
            "%(timestamp)s %(levelname)s %(name)s %(message)s",
            rename_fields={"levelname": "level"},
            timestamp=True,
        )
        stream_handler.setFormatter(json_formatter)
    else:
        text_formatter = logging.Formatter(
            fmt="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
        stream_handler.setFormatter(text_formatter)

    root_logger.addHandler(stream_handler)

    # Suppress noisy loggers
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("asyncio").setLevel(logging.WARNING)

