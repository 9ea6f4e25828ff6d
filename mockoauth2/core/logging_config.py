"""
Logging infrastructure for the mock OAuth2 server.

Every record handled by the server's handlers carries the request context
(correlation id and issuer id) and has credentials, tokens and grant secrets
redacted before it is written.
"""

import json
import logging
import logging.handlers
import re
import sys
from contextvars import ContextVar
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

REDACTED = "***REDACTED***"

correlation_id: ContextVar[Optional[str]] = ContextVar("correlation_id", default=None)
issuer_id: ContextVar[Optional[str]] = ContextVar("issuer_id", default=None)

# Form and query parameters whose values are secrets or bearer credentials
_SECRET_PARAMS = (
    "client_secret",
    "client_assertion",
    "code_verifier",
    "assertion",
    "subject_token",
    "refresh_token",
    "id_token_hint",
    "password",
)


class RequestContextFilter(logging.Filter):
    """Attach the current request's correlation id and issuer to each record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.correlation_id = correlation_id.get() or "-"
        record.issuer = issuer_id.get() or "-"
        return True


class SensitiveDataFilter(logging.Filter):
    """Redact credentials, signed tokens and grant secrets from log messages."""

    PATTERNS = [
        (re.compile(r"(Authorization:\s+)(?:Bearer\s+|Basic\s+)?\S+", re.IGNORECASE), rf"\1{REDACTED}"),
        (
            re.compile(r"\b((?:%s)=)[^&\s]+" % "|".join(_SECRET_PARAMS), re.IGNORECASE),
            rf"\1{REDACTED}",
        ),
        (re.compile(r"""(password["']?\s*:\s*["']?)[^"'\s,}]+""", re.IGNORECASE), rf"\1{REDACTED}"),
        # compact JWS anywhere in the message
        (re.compile(r"\beyJ[\w-]*\.[\w-]+\.[\w-]*"), REDACTED),
    ]

    def filter(self, record: logging.LogRecord) -> bool:
        if isinstance(record.msg, str):
            record.msg = self.redact(record.msg)
        return True

    @classmethod
    def redact(cls, text: str) -> str:
        for pattern, replacement in cls.PATTERNS:
            text = pattern.sub(replacement, text)
        return text


class JSONFormatter(logging.Formatter):
    """One JSON object per record, with the request context when present."""

    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "module": record.name,
            "message": record.getMessage(),
        }

        corr_id = getattr(record, "correlation_id", "-")
        if corr_id != "-":
            log_data["correlation_id"] = corr_id
        issuer = getattr(record, "issuer", "-")
        if issuer != "-":
            log_data["issuer"] = issuer

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data)


class TextFormatter(logging.Formatter):
    """Human-readable lines prefixed with issuer and correlation id."""

    FORMAT = "%(asctime)s [%(levelname)s] %(name)s [%(issuer)s %(correlation_id)s]: %(message)s"

    def __init__(self):
        super().__init__(fmt=self.FORMAT, datefmt="%Y-%m-%d %H:%M:%S")

    def format(self, record: logging.LogRecord) -> str:
        # records that bypassed RequestContextFilter
        if not hasattr(record, "correlation_id"):
            record.correlation_id = "-"
        if not hasattr(record, "issuer"):
            record.issuer = "-"
        return super().format(record)


def _server_filters() -> List[logging.Filter]:
    return [RequestContextFilter(), SensitiveDataFilter()]


def setup_logging(
    level: str = "INFO",
    format_type: str = "text",
    log_file: Optional[str] = None,
    rotation_size: str = "10MB",
    rotation_count: int = 5,
    module_levels: Optional[Dict[str, str]] = None
) -> None:
    """
    Configure logging for the server.

    Args:
        level: Default log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        format_type: Log format ("json" or "text")
        log_file: Optional file path for log output
        rotation_size: Size limit for log rotation (e.g., "10MB")
        rotation_count: Number of rotated log files to keep
        module_levels: Optional dict of module-specific log levels
                      e.g., {"mockoauth2.oauth.token_provider": "DEBUG"}
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper()))
    root_logger.handlers.clear()

    formatter = JSONFormatter() if format_type == "json" else TextFormatter()

    handlers: List[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        handlers.append(
            logging.handlers.RotatingFileHandler(
                filename=log_file,
                maxBytes=_parse_size(rotation_size),
                backupCount=rotation_count,
                encoding="utf-8",
            )
        )

    for handler in handlers:
        handler.setLevel(logging.DEBUG)
        handler.setFormatter(formatter)
        for log_filter in _server_filters():
            handler.addFilter(log_filter)
        root_logger.addHandler(handler)

    if log_file:
        root_logger.info(f"Logging to file: {log_file} (rotation: {rotation_size}, count: {rotation_count})")

    for module_name, module_level in (module_levels or {}).items():
        logging.getLogger(module_name).setLevel(getattr(logging, module_level.upper()))
        root_logger.info(f"Module '{module_name}' log level set to {module_level}")

    root_logger.info(f"Logging configured: level={level}, format={format_type}")


def _parse_size(size_str: str) -> int:
    """
    Parse size string to bytes.

    Args:
        size_str: Size string (e.g., "10MB", "1GB")

    Returns:
        Size in bytes
    """
    size_str = size_str.upper().strip()

    # Longer suffixes first so 'B' does not match 'MB'
    for suffix, multiplier in (("GB", 1024 ** 3), ("MB", 1024 ** 2), ("KB", 1024), ("B", 1)):
        if size_str.endswith(suffix):
            return int(float(size_str[:-len(suffix)].strip()) * multiplier)

    return int(size_str)


def set_request_context(corr_id: str, issuer: Optional[str] = None) -> None:
    """Bind a correlation id and issuer id to the current request context."""
    correlation_id.set(corr_id)
    issuer_id.set(issuer)


def clear_request_context() -> None:
    correlation_id.set(None)
    issuer_id.set(None)
