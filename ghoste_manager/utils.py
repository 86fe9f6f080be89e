"""
Shared utility functions.
"""

import logging
import re
from typing import Optional
import uuid as uuid_mod
from datetime import datetime, timezone

logger = logging.getLogger(__name__)

_REDACTED = "[REDACTED]"

# Order matters: specific token shapes first, generic long strings last.
_SECRET_PATTERNS = [
    (re.compile(r"(?i)\bbearer\s+[A-Za-z0-9\-._~+/]+=*"), "Bearer " + _REDACTED),
    (re.compile(r"\beyJ[A-Za-z0-9_-]+\.[A-Za-z0-9_-]+\.[A-Za-z0-9_-]*"), _REDACTED),
    (re.compile(r"\bEAA[A-Za-z0-9]{20,}"), _REDACTED),
    (re.compile(r"\bsk-[A-Za-z0-9_-]{16,}"), _REDACTED),
    (re.compile(r"(?i)\b(access_token|refresh_token|token|api_key|apikey|secret|password)(\s*[=:]\s*)(['\"]?)[^\s&'\",}]+"),
     r"\1\2\3" + _REDACTED),
    (re.compile(r"\b[A-Za-z0-9_\-]{40,}\b"), _REDACTED),
]


def redact_secrets(value) -> str:
    """Mask token/secret-shaped substrings before a value is logged or returned."""
    text = str(value) if value is not None else ""
    for pattern, replacement in _SECRET_PATTERNS:
        text = pattern.sub(replacement, text)
    return text


class RedactingFilter(logging.Filter):
    """Scrubs secrets from every record passing through a handler."""

    def filter(self, record: logging.LogRecord) -> bool:
        try:
            message = record.getMessage()
        except Exception:
            return True
        record.msg = redact_secrets(message)
        record.args = None
        return True


def install_redacting_filter() -> None:
    root = logging.getLogger()
    for handler in root.handlers:
        if not any(isinstance(f, RedactingFilter) for f in handler.filters):
            handler.addFilter(RedactingFilter())


def parse_uuid(value, field_name: str = "id") -> Optional[uuid_mod.UUID]:
    """Parse a value as UUID. Returns None on invalid input instead of raising."""
    if isinstance(value, uuid_mod.UUID):
        return value
    try:
        return uuid_mod.UUID(str(value))
    except (ValueError, AttributeError, TypeError):
        logger.debug(f"Invalid UUID for '{field_name}': {redact_secrets(value)!r}")
        return None


def safe_error_detail(exc: Exception, fallback: str = "An internal error occurred. Please try again later.") -> str:
    """
    Return a sanitized error message safe for client consumption.
    Logs the real exception detail server-side.
    """
    logger.error(f"Operation failed: {redact_secrets(exc)}", exc_info=True)
    return fallback


def utcnow() -> datetime:
    """
    Return the current UTC time as a naive datetime (no tzinfo).
    Naive datetimes are used because our DB columns are TIMESTAMP WITHOUT TIME ZONE.
    """
    return datetime.now(timezone.utc).replace(tzinfo=None)


def as_naive_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """Normalize a datetime to naive UTC. DB drivers may return either kind."""
    if dt is None:
        return None
    if dt.tzinfo is not None:
        return dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt


def safe_float(val, default: Optional[float] = 0.0) -> Optional[float]:
    try:
        return float(val) if val is not None else default
    except (ValueError, TypeError):
        return default


def cents_to_amount(cents) -> Optional[float]:
    """Budget columns are stored in cents; decisions speak in currency units."""
    if cents is None:
        return None
    value = safe_float(cents, None)
    return round(value / 100.0, 2) if value is not None else None
