"""
Error taxonomy and the typed read result used at every store boundary.

Store and analytics calls never leak driver exceptions to callers: they are
wrapped by `guarded_read`, logged (redacted) server-side and handed back as a
`ReadResult`. Only ownership/validation failures are raised, as
`InvalidEntityError`, because hiding those would be a security issue.
"""

import asyncio
import enum
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Generic, Optional, TypeVar

from pydantic import ValidationError

from ghoste_manager.utils import redact_secrets

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ErrorKind(str, enum.Enum):
    NOT_CONFIGURED = "NotConfigured"
    PARTIAL_READ_FAILURE = "PartialReadFailure"
    INVALID_ENTITY = "InvalidEntity"
    THIRD_PARTY_UNAVAILABLE = "ThirdPartyUnavailable"
    GUARDRAIL_BLOCKED = "GuardrailBlocked"
    UNAUTHORIZED = "Unauthorized"
    VALIDATION_ERROR = "ValidationError"
    INTERNAL = "Internal"


class ManagerError(Exception):
    """Base for errors that are surfaced to the caller as `{ok: false, ...}`."""

    kind: ErrorKind = ErrorKind.INTERNAL
    status_code: int = 500

    def __init__(self, message: str, kind: Optional[ErrorKind] = None, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        if kind is not None:
            self.kind = kind
        if status_code is not None:
            self.status_code = status_code

    def to_response(self) -> dict:
        return {"ok": False, "error": self.message, "code": self.kind.value}


class InvalidEntityError(ManagerError):
    """Entity not found or not owned by the caller."""

    kind = ErrorKind.INVALID_ENTITY
    status_code = 404


class UnauthorizedError(ManagerError):
    kind = ErrorKind.UNAUTHORIZED
    status_code = 401


class NotConfiguredError(ManagerError):
    kind = ErrorKind.NOT_CONFIGURED
    status_code = 503


class StoreUnavailableError(ManagerError):
    """A read the request cannot proceed without failed or timed out."""

    kind = ErrorKind.PARTIAL_READ_FAILURE
    status_code = 503


@dataclass(frozen=True)
class ReadResult(Generic[T]):
    """`ok=True` carries `data`; `ok=False` carries a descriptive `error`."""

    ok: bool
    data: Optional[T] = None
    error: Optional[str] = None
    kind: Optional[ErrorKind] = None

    @classmethod
    def success(cls, data: T) -> "ReadResult[T]":
        return cls(ok=True, data=data)

    @classmethod
    def failure(cls, error: str, kind: ErrorKind = ErrorKind.PARTIAL_READ_FAILURE) -> "ReadResult[T]":
        return cls(ok=False, error=error, kind=kind)


async def guarded_read(
    label: str,
    read: Callable[[], Awaitable[Any]],
    timeout: Optional[float] = None,
    transform: Optional[Callable[[Any], T]] = None,
) -> ReadResult[T]:
    """
    Run one boundary read and convert every failure into a ReadResult.

    `transform` maps the raw rows into the expected shape; a pydantic
    ValidationError (column/shape mismatch) is a read failure, not a crash.
    """
    try:
        if timeout:
            raw = await asyncio.wait_for(read(), timeout=timeout)
        else:
            raw = await read()
        data = transform(raw) if transform is not None else raw
        return ReadResult.success(data)
    except asyncio.TimeoutError:
        logger.warning(f"{label}: read timed out after {timeout}s")
        return ReadResult.failure(f"{label} timed out")
    except ValidationError as e:
        logger.warning(f"{label}: unexpected row shape ({e.error_count()} validation errors)")
        return ReadResult.failure(f"{label} returned unexpected data")
    except asyncio.CancelledError:
        raise
    except Exception as e:
        logger.error(f"{label}: read failed: {redact_secrets(e)}")
        return ReadResult.failure(f"{label} failed")


async def required_read(
    label: str,
    read: Callable[[], Awaitable[Any]],
    timeout: Optional[float] = None,
) -> Any:
    """`guarded_read` for reads a request cannot do without: failure raises StoreUnavailableError."""
    result = await guarded_read(label, read, timeout=timeout)
    if not result.ok:
        raise StoreUnavailableError(result.error)
    return result.data
