"""Error taxonomy and the uniform result returned by public operations."""

import functools
import logging
from dataclasses import dataclass, field
from typing import Any

logger = logging.getLogger(__name__)


class ScopecraftError(Exception):
    """Base class for task-core failures."""

    kind = "error"

    def __init__(self, message: str, **details: Any):
        super().__init__(message)
        self.message = message
        self.details = details


class ValidationError(ScopecraftError):
    """Raised when input has the wrong shape or an unknown enum value."""

    kind = "validation"


class NotFoundError(ScopecraftError):
    """Raised when an ID or path cannot be resolved."""

    kind = "not_found"


class ConflictError(ScopecraftError):
    """Raised when an operation would clobber or orphan existing tasks."""

    kind = "conflict"


class StorageIOError(ScopecraftError):
    """Raised on filesystem failures, including partially completed moves."""

    kind = "io"


class ConfigurationError(ScopecraftError):
    """Raised when no usable project root or config can be established."""

    kind = "configuration"


@dataclass
class OperationResult:
    success: bool
    data: Any = None
    error: str | None = None
    error_kind: str | None = None
    details: dict = field(default_factory=dict)

    @classmethod
    def ok(cls, data: Any = None) -> "OperationResult":
        return cls(success=True, data=data)

    @classmethod
    def fail(cls, error: ScopecraftError) -> "OperationResult":
        return cls(
            success=False,
            error=error.message,
            error_kind=error.kind,
            details=dict(error.details),
        )

    def unwrap(self) -> Any:
        """Return the data or re-raise the failure as its error class."""
        if self.success:
            return self.data
        error_cls = _KINDS.get(self.error_kind, ScopecraftError)
        raise error_cls(self.error or "operation failed", **self.details)


_KINDS = {
    cls.kind: cls
    for cls in (ValidationError, NotFoundError, ConflictError, StorageIOError, ConfigurationError)
}


def operation(func):
    """Wrap a public operation so failures come back as an OperationResult."""

    @functools.wraps(func)
    def wrapper(*args, **kwargs) -> OperationResult:
        try:
            return OperationResult.ok(func(*args, **kwargs))
        except ScopecraftError as e:
            logger.debug("%s failed: %s", func.__name__, e.message)
            return OperationResult.fail(e)
        except OSError as e:
            logger.warning("%s hit a filesystem error: %s", func.__name__, e)
            return OperationResult.fail(
                StorageIOError(str(e), path=str(e.filename) if e.filename else None)
            )

    return wrapper
