"""
Batch Queue Errors
Image Optimizer - Batch Queue System

Control errors are raised to callers of the scheduler. Conversion errors are
raised by converters and handled per item inside a tick.
"""

from enum import Enum
from typing import Optional, Dict, Any


class BatchErrorKind(str, Enum):
    """Control error discriminants"""
    ALREADY_RUNNING = "batch_already_running"
    EMPTY_QUEUE = "empty_queue"
    NOT_RUNNING = "batch_not_running"


class ConversionErrorKind(str, Enum):
    """Per-item failure discriminants"""
    # Permanent
    FILE_NOT_FOUND = "file_not_found"
    INVALID_FILE_TYPE = "invalid_file_type"
    FILE_TOO_LARGE = "file_too_large"
    PERMISSION_DENIED = "permission_denied"
    FORMAT_DISABLED = "format_disabled"
    INVALID_CONFIGURATION = "invalid_configuration"

    # Transient
    CONVERSION_FAILED = "conversion_failed"
    TIMEOUT = "timeout"
    RESOURCE_CONTENTION = "resource_contention"
    UNKNOWN = "unknown"


PERMANENT_ERROR_KINDS = frozenset({
    ConversionErrorKind.FILE_NOT_FOUND,
    ConversionErrorKind.INVALID_FILE_TYPE,
    ConversionErrorKind.FILE_TOO_LARGE,
    ConversionErrorKind.PERMISSION_DENIED,
    ConversionErrorKind.FORMAT_DISABLED,
    ConversionErrorKind.INVALID_CONFIGURATION,
})


class BatchError(Exception):
    """Base class for batch control errors"""

    kind: BatchErrorKind = None

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.context = context or {}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind.value if self.kind else None,
            "message": self.message,
            "context": self.context,
        }


class AlreadyRunningError(BatchError):
    kind = BatchErrorKind.ALREADY_RUNNING

    def __init__(self, message: str = "Batch conversion is already running.", context=None):
        super().__init__(message, context)


class EmptyQueueError(BatchError):
    kind = BatchErrorKind.EMPTY_QUEUE

    def __init__(self, message: str = "No images found to convert.", context=None):
        super().__init__(message, context)


class NotRunningError(BatchError):
    kind = BatchErrorKind.NOT_RUNNING

    def __init__(self, message: str = "No batch conversion is running.", context=None):
        super().__init__(message, context)


class ConversionError(Exception):
    """A single conversion failed"""

    def __init__(
        self,
        kind: ConversionErrorKind,
        message: str,
        context: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message)
        self.kind = ConversionErrorKind(kind)
        self.message = message
        self.context = context or {}

    @property
    def is_permanent(self) -> bool:
        return self.kind in PERMANENT_ERROR_KINDS

    def __repr__(self) -> str:
        return f"ConversionError({self.kind.value!r}, {self.message!r})"


class StoreError(Exception):
    """Persisted batch state could not be read or written"""
