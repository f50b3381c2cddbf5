"""Error types and recovery strategies for the sensor data writer.

Error taxonomy:
- STATE: Lifecycle misuse (writing before initialize, initializing twice)
- FORMAT: Unknown output format or data type identifiers
- ENCODE: A sample could not be serialized
- DECODE: A stored file does not match the container layout
- IO: Sink errors (disk full, permission denied, close failures)
"""

from dataclasses import dataclass
from enum import Enum
from typing import Mapping, Optional


class ErrorCategory(Enum):
    """Error category for classification and routing."""

    STATE = "STATE"
    FORMAT = "FORMAT"
    ENCODE = "ENCODE"
    DECODE = "DECODE"
    IO = "IO"


class RecoveryAction(Enum):
    """Suggested recovery action for the caller."""

    RETRY = "retry"
    ABANDON = "abandon"
    DEGRADE = "degrade"
    CHOOSE_DIRECTORY = "choose_directory"
    MANUAL = "manual"


@dataclass(frozen=True, slots=True)
class ErrorContext:
    """Additional context for an error.

    Attributes:
        path: File path involved.
        format: Output format identifier (json, csv, binary).
        data_type: Sample data type tag (eeg, ppg, acc, processed).
        bytes_committed: Bytes already appended to the sink when the error occurred.
        original_error: The underlying exception message.
    """

    path: Optional[str] = None
    format: Optional[str] = None
    data_type: Optional[str] = None
    bytes_committed: Optional[int] = None
    original_error: Optional[str] = None


class LsdwError(Exception):
    """Base exception for all writer errors.

    Attributes:
        category: Error category for classification.
        code: Short error code (e.g., "IO-001").
        message: Human readable error message.
        recovery: Suggested recovery action.
        context: Additional error context.
    """

    def __init__(
        self,
        category: ErrorCategory,
        code: str,
        message: str,
        recovery: RecoveryAction,
        context: Optional[ErrorContext] = None,
    ) -> None:
        super().__init__(message)
        self.category = category
        self.code = code
        self.message = message
        self.recovery = recovery
        self.context = context or ErrorContext()

    def __str__(self) -> str:
        return f"[{self.code}] {self.message}"


class StateError(LsdwError):
    """Operation is not valid in the current lifecycle state."""

    def __init__(
        self,
        code: str,
        message: str,
        recovery: RecoveryAction = RecoveryAction.MANUAL,
        context: Optional[ErrorContext] = None,
    ) -> None:
        super().__init__(ErrorCategory.STATE, code, message, recovery, context)


class NotInitializedError(StateError):
    """Writer used before initialize() or after finalize()."""

    def __init__(self, operation: str, format: Optional[str] = None) -> None:
        context = ErrorContext(format=format)
        target = f"{format} writer" if format else "writer"
        super().__init__(
            code="STATE-001",
            message=f"Cannot {operation}: {target} is not open.",
            context=context,
        )


class WriterNotReadyError(StateError):
    """initialize() called on a writer that was already initialized."""

    def __init__(self, format: Optional[str] = None, state: str = "") -> None:
        context = ErrorContext(format=format)
        target = f"{format} writer" if format else "writer"
        suffix = f" (state: {state})" if state else ""
        super().__init__(
            code="STATE-002",
            message=f"Cannot initialize {target} twice{suffix}.",
            context=context,
        )


class FormatError(LsdwError):
    """Unknown format or data type identifiers."""

    def __init__(
        self,
        code: str,
        message: str,
        recovery: RecoveryAction = RecoveryAction.MANUAL,
        context: Optional[ErrorContext] = None,
    ) -> None:
        super().__init__(ErrorCategory.FORMAT, code, message, recovery, context)


class UnsupportedFormatError(FormatError):
    """Output format identifier is not one of json, csv, binary."""

    def __init__(self, format: str) -> None:
        super().__init__(
            code="FMT-001",
            message=f"Unsupported format: {format!r}. Expected one of json, csv, binary.",
            recovery=RecoveryAction.DEGRADE,
            context=ErrorContext(format=format),
        )


class UnsupportedDataTypeError(FormatError):
    """Data type tag is not one of eeg, ppg, acc, processed."""

    def __init__(self, data_type: str) -> None:
        super().__init__(
            code="FMT-002",
            message=f"Unsupported data type: {data_type!r}. Expected one of eeg, ppg, acc, processed.",
            context=ErrorContext(data_type=data_type),
        )


class EncodingError(LsdwError):
    """A sample could not be serialized."""

    def __init__(
        self,
        format: str,
        reason: str,
        data_type: Optional[str] = None,
        index: Optional[int] = None,
    ) -> None:
        where = f" (sample {index})" if index is not None else ""
        super().__init__(
            ErrorCategory.ENCODE,
            code="ENC-001",
            message=f"Failed to encode {format} record{where}: {reason}",
            recovery=RecoveryAction.ABANDON,
            context=ErrorContext(format=format, data_type=data_type, original_error=reason),
        )


class DecodeError(LsdwError):
    """Stored data does not match the expected layout."""

    def __init__(
        self,
        code: str,
        message: str,
        recovery: RecoveryAction = RecoveryAction.MANUAL,
        context: Optional[ErrorContext] = None,
    ) -> None:
        super().__init__(ErrorCategory.DECODE, code, message, recovery, context)


class InvalidHeaderError(DecodeError):
    """Container header is invalid or missing."""

    def __init__(self, field: str, expected: str, actual: str) -> None:
        super().__init__(
            code="DEC-001",
            message=f"Invalid container header {field}: expected {expected}, got {actual}.",
        )


class UnsupportedVersionError(DecodeError):
    """Container major version is newer than this reader understands."""

    def __init__(self, major: int, minor: int) -> None:
        super().__init__(
            code="DEC-002",
            message=f"Unsupported container version {major}.{minor}.",
        )


class TruncatedRecordError(DecodeError):
    """The body ends in the middle of a record."""

    def __init__(self, data_type: str, expected_size: int, actual_size: int, path: Optional[str] = None) -> None:
        super().__init__(
            code="DEC-003",
            message=(
                f"Truncated {data_type} record: expected {expected_size} bytes, "
                f"got {actual_size}. The recording may have been interrupted."
            ),
            recovery=RecoveryAction.MANUAL,
            context=ErrorContext(path=path, data_type=data_type),
        )


class IoError(LsdwError):
    """Sink I/O errors."""

    def __init__(
        self,
        code: str,
        message: str,
        recovery: RecoveryAction = RecoveryAction.CHOOSE_DIRECTORY,
        context: Optional[ErrorContext] = None,
    ) -> None:
        super().__init__(ErrorCategory.IO, code, message, recovery, context)


class SinkWriteError(IoError):
    """The sink rejected a write."""

    def __init__(self, path: str, reason: str, bytes_committed: Optional[int] = None) -> None:
        context = ErrorContext(path=path, bytes_committed=bytes_committed, original_error=reason)
        super().__init__(
            code="IO-001",
            message=f"Error writing to '{path}': {reason}",
            recovery=RecoveryAction.RETRY,
            context=context,
        )


class DiskFullError(IoError):
    """Disk is full, cannot write data."""

    def __init__(self, path: str, bytes_committed: Optional[int] = None) -> None:
        context = ErrorContext(path=path, bytes_committed=bytes_committed)
        super().__init__(
            code="IO-002",
            message=f"Disk full while writing to '{path}'. Data written so far is preserved.",
            recovery=RecoveryAction.CHOOSE_DIRECTORY,
            context=context,
        )


class SinkCloseError(IoError):
    """Error flushing or closing a sink (data may be incomplete)."""

    def __init__(self, path: str, reason: str) -> None:
        context = ErrorContext(path=path, original_error=reason)
        super().__init__(
            code="IO-003",
            message=f"Error closing '{path}': {reason}. Data may be incomplete.",
            recovery=RecoveryAction.MANUAL,
            context=context,
        )


class DirectoryNotWritableError(IoError):
    """Destination directory cannot be created or written."""

    def __init__(self, path: str, reason: str = "") -> None:
        context = ErrorContext(path=path, original_error=reason or None)
        super().__init__(
            code="IO-004",
            message=f"Cannot write to directory '{path}'. Check permissions or choose a different directory.",
            recovery=RecoveryAction.CHOOSE_DIRECTORY,
            context=context,
        )


class FormatWriteError(IoError):
    """One or more formats failed during a fan-out write or finalize.

    Attributes:
        operation: "write" or "finalize".
        failures: Mapping of format identifier to the exception it raised.
        bytes_committed: Byte counters of every format at the time of failure,
            including formats that succeeded.
    """

    def __init__(
        self,
        operation: str,
        failures: Mapping[str, BaseException],
        bytes_committed: Mapping[str, int],
    ) -> None:
        self.operation = operation
        self.failures = dict(failures)
        self.bytes_committed = dict(bytes_committed)
        details = "; ".join(
            f"{fmt}: {exc} ({self.bytes_committed.get(fmt, 0)} bytes committed)"
            for fmt, exc in self.failures.items()
        )
        super().__init__(
            code="IO-010",
            message=f"{operation} failed for {len(self.failures)} format(s): {details}",
            recovery=RecoveryAction.DEGRADE,
            context=ErrorContext(format=",".join(self.failures)),
        )

    @property
    def failed_formats(self) -> list[str]:
        """Formats that failed, in writer order."""
        return list(self.failures)
