"""
Exception hierarchy for Reprise.

All Reprise exceptions inherit from RepriseError, allowing callers to catch
all Reprise-specific exceptions with a single except clause.

Exception Categories:
    - NoMatchFoundError: Strict replay found no recording for a live call
    - PassthroughNotAllowedError: A matcher asked for live traffic in strict mode
    - InboundMismatchError: Live inbound response differs from the recording
    - StorageError: Cassette read/write failed
    - CaptureError: Capture-side contract violated
    - ConfigError: Invalid configuration

Queue overflow has no exception class: dropped capture lines are counted on the
queue, never raised to the caller.
"""

from dataclasses import dataclass, field
from typing import Any


# =============================================================================
# Error Codes
# =============================================================================

# Replay errors: 1xxx
ERROR_REPLAY_NO_MATCH = 1001
ERROR_REPLAY_PASSTHROUGH_NOT_ALLOWED = 1002
ERROR_REPLAY_INBOUND_MISMATCH = 1003
ERROR_REPLAY_NOT_ACTIVE = 1004

# Storage errors: 2xxx
ERROR_STORAGE_WRITE = 2001
ERROR_STORAGE_READ = 2002
ERROR_STORAGE_CORRUPT = 2003
ERROR_STORAGE_TRACE_MISMATCH = 2004
ERROR_STORAGE_INVALID_TRACE_ID = 2005

# Capture errors: 3xxx
ERROR_CAPTURE = 3001
ERROR_CAPTURE_DUPLICATE_INBOUND = 3002

# Config errors: 4xxx
ERROR_CONFIG_INVALID = 4001


# =============================================================================
# Base Exception
# =============================================================================


@dataclass
class RepriseError(Exception):
    """
    Base exception for all Reprise errors.

    Attributes:
        message: Human-readable error description
        code: Numeric error code for programmatic handling
        suggestion: Optional hint for how to resolve the error
        context: Optional dict with additional debugging info
    """

    message: str = ""
    code: int = 0
    suggestion: str | None = None
    context: dict[str, Any] = field(default_factory=dict)

    def __str__(self) -> str:
        """Format error for display."""
        parts = [f"[E{self.code}] {self.message}"]
        if self.suggestion:
            parts.append(f"\nSuggestion: {self.suggestion}")
        return "".join(parts)

    def __repr__(self) -> str:
        """Format error for debugging."""
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"code={self.code}, "
            f"context={self.context!r})"
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "code": self.code,
            "suggestion": self.suggestion,
            "context": self.context,
        }


# =============================================================================
# Replay Errors
# =============================================================================


@dataclass
class ReplayError(RepriseError):
    """
    Base class for replay errors.

    Attributes:
        trace_id: ID of the trace being replayed (empty when unknown)
    """

    trace_id: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        self.context["trace_id"] = self.trace_id


@dataclass
class NoMatchFoundError(ReplayError):
    """
    Raised in strict mode when a live call has no recorded counterpart.

    The call must not reach the live dependency. This error is the
    correctness-critical one: never swallow it.

    Attributes:
        protocol: Protocol of the unmatched call
        identifier: Identifier of the unmatched call
    """

    protocol: str = ""
    identifier: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"No recorded call for {self.protocol}: {self.identifier}"
        if self.code == 0:
            self.code = ERROR_REPLAY_NO_MATCH
        if not self.suggestion:
            self.suggestion = (
                "Re-capture the trace, register a custom matcher, "
                "or disable strict replay while extending the cassette"
            )
        super().__post_init__()
        self.context.update({
            "protocol": self.protocol,
            "identifier": self.identifier,
        })


@dataclass
class PassthroughNotAllowedError(ReplayError):
    """Raised when a matcher requests live traffic while strict mode is active."""

    protocol: str = ""
    identifier: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = (
                f"Passthrough not allowed in strict mode for {self.protocol}: {self.identifier}"
            )
        if self.code == 0:
            self.code = ERROR_REPLAY_PASSTHROUGH_NOT_ALLOWED
        super().__post_init__()
        self.context.update({
            "protocol": self.protocol,
            "identifier": self.identifier,
        })


@dataclass
class InboundMismatchError(ReplayError):
    """Raised when a live inbound response differs from the recorded one."""

    field_name: str = ""
    expected: Any = None
    actual: Any = None

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = (
                f"Inbound {self.field_name} mismatch: "
                f"expected {self.expected!r}, got {self.actual!r}"
            )
        if self.code == 0:
            self.code = ERROR_REPLAY_INBOUND_MISMATCH
        super().__post_init__()
        self.context.update({
            "field": self.field_name,
            "expected": self.expected,
            "actual": self.actual,
        })


@dataclass
class ReplayNotActiveError(ReplayError):
    """Raised when a replay helper is used outside of a replay session."""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = "No replay session is active in the current context"
        if self.code == 0:
            self.code = ERROR_REPLAY_NOT_ACTIVE
        if not self.suggestion:
            self.suggestion = "Wrap the call in `with ReplaySession(...)`"
        super().__post_init__()


# =============================================================================
# Storage Errors
# =============================================================================


@dataclass
class StorageError(RepriseError):
    """
    Base class for cassette storage errors.

    Attributes:
        operation: The operation that failed (e.g., "append", "read")
        path: Cassette file involved
    """

    operation: str = ""
    path: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        self.context.update({
            "operation": self.operation,
            "path": self.path,
        })


@dataclass
class StorageWriteError(StorageError):
    """Raised when appending to a cassette file fails."""

    underlying_error: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Cassette write failed: {self.underlying_error}"
        if self.code == 0:
            self.code = ERROR_STORAGE_WRITE
        if not self.suggestion:
            self.suggestion = "Check that the cassette directory exists and is writable"
        super().__post_init__()
        self.context["underlying_error"] = self.underlying_error


@dataclass
class StorageReadError(StorageError):
    """Raised when reading a cassette file fails."""

    underlying_error: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Cassette read failed: {self.underlying_error}"
        if self.code == 0:
            self.code = ERROR_STORAGE_READ
        super().__post_init__()
        self.context["underlying_error"] = self.underlying_error


@dataclass
class CassetteCorruptError(StorageError):
    """Raised when a cassette line is not a valid record."""

    line_number: int = 0
    underlying_error: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = (
                f"Invalid cassette record at {self.path}:{self.line_number}: "
                f"{self.underlying_error}"
            )
        if self.code == 0:
            self.code = ERROR_STORAGE_CORRUPT
        if not self.suggestion:
            self.suggestion = "The cassette may have been truncated. Re-capture the trace."
        super().__post_init__()
        self.context.update({
            "line_number": self.line_number,
            "underlying_error": self.underlying_error,
        })


@dataclass
class TraceMismatchError(StorageError):
    """Raised when a record is saved to a cassette bound to another trace."""

    expected_trace_id: str = ""
    actual_trace_id: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = (
                f"Record for trace {self.actual_trace_id} "
                f"cannot be saved to cassette of trace {self.expected_trace_id}"
            )
        if self.code == 0:
            self.code = ERROR_STORAGE_TRACE_MISMATCH
        super().__post_init__()
        self.context.update({
            "expected_trace_id": self.expected_trace_id,
            "actual_trace_id": self.actual_trace_id,
        })


@dataclass
class InvalidTraceIdError(StorageError):
    """Raised when a trace id cannot be used as a cassette file name."""

    trace_id: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Trace id {self.trace_id!r} is not a valid cassette name"
        if self.code == 0:
            self.code = ERROR_STORAGE_INVALID_TRACE_ID
        if not self.suggestion:
            self.suggestion = "Trace ids may only contain letters, digits, '-' and '_'"
        super().__post_init__()
        self.context["trace_id"] = self.trace_id


# =============================================================================
# Capture Errors
# =============================================================================


@dataclass
class CaptureError(RepriseError):
    """
    Base class for capture errors.

    Attributes:
        trace_id: ID of the trace being captured
    """

    trace_id: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if self.code == 0:
            self.code = ERROR_CAPTURE
        self.context["trace_id"] = self.trace_id


@dataclass
class DuplicateInboundError(CaptureError):
    """Raised when a second inbound record is written for the same trace."""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Trace {self.trace_id} already has an inbound record"
        if self.code == 0:
            self.code = ERROR_CAPTURE_DUPLICATE_INBOUND
        if not self.suggestion:
            self.suggestion = "Open one CaptureSession per inbound request"
        super().__post_init__()


# =============================================================================
# Config Errors
# =============================================================================


@dataclass
class ConfigError(RepriseError):
    """Raised when configuration cannot be loaded or validated."""

    config_path: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Invalid configuration: {self.config_path}"
        if self.code == 0:
            self.code = ERROR_CONFIG_INVALID
        self.context["config_path"] = self.config_path
