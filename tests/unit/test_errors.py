"""
Unit tests for error hierarchy.

Tests cover:
- Base RepriseError behavior
- Replay errors with protocol and identifier
- Storage errors with path context
- Capture and config errors
- Error serialization
"""

import pytest

from reprise.errors import (
    ERROR_CAPTURE_DUPLICATE_INBOUND,
    ERROR_CONFIG_INVALID,
    ERROR_REPLAY_INBOUND_MISMATCH,
    ERROR_REPLAY_NO_MATCH,
    ERROR_REPLAY_NOT_ACTIVE,
    ERROR_REPLAY_PASSTHROUGH_NOT_ALLOWED,
    ERROR_STORAGE_CORRUPT,
    ERROR_STORAGE_INVALID_TRACE_ID,
    ERROR_STORAGE_READ,
    ERROR_STORAGE_TRACE_MISMATCH,
    ERROR_STORAGE_WRITE,
    CaptureError,
    CassetteCorruptError,
    ConfigError,
    DuplicateInboundError,
    InboundMismatchError,
    InvalidTraceIdError,
    NoMatchFoundError,
    PassthroughNotAllowedError,
    ReplayError,
    ReplayNotActiveError,
    RepriseError,
    StorageError,
    StorageReadError,
    StorageWriteError,
    TraceMismatchError,
)


class TestRepriseError:
    """Tests for base RepriseError."""

    def test_basic_error(self) -> None:
        """Create a basic error with message."""
        err = RepriseError(message="Something went wrong", code=9999)
        assert err.message == "Something went wrong"
        assert err.code == 9999
        assert err.suggestion is None
        assert err.context == {}

    def test_str_format(self) -> None:
        """String format includes code and message."""
        err = RepriseError(message="Test error", code=1234)
        assert str(err) == "[E1234] Test error"

    def test_str_includes_suggestion(self) -> None:
        """Suggestion is appended on its own line."""
        err = RepriseError(message="Failed", code=1, suggestion="Try again")
        assert "Suggestion: Try again" in str(err)

    def test_repr_format(self) -> None:
        """Repr includes class name and details."""
        err = RepriseError(message="Test", code=1)
        assert "RepriseError" in repr(err)
        assert "message='Test'" in repr(err)

    def test_to_dict(self) -> None:
        """Convert error to dictionary."""
        err = RepriseError(
            message="Test",
            code=1,
            suggestion="Try again",
            context={"foo": "bar"},
        )
        d = err.to_dict()
        assert d["error_type"] == "RepriseError"
        assert d["message"] == "Test"
        assert d["code"] == 1
        assert d["suggestion"] == "Try again"
        assert d["context"]["foo"] == "bar"

    def test_is_exception(self) -> None:
        """RepriseError is a proper exception."""
        with pytest.raises(RepriseError):
            raise RepriseError(message="Test", code=1)


class TestReplayErrors:
    """Tests for replay errors."""

    def test_no_match_found_message(self) -> None:
        """The message names the protocol and identifier."""
        err = NoMatchFoundError(protocol="http", identifier="GET https://a/b", trace_id="t1")
        assert err.code == ERROR_REPLAY_NO_MATCH
        assert err.message == "No recorded call for http: GET https://a/b"
        assert err.context["protocol"] == "http"
        assert err.context["identifier"] == "GET https://a/b"
        assert err.context["trace_id"] == "t1"
        assert err.suggestion

    def test_no_match_found_is_replay_error(self) -> None:
        """NoMatchFoundError can be caught as ReplayError and RepriseError."""
        with pytest.raises(ReplayError):
            raise NoMatchFoundError(protocol="redis", identifier="GET k")
        assert isinstance(NoMatchFoundError(), RepriseError)

    def test_passthrough_not_allowed(self) -> None:
        """Passthrough rejection carries the call key."""
        err = PassthroughNotAllowedError(protocol="postgres", identifier="SELECT 1")
        assert err.code == ERROR_REPLAY_PASSTHROUGH_NOT_ALLOWED
        assert "strict mode" in str(err)
        assert "SELECT 1" in str(err)

    def test_inbound_mismatch(self) -> None:
        """Inbound mismatch names the field and both values."""
        err = InboundMismatchError(field_name="status", expected=200, actual=500)
        assert err.code == ERROR_REPLAY_INBOUND_MISMATCH
        assert "status" in str(err)
        assert "200" in str(err)
        assert "500" in str(err)
        assert err.context["field"] == "status"

    def test_replay_not_active(self) -> None:
        """Replay not active suggests opening a session."""
        err = ReplayNotActiveError()
        assert err.code == ERROR_REPLAY_NOT_ACTIVE
        assert "ReplaySession" in err.suggestion


class TestStorageErrors:
    """Tests for storage errors."""

    def test_write_error(self) -> None:
        """Write error includes path and cause."""
        err = StorageWriteError(operation="append", path="/x/a.ndjson", underlying_error="disk full")
        assert err.code == ERROR_STORAGE_WRITE
        assert "disk full" in str(err)
        assert err.context["path"] == "/x/a.ndjson"
        assert err.context["operation"] == "append"
        assert isinstance(err, StorageError)

    def test_read_error(self) -> None:
        """Read error code."""
        err = StorageReadError(operation="open", path="a", underlying_error="denied")
        assert err.code == ERROR_STORAGE_READ

    def test_corrupt_cassette(self) -> None:
        """Corrupt cassette error points at the line."""
        err = CassetteCorruptError(path="a.ndjson", line_number=3, underlying_error="bad json")
        assert err.code == ERROR_STORAGE_CORRUPT
        assert "a.ndjson:3" in str(err)
        assert err.context["line_number"] == 3

    def test_trace_mismatch(self) -> None:
        """Trace mismatch names both traces."""
        err = TraceMismatchError(expected_trace_id="aaa", actual_trace_id="bbb")
        assert err.code == ERROR_STORAGE_TRACE_MISMATCH
        assert "aaa" in str(err)
        assert "bbb" in str(err)

    def test_invalid_trace_id(self) -> None:
        """Invalid trace id error is a storage error carrying the id."""
        err = InvalidTraceIdError(path="cassettes", trace_id="../x")
        assert err.code == ERROR_STORAGE_INVALID_TRACE_ID
        assert isinstance(err, StorageError)
        assert err.context["trace_id"] == "../x"


class TestCaptureAndConfigErrors:
    """Tests for capture and config errors."""

    def test_duplicate_inbound(self) -> None:
        """Duplicate inbound error names the trace."""
        err = DuplicateInboundError(trace_id="abc")
        assert err.code == ERROR_CAPTURE_DUPLICATE_INBOUND
        assert "abc" in str(err)
        assert isinstance(err, CaptureError)

    def test_config_error(self) -> None:
        """Config error keeps the path."""
        err = ConfigError(config_path=".reprise/config.yml")
        assert err.code == ERROR_CONFIG_INVALID
        assert err.context["config_path"] == ".reprise/config.yml"

    def test_to_dict_keeps_subclass_name(self) -> None:
        """Serialized errors report their concrete class."""
        d = NoMatchFoundError(protocol="http", identifier="GET /").to_dict()
        assert d["error_type"] == "NoMatchFoundError"
        assert d["code"] == ERROR_REPLAY_NO_MATCH
