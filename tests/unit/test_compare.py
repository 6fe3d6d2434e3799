"""
Unit tests for inbound response comparison.

Tests cover:
- Recorded status lookup across payload shapes
- Body parsing
- compare_inbound status, body and header checks
- Leaf diffs for the diff command
"""

import pytest

from reprise.errors import InboundMismatchError
from reprise.replay.compare import (
    BodyDiff,
    InboundResponse,
    collect_diffs,
    compare_inbound,
    diff_response,
    parse_body,
    recorded_status,
)
from reprise.schema import RecordType


@pytest.fixture
def inbound(make_record):
    """Factory for inbound records with a given response payload."""

    def _make(payload, **kwargs):
        return make_record(
            identifier="POST /checkout",
            type=RecordType.INBOUND,
            response=payload,
            **kwargs,
        )

    return _make


class TestRecordedStatus:
    """Tests for recorded_status."""

    def test_status_key(self, inbound) -> None:
        """Framework middleware shape."""
        assert recorded_status(inbound({"status": 201})) == 201

    def test_status_code_key(self, inbound) -> None:
        """Raw server shape."""
        assert recorded_status(inbound({"statusCode": 404})) == 404

    def test_record_level_status(self, inbound) -> None:
        """Older recordings carry statusCode on the record."""
        assert recorded_status(inbound({"body": "x"}, status_code=500)) == 500

    def test_no_status(self, inbound) -> None:
        """Nothing recorded means None."""
        assert recorded_status(inbound("plain")) is None


class TestParseBody:
    """Tests for parse_body."""

    def test_json_text(self) -> None:
        """JSON objects and arrays in text are parsed."""
        assert parse_body('{"a": 1}') == {"a": 1}
        assert parse_body(b"[1, 2]") == [1, 2]

    def test_plain_text_unchanged(self) -> None:
        """Non-JSON text is returned as is."""
        assert parse_body("hello") == "hello"
        assert parse_body("42") == "42"

    def test_broken_json_unchanged(self) -> None:
        """Text that only looks like JSON is kept."""
        assert parse_body("{nope") == "{nope"

    def test_already_parsed(self) -> None:
        """Dicts and None pass through."""
        assert parse_body({"a": 1}) == {"a": 1}
        assert parse_body(None) is None


class TestCompareInbound:
    """Tests for compare_inbound."""

    def test_match(self, inbound) -> None:
        """Same status and body passes."""
        record = inbound({"statusCode": 200, "body": '{"total": 3}'})
        compare_inbound(InboundResponse(200, {"total": 3}), record)

    def test_status_mismatch(self, inbound) -> None:
        """A different status fails on the status field."""
        record = inbound({"status": 200, "body": None})
        with pytest.raises(InboundMismatchError) as exc_info:
            compare_inbound(InboundResponse(500), record)
        assert exc_info.value.field_name == "status"
        assert exc_info.value.expected == 200
        assert exc_info.value.actual == 500

    def test_body_mismatch(self, inbound) -> None:
        """A different body fails on the body field."""
        record = inbound({"status": 200, "body": {"total": 3}})
        with pytest.raises(InboundMismatchError) as exc_info:
            compare_inbound(InboundResponse(200, '{"total": 4}'), record)
        assert exc_info.value.field_name == "body"

    def test_missing_recording(self) -> None:
        """Comparing without an inbound record fails."""
        with pytest.raises(InboundMismatchError) as exc_info:
            compare_inbound(InboundResponse(200), None)
        assert exc_info.value.field_name == "inbound"

    def test_headers_ignored_by_default(self, inbound) -> None:
        """Header differences do not matter without strict comparison."""
        record = inbound({"status": 200, "body": None, "headers": {"X-A": "1"}})
        compare_inbound(InboundResponse(200, None, {"x-a": "2"}), record)

    def test_strict_headers(self, inbound) -> None:
        """Under strict comparison headers must match, case-insensitively by name."""
        record = inbound({"status": 200, "body": None, "headers": {"X-A": "1"}})
        compare_inbound(InboundResponse(200, None, {"x-a": "1"}), record, strict_comparison=True)
        with pytest.raises(InboundMismatchError) as exc_info:
            compare_inbound(InboundResponse(200, None, {"x-a": "2"}), record, strict_comparison=True)
        assert exc_info.value.field_name == "headers"


class TestDiffs:
    """Tests for collect_diffs and diff_response."""

    def test_equal_values(self) -> None:
        """No diffs for equal values."""
        assert collect_diffs({"a": [1, 2]}, {"a": [1, 2]}) == []

    def test_nested_leaf(self) -> None:
        """Nested objects are walked to the differing leaf."""
        assert collect_diffs({"a": {"b": 1}}, {"a": {"b": 2}}) == [BodyDiff("a.b", 1, 2)]

    def test_added_and_removed_keys(self) -> None:
        """Missing keys show up as None on the missing side, sorted by path."""
        diffs = collect_diffs({"a": 1, "c": 3}, {"a": 1, "b": 2})
        assert diffs == [BodyDiff("b", None, 2), BodyDiff("c", 3, None)]

    def test_arrays_compared_whole(self) -> None:
        """Arrays are a single leaf."""
        assert collect_diffs({"a": [1, 2]}, {"a": [1, 3]}) == [BodyDiff("a", [1, 2], [1, 3])]

    def test_root_difference(self) -> None:
        """Scalars at the top level are reported at (root)."""
        assert collect_diffs("x", "y") == [BodyDiff("(root)", "x", "y")]

    def test_numbers_compare_by_value(self) -> None:
        """1 and 1.0 are equal at the top level, as they are when nested."""
        assert collect_diffs(1, 1.0) == []
        assert collect_diffs({"total": 1}, {"total": 1.0}) == []

    def test_diff_response(self, inbound) -> None:
        """diff_response reports status and body separately."""
        record = inbound({"statusCode": 200, "body": '{"a": 1}'})
        assert diff_response(record, InboundResponse(200, '{"a": 1}')) == (True, [])
        status_ok, diffs = diff_response(record, InboundResponse(502, '{"a": 2}'))
        assert status_ok is False
        assert diffs == [BodyDiff("a", 1, 2)]
