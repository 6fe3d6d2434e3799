"""
Unit tests for schema types and identifier builders.

Tests cover:
- CassetteRecord wire format (camelCase, omitted optionals, unknown fields)
- Record validation
- MatchKey sequence keys
- LiveCall constructors and ambient parent names
- Identifier builders
"""

import json

import pytest
from pydantic import ValidationError

from reprise.context import span
from reprise.identifier import grpc_identifier, http_identifier, pg_identifier, redis_identifier
from reprise.schema import (
    ATTR_IDENTIFIER,
    ATTR_PROTOCOL,
    ATTR_REDIS_CMD,
    CASSETTE_VERSION,
    CassetteRecord,
    LiveCall,
    MatchKey,
    RecordType,
)


class TestCassetteRecord:
    """Tests for CassetteRecord."""

    def test_wire_names_are_camel_case(self, make_record) -> None:
        """Serialized records use the camelCase wire names."""
        record = make_record(parent_span_id="p1", span_name="load", response={"rows": []})
        data = json.loads(record.to_json_line())
        assert data["traceId"] == record.trace_id
        assert data["spanId"] == record.span_id
        assert data["parentSpanId"] == "p1"
        assert data["spanName"] == "load"
        assert data["responsePayload"] == {"rows": []}
        assert data["type"] == "outbound"
        assert data["version"] == CASSETTE_VERSION

    def test_unset_optionals_are_omitted(self, make_record) -> None:
        """Optional fields that are None do not appear on the wire."""
        data = json.loads(make_record().to_json_line())
        assert "parentSpanId" not in data
        assert "requestPayload" not in data
        assert "error" not in data

    def test_json_line_has_no_newline(self, make_record) -> None:
        """A record serializes to exactly one line."""
        record = make_record(response={"text": "a\nb"})
        assert "\n" not in record.to_json_line()

    def test_parse_wire_line(self) -> None:
        """A wire line parses back with snake_case attributes."""
        line = (
            '{"version":"4.1","traceId":"t1","spanId":"s1","parentSpanId":"s0",'
            '"timestamp":"2025-01-01T00:00:00Z","type":"outbound","protocol":"redis",'
            '"identifier":"GET k","responsePayload":"v"}'
        )
        record = CassetteRecord.from_json_line(line)
        assert record.trace_id == "t1"
        assert record.parent_span_id == "s0"
        assert record.type == RecordType.OUTBOUND
        assert record.response_payload == "v"

    def test_unknown_fields_are_ignored(self) -> None:
        """Fields added by newer writers do not break reading."""
        line = (
            '{"traceId":"t1","spanId":"s1","type":"inbound","protocol":"http",'
            '"identifier":"GET /","futureField":123}'
        )
        record = CassetteRecord.from_json_line(line)
        assert record.identifier == "GET /"

    def test_invalid_type_rejected(self) -> None:
        """Unknown record types fail validation."""
        with pytest.raises(ValidationError):
            CassetteRecord(
                trace_id="t", span_id="s", type="sideways", protocol="http", identifier="x"
            )

    def test_empty_protocol_rejected(self) -> None:
        """Protocol must be non-empty."""
        with pytest.raises(ValidationError):
            CassetteRecord(
                trace_id="t", span_id="s", type="outbound", protocol="", identifier="x"
            )

    def test_records_are_frozen(self, make_record) -> None:
        """Records cannot be mutated."""
        record = make_record()
        with pytest.raises(ValidationError):
            record.identifier = "other"

    def test_same_trace_is_case_insensitive(self, make_record) -> None:
        """Trace ids compare without regard to case."""
        record = make_record(trace_id="ABCDEF")
        assert record.same_trace("abcdef")
        assert not record.same_trace("abcdeg")


class TestMatchKey:
    """Tests for MatchKey."""

    def test_flat_sequence_key(self) -> None:
        """Without a parent the key is (protocol, identifier)."""
        assert MatchKey("http", "GET /").sequence_key() == ("http", "GET /")

    def test_lineage_sequence_key(self) -> None:
        """With a parent the name is appended."""
        assert MatchKey("http", "GET /").sequence_key("load") == ("http", "GET /", "load")


class TestLiveCall:
    """Tests for LiveCall constructors."""

    def test_http_call(self) -> None:
        """HTTP calls carry the tag and the OpenTelemetry attributes."""
        call = LiveCall.http("post", "https://a/b", body={"x": 1}, parent_name=None)
        assert call.attributes[ATTR_PROTOCOL] == "http"
        assert call.attributes[ATTR_IDENTIFIER] == "POST https://a/b"
        assert call.attributes["http.request.method"] == "POST"
        assert call.attributes["url.full"] == "https://a/b"
        assert call.request_body == {"x": 1}

    def test_redis_call(self) -> None:
        """Redis calls record the command separately."""
        call = LiveCall.redis("get", ["user:1"], parent_name=None)
        assert call.attributes[ATTR_IDENTIFIER] == "GET user:1"
        assert call.attributes[ATTR_REDIS_CMD] == "GET"

    def test_postgres_call(self) -> None:
        """Postgres identifier is the SQL text."""
        call = LiveCall.postgres("SELECT * FROM users WHERE id = $1", [7], parent_name=None)
        assert call.attributes[ATTR_IDENTIFIER] == "SELECT * FROM users WHERE id = $1"
        assert call.request_body == [7]

    def test_default_parent_is_root(self) -> None:
        """Outside any span the parent name is None and the lineage is root."""
        call = LiveCall.http("GET", "https://a/b")
        assert call.parent_name is None
        assert call.lineage_name == "root"

    def test_default_parent_is_ambient_span(self) -> None:
        """Inside a span the parent name defaults to that span."""
        with span("load_users"):
            call = LiveCall.http("GET", "https://a/b")
        assert call.parent_name == "load_users"

    def test_explicit_parent_wins(self) -> None:
        """An explicit parent name overrides the ambient one."""
        with span("outer"):
            call = LiveCall.http("GET", "https://a/b", parent_name="inner")
        assert call.parent_name == "inner"


class TestIdentifiers:
    """Tests for identifier builders."""

    def test_http_identifier_uppercases_method(self) -> None:
        """Method is uppercased, URL kept as given."""
        assert http_identifier("get", "https://a/B?x=1") == "GET https://a/B?x=1"

    def test_redis_identifier_joins_args(self) -> None:
        """Command uppercased and args joined by spaces."""
        assert redis_identifier("hget", ["h", "f"]) == "HGET h f"

    def test_redis_identifier_without_args(self) -> None:
        """No trailing space without args."""
        assert redis_identifier("ping", []) == "PING"

    def test_pg_identifier_is_unchanged(self) -> None:
        """SQL text is used verbatim."""
        sql = "select  1"
        assert pg_identifier(sql) == sql

    def test_grpc_identifier(self) -> None:
        """Service and method form a slash path."""
        assert grpc_identifier("pkg.Users", "Get") == "/pkg.Users/Get"
        assert grpc_identifier("/pkg.Users/", "/Get") == "/pkg.Users/Get"
