"""
Schema definitions for Reprise.

This module defines the data types shared by capture and replay:
- CassetteRecord: One persisted inbound/outbound call (Pydantic, immutable)
- RecordType / Protocol / RunMode: Enumerations
- MatchKey: The {protocol, identifier} pair used for matching
- LiveCall: Observable attributes of a call made during replay
- TapCaptured: Result of tapping a response stream

Design Decisions:
    - Wire names are camelCase (traceId, spanId...), Python names are snake_case
    - Unknown wire fields are ignored so newer cassettes stay readable
    - Records are frozen; replay never mutates a record
    - `protocol` is an open string so new adapters need no schema change
"""

import json
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from reprise.context import ROOT_SPAN_NAME, current_span_name
from reprise.identifier import grpc_identifier, http_identifier, pg_identifier, redis_identifier

CASSETTE_VERSION = "4.1"

# Attribute keys set by interception adapters on a live call
ATTR_PROTOCOL = "reprise.protocol"
ATTR_IDENTIFIER = "reprise.identifier"
ATTR_REQUEST_BODY = "reprise.request.body"
ATTR_REDIS_CMD = "reprise.redis.cmd"
ATTR_REDIS_ARGS = "reprise.redis.args_json"
ATTR_PG_VALUES = "reprise.postgres.values_json"


# =============================================================================
# Enums
# =============================================================================


class RecordType(str, Enum):
    """Kind of cassette record."""

    INBOUND = "inbound"
    OUTBOUND = "outbound"
    METADATA = "metadata"


class Protocol(str, Enum):
    """Protocols with built-in key extraction or identifier builders."""

    HTTP = "http"
    POSTGRES = "postgres"
    REDIS = "redis"
    AMQP = "amqp"
    GRPC = "grpc"


class RunMode(str, Enum):
    """Mode a process or request runs in."""

    CAPTURE = "CAPTURE"
    REPLAY = "REPLAY"
    PASSTHROUGH = "PASSTHROUGH"


def now_iso() -> str:
    """Get current UTC time in ISO format."""
    return datetime.now(UTC).isoformat()


# =============================================================================
# Cassette Record
# =============================================================================


class CassetteRecord(BaseModel):
    """
    One observed call, persisted as a single NDJSON line.

    Attributes:
        version: Schema tag for forward compatibility
        trace_id: Groups the records of one logical request (case-insensitive)
        span_id: Unique within the trace
        parent_span_id: spanId of the calling record; None for root calls
        span_name: Name of the call site, compared during lineage matching
        timestamp: Capture time, ISO-8601
        type: inbound, outbound or metadata
        protocol: http, postgres, redis, amqp, grpc...
        identifier: Deterministic protocol-specific matching key
        request_payload: Opaque request data (never used for matching)
        response_payload: Opaque response data returned when mocked
        status_code: Optional status code
        error: Optional error description
    """

    model_config = ConfigDict(frozen=True, extra="ignore", populate_by_name=True)

    version: str = Field(default=CASSETTE_VERSION, description="Record schema version")
    trace_id: str = Field(..., alias="traceId", description="Trace this record belongs to")
    span_id: str = Field(..., alias="spanId", description="Unique id within the trace")
    parent_span_id: str | None = Field(
        default=None,
        alias="parentSpanId",
        description="spanId of the parent record",
    )
    span_name: str | None = Field(
        default=None,
        alias="spanName",
        description="Call-site name used for lineage matching",
    )
    timestamp: str = Field(default_factory=now_iso, description="Capture time (ISO-8601)")
    type: RecordType = Field(..., description="inbound, outbound or metadata")
    protocol: str = Field(..., min_length=1, description="Protocol discriminator")
    identifier: str = Field(..., description="Protocol-specific matching key")
    request_payload: Any | None = Field(default=None, alias="requestPayload")
    response_payload: Any | None = Field(default=None, alias="responsePayload")
    status_code: int | None = Field(default=None, alias="statusCode")
    error: str | None = Field(default=None)

    def same_trace(self, trace_id: str) -> bool:
        """Whether this record belongs to `trace_id` (case-insensitive)."""
        return (self.trace_id or "").lower() == (trace_id or "").lower()

    def to_wire(self) -> dict[str, Any]:
        """Return the wire-format dict (camelCase keys, unset optionals omitted)."""
        data = self.model_dump(mode="json", by_alias=True)
        return {key: value for key, value in data.items() if value is not None}

    def to_json_line(self) -> str:
        """Serialize as one compact JSON line (no trailing newline)."""
        return json.dumps(self.to_wire(), separators=(",", ":"), ensure_ascii=False)

    @classmethod
    def from_json_line(cls, line: str) -> "CassetteRecord":
        """Parse one NDJSON line."""
        return cls.model_validate_json(line)


# =============================================================================
# Matching Types
# =============================================================================


@dataclass(frozen=True)
class MatchKey:
    """The {protocol, identifier} pair a live call is matched on."""

    protocol: str
    identifier: str

    def sequence_key(self, parent_name: str | None = None) -> tuple[str, ...]:
        """Counter key: (protocol, identifier) or (protocol, identifier, parent)."""
        if parent_name is None:
            return (self.protocol, self.identifier)
        return (self.protocol, self.identifier, parent_name)


@dataclass(frozen=True)
class LiveCall:
    """
    A dependency call observed during replay (or capture).

    Interception adapters normalize the raw client call into `attributes`,
    either with `reprise.*` keys (see the constructors below) or with
    OpenTelemetry semantic-convention keys for HTTP and gRPC.

    Attributes:
        attributes: Protocol-specific observable fields
        parent_name: Name of the calling span; None means root. Defaults to
            the ambient span name of the current context.
        request_body: Optional request payload (not used by the default key)
    """

    attributes: dict[str, Any] = field(default_factory=dict)
    parent_name: str | None = field(default_factory=current_span_name)
    request_body: Any = None

    @property
    def lineage_name(self) -> str:
        """Parent name used for lineage comparison ("root" when absent)."""
        return self.parent_name if self.parent_name is not None else ROOT_SPAN_NAME

    @classmethod
    def http(cls, method: str, url: str, body: Any = None, **kwargs: Any) -> "LiveCall":
        """Build an HTTP call (identifier "METHOD url")."""
        attributes = {
            ATTR_PROTOCOL: Protocol.HTTP.value,
            ATTR_IDENTIFIER: http_identifier(method, url),
            "http.request.method": method.upper(),
            "url.full": url,
        }
        return cls(attributes=attributes, request_body=body, **kwargs)

    @classmethod
    def postgres(cls, sql: str, values: list[Any] | None = None, **kwargs: Any) -> "LiveCall":
        """Build a Postgres query call (identifier is the SQL text)."""
        attributes = {
            ATTR_PROTOCOL: Protocol.POSTGRES.value,
            ATTR_IDENTIFIER: pg_identifier(sql),
            ATTR_PG_VALUES: json.dumps(values or [], default=str),
        }
        return cls(attributes=attributes, request_body=values, **kwargs)

    @classmethod
    def redis(cls, cmd: str, args: list[str] | None = None, **kwargs: Any) -> "LiveCall":
        """Build a Redis command call (identifier "CMD arg1 arg2")."""
        args = [str(arg) for arg in (args or [])]
        attributes = {
            ATTR_PROTOCOL: Protocol.REDIS.value,
            ATTR_IDENTIFIER: redis_identifier(cmd, args),
            ATTR_REDIS_CMD: cmd.upper(),
            ATTR_REDIS_ARGS: json.dumps(args),
        }
        return cls(attributes=attributes, request_body=args, **kwargs)

    @classmethod
    def grpc(cls, service: str, method: str, body: Any = None, **kwargs: Any) -> "LiveCall":
        """Build a gRPC unary call (identifier "/service/method")."""
        attributes = {
            ATTR_PROTOCOL: Protocol.GRPC.value,
            ATTR_IDENTIFIER: grpc_identifier(service, method),
            "rpc.system": "grpc",
            "rpc.service": service,
            "rpc.method": method,
        }
        return cls(attributes=attributes, request_body=body, **kwargs)


@dataclass(frozen=True)
class TapCaptured:
    """
    Bytes retained by a stream tap.

    Attributes:
        body: Up to max_payload_size bytes from the start of the stream
        truncated: True when the stream was longer than max_payload_size
    """

    body: bytes
    truncated: bool = False
