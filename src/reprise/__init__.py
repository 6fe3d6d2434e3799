"""
Reprise - record and replay the dependency traffic of a service.

Reprise captures the outbound calls (HTTP, Postgres, Redis, gRPC...) a service
makes while handling a request, stores them as an NDJSON cassette, and later
replays them so the request can be re-run offline and deterministically.
It provides:
- Append-only NDJSON cassettes with a bounded, non-blocking capture queue
- Deterministic matching: per-key call order, refined by call-site lineage
- Strict replay that fails closed instead of reaching live dependencies
- Pluggable matchers and key extractors

Example usage:
    with CaptureSession(store, span_name="GET /users") as capture:
        capture.record_outbound(LiveCall.postgres(sql), response=rows)

    with ReplaySession(store, trace_id, strict=True) as replay:
        rows = replay.replay(LiveCall.postgres(sql), live=lambda: db.fetch(sql))
"""

__version__ = "0.1.0"
__author__ = "Reprise Contributors"

from reprise.capture import CaptureSession
from reprise.config import RepriseSettings, load_settings
from reprise.context import span
from reprise.errors import (
    NoMatchFoundError,
    PassthroughNotAllowedError,
    RepriseError,
)
from reprise.matching import CONTINUE, PASSTHROUGH, LiveCall, Matcher, Mock
from reprise.replay import ReplaySession
from reprise.schema import CassetteRecord, RecordType, RunMode
from reprise.store import CassetteStore

__all__ = [
    "__version__",
    "__author__",
    "CONTINUE",
    "PASSTHROUGH",
    "CaptureSession",
    "CassetteRecord",
    "CassetteStore",
    "LiveCall",
    "Matcher",
    "Mock",
    "NoMatchFoundError",
    "PassthroughNotAllowedError",
    "RecordType",
    "ReplaySession",
    "RepriseError",
    "RepriseSettings",
    "RunMode",
    "load_settings",
    "span",
]
