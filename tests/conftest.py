"""
Pytest configuration and fixtures for Reprise tests.

This module provides shared fixtures used across unit and integration tests.
"""

import tempfile
from collections.abc import Callable, Generator
from pathlib import Path
from typing import Any

import pytest

from reprise.schema import CassetteRecord, RecordType
from reprise.store.cassette import CassetteStore

TRACE_ID = "4bf92f3577b34da6a3ce929d0e0e4736"


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for test files."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def store(temp_dir: Path) -> CassetteStore:
    """A per-trace cassette store in a temporary directory."""
    return CassetteStore(temp_dir / "cassettes")


@pytest.fixture
def make_record() -> Callable[..., CassetteRecord]:
    """
    Factory for cassette records.

    Defaults to an outbound HTTP record of TRACE_ID with a fresh span id.
    """
    counter = {"n": 0}

    def _make(
        identifier: str = "GET https://api.example.com/users",
        response: Any = None,
        type: RecordType = RecordType.OUTBOUND,
        protocol: str = "http",
        trace_id: str = TRACE_ID,
        span_id: str | None = None,
        parent_span_id: str | None = None,
        span_name: str | None = None,
        **kwargs: Any,
    ) -> CassetteRecord:
        counter["n"] += 1
        return CassetteRecord(
            trace_id=trace_id,
            span_id=span_id or f"span{counter['n']:012d}",
            parent_span_id=parent_span_id,
            span_name=span_name,
            type=type,
            protocol=protocol,
            identifier=identifier,
            response_payload=response,
            **kwargs,
        )

    return _make


@pytest.fixture
def sample_config_yaml() -> str:
    """Return a config YAML for testing."""
    return """
mode: REPLAY
cassette_directory: ./recordings
strict_replay: true
max_queue_size: 500
ignore_urls:
  - "/v1/traces"
  - "^https://telemetry\\\\."
"""


@pytest.fixture
def trace_id() -> str:
    """The trace id make_record uses by default."""
    return TRACE_ID
