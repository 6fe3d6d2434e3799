"""
Storage module for Reprise.

This module provides append-only NDJSON persistence for cassette records.

Files:
    - {directory}/{traceId}.ndjson: one file per trace (default layout)
    - {directory}/{shared_filename}: one shared file, filtered by trace id

Design principles:
    - Append-only: Historical records are never modified
    - One line per record: a line is the atomic unit of a write
    - Capture never blocks on disk: writes are queued and flushed
    - Overload degrades gracefully: a full queue drops and counts new lines

Why NDJSON?
    - Appendable from many processes without coordination
    - Streamable: a reader never needs a whole file in memory
    - Diffable and greppable by humans
"""

from reprise.store.cassette import (
    Cassette,
    CassetteLayout,
    CassetteStore,
    NdjsonCassette,
    iter_ndjson,
    load_ndjson,
)
from reprise.store.queue import CaptureQueue

__all__ = [
    "CaptureQueue",
    "Cassette",
    "CassetteLayout",
    "CassetteStore",
    "NdjsonCassette",
    "iter_ndjson",
    "load_ndjson",
]
