"""
NDJSON cassette storage for Reprise.

A cassette file holds one CassetteRecord per line. Files are either one per
trace (`{directory}/{traceId}.ndjson`) or a single shared file that is filtered
by trace id at read time.

Design Principles:
    - Append-only: records are never rewritten
    - Streaming reads: files are read line by line, unrelated traces are
      skipped without being kept in memory
    - Queued writes: save_record enqueues, flush appends (see CaptureQueue)
    - Trace ids compare case-insensitively
    - Per-trace file names only accept trace ids made of letters, digits, '-'
      and '_', so a trace id can never name a file outside the directory
    - Finished traces are released: their cassette and empty queue are dropped
"""

import re
from abc import ABC, abstractmethod
from collections.abc import Iterator
from enum import Enum
from pathlib import Path

import structlog
from pydantic import ValidationError

from reprise.errors import (
    CassetteCorruptError,
    InvalidTraceIdError,
    StorageReadError,
    TraceMismatchError,
)
from reprise.schema import CassetteRecord
from reprise.store.queue import CaptureQueue, install_exit_handlers

logger = structlog.get_logger(__name__)

CASSETTE_SUFFIX = ".ndjson"

SAFE_TRACE_ID = re.compile(r"[A-Za-z0-9_-]+")


class CassetteLayout(str, Enum):
    """How traces are laid out in the cassette directory."""

    PER_TRACE = "per_trace"
    SHARED = "shared"


def iter_ndjson(path: str | Path, trace_id: str | None = None) -> Iterator[CassetteRecord]:
    """
    Stream records from an NDJSON cassette file.

    Args:
        path: Cassette file
        trace_id: When None, yield every record. When "", yield records with an
            empty trace id. Otherwise yield records of that trace (case-insensitive).

    Yields:
        Records in file order

    Raises:
        CassetteCorruptError: If a non-blank line is not a valid record
        StorageReadError: If the file exists but cannot be read
    """
    path = Path(path)
    wanted = trace_id.lower() if trace_id else trace_id
    try:
        f = path.open(encoding="utf-8")
    except FileNotFoundError:
        return
    except OSError as e:
        raise StorageReadError(operation="open", path=str(path), underlying_error=str(e)) from e

    with f:
        for line_number, line in enumerate(f, start=1):
            if not line.strip():
                continue
            try:
                record = CassetteRecord.from_json_line(line)
            except ValidationError as e:
                raise CassetteCorruptError(
                    operation="read",
                    path=str(path),
                    line_number=line_number,
                    underlying_error=str(e.errors()[0]["msg"]) if e.errors() else str(e),
                ) from e
            if wanted is None:
                yield record
            elif wanted == "":
                if not record.trace_id:
                    yield record
            elif record.trace_id.lower() == wanted:
                yield record


def load_ndjson(path: str | Path, trace_id: str | None = None) -> list[CassetteRecord]:
    """Load records from an NDJSON cassette file (see `iter_ndjson`)."""
    return list(iter_ndjson(path, trace_id))


class Cassette(ABC):
    """
    Trace-scoped record storage.

    A cassette is bound to exactly one trace at construction. Implementations
    must return records in write order and must never share internal state
    across traces.
    """

    @property
    @abstractmethod
    def trace_id(self) -> str:
        """The trace this cassette is bound to."""
        ...

    @abstractmethod
    def load_trace(self) -> list[CassetteRecord]:
        """Return all persisted records of the bound trace, in write order."""
        ...

    @abstractmethod
    def save_record(self, record: CassetteRecord) -> None:
        """Append one record."""
        ...

    def flush(self) -> None:
        """Force buffered writes to durable storage. Default: nothing buffered."""
        return None

    def __repr__(self) -> str:
        """String representation of the cassette."""
        return f"<{self.__class__.__name__}: {self.trace_id}>"


class NdjsonCassette(Cassette):
    """
    NDJSON-backed cassette.

    Works on a per-trace file and on a shared file alike: reads always filter
    by the bound trace id.

    Usage:
        cassette = NdjsonCassette("cassettes/abc.ndjson", "abc")
        cassette.save_record(record)
        cassette.flush()
        records = cassette.load_trace()
    """

    def __init__(
        self,
        path: str | Path,
        trace_id: str,
        queue: CaptureQueue | None = None,
    ) -> None:
        """
        Initialize the cassette.

        Args:
            path: NDJSON file holding this trace
            trace_id: Trace to bind to
            queue: Write queue for the file; a private unbounded one by default
        """
        self.path = Path(path)
        self._trace_id = trace_id
        self.queue = queue if queue is not None else CaptureQueue(self.path)

    @property
    def trace_id(self) -> str:
        """The trace this cassette is bound to."""
        return self._trace_id

    def load_trace(self) -> list[CassetteRecord]:
        """Return persisted records of the bound trace (queued ones excluded)."""
        return load_ndjson(self.path, self._trace_id)

    def save_record(self, record: CassetteRecord) -> None:
        """
        Queue one record for append.

        Raises:
            TraceMismatchError: If the record belongs to another trace
        """
        if not record.same_trace(self._trace_id):
            raise TraceMismatchError(
                operation="save_record",
                path=str(self.path),
                expected_trace_id=self._trace_id,
                actual_trace_id=record.trace_id,
            )
        self.queue.enqueue(record.to_json_line())

    def flush(self) -> None:
        """Append queued records to the file."""
        self.queue.flush()


class CassetteStore:
    """
    Directory of NDJSON cassettes.

    Exposes the storage contract used by replay and capture:
    `load_trace(trace_id)` and `save_record(trace_id, record)`.
    Cassettes returned by `cassette()` are cached per trace, so one process
    writes each trace through one cassette and one queue per file, until
    `release()` drops them.

    Usage:
        store = CassetteStore("cassettes", max_queue_size=10_000)
        store.save_record(trace_id, record)
        store.flush()
        records = store.load_trace(trace_id)
    """

    def __init__(
        self,
        directory: str | Path,
        layout: CassetteLayout | str = CassetteLayout.PER_TRACE,
        shared_filename: str = "cassettes.ndjson",
        max_queue_size: int | None = None,
    ) -> None:
        """
        Initialize the store.

        Args:
            directory: Directory holding cassette files
            layout: One file per trace, or one shared file
            shared_filename: File name used by the shared layout
            max_queue_size: Bound applied to each file's write queue
        """
        self.directory = Path(directory)
        self.layout = CassetteLayout(layout)
        self.shared_filename = shared_filename
        self.max_queue_size = max_queue_size
        self._queues: dict[Path, CaptureQueue] = {}
        self._cassettes: dict[str, NdjsonCassette] = {}
        self._released_drop_count = 0
        self._exit_handlers_installed = False

    def path_for(self, trace_id: str) -> Path:
        """
        Return the file that holds `trace_id`.

        Raises:
            InvalidTraceIdError: If the per-trace layout cannot use `trace_id`
                as a file name
        """
        if self.layout == CassetteLayout.SHARED:
            return self.directory / self.shared_filename
        if not SAFE_TRACE_ID.fullmatch(trace_id):
            raise InvalidTraceIdError(
                operation="path_for",
                path=str(self.directory),
                trace_id=trace_id,
            )
        return self.directory / f"{trace_id}{CASSETTE_SUFFIX}"

    def _queue_for(self, path: Path) -> CaptureQueue:
        queue = self._queues.get(path)
        if queue is None:
            queue = CaptureQueue(path, max_queue_size=self.max_queue_size)
            self._queues[path] = queue
        return queue

    def cassette(self, trace_id: str) -> NdjsonCassette:
        """Return the cassette for `trace_id`, creating it on first use."""
        key = trace_id.lower()
        cassette = self._cassettes.get(key)
        if cassette is None:
            path = self.path_for(trace_id)
            cassette = NdjsonCassette(path, trace_id, queue=self._queue_for(path))
            self._cassettes[key] = cassette
        return cassette

    def load_trace(self, trace_id: str) -> list[CassetteRecord]:
        """Return persisted records for `trace_id`, in write order."""
        path = self.path_for(trace_id)
        if self.layout == CassetteLayout.PER_TRACE and not path.exists():
            path = self._find_case_insensitive(trace_id) or path
        return load_ndjson(path, trace_id)

    def _find_case_insensitive(self, trace_id: str) -> Path | None:
        wanted = f"{trace_id}{CASSETTE_SUFFIX}".lower()
        if not self.directory.is_dir():
            return None
        for candidate in self.directory.iterdir():
            if candidate.name.lower() == wanted:
                return candidate
        return None

    def save_record(self, trace_id: str, record: CassetteRecord) -> None:
        """Queue one record for `trace_id`."""
        self.cassette(trace_id).save_record(record)

    def flush(self) -> None:
        """Flush every write queue. Raises StorageWriteError on failure."""
        for queue in self._queues.values():
            queue.flush()

    def release(self, trace_id: str) -> None:
        """
        Forget the cassette of a finished trace.

        In the per-trace layout the trace's queue is dropped as well once it is
        empty; a queue still holding unwritten lines is kept for the next
        flush. The shared file's queue is never dropped.
        """
        cassette = self._cassettes.pop(trace_id.lower(), None)
        if cassette is None or self.layout == CassetteLayout.SHARED:
            return
        queue = self._queues.get(cassette.path)
        if queue is not None and not len(queue):
            self._released_drop_count += queue.drop_count
            del self._queues[cassette.path]

    def flush_on_exit(self) -> None:
        """Best-effort flush of every write queue. Never raises."""
        for queue in list(self._queues.values()):
            queue.flush_on_exit()

    def install_exit_handlers(self) -> None:
        """
        Flush every queue (current and future) on exit and on SIGINT/SIGTERM.

        Handlers are installed once per store; later calls do nothing.
        """
        if self._exit_handlers_installed:
            return
        self._exit_handlers_installed = True
        install_exit_handlers(self.flush_on_exit)

    @property
    def drop_count(self) -> int:
        """Total records dropped across all write queues, released ones included."""
        return self._released_drop_count + sum(
            queue.drop_count for queue in self._queues.values()
        )

    def list_traces(self) -> list[str]:
        """List trace ids on disk: sorted file stems, or first-seen order in a shared file."""
        if self.layout == CassetteLayout.SHARED:
            seen: dict[str, None] = {}
            for record in iter_ndjson(self.path_for("")):
                seen.setdefault(record.trace_id, None)
            return list(seen)
        if not self.directory.is_dir():
            return []
        return sorted(p.stem for p in self.directory.glob(f"*{CASSETTE_SUFFIX}"))

    def __repr__(self) -> str:
        """String representation of the store."""
        return f"<CassetteStore: {self.directory} ({self.layout.value})>"
