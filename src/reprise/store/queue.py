"""
Bounded capture queue for Reprise.

Capture must never wait on disk I/O in the request path, so serialized records
are queued in memory and appended to the cassette file on flush.

Key design decisions:
    - Drop newest on overflow: the earliest evidence of a trace is kept and the
      line that would exceed max_queue_size is discarded
    - Drops are counted (monotonic) and logged in aggregate, never raised
    - Flush detaches the buffer before writing, so lines enqueued while a flush
      is running land in the next flush instead of being lost or interleaved
    - Each flush appends one batch to a file opened in append mode; partial
      writes are continued until the whole batch is out
    - Exit handlers belong to the owner of the queues (CassetteStore), which
      installs them once and flushes every queue it holds

Concurrency:
    Not thread-safe. The queue is meant to be mutated from one cooperative
    scheduler (an asyncio loop or a plain synchronous program). flush_on_exit
    may run inside a signal handler on that same thread.
"""

import atexit
import signal
from collections import deque
from collections.abc import Callable
from pathlib import Path
from types import FrameType
from typing import Any

import structlog

from reprise.errors import StorageWriteError

logger = structlog.get_logger(__name__)


def install_exit_handlers(flush: Callable[[], None]) -> None:
    """
    Run `flush` on interpreter exit and on SIGINT/SIGTERM.

    Previously installed signal handlers still run after the flush; a default
    handler is restored and the signal re-raised. Signal handlers are skipped
    outside the main thread. Callers install once per owner: every call wraps
    the handler that is current at that moment.

    Args:
        flush: Callable that must never raise
    """
    atexit.register(flush)
    for signum in (signal.SIGINT, signal.SIGTERM):
        try:
            previous = signal.getsignal(signum)
            signal.signal(signum, _chain_signal_handler(flush, previous))
        except ValueError:
            # signal.signal only works in the main thread
            logger.debug("Skipping signal flush handler", signal=signum)


def _chain_signal_handler(flush: Callable[[], None], previous: Any) -> Any:
    def handler(signum: int, frame: FrameType | None) -> None:
        flush()
        if callable(previous):
            previous(signum, frame)
        elif previous == signal.SIG_DFL:
            signal.signal(signum, signal.SIG_DFL)
            signal.raise_signal(signum)

    return handler


class CaptureQueue:
    """
    FIFO buffer of NDJSON lines destined for one cassette file.

    Attributes:
        path: File the lines are appended to
        max_queue_size: Maximum number of pending lines (None = unbounded)
    """

    # Log every N drops after the first one
    _LOG_INTERVAL = 100

    def __init__(self, path: str | Path, max_queue_size: int | None = None) -> None:
        """
        Initialize the queue.

        Args:
            path: Cassette file to append to (parent directories are created on flush)
            max_queue_size: Maximum pending lines; None disables the bound

        Raises:
            ValueError: If max_queue_size < 1
        """
        if max_queue_size is not None and max_queue_size < 1:
            raise ValueError(f"max_queue_size must be >= 1, got {max_queue_size}")
        self.path = Path(path)
        self.max_queue_size = max_queue_size
        self._lines: deque[str] = deque()
        self._drop_count = 0
        self._last_logged_drop_count = 0

    def enqueue(self, line: str) -> bool:
        """
        Append one serialized record to the queue.

        Args:
            line: One JSON document without a trailing newline

        Returns:
            True if queued, False if dropped because the queue is full
        """
        if self.max_queue_size is not None and len(self._lines) >= self.max_queue_size:
            self._drop_count += 1
            self._log_drop()
            return False
        self._lines.append(line)
        return True

    def _log_drop(self) -> None:
        if (
            self._drop_count == 1
            or self._drop_count - self._last_logged_drop_count >= self._LOG_INTERVAL
        ):
            logger.warning(
                "Capture queue full - records dropped",
                dropped_total=self._drop_count,
                max_queue_size=self.max_queue_size,
                path=str(self.path),
                hint="Flush more often or raise max_queue_size",
            )
            self._last_logged_drop_count = self._drop_count

    def flush(self) -> int:
        """
        Append all queued lines to the file in FIFO order.

        Safe to call when nothing is queued (no-op). Lines that could not be
        written are put back at the front of the queue.

        Returns:
            Number of lines written

        Raises:
            StorageWriteError: If the append fails
        """
        if not self._lines:
            return 0

        batch = self._lines
        self._lines = deque()
        content = ("\n".join(batch) + "\n").encode("utf-8")

        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with self.path.open("ab", buffering=0) as f:
                view = memoryview(content)
                while view:
                    written = f.write(view)
                    view = view[written:]
        except OSError as e:
            # Keep FIFO order: failed batch goes before anything enqueued meanwhile
            batch.extend(self._lines)
            self._lines = batch
            raise StorageWriteError(
                operation="append",
                path=str(self.path),
                underlying_error=str(e),
            ) from e

        logger.debug("Flushed capture queue", path=str(self.path), lines=len(batch))
        return len(batch)

    def flush_on_exit(self) -> None:
        """
        Best-effort flush for shutdown paths. Never raises.

        Failures are logged; the unwritten lines stay queued.
        """
        try:
            self.flush()
        except Exception as e:
            logger.error(
                "Capture flush on exit failed",
                path=str(self.path),
                pending=len(self._lines),
                error=str(e),
            )

    @property
    def drop_count(self) -> int:
        """Number of lines dropped because the queue was full."""
        return self._drop_count

    @property
    def pending(self) -> list[str]:
        """Snapshot of queued lines, oldest first."""
        return list(self._lines)

    def __len__(self) -> int:
        """Return the number of queued lines."""
        return len(self._lines)

    def __repr__(self) -> str:
        """String representation of the queue."""
        return (
            f"<CaptureQueue: {self.path} pending={len(self._lines)} "
            f"dropped={self._drop_count}>"
        )
