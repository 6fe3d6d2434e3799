"""
Stream tap for capturing response bodies.

When a dependency returns a byte stream instead of a materialized value, the
tap sits between the stream and its consumer:

    source --> StreamTap --> consumer (every chunk, unmodified)
                  |
                  +--> capture buffer (first max_payload_size bytes)

The capture side is an in-memory append, so it can never slow down or stall
the consumer. Once the cap is reached, chunks are still forwarded but no
longer retained, and the captured result is flagged truncated.

Example:
    tap = StreamTap(response.iter_bytes(), max_payload_size=64 * 1024)
    for chunk in tap:
        sink.write(chunk)
    tap.captured.body, tap.captured.truncated
"""

from collections.abc import AsyncIterable, AsyncIterator, Callable, Iterable, Iterator

import structlog

from reprise.schema import TapCaptured

logger = structlog.get_logger(__name__)

Chunk = bytes | bytearray | memoryview | str
CaptureCallback = Callable[[TapCaptured], None]


class _CaptureBuffer:
    """Size-capped accumulator shared by the sync and async taps."""

    def __init__(self, max_payload_size: int, on_complete: CaptureCallback | None) -> None:
        if max_payload_size < 0:
            raise ValueError(f"max_payload_size must be >= 0, got {max_payload_size}")
        self.max_payload_size = max_payload_size
        self._chunks: list[bytes] = []
        self._length = 0
        self._truncated = False
        self._on_complete = on_complete
        self.result: TapCaptured | None = None

    def add(self, chunk: Chunk) -> None:
        if self.result is not None:
            return
        data = chunk.encode("utf-8") if isinstance(chunk, str) else bytes(chunk)
        remaining = self.max_payload_size - self._length
        if len(data) > remaining:
            self._truncated = True
            data = data[:remaining]
        if data:
            self._chunks.append(data)
            self._length += len(data)

    def finish(self) -> TapCaptured:
        if self.result is None:
            self.result = TapCaptured(body=b"".join(self._chunks), truncated=self._truncated)
            self._chunks = []
            if self._on_complete is not None:
                try:
                    self._on_complete(self.result)
                except Exception as e:
                    # A failing capture sink must not break the real consumer
                    logger.warning("Stream tap capture callback failed", error=str(e))
        return self.result


class StreamTap:
    """
    Tap over a synchronous iterable of byte chunks.

    Attributes:
        max_payload_size: Maximum number of bytes retained for capture
    """

    def __init__(
        self,
        source: Iterable[Chunk],
        max_payload_size: int,
        on_complete: CaptureCallback | None = None,
    ) -> None:
        """
        Initialize the tap.

        Args:
            source: Stream to duplicate (consumed lazily, once)
            max_payload_size: Capture cap in bytes
            on_complete: Called once with the captured result when the source
                ends, fails, or the consumer closes the tap
        """
        self._source = source
        self._buffer = _CaptureBuffer(max_payload_size, on_complete)
        self.max_payload_size = max_payload_size

    def __iter__(self) -> Iterator[Chunk]:
        """Yield every source chunk unmodified while capturing a capped copy."""
        try:
            for chunk in self._source:
                self._buffer.add(chunk)
                yield chunk
        finally:
            self._buffer.finish()

    @property
    def done(self) -> bool:
        """Whether the capture has settled."""
        return self._buffer.result is not None

    @property
    def captured(self) -> TapCaptured:
        """
        The captured result.

        Raises:
            RuntimeError: If the stream has not been consumed yet
        """
        if self._buffer.result is None:
            raise RuntimeError("Stream has not been fully consumed yet")
        return self._buffer.result


class AsyncStreamTap:
    """
    Tap over an asynchronous iterable of byte chunks.

    Works with `httpx.Response.aiter_bytes()` and any other async byte source.
    """

    def __init__(
        self,
        source: AsyncIterable[Chunk],
        max_payload_size: int,
        on_complete: CaptureCallback | None = None,
    ) -> None:
        """
        Initialize the tap.

        Args:
            source: Async stream to duplicate (consumed lazily, once)
            max_payload_size: Capture cap in bytes
            on_complete: Called once with the captured result
        """
        self._source = source
        self._buffer = _CaptureBuffer(max_payload_size, on_complete)
        self.max_payload_size = max_payload_size

    async def __aiter__(self) -> AsyncIterator[Chunk]:
        """Yield every source chunk unmodified while capturing a capped copy."""
        try:
            async for chunk in self._source:
                self._buffer.add(chunk)
                yield chunk
        finally:
            self._buffer.finish()

    @property
    def done(self) -> bool:
        """Whether the capture has settled."""
        return self._buffer.result is not None

    @property
    def captured(self) -> TapCaptured:
        """
        The captured result.

        Raises:
            RuntimeError: If the stream has not been consumed yet
        """
        if self._buffer.result is None:
            raise RuntimeError("Stream has not been fully consumed yet")
        return self._buffer.result


def tap_stream(
    source: Iterable[Chunk] | AsyncIterable[Chunk],
    max_payload_size: int,
    on_complete: CaptureCallback | None = None,
) -> StreamTap | AsyncStreamTap:
    """Wrap `source` in the sync or async tap that fits it."""
    if hasattr(source, "__aiter__"):
        return AsyncStreamTap(source, max_payload_size, on_complete)  # type: ignore[arg-type]
    return StreamTap(source, max_payload_size, on_complete)  # type: ignore[arg-type]
