"""
Capture sessions for Reprise.

A CaptureSession records one trace: the inbound request that started it and
every outbound dependency call made while serving it. Records are queued on
the store and flushed when the session closes; the store then releases the
trace's cassette.

Lineage:
    Outbound records point at the current span frame through parentSpanId.
    Every frame opened with `session.span(name)` is written as a metadata
    record, so replay can resolve a parentSpanId back to the span name.

Example:
    store = CassetteStore("cassettes")
    with CaptureSession(store, span_name="GET /users") as capture:
        with capture.span("load_users"):
            rows = db.fetch(sql)
            capture.record_outbound(LiveCall.postgres(sql), response={"rows": rows})
        capture.record_http_inbound("GET", "/users", status=200, body=rows)
"""

import base64
from collections.abc import AsyncIterable, Iterable, Iterator
from contextlib import contextmanager
from typing import Any

import structlog

from reprise.capture.stream_tap import AsyncStreamTap, Chunk, StreamTap, tap_stream
from reprise.config import RepriseSettings
from reprise.context import (
    SpanFrame,
    active_capture,
    bind_capture,
    current_span,
    generate_span_id,
    generate_trace_id,
    pop_frame,
    push_frame,
    unbind_capture,
)
from reprise.context import span as open_span
from reprise.errors import CaptureError, DuplicateInboundError
from reprise.identifier import http_identifier
from reprise.matching.keys import ExtractorRegistry, extract_key
from reprise.schema import CassetteRecord, LiveCall, Protocol, RecordType, TapCaptured
from reprise.store.cassette import CassetteStore

logger = structlog.get_logger(__name__)

SPAN_PROTOCOL = "span"


def encode_body(body: bytes) -> dict[str, Any]:
    """Payload fields for a captured byte body: UTF-8 text, else base64."""
    try:
        return {"body": body.decode("utf-8")}
    except UnicodeDecodeError:
        return {"body": base64.b64encode(body).decode("ascii"), "encoding": "base64"}


def call_url(call: LiveCall) -> str | None:
    """URL of an HTTP live call, if it carries one."""
    for key in ("url.full", "http.url"):
        value = call.attributes.get(key)
        if isinstance(value, str):
            return value
    return None


class CaptureSession:
    """
    Records one trace into a CassetteStore.

    Attributes:
        store: Store the records are queued on
        trace_id: Trace being recorded (generated when not given)
        span_name: Name of the root span (the inbound request)
        root_span_id: spanId shared by the root frame and the inbound record
    """

    def __init__(
        self,
        store: CassetteStore,
        trace_id: str | None = None,
        span_name: str | None = None,
        settings: RepriseSettings | None = None,
        registry: ExtractorRegistry | None = None,
    ) -> None:
        """
        Initialize the session.

        Args:
            store: Destination store
            trace_id: Trace id; a random 32-hex id when None
            span_name: Root span name, written as the inbound record's spanName
            settings: Source of max_payload_size and ignore_urls
            registry: Key extractors used to derive protocol and identifier

        Raises:
            InvalidTraceIdError: If the store cannot name a cassette after trace_id
        """
        self.store = store
        self.trace_id = trace_id or generate_trace_id()
        store.path_for(self.trace_id)
        self.span_name = span_name
        self.root_span_id = generate_span_id()
        self.settings = settings or RepriseSettings()
        self._registry = registry
        self._inbound_written = False
        self._records_written = 0
        self._capture_token: Any = None
        self._frame_token: Any = None

    # -------------------------------------------------------------------------
    # Context management
    # -------------------------------------------------------------------------

    def _open(self) -> None:
        self._capture_token = bind_capture(self)
        if self.span_name is not None:
            frame = SpanFrame(self.root_span_id, self.span_name, current_span())
            self._frame_token = push_frame(frame)
        logger.debug("Capture session started", trace_id=self.trace_id)

    def _close(self, failed: bool) -> None:
        if self._frame_token is not None:
            pop_frame(self._frame_token)
            self._frame_token = None
        if self._capture_token is not None:
            unbind_capture(self._capture_token)
            self._capture_token = None

        try:
            if failed:
                # Do not mask the caller's exception with a storage error
                self.store.cassette(self.trace_id).queue.flush_on_exit()
            else:
                self.flush()
        finally:
            self.store.release(self.trace_id)
        logger.debug(
            "Capture session finished",
            trace_id=self.trace_id,
            records=self._records_written,
        )

    def __enter__(self) -> "CaptureSession":
        """Bind the session to the current context."""
        self._open()
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Unbind the session and flush its records."""
        self._close(failed=exc_type is not None)

    async def __aenter__(self) -> "CaptureSession":
        """Bind the session to the current task's context."""
        self._open()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Unbind the session and flush its records."""
        self._close(failed=exc_type is not None)

    def flush(self) -> None:
        """Append queued records of this trace to its cassette file."""
        self.store.cassette(self.trace_id).flush()

    @property
    def records_written(self) -> int:
        """Number of records handed to the store."""
        return self._records_written

    # -------------------------------------------------------------------------
    # Recording
    # -------------------------------------------------------------------------

    def _save(self, record: CassetteRecord) -> CassetteRecord:
        self.store.save_record(self.trace_id, record)
        self._records_written += 1
        return record

    @contextmanager
    def span(self, name: str) -> Iterator[SpanFrame]:
        """
        Open a named lineage frame and record it.

        Outbound calls recorded inside the block get this frame as parent.
        """
        parent = current_span()
        with open_span(name) as frame:
            self._save(
                CassetteRecord(
                    trace_id=self.trace_id,
                    span_id=frame.span_id,
                    parent_span_id=parent.span_id if parent is not None else None,
                    span_name=name,
                    type=RecordType.METADATA,
                    protocol=SPAN_PROTOCOL,
                    identifier=name,
                )
            )
            yield frame

    def record_inbound(
        self,
        identifier: str,
        response: Any = None,
        request: Any = None,
        protocol: str = Protocol.HTTP.value,
        status_code: int | None = None,
    ) -> CassetteRecord:
        """
        Record the inbound request that started this trace.

        Raises:
            DuplicateInboundError: If the trace already has an inbound record
        """
        if self._inbound_written:
            raise DuplicateInboundError(trace_id=self.trace_id)
        record = CassetteRecord(
            trace_id=self.trace_id,
            span_id=self.root_span_id,
            span_name=self.span_name,
            type=RecordType.INBOUND,
            protocol=protocol,
            identifier=identifier,
            request_payload=request,
            response_payload=response,
            status_code=status_code,
        )
        self._inbound_written = True
        return self._save(record)

    def record_http_inbound(
        self,
        method: str,
        url: str,
        status: int,
        body: Any = None,
        request_body: Any = None,
        headers: dict[str, str] | None = None,
    ) -> CassetteRecord:
        """Record an inbound HTTP request with its response status, body and headers."""
        response: dict[str, Any] = {"statusCode": status, "body": body}
        if headers:
            response["headers"] = dict(headers)
        request = {"body": request_body} if request_body is not None else None
        return self.record_inbound(
            http_identifier(method, url),
            response=response,
            request=request,
        )

    def record_outbound(
        self,
        call: LiveCall | None = None,
        *,
        protocol: str | None = None,
        identifier: str | None = None,
        request: Any = None,
        response: Any = None,
        status_code: int | None = None,
        error: str | None = None,
        span_name: str | None = None,
    ) -> CassetteRecord | None:
        """
        Record one outbound dependency call.

        Either pass the LiveCall the interception layer built (protocol and
        identifier are extracted exactly as replay will), or pass protocol and
        identifier directly.

        Returns:
            The record, or None when the call's URL is ignored

        Raises:
            CaptureError: If no protocol/identifier can be determined
        """
        if call is not None:
            url = call_url(call)
            if url is not None and self.settings.should_ignore(url):
                logger.debug("Skipping ignored URL", trace_id=self.trace_id, url=url)
                return None
            key = extract_key(call, self._registry)
            if key is None and (protocol is None or identifier is None):
                raise CaptureError(
                    message="Cannot derive protocol and identifier from call",
                    trace_id=self.trace_id,
                    suggestion="Build the call with LiveCall.http/postgres/redis/grpc",
                    context={"attributes": dict(call.attributes)},
                )
            if key is not None:
                protocol = protocol or key.protocol
                identifier = identifier if identifier is not None else key.identifier
            if request is None:
                request = call.request_body

        if not protocol or identifier is None:
            raise CaptureError(
                message="record_outbound needs a call or protocol and identifier",
                trace_id=self.trace_id,
            )

        return self._save(self._outbound_record(
            protocol=protocol,
            identifier=identifier,
            parent=current_span(),
            request=request,
            response=response,
            status_code=status_code,
            error=error,
            span_name=span_name,
        ))

    def _outbound_record(
        self,
        *,
        protocol: str,
        identifier: str,
        parent: SpanFrame | None,
        request: Any,
        response: Any,
        status_code: int | None,
        error: str | None,
        span_name: str | None,
    ) -> CassetteRecord:
        return CassetteRecord(
            trace_id=self.trace_id,
            span_id=generate_span_id(),
            parent_span_id=parent.span_id if parent is not None else None,
            span_name=span_name,
            type=RecordType.OUTBOUND,
            protocol=protocol,
            identifier=identifier,
            request_payload=request,
            response_payload=response,
            status_code=status_code,
            error=error,
        )

    def tap(
        self,
        source: Iterable[Chunk] | AsyncIterable[Chunk],
        call: LiveCall,
        status_code: int | None = None,
    ) -> StreamTap | AsyncStreamTap:
        """
        Wrap a streamed response and record it once the stream settles.

        The caller consumes the returned tap instead of `source`. The parent
        span is the one current when `tap` is called. The recorded payload is
        the first max_payload_size bytes (UTF-8 text, else base64) with a
        `truncated` flag.

        Raises:
            CaptureError: If no protocol/identifier can be derived from `call`
        """
        key = extract_key(call, self._registry)
        if key is None:
            raise CaptureError(
                message="Cannot derive protocol and identifier from call",
                trace_id=self.trace_id,
            )
        parent = current_span()
        url = call_url(call)
        ignored = url is not None and self.settings.should_ignore(url)

        def on_complete(captured: TapCaptured) -> None:
            if ignored:
                return
            response = encode_body(captured.body)
            if status_code is not None:
                response["statusCode"] = status_code
            response["truncated"] = captured.truncated
            self._save(self._outbound_record(
                protocol=key.protocol,
                identifier=key.identifier,
                parent=parent,
                request=call.request_body,
                response=response,
                status_code=status_code,
                error=None,
                span_name=None,
            ))

        return tap_stream(source, self.settings.max_payload_size, on_complete)

    def __repr__(self) -> str:
        """String representation of the session."""
        return f"<CaptureSession: {self.trace_id} records={self._records_written}>"


def record_call(call: LiveCall, response: Any = None, **kwargs: Any) -> CassetteRecord | None:
    """
    Record an outbound call on the capture session of the current context.

    Returns None when no capture session is active, so interception adapters
    can call this unconditionally.
    """
    session = active_capture()
    if session is None:
        return None
    return session.record_outbound(call, response=response, **kwargs)

