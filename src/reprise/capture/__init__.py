"""
Capture module for Reprise.

Records the dependency calls a service makes while handling a request, so the
request can later be replayed offline.

Example:
    from reprise.capture import CaptureSession

    with CaptureSession(store, span_name="GET /users") as capture:
        capture.record_outbound(LiveCall.redis("GET", ["user:1"]), response="alice")
        capture.record_http_inbound("GET", "/users", status=200, body=["alice"])
"""

from reprise.capture.session import CaptureSession, encode_body, record_call
from reprise.capture.stream_tap import AsyncStreamTap, StreamTap, tap_stream

__all__ = [
    "AsyncStreamTap",
    "CaptureSession",
    "StreamTap",
    "encode_body",
    "record_call",
    "tap_stream",
]
