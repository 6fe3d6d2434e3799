"""
Ambient context for Reprise.

Call sites rarely know the name of the span that issued them, so lineage is
propagated through context variables instead of being threaded through every
call. Each asyncio task inherits a copy of the context it was created in, which
keeps concurrent traces from seeing each other's frames or sessions.

Values held here:
    - The current SpanFrame (a linked stack of named spans)
    - The active ReplaySession, if any
    - The active CaptureSession, if any
"""

import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from reprise.capture.session import CaptureSession
    from reprise.replay.session import ReplaySession


ROOT_SPAN_NAME = "root"


def generate_span_id() -> str:
    """Generate a 16-hex-digit span id."""
    return uuid.uuid4().hex[:16]


def generate_trace_id() -> str:
    """Generate a 32-hex-digit trace id."""
    return uuid.uuid4().hex


@dataclass(frozen=True)
class SpanFrame:
    """
    One named span on the ambient stack.

    Attributes:
        span_id: Identifier written to records as spanId/parentSpanId
        name: Human-readable span name compared during lineage matching
        parent: Enclosing frame, or None at the top of the stack
    """

    span_id: str
    name: str
    parent: "SpanFrame | None" = None


_current_frame: ContextVar[SpanFrame | None] = ContextVar("reprise_span_frame", default=None)
_active_replay: ContextVar["ReplaySession | None"] = ContextVar("reprise_replay", default=None)
_active_capture: ContextVar["CaptureSession | None"] = ContextVar("reprise_capture", default=None)


def current_span() -> SpanFrame | None:
    """Return the innermost span frame of the current context."""
    return _current_frame.get()


def current_span_name() -> str | None:
    """Return the innermost span name, or None when no span is open (root)."""
    frame = _current_frame.get()
    return frame.name if frame is not None else None


@contextmanager
def span(name: str, span_id: str | None = None) -> Iterator[SpanFrame]:
    """
    Open a named span frame for the duration of the block.

    Live calls issued inside the block report `name` as their parent.

    Example:
        with span("load_user"):
            matcher.match(LiveCall.postgres("SELECT 1"))
    """
    frame = SpanFrame(
        span_id=span_id or generate_span_id(),
        name=name,
        parent=_current_frame.get(),
    )
    token = _current_frame.set(frame)
    try:
        yield frame
    finally:
        _current_frame.reset(token)


def active_replay() -> "ReplaySession | None":
    """Return the replay session bound to the current context."""
    return _active_replay.get()


def active_capture() -> "CaptureSession | None":
    """Return the capture session bound to the current context."""
    return _active_capture.get()


def bind_replay(session: "ReplaySession | None") -> Any:
    """Bind a replay session to the current context; returns a reset token."""
    return _active_replay.set(session)


def unbind_replay(token: Any) -> None:
    """Restore the replay binding captured by `bind_replay`."""
    _active_replay.reset(token)


def bind_capture(session: "CaptureSession | None") -> Any:
    """Bind a capture session to the current context; returns a reset token."""
    return _active_capture.set(session)


def unbind_capture(token: Any) -> None:
    """Restore the capture binding captured by `bind_capture`."""
    _active_capture.reset(token)


def push_frame(frame: SpanFrame) -> Any:
    """Make `frame` the current span frame; returns a reset token."""
    return _current_frame.set(frame)


def pop_frame(token: Any) -> None:
    """Restore the frame captured by `push_frame`."""
    _current_frame.reset(token)
