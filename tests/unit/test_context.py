"""
Unit tests for ambient span and session context.

Tests cover:
- Span frame nesting and restoration
- Id generation
- Isolation between asyncio tasks
"""

import asyncio

from reprise.context import (
    active_capture,
    active_replay,
    current_span,
    current_span_name,
    generate_span_id,
    generate_trace_id,
    span,
)


class TestSpanFrames:
    """Tests for the span frame stack."""

    def test_no_span_is_root(self) -> None:
        """Outside any span there is no frame."""
        assert current_span() is None
        assert current_span_name() is None

    def test_nesting_links_parents(self) -> None:
        """Inner frames point at the enclosing one."""
        with span("outer") as outer:
            with span("inner") as inner:
                assert current_span_name() == "inner"
                assert inner.parent is outer
            assert current_span() is outer
        assert current_span() is None

    def test_frame_restored_on_error(self) -> None:
        """An exception inside a span still pops the frame."""
        try:
            with span("failing"):
                raise ValueError("boom")
        except ValueError:
            pass
        assert current_span() is None

    def test_explicit_span_id(self) -> None:
        """A given span id is kept."""
        with span("s", span_id="abc") as frame:
            assert frame.span_id == "abc"

    def test_generated_ids(self) -> None:
        """Generated ids have W3C widths."""
        assert len(generate_span_id()) == 16
        assert len(generate_trace_id()) == 32
        assert generate_trace_id() != generate_trace_id()

    def test_no_sessions_bound_by_default(self) -> None:
        """Nothing is bound outside sessions."""
        assert active_replay() is None
        assert active_capture() is None


class TestTaskIsolation:
    """Tests for context isolation across asyncio tasks."""

    def test_tasks_see_their_own_frames(self) -> None:
        """Concurrent tasks never observe each other's spans."""

        async def worker(name: str) -> list[str | None]:
            seen = []
            with span(name):
                for _ in range(3):
                    seen.append(current_span_name())
                    await asyncio.sleep(0)
            return seen

        async def main():
            return await asyncio.gather(worker("a"), worker("b"))

        a, b = asyncio.run(main())
        assert a == ["a", "a", "a"]
        assert b == ["b", "b", "b"]
