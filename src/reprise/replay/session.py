"""
Replay sessions for Reprise.

A ReplaySession serves one recorded trace back to the code under test:

    1. Load the trace once, eagerly, when the session opens
    2. Build a fresh Matcher (own call counters) for this run
    3. Bind the session to the current context, so interception adapters can
       find it with `active_replay()` from any depth of the call stack
    4. Open a root span frame named after the recorded inbound span, so live
       parent names line up with recorded ones
    5. Answer `match` / `replay` for every intercepted call

Sessions are independent: concurrent asyncio tasks can each hold their own,
and a call only ever sees the session bound in its own context.

Example:
    with ReplaySession(store, trace_id, strict=True) as replay:
        user = replay.replay(LiveCall.http("GET", url), live=lambda: client.get(url))
        replay.compare_inbound(status=200, body=response_body)
"""

from collections.abc import Awaitable, Callable, Sequence
from typing import Any

import structlog

from reprise.capture.session import call_url
from reprise.config import RepriseSettings
from reprise.context import (
    SpanFrame,
    active_replay,
    bind_replay,
    current_span,
    pop_frame,
    push_frame,
    unbind_replay,
)
from reprise.errors import ReplayNotActiveError
from reprise.matching.actions import PASSTHROUGH, MatcherFn, Mock, Passthrough
from reprise.matching.keys import ExtractorRegistry
from reprise.matching.matcher import Matcher
from reprise.replay.compare import InboundResponse, compare_inbound
from reprise.schema import CassetteRecord, LiveCall
from reprise.store.cassette import CassetteStore

logger = structlog.get_logger(__name__)


class ReplaySession:
    """
    Replays one recorded trace.

    Attributes:
        store: Store the trace is loaded from
        trace_id: Trace being replayed
        strict: Fail closed on unresolved calls
    """

    def __init__(
        self,
        store: CassetteStore,
        trace_id: str,
        strict: bool | None = None,
        default: str | None = None,
        matchers: Sequence[MatcherFn] = (),
        settings: RepriseSettings | None = None,
        registry: ExtractorRegistry | None = None,
    ) -> None:
        """
        Initialize the session.

        Args:
            store: Store holding the trace
            trace_id: Trace to replay
            strict: Overrides settings.strict_replay when given
            default: Default matcher ("topology" or "flat"); settings.matching when None
            matchers: User matchers, run before the default one in this order
            settings: Source of strict_replay, strict_comparison, matching, ignore_urls
            registry: Key extractors for the default matcher
        """
        self.store = store
        self.trace_id = trace_id
        self.settings = settings or RepriseSettings()
        self.strict = self.settings.strict_replay if strict is None else strict
        self.default = default or self.settings.matching
        self._user_matchers = list(matchers)
        self._registry = registry
        self._matcher: Matcher | None = None
        self._replay_token: Any = None
        self._frame_token: Any = None

    # -------------------------------------------------------------------------
    # Context management
    # -------------------------------------------------------------------------

    def _open(self) -> None:
        records = self.store.load_trace(self.trace_id)
        matcher = Matcher(records, strict=self.strict, default=self.default, registry=self._registry)
        for fn in self._user_matchers:
            matcher.use(fn)
        self._matcher = matcher

        self._replay_token = bind_replay(self)
        inbound = matcher.inbound_record
        if inbound is not None and inbound.span_name:
            frame = SpanFrame(inbound.span_id, inbound.span_name, current_span())
            self._frame_token = push_frame(frame)

        logger.info(
            "Replay session started",
            trace_id=self.trace_id,
            records=len(records),
            strict=self.strict,
            matching=self.default,
        )

    def _close(self) -> None:
        if self._frame_token is not None:
            pop_frame(self._frame_token)
            self._frame_token = None
        if self._replay_token is not None:
            unbind_replay(self._replay_token)
            self._replay_token = None
        logger.debug("Replay session finished", trace_id=self.trace_id)

    def __enter__(self) -> "ReplaySession":
        """Load the trace and bind the session to the current context."""
        self._open()
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Unbind the session."""
        self._close()

    async def __aenter__(self) -> "ReplaySession":
        """Load the trace and bind the session to the current task's context."""
        self._open()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Unbind the session."""
        self._close()

    # -------------------------------------------------------------------------
    # Matching
    # -------------------------------------------------------------------------

    @property
    def matcher(self) -> Matcher:
        """
        The matcher of this run.

        Raises:
            ReplayNotActiveError: If the session has not been entered
        """
        if self._matcher is None:
            raise ReplayNotActiveError(trace_id=self.trace_id)
        return self._matcher

    @property
    def records(self) -> tuple[CassetteRecord, ...]:
        """Records of the replayed trace."""
        return self.matcher.records

    @property
    def inbound_record(self) -> CassetteRecord | None:
        """The recorded inbound request, if any."""
        return self.matcher.inbound_record

    def use(self, fn: MatcherFn) -> None:
        """Append a user matcher to this run."""
        if self._matcher is None:
            self._user_matchers.append(fn)
        else:
            self._matcher.use(fn)

    def is_ignored(self, call: LiveCall) -> bool:
        """Whether the call's URL matches ignore_urls."""
        url = call_url(call)
        return url is not None and self.settings.should_ignore(url)

    def match(self, call: LiveCall) -> Mock | Passthrough:
        """
        Decide what `call` gets: a recorded response or the live dependency.

        Ignored URLs always pass through, in strict mode too.

        Raises:
            NoMatchFoundError: Strict mode, nothing matched
            PassthroughNotAllowedError: Strict mode, a matcher asked for passthrough
        """
        if self.is_ignored(call):
            return PASSTHROUGH
        return self.matcher.match(call)

    def replay(self, call: LiveCall, live: Callable[[], Any]) -> Any:
        """Return the recorded payload for `call`, or `live()` on passthrough."""
        action = self.match(call)
        if isinstance(action, Mock):
            return action.payload
        return live()

    async def areplay(self, call: LiveCall, live: Callable[[], Awaitable[Any]]) -> Any:
        """Async variant of `replay`."""
        action = self.match(call)
        if isinstance(action, Mock):
            return action.payload
        return await live()

    def compare_inbound(
        self,
        status: int,
        body: Any = None,
        headers: dict[str, str] | None = None,
    ) -> None:
        """
        Check the live response against the recorded inbound response.

        Raises:
            InboundMismatchError: If it differs (headers only under strict_comparison)
        """
        compare_inbound(
            InboundResponse(status=status, body=body, headers=headers or {}),
            self.inbound_record,
            strict_comparison=self.settings.strict_comparison,
        )

    def __repr__(self) -> str:
        """String representation of the session."""
        mode = "strict" if self.strict else "permissive"
        return f"<ReplaySession: {self.trace_id} {mode}>"


def current_replay() -> ReplaySession:
    """
    The replay session bound to the current context.

    Raises:
        ReplayNotActiveError: If none is bound
    """
    session = active_replay()
    if session is None:
        raise ReplayNotActiveError()
    return session


def match_call(call: LiveCall) -> Mock | Passthrough:
    """Match `call` against the current context's replay session."""
    return current_replay().match(call)


def replay_call(call: LiveCall, live: Callable[[], Any]) -> Any:
    """
    Replay `call` in the current context, or run `live()` when not replaying.

    Interception adapters wrap every dependency call with this.
    """
    session = active_replay()
    if session is None:
        return live()
    return session.replay(call, live)


async def areplay_call(call: LiveCall, live: Callable[[], Awaitable[Any]]) -> Any:
    """Async variant of `replay_call`."""
    session = active_replay()
    if session is None:
        return await live()
    return await session.areplay(call, live)
