"""
Matcher chain for Reprise.

The Matcher decides, for every live call made during replay, what the caller
gets back. It runs an ordered chain of matcher functions:

    user matchers (registration order) --> default matcher --> policy

The first function that returns something other than Continue decides. When
every function continues, the replay policy applies:

    strict:     NoMatchFoundError, the call never reaches the dependency
    permissive: Passthrough, the call goes to the live dependency

One Matcher is built per replay run. Its default matcher owns the per-key
call counters, so sequence state never leaks between runs.

Example:
    matcher = Matcher(store.load_trace(trace_id), strict=True)
    matcher.use(lambda call, records: Mock({"rows": []}) if is_health(call) else CONTINUE)
    rows = matcher.replay(LiveCall.postgres("SELECT 1"), live=run_query)
"""

from collections.abc import Awaitable, Callable, Iterable
from typing import Any, TypeVar

import structlog

from reprise.errors import NoMatchFoundError, PassthroughNotAllowedError
from reprise.matching.actions import (
    CONTINUE,
    PASSTHROUGH,
    Continue,
    MatcherAction,
    MatcherFn,
    Mock,
    Passthrough,
)
from reprise.matching.keys import ExtractorRegistry, extract_key
from reprise.matching.resolution import create_flat_matcher, create_topology_matcher
from reprise.schema import ATTR_IDENTIFIER, CassetteRecord, LiveCall, RecordType

logger = structlog.get_logger(__name__)

T = TypeVar("T")

UNKNOWN_PROTOCOL = "unknown"

DEFAULT_MATCHERS: dict[str, Callable[[ExtractorRegistry | None], MatcherFn]] = {
    "topology": create_topology_matcher,
    "flat": create_flat_matcher,
}


class Matcher:
    """
    Ordered matcher chain bound to one trace's records.

    Attributes:
        strict: Whether unresolved calls and Passthrough actions fail
    """

    def __init__(
        self,
        records: Iterable[CassetteRecord],
        strict: bool = False,
        default: str | None = "topology",
        registry: ExtractorRegistry | None = None,
    ) -> None:
        """
        Initialize the matcher.

        Args:
            records: Records of the trace being replayed (kept in storage order)
            strict: Fail closed on unresolved calls
            default: Built-in default matcher ("topology" or "flat"), or None
                to rely on user matchers only
            registry: Key extractors; the module default registry when None

        Raises:
            ValueError: If `default` names no built-in matcher
        """
        self._records: tuple[CassetteRecord, ...] = tuple(records)
        self.strict = strict
        self._registry = registry
        self._matchers: list[MatcherFn] = []

        if default is None:
            self._default: MatcherFn | None = None
        elif default in DEFAULT_MATCHERS:
            self._default = DEFAULT_MATCHERS[default](registry)
        else:
            msg = f"Unknown default matcher {default!r}; expected one of {sorted(DEFAULT_MATCHERS)}"
            raise ValueError(msg)
        self.default = default

    @property
    def records(self) -> tuple[CassetteRecord, ...]:
        """Records of the replayed trace, in storage order."""
        return self._records

    @property
    def inbound_record(self) -> CassetteRecord | None:
        """The trace's inbound record, if it was captured."""
        for record in self._records:
            if record.type == RecordType.INBOUND:
                return record
        return None

    @property
    def trace_id(self) -> str:
        """Trace id of the records (empty when there are none)."""
        inbound = self.inbound_record
        if inbound is not None:
            return inbound.trace_id
        return self._records[0].trace_id if self._records else ""

    def use(self, fn: MatcherFn) -> None:
        """
        Append a user matcher.

        User matchers run before the default matcher, in registration order.
        """
        self._matchers.append(fn)

    def clear(self) -> None:
        """Remove all user matchers. The default matcher is kept."""
        self._matchers.clear()

    def _chain(self) -> list[MatcherFn]:
        if self._default is None:
            return list(self._matchers)
        return [*self._matchers, self._default]

    def _describe(self, call: LiveCall) -> tuple[str, str]:
        key = extract_key(call, self._registry)
        if key is not None:
            return key.protocol, key.identifier
        identifier = call.attributes.get(ATTR_IDENTIFIER)
        return UNKNOWN_PROTOCOL, identifier if isinstance(identifier, str) else ""

    def evaluate(self, call: LiveCall) -> MatcherAction:
        """
        Run the matcher chain for `call`.

        Returns:
            The first non-Continue action, or Continue when every matcher deferred

        Raises:
            PassthroughNotAllowedError: If a matcher returns Passthrough in strict mode
        """
        for fn in self._chain():
            action = fn(call, self._records)
            if isinstance(action, Continue):
                continue
            if isinstance(action, Passthrough) and self.strict:
                protocol, identifier = self._describe(call)
                logger.warning(
                    "Passthrough rejected in strict mode",
                    trace_id=self.trace_id,
                    protocol=protocol,
                    identifier=identifier,
                )
                raise PassthroughNotAllowedError(
                    trace_id=self.trace_id,
                    protocol=protocol,
                    identifier=identifier,
                )
            return action
        return CONTINUE

    def match(self, call: LiveCall) -> Mock | Passthrough:
        """
        Evaluate `call` and apply the unresolved-call policy.

        Returns:
            Mock when a recording was found, Passthrough in permissive mode otherwise

        Raises:
            NoMatchFoundError: If strict and nothing matched
            PassthroughNotAllowedError: If strict and a matcher asked for passthrough
        """
        action = self.evaluate(call)
        if isinstance(action, (Mock, Passthrough)):
            return action

        protocol, identifier = self._describe(call)
        if self.strict:
            logger.warning(
                "No recorded call in strict mode",
                trace_id=self.trace_id,
                protocol=protocol,
                identifier=identifier,
            )
            raise NoMatchFoundError(
                trace_id=self.trace_id,
                protocol=protocol,
                identifier=identifier,
            )
        logger.debug(
            "No recorded call, passing through",
            trace_id=self.trace_id,
            protocol=protocol,
            identifier=identifier,
        )
        return PASSTHROUGH

    def replay(self, call: LiveCall, live: Callable[[], T]) -> Any:
        """
        Return the mocked payload for `call`, or the result of `live()`.

        `live` is only called on Passthrough, which strict mode never yields.
        """
        action = self.match(call)
        if isinstance(action, Mock):
            return action.payload
        return live()

    async def areplay(self, call: LiveCall, live: Callable[[], Awaitable[T]]) -> Any:
        """Async variant of `replay`: awaits `live()` on Passthrough."""
        action = self.match(call)
        if isinstance(action, Mock):
            return action.payload
        return await live()

    def __len__(self) -> int:
        """Number of user matchers."""
        return len(self._matchers)

    def __repr__(self) -> str:
        """String representation of the matcher."""
        mode = "strict" if self.strict else "permissive"
        return (
            f"<Matcher: trace={self.trace_id or '-'} records={len(self._records)} "
            f"default={self.default} {mode}>"
        )
