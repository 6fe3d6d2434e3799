"""
Matcher actions.

A matcher function inspects a live call and the trace's recorded records and
returns exactly one of:

    Mock(payload)   stop; hand `payload` to the caller as the dependency's response
    Continue()      defer to the next matcher in the chain
    Passthrough()   send this call to the live dependency (rejected in strict mode)
"""

from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, TypeAlias

if TYPE_CHECKING:
    from reprise.schema import CassetteRecord, LiveCall


@dataclass(frozen=True)
class Mock:
    """
    Serve a recorded response.

    Attributes:
        payload: Value returned to the caller in place of the live response
        record: The recording the payload came from, when there is one
    """

    payload: Any = None
    record: "CassetteRecord | None" = None

    @property
    def action(self) -> str:
        return "MOCK"


@dataclass(frozen=True)
class Continue:
    """Defer to the next matcher."""

    @property
    def action(self) -> str:
        return "CONTINUE"


@dataclass(frozen=True)
class Passthrough:
    """Let the call reach the live dependency."""

    @property
    def action(self) -> str:
        return "PASSTHROUGH"


CONTINUE = Continue()
PASSTHROUGH = Passthrough()

MatcherAction: TypeAlias = Mock | Continue | Passthrough
MatcherFn: TypeAlias = Callable[["LiveCall", Sequence["CassetteRecord"]], MatcherAction]
