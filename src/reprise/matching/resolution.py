"""
Candidate resolution for Reprise.

Given a live call's key and the trace's records, resolution picks the single
recording the call should consume.

Strategies:
    - Flat: outbound records with the same protocol and identifier, in
      storage order
    - Sequential (N+1): the i-th live occurrence of a key consumes the i-th
      candidate; occurrences past the last candidate get nothing (no
      wrap-around, a reused recording would silently return wrong data)
    - Topology: candidates are first narrowed to those whose recorded parent
      span has the same name as the live parent ("root" when there is no
      parent). Sequencing then runs inside that pool, keyed by
      (protocol, identifier, parent). An empty pool falls back to flat.
      Lineage and fallback picks share one set of consumed records, so a
      recording served to one is skipped by the other

Every factory call returns a matcher function with a fresh counter map, so a
matcher built for one replay run never leaks sequence state into another.
"""

from collections.abc import Sequence

import structlog

from reprise.context import ROOT_SPAN_NAME
from reprise.matching.actions import CONTINUE, MatcherAction, MatcherFn, Mock
from reprise.matching.keys import ExtractorRegistry, extract_key
from reprise.schema import CassetteRecord, LiveCall, MatchKey, RecordType

logger = structlog.get_logger(__name__)


def filter_outbound_candidates(
    records: Sequence[CassetteRecord],
    key: MatchKey,
) -> list[CassetteRecord]:
    """Outbound records whose protocol and identifier equal the key, in storage order."""
    return [
        r
        for r in records
        if r.type == RecordType.OUTBOUND
        and r.protocol == key.protocol
        and r.identifier == key.identifier
    ]


class CallSequence:
    """
    Per-key call counters for one replay run.

    `next_index(key)` returns how many times the key was consumed before and
    advances the counter. Counters only ever increase.
    """

    def __init__(self) -> None:
        """Initialize with no keys seen."""
        self._next: dict[tuple[str, ...], int] = {}

    def next_index(self, seq_key: tuple[str, ...]) -> int:
        """Return the current index for `seq_key` and advance it."""
        index = self._next.get(seq_key, 0)
        self._next[seq_key] = index + 1
        return index

    def peek(self, seq_key: tuple[str, ...]) -> int:
        """Return the current index for `seq_key` without advancing it."""
        return self._next.get(seq_key, 0)

    def reset(self) -> None:
        """Forget all counters."""
        self._next.clear()

    def __len__(self) -> int:
        """Number of distinct keys seen."""
        return len(self._next)


def resolve_sequential(
    candidates: Sequence[CassetteRecord],
    sequence: CallSequence,
    seq_key: tuple[str, ...],
    consumed: set[int] | None = None,
) -> CassetteRecord | None:
    """
    Consume the next candidate for `seq_key`.

    Args:
        candidates: Candidates in storage order
        sequence: Counters of the current replay run
        seq_key: Counter to advance
        consumed: Ids of records already served under another counter; these
            are skipped and the pick is added

    Returns:
        The candidate, or None once every candidate has been consumed
    """
    index = sequence.next_index(seq_key)
    if consumed is not None:
        while index < len(candidates) and id(candidates[index]) in consumed:
            index = sequence.next_index(seq_key)
    if index >= len(candidates):
        return None
    picked = candidates[index]
    if consumed is not None:
        consumed.add(id(picked))
    return picked


def build_span_index(records: Sequence[CassetteRecord]) -> dict[str, CassetteRecord]:
    """Map spanId to record for parent lookups."""
    return {r.span_id: r for r in records}


def recorded_parent_name(record: CassetteRecord, index: dict[str, CassetteRecord]) -> str:
    """Name of the record's parent span; "root" when absent or unresolved."""
    if not record.parent_span_id:
        return ROOT_SPAN_NAME
    parent = index.get(record.parent_span_id)
    if parent is None or parent.span_name is None:
        return ROOT_SPAN_NAME
    return parent.span_name


def select_lineage_pool(
    candidates: Sequence[CassetteRecord],
    index: dict[str, CassetteRecord],
    live_parent_name: str | None,
) -> tuple[list[CassetteRecord], bool]:
    """
    Narrow candidates to those recorded under the same parent name.

    Args:
        candidates: Flat candidates for the key
        index: spanId index of the whole trace
        live_parent_name: Name of the live calling span (None means root)

    Returns:
        (pool, lineage_matched). When no candidate shares the live lineage the
        pool is every candidate and lineage_matched is False.
    """
    wanted = live_parent_name if live_parent_name is not None else ROOT_SPAN_NAME
    lineage = [c for c in candidates if recorded_parent_name(c, index) == wanted]
    if lineage:
        return lineage, True
    return list(candidates), False


def _mock(record: CassetteRecord) -> Mock:
    return Mock(payload=record.response_payload, record=record)


def create_flat_matcher(registry: ExtractorRegistry | None = None) -> MatcherFn:
    """
    Matcher function using flat filtering and sequential resolution.

    Returns Mock for the next unconsumed candidate, Continue otherwise.
    """
    sequence = CallSequence()

    def flat_matcher(call: LiveCall, records: Sequence[CassetteRecord]) -> MatcherAction:
        key = extract_key(call, registry)
        if key is None:
            return CONTINUE
        candidates = filter_outbound_candidates(records, key)
        if not candidates:
            return CONTINUE
        picked = resolve_sequential(candidates, sequence, key.sequence_key())
        if picked is None:
            logger.debug(
                "Recorded candidates exhausted",
                protocol=key.protocol,
                identifier=key.identifier,
                candidates=len(candidates),
            )
            return CONTINUE
        return _mock(picked)

    return flat_matcher


def create_topology_matcher(registry: ExtractorRegistry | None = None) -> MatcherFn:
    """
    Matcher function using lineage refinement, then sequential resolution.

    The spanId index is rebuilt only when a different record list is passed.
    """
    sequence = CallSequence()
    indexed_records: Sequence[CassetteRecord] | None = None
    index: dict[str, CassetteRecord] = {}
    consumed: set[int] = set()

    def topology_matcher(call: LiveCall, records: Sequence[CassetteRecord]) -> MatcherAction:
        nonlocal indexed_records, index
        key = extract_key(call, registry)
        if key is None:
            return CONTINUE
        candidates = filter_outbound_candidates(records, key)
        if not candidates:
            return CONTINUE

        if records is not indexed_records:
            indexed_records = records
            index = build_span_index(records)
            consumed.clear()

        pool, lineage_matched = select_lineage_pool(candidates, index, call.parent_name)
        if lineage_matched:
            seq_key = key.sequence_key(call.lineage_name)
        else:
            seq_key = key.sequence_key()

        picked = resolve_sequential(pool, sequence, seq_key, consumed)
        if picked is None:
            logger.debug(
                "Recorded candidates exhausted",
                protocol=key.protocol,
                identifier=key.identifier,
                parent=call.lineage_name,
                lineage_matched=lineage_matched,
                candidates=len(pool),
            )
            return CONTINUE
        return _mock(picked)

    return topology_matcher
