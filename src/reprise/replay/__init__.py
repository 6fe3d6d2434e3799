"""
Replay module for Reprise.

Serves recorded dependency responses back to the code under test, so a
captured request can be re-run offline and deterministically.

How it works:
    1. Load the trace's records from the cassette store
    2. For each intercepted call, extract its {protocol, identifier} key
    3. Hand out recorded responses in call order, per key and lineage
    4. In strict mode, fail any call that has no recording
    5. Optionally compare the service's response with the recorded one

Example:
    from reprise.replay import ReplaySession

    with ReplaySession(store, trace_id, strict=True) as replay:
        rows = replay.replay(LiveCall.postgres(sql), live=lambda: db.fetch(sql))
"""

from reprise.replay.compare import (
    BodyDiff,
    InboundResponse,
    collect_diffs,
    compare_inbound,
    diff_response,
    parse_body,
    recorded_status,
)
from reprise.replay.session import (
    ReplaySession,
    areplay_call,
    current_replay,
    match_call,
    replay_call,
)

__all__ = [
    "BodyDiff",
    "InboundResponse",
    "ReplaySession",
    "areplay_call",
    "collect_diffs",
    "compare_inbound",
    "current_replay",
    "diff_response",
    "match_call",
    "parse_body",
    "recorded_status",
    "replay_call",
]
