"""
Matching module for Reprise.

Turns a live call into a decision: serve a recording (Mock), defer to the
next matcher (Continue), or reach the live dependency (Passthrough).

How it works:
    1. A key extractor maps the call to {protocol, identifier}
    2. Outbound records with the same key become candidates
    3. Topology matching narrows candidates to the call's lineage
    4. Sequential resolution hands out the i-th candidate to the i-th call
    5. The matcher chain applies the strict/permissive policy

Example:
    from reprise.matching import LiveCall, Matcher

    matcher = Matcher(records, strict=True)
    action = matcher.match(LiveCall.http("GET", "https://api.example.com/users"))
    action.payload
"""

from reprise.matching.actions import (
    CONTINUE,
    PASSTHROUGH,
    Continue,
    MatcherAction,
    MatcherFn,
    Mock,
    Passthrough,
)
from reprise.matching.keys import (
    ExtractorRegistry,
    GrpcKeyExtractor,
    HttpKeyExtractor,
    KeyExtractor,
    PostgresKeyExtractor,
    RedisKeyExtractor,
    create_default_registry,
    default_registry,
    extract_key,
)
from reprise.matching.matcher import Matcher
from reprise.matching.resolution import (
    CallSequence,
    create_flat_matcher,
    create_topology_matcher,
    filter_outbound_candidates,
    resolve_sequential,
    select_lineage_pool,
)
from reprise.schema import LiveCall, MatchKey

__all__ = [
    "CONTINUE",
    "PASSTHROUGH",
    "CallSequence",
    "Continue",
    "ExtractorRegistry",
    "GrpcKeyExtractor",
    "HttpKeyExtractor",
    "KeyExtractor",
    "LiveCall",
    "MatchKey",
    "Matcher",
    "MatcherAction",
    "MatcherFn",
    "Mock",
    "Passthrough",
    "PostgresKeyExtractor",
    "RedisKeyExtractor",
    "create_default_registry",
    "create_flat_matcher",
    "create_topology_matcher",
    "default_registry",
    "extract_key",
    "filter_outbound_candidates",
    "resolve_sequential",
    "select_lineage_pool",
]
