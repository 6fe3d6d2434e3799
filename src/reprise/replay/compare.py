"""
Inbound response comparison for Reprise.

After a replayed request finishes, the service's live response is compared
with the recorded inbound record. Status and body always count; headers count
only under strict comparison.

Recorded inbound payloads come in two shapes, depending on the capturing
adapter:
    {"status": 200, "body": ...}       framework middleware
    {"statusCode": 200, "body": ...}   raw HTTP servers
and a few older recordings carry the status on the record itself.
"""

import json
from dataclasses import dataclass, field
from typing import Any

from reprise.errors import InboundMismatchError
from reprise.schema import CassetteRecord


@dataclass(frozen=True)
class InboundResponse:
    """
    A live response to compare against the recording.

    Attributes:
        status: HTTP status code
        body: Parsed body (dict/list) or raw text
        headers: Response headers (names compared case-insensitively)
    """

    status: int
    body: Any = None
    headers: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class BodyDiff:
    """One leaf difference between a recorded and a live JSON value."""

    path: str
    recorded: Any
    live: Any


def _payload(record: CassetteRecord) -> dict[str, Any]:
    payload = record.response_payload
    return payload if isinstance(payload, dict) else {}


def recorded_status(record: CassetteRecord) -> int | None:
    """Status of a recorded response: payload status, payload statusCode, then record statusCode."""
    payload = _payload(record)
    for key in ("status", "statusCode"):
        value = payload.get(key)
        if value is not None:
            return value
    return record.status_code


def recorded_body(record: CassetteRecord) -> Any:
    """Body of a recorded response, parsed when it is JSON text."""
    return parse_body(_payload(record).get("body"))


def recorded_headers(record: CassetteRecord) -> dict[str, str] | None:
    """Headers of a recorded response, if they were captured."""
    headers = _payload(record).get("headers")
    return headers if isinstance(headers, dict) else None


def parse_body(body: Any) -> Any:
    """Parse text that looks like a JSON object or array; return anything else unchanged."""
    if isinstance(body, (bytes, bytearray)):
        try:
            body = bytes(body).decode("utf-8")
        except UnicodeDecodeError:
            return body
    if isinstance(body, str):
        stripped = body.strip()
        if stripped.startswith(("{", "[")):
            try:
                return json.loads(stripped)
            except ValueError:
                return body
    return body


def normalize_headers(headers: dict[str, str]) -> dict[str, str]:
    """Lowercase header names."""
    return {name.lower(): value for name, value in headers.items()}


def compare_inbound(
    actual: InboundResponse,
    recorded: CassetteRecord | None,
    strict_comparison: bool = False,
) -> None:
    """
    Check a live response against the recorded inbound record.

    Args:
        actual: The live response
        recorded: The trace's inbound record
        strict_comparison: Also compare headers (when headers were recorded)

    Raises:
        InboundMismatchError: If there is no recording, or status, body or
            (strict) headers differ
    """
    if recorded is None:
        raise InboundMismatchError(
            message="No recorded inbound response for this trace",
            field_name="inbound",
        )

    trace_id = recorded.trace_id
    expected_status = recorded_status(recorded)
    if expected_status is not None and actual.status != expected_status:
        raise InboundMismatchError(
            trace_id=trace_id,
            field_name="status",
            expected=expected_status,
            actual=actual.status,
        )

    expected_body = recorded_body(recorded)
    live_body = parse_body(actual.body)
    if live_body != expected_body:
        raise InboundMismatchError(
            trace_id=trace_id,
            field_name="body",
            expected=expected_body,
            actual=live_body,
        )

    if strict_comparison:
        expected_headers = recorded_headers(recorded)
        if expected_headers:
            expected = normalize_headers(expected_headers)
            live = normalize_headers(actual.headers)
            if live != expected:
                raise InboundMismatchError(
                    trace_id=trace_id,
                    field_name="headers",
                    expected=expected,
                    actual=live,
                )


def collect_diffs(recorded: Any, live: Any, path: str = "") -> list[BodyDiff]:
    """
    Leaf paths where two JSON values differ.

    Objects are walked key by key (sorted); arrays and scalars are compared
    whole. A difference at the top level is reported at "(root)".

    Example:
        collect_diffs({"a": {"b": 1}}, {"a": {"b": 2}})
        # [BodyDiff(path="a.b", recorded=1, live=2)]
    """
    if recorded == live:
        return []
    if not isinstance(recorded, dict) or not isinstance(live, dict):
        return [BodyDiff(path or "(root)", recorded, live)]

    diffs: list[BodyDiff] = []
    for key in sorted(set(recorded) | set(live), key=str):
        sub_path = f"{path}.{key}" if path else str(key)
        rv = recorded.get(key)
        lv = live.get(key)
        if isinstance(rv, dict) and isinstance(lv, dict):
            diffs.extend(collect_diffs(rv, lv, sub_path))
        elif rv != lv or (key in recorded) != (key in live):
            diffs.append(BodyDiff(sub_path, rv, lv))
    return diffs


def diff_response(recorded: CassetteRecord, actual: InboundResponse) -> tuple[bool, list[BodyDiff]]:
    """
    Compare status and body without raising.

    Returns:
        (status_matches, body_diffs); the response matches when the status
        matches and there are no body diffs
    """
    expected_status = recorded_status(recorded)
    status_matches = expected_status is None or expected_status == actual.status
    return status_matches, collect_diffs(recorded_body(recorded), parse_body(actual.body))
