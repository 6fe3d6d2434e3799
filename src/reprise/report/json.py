"""
JSON output for Reprise.

Structured output for programmatic consumption (`reprise inspect --json`).

Design Principles:
    - Records keep their wire format (camelCase), exactly as stored
    - Consistent schema: same top-level structure for one or many traces
"""

import json
from collections.abc import Sequence
from datetime import UTC, datetime
from typing import Any

from reprise.schema import CassetteRecord, RecordType

REPORT_VERSION = "1.0"


def build_report_dict(records: Sequence[CassetteRecord]) -> dict[str, Any]:
    """
    Build a report dictionary for a set of records.

    Returns:
        {"report_version", "generated_at", "traces": [{trace_id, counts, records}]}
    """
    traces: dict[str, list[CassetteRecord]] = {}
    for record in records:
        traces.setdefault(record.trace_id, []).append(record)

    return {
        "report_version": REPORT_VERSION,
        "generated_at": datetime.now(UTC).isoformat(),
        "traces": [
            {
                "trace_id": trace_id,
                "counts": {
                    record_type.value: sum(1 for r in trace_records if r.type == record_type)
                    for record_type in RecordType
                },
                "records": [r.to_wire() for r in trace_records],
            }
            for trace_id, trace_records in traces.items()
        ],
    }


def generate_json_report(records: Sequence[CassetteRecord], indent: int = 2) -> str:
    """Serialize `build_report_dict(records)` as JSON."""
    return json.dumps(build_report_dict(records), indent=indent, ensure_ascii=False, default=str)
