"""
Reporting module for Reprise.

Renders cassettes and replay diffs.

Output formats:
    - Console: Rich tables of records, lineage shown by indentation, and
      PASS/FAIL diffs that list only the changed paths
    - JSON: Records in wire format, grouped by trace

Example:
    from reprise.report import generate_json_report, print_records

    print_records(store.load_trace(trace_id))
    print(generate_json_report(records))
"""

from reprise.report.console import format_value, print_diff, print_records
from reprise.report.json import build_report_dict, generate_json_report

__all__ = [
    "build_report_dict",
    "format_value",
    "generate_json_report",
    "print_diff",
    "print_records",
]
