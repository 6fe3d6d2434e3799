"""
Console rendering for Reprise.

Renders cassettes and replay diffs for the terminal with Rich.

Design Principles:
    - Human-readable first: one row per record, lineage shown by indentation
    - Status at a glance: colored type and status columns
    - Only differences: diffs list the leaf paths that changed, nothing else
"""

import json
from collections.abc import Sequence
from typing import Any

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from reprise.replay.compare import BodyDiff, recorded_status
from reprise.schema import CassetteRecord, RecordType

ICON_PASS = "[green]✓[/green]"
ICON_FAIL = "[red]✗[/red]"

_TYPE_STYLES = {
    RecordType.INBOUND: "bold magenta",
    RecordType.OUTBOUND: "cyan",
    RecordType.METADATA: "dim",
}


def _truncate(s: str, max_len: int) -> str:
    """Truncate string with ellipsis."""
    if len(s) <= max_len:
        return s
    return s[: max_len - 3] + "..."


def format_value(value: Any) -> str:
    """Compact JSON rendering of a payload value."""
    if isinstance(value, str):
        return json.dumps(value, ensure_ascii=False)
    try:
        return json.dumps(value, ensure_ascii=False, sort_keys=True, default=str)
    except (TypeError, ValueError):
        return repr(value)


def _depths(records: Sequence[CassetteRecord]) -> dict[str, int]:
    """Nesting depth of each record along parentSpanId links."""
    by_span = {r.span_id: r for r in records}
    depths: dict[str, int] = {}
    for record in records:
        depth = 0
        seen = {record.span_id}
        parent_id = record.parent_span_id
        while parent_id and parent_id in by_span and parent_id not in seen:
            seen.add(parent_id)
            depth += 1
            parent_id = by_span[parent_id].parent_span_id
        depths[record.span_id] = depth
    return depths


def print_records(
    records: Sequence[CassetteRecord],
    console: Console | None = None,
    verbose: bool = False,
) -> None:
    """
    Print a table of records, grouped by trace.

    Args:
        records: Records in storage order
        console: Rich Console instance (creates one if not provided)
        verbose: Also show request and response payloads
    """
    if console is None:
        console = Console()

    if not records:
        console.print("[dim]No records found.[/dim]")
        return

    traces: dict[str, list[CassetteRecord]] = {}
    for record in records:
        traces.setdefault(record.trace_id, []).append(record)

    for trace_id, trace_records in traces.items():
        _print_header(console, trace_id, trace_records)
        _print_table(console, trace_records, verbose)
        console.print()


def _print_header(console: Console, trace_id: str, records: Sequence[CassetteRecord]) -> None:
    header = Text()
    header.append(" Trace ", style="bold")
    header.append(trace_id or "(empty)", style="bold cyan")
    header.append(" │ ", style="dim")
    outbound = sum(1 for r in records if r.type == RecordType.OUTBOUND)
    header.append(f"{outbound} outbound", style="bold")
    inbound = next((r for r in records if r.type == RecordType.INBOUND), None)
    if inbound is not None:
        header.append(" │ ", style="dim")
        header.append(inbound.identifier, style="magenta")
    console.print(Panel(header, expand=False))


def _print_table(console: Console, records: Sequence[CassetteRecord], verbose: bool) -> None:
    table = Table(show_header=True, header_style="bold", show_lines=verbose, expand=True)
    table.add_column("#", style="dim", width=3, justify="right")
    table.add_column("Type", width=9)
    table.add_column("Protocol", width=9)
    table.add_column("Identifier", overflow="fold")
    table.add_column("Status", width=6, justify="right")

    depths = _depths(records)
    for index, record in enumerate(records, start=1):
        indent = "  " * depths.get(record.span_id, 0)
        identifier = f"{indent}{escape(record.identifier)}"
        if verbose:
            if record.request_payload is not None:
                identifier += f"\n{indent}[dim]request:[/dim] {escape(_truncate(format_value(record.request_payload), 100))}"
            if record.response_payload is not None:
                identifier += f"\n{indent}[dim]response:[/dim] {escape(_truncate(format_value(record.response_payload), 100))}"
        if record.error:
            identifier += f"\n{indent}[red]{escape(_truncate(record.error, 80))}[/red]"

        status = recorded_status(record)
        style = _TYPE_STYLES.get(record.type, "")
        table.add_row(
            str(index),
            f"[{style}]{record.type.value}[/{style}]",
            record.protocol,
            identifier,
            _format_status(status),
        )

    console.print(table)


def _format_status(status: int | None) -> str:
    if status is None:
        return "-"
    if status >= 500:
        return f"[red]{status}[/red]"
    if status >= 400:
        return f"[yellow]{status}[/yellow]"
    return f"[green]{status}[/green]"


def print_diff(
    expected_status: int | None,
    actual_status: int,
    diffs: Sequence[BodyDiff],
    console: Console | None = None,
) -> bool:
    """
    Print the outcome of a replay diff.

    Returns:
        True when the live response matched the recording
    """
    if console is None:
        console = Console()

    status_matches = expected_status is None or expected_status == actual_status
    if status_matches and not diffs:
        console.print(f"{ICON_PASS} [bold green]PASS[/bold green] response matches recording")
        return True

    console.print(f"{ICON_FAIL} [bold red]FAIL[/bold red] response differs from recording")
    console.print()

    if not status_matches:
        console.print("[dim]status:[/dim]")
        console.print(f"  [green]recorded: {expected_status}[/green]")
        console.print(f"  [red]live:     {actual_status}[/red]")
        console.print()

    if diffs:
        console.print("[dim]body (only differences):[/dim]")
        for diff in diffs:
            console.print(f"  [dim]{escape(diff.path)}:[/dim]")
            console.print(f"    [green]recorded: {escape(format_value(diff.recorded))}[/green]")
            console.print(f"    [red]live:     {escape(format_value(diff.live))}[/red]")

    return False
