"""
CLI entry point for Reprise.

This module provides the Typer-based command-line interface for Reprise.

Commands:
    inspect       Show the records of a cassette file
    diff          Re-send a recorded request to a running service and compare
    list-traces   List the traces stored in a cassette directory

Architecture Note:
    The CLI is thin: it parses arguments and delegates to the store, replay
    and report modules, which are usable without the CLI.
"""

import json
import traceback
from pathlib import Path
from typing import Annotated, Optional

import httpx
import typer
from rich.console import Console
from rich.markup import escape

from reprise import __version__
from reprise.config import load_settings
from reprise.errors import RepriseError
from reprise.log import configure_logging
from reprise.replay.compare import InboundResponse, diff_response, parse_body, recorded_status
from reprise.report import generate_json_report, print_diff, print_records
from reprise.schema import CassetteRecord, RecordType
from reprise.store.cassette import CassetteLayout, CassetteStore, load_ndjson

app = typer.Typer(
    name="reprise",
    help="Capture and replay service dependency traffic.",
    add_completion=False,
    no_args_is_help=True,
)

console = Console()

# Coordination headers understood by services running a Reprise middleware
HEADER_MODE = "x-reprise-mode"
HEADER_TRACE_ID = "x-reprise-trace-id"
HEADER_CASSETTE_PATH = "x-reprise-cassette-path"


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"[bold]reprise[/bold] version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Annotated[
        Optional[bool],
        typer.Option(
            "--version",
            "-v",
            help="Show version and exit.",
            callback=version_callback,
            is_eager=True,
        ),
    ] = None,
    config: Annotated[
        Optional[Path],
        typer.Option(
            "--config",
            "-c",
            help="Path to a config YAML file. Defaults to .reprise/config.yml.",
        ),
    ] = None,
) -> None:
    """
    Reprise - record and replay the dependency calls of a request.

    Inspect cassettes and check that a service still answers a recorded
    request the way it did when it was captured.
    """
    try:
        settings = load_settings(config)
    except RepriseError as e:
        console.print(f"[red]{escape(str(e))}[/red]")
        raise typer.Exit(code=1)
    configure_logging(json_output=settings.log_json, level=settings.log_level)


def _load_records(cassette: Path, trace_id: str | None) -> list[CassetteRecord]:
    try:
        return load_ndjson(cassette, trace_id)
    except RepriseError as e:
        console.print(f"[red]{escape(str(e))}[/red]")
        raise typer.Exit(code=1)


@app.command()
def inspect(
    cassette: Annotated[
        Path,
        typer.Argument(
            help="Path to the NDJSON cassette file.",
            exists=True,
            readable=True,
            resolve_path=True,
        ),
    ],
    trace: Annotated[
        Optional[str],
        typer.Option(
            "--trace",
            "-t",
            help="Only show records of this trace id.",
        ),
    ] = None,
    output_json: Annotated[
        bool,
        typer.Option(
            "--json",
            help="Output records as JSON.",
        ),
    ] = False,
    verbose: Annotated[
        bool,
        typer.Option(
            "--verbose",
            help="Show request and response payloads.",
        ),
    ] = False,
) -> None:
    """
    Show the records of a cassette file.

    Example:
        $ reprise inspect cassettes/4bf92f3577b34da6a3ce929d0e0e4736.ndjson
    """
    records = _load_records(cassette, trace)
    if output_json:
        print(generate_json_report(records))
        return
    print_records(records, console=console, verbose=verbose)


def build_client(timeout: float) -> httpx.Client:
    """HTTP client used by `diff`."""
    return httpx.Client(timeout=timeout)


def traceparent_for(record: CassetteRecord) -> str:
    """W3C traceparent header carrying the record's trace and span ids."""
    trace_id = (record.trace_id or "").lower().ljust(32, "0")[:32]
    span_id = (record.span_id or "").lower().ljust(16, "0")[:16]
    return f"00-{trace_id}-{span_id}-01"


def split_http_identifier(identifier: str) -> tuple[str, str]:
    """Split "METHOD url" into (method, url); a bare url means GET."""
    method, sep, url = identifier.partition(" ")
    if not sep:
        return "GET", identifier
    return method, url


def build_diff_request(
    inbound: CassetteRecord,
    target: str,
    cassette_path: Path,
) -> tuple[str, str, dict[str, str], str | None]:
    """
    Build the request that re-sends a recorded inbound call to `target`.

    Returns:
        (method, url, headers, body)
    """
    method, recorded_url = split_http_identifier(inbound.identifier)
    path = recorded_url
    if not recorded_url.startswith("/"):
        path = httpx.URL(recorded_url).raw_path.decode("ascii")
    url = f"{target.rstrip('/')}{path}"

    headers = {
        HEADER_MODE: "REPLAY",
        HEADER_TRACE_ID: inbound.trace_id,
        HEADER_CASSETTE_PATH: str(cassette_path),
        "traceparent": traceparent_for(inbound),
    }

    body: str | None = None
    request = inbound.request_payload
    if isinstance(request, dict) and request.get("body") is not None:
        raw = request["body"]
        body = raw if isinstance(raw, str) else json.dumps(raw)
        headers["content-type"] = "application/json"
    return method, url, headers, body


@app.command()
def diff(
    cassette: Annotated[
        Path,
        typer.Argument(
            help="Path to the NDJSON cassette file.",
            exists=True,
            readable=True,
            resolve_path=True,
        ),
    ],
    target: Annotated[
        str,
        typer.Argument(help="Base URL of the running service, e.g. http://localhost:3000."),
    ],
    trace: Annotated[
        Optional[str],
        typer.Option(
            "--trace",
            "-t",
            help="Trace id to replay (defaults to the first inbound record in the file).",
        ),
    ] = None,
    timeout: Annotated[
        float,
        typer.Option(
            "--timeout",
            help="Request timeout in seconds.",
        ),
    ] = 30.0,
    debug: Annotated[
        bool,
        typer.Option(
            "--debug",
            help="Enable debug mode with full error tracebacks.",
        ),
    ] = False,
) -> None:
    """
    Re-send a recorded inbound request to a running service and compare.

    The request carries replay coordination headers so the service replays
    its dependencies from the same cassette. Exits with code 1 when the live
    response differs from the recording.

    Example:
        $ reprise diff cassettes/4bf92f35.ndjson http://localhost:3000
    """
    records = _load_records(cassette, trace)
    inbound = next((r for r in records if r.type == RecordType.INBOUND), None)
    if inbound is None:
        console.print(f"[red]Cassette has no inbound record: {cassette}[/red]")
        raise typer.Exit(code=1)

    method, url, headers, body = build_diff_request(inbound, target, cassette)
    console.print(f"[dim]{method} {url} (trace {inbound.trace_id})[/dim]")

    try:
        with build_client(timeout) as client:
            response = client.request(method, url, headers=headers, content=body)
    except httpx.HTTPError as e:
        console.print(f"[red]Request failed: {escape(str(e))}[/red]")
        if debug:
            console.print(f"[dim]{escape(traceback.format_exc())}[/dim]")
        raise typer.Exit(code=1)

    actual = InboundResponse(
        status=response.status_code,
        body=parse_body(response.text),
        headers=dict(response.headers),
    )
    _, diffs = diff_response(inbound, actual)
    matched = print_diff(recorded_status(inbound), actual.status, diffs, console=console)
    if not matched:
        raise typer.Exit(code=1)


@app.command("list-traces")
def list_traces(
    directory: Annotated[
        Path,
        typer.Argument(
            help="Cassette directory.",
            file_okay=False,
            resolve_path=True,
        ),
    ] = Path("cassettes"),
    layout: Annotated[
        CassetteLayout,
        typer.Option(
            "--layout",
            help="per_trace (one file per trace) or shared (one file).",
        ),
    ] = CassetteLayout.PER_TRACE,
    shared_filename: Annotated[
        str,
        typer.Option(
            "--shared-filename",
            help="File name used by the shared layout.",
        ),
    ] = "cassettes.ndjson",
) -> None:
    """
    List the traces stored in a cassette directory.

    Example:
        $ reprise list-traces ./cassettes
    """
    store = CassetteStore(directory, layout=layout, shared_filename=shared_filename)
    try:
        traces = store.list_traces()
    except RepriseError as e:
        console.print(f"[red]{escape(str(e))}[/red]")
        raise typer.Exit(code=1)

    if not traces:
        console.print("[dim]No traces found.[/dim]")
        raise typer.Exit(code=0)

    for trace_id in traces:
        console.print(trace_id or "(empty)")


if __name__ == "__main__":
    app()
