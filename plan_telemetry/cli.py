#!/usr/bin/env python3
"""
cli.py

Command-line interface for turning saved Spanner query profiles into
traces and browsing the stored traces as trees or flame graphs.
"""
import json
import logging
import os

import click
from opentelemetry import trace
from pydantic import ValidationError
from rich import print
from rich.console import Console
from rich.logging import RichHandler

from plan_telemetry import telemetry
from plan_telemetry.decorators import default_pipeline
from plan_telemetry.exporters import speedscope
from plan_telemetry.exporters import view_flame
from plan_telemetry.plan import ResultSetStats
from plan_telemetry.plantotrace import emit, plan_window

db_option = click.option(
    "--db",
    "db_path",
    envvar="PLAN_TELEMETRY_DB",
    default=None,
    help="Path to telemetry.db (default: under XDG_DATA_HOME).",
)
service_option = click.option(
    "--service",
    default=telemetry.APP_NAME,
    show_default=True,
    help="Service name, used for the default DB location.",
)


def _resolve_db(db_path, service):
    return os.path.expanduser(db_path) if db_path else telemetry.default_db_path(service)


def _require_db(db_file):
    if not os.path.isfile(db_file):
        click.echo(f"No telemetry database at {db_file}.", err=True)
        raise SystemExit(1)


@click.group()
@click.option("-v", "--verbose", is_flag=True, help="Log per-node execution stats.")
def main(verbose):
    """
    Visualize Spanner query plans as OpenTelemetry traces.
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
    )


@main.command()
@click.argument("profile", type=click.File("r"))
@db_option
@service_option
def render(profile, db_path, service):
    """
    Trace a saved query profile (JSON from `execute-sql --query-mode=PROFILE`)
    and print the resulting span tree.
    """
    try:
        stats = ResultSetStats.from_response(json.load(profile))
    except (ValueError, ValidationError) as exc:
        raise click.ClickException(f"cannot read profile {profile.name}: {exc}")
    if stats.query_plan is None:
        click.echo("The profile has no query plan.", err=True)
        raise SystemExit(1)

    db_file = telemetry.init_telemetry(service, db_path=_resolve_db(db_path, service))
    window = plan_window(stats.query_plan)
    context = telemetry.start_session("render", service_name=service, start_time=window.start)
    root_span = telemetry.current_root_span()
    trace_id = trace.format_trace_id(root_span.get_span_context().trace_id)
    try:
        default_pipeline().apply_stats(root_span, stats)
        emit(stats, context=context, tracer=telemetry.get_tracer())
    finally:
        telemetry.end_session(end_time=window.end)

    spans = speedscope.load_spans(db_file, trace_id)
    click.echo(f"Stored trace {trace_id} ({len(spans)} spans) in {db_file}")
    print(view_flame.render_trace(spans, label=stats.query_stat_string("query_text") or trace_id))


@main.command()
@db_option
@service_option
@click.option("--limit", default=10, show_default=True, help="Number of traces to list.")
def traces(db_path, service, limit):
    """List the latest stored traces."""
    db_file = _resolve_db(db_path, service)
    _require_db(db_file)
    rows = speedscope.list_traces(db_file, limit=limit)
    if not rows:
        click.echo("No traces found in the selected database.", err=True)
        raise SystemExit(1)
    click.echo("TRACE_ID\tSPANS\tFIRST_TIMESTAMP")
    for trace_id, count, started in rows:
        click.echo(f"{trace_id}\t{count}\t{started.isoformat()}")


@main.command()
@db_option
@service_option
@click.option("--trace", "-t", "trace_id", default=None, help="Trace ID to show (prompted when omitted).")
def view(db_path, service, trace_id):
    """Show a stored trace as a tree in the terminal."""
    db_file = _resolve_db(db_path, service)
    _require_db(db_file)
    if trace_id is None:
        rows = speedscope.list_traces(db_file, limit=10)
        if not rows:
            click.echo("No traces found in the selected database.", err=True)
            raise SystemExit(1)
        click.echo("Available traces:")
        for idx, (tid, count, started) in enumerate(rows, start=1):
            click.echo(f"  [{idx}] {tid} ({count} spans, started at {started.isoformat()})")
        choice = click.prompt("Select trace", type=click.IntRange(1, len(rows)))
        trace_id = rows[choice - 1][0]

    spans = speedscope.load_spans(db_file, trace_id)
    if not spans:
        click.echo(f"No spans found for trace {trace_id!r}", err=True)
        raise SystemExit(1)
    print(view_flame.render_trace(spans, label=trace_id))


@main.command(name="export")
@db_option
@service_option
@click.option("--trace", "-t", "trace_id", required=True, help="Trace ID to export.")
@click.option("--min-us", default=1, show_default=True, help="Omit spans shorter than this (in μs).")
def export_folded(db_path, service, trace_id, min_us):
    """Print a trace as folded stacks for Speedscope."""
    db_file = _resolve_db(db_path, service)
    _require_db(db_file)
    spans = speedscope.load_spans(db_file, trace_id)
    if not spans:
        click.echo(f"No spans found for trace {trace_id!r}", err=True)
        raise SystemExit(1)
    for line in speedscope.folded_lines(spans, min_us=min_us):
        click.echo(line)


if __name__ == "__main__":
    main()
