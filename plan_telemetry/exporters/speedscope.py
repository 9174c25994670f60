"""
speedscope.py

Reads plan spans from the SQLite telemetry DB and either:

1) Lists all available traces with span count and first-captured timestamp.
2) Exports a single trace to FlameGraph-style folded stacks for Speedscope:

    root;child;subchild <duration_us>

Load the result into Speedscope via "Import" -> "Text (FlameGraph)".
"""

import sqlite3
from datetime import datetime, timezone

from ..telemetry import read_spans


def list_traces(db_path: str, limit: int = None) -> list:
    """Return (trace_id, span_count, first_start) tuples, newest first."""
    conn = sqlite3.connect(db_path)
    try:
        query = """
        SELECT
          trace_id,
          COUNT(*)           AS span_count,
          MIN(start_time)    AS first_start_us
        FROM otel_spans
        GROUP BY trace_id
        ORDER BY first_start_us DESC
        """
        params = ()
        if limit is not None:
            query += " LIMIT ?"
            params = (limit,)
        rows = conn.execute(query, params).fetchall()
    finally:
        conn.close()
    # microseconds since epoch -> datetime
    return [
        (trace_id, count, datetime.fromtimestamp(first_us / 1_000_000, tz=timezone.utc))
        for trace_id, count, first_us in rows
    ]


def load_spans(db_path: str, trace_id: str) -> dict:
    """
    Load spans for a given trace_id keyed by span id, deduping display
    names that occur more than once with a " [n]" suffix.
    """
    rows = read_spans(db_path, trace_id)

    raw_counts: dict[str, int] = {}
    for row in rows:
        raw_counts[row["name"]] = raw_counts.get(row["name"], 0) + 1

    seen_counts: dict[str, int] = {}
    spans: dict[str, dict] = {}
    for row in rows:
        raw_name = row["name"]
        idx = seen_counts.get(raw_name, 0) + 1
        seen_counts[raw_name] = idx
        display_name = f"{raw_name} [{idx}]" if raw_counts[raw_name] > 1 else raw_name
        spans[row["span_id"]] = {
            "parent": row["parent_span_id"],
            "name": display_name,
            "start": row["start_time"],
            "end": row["end_time"],
            "attributes": row["attributes"],
        }
    return spans


def build_path(span_id: str, spans: dict) -> list:
    path = []
    current = spans.get(span_id)
    while current:
        # ';' separates frames in the folded format
        path.append(current["name"].replace(";", ","))
        current = spans.get(current["parent"])
    return list(reversed(path))


def folded_lines(spans: dict, min_us: int = 1) -> list:
    """
    For each span, one line:
      root;child;...;thisspan <duration_us>
    """
    lines = []
    for sid, info in spans.items():
        dur = info["end"] - info["start"]
        if dur < min_us:
            continue
        lines.append(f"{';'.join(build_path(sid, spans))} {dur}")
    return lines
