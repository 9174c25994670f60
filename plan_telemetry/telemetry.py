"""
Telemetry session for plan traces.

Features:
- Session management (`start_session`, `end_session`) around a root span
- OpenTelemetry TracerProvider wired to a SQLiteSpanExporter
- SQLite DB location following XDG_DATA_HOME, overridable with PLAN_TELEMETRY_DB
- `read_spans` to load a stored trace back
"""

import json
import logging
import os
import sqlite3
import threading

from opentelemetry import trace
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import SimpleSpanProcessor, SpanExporter, SpanExportResult

logger = logging.getLogger(__name__)

APP_NAME = "plan-telemetry"
ROOT_SPAN_NAME = "plan_trace"

# globals
_LOCK = threading.Lock()
_provider = None
_db_file = None
_root_span = None
_root_context = None


def default_db_path(service_name: str) -> str:
    """$PLAN_TELEMETRY_DB, else $XDG_DATA_HOME/plan-telemetry/<service_name>/telemetry.db."""
    override = os.environ.get("PLAN_TELEMETRY_DB")
    if override:
        return os.path.expanduser(override)
    xdg = os.environ.get("XDG_DATA_HOME", os.path.expanduser("~/.local/share"))
    return os.path.join(xdg, APP_NAME, service_name, "telemetry.db")


def _init_db_file(db_file: str) -> sqlite3.Connection:
    """Open the SQLite DB at the given path and create the span table."""
    directory = os.path.dirname(db_file)
    if directory:
        os.makedirs(directory, exist_ok=True)
    conn = sqlite3.connect(db_file, check_same_thread=False)
    conn.execute("PRAGMA journal_mode=WAL;")
    conn.execute("""
CREATE TABLE IF NOT EXISTS otel_spans (
  id INTEGER PRIMARY KEY AUTOINCREMENT,
  trace_id TEXT NOT NULL,
  span_id TEXT NOT NULL,
  parent_span_id TEXT,
  name TEXT NOT NULL,
  start_time INTEGER NOT NULL,
  end_time INTEGER NOT NULL,
  attributes TEXT NOT NULL,
  status_code INTEGER NOT NULL,
  events TEXT NOT NULL
);
""")
    conn.commit()
    return conn


def _json_attributes(attributes) -> str:
    # OpenTelemetry attribute sequences are tuples
    return json.dumps({k: list(v) if isinstance(v, tuple) else v for k, v in (attributes or {}).items()})


class SQLiteSpanExporter(SpanExporter):
    """Write finished spans into the otel_spans table; times in microseconds."""

    def __init__(self, db_file: str):
        self.db_file = db_file
        self._lock = threading.Lock()
        self._conn = _init_db_file(db_file)

    def export(self, spans) -> SpanExportResult:
        rows = []
        for span in spans:
            parent = span.parent
            events = [
                {"name": event.name, "timestamp": event.timestamp // 1_000, "attributes": dict(event.attributes or {})}
                for event in span.events
            ]
            rows.append(
                (
                    trace.format_trace_id(span.context.trace_id),
                    trace.format_span_id(span.context.span_id),
                    trace.format_span_id(parent.span_id) if parent is not None else None,
                    span.name,
                    span.start_time // 1_000,
                    span.end_time // 1_000,
                    _json_attributes(span.attributes),
                    span.status.status_code.value,
                    json.dumps(events),
                )
            )
        with self._lock:
            if self._conn is None:
                return SpanExportResult.FAILURE
            try:
                self._conn.executemany(
                    """
INSERT INTO otel_spans
  (trace_id, span_id, parent_span_id, name,
   start_time, end_time, attributes, status_code, events)
VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
""",
                    rows,
                )
                self._conn.commit()
            except sqlite3.Error:
                logger.exception("failed to store %d spans in %s", len(rows), self.db_file)
                return SpanExportResult.FAILURE
        return SpanExportResult.SUCCESS

    def shutdown(self) -> None:
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None


def read_spans(db_path: str, trace_id: str) -> list:
    """Load the raw rows of one trace, oldest first, with attributes decoded."""
    conn = sqlite3.connect(db_path)
    try:
        cur = conn.execute(
            """
SELECT span_id, parent_span_id, name, start_time, end_time, attributes, status_code, events
  FROM otel_spans
 WHERE trace_id = ?
ORDER BY start_time, id
""",
            (trace_id,),
        )
        rows = cur.fetchall()
    finally:
        conn.close()
    return [
        {
            "span_id": span_id,
            "parent_span_id": parent_id,
            "name": name,
            "start_time": start,
            "end_time": end,
            "attributes": json.loads(attrs),
            "status_code": status,
            "events": json.loads(events),
        }
        for span_id, parent_id, name, start, end, attrs, status, events in rows
    ]


def init_telemetry(service_name: str, db_path: str = None) -> str:
    """
    Create the tracer provider and SQLite exporter once per process.
    Returns the DB file in use.
    """
    global _provider, _db_file
    with _LOCK:
        if _provider is not None:
            return _db_file

        db_file = os.path.expanduser(db_path) if db_path else default_db_path(service_name)
        provider = TracerProvider(resource=Resource.create({"service.name": service_name}))
        provider.add_span_processor(SimpleSpanProcessor(SQLiteSpanExporter(db_file)))
        _provider = provider
        _db_file = db_file
        logger.debug("storing spans for %s in %s", service_name, db_file)
        return db_file


def get_tracer(name: str = APP_NAME) -> trace.Tracer:
    """Tracer from the session provider, or the global one before init_telemetry."""
    if _provider is None:
        return trace.get_tracer(name)
    return _provider.get_tracer(name)


def start_session(command_name: str, service_name: str = APP_NAME, db_path: str = None, start_time: int = None):
    """
    Begin a root span for one traced query and return a context carrying it.
    Must call end_session() when done.
    """
    init_telemetry(service_name, db_path=db_path)
    global _root_span, _root_context
    _root_span = get_tracer().start_span(
        ROOT_SPAN_NAME,
        attributes={"cli.command": command_name},
        start_time=start_time,
    )
    _root_context = trace.set_span_in_context(_root_span)
    return _root_context


def current_root_span():
    return _root_span


def end_session(end_time: int = None):
    """End the root span, flush it to SQLite and close the DB."""
    global _root_span, _root_context, _provider, _db_file
    if _root_span is not None:
        _root_span.end(end_time=end_time)
        _root_span = None
        _root_context = None
    with _LOCK:
        if _provider is not None:
            _provider.force_flush()
            _provider.shutdown()
            _provider = None
            _db_file = None
