"""
Pytest configuration and fixtures.
Shared plan builders and an in-memory OpenTelemetry pipeline.
"""

import pytest
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import SimpleSpanProcessor
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter

from plan_telemetry import telemetry
from plans import make_node, make_stats, summary


@pytest.fixture
def span_exporter():
    return InMemorySpanExporter()


@pytest.fixture
def tracer(span_exporter):
    provider = TracerProvider()
    provider.add_span_processor(SimpleSpanProcessor(span_exporter))
    yield provider.get_tracer("test")
    provider.shutdown()


@pytest.fixture
def join_scan_stats():
    """Join over a table scan, with a hidden scalar Function child."""
    return make_stats(
        make_node(0, display_name="Join", children=[1, 2], stats=summary("1610000000.1", "1610000000.9")),
        make_node(
            1,
            display_name="Scan",
            metadata={"scan_type": "TableScan", "scan_target": "Orders"},
            stats=summary("1610000000.2", "1610000000.5"),
        ),
        make_node(2, kind="SCALAR", display_name="Function", description="$a = 1"),
        query_text="SELECT * FROM Orders",
        elapsed_time="1.23 msecs",
    )


@pytest.fixture
def telemetry_session(tmp_path):
    """Fresh telemetry globals backed by a DB in tmp_path."""
    db_file = str(tmp_path / "telemetry.db")
    yield db_file
    telemetry.end_session()
