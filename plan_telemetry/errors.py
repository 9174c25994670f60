"""
Exceptions raised while converting query plans into spans.

None of these escape `plantotrace.emit` or the decorator pipeline; they
are recovered (or logged) at the boundary so tracing never fails a query.
"""


class PlanTelemetryError(Exception):
    """Base class for plan telemetry errors."""


class MalformedTimestamp(PlanTelemetryError, ValueError):
    """An execution timestamp is not in `<seconds>.<fraction>` form."""

    def __init__(self, value: str, reason: str):
        super().__init__(f"malformed timestamp {value!r}: {reason}")
        self.value = value
        self.reason = reason


class MalformedPlan(PlanTelemetryError, ValueError):
    """A query plan whose child links do not form a tree rooted at node 0."""
