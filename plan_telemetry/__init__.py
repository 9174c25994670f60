"""
Trace Spanner query plans: turn a query's execution plan and per-operator
execution stats into a tree of OpenTelemetry spans.
"""

from .decorators import (
    DecoratorPipeline,
    ElapsedTimeDecorator,
    HeaderDecorator,
    QueryTextDecorator,
    ServerTimingDecorator,
    StatsDecorator,
    default_pipeline,
    new_decorator_pipeline,
)
from .errors import MalformedPlan, MalformedTimestamp, PlanTelemetryError
from .plan import ChildLink, Kind, PlanNode, QueryPlan, ResultSetStats, ShortRepresentation
from .plantotrace import TimeWindow, emit
from .timestamps import parse_fractional_timestamp
from .title import format_title, is_visible

__all__ = [
    "ChildLink",
    "DecoratorPipeline",
    "ElapsedTimeDecorator",
    "HeaderDecorator",
    "Kind",
    "MalformedPlan",
    "MalformedTimestamp",
    "PlanNode",
    "PlanTelemetryError",
    "QueryPlan",
    "QueryTextDecorator",
    "ResultSetStats",
    "ServerTimingDecorator",
    "ShortRepresentation",
    "StatsDecorator",
    "TimeWindow",
    "default_pipeline",
    "emit",
    "format_title",
    "is_visible",
    "new_decorator_pipeline",
    "parse_fractional_timestamp",
]
