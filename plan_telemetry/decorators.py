"""
Span decorators: small strategy objects that copy query statistics and
response headers onto the span of the traced database call.
"""

import logging
import re
from collections.abc import Mapping
from typing import NamedTuple, Optional

from .plan import ResultSetStats

logger = logging.getLogger(__name__)

GFE_SERVER_TIMING_NAME = "gfet4t7"
SERVER_TIMING_HEADER = "server-timing"

# ASCII digits only, stricter than int()
_DURATION_RE = re.compile(r"[0-9]+")


class StatsDecorator:
    """Sets span attributes from a ResultSetStats."""

    def apply(self, span, stats: ResultSetStats) -> None:
        raise NotImplementedError


class HeaderDecorator:
    """Sets span attributes from response headers (gRPC metadata)."""

    def apply(self, span, headers) -> None:
        raise NotImplementedError


class QueryStatDecorator(StatsDecorator):
    """Copies one string query statistic to an attribute of the same name."""

    key = None

    def apply(self, span, stats):
        span.set_attribute(self.key, stats.query_stat_string(self.key))

    def __repr__(self):
        return f"{type(self).__name__}()"


class QueryTextDecorator(QueryStatDecorator):
    key = "query_text"


class ElapsedTimeDecorator(QueryStatDecorator):
    key = "elapsed_time"


class ServerTiming(NamedTuple):
    name: str
    duration_ms: Optional[int]
    extra: dict


def parse_server_timing(raw: str) -> ServerTiming:
    """
    Parse one Server-Timing entry, e.g. "gfet4t7; dur=42".

    A `dur` parameter (any case) that is not a run of ASCII digits leaves
    duration_ms as None; other parameters are collected in `extra`.
    """
    name, _, rest = raw.partition(";")
    duration = None
    extra = {}
    if rest:
        for param in rest.split(";"):
            key, _, value = param.strip().partition("=")
            key, value = key.strip(), value.strip()
            if key.lower() == "dur":
                if _DURATION_RE.fullmatch(value):
                    duration = int(value)
            elif key:
                extra[key] = value
    return ServerTiming(name.strip(), duration, extra)


def parse_server_timing_header(values) -> list:
    """Parse every entry of one or more Server-Timing header values."""
    if isinstance(values, str):
        values = [values]
    entries = []
    for value in values:
        for raw in value.split(","):
            if raw.strip():
                entries.append(parse_server_timing(raw))
    return entries


def header_values(headers, key: str) -> list:
    """
    Return all values of `key` (case-insensitive) from either a mapping of
    key to value-or-list, or a sequence of (key, value) pairs as used by
    gRPC metadata.
    """
    if not headers:
        return []
    items = headers.items() if isinstance(headers, Mapping) else headers
    values = []
    for k, v in items:
        if k.lower() != key:
            continue
        if isinstance(v, (list, tuple)):
            values.extend(v)
        else:
            values.append(v)
    return [v.decode() if isinstance(v, bytes) else v for v in values]


class ServerTimingDecorator(HeaderDecorator):
    """Records the Google Front End's reported latency as `gfe-server-timing`."""

    def __init__(self, metric_name: str = GFE_SERVER_TIMING_NAME, attribute: str = "gfe-server-timing"):
        self.metric_name = metric_name
        self.attribute = attribute

    def apply(self, span, headers):
        for timing in parse_server_timing_header(header_values(headers, SERVER_TIMING_HEADER)):
            if timing.name == self.metric_name and timing.duration_ms is not None:
                span.set_attribute(self.attribute, timing.duration_ms)

    def __repr__(self):
        return f"ServerTimingDecorator({self.metric_name!r})"


class DecoratorPipeline:
    """
    Ordered, immutable lists of stats and header decorators.

    Decorators run in registration order, so a later decorator may
    overwrite an attribute set by an earlier one. A failing decorator is
    logged and skipped.
    """

    def __init__(self, stats_decorators=(), header_decorators=()):
        self._stats_decorators = tuple(stats_decorators)
        self._header_decorators = tuple(header_decorators)

    @property
    def stats_decorators(self) -> tuple:
        return self._stats_decorators

    @property
    def header_decorators(self) -> tuple:
        return self._header_decorators

    def apply_stats(self, span, stats: ResultSetStats) -> None:
        for decorator in self._stats_decorators:
            self._apply(decorator, span, stats)

    def apply_headers(self, span, headers) -> None:
        for decorator in self._header_decorators:
            self._apply(decorator, span, headers)

    @staticmethod
    def _apply(decorator, span, data):
        try:
            decorator.apply(span, data)
        except Exception:
            logger.exception("span decorator %r failed", decorator)

    def extended(self, stats_decorators=(), header_decorators=()) -> "DecoratorPipeline":
        """Return a new pipeline with extra decorators appended."""
        return DecoratorPipeline(
            self._stats_decorators + tuple(stats_decorators),
            self._header_decorators + tuple(header_decorators),
        )


def new_decorator_pipeline(stats_decorators=(), header_decorators=()) -> DecoratorPipeline:
    return DecoratorPipeline(stats_decorators, header_decorators)


def default_pipeline() -> DecoratorPipeline:
    """Query text, elapsed time and GFE server timing."""
    return DecoratorPipeline(
        [QueryTextDecorator(), ElapsedTimeDecorator()],
        [ServerTimingDecorator()],
    )
