"""
Instrumentation for streamed query results: decorates the caller's span
and emits the plan spans whenever a response message carries stats.
"""

import logging
from collections.abc import Mapping

import proto
from google.protobuf import json_format
from google.protobuf.message import Message as ProtobufMessage
from opentelemetry import context as otel_context
from opentelemetry import trace
from pydantic import ValidationError

from ..decorators import default_pipeline
from ..plan import ResultSetStats
from ..plantotrace import emit

logger = logging.getLogger(__name__)


def _stats_payload(stats):
    """The stats as a mapping, converting proto-plus and raw protobuf messages."""
    if isinstance(stats, Mapping):
        return stats
    if isinstance(stats, proto.Message):
        return type(stats).to_dict(stats)
    if isinstance(stats, ProtobufMessage):
        return json_format.MessageToDict(stats, preserving_proto_field_name=True, use_integers_for_enums=True)
    return None


def message_stats(message):
    """
    Return the ResultSetStats carried by a ResultSet / PartialResultSet
    message (a model, a mapping, or an object with `.stats` such as the
    Spanner client's protobuf messages), or None.
    """
    if isinstance(message, ResultSetStats):
        return message
    if isinstance(message, Mapping):
        stats = message.get("stats")
    else:
        stats = getattr(message, "stats", None)
    # an unset proto-plus field is an empty, falsy message
    if not stats:
        return None
    if isinstance(stats, ResultSetStats):
        return stats
    payload = _stats_payload(stats)
    if payload is None:
        logger.warning("ignoring result set stats of unsupported type %s", type(stats).__name__)
        return None
    # raw protobuf messages return an empty default for an unset field
    if not payload:
        return None
    try:
        return ResultSetStats.model_validate(payload)
    except ValidationError as exc:
        logger.warning("ignoring unreadable result set stats: %s", exc)
    return None


class TracedResultStream:
    """
    Iterator over response messages that leaves every message untouched.

    The span and context are captured when the stream is created, as the
    iteration may happen elsewhere. For each message with stats the stats
    decorators run on that span and the plan is emitted under it; header
    decorators run after every message once headers are available.
    """

    def __init__(self, messages, header_getter=None, pipeline=None, context=None, tracer=None):
        self._messages = iter(messages)
        self._header_getter = header_getter
        self._pipeline = pipeline if pipeline is not None else default_pipeline()
        self._context = context if context is not None else otel_context.get_current()
        self._span = trace.get_current_span(self._context)
        self._tracer = tracer

    def __iter__(self):
        return self

    def __next__(self):
        try:
            message = next(self._messages)
        except StopIteration:
            self._apply_headers()
            raise
        stats = message_stats(message)
        if stats is not None:
            self._pipeline.apply_stats(self._span, stats)
            emit(stats, context=self._context, tracer=self._tracer)
        self._apply_headers()
        return message

    def _apply_headers(self):
        if self._header_getter is None:
            return
        try:
            headers = self._header_getter()
        except Exception as exc:
            # headers may not have arrived yet; the stream itself is unaffected
            logger.debug("response headers unavailable: %s", exc)
            return
        if headers:
            self._pipeline.apply_headers(self._span, headers)
