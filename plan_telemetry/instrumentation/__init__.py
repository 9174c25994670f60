"""
Instrumentation hooks for query result streams.
"""

import os

from .stream import TracedResultStream, message_stats

DISABLE_ENV = "PLAN_TELEMETRY_DISABLE_STREAM_INSTRUMENTATION"


def instrument_stream(messages, header_getter=None, pipeline=None, context=None, tracer=None):
    """
    Wrap a stream of ResultSet / PartialResultSet messages so that their
    stats are traced. Returns the stream unchanged when disabled via
    PLAN_TELEMETRY_DISABLE_STREAM_INSTRUMENTATION.
    """
    if os.environ.get(DISABLE_ENV):
        return messages
    return TracedResultStream(
        messages,
        header_getter=header_getter,
        pipeline=pipeline,
        context=context,
        tracer=tracer,
    )


__all__ = ["DISABLE_ENV", "TracedResultStream", "instrument_stream", "message_stats"]
