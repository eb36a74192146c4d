"""Optional OpenTelemetry instrumentation for chatstream.

Call ``chatstream.instrument()`` once at startup to enable tracing.
Requires ``opentelemetry-api`` to be installed; the library
works identically without it.
"""

import importlib.util
import logging
from contextlib import asynccontextmanager

logger = logging.getLogger(__name__)

_tracer = None


def instrument(*, tracer_name: str = "chatstream") -> None:
    """Enable OpenTelemetry tracing for streamed chat requests.

    Call once at startup, after configuring your TracerProvider.
    Requires ``opentelemetry-api``: ``pip install chatstream[otel]``

    Example::

        from opentelemetry.sdk.trace import TracerProvider
        from opentelemetry import trace

        trace.set_tracer_provider(TracerProvider())

        import chatstream
        chatstream.instrument()

    Args:
        tracer_name: Name passed to ``trace.get_tracer()``.

    Raises:
        ImportError: If ``opentelemetry-api`` is not installed.
    """
    global _tracer
    if importlib.util.find_spec("opentelemetry.trace") is None:
        raise ImportError(
            "opentelemetry-api is required for instrumentation. "
            "Install it with: pip install chatstream[otel]"
        )
    from opentelemetry import trace
    _tracer = trace.get_tracer(tracer_name)
    if isinstance(_tracer, trace.NoOpTracer):
        logger.info(
            "No TracerProvider configured; spans will be "
            "discarded. Set up a TracerProvider to export "
            "traces."
        )
    else:
        logger.info("chatstream instrumentation enabled")


def uninstrument() -> None:
    """Disable OpenTelemetry tracing."""
    global _tracer
    _tracer = None


@asynccontextmanager
async def stream_span(system: str, model: str):
    """Wrap one streamed chat request in a ``chat`` span."""
    if _tracer is None:
        yield None
        return
    from opentelemetry.trace import SpanKind

    with _tracer.start_as_current_span(
        f"chat {model}",
        kind=SpanKind.CLIENT,
        attributes={
            "gen_ai.operation.name": "chat",
            "gen_ai.provider.name": system,
            "gen_ai.request.model": model,
        },
    ) as span:
        yield span


def record_stream_result(span, result) -> None:
    """Set stream counters from a ``StreamResult`` on a span."""
    if span is None or result is None:
        return
    span.set_attribute("chatstream.status", result.status.value)
    span.set_attribute("chatstream.chunks", result.chunk_count)
    span.set_attribute("chatstream.data_frames", result.data_frames)
    span.set_attribute("chatstream.keepalives", result.keepalive_count)
    span.set_attribute("chatstream.malformed_frames", result.malformed_frames)
    span.set_attribute("chatstream.tool_calls", len(result.tool_calls))


def record_error(span, exception: BaseException) -> None:
    """Record an exception and set ERROR status on a span.

    Sets ``error.type`` per GenAI semantic conventions.
    No-ops when *span* is ``None`` (tracing disabled).
    """
    if span is None:
        return
    from opentelemetry.trace import StatusCode

    span.set_status(StatusCode.ERROR, str(exception))
    span.record_exception(exception)
    span.set_attribute(
        "error.type", type(exception).__qualname__
    )
