"""
Observability Tracing — OpenTelemetry spans per pipeline step

Traces one document end-to-end:
  Preparation → publish → Extraction handler → publish → Parsing handler

Every step instrumented with @traced opens an OpenTelemetry span and logs
its wall-clock time. Without an exporter configured the OTel API is a
no-op, so the log line is the baseline that is always active.

Export (Jaeger, Tempo, Datadog, any OTLP collector):
  OTEL_ENABLED=true
  OTEL_EXPORTER_OTLP_ENDPOINT=http://otel-collector:4318/v1/traces
  OTEL_SERVICE_NAME=agent-extraction
"""

from __future__ import annotations

import functools
import logging
import time
from typing import Any, Callable, Coroutine, TypeVar

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.resources import SERVICE_NAME, Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.trace import Status, StatusCode

from agent_extraction.core.config import Settings

logger = logging.getLogger(__name__)

F = TypeVar("F", bound=Callable[..., Coroutine[Any, Any, Any]])

_tracer = trace.get_tracer("agent_extraction")


# ---------------------------------------------------------------------------
# Exporter setup, called once at process startup
# ---------------------------------------------------------------------------

def configure_tracing(cfg: Settings) -> bool:
    """Install an OTLP exporter if enabled. Returns True when one was installed."""
    if not cfg.otel_enabled or not cfg.otel_exporter_otlp_endpoint:
        logger.debug("OTEL tracing disabled")
        return False

    provider = TracerProvider(resource=Resource.create({SERVICE_NAME: cfg.otel_service_name}))
    provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=cfg.otel_exporter_otlp_endpoint)))
    trace.set_tracer_provider(provider)

    logger.info(
        "OTEL tracing enabled | endpoint=%s service=%s",
        cfg.otel_exporter_otlp_endpoint, cfg.otel_service_name,
    )
    return True


# ---------------------------------------------------------------------------
# @traced decorator
# ---------------------------------------------------------------------------

def traced(name: str | None = None) -> Callable[[F], F]:
    """
    Instrument an async function with a span, timing and error logging.

    Usage::

        @traced("preparation.process_document")
        async def process_document(self, file_path): ...

        @traced()   # uses the function's qualified name
        async def handle_message(self, correlation_id): ...
    """
    def decorator(func: F) -> F:
        span_name = name or func.__qualname__

        @functools.wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> Any:
            t0 = time.perf_counter()
            with _tracer.start_as_current_span(span_name, record_exception=False) as span:
                try:
                    result = await func(*args, **kwargs)
                except Exception as exc:
                    elapsed_ms = (time.perf_counter() - t0) * 1000
                    span.record_exception(exc)
                    span.set_status(Status(StatusCode.ERROR, str(exc)))
                    logger.error(
                        "trace | span=%s elapsed_ms=%.1f error=%s",
                        span_name, elapsed_ms, exc,
                    )
                    raise

            elapsed_ms = (time.perf_counter() - t0) * 1000
            logger.debug("trace | span=%s elapsed_ms=%.1f ok", span_name, elapsed_ms)
            return result

        return wrapper  # type: ignore[return-value]
    return decorator
