"""
Telemetry module for OpenTelemetry + Application Insights.

Configures distributed tracing for the chat pipeline: one span per chat
turn, plus child spans for each upstream model stream, the embedding call
and every partition search.
"""

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

from opentelemetry import trace
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor

logger = logging.getLogger(__name__)

SERVICE_NAME = "rag-chat-orchestrator"

_tracer: trace.Tracer | None = None


def setup_telemetry(connection_string: str) -> None:
    """
    Install the tracer provider, exporting to Application Insights when configured.

    Args:
        connection_string: Application Insights connection string.
                          If empty, spans are recorded but not exported.
    """
    global _tracer

    provider = TracerProvider(resource=Resource.create({"service.name": SERVICE_NAME}))

    if not connection_string:
        logger.info("No Application Insights connection string; span export disabled.")
    else:
        try:
            from azure.monitor.opentelemetry.exporter import (
                AzureMonitorTraceExporter,
            )
        except ImportError:
            logger.warning(
                "azure-monitor-opentelemetry-exporter not installed; "
                "spans will not be exported."
            )
        else:
            provider.add_span_processor(
                BatchSpanProcessor(
                    AzureMonitorTraceExporter(connection_string=connection_string)
                )
            )
            logger.info("Application Insights span export enabled.")

    trace.set_tracer_provider(provider)
    _tracer = trace.get_tracer(SERVICE_NAME)


def get_tracer() -> trace.Tracer:
    """Return the application tracer (a no-op tracer until setup_telemetry runs)."""
    global _tracer
    if _tracer is None:
        _tracer = trace.get_tracer(SERVICE_NAME)
    return _tracer


@contextmanager
def traced(name: str, **attributes: Any) -> Iterator[trace.Span]:
    """Open a span named `name` with the given attributes (None values dropped)."""
    with get_tracer().start_as_current_span(name) as span:
        for key, value in attributes.items():
            if value is not None:
                span.set_attribute(key, value)
        yield span
