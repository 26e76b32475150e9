# src/dialectic/tracing.py

from opentelemetry import trace
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import (
    SimpleSpanProcessor,
    ConsoleSpanExporter,
)


def configure_tracing(service_name: str = "dialectic-worker") -> None:
    """
    Configure OpenTelemetry tracing with a console exporter.

    Spans are printed to stdout; swapping ConsoleSpanExporter for an OTLP
    exporter does not change any caller.
    """
    # If there's already a provider, don't reconfigure
    if isinstance(trace.get_tracer_provider(), TracerProvider):
        return

    provider = TracerProvider(resource=Resource.create({"service.name": service_name}))
    # SimpleSpanProcessor exports synchronously; a batch worker thread can outlive
    # pytest's captured stdout and fail with "I/O operation on closed file".
    provider.add_span_processor(SimpleSpanProcessor(ConsoleSpanExporter()))

    trace.set_tracer_provider(provider)
