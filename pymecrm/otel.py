from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter, SimpleSpanProcessor
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter
from opentelemetry.trace import Span

from pymecrm.core.config import Settings

_provider: TracerProvider | None = None
_exporters_installed = False


def _provider_for(service_name: str, version: str = "0.1.0", environment: str = "local") -> TracerProvider:
    global _provider
    if _provider is None:
        resource = Resource.create(
            {
                "service.name": service_name,
                "service.version": version,
                "deployment.environment": environment,
            }
        )
        _provider = TracerProvider(resource=resource)
        trace.set_tracer_provider(_provider)
    return _provider


def setup_otel(settings: Settings) -> TracerProvider | None:
    """Install the tracer provider and the exporters configured in ``settings``.

    Returns ``None`` when tracing is disabled; calling it again after a successful setup is a no-op.
    """
    global _exporters_installed
    if not settings.otel_enabled:
        return None

    provider = _provider_for(settings.app_name, settings.app_version, settings.app_env)
    if _exporters_installed:
        return provider

    if settings.otel_exporter_otlp_endpoint:
        provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=settings.otel_exporter_otlp_endpoint)))
    if settings.otel_console_exporter:
        provider.add_span_processor(SimpleSpanProcessor(ConsoleSpanExporter()))
    _exporters_installed = True
    return provider


def setup_inmemory_otel(service_name: str = "pymecrm") -> InMemorySpanExporter:
    exporter = InMemorySpanExporter()
    _provider_for(service_name).add_span_processor(SimpleSpanProcessor(exporter))
    return exporter


def get_tracer(name: str) -> trace.Tracer:
    return trace.get_tracer(name)


@contextmanager
def crm_span(tracer: trace.Tracer, entity: str, operation: str, entity_id: str | None = None) -> Iterator[Span]:
    """Span named ``crm.<entity>.<operation>`` tagged with the entity attributes."""
    with tracer.start_as_current_span(f"crm.{entity}.{operation}") as span:
        span.set_attribute("crm.entity", entity)
        span.set_attribute("crm.operation", operation)
        if entity_id is not None:
            span.set_attribute("crm.entity_id", entity_id)
        yield span


def get_fastapi_server_request_hook():
    def server_request_hook(span, scope: dict[str, Any]) -> None:  # type: ignore[no-untyped-def]
        if span is None or not span.is_recording():
            return
        for name, value in scope.get("headers", []):
            if name == b"x-correlation-id":
                span.set_attribute("correlation_id", value.decode("latin-1"))
                break

    return server_request_hook
