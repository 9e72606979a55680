from __future__ import annotations

import os
from collections.abc import Iterator
from contextlib import contextmanager

from opentelemetry import trace
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import ConsoleSpanExporter, SimpleSpanProcessor
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter

from roleguard.context import get_actor_id, get_correlation_id


_configured = False
_provider: TracerProvider | None = None


def _get_or_create_provider(service_name: str) -> TracerProvider:
    global _provider

    if _provider is not None:
        return _provider

    resource = Resource.create(
        {
            "service.name": service_name,
            "service.version": os.getenv("APP_VERSION", "0.1.0"),
        }
    )
    _provider = TracerProvider(resource=resource)
    trace.set_tracer_provider(_provider)
    return _provider


def setup_otel(service_name: str, enable: bool) -> TracerProvider | None:
    """Install the tracer provider once; spans go to stdout when OTEL_CONSOLE_EXPORTER=true."""

    global _configured

    if not enable:
        return None

    provider = _get_or_create_provider(service_name)
    if not _configured:
        if os.getenv("OTEL_CONSOLE_EXPORTER", "false").lower() == "true":
            provider.add_span_processor(SimpleSpanProcessor(ConsoleSpanExporter()))
        _configured = True
    return provider


def setup_inmemory_otel(service_name: str = "roleguard") -> InMemorySpanExporter:
    provider = _get_or_create_provider(service_name)
    exporter = InMemorySpanExporter()
    provider.add_span_processor(SimpleSpanProcessor(exporter))
    return exporter


def get_tracer(name: str) -> trace.Tracer:
    return trace.get_tracer(name)


@contextmanager
def decision_span(tracer: trace.Tracer, entry_point: str, rule: str) -> Iterator[trace.Span]:
    """Span named ``authz.<entry_point>`` tagged with the rule and the caller's context ids."""

    with tracer.start_as_current_span(f"authz.{entry_point}") as span:
        span.set_attribute("authz.rule", rule)
        correlation_id = get_correlation_id()
        if correlation_id:
            span.set_attribute("correlation_id", correlation_id)
        actor_id = get_actor_id()
        if actor_id:
            span.set_attribute("actor_id", actor_id)
        yield span
