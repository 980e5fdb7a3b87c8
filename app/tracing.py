"""Distributed tracing: OpenTelemetry spans for every request."""

import logging
from typing import Optional

from fastapi import FastAPI
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.sdk.resources import SERVICE_NAME, Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import (
    BatchSpanProcessor,
    ConsoleSpanExporter,
    SimpleSpanProcessor,
    SpanExporter,
)

from app.config import Settings

logger = logging.getLogger(__name__)


def setup_tracing(app: FastAPI, settings: Settings, exporter: Optional[SpanExporter] = None) -> TracerProvider:
    """Instrument ``app`` and export its spans.

    Spans go to the console in batches unless an exporter is given, in
    which case each span is exported as soon as it ends.
    """
    provider = TracerProvider(resource=Resource.create({SERVICE_NAME: settings.tracing_service_name}))
    if exporter is None:
        provider.add_span_processor(BatchSpanProcessor(ConsoleSpanExporter()))
    else:
        provider.add_span_processor(SimpleSpanProcessor(exporter))

    FastAPIInstrumentor.instrument_app(app, tracer_provider=provider, excluded_urls="health")
    logger.info(f"Tracing enabled for service {settings.tracing_service_name}")
    return provider
