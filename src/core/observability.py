"""Distributed tracing with OpenTelemetry and pluggable exporters.

Spans are produced for every HTTP request (FastAPI instrumentation) and
every MongoDB command (PyMongo instrumentation), and can be exported to:
- Loguru (local development)
- GCP Cloud Trace
- Any OTLP collector (Jaeger, Tempo, ...)
"""

from __future__ import annotations

import importlib
import os
from contextlib import contextmanager
from functools import lru_cache
from typing import TYPE_CHECKING, Any, Final

from loguru import logger
from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.instrumentation.pymongo import PymongoInstrumentor
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import ReadableSpan, TracerProvider
from opentelemetry.sdk.trace.export import (
    BatchSpanProcessor,
    SpanExporter,
    SpanExportResult,
)
from opentelemetry.sdk.trace.sampling import TraceIdRatioBased

from src.core.context import RequestContext

if TYPE_CHECKING:
    from collections.abc import Generator, Sequence

    from fastapi import FastAPI

    from src.core.config import Settings

SERVICE_NAME_KEY: Final[str] = "service.name"
SERVICE_VERSION_KEY: Final[str] = "service.version"
ENVIRONMENT_KEY: Final[str] = "deployment.environment"

DEFAULT_OTLP_ENDPOINT: Final[str] = "http://localhost:4317"
UNTRACED_URLS: Final[str] = "/health,/docs,/redoc,/openapi.json"

# Driver housekeeping that would drown out request spans
NOISY_SPAN_NAMES: Final[frozenset[str]] = frozenset(
    {"http send", "http receive", "admin.ping", "admin.hello", "admin.ismaster"}
)


class LoguruSpanExporter(SpanExporter):
    """Span exporter that writes finished spans through Loguru."""

    def export(self, spans: Sequence[ReadableSpan]) -> SpanExportResult:
        """Log each finished span at DEBUG level."""
        for span in spans:
            ctx = span.get_span_context()
            if ctx is None or span.name in NOISY_SPAN_NAMES:
                continue

            elapsed_ms = None
            if span.start_time and span.end_time:
                elapsed_ms = (span.end_time - span.start_time) // 1_000_000

            span_attrs = span.attributes or {}
            logger.bind(
                trace_id=format(ctx.trace_id, "#034x"),
                span_id=format(ctx.span_id, "#018x"),
                correlation_id=span_attrs.get(
                    "correlation_id", RequestContext.get_correlation_id()
                ),
                span_name=span.name,
                span_kind=span.kind.name,
                duration_ms=elapsed_ms,
                status=span.status.status_code.name,
            ).debug("Span {} finished", span.name)

        return SpanExportResult.SUCCESS


def get_span_exporter(settings: Settings) -> SpanExporter | None:
    """Build the exporter named by ``observability_config.exporter_type``.

    ``console`` logs spans locally, ``gcp`` ships them to Cloud Trace and
    ``otlp`` to a collector. Anything else (``none``) exports nothing.
    """
    config = settings.observability_config

    if config.exporter_type == "console":
        logger.info("Exporting spans to the application log")
        return LoguruSpanExporter()

    if config.exporter_type == "gcp":
        return _get_gcp_exporter(settings)

    if config.exporter_type == "otlp":
        endpoint = config.exporter_endpoint or DEFAULT_OTLP_ENDPOINT
        logger.info("Exporting spans over OTLP to {}", endpoint)
        return OTLPSpanExporter(
            endpoint=endpoint,
            insecure=settings.environment == "development",
        )

    logger.info("Span export turned off")
    return None


def _get_gcp_exporter(settings: Settings) -> SpanExporter | None:
    """Cloud Trace exporter, imported lazily from the ``gcp`` extra."""
    project_id = settings.observability_config.gcp_project_id or os.getenv(
        "GOOGLE_CLOUD_PROJECT"
    )
    if not project_id:
        logger.warning("No GCP project configured; spans will not be exported")
        return None

    try:
        cloud_trace = importlib.import_module("opentelemetry.exporter.cloud_trace")
    except ImportError:
        logger.error(
            "Cloud Trace export needs opentelemetry-exporter-gcp-trace; "
            "install the 'gcp' extra"
        )
        return None

    logger.info("Exporting spans to Cloud Trace in project {}", project_id)
    exporter: SpanExporter = cloud_trace.CloudTraceSpanExporter(project_id=project_id)
    return exporter


@lru_cache(maxsize=1)
def get_tracer(name: str) -> trace.Tracer:
    """Tracer for ``name``, cached."""
    return trace.get_tracer(name)


def setup_tracing(settings: Settings) -> None:
    """Install the global tracer provider unless tracing is switched off."""
    config = settings.observability_config
    if not config.enable_tracing:
        logger.info("Tracing is off")
        return

    provider = TracerProvider(
        resource=Resource.create(
            {
                SERVICE_NAME_KEY: settings.app_name,
                SERVICE_VERSION_KEY: settings.app_version,
                ENVIRONMENT_KEY: settings.environment,
            }
        ),
        sampler=TraceIdRatioBased(config.trace_sample_rate),
    )

    if (exporter := get_span_exporter(settings)) is not None:
        provider.add_span_processor(BatchSpanProcessor(exporter))

    trace.set_tracer_provider(provider)
    logger.info(
        "Tracer provider installed",
        exporter_type=config.exporter_type,
        sample_rate=config.trace_sample_rate,
    )


def instrument_app(app: FastAPI, settings: Settings) -> None:
    """Attach request spans to ``app`` and command spans to the driver.

    PyMongo instrumentation is process-wide, so it is installed at most once
    even when several applications are created.
    """
    if not settings.observability_config.enable_tracing:
        return

    FastAPIInstrumentor.instrument_app(
        app,
        excluded_urls=UNTRACED_URLS,
        server_request_hook=add_correlation_id_to_span,
    )

    instrumentor = PymongoInstrumentor()
    if not instrumentor.is_instrumented_by_opentelemetry:
        instrumentor.instrument()

    logger.info("HTTP and MongoDB instrumentation active")


def add_correlation_id_to_span(span: trace.Span, scope: dict[str, Any]) -> None:
    """``server_request_hook`` tagging the server span with request IDs."""
    if span is None or not span.is_recording():
        return

    correlation_id = RequestContext.get_correlation_id()
    if correlation_id:
        span.set_attribute("correlation_id", correlation_id)

    for name, value in scope.get("headers", []):
        if name == b"x-request-id" and value:
            span.set_attribute("request_id", value.decode("utf-8"))
            break


@contextmanager
def trace_operation(
    name: str, **attributes: str | int | float | bool
) -> Generator[trace.Span]:
    """Run the enclosed block inside a span called ``name``.

    Example:
        >>> with trace_operation("mongodb.reconnect", attempt=1):
        ...     pass
    """
    correlation_id = RequestContext.get_correlation_id()
    if correlation_id:
        attributes["correlation_id"] = correlation_id

    span = get_tracer(__name__).start_span(name, attributes=attributes)
    with trace.use_span(span, end_on_exit=True):
        yield span
