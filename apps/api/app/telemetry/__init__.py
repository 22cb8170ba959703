"""Prometheus metrics and OpenTelemetry tracing for the API."""

from __future__ import annotations

import re
import time
from typing import Dict

from fastapi import FastAPI
from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from ..core.config import Settings, get_settings

REQUEST_COUNT = Counter(
    "moodz_http_requests_total",
    "Total count of HTTP requests",
    labelnames=("method", "path", "status"),
)
REQUEST_LATENCY = Histogram(
    "moodz_http_request_duration_seconds",
    "Latency distribution for HTTP requests",
    labelnames=("method", "path"),
    buckets=(0.01, 0.05, 0.1, 0.25, 0.5, 1, 2, 5, 10),
)
RATE_LIMITED_RESPONSES = Counter(
    "moodz_http_rate_limited_total",
    "Responses answered with 429 Too Many Requests",
    labelnames=("path",),
)

_uuid_pattern = re.compile(r"/[0-9a-fA-F-]{32,36}")
_numeric_pattern = re.compile(r"/\d+")
_tracer_provider: TracerProvider | None = None


class PrometheusMiddleware(BaseHTTPMiddleware):
    """Record request metrics for Prometheus scraping."""

    def __init__(self, app, metrics_path: str) -> None:  # type: ignore[no-untyped-def]
        super().__init__(app)
        self._metrics_path = metrics_path

    async def dispatch(self, request: Request, call_next):  # type: ignore[override]
        start = time.perf_counter()
        response = await call_next(request)
        duration = time.perf_counter() - start
        if request.url.path == self._metrics_path:
            return response
        path = normalise_path(request.url.path)
        REQUEST_COUNT.labels(
            method=request.method, path=path, status=str(response.status_code)
        ).inc()
        REQUEST_LATENCY.labels(method=request.method, path=path).observe(duration)
        if response.status_code == 429:
            RATE_LIMITED_RESPONSES.labels(path=path).inc()
        return response


def setup_prometheus(app: FastAPI, settings: Settings | None = None) -> None:
    """Attach middleware and metrics endpoint."""

    settings = settings or get_settings()
    metrics_path = settings.prometheus_metrics_path
    app.add_middleware(PrometheusMiddleware, metrics_path=metrics_path)

    @app.get(metrics_path, include_in_schema=False)
    async def prometheus_metrics() -> Response:  # pragma: no cover - trivial
        return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)


def build_tracer_provider(settings: Settings, service_name: str) -> TracerProvider | None:
    """Install an OTLP-exporting tracer provider, or return ``None`` when no endpoint is set."""

    if not settings.otel_exporter_otlp_endpoint:
        return None
    resource = Resource.create(
        {
            "service.name": settings.otel_service_name or service_name,
            "service.namespace": "moodz",
            "deployment.environment": settings.environment,
        }
    )
    provider = TracerProvider(resource=resource)
    exporter = OTLPSpanExporter(
        endpoint=settings.otel_exporter_otlp_endpoint,
        headers=parse_headers(settings.otel_exporter_otlp_headers),
    )
    provider.add_span_processor(BatchSpanProcessor(exporter))
    trace.set_tracer_provider(provider)
    return provider


def configure_tracing(app: FastAPI, settings: Settings | None = None) -> None:
    """Trace requests when an OTLP endpoint is set; the provider is installed once per process."""

    global _tracer_provider
    settings = settings or get_settings()
    if _tracer_provider is None:
        _tracer_provider = build_tracer_provider(settings, "moodz-api")
    if _tracer_provider is None:
        return
    FastAPIInstrumentor.instrument_app(app, tracer_provider=_tracer_provider)


def normalise_path(path: str) -> str:
    """Collapse ids so metric label cardinality stays bounded."""

    path = _uuid_pattern.sub("/{uuid}", path)
    path = _numeric_pattern.sub("/{id}", path)
    return path or "/"


def parse_headers(raw: str | None) -> Dict[str, str]:
    """Parse ``key=value`` pairs separated by commas."""

    if not raw:
        return {}
    headers: Dict[str, str] = {}
    for part in raw.split(","):
        if "=" not in part:
            continue
        key, value = part.split("=", 1)
        headers[key.strip()] = value.strip()
    return headers
