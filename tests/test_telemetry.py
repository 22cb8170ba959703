"""
Metric label normalisation, OTLP header parsing and the Prometheus middleware.
"""

from fastapi import FastAPI
from fastapi.responses import JSONResponse
from fastapi.testclient import TestClient
from prometheus_client import REGISTRY

from apps.api.app.core.config import Settings
from apps.api.app.telemetry import (
    build_tracer_provider,
    normalise_path,
    parse_headers,
    setup_prometheus,
)


def test_normalise_path_collapses_ids():
    assert normalise_path("/api/sessions/3f2b6c1e-8d9a-4b7e-9c1d-2a3b4c5d6e7f/enroll") == "/api/sessions/{uuid}/enroll"
    assert normalise_path("/api/posts/42") == "/api/posts/{id}"
    assert normalise_path("") == "/"


def test_parse_headers():
    assert parse_headers(None) == {}
    assert parse_headers("api-key=abc, x-team = moodz,broken") == {"api-key": "abc", "x-team": "moodz"}


def test_rate_limited_responses_are_counted():
    app = FastAPI()

    @app.get("/api/limited")
    async def limited():
        return JSONResponse(status_code=429, content={"error": "Too Many Requests"})

    setup_prometheus(app, Settings(prometheus_metrics_path="/metrics/prometheus"))
    client = TestClient(app)

    def sample():
        return REGISTRY.get_sample_value("moodz_http_rate_limited_total", {"path": "/api/limited"}) or 0

    before = sample()
    assert client.get("/api/limited").status_code == 429
    assert sample() == before + 1
    assert "moodz_http_requests_total" in client.get("/metrics/prometheus").text


def test_no_tracer_provider_without_endpoint():
    assert build_tracer_provider(Settings(otel_exporter_otlp_endpoint=None), "moodz-api") is None
