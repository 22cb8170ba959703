"""Worker metrics and tracing.

Scheduled jobs report their own outcome, so the counters here are keyed by
job name rather than by Celery task state.
"""

from __future__ import annotations

from celery import signals
from opentelemetry.instrumentation.celery import CeleryInstrumentor
from prometheus_client import Counter, Histogram, start_http_server

from apps.api.app.core.config import get_settings
from apps.api.app.core.logging import configure_logging
from apps.api.app.domain.jobs import JobResult
from apps.api.app.telemetry import build_tracer_provider

JOB_RUNS = Counter(
    "moodz_job_runs_total",
    "Scheduled job runs grouped by outcome",
    labelnames=("job", "outcome"),
)
JOB_ITEM_ERRORS = Counter(
    "moodz_job_item_errors_total",
    "Per-item failures reported by scheduled jobs",
    labelnames=("job",),
)
JOB_DURATION = Histogram(
    "moodz_job_duration_seconds",
    "Wall time of scheduled job runs",
    labelnames=("job",),
    buckets=(0.1, 0.5, 1, 5, 15, 60, 300, 900),
)
TASK_CRASHES = Counter(
    "moodz_celery_task_crashes_total",
    "Celery tasks that raised instead of returning a job result",
    labelnames=("task",),
)

_instrumented = False


def job_outcome(result: JobResult) -> str:
    if not result.supported:
        return "unsupported"
    return "errors" if result.errors else "ok"


def record_job_run(job: str, result: JobResult, duration_seconds: float) -> None:
    JOB_RUNS.labels(job=job, outcome=job_outcome(result)).inc()
    JOB_DURATION.labels(job=job).observe(duration_seconds)
    if result.errors:
        JOB_ITEM_ERRORS.labels(job=job).inc(len(result.errors))


def configure_worker_telemetry() -> None:
    """Start the metrics exporter and trace Celery tasks; safe to call repeatedly."""

    global _instrumented
    if _instrumented:
        return

    settings = get_settings()
    configure_logging()
    if settings.worker_prometheus_port is not None:
        start_http_server(
            port=settings.worker_prometheus_port,
            addr=settings.worker_prometheus_host,
        )
    CeleryInstrumentor().instrument(
        tracer_provider=build_tracer_provider(settings, "moodz-workers")
    )
    signals.task_failure.connect(_count_crash, weak=False)
    _instrumented = True


def _count_crash(sender=None, **_: object) -> None:
    TASK_CRASHES.labels(task=sender.name if sender else "unknown").inc()
