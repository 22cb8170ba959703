"""Celery task dispatch for running scheduled jobs out of band."""

from __future__ import annotations

from dataclasses import dataclass

from celery import Celery

from ..core.config import get_settings

JOB_TASK_PREFIX = "jobs."


class TaskQueueConfigurationError(RuntimeError):
    """Raised when Celery cannot be configured from the environment."""


def job_task_name(job_name: str) -> str:
    """Celery task name registered by the workers for a job."""

    return f"{JOB_TASK_PREFIX}{job_name}"


@dataclass
class TaskDispatcher:
    """Thin wrapper that fires the Celery task backing a job."""

    app: Celery

    def enqueue_job(self, job_name: str) -> str:
        """Queue ``job_name`` on the workers and return the Celery task id."""

        result = self.app.send_task(job_task_name(job_name), ignore_result=True)
        return result.id


def build_celery_app(name: str) -> Celery:
    settings = get_settings()
    broker = settings.celery_broker_url or settings.redis_url
    if not broker:
        raise TaskQueueConfigurationError(
            "CELERY_BROKER_URL or REDIS_URL must be configured for task dispatch"
        )
    backend = settings.celery_result_backend or broker
    app = Celery(name, broker=broker, backend=backend)
    app.conf.update(
        task_default_queue="default",
        task_serializer="json",
        accept_content=["json"],
        result_serializer="json",
        timezone="UTC",
        enable_utc=True,
    )
    return app


def build_task_dispatcher() -> TaskDispatcher:
    """Create a dispatcher backed by a configured Celery app."""

    return TaskDispatcher(app=build_celery_app("moodz_api"))
