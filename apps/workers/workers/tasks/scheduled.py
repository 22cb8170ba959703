"""Celery tasks backing the scheduled jobs, one task per registered job."""

from __future__ import annotations

from typing import Any, Callable

from apps.api.app.jobs import JOBS
from apps.api.app.services.tasks import job_task_name

from ..start import celery_app
from .shared import run_registered_job

TASKS: dict[str, Any] = {}


def _make_task(job_name: str) -> Callable[[], dict[str, Any]]:
    def task() -> dict[str, Any]:
        return run_registered_job(job_name)

    task.__name__ = job_name.replace("-", "_")
    task.__doc__ = f"Run the {job_name} job."
    return task


for _spec in JOBS:
    TASKS[_spec.name] = celery_app.task(name=job_task_name(_spec.name))(_make_task(_spec.name))
