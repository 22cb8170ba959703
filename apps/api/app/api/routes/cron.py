"""Scheduler-facing endpoints, one per registered job.

Every endpoint requires ``Authorization: Bearer <CRON_SECRET>``.
``GET /cron/<job>`` runs the job in the request and answers 200 with its
result, partial failures listed in ``errors``. ``POST /cron/<job>/enqueue``
hands the job to the Celery workers instead.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Awaitable, Callable

from fastapi import APIRouter, Depends, HTTPException, status

from ...jobs import JOBS, JobSpec
from ...services.tasks import TaskDispatcher
from ..dependencies import get_task_dispatcher, require_cron_secret

router = APIRouter(
    prefix="/cron",
    tags=["cron"],
    dependencies=[Depends(require_cron_secret)],
)


def _timestamp() -> str:
    return datetime.utcnow().isoformat(timespec="milliseconds") + "Z"


def _run_endpoint(spec: JobSpec) -> Callable[[], Awaitable[dict[str, Any]]]:
    async def run() -> dict[str, Any]:
        result = await spec.runner()
        return {
            "job": spec.name,
            "success": result.supported,
            **result.model_dump(mode="json"),
            "timestamp": _timestamp(),
        }

    run.__name__ = f"run_{spec.name.replace('-', '_')}"
    return run


def _enqueue_endpoint(spec: JobSpec) -> Callable[..., Awaitable[dict[str, Any]]]:
    async def enqueue(
        dispatcher: TaskDispatcher = Depends(get_task_dispatcher),
    ) -> dict[str, Any]:
        if not spec.supported:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail=f"Job {spec.name} is not supported",
            )
        task_id = dispatcher.enqueue_job(spec.name)
        return {"job": spec.name, "queued": True, "task_id": task_id, "timestamp": _timestamp()}

    enqueue.__name__ = f"enqueue_{spec.name.replace('-', '_')}"
    return enqueue


@router.get("")
async def list_jobs() -> dict[str, list[dict[str, Any]]]:
    return {
        "jobs": [
            {
                "name": spec.name,
                "supported": spec.supported,
                "schedule": dict(spec.schedule),
                "description": spec.description,
            }
            for spec in JOBS
        ]
    }


for _spec in JOBS:
    router.add_api_route(
        f"/{_spec.name}",
        _run_endpoint(_spec),
        methods=["GET"],
        summary=_spec.description or _spec.name,
    )
    router.add_api_route(
        f"/{_spec.name}/enqueue",
        _enqueue_endpoint(_spec),
        methods=["POST"],
        status_code=status.HTTP_202_ACCEPTED,
        summary=f"Queue: {_spec.description or _spec.name}",
    )
