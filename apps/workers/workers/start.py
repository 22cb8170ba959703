from celery import Celery
from celery.schedules import crontab

from apps.api.app.core.config import get_settings
from apps.api.app.jobs import JOBS
from apps.api.app.services.tasks import job_task_name

from .telemetry import configure_worker_telemetry

_settings = get_settings()
BROKER_URL = _settings.celery_broker_url or _settings.redis_url or "redis://redis:6379/0"
RESULT_BACKEND = _settings.celery_result_backend or BROKER_URL

celery_app = Celery("moodz_workers", broker=BROKER_URL, backend=RESULT_BACKEND)
celery_app.conf.update(
    timezone="UTC",
    enable_utc=True,
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    beat_schedule={
        spec.name: {"task": job_task_name(spec.name), "schedule": crontab(**spec.schedule)}
        for spec in JOBS
        if spec.supported and spec.schedule
    },
)
celery_app.autodiscover_tasks(["workers.tasks"])
configure_worker_telemetry()
