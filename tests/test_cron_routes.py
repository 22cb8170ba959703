"""
Scheduler endpoints: bearer secret, inline runs and queueing.
"""

import pytest
from fastapi.testclient import TestClient

from apps.api.app.api.dependencies import get_task_dispatcher
from apps.api.app.jobs import JOBS
from apps.api.app.main import create_app

AUTH = {"Authorization": "Bearer test-cron-secret"}


class FakeDispatcher:
    def __init__(self):
        self.queued = []

    def enqueue_job(self, job_name):
        self.queued.append(job_name)
        return f"task-{len(self.queued)}"


@pytest.fixture
def app():
    return create_app(create_tables=False)


@pytest.fixture
def client(app):
    return TestClient(app)


@pytest.mark.parametrize("headers", [{}, {"Authorization": "Bearer wrong"}, {"Authorization": "test-cron-secret"}])
def test_requests_without_the_secret_are_rejected(client, headers):
    response = client.get("/v1/cron/update-user-engagement", headers=headers)
    assert response.status_code == 401
    assert response.json() == {"detail": "Unauthorized"}


def test_lists_registered_jobs(client):
    response = client.get("/v1/cron", headers=AUTH)
    assert response.status_code == 200
    jobs = {job["name"]: job for job in response.json()["jobs"]}
    assert set(jobs) == {spec.name for spec in JOBS}
    assert jobs["weekly-summary"]["schedule"] == {"minute": "0", "hour": "10", "day_of_week": "sun"}
    assert jobs["update-user-engagement"]["supported"] is False


def test_unsupported_job_reports_failure(client):
    response = client.get("/v1/cron/update-user-engagement", headers=AUTH)
    assert response.status_code == 200
    body = response.json()
    assert body["job"] == "update-user-engagement"
    assert body["success"] is False
    assert body["supported"] is False
    assert body["reason"]
    assert body["timestamp"].endswith("Z")


def test_job_errors_are_returned_not_raised(client):
    # No DATABASE_URL in the test environment, so the job cannot open a session.
    response = client.get("/v1/cron/cleanup-notifications", headers=AUTH)
    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["read_notifications"] == 0
    assert body["errors"] and "DATABASE_URL" in body["errors"][0]


def test_enqueue_hands_the_job_to_the_dispatcher(app, client):
    dispatcher = FakeDispatcher()
    app.dependency_overrides[get_task_dispatcher] = lambda: dispatcher

    response = client.post("/v1/cron/session-reminders/enqueue", headers=AUTH)
    assert response.status_code == 202
    assert response.json()["task_id"] == "task-1"
    assert dispatcher.queued == ["session-reminders"]

    rejected = client.post("/v1/cron/update-user-engagement/enqueue", headers=AUTH)
    assert rejected.status_code == 409
    assert dispatcher.queued == ["session-reminders"]


def test_enqueue_without_a_broker_is_unavailable(client):
    response = client.post("/v1/cron/session-reminders/enqueue", headers=AUTH)
    assert response.status_code == 503


def test_health(client):
    assert client.get("/healthz").json() == {"ok": True, "service": "api"}
