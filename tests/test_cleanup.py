"""
Retention sweeps and the stale session cleanup.
"""

from datetime import timedelta
from uuid import uuid4

from sqlalchemy import select

from apps.api.app.jobs import run_cleanup, run_session_cleanup
from apps.api.app.models import AuditLogModel, EmailLogModel, GroupSessionModel, NotificationModel
from apps.api.app.repositories.notifications import SqlAlchemyNotificationsRepository

import factories


async def _ids(session_factory, model):
    async with session_factory() as session:
        return set((await session.execute(select(model.id))).scalars().all())


async def test_retention_thresholds(session_factory, seed, now):
    member = factories.user("Ana")
    await seed(member)
    read_old = factories.notification(member, now - timedelta(days=31), read=True)
    read_recent = factories.notification(member, now - timedelta(days=29), read=True)
    unread_31 = factories.notification(member, now - timedelta(days=31), read=False)
    unread_91 = factories.notification(member, now - timedelta(days=91), read=False)
    old_email = factories.email_log(now - timedelta(days=91))
    new_email = factories.email_log(now - timedelta(days=10))
    await seed(read_old, read_recent, unread_31, unread_91, old_email, new_email)

    old_audit = AuditLogModel(id=uuid4(), action="user.banned", created_at=now - timedelta(days=366))
    recent_audit = AuditLogModel(id=uuid4(), action="user.banned", created_at=now - timedelta(days=5))
    await seed(old_audit, recent_audit)

    result = await run_cleanup(session_factory=session_factory, now=now)
    assert result.errors == []
    assert (result.read_notifications, result.unread_notifications) == (1, 1)
    assert (result.email_logs, result.audit_logs) == (1, 1)

    assert await _ids(session_factory, NotificationModel) == {read_recent.id, unread_31.id}
    assert await _ids(session_factory, EmailLogModel) == {new_email.id}
    assert await _ids(session_factory, AuditLogModel) == {recent_audit.id}


async def test_failed_category_does_not_block_the_others(session_factory, seed, now, monkeypatch):
    member = factories.user("Ana")
    await seed(member)
    await seed(
        factories.notification(member, now - timedelta(days=31), read=True),
        factories.email_log(now - timedelta(days=91)),
    )

    async def broken(self, cutoff, *, read):
        raise RuntimeError("lock timeout")

    monkeypatch.setattr(SqlAlchemyNotificationsRepository, "delete_older_than", broken)

    result = await run_cleanup(session_factory=session_factory, now=now)
    assert result.errors == [
        "Failed to delete read notifications: lock timeout",
        "Failed to delete unread notifications: lock timeout",
    ]
    assert result.email_logs == 1
    assert result.read_notifications == 0


async def test_session_cleanup_cancels_stale_scheduled_sessions(session_factory, seed, now):
    host = factories.user("Dra. Paula")
    profile = factories.therapist(host)
    stale = factories.group_session(profile, now - timedelta(hours=3))
    recent = factories.group_session(profile, now - timedelta(hours=1))
    finished = factories.group_session(profile, now - timedelta(hours=5), status="COMPLETED")
    await seed(host, profile, stale, recent, finished)

    result = await run_session_cleanup(session_factory=session_factory, now=now)
    assert result.errors == []
    assert result.completed_sessions == 1

    async with session_factory() as session:
        statuses = dict((await session.execute(select(GroupSessionModel.id, GroupSessionModel.status))).all())
    assert statuses == {stale.id: "CANCELLED", recent.id: "SCHEDULED", finished.id: "COMPLETED"}
