"""HTML and plain-text bodies for transactional emails."""

from __future__ import annotations

from datetime import datetime
from html import escape
from uuid import UUID

from ..domain.emails import EmailMessage, WeeklySummary
from ..domain.notifications import Notification, NotificationCreate, NotificationType
from ..domain.users import NotificationDigest

WEEKLY_SUMMARY_SUBJECT = "Seu Resumo Semanal - Moodz"

_DIGEST_LABELS = {NotificationDigest.DAILY: "diário", NotificationDigest.WEEKLY: "semanal"}

_TYPE_ICONS = {
    NotificationType.SESSION_REMINDER: "📅",
    NotificationType.SESSION_STARTING: "⏰",
    NotificationType.SESSION_CANCELLED: "❌",
    NotificationType.STREAK_RISK: "🔥",
    NotificationType.STREAK_ACHIEVED: "🎉",
    NotificationType.WEEKLY_SUMMARY: "📊",
    NotificationType.SYSTEM_ANNOUNCEMENT: "📢",
}

_LAYOUT = """<!doctype html>
<html lang="pt-BR">
  <body style="font-family: Arial, sans-serif; color: #1f2937;">
    <h1 style="font-size: 20px;">{title}</h1>
    {body}
    <p style="color: #6b7280; font-size: 12px;">Moodz</p>
  </body>
</html>"""


def _format_day(value) -> str:
    return value.strftime("%d/%m/%Y")


def render_weekly_summary(
    summary: WeeklySummary, *, to: str, user_id: UUID | None = None
) -> EmailMessage:
    lines = [
        f"Check-ins de humor: {summary.mood_check_ins}",
        f"Sessões em grupo: {summary.sessions_attended}",
        f"Dias de sequência: {summary.streak_days}",
    ]
    if summary.avg_mood_score is not None:
        lines.insert(1, f"Humor médio: {summary.avg_mood_score:.1f}")
    badges = [f"{badge.icon} {badge.name}" for badge in summary.new_badges]

    period = f"{_format_day(summary.week_start)} a {_format_day(summary.week_end)}"
    greeting = f"Olá, {summary.user_name}! Veja como foi sua semana ({period})."
    items = "".join(f"<li>{escape(line)}</li>" for line in lines)
    body = f"<p>{escape(greeting)}</p><ul>{items}</ul>"
    if badges:
        badge_items = "".join(f"<li>{escape(badge)}</li>" for badge in badges)
        body += f"<p>Novas conquistas:</p><ul>{badge_items}</ul>"

    text_parts = [greeting, *lines]
    if badges:
        text_parts.append("Novas conquistas: " + ", ".join(badges))

    return EmailMessage(
        to=to,
        subject=WEEKLY_SUMMARY_SUBJECT,
        html=_LAYOUT.format(title=escape(WEEKLY_SUMMARY_SUBJECT), body=body),
        text="\n".join(text_parts),
        user_id=user_id,
        type="weekly_summary",
    )


def render_notification_email(
    payload: NotificationCreate, *, to: str, user_name: str
) -> EmailMessage:
    """Mirror an in-app notification as an email."""

    body = f"<p>Olá, {escape(user_name)}!</p><p>{escape(payload.message)}</p>"
    link = (payload.data or {}).get("link")
    if link:
        body += f'<p><a href="{escape(str(link), quote=True)}">Abrir no Moodz</a></p>'
    return EmailMessage(
        to=to,
        subject=payload.title,
        html=_LAYOUT.format(title=escape(payload.title), body=body),
        text=f"Olá, {user_name}!\n\n{payload.message}",
        user_id=payload.user_id,
        type=payload.type.value.lower(),
    )


def digest_subject(digest: NotificationDigest, count: int) -> str:
    noun = "notificação" if count == 1 else "notificações"
    return f"📬 Resumo {_DIGEST_LABELS[digest]} - {count} {noun}"


def render_notification_digest(
    notifications: list[Notification],
    *,
    digest: NotificationDigest,
    to: str,
    user_name: str,
    period_start: datetime,
    period_end: datetime,
    user_id: UUID | None = None,
) -> EmailMessage:
    """Bundle unread notifications, newest first, into one email."""

    period = f"{_format_day(period_start)} a {_format_day(period_end)}"
    greeting = (
        f"Olá, {user_name}! Você tem {len(notifications)} "
        f"{'notificação não lida' if len(notifications) == 1 else 'notificações não lidas'} ({period})."
    )
    items = []
    text_parts = [greeting]
    for item in notifications:
        icon = _TYPE_ICONS.get(item.type, "🔔")
        line = f"{icon} {item.title}: {item.message}"
        link = (item.data or {}).get("link")
        entry = f"<strong>{escape(f'{icon} {item.title}')}</strong><br>{escape(item.message)}"
        if link:
            entry += f'<br><a href="{escape(str(link), quote=True)}">Ver</a>'
        items.append(f"<li>{entry}</li>")
        text_parts.append(line)

    subject = digest_subject(digest, len(notifications))
    body = f"<p>{escape(greeting)}</p><ul>{''.join(items)}</ul>"
    return EmailMessage(
        to=to,
        subject=subject,
        html=_LAYOUT.format(title=escape(subject), body=body),
        text="\n".join(text_parts),
        user_id=user_id,
        type=f"notification_digest_{digest.value.lower()}",
    )
