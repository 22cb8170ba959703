"""Outgoing email delivery through the Resend HTTP API."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Protocol

import httpx
import structlog

from ..core.config import get_settings
from ..domain.emails import EmailMessage, EmailSendResult
from ..repositories.email_logs import EmailLogsRepository

logger = structlog.get_logger(__name__)


class EmailConfigurationError(RuntimeError):
    """Raised when no email provider credentials are configured."""


class EmailDeliveryError(RuntimeError):
    """Raised when the provider rejects or fails to accept a message."""


class EmailProvider(Protocol):
    async def send(self, message: EmailMessage) -> str | None:
        """Hand ``message`` to the provider and return its message id."""


@dataclass
class ResendEmailProvider:
    """Minimal async client for ``POST /emails``."""

    api_key: str
    sender: str
    api_url: str = "https://api.resend.com/emails"
    timeout_seconds: float = 15.0
    transport: httpx.AsyncBaseTransport | None = None

    async def send(self, message: EmailMessage) -> str | None:
        payload: dict[str, object] = {
            "from": self.sender,
            "to": [message.to],
            "subject": message.subject,
            "html": message.html,
        }
        if message.text:
            payload["text"] = message.text
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        async with httpx.AsyncClient(
            timeout=httpx.Timeout(self.timeout_seconds), transport=self.transport
        ) as client:
            try:
                response = await client.post(self.api_url, json=payload, headers=headers)
                response.raise_for_status()
            except httpx.HTTPStatusError as exc:
                raise EmailDeliveryError(
                    f"Email provider returned {exc.response.status_code}: {exc.response.text}"
                ) from exc
            except httpx.HTTPError as exc:
                raise EmailDeliveryError(f"Email provider request failed: {exc}") from exc
        data = response.json()
        return data.get("id") if isinstance(data, dict) else None


def build_email_provider() -> ResendEmailProvider:
    """Create the provider from settings."""

    settings = get_settings()
    if not settings.resend_api_key:
        raise EmailConfigurationError("RESEND_API_KEY must be configured to send email")
    return ResendEmailProvider(
        api_key=settings.resend_api_key,
        sender=settings.email_from,
        api_url=str(settings.email_api_url),
        timeout_seconds=settings.email_timeout_seconds,
    )


class EmailService:
    """Sends messages and keeps the delivery log in step.

    Every message is logged as PENDING before it reaches the provider and is
    then marked SENT or FAILED. Provider failures come back as an unsuccessful
    result; failures writing the log propagate.
    """

    def __init__(
        self,
        provider: EmailProvider,
        logs: EmailLogsRepository,
        *,
        clock: Callable[[], datetime] = datetime.utcnow,
    ) -> None:
        self._provider = provider
        self._logs = logs
        self._clock = clock

    async def send_email(self, message: EmailMessage) -> EmailSendResult:
        log = await self._logs.create_pending(message)
        try:
            provider_id = await self._provider.send(message)
        except EmailDeliveryError as exc:
            logger.warning(
                "email.send_failed",
                email_log_id=str(log.id),
                type=message.type,
                error=str(exc),
            )
            await self._logs.mark_failed(log.id, error=str(exc))
            return EmailSendResult(success=False, error=str(exc))

        await self._logs.mark_sent(log.id, provider_id=provider_id, sent_at=self._clock())
        logger.info("email.sent", email_log_id=str(log.id), type=message.type)
        return EmailSendResult(success=True, id=provider_id)
