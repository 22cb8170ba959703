"""Small helpers shared across the test modules."""

from datetime import datetime, timedelta

from starlette.requests import Request

from apps.api.app.services.emails import EmailDeliveryError

START = datetime(2024, 5, 1, 12, 0, 0)


class Clock:
    """Settable clock passed where the code expects ``datetime.utcnow``."""

    def __init__(self, value: datetime = START) -> None:
        self.value = value

    def __call__(self) -> datetime:
        return self.value

    def advance(self, **kwargs) -> None:
        self.value += timedelta(**kwargs)


def make_request(path: str, ip: str | None = "1.2.3.4", headers: dict | None = None) -> Request:
    raw = [(key.lower().encode(), value.encode()) for key, value in (headers or {}).items()]
    if ip is not None:
        raw.append((b"x-forwarded-for", ip.encode()))
    return Request(
        {
            "type": "http",
            "method": "POST",
            "scheme": "http",
            "server": ("testserver", 80),
            "path": path,
            "query_string": b"",
            "headers": raw,
        }
    )


class RecordingProvider:
    """Email provider that keeps sent messages and fails for chosen recipients."""

    def __init__(self, fail_for=()):
        self.sent = []
        self.fail_for = set(fail_for)

    async def send(self, message):
        if message.to in self.fail_for:
            raise EmailDeliveryError("mailbox full")
        self.sent.append(message)
        return f"msg-{len(self.sent)}"
