from __future__ import annotations

import hmac
from typing import AsyncGenerator

import structlog
from fastapi import Depends, Header, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from ..core.config import get_settings
from ..core.security import InvalidTokenError, decode_identity
from ..db import get_sessionmaker
from ..domain.rate_limits import RateLimitPolicy, default_policy
from ..domain.users import Identity
from ..repositories.rate_limits import RateLimitRepository, SqlAlchemyRateLimitRepository
from ..services.rate_limiter import RateLimiter
from ..services.tasks import (
    TaskDispatcher,
    TaskQueueConfigurationError,
    build_task_dispatcher,
)

logger = structlog.get_logger(__name__)

_http_bearer = HTTPBearer(auto_error=False)
_task_dispatcher: TaskDispatcher | None = None


async def get_optional_identity(
    credentials: HTTPAuthorizationCredentials | None = Depends(_http_bearer),
) -> Identity | None:
    """Caller identity from the bearer token; anonymous when absent or invalid."""

    if credentials is None:
        return None
    try:
        return decode_identity(credentials.credentials)
    except InvalidTokenError as exc:
        logger.debug("auth.token_rejected", reason=str(exc))
        return None


def get_rate_limit_policy(request: Request) -> RateLimitPolicy:
    policy = getattr(request.app.state, "rate_limit_policy", None)
    if policy is None:
        policy = default_policy()
        request.app.state.rate_limit_policy = policy
    return policy


async def get_rate_limit_repository() -> AsyncGenerator[RateLimitRepository | None, None]:
    """Yield the SQL counter store, or ``None`` when no database is configured.

    A missing store is reported by the limiter itself, which lets the request through.
    """

    try:
        session_factory = get_sessionmaker()
    except RuntimeError as exc:
        logger.warning("rate_limit.store_unconfigured", reason=str(exc))
        yield None
        return
    async with session_factory() as session:
        yield SqlAlchemyRateLimitRepository(session)


async def get_rate_limiter(
    policy: RateLimitPolicy = Depends(get_rate_limit_policy),
    repository: RateLimitRepository | None = Depends(get_rate_limit_repository),
) -> RateLimiter:
    settings = get_settings()
    return RateLimiter(
        policy,
        repository,
        enabled=settings.rate_limit_enabled,
        top_keys=settings.rate_limit_top_keys,
    )


def require_cron_secret(authorization: str | None = Header(default=None)) -> None:
    """Reject scheduler calls that do not carry ``Bearer <CRON_SECRET>``."""

    settings = get_settings()
    expected = settings.cron_secret
    if not expected or authorization is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")
    if not hmac.compare_digest(authorization.encode(), f"Bearer {expected}".encode()):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")


async def get_task_dispatcher() -> TaskDispatcher:
    global _task_dispatcher
    if _task_dispatcher is None:
        try:
            _task_dispatcher = build_task_dispatcher()
        except TaskQueueConfigurationError as exc:
            raise HTTPException(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                detail=str(exc),
            ) from exc
    return _task_dispatcher
