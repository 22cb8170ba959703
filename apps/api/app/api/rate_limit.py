"""Rate limiting for FastAPI endpoints.

Two entry points:

``with_rate_limit`` wraps an endpoint. The wrapper resolves the caller and the
limiter through dependencies, answers 429 when the quota is spent and adds
``X-RateLimit-*`` headers to every other response::

    @router.post("/posts")
    @with_rate_limit
    async def create_post(payload: PostCreate) -> dict: ...

``rate_limit`` is the inline form for handlers that need to decide themselves.
"""

from __future__ import annotations

import functools
import inspect
import typing
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Optional

from fastapi import Depends, Request
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse, Response
from starlette.concurrency import run_in_threadpool
from starlette.requests import HTTPConnection

from ..domain.rate_limits import (
    DEFAULT_DENIAL_MESSAGE,
    RateLimitExceededPayload,
    RateLimitOptions,
    RateLimitOverride,
    RateLimitResult,
)
from ..domain.users import Identity
from ..services.rate_limiter import RateLimiter
from .dependencies import get_optional_identity, get_rate_limiter

_REQUEST_PARAM = "rate_limit_request"
_IDENTITY_PARAM = "rate_limit_identity"
_LIMITER_PARAM = "rate_limit_limiter"


def format_reset(value: datetime) -> str:
    """ISO-8601 in UTC with millisecond precision, e.g. ``2024-05-01T12:00:00.000Z``."""

    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value.isoformat(timespec="milliseconds") + "Z"


def rate_limit_headers(result: RateLimitResult) -> dict[str, str]:
    return {
        "X-RateLimit-Limit": str(result.limit),
        "X-RateLimit-Remaining": str(result.remaining),
        "X-RateLimit-Reset": format_reset(result.reset_at),
    }


def add_rate_limit_headers(response: Response, result: RateLimitResult) -> Response:
    for name, value in rate_limit_headers(result).items():
        response.headers[name] = value
    return response


def rate_limited_response(result: RateLimitResult, *, now: datetime) -> JSONResponse:
    """429 response with the retry delay in the body and ``Retry-After``."""

    retry_after = result.retry_after_seconds(now)
    payload = RateLimitExceededPayload(
        message=result.message or DEFAULT_DENIAL_MESSAGE,
        retry_after=retry_after,
    )
    response = JSONResponse(status_code=429, content=payload.model_dump(by_alias=True))
    add_rate_limit_headers(response, result)
    response.headers["Retry-After"] = str(retry_after)
    return response


@dataclass(frozen=True)
class RateLimitDecision:
    allowed: bool
    response: JSONResponse | None
    result: RateLimitResult


async def rate_limit(
    request: HTTPConnection,
    limiter: RateLimiter,
    options: RateLimitOptions | None = None,
) -> RateLimitDecision:
    """Check the request and, when denied, prebuild the 429 response."""

    result = await limiter.check(request, options)
    if result.allowed:
        return RateLimitDecision(allowed=True, response=None, result=result)
    return RateLimitDecision(
        allowed=False,
        response=rate_limited_response(result, now=limiter.now()),
        result=result,
    )


def with_rate_limit(
    handler: Callable[..., Any] | None = None,
    *,
    config_override: RateLimitOverride | None = None,
):
    """Decorate an endpoint; usable bare or as ``with_rate_limit(config_override=...)``.

    Plain ``def`` handlers still run in the threadpool, as FastAPI would run them.
    """

    def decorator(func: Callable[..., Any]) -> Callable[..., Any]:
        signature = _extend_signature(func)
        is_coroutine = inspect.iscoroutinefunction(func)

        @functools.wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> Response:
            request: Request = kwargs.pop(_REQUEST_PARAM)
            identity: Identity | None = kwargs.pop(_IDENTITY_PARAM)
            limiter: RateLimiter = kwargs.pop(_LIMITER_PARAM)

            decision = await rate_limit(
                request, limiter, RateLimitOptions.for_identity(identity, config_override)
            )
            if decision.response is not None:
                return decision.response

            if is_coroutine:
                response = await func(*args, **kwargs)
            else:
                response = await run_in_threadpool(func, *args, **kwargs)
            if not isinstance(response, Response):
                response = JSONResponse(content=jsonable_encoder(response))
            return add_rate_limit_headers(response, decision.result)

        wrapper.__signature__ = signature  # type: ignore[attr-defined]
        return wrapper

    if handler is not None:
        return decorator(handler)
    return decorator


def _extend_signature(func: Callable[..., Any]) -> inspect.Signature:
    """Handler signature plus the request, identity and limiter FastAPI must inject."""

    signature = inspect.signature(func)
    hints = typing.get_type_hints(func)
    parameters = [
        parameter.replace(annotation=hints.get(parameter.name, parameter.annotation))
        for parameter in signature.parameters.values()
    ]
    for reserved in (_REQUEST_PARAM, _IDENTITY_PARAM, _LIMITER_PARAM):
        if reserved in signature.parameters:
            raise TypeError(f"{func.__qualname__} may not declare a parameter named {reserved!r}")

    injected = [
        inspect.Parameter(_REQUEST_PARAM, inspect.Parameter.KEYWORD_ONLY, annotation=Request),
        inspect.Parameter(
            _IDENTITY_PARAM,
            inspect.Parameter.KEYWORD_ONLY,
            default=Depends(get_optional_identity),
            annotation=Optional[Identity],
        ),
        inspect.Parameter(
            _LIMITER_PARAM,
            inspect.Parameter.KEYWORD_ONLY,
            default=Depends(get_rate_limiter),
            annotation=RateLimiter,
        ),
    ]
    if parameters and parameters[-1].kind is inspect.Parameter.VAR_KEYWORD:
        parameters[-1:-1] = injected
    else:
        parameters.extend(injected)
    return signature.replace(
        parameters=parameters,
        return_annotation=inspect.Signature.empty,
    )
