"""Domain models describing API rate limiting configuration and state."""

from __future__ import annotations

import functools
import math
import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from types import MappingProxyType
from typing import Mapping, Pattern
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from .users import Identity, Role

SECOND = 1000
MINUTE = 60 * SECOND
HOUR = 60 * MINUTE

DEFAULT_DENIAL_MESSAGE = "Muitas requisições. Tente novamente mais tarde."


class RateLimitIdentifier(str, Enum):
    """How the requester is identified when composing a counter key."""

    IP = "ip"
    USER = "user"
    BOTH = "both"


class RateLimitConfig(BaseModel):
    """Quota applied to a route pattern."""

    model_config = ConfigDict(frozen=True)

    limit: int = Field(description="Maximum number of requests allowed in the window", ge=1)
    window_ms: int = Field(description="Window duration in milliseconds", ge=1)
    identifier: RateLimitIdentifier = Field(default=RateLimitIdentifier.IP)
    message: str | None = Field(default=None, description="Message shown when rate limited")

    @property
    def window(self) -> timedelta:
        return timedelta(milliseconds=self.window_ms)

    def merged(self, override: RateLimitOverride | None) -> RateLimitConfig:
        """Return a copy with every field set on ``override`` taking precedence."""

        if override is None:
            return self
        return self.model_copy(update=override.model_dump(exclude_none=True))


class RateLimitOverride(BaseModel):
    """Partial config supplied by a caller on top of the resolved route config."""

    model_config = ConfigDict(frozen=True)

    limit: int | None = Field(default=None, ge=1)
    window_ms: int | None = Field(default=None, ge=1)
    identifier: RateLimitIdentifier | None = None
    message: str | None = None


def compile_route_pattern(pattern: str) -> Pattern[str]:
    """Turn a route pattern into a regex matched against the whole path.

    ``*`` stands for exactly one path segment, except as the final segment
    where it matches one or more trailing segments, so ``/api/admin/*``
    covers ``/api/admin/users`` and ``/api/admin/reports/export`` but not
    ``/api/admin`` itself.
    """

    segments = pattern.split("/")
    parts: list[str] = []
    for index, segment in enumerate(segments):
        if segment == "*" and index == len(segments) - 1:
            parts.append(r"[^/]+(?:/[^/]+)*")
            continue
        parts.append(r"[^/]+".join(re.escape(piece) for piece in segment.split("*")))
    return re.compile("/".join(parts))


@dataclass(frozen=True)
class RateLimitRule:
    """A route pattern (exact or with ``*`` segments) bound to a config."""

    pattern: str
    config: RateLimitConfig
    regex: Pattern[str] | None = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        regex = compile_route_pattern(self.pattern) if self.is_wildcard else None
        object.__setattr__(self, "regex", regex)

    @property
    def is_wildcard(self) -> bool:
        return "*" in self.pattern

    def matches(self, path: str) -> bool:
        if self.regex is None:
            return path == self.pattern
        return self.regex.fullmatch(path) is not None


@dataclass(frozen=True)
class RateLimitPolicy:
    """Immutable rate limit table built once at startup and injected where needed.

    Wildcard rules are evaluated in declaration order, so more specific
    patterns must be declared before broader ones.
    """

    rules: tuple[RateLimitRule, ...]
    default: RateLimitConfig
    role_multipliers: Mapping[Role, float] = field(default_factory=dict)
    _exact: Mapping[str, RateLimitConfig] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        for role, multiplier in self.role_multipliers.items():
            if multiplier < 1:
                raise ValueError(f"Role multiplier for {role.value} must be >= 1")
        exact: dict[str, RateLimitConfig] = {}
        for rule in self.rules:
            if not rule.is_wildcard:
                exact.setdefault(rule.pattern, rule.config)
        object.__setattr__(self, "role_multipliers", MappingProxyType(dict(self.role_multipliers)))
        object.__setattr__(self, "_exact", MappingProxyType(exact))

    def resolve(self, path: str) -> RateLimitConfig:
        """Return the config for ``path``: exact match, first wildcard match, or default."""

        config = self._exact.get(path)
        if config is not None:
            return config
        for rule in self.rules:
            if rule.is_wildcard and rule.matches(path):
                return rule.config
        return self.default

    def apply_role_multiplier(self, limit: int, role: Role | None = None) -> int:
        if role is None:
            return limit
        multiplier = self.role_multipliers.get(role, 1)
        return math.floor(limit * multiplier)


DEFAULT_ROLE_MULTIPLIERS: dict[Role, float] = {
    Role.SUPER_ADMIN: 3,
    Role.ADMIN: 2,
    Role.THERAPIST: 1.5,
    Role.PATIENT: 1,
}


@functools.lru_cache(maxsize=None)
def default_policy() -> RateLimitPolicy:
    """Route table used by the Moodz API, built once per process."""

    ip = RateLimitIdentifier.IP
    user = RateLimitIdentifier.USER
    rules = (
        # Auth routes: strict, keyed by IP
        RateLimitRule(
            "/api/auth/login",
            RateLimitConfig(
                limit=5,
                window_ms=15 * MINUTE,
                identifier=ip,
                message="Muitas tentativas de login. Tente novamente em 15 minutos.",
            ),
        ),
        RateLimitRule(
            "/api/auth/register",
            RateLimitConfig(
                limit=3,
                window_ms=HOUR,
                identifier=ip,
                message="Muitas tentativas de registro. Tente novamente em 1 hora.",
            ),
        ),
        RateLimitRule(
            "/api/auth/forgot-password",
            RateLimitConfig(
                limit=3,
                window_ms=15 * MINUTE,
                identifier=ip,
                message="Muitas solicitações de recuperação. Tente novamente em 15 minutos.",
            ),
        ),
        RateLimitRule(
            "/api/auth/resend-verification",
            RateLimitConfig(
                limit=3,
                window_ms=15 * MINUTE,
                identifier=ip,
                message="Muitos reenvios de verificação. Tente novamente em 15 minutos.",
            ),
        ),
        RateLimitRule(
            "/api/auth/reset-password",
            RateLimitConfig(
                limit=5,
                window_ms=15 * MINUTE,
                identifier=ip,
                message="Muitas tentativas de redefinição. Tente novamente em 15 minutos.",
            ),
        ),
        # Content creation
        RateLimitRule(
            "/api/posts",
            RateLimitConfig(
                limit=20,
                window_ms=HOUR,
                identifier=user,
                message="Limite de posts atingido. Tente novamente em 1 hora.",
            ),
        ),
        RateLimitRule(
            "/api/comments",
            RateLimitConfig(
                limit=30,
                window_ms=HOUR,
                identifier=user,
                message="Limite de comentários atingido. Tente novamente em 1 hora.",
            ),
        ),
        RateLimitRule(
            "/api/sessions/*/enroll",
            RateLimitConfig(
                limit=10,
                window_ms=HOUR,
                identifier=user,
                message="Muitas inscrições. Tente novamente em 1 hora.",
            ),
        ),
        RateLimitRule(
            "/api/admin/*",
            RateLimitConfig(limit=200, window_ms=MINUTE, identifier=user),
        ),
        RateLimitRule(
            "/api/super-admin/*",
            RateLimitConfig(limit=200, window_ms=MINUTE, identifier=user),
        ),
        RateLimitRule(
            "/api/therapist/*",
            RateLimitConfig(limit=100, window_ms=MINUTE, identifier=user),
        ),
    )
    return RateLimitPolicy(
        rules=rules,
        default=RateLimitConfig(
            limit=100,
            window_ms=MINUTE,
            identifier=ip,
            message="Muitas requisições. Tente novamente em breve.",
        ),
        role_multipliers=DEFAULT_ROLE_MULTIPLIERS,
    )


def get_rate_limit_config(path: str, policy: RateLimitPolicy | None = None) -> RateLimitConfig:
    return (policy or default_policy()).resolve(path)


def apply_role_multiplier(
    limit: int, role: Role | None = None, policy: RateLimitPolicy | None = None
) -> int:
    return (policy or default_policy()).apply_role_multiplier(limit, role)


class RateLimitEntry(BaseModel):
    """Persisted counter for one key."""

    model_config = ConfigDict(from_attributes=True)

    key: str
    count: int = Field(ge=0)
    window_start: datetime
    expires_at: datetime


class RateLimitResult(BaseModel):
    """Represents the outcome of a rate limit check."""

    allowed: bool = Field(
        description="Whether the request is permitted under the configured quota",
    )
    limit: int = Field(
        description="Maximum number of requests allowed within the window",
        ge=0,
    )
    remaining: int = Field(
        description="Number of requests still available before hitting the limit",
        ge=0,
    )
    reset_at: datetime = Field(description="When the current window resets")
    message: str | None = Field(default=None, description="Reason shown when the request is denied")

    def retry_after_seconds(self, now: datetime) -> int:
        return max(math.ceil((self.reset_at - now).total_seconds()), 1)


class RateLimitKeyCount(BaseModel):
    key: str
    count: int


class RateLimitStats(BaseModel):
    """Diagnostics over the stored counters."""

    total_entries: int = Field(ge=0)
    expired_entries: int = Field(ge=0)
    top_keys: list[RateLimitKeyCount] = Field(default_factory=list)


class RateLimitExceededPayload(BaseModel):
    """Structured error payload returned when a limit is exceeded."""

    model_config = ConfigDict(populate_by_name=True)

    error: str = Field(default="Too Many Requests")
    message: str = Field(default=DEFAULT_DENIAL_MESSAGE)
    retry_after: int = Field(
        alias="retryAfter",
        description="Seconds until clients should retry the blocked action",
        ge=0,
    )


class RateLimitOptions(BaseModel):
    """Per-call inputs to a rate limit check."""

    model_config = ConfigDict(frozen=True)

    config: RateLimitOverride | None = None
    role: Role | None = None
    user_id: UUID | None = None

    @classmethod
    def for_identity(
        cls, identity: Identity | None, config: RateLimitOverride | None = None
    ) -> RateLimitOptions:
        if identity is None:
            return cls(config=config)
        return cls(config=config, role=identity.role, user_id=identity.user_id)
