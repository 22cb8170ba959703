"""Storage for fixed-window rate limit counters."""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from datetime import datetime

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ..domain.rate_limits import RateLimitEntry, RateLimitKeyCount
from ..models.rate_limit import RateLimitEntryModel


class RateLimitRepository(ABC):
    """Interface describing the per-key primitives the limiter relies on.

    ``create``, ``reset`` and ``increment`` are each atomic for one key, so a
    decision never depends on a read that another request can invalidate.
    """

    @abstractmethod
    async def get(self, key: str) -> RateLimitEntry | None:
        """Return the stored counter for ``key``."""

    @abstractmethod
    async def create(
        self, key: str, *, window_start: datetime, expires_at: datetime
    ) -> RateLimitEntry | None:
        """Insert a counter with count 1; ``None`` if the key already exists."""

    @abstractmethod
    async def reset(
        self,
        key: str,
        *,
        stale_before: datetime,
        window_start: datetime,
        expires_at: datetime,
    ) -> RateLimitEntry | None:
        """Restart a stale window at count 1; ``None`` if it is no longer stale."""

    @abstractmethod
    async def increment(self, key: str, *, limit: int) -> int | None:
        """Add one to the counter while it is below ``limit``.

        Returns the new count, or ``None`` when the counter had already
        reached the limit (or vanished).
        """

    @abstractmethod
    async def delete_expired(self, now: datetime) -> int:
        """Remove counters whose window ended before ``now``."""

    @abstractmethod
    async def count(self) -> int: ...

    @abstractmethod
    async def count_expired(self, now: datetime) -> int: ...

    @abstractmethod
    async def top_keys(self, limit: int) -> list[RateLimitKeyCount]:
        """Return the hottest keys ordered by count, highest first."""


class InMemoryRateLimitRepository(RateLimitRepository):
    """Dictionary-backed counters for tests and local development."""

    def __init__(self) -> None:
        self._entries: dict[str, RateLimitEntry] = {}
        self._lock = asyncio.Lock()

    async def get(self, key: str) -> RateLimitEntry | None:
        return self._entries.get(key)

    async def create(
        self, key: str, *, window_start: datetime, expires_at: datetime
    ) -> RateLimitEntry | None:
        async with self._lock:
            if key in self._entries:
                return None
            entry = RateLimitEntry(
                key=key, count=1, window_start=window_start, expires_at=expires_at
            )
            self._entries[key] = entry
            return entry

    async def reset(
        self,
        key: str,
        *,
        stale_before: datetime,
        window_start: datetime,
        expires_at: datetime,
    ) -> RateLimitEntry | None:
        async with self._lock:
            current = self._entries.get(key)
            if current is None or current.window_start >= stale_before:
                return None
            entry = RateLimitEntry(
                key=key, count=1, window_start=window_start, expires_at=expires_at
            )
            self._entries[key] = entry
            return entry

    async def increment(self, key: str, *, limit: int) -> int | None:
        async with self._lock:
            current = self._entries.get(key)
            if current is None or current.count >= limit:
                return None
            updated = current.model_copy(update={"count": current.count + 1})
            self._entries[key] = updated
            return updated.count

    async def delete_expired(self, now: datetime) -> int:
        async with self._lock:
            expired = [key for key, entry in self._entries.items() if entry.expires_at < now]
            for key in expired:
                del self._entries[key]
            return len(expired)

    async def count(self) -> int:
        return len(self._entries)

    async def count_expired(self, now: datetime) -> int:
        return sum(1 for entry in self._entries.values() if entry.expires_at < now)

    async def top_keys(self, limit: int) -> list[RateLimitKeyCount]:
        ordered = sorted(self._entries.values(), key=lambda entry: entry.count, reverse=True)
        return [RateLimitKeyCount(key=entry.key, count=entry.count) for entry in ordered[:limit]]


class SqlAlchemyRateLimitRepository(RateLimitRepository):
    """Persists rate limit counters in the ``rate_limit_entries`` table."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get(self, key: str) -> RateLimitEntry | None:
        # Counters change through bulk UPDATEs, so never trust the identity map.
        result = await self._session.execute(
            select(RateLimitEntryModel)
            .where(RateLimitEntryModel.key == key)
            .execution_options(populate_existing=True)
        )
        model = result.scalar_one_or_none()
        if model is None:
            return None
        return RateLimitEntry.model_validate(model)

    async def create(
        self, key: str, *, window_start: datetime, expires_at: datetime
    ) -> RateLimitEntry | None:
        model = RateLimitEntryModel(
            key=key, count=1, window_start=window_start, expires_at=expires_at
        )
        self._session.add(model)
        try:
            await self._session.commit()
        except IntegrityError:
            # Another request created the key first.
            await self._session.rollback()
            return None
        except SQLAlchemyError:
            await self._session.rollback()
            raise
        return RateLimitEntry(key=key, count=1, window_start=window_start, expires_at=expires_at)

    async def reset(
        self,
        key: str,
        *,
        stale_before: datetime,
        window_start: datetime,
        expires_at: datetime,
    ) -> RateLimitEntry | None:
        statement = (
            update(RateLimitEntryModel)
            .where(
                RateLimitEntryModel.key == key,
                RateLimitEntryModel.window_start < stale_before,
            )
            .values(count=1, window_start=window_start, expires_at=expires_at)
            .execution_options(synchronize_session=False)
        )
        try:
            result = await self._session.execute(statement)
            await self._session.commit()
        except SQLAlchemyError:
            await self._session.rollback()
            raise
        if result.rowcount == 0:
            return None
        return RateLimitEntry(key=key, count=1, window_start=window_start, expires_at=expires_at)

    async def increment(self, key: str, *, limit: int) -> int | None:
        statement = (
            update(RateLimitEntryModel)
            .where(
                RateLimitEntryModel.key == key,
                RateLimitEntryModel.count < limit,
            )
            .values(count=RateLimitEntryModel.count + 1)
            .returning(RateLimitEntryModel.count)
            .execution_options(synchronize_session=False)
        )
        try:
            result = await self._session.execute(statement)
            new_count = result.scalar_one_or_none()
            await self._session.commit()
        except SQLAlchemyError:
            await self._session.rollback()
            raise
        return new_count

    async def delete_expired(self, now: datetime) -> int:
        try:
            result = await self._session.execute(
                delete(RateLimitEntryModel).where(RateLimitEntryModel.expires_at < now)
            )
            await self._session.commit()
        except SQLAlchemyError:
            await self._session.rollback()
            raise
        return result.rowcount or 0

    async def count(self) -> int:
        result = await self._session.execute(
            select(func.count()).select_from(RateLimitEntryModel)
        )
        return int(result.scalar_one())

    async def count_expired(self, now: datetime) -> int:
        result = await self._session.execute(
            select(func.count())
            .select_from(RateLimitEntryModel)
            .where(RateLimitEntryModel.expires_at < now)
        )
        return int(result.scalar_one())

    async def top_keys(self, limit: int) -> list[RateLimitKeyCount]:
        result = await self._session.execute(
            select(RateLimitEntryModel.key, RateLimitEntryModel.count)
            .order_by(RateLimitEntryModel.count.desc())
            .limit(limit)
        )
        return [RateLimitKeyCount(key=key, count=count) for key, count in result.all()]
