"""Day-indexed cache of materialized daily logs."""

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass, field
from datetime import UTC, date, datetime
from uuid import UUID
from zoneinfo import ZoneInfo

from macro_ledger.domain.dates import date_key, local_day, local_now, trailing_days
from macro_ledger.domain.meals import DailyLog

_logger = logging.getLogger(__name__)

DayLoader = Callable[[UUID, date], Awaitable[DailyLog]]
CacheKey = tuple[UUID, str]

MAX_LOAD_ATTEMPTS = 3


def _utc_now() -> datetime:
    return datetime.now(tz=UTC)


@dataclass
class DayCache:
    """Cache of daily logs keyed by user and local calendar date.

    Each key carries a generation counter that is bumped on every write or
    invalidation, so a load that started before an invalidation never stores
    its result.
    """

    loader: DayLoader
    timezone: ZoneInfo = field(default_factory=lambda: ZoneInfo("UTC"))
    clock: Callable[[], datetime] = _utc_now
    _entries: dict[CacheKey, DailyLog] = field(default_factory=dict, init=False)
    _generations: dict[CacheKey, int] = field(default_factory=dict, init=False)
    _user_epochs: dict[UUID, int] = field(default_factory=dict, init=False)
    _tasks: set[asyncio.Task[None]] = field(default_factory=set, init=False)
    _loading: dict[CacheKey, asyncio.Task[DailyLog]] = field(
        default_factory=dict, init=False
    )

    def now(self) -> datetime:
        """Return the current local wall-clock time."""
        return local_now(self.timezone, self.clock())

    def today(self) -> date:
        """Return today's local date."""
        return local_day(self.timezone, self.clock())

    def peek(self, user_id: UUID, day: date) -> DailyLog | None:
        return self._entries.get(_key(user_id, day))

    async def get(self, user_id: UUID, day: date | None = None) -> DailyLog:
        """Return a day, loading it through the loader on a miss.

        Concurrent misses for the same key share one load.
        """
        resolved = day or self.today()
        key = _key(user_id, resolved)
        cached = self._entries.get(key)
        if cached is not None:
            return cached

        pending = self._loading.get(key)
        if pending is None:
            pending = asyncio.create_task(self._load(key, user_id, resolved))
            self._loading[key] = pending
            pending.add_done_callback(lambda task: self._forget_load(key, task))
        return await asyncio.shield(pending)

    def put(self, log: DailyLog) -> None:
        """Store a freshly materialized day."""
        key = _key(log.user_id, log.day)
        self._bump(key)
        self._store(key, log)

    def invalidate(self, user_id: UUID, day: date | None = None) -> None:
        """Drop one day, or every day of the user when ``day`` is None."""
        if day is not None:
            key = _key(user_id, day)
            self._bump(key)
            self._entries.pop(key, None)
            return
        self._user_epochs[user_id] = self._user_epochs.get(user_id, 0) + 1
        for key in [key for key in self._entries if key[0] == user_id]:
            self._entries.pop(key, None)

    def prefetch(
        self, user_id: UUID, center: date | None = None, window: int = 7
    ) -> asyncio.Task[None] | None:
        """Load the trailing ``window`` days in the background.

        Days after today and days already cached are skipped. Returns the
        scheduled task, or None when there is nothing to load.
        """
        today = self.today()
        end = min(center or today, today)
        missing = [
            day
            for day in trailing_days(end, window)
            if _key(user_id, day) not in self._entries
        ]
        if not missing:
            return None
        task = asyncio.create_task(self._prefetch(user_id, missing))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _prefetch(self, user_id: UUID, days: Iterable[date]) -> None:
        for day in days:
            try:
                await self.get(user_id, day)
            except Exception:
                _logger.exception("Prefetch failed for %s", date_key(day))

    async def _load(self, key: CacheKey, user_id: UUID, day: date) -> DailyLog:
        token = self._token(key)
        log = await self.loader(user_id, day)
        attempts = 1
        while self._token(key) != token:
            # Invalidated while loading; the result may predate the write.
            cached = self._entries.get(key)
            if cached is not None:
                return cached
            if attempts >= MAX_LOAD_ATTEMPTS:
                _logger.warning("Day %s kept changing while loading", key[1])
                return log
            token = self._token(key)
            log = await self.loader(user_id, day)
            attempts += 1
        self._store(key, log)
        return log

    def _forget_load(self, key: CacheKey, task: asyncio.Task[DailyLog]) -> None:
        if self._loading.get(key) is task:
            del self._loading[key]

    def _token(self, key: CacheKey) -> tuple[int, int]:
        return self._user_epochs.get(key[0], 0), self._generations.get(key, 0)

    def _bump(self, key: CacheKey) -> None:
        self._generations[key] = self._generations.get(key, 0) + 1

    def _store(self, key: CacheKey, log: DailyLog) -> None:
        self._entries[key] = log


def _key(user_id: UUID, day: date) -> CacheKey:
    return user_id, date_key(day)
