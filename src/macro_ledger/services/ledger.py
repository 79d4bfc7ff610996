"""Ledger service: every read and write of a user's days goes through here.

Reads are served from the day cache; every write that changes a day's entries
or targets updates or invalidates that day in the cache before returning.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import date, datetime
from uuid import UUID

from macro_ledger.domain.dates import previous_days
from macro_ledger.domain.errors import LedgerError
from macro_ledger.domain.extraction import ExtractionResult, FoodItem
from macro_ledger.domain.meals import DailyLog, DayCalories, MacroTotals, MealSlot
from macro_ledger.domain.targets import MacroTargets
from macro_ledger.services.daily_logs import DailyLogService
from macro_ledger.services.day_cache import DayCache
from macro_ledger.services.targets import TargetsService

_logger = logging.getLogger(__name__)


@dataclass
class LedgerService:
    """Cache-aware facade over daily logs and targets."""

    daily_logs: DailyLogService
    targets_service: TargetsService
    cache: DayCache
    context_days: int = 5
    prefetch_window_days: int = 7

    def now(self) -> datetime:
        return self.cache.now()

    def today(self) -> date:
        return self.cache.today()

    async def get_day(self, user_id: UUID, day: date | None = None) -> DailyLog:
        return await self.cache.get(user_id, day)

    async def refresh(self, user_id: UUID, day: date | None = None) -> DailyLog:
        """Drop the cached copy and reload the day from storage."""
        resolved = day or self.today()
        self.cache.invalidate(user_id, resolved)
        return await self.cache.get(user_id, resolved)

    def invalidate(self, user_id: UUID, day: date | None = None) -> None:
        self.cache.invalidate(user_id, day)

    def prefetch(
        self, user_id: UUID, center: date | None = None
    ) -> asyncio.Task[None] | None:
        return self.cache.prefetch(user_id, center, self.prefetch_window_days)

    async def prior_days(self, user_id: UUID, day: date) -> list[DailyLog]:
        """Return the non-empty days before ``day``, most recent first."""
        logs = []
        for previous in previous_days(day, self.context_days):
            log = self.cache.peek(user_id, previous)
            if log is None:
                log = await self.daily_logs.find_day(user_id, previous)
            if log is not None and not log.is_empty:
                logs.append(log)
        return logs

    async def apply_extraction(
        self, user_id: UUID, log: DailyLog, result: ExtractionResult
    ) -> DailyLog | None:
        """Persist an extraction result as the complete new state of a day.

        Returns the reloaded day, or None when the write succeeded but the
        reload did not.
        """
        await self.daily_logs.replace_day_entries(user_id, log.id, result)
        self.cache.invalidate(user_id, log.day)
        try:
            return await self.cache.get(user_id, log.day)
        except LedgerError:
            _logger.warning("Saved %s but failed to reload it", log.date_key)
            return None

    async def add_entry(
        self, user_id: UUID, day: date, meal: MealSlot, item: FoodItem
    ) -> DailyLog:
        self.cache.invalidate(user_id, day)
        log = await self.daily_logs.add_entry(user_id, day, meal, item)
        self.cache.put(log)
        return log

    async def edit_entry(
        self,
        user_id: UUID,
        entry_id: UUID,
        item: FoodItem,
        meal: MealSlot | None = None,
    ) -> DailyLog | None:
        log = await self.daily_logs.update_entry(user_id, entry_id, item, meal)
        if log is not None:
            self.cache.put(log)
        return log

    async def delete_entry(self, user_id: UUID, entry_id: UUID) -> DailyLog | None:
        log = await self.daily_logs.delete_entry(user_id, entry_id)
        if log is not None:
            self.cache.put(log)
        return log

    async def get_targets(self, user_id: UUID) -> MacroTargets:
        return await asyncio.to_thread(self.targets_service.get_or_create, user_id)

    async def update_targets(self, user_id: UUID, values: MacroTotals) -> MacroTargets:
        """Store new targets and apply them to today's snapshot only.

        Earlier days keep the targets that were in effect when they were
        created.
        """
        targets = await asyncio.to_thread(
            self.targets_service.update, user_id, values
        )
        today = self.today()
        await self.daily_logs.update_targets_snapshot(user_id, today, targets.values)
        self.cache.invalidate(user_id, today)
        return targets

    async def month_calories(
        self, user_id: UUID, year: int, month: int
    ) -> list[DayCalories]:
        return await self.daily_logs.month_calories(user_id, year, month)

    async def earliest_log_date(self, user_id: UUID) -> date | None:
        return await self.daily_logs.earliest_log_date(user_id)
