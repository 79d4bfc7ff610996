"""Daily log persistence gateway."""

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import date
from typing import Protocol, TypeVar
from uuid import UUID

from macro_ledger.domain.dates import month_bounds
from macro_ledger.domain.errors import LedgerError, PersistenceError
from macro_ledger.domain.extraction import ExtractionResult, FoodItem
from macro_ledger.domain.meals import (
    DailyLog,
    DailyLogRecord,
    DayCalories,
    FoodEntry,
    MacroTotals,
    MealSlot,
    build_daily_log,
)
from macro_ledger.services.targets import TargetsService

_logger = logging.getLogger(__name__)

T = TypeVar("T")


class DailyLogRepository(Protocol):
    """Persistence interface for daily logs and their food entries."""

    def get_daily_log(self, user_id: UUID, day: date) -> DailyLogRecord | None:
        """Return the log header for a user's day."""

    def get_daily_log_by_id(self, daily_log_id: UUID) -> DailyLogRecord | None:
        """Return a log header by id."""

    def create_daily_log(
        self, user_id: UUID, day: date, targets: MacroTotals
    ) -> DailyLogRecord:
        """Create the log header for a day with a targets snapshot."""

    def list_food_entries(self, daily_log_id: UUID) -> list[FoodEntry]:
        """Return a day's entries in insertion order."""

    def replace_day_entries(
        self, user_id: UUID, daily_log_id: UUID, result: ExtractionResult
    ) -> None:
        """Atomically replace every entry of a day and store the new totals."""

    def add_food_entry(
        self, user_id: UUID, daily_log_id: UUID, meal: MealSlot, item: FoodItem
    ) -> FoodEntry:
        """Insert one entry."""

    def get_food_entry(self, entry_id: UUID) -> FoodEntry | None:
        """Return an entry by id."""

    def update_food_entry(
        self, entry_id: UUID, meal: MealSlot, item: FoodItem
    ) -> FoodEntry | None:
        """Update an entry's meal, description and macros."""

    def delete_food_entry(self, entry_id: UUID) -> None:
        """Delete one entry."""

    def update_totals(self, daily_log_id: UUID, totals: MacroTotals) -> None:
        """Store recomputed totals on the log header."""

    def update_targets_snapshot(self, daily_log_id: UUID, targets: MacroTotals) -> None:
        """Overwrite the targets snapshot of a log."""

    def list_day_totals(
        self, user_id: UUID, start: date, end: date
    ) -> list[DailyLogRecord]:
        """Return log headers between two dates, inclusive."""

    def earliest_log_date(self, user_id: UUID) -> date | None:
        """Return the first date the user has a log for."""


@dataclass
class DailyLogService:
    """Async gateway over the blocking daily log repository.

    Every call runs in a worker thread so a hanging request never blocks the
    event loop, and every storage failure surfaces as ``PersistenceError``.
    """

    repository: DailyLogRepository
    targets_service: TargetsService

    async def load_day(self, user_id: UUID, day: date) -> DailyLog:
        """Return the materialized day, creating its header on first access."""
        return await self._run(self._load_day, user_id, day, action="load_day")

    async def find_day(self, user_id: UUID, day: date) -> DailyLog | None:
        """Return the materialized day only if it was already created."""

        def find() -> DailyLog | None:
            record = self.repository.get_daily_log(user_id, day)
            if record is None:
                return None
            return build_daily_log(record, self.repository.list_food_entries(record.id))

        return await self._run(find, action="find_day")

    async def replace_day_entries(
        self, user_id: UUID, daily_log_id: UUID, result: ExtractionResult
    ) -> None:
        """Replace the day's entries with a complete extraction result."""
        await self._run(
            self.repository.replace_day_entries,
            user_id,
            daily_log_id,
            result,
            action="replace_day_entries",
        )

    async def add_entry(
        self, user_id: UUID, day: date, meal: MealSlot, item: FoodItem
    ) -> DailyLog:
        """Add one entry to a day and return the updated day."""

        def add() -> DailyLog:
            log = self._load_day(user_id, day)
            self.repository.add_food_entry(user_id, log.id, meal, item)
            return self._recompute(log.id)

        return await self._run(add, action="add_entry")

    async def update_entry(
        self,
        user_id: UUID,
        entry_id: UUID,
        item: FoodItem,
        meal: MealSlot | None = None,
    ) -> DailyLog | None:
        """Edit an entry and return its updated day, or None if it is missing."""

        def update() -> DailyLog | None:
            entry = self._owned_entry(user_id, entry_id)
            if entry is None:
                return None
            self.repository.update_food_entry(entry_id, meal or entry.meal, item)
            return self._recompute(entry.daily_log_id)

        return await self._run(update, action="update_entry")

    async def delete_entry(self, user_id: UUID, entry_id: UUID) -> DailyLog | None:
        """Delete an entry and return its updated day, or None if it is missing."""

        def delete() -> DailyLog | None:
            entry = self._owned_entry(user_id, entry_id)
            if entry is None:
                return None
            self.repository.delete_food_entry(entry_id)
            return self._recompute(entry.daily_log_id)

        return await self._run(delete, action="delete_entry")

    async def update_targets_snapshot(
        self, user_id: UUID, day: date, targets: MacroTotals
    ) -> None:
        """Overwrite the targets snapshot of an existing day."""

        def update() -> None:
            record = self.repository.get_daily_log(user_id, day)
            if record is not None:
                self.repository.update_targets_snapshot(record.id, targets)

        await self._run(update, action="update_targets_snapshot")

    async def month_calories(
        self, user_id: UUID, year: int, month: int
    ) -> list[DayCalories]:
        """Return calories per logged day of a month, for the calendar view."""
        start, end = month_bounds(year, month)
        records = await self._run(
            self.repository.list_day_totals, user_id, start, end, action="month"
        )
        return [
            DayCalories(
                day=record.day,
                calories=record.totals.calories,
                calorie_target=record.targets.calories,
            )
            for record in sorted(records, key=lambda record: record.day)
        ]

    async def earliest_log_date(self, user_id: UUID) -> date | None:
        return await self._run(
            self.repository.earliest_log_date, user_id, action="earliest_log_date"
        )

    def _load_day(self, user_id: UUID, day: date) -> DailyLog:
        record = self.repository.get_daily_log(user_id, day)
        if record is None:
            record = self._create_day(user_id, day)
        entries = self.repository.list_food_entries(record.id)
        return build_daily_log(record, entries)

    def _create_day(self, user_id: UUID, day: date) -> DailyLogRecord:
        targets = self.targets_service.get_or_create(user_id)
        try:
            return self.repository.create_daily_log(user_id, day, targets.values)
        except Exception:
            # Another writer may have created the (user, date) row first.
            existing = self.repository.get_daily_log(user_id, day)
            if existing is None:
                raise
            _logger.info("Daily log %s already existed, reusing it", day)
            return existing

    def _owned_entry(self, user_id: UUID, entry_id: UUID) -> FoodEntry | None:
        entry = self.repository.get_food_entry(entry_id)
        if entry is None or entry.user_id != user_id:
            return None
        return entry

    def _recompute(self, daily_log_id: UUID) -> DailyLog:
        record = self.repository.get_daily_log_by_id(daily_log_id)
        if record is None:
            raise PersistenceError(f"Daily log {daily_log_id} disappeared")
        entries = self.repository.list_food_entries(daily_log_id)
        log = build_daily_log(record, entries)
        self.repository.update_totals(daily_log_id, log.totals)
        return log

    async def _run(self, func: Callable[..., T], *args: object, action: str) -> T:
        try:
            return await asyncio.to_thread(func, *args)
        except LedgerError:
            raise
        except Exception as exc:
            _logger.exception("Daily log %s failed", action)
            raise PersistenceError(f"Daily log {action} failed: {exc}") from exc
