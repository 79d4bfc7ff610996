"""Shared test fixtures."""

import asyncio
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass, field, replace
from datetime import UTC, date, datetime
from uuid import UUID, uuid4
from zoneinfo import ZoneInfo

import pytest

from macro_ledger.config import Settings
from macro_ledger.containers import AppContainer, build_orchestrators
from macro_ledger.domain.extraction import ExtractionResult, FoodItem
from macro_ledger.domain.meals import (
    DailyLogRecord,
    FoodEntry,
    MacroTotals,
    MealSlot,
)
from macro_ledger.domain.models import UserRecord
from macro_ledger.domain.targets import MacroTargets
from macro_ledger.services.capture import SpeechTransducer
from macro_ledger.services.daily_logs import DailyLogRepository, DailyLogService
from macro_ledger.services.day_cache import DayCache
from macro_ledger.services.extraction import ExtractionClient, ExtractionService
from macro_ledger.services.ledger import LedgerService
from macro_ledger.services.targets import TargetsRepository, TargetsService
from macro_ledger.services.users import UserRepository, UserService

EMPTY_DAY: dict[str, object] = {
    "breakfast": [],
    "lunch": [],
    "dinner": [],
    "snacks": [],
}


def food(  # noqa: PLR0913
    name: str, quantity: str, calories: int, protein: int, carbs: int, fat: int
) -> dict[str, object]:
    """Build a raw extraction item."""
    return {
        "name": name,
        "quantity": quantity,
        "calories": calories,
        "protein": protein,
        "carbs": carbs,
        "fat": fat,
    }


def day_payload(**meals: list[dict[str, object]]) -> dict[str, object]:
    return {**EMPTY_DAY, **meals}


def fixed_clock(moment: datetime) -> Callable[[], datetime]:
    return lambda: moment


@dataclass
class InMemoryUserRepository(UserRepository):
    """In-memory user repository for tests."""

    users: dict[UUID, UserRecord] = field(default_factory=dict)

    def get_user(self, user_id: UUID) -> UserRecord | None:
        return self.users.get(user_id)

    def create_user(self, first_name: str, last_name: str) -> UserRecord:
        user = UserRecord(id=uuid4(), first_name=first_name, last_name=last_name)
        self.users[user.id] = user
        return user

    def update_user(
        self, user_id: UUID, first_name: str, last_name: str
    ) -> UserRecord | None:
        if user_id not in self.users:
            return None
        user = UserRecord(id=user_id, first_name=first_name, last_name=last_name)
        self.users[user_id] = user
        return user


@dataclass
class InMemoryTargetsRepository(TargetsRepository):
    """In-memory targets repository for tests."""

    targets: dict[UUID, MacroTargets] = field(default_factory=dict)

    def get_targets(self, user_id: UUID) -> MacroTargets | None:
        return self.targets.get(user_id)

    def create_targets(self, user_id: UUID, values: MacroTotals) -> MacroTargets:
        return self._store(user_id, values)

    def update_targets(self, user_id: UUID, values: MacroTotals) -> MacroTargets:
        return self._store(user_id, values)

    def _store(self, user_id: UUID, values: MacroTotals) -> MacroTargets:
        targets = MacroTargets(
            user_id=user_id,
            calories=values.calories,
            protein=values.protein,
            carbs=values.carbs,
            fat=values.fat,
            updated_at=datetime.now(tz=UTC),
        )
        self.targets[user_id] = targets
        return targets


@dataclass
class InMemoryDailyLogRepository(DailyLogRepository):
    """In-memory daily log repository for tests.

    ``replace_day_entries`` builds the new rows before touching storage so a
    failure leaves the day unchanged, like the database transaction does.
    ``conflict_on_create`` stores the header and then fails, the way an insert
    that lost a race against another writer does.
    """

    logs: dict[UUID, DailyLogRecord] = field(default_factory=dict)
    entries: dict[UUID, FoodEntry] = field(default_factory=dict)
    replace_calls: int = 0
    fail_replace: bool = False
    fail_reads: bool = False
    replace_gate: threading.Event | None = None
    read_delay: float = 0.0
    conflict_on_create: bool = False
    loads: list[date] = field(default_factory=list)

    def get_daily_log(self, user_id: UUID, day: date) -> DailyLogRecord | None:
        if self.fail_reads:
            raise RuntimeError("database unavailable")
        if self.read_delay:
            time.sleep(self.read_delay)
        self.loads.append(day)
        for record in self.logs.values():
            if record.user_id == user_id and record.day == day:
                return record
        return None

    def get_daily_log_by_id(self, daily_log_id: UUID) -> DailyLogRecord | None:
        return self.logs.get(daily_log_id)

    def create_daily_log(
        self, user_id: UUID, day: date, targets: MacroTotals
    ) -> DailyLogRecord:
        record = DailyLogRecord(
            id=uuid4(),
            user_id=user_id,
            day=day,
            totals=MacroTotals(),
            targets=targets,
            created_at=datetime.now(tz=UTC),
        )
        self.logs[record.id] = record
        if self.conflict_on_create:
            raise RuntimeError("duplicate key value violates unique constraint")
        return record

    def list_food_entries(self, daily_log_id: UUID) -> list[FoodEntry]:
        return [
            entry
            for entry in self.entries.values()
            if entry.daily_log_id == daily_log_id
        ]

    def replace_day_entries(
        self, user_id: UUID, daily_log_id: UUID, result: ExtractionResult
    ) -> None:
        if self.replace_gate is not None:
            self.replace_gate.wait(timeout=5)
        self.replace_calls += 1
        if self.fail_replace:
            raise RuntimeError("transaction aborted")
        new_entries = [
            self._entry(user_id, daily_log_id, slot, item)
            for slot, item in result.items()
        ]
        kept = {
            entry_id: entry
            for entry_id, entry in self.entries.items()
            if entry.daily_log_id != daily_log_id
        }
        kept.update({entry.id: entry for entry in new_entries})
        self.entries = kept
        self.update_totals(daily_log_id, result.totals)

    def add_food_entry(
        self, user_id: UUID, daily_log_id: UUID, meal: MealSlot, item: FoodItem
    ) -> FoodEntry:
        entry = self._entry(user_id, daily_log_id, meal, item)
        self.entries[entry.id] = entry
        return entry

    def get_food_entry(self, entry_id: UUID) -> FoodEntry | None:
        return self.entries.get(entry_id)

    def update_food_entry(
        self, entry_id: UUID, meal: MealSlot, item: FoodItem
    ) -> FoodEntry | None:
        current = self.entries.get(entry_id)
        if current is None:
            return None
        updated = replace(
            current,
            meal=meal,
            name=item.name,
            quantity=item.quantity,
            calories=item.calories,
            protein=item.protein,
            carbs=item.carbs,
            fat=item.fat,
        )
        self.entries[entry_id] = updated
        return updated

    def delete_food_entry(self, entry_id: UUID) -> None:
        self.entries.pop(entry_id, None)

    def update_totals(self, daily_log_id: UUID, totals: MacroTotals) -> None:
        self.logs[daily_log_id] = replace(self.logs[daily_log_id], totals=totals)

    def update_targets_snapshot(self, daily_log_id: UUID, targets: MacroTotals) -> None:
        self.logs[daily_log_id] = replace(self.logs[daily_log_id], targets=targets)

    def list_day_totals(
        self, user_id: UUID, start: date, end: date
    ) -> list[DailyLogRecord]:
        return [
            record
            for record in self.logs.values()
            if record.user_id == user_id and start <= record.day <= end
        ]

    def earliest_log_date(self, user_id: UUID) -> date | None:
        days = [
            record.day for record in self.logs.values() if record.user_id == user_id
        ]
        return min(days) if days else None

    def stored_totals(self, daily_log_id: UUID) -> MacroTotals:
        return self.logs[daily_log_id].totals

    def _entry(
        self, user_id: UUID, daily_log_id: UUID, meal: MealSlot, item: FoodItem
    ) -> FoodEntry:
        return FoodEntry(
            id=uuid4(),
            user_id=user_id,
            daily_log_id=daily_log_id,
            meal=meal,
            name=item.name,
            quantity=item.quantity,
            calories=item.calories,
            protein=item.protein,
            carbs=item.carbs,
            fat=item.fat,
            created_at=datetime.now(tz=UTC),
        )


@dataclass
class FakeExtractionClient(ExtractionClient):
    """Fake extraction client returning queued payloads or raising errors."""

    responses: list[object] = field(default_factory=list)
    calls: list[dict[str, object]] = field(default_factory=list)
    gate: asyncio.Event | None = None

    async def extract(  # noqa: PLR0913
        self,
        *,
        model: str,
        reasoning_effort: str | None,
        store: bool,
        web_search: bool,
        instructions: str,
        user_prompt: str,
        schema: dict[str, object],
        timeout: float,
    ) -> dict[str, object]:
        self.calls.append(
            {
                "model": model,
                "web_search": web_search,
                "instructions": instructions,
                "user_prompt": user_prompt,
                "schema": schema,
                "timeout": timeout,
            }
        )
        if self.gate is not None:
            await self.gate.wait()
        if not self.responses:
            return dict(EMPTY_DAY)
        response = self.responses.pop(0)
        if isinstance(response, BaseException):
            raise response
        return response  # type: ignore[return-value]


@dataclass
class FakeTransducer(SpeechTransducer):
    """Fake speech transducer that records calls."""

    locales: list[str] = field(default_factory=list)
    stop_calls: int = 0
    cancel_calls: int = 0
    on_stop: Callable[[], None] | None = None

    async def start(self, locale: str) -> None:
        self.locales.append(locale)

    async def stop(self) -> None:
        self.stop_calls += 1
        if self.on_stop is not None:
            self.on_stop()

    async def cancel(self) -> None:
        self.cancel_calls += 1


@dataclass
class SleepRecorder:
    """Replacement for ``asyncio.sleep`` that records requested delays."""

    delays: list[float] = field(default_factory=list)

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


def make_extraction_service(
    client: ExtractionClient, sleep: SleepRecorder | None = None, **overrides
) -> ExtractionService:
    return ExtractionService(
        client=client,
        model="gpt-5.2",
        reasoning_effort="low",
        store=False,
        sleep=sleep or SleepRecorder(),
        **overrides,
    )


def make_ledger(
    daily_log_repository: InMemoryDailyLogRepository,
    targets_repository: InMemoryTargetsRepository | None = None,
    timezone: str = "UTC",
    clock: Callable[[], datetime] | None = None,
) -> LedgerService:
    targets_service = TargetsService(targets_repository or InMemoryTargetsRepository())
    daily_log_service = DailyLogService(daily_log_repository, targets_service)
    cache = DayCache(loader=daily_log_service.load_day, timezone=ZoneInfo(timezone))
    if clock is not None:
        cache.clock = clock
    return LedgerService(
        daily_logs=daily_log_service,
        targets_service=targets_service,
        cache=cache,
    )


@pytest.fixture
def settings() -> Settings:
    return Settings(
        supabase_url="https://example.supabase.co",
        supabase_service_key="service-key",
        openai_api_key="openai-key",
    )


@pytest.fixture
def user_repository() -> InMemoryUserRepository:
    return InMemoryUserRepository()


@pytest.fixture
def targets_repository() -> InMemoryTargetsRepository:
    return InMemoryTargetsRepository()


@pytest.fixture
def daily_log_repository() -> InMemoryDailyLogRepository:
    return InMemoryDailyLogRepository()


@pytest.fixture
def extraction_client() -> FakeExtractionClient:
    return FakeExtractionClient()


@pytest.fixture
def container(
    settings: Settings,
    user_repository: InMemoryUserRepository,
    targets_repository: InMemoryTargetsRepository,
    daily_log_repository: InMemoryDailyLogRepository,
    extraction_client: FakeExtractionClient,
) -> AppContainer:
    ledger_service = make_ledger(daily_log_repository, targets_repository)
    user_service = UserService(user_repository, ledger_service.targets_service)
    extraction_service = make_extraction_service(extraction_client)
    orchestrators = build_orchestrators(settings, ledger_service, extraction_service)

    async def close_resources() -> None:
        return None

    return AppContainer(
        settings=settings,
        user_service=user_service,
        targets_service=ledger_service.targets_service,
        daily_log_service=ledger_service.daily_logs,
        ledger_service=ledger_service,
        extraction_service=extraction_service,
        orchestrators=orchestrators,
        close_resources=close_resources,
    )
