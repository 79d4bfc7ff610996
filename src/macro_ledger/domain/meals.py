"""Domain models for daily meal logs."""

import math
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import StrEnum
from uuid import UUID


class MealSlot(StrEnum):
    """Meal a food entry belongs to."""

    BREAKFAST = "breakfast"
    LUNCH = "lunch"
    DINNER = "dinner"
    SNACKS = "snacks"


MEAL_SLOTS: tuple[MealSlot, ...] = (
    MealSlot.BREAKFAST,
    MealSlot.LUNCH,
    MealSlot.DINNER,
    MealSlot.SNACKS,
)


def round_half_up(value: float) -> int:
    """Round to the nearest integer, with halves going up (2.5 -> 3)."""
    return math.floor(value + 0.5)


@dataclass(frozen=True)
class MacroTotals:
    """Calories and macronutrient grams."""

    calories: int = 0
    protein: int = 0
    carbs: int = 0
    fat: int = 0

    def __add__(self, other: "MacroTotals") -> "MacroTotals":
        return MacroTotals(
            calories=self.calories + other.calories,
            protein=self.protein + other.protein,
            carbs=self.carbs + other.carbs,
            fat=self.fat + other.fat,
        )

    def __sub__(self, other: "MacroTotals") -> "MacroTotals":
        return MacroTotals(
            calories=self.calories - other.calories,
            protein=self.protein - other.protein,
            carbs=self.carbs - other.carbs,
            fat=self.fat - other.fat,
        )


@dataclass(frozen=True)
class FoodEntry:
    """A stored food item assigned to a meal of a daily log."""

    id: UUID
    user_id: UUID
    daily_log_id: UUID
    meal: MealSlot
    name: str
    quantity: str
    calories: int
    protein: int
    carbs: int
    fat: int
    created_at: datetime | None = None

    @property
    def macros(self) -> MacroTotals:
        return MacroTotals(
            calories=self.calories,
            protein=self.protein,
            carbs=self.carbs,
            fat=self.fat,
        )


@dataclass(frozen=True)
class DailyLogRecord:
    """Daily log header row without its entries."""

    id: UUID
    user_id: UUID
    day: date
    totals: MacroTotals
    targets: MacroTotals
    created_at: datetime | None = None


@dataclass(frozen=True)
class DailyLog:
    """A materialized day: header, entries grouped by meal and totals."""

    id: UUID
    user_id: UUID
    day: date
    targets: MacroTotals
    breakfast: list[FoodEntry] = field(default_factory=list)
    lunch: list[FoodEntry] = field(default_factory=list)
    dinner: list[FoodEntry] = field(default_factory=list)
    snacks: list[FoodEntry] = field(default_factory=list)
    created_at: datetime | None = None

    @property
    def date_key(self) -> str:
        return self.day.isoformat()

    @property
    def totals(self) -> MacroTotals:
        """Totals are always derived from the current entries."""
        total = MacroTotals()
        for entry in self.entries:
            total = total + entry.macros
        return total

    @property
    def entries(self) -> list[FoodEntry]:
        return [*self.breakfast, *self.lunch, *self.dinner, *self.snacks]

    @property
    def is_empty(self) -> bool:
        return not self.entries

    def meal(self, slot: MealSlot) -> list[FoodEntry]:
        return getattr(self, slot.value)

    def find_entry(self, entry_id: UUID) -> FoodEntry | None:
        for entry in self.entries:
            if entry.id == entry_id:
                return entry
        return None


def build_daily_log(record: DailyLogRecord, entries: list[FoodEntry]) -> DailyLog:
    """Group entries by meal, preserving their stored order."""
    grouped: dict[MealSlot, list[FoodEntry]] = {slot: [] for slot in MEAL_SLOTS}
    for entry in entries:
        grouped[entry.meal].append(entry)
    return DailyLog(
        id=record.id,
        user_id=record.user_id,
        day=record.day,
        targets=record.targets,
        breakfast=grouped[MealSlot.BREAKFAST],
        lunch=grouped[MealSlot.LUNCH],
        dinner=grouped[MealSlot.DINNER],
        snacks=grouped[MealSlot.SNACKS],
        created_at=record.created_at,
    )


@dataclass(frozen=True)
class DayCalories:
    """Calories logged on a day against that day's calorie target."""

    day: date
    calories: int
    calorie_target: int
