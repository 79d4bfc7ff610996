"""Pydantic models for API request and response payloads."""

from dataclasses import asdict
from datetime import date

from pydantic import BaseModel, ConfigDict, Field

from macro_ledger.domain.extraction import DEFAULT_QUANTITY, FoodItem
from macro_ledger.domain.meals import MEAL_SLOTS, DailyLog, FoodEntry, MealSlot
from macro_ledger.domain.models import UserRecord
from macro_ledger.domain.targets import MacroTargets
from macro_ledger.services.lifecycle import AppLifecycle
from macro_ledger.services.orchestrator import LoggingState, LogOutcome


class UserPayload(BaseModel):
    """User profile payload."""

    first_name: str = Field(min_length=1)
    last_name: str = ""


class TargetsPayload(BaseModel):
    """Target edit payload; any three of the four fields determine the fourth."""

    calories: float | str | None = None
    protein: float | str | None = None
    carbs: float | str | None = None
    fat: float | str | None = None


class EntryPayload(BaseModel):
    """Manually entered or edited food entry."""

    model_config = ConfigDict(str_strip_whitespace=True)

    meal: MealSlot | None = None
    name: str = Field(min_length=1)
    quantity: str | None = DEFAULT_QUANTITY
    calories: float = 0
    protein: float = 0
    carbs: float = 0
    fat: float = 0

    def to_item(self) -> FoodItem:
        return FoodItem.model_validate(self.model_dump(exclude={"meal"}))


class LogTextPayload(BaseModel):
    """Natural-language description of what the user ate."""

    text: str
    day: date | None = None


class LifecyclePayload(BaseModel):
    """Foreground/background notification from the client."""

    state: AppLifecycle


def user_response(user: UserRecord) -> dict[str, object]:
    return {
        "id": str(user.id),
        "first_name": user.first_name,
        "last_name": user.last_name,
    }


def targets_response(
    targets: MacroTargets, derived: str | None = None
) -> dict[str, object]:
    return {
        "calories": targets.calories,
        "protein": targets.protein,
        "carbs": targets.carbs,
        "fat": targets.fat,
        "derived": derived,
    }


def entry_response(entry: FoodEntry) -> dict[str, object]:
    return {
        "id": str(entry.id),
        "meal": entry.meal.value,
        "name": entry.name,
        "quantity": entry.quantity,
        "calories": entry.calories,
        "protein": entry.protein,
        "carbs": entry.carbs,
        "fat": entry.fat,
    }


def day_response(log: DailyLog) -> dict[str, object]:
    """Serialize a day with its meals, totals and targets snapshot."""
    return {
        "id": str(log.id),
        "date": log.date_key,
        "meals": {
            slot.value: [entry_response(entry) for entry in log.meal(slot)]
            for slot in MEAL_SLOTS
        },
        "totals": asdict(log.totals),
        "targets": asdict(log.targets),
    }


def state_response(state: LoggingState) -> dict[str, object]:
    return asdict(state)


def outcome_response(outcome: LogOutcome) -> dict[str, object]:
    return {
        "status": outcome.status.value,
        "error": outcome.error,
        "day": day_response(outcome.log) if outcome.log is not None else None,
        "previous_totals": asdict(outcome.previous_totals)
        if outcome.previous_totals is not None
        else None,
        "delta": asdict(outcome.delta) if outcome.delta is not None else None,
    }
