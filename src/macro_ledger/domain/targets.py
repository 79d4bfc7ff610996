"""Macro target domain models."""

from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from macro_ledger.domain.meals import MacroTotals


@dataclass(frozen=True)
class MacroTargets:
    """Live daily macro targets of a user."""

    user_id: UUID
    calories: int
    protein: int
    carbs: int
    fat: int
    updated_at: datetime | None = None

    @property
    def values(self) -> MacroTotals:
        return MacroTotals(
            calories=self.calories,
            protein=self.protein,
            carbs=self.carbs,
            fat=self.fat,
        )
