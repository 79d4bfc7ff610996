"""Models for structured food extraction results."""

from pydantic import BaseModel, Field, field_validator

from macro_ledger.domain.meals import (
    MEAL_SLOTS,
    MacroTotals,
    MealSlot,
    round_half_up,
)

DEFAULT_QUANTITY = "1 serving"


class FoodItem(BaseModel):
    """Single food item with whole-number macros."""

    name: str = Field(min_length=1)
    quantity: str = DEFAULT_QUANTITY
    calories: int = 0
    protein: int = 0
    carbs: int = 0
    fat: int = 0

    @field_validator("name", mode="before")
    @classmethod
    def _strip_name(cls, value: object) -> object:
        if isinstance(value, str):
            return value.strip()
        return value

    @field_validator("quantity", mode="before")
    @classmethod
    def _default_quantity(cls, value: object) -> object:
        if value is None or (isinstance(value, str) and not value.strip()):
            return DEFAULT_QUANTITY
        return value

    @field_validator("calories", "protein", "carbs", "fat", mode="before")
    @classmethod
    def _round_macro(cls, value: object) -> int:
        if isinstance(value, bool) or value is None:
            return 0
        if isinstance(value, int | float):
            return max(0, round_half_up(value))
        if isinstance(value, str):
            try:
                return max(0, round_half_up(float(value)))
            except ValueError:
                return 0
        return 0

    @property
    def macros(self) -> MacroTotals:
        return MacroTotals(
            calories=self.calories,
            protein=self.protein,
            carbs=self.carbs,
            fat=self.fat,
        )


class ExtractionResult(BaseModel):
    """Complete state of a day's four meals as returned by extraction."""

    breakfast: list[FoodItem]
    lunch: list[FoodItem]
    dinner: list[FoodItem]
    snacks: list[FoodItem]

    def meal(self, slot: MealSlot) -> list[FoodItem]:
        return getattr(self, slot.value)

    def items(self) -> list[tuple[MealSlot, FoodItem]]:
        """Return every item with its meal, in meal order."""
        return [(slot, item) for slot in MEAL_SLOTS for item in self.meal(slot)]

    @property
    def totals(self) -> MacroTotals:
        total = MacroTotals()
        for _, item in self.items():
            total = total + item.macros
        return total
