"""Three-of-four solver for daily macro targets.

Calories and macros are tied together by fixed energy densities, so any three
of the four values determine the fourth. The draft model below tracks which
field was last computed ("derived") rather than typed by the user.
"""

from collections.abc import Mapping
from dataclasses import dataclass, replace
from enum import StrEnum

from macro_ledger.domain.errors import TargetValidationError
from macro_ledger.domain.meals import MacroTotals, round_half_up


class MacroField(StrEnum):
    """Editable target field."""

    CALORIES = "calories"
    PROTEIN = "protein"
    CARBS = "carbs"
    FAT = "fat"


FIELDS: tuple[MacroField, ...] = (
    MacroField.CALORIES,
    MacroField.PROTEIN,
    MacroField.CARBS,
    MacroField.FAT,
)
KCAL_PER_GRAM: dict[MacroField, int] = {
    MacroField.PROTEIN: 4,
    MacroField.CARBS: 4,
    MacroField.FAT: 9,
}
REQUIRED_FOR_SOLVE = 3


def parse_value(raw: object) -> float | None:
    """Parse user input; blank or non-numeric input counts as unset."""
    if raw is None or isinstance(raw, bool):
        return None
    if isinstance(raw, int | float):
        return float(raw)
    if isinstance(raw, str):
        cleaned = raw.strip()
        if not cleaned:
            return None
        try:
            return float(cleaned)
        except ValueError:
            return None
    return None


def solve_targets(
    values: Mapping[MacroField, float | None],
) -> tuple[dict[MacroField, float | None], MacroField | None]:
    """Fill the missing field when exactly three are set.

    Returns the (possibly) completed values and the field that was computed,
    or ``None`` when nothing was solved.
    """
    resolved = {field: values.get(field) for field in FIELDS}
    missing = [field for field in FIELDS if resolved[field] is None]
    if len(FIELDS) - len(missing) != REQUIRED_FOR_SOLVE:
        return resolved, None

    target = missing[0]
    macro_kcal = sum(
        (resolved[field] or 0.0) * kcal
        for field, kcal in KCAL_PER_GRAM.items()
        if field is not target
    )
    if target is MacroField.CALORIES:
        computed = macro_kcal
    else:
        calories = resolved[MacroField.CALORIES] or 0.0
        computed = (calories - macro_kcal) / KCAL_PER_GRAM[target]
    resolved[target] = float(round_half_up(computed))
    return resolved, target


@dataclass(frozen=True)
class TargetDraft:
    """Immutable editing state of the four target fields."""

    calories: float | None = None
    protein: float | None = None
    carbs: float | None = None
    fat: float | None = None
    derived: MacroField | None = None

    @classmethod
    def from_values(cls, values: MacroTotals) -> "TargetDraft":
        return cls(
            calories=float(values.calories),
            protein=float(values.protein),
            carbs=float(values.carbs),
            fat=float(values.fat),
        )

    def value(self, field: MacroField) -> float | None:
        return getattr(self, field.value)

    def values(self) -> dict[MacroField, float | None]:
        return {field: self.value(field) for field in FIELDS}

    def is_derived(self, field: MacroField) -> bool:
        return self.derived is field

    def edit(self, **changes: object) -> "TargetDraft":
        """Apply user edits and re-solve when a single field changed."""
        if not changes:
            return self
        parsed = {MacroField(name): parse_value(raw) for name, raw in changes.items()}
        values = self.values()
        values.update(parsed)
        derived = self.derived
        if derived is not None and derived in parsed:
            derived = None

        if len(parsed) > 1:
            # Bulk edits invalidate the previous solution; solve() must be called.
            if derived is not None:
                values[derived] = None
            return self._with(values, None)

        if derived is not None:
            values[derived] = None
        elif self.derived in parsed:
            return self._with(values, None)
        solved, field = solve_targets(values)
        return self._with(solved, field)

    def solve(self) -> "TargetDraft":
        solved, field = solve_targets(self.values())
        if field is None:
            return self
        return self._with(solved, field)

    def finalize(self) -> MacroTotals:
        """Validate and return whole-number targets."""
        values = self.values()
        if any(value is None for value in values.values()):
            raise TargetValidationError("All four targets are required")
        if any(value < 0 for value in values.values() if value is not None):
            raise TargetValidationError("Values cannot be negative")
        if (values[MacroField.CALORIES] or 0) <= 0:
            raise TargetValidationError("Calories must be greater than 0")
        return MacroTotals(
            calories=round_half_up(values[MacroField.CALORIES] or 0),
            protein=round_half_up(values[MacroField.PROTEIN] or 0),
            carbs=round_half_up(values[MacroField.CARBS] or 0),
            fat=round_half_up(values[MacroField.FAT] or 0),
        )

    def _with(
        self, values: Mapping[MacroField, float | None], derived: MacroField | None
    ) -> "TargetDraft":
        return replace(
            self,
            calories=values[MacroField.CALORIES],
            protein=values[MacroField.PROTEIN],
            carbs=values[MacroField.CARBS],
            fat=values[MacroField.FAT],
            derived=derived,
        )
