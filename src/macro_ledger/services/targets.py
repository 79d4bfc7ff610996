"""Macro targets service."""

from dataclasses import dataclass, field
from typing import Protocol
from uuid import UUID

from macro_ledger.domain.errors import TargetValidationError
from macro_ledger.domain.meals import MacroTotals
from macro_ledger.domain.targets import MacroTargets

DEFAULT_TARGETS = MacroTotals(calories=2700, protein=150, carbs=300, fat=90)


class TargetsRepository(Protocol):
    """Persistence interface for macro targets."""

    def get_targets(self, user_id: UUID) -> MacroTargets | None:
        """Return the user's live targets if set."""

    def create_targets(self, user_id: UUID, values: MacroTotals) -> MacroTargets:
        """Create the user's targets record."""

    def update_targets(self, user_id: UUID, values: MacroTotals) -> MacroTargets:
        """Replace the user's targets."""


@dataclass
class TargetsService:
    """Service for the single live targets record of each user."""

    repository: TargetsRepository
    defaults: MacroTotals = field(default=DEFAULT_TARGETS)

    def get_or_create(self, user_id: UUID) -> MacroTargets:
        """Return the user's targets, creating the defaults when missing."""
        existing = self.repository.get_targets(user_id)
        if existing is not None:
            return existing
        return self.repository.create_targets(user_id, self.defaults)

    def update(self, user_id: UUID, values: MacroTotals) -> MacroTargets:
        """Persist new targets for a user."""
        validate_targets(values)
        if self.repository.get_targets(user_id) is None:
            return self.repository.create_targets(user_id, values)
        return self.repository.update_targets(user_id, values)


def validate_targets(values: MacroTotals) -> None:
    if min(values.protein, values.carbs, values.fat) < 0:
        raise TargetValidationError("Values cannot be negative")
    if values.calories <= 0:
        raise TargetValidationError("Calories must be greater than 0")
