"""Supabase repository for macro targets."""

from dataclasses import dataclass
from datetime import UTC, datetime
from uuid import UUID

from supabase import Client

from macro_ledger.domain.meals import MacroTotals
from macro_ledger.domain.targets import MacroTargets
from macro_ledger.services.targets import TargetsRepository

_COLUMNS = "user_id, calories, protein, carbs, fat, updated_at"


@dataclass
class SupabaseTargetsRepository(TargetsRepository):
    """Supabase implementation for macro targets."""

    client: Client

    def get_targets(self, user_id: UUID) -> MacroTargets | None:
        """Return the stored targets for a user."""
        response = (
            self.client.table("macro_targets")
            .select(_COLUMNS)
            .eq("user_id", str(user_id))
            .limit(1)
            .execute()
        )
        if not response.data:
            return None
        return _parse_targets(response.data[0])

    def create_targets(self, user_id: UUID, values: MacroTotals) -> MacroTargets:
        """Insert the targets row for a user."""
        response = (
            self.client.table("macro_targets")
            .insert({"user_id": str(user_id), **_values_payload(values)})
            .execute()
        )
        if not response.data:
            raise RuntimeError("Failed to create macro targets")
        return _parse_targets(response.data[0])

    def update_targets(self, user_id: UUID, values: MacroTotals) -> MacroTargets:
        """Update the user's targets."""
        response = (
            self.client.table("macro_targets")
            .update(
                {
                    **_values_payload(values),
                    "updated_at": datetime.now(tz=UTC).isoformat(),
                }
            )
            .eq("user_id", str(user_id))
            .execute()
        )
        if not response.data:
            raise RuntimeError("Failed to update macro targets")
        return _parse_targets(response.data[0])


def _values_payload(values: MacroTotals) -> dict[str, int]:
    return {
        "calories": values.calories,
        "protein": values.protein,
        "carbs": values.carbs,
        "fat": values.fat,
    }


def _parse_targets(row: dict[str, object]) -> MacroTargets:
    updated_at = row.get("updated_at")
    return MacroTargets(
        user_id=UUID(str(row["user_id"])),
        calories=int(row.get("calories", 0)),
        protein=int(row.get("protein", 0)),
        carbs=int(row.get("carbs", 0)),
        fat=int(row.get("fat", 0)),
        updated_at=datetime.fromisoformat(updated_at)
        if isinstance(updated_at, str)
        else None,
    )
