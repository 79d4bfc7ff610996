"""Supabase repository for daily logs and food entries."""

from dataclasses import dataclass
from datetime import date, datetime
from uuid import UUID

from supabase import Client

from macro_ledger.domain.extraction import ExtractionResult, FoodItem
from macro_ledger.domain.meals import (
    DailyLogRecord,
    FoodEntry,
    MacroTotals,
    MealSlot,
)
from macro_ledger.services.daily_logs import DailyLogRepository

_LOG_COLUMNS = (
    "id, user_id, date, total_calories, total_protein, total_carbs, total_fat, "
    "target_calories, target_protein, target_carbs, target_fat, created_at"
)
_ENTRY_COLUMNS = (
    "id, user_id, daily_log_id, meal_type, name, quantity, calories, protein, "
    "carbs, fat, created_at"
)


@dataclass
class SupabaseDailyLogRepository(DailyLogRepository):
    """Supabase implementation for daily logs.

    ``replace_day_entries`` calls a Postgres function of the same name:

        replace_day_entries(
            p_user_id uuid, p_daily_log_id uuid, p_entries jsonb, p_totals jsonb
        ) returns void

    In one transaction it deletes every ``food_entries`` row of the log,
    inserts one row per element of ``p_entries`` (``meal_type``, ``name``,
    ``quantity``, the four macros and ``position``) and copies the
    ``total_*`` keys of ``p_totals`` onto the ``daily_logs`` row. Rows inserted
    together share one ``created_at``, so entries are read back ordered by
    ``created_at`` and then ``position``. Entries added one at a time leave
    ``position`` null.
    """

    client: Client

    def get_daily_log(self, user_id: UUID, day: date) -> DailyLogRecord | None:
        """Return the log header for a user's day."""
        response = (
            self.client.table("daily_logs")
            .select(_LOG_COLUMNS)
            .eq("user_id", str(user_id))
            .eq("date", day.isoformat())
            .limit(1)
            .execute()
        )
        if not response.data:
            return None
        return _parse_log(response.data[0])

    def get_daily_log_by_id(self, daily_log_id: UUID) -> DailyLogRecord | None:
        """Return a log header by id."""
        response = (
            self.client.table("daily_logs")
            .select(_LOG_COLUMNS)
            .eq("id", str(daily_log_id))
            .limit(1)
            .execute()
        )
        if not response.data:
            return None
        return _parse_log(response.data[0])

    def create_daily_log(
        self, user_id: UUID, day: date, targets: MacroTotals
    ) -> DailyLogRecord:
        """Create a log header with zero totals and a targets snapshot."""
        response = (
            self.client.table("daily_logs")
            .insert(
                {
                    "user_id": str(user_id),
                    "date": day.isoformat(),
                    **_totals_payload(MacroTotals()),
                    **_targets_payload(targets),
                }
            )
            .execute()
        )
        if not response.data:
            raise RuntimeError("Failed to create daily log")
        return _parse_log(response.data[0])

    def list_food_entries(self, daily_log_id: UUID) -> list[FoodEntry]:
        """Return entries for a daily log in insertion order."""
        response = (
            self.client.table("food_entries")
            .select(_ENTRY_COLUMNS)
            .eq("daily_log_id", str(daily_log_id))
            .order("created_at", desc=False)
            .order("position", desc=False)
            .execute()
        )
        return [_parse_entry(row) for row in response.data or []]

    def replace_day_entries(
        self, user_id: UUID, daily_log_id: UUID, result: ExtractionResult
    ) -> None:
        """Replace all entries of a day in a single transaction."""
        entries = [
            {"meal_type": slot.value, **_item_payload(item), "position": position}
            for position, (slot, item) in enumerate(result.items())
        ]
        self.client.rpc(
            "replace_day_entries",
            {
                "p_user_id": str(user_id),
                "p_daily_log_id": str(daily_log_id),
                "p_entries": entries,
                "p_totals": _totals_payload(result.totals),
            },
        ).execute()

    def add_food_entry(
        self, user_id: UUID, daily_log_id: UUID, meal: MealSlot, item: FoodItem
    ) -> FoodEntry:
        """Insert a food entry row."""
        response = (
            self.client.table("food_entries")
            .insert(
                {
                    "user_id": str(user_id),
                    "daily_log_id": str(daily_log_id),
                    "meal_type": meal.value,
                    **_item_payload(item),
                }
            )
            .execute()
        )
        if not response.data:
            raise RuntimeError("Failed to create food entry")
        return _parse_entry(response.data[0])

    def get_food_entry(self, entry_id: UUID) -> FoodEntry | None:
        """Return a food entry by id."""
        response = (
            self.client.table("food_entries")
            .select(_ENTRY_COLUMNS)
            .eq("id", str(entry_id))
            .limit(1)
            .execute()
        )
        if not response.data:
            return None
        return _parse_entry(response.data[0])

    def update_food_entry(
        self, entry_id: UUID, meal: MealSlot, item: FoodItem
    ) -> FoodEntry | None:
        """Update a food entry row."""
        response = (
            self.client.table("food_entries")
            .update({"meal_type": meal.value, **_item_payload(item)})
            .eq("id", str(entry_id))
            .execute()
        )
        if not response.data:
            return None
        return _parse_entry(response.data[0])

    def delete_food_entry(self, entry_id: UUID) -> None:
        """Delete a food entry row."""
        self.client.table("food_entries").delete().eq("id", str(entry_id)).execute()

    def update_totals(self, daily_log_id: UUID, totals: MacroTotals) -> None:
        """Update totals for a daily log."""
        self.client.table("daily_logs").update(_totals_payload(totals)).eq(
            "id", str(daily_log_id)
        ).execute()

    def update_targets_snapshot(self, daily_log_id: UUID, targets: MacroTotals) -> None:
        """Update the targets snapshot of a daily log."""
        self.client.table("daily_logs").update(_targets_payload(targets)).eq(
            "id", str(daily_log_id)
        ).execute()

    def list_day_totals(
        self, user_id: UUID, start: date, end: date
    ) -> list[DailyLogRecord]:
        """Return log headers in the date range."""
        response = (
            self.client.table("daily_logs")
            .select(_LOG_COLUMNS)
            .eq("user_id", str(user_id))
            .gte("date", start.isoformat())
            .lte("date", end.isoformat())
            .order("date", desc=False)
            .execute()
        )
        return [_parse_log(row) for row in response.data or []]

    def earliest_log_date(self, user_id: UUID) -> date | None:
        """Return the date of the user's first daily log."""
        response = (
            self.client.table("daily_logs")
            .select("date")
            .eq("user_id", str(user_id))
            .order("date", desc=False)
            .limit(1)
            .execute()
        )
        if not response.data:
            return None
        return date.fromisoformat(str(response.data[0]["date"]))


def _item_payload(item: FoodItem) -> dict[str, object]:
    return {
        "name": item.name,
        "quantity": item.quantity,
        "calories": item.calories,
        "protein": item.protein,
        "carbs": item.carbs,
        "fat": item.fat,
    }


def _totals_payload(totals: MacroTotals) -> dict[str, int]:
    return {
        "total_calories": totals.calories,
        "total_protein": totals.protein,
        "total_carbs": totals.carbs,
        "total_fat": totals.fat,
    }


def _targets_payload(targets: MacroTotals) -> dict[str, int]:
    return {
        "target_calories": targets.calories,
        "target_protein": targets.protein,
        "target_carbs": targets.carbs,
        "target_fat": targets.fat,
    }


def _parse_timestamp(raw: object) -> datetime | None:
    if isinstance(raw, str) and raw:
        return datetime.fromisoformat(raw)
    return None


def _parse_log(row: dict[str, object]) -> DailyLogRecord:
    return DailyLogRecord(
        id=UUID(str(row["id"])),
        user_id=UUID(str(row["user_id"])),
        day=date.fromisoformat(str(row["date"])),
        totals=MacroTotals(
            calories=int(row.get("total_calories") or 0),
            protein=int(row.get("total_protein") or 0),
            carbs=int(row.get("total_carbs") or 0),
            fat=int(row.get("total_fat") or 0),
        ),
        targets=MacroTotals(
            calories=int(row.get("target_calories") or 0),
            protein=int(row.get("target_protein") or 0),
            carbs=int(row.get("target_carbs") or 0),
            fat=int(row.get("target_fat") or 0),
        ),
        created_at=_parse_timestamp(row.get("created_at")),
    )


def _parse_entry(row: dict[str, object]) -> FoodEntry:
    return FoodEntry(
        id=UUID(str(row["id"])),
        user_id=UUID(str(row["user_id"])),
        daily_log_id=UUID(str(row["daily_log_id"])),
        meal=MealSlot(str(row["meal_type"])),
        name=str(row.get("name", "")),
        quantity=str(row.get("quantity") or ""),
        calories=int(row.get("calories") or 0),
        protein=int(row.get("protein") or 0),
        carbs=int(row.get("carbs") or 0),
        fat=int(row.get("fat") or 0),
        created_at=_parse_timestamp(row.get("created_at")),
    )
