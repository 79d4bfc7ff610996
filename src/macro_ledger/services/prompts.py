"""Prompt text and compact day renderings for food extraction."""

from collections.abc import Sequence
from datetime import datetime

from macro_ledger.domain.meals import MEAL_SLOTS, DailyLog

EMPTY_DAY = "Empty"

FOOD_LOG_INSTRUCTIONS = """\
You are a nutrition assistant. You turn what a user says they ate into \
structured macro data and return the COMPLETE updated food log for the day.

You receive:
1. The current local date and time. Use it to infer the meal when the user \
does not name one.
2. Previous days of food, for references such as "same as yesterday" or \
"the leftover chicken".
3. The day's food so far. This is the state you update.
4. The transcript of what the user said. It may add, correct or remove items.

Return JSON with exactly four arrays: breakfast, lunch, dinner and snacks. \
Every item has name, quantity, calories, protein, carbs and fat. Macros are \
whole numbers (grams for protein, carbs and fat).

Update rules:
- The output replaces the whole day. Items from "Today's food so far" that \
the transcript does not touch must be returned unchanged, with exactly the \
values shown in brackets [calories, P, C, F]. Never re-estimate them.
- Corrections ("actually 2 eggs, not 3") update the matching item.
- Removals ("remove the toast", "I skipped breakfast") drop the items.
- If the transcript mentions no food, return every existing item unchanged.
- If the day is empty, just add the new items.

Meal assignment, when the user does not say:
- before 11:00 breakfast; 11:00 to 14:00 lunch; 17:00 to 21:00 dinner;
- any other time, or anything described as a snack, goes to snacks.

Quantities: be specific ("3 large", "1 cup cooked", "150g"). Unquantified \
eggs mean 2. Use standard nutrition knowledge; for restaurant or branded \
items look the values up on the web when search is available. Keep \
calories close to protein*4 + carbs*4 + fat*9.
"""


def render_day(log: DailyLog | None) -> str:
    """Render a day compactly, one line per non-empty meal."""
    if log is None or log.is_empty:
        return EMPTY_DAY
    lines = []
    for slot in MEAL_SLOTS:
        entries = log.meal(slot)
        if not entries:
            continue
        items = ", ".join(
            f"{entry.name} ({entry.quantity}) "
            f"[{entry.calories}, {entry.protein}P, {entry.carbs}C, {entry.fat}F]"
            for entry in entries
        )
        lines.append(f"- {slot.value.capitalize()}: {items}")
    return "\n".join(lines)


def render_prior_days(logs: Sequence[DailyLog]) -> str:
    """Render previous days, most recent first, skipping empty ones."""
    blocks = [
        f"{log.date_key}:\n{render_day(log)}" for log in logs if not log.is_empty
    ]
    if not blocks:
        return "None"
    return "\n\n".join(blocks)


def build_user_prompt(
    transcript: str,
    as_of: datetime,
    today_state: DailyLog | None,
    prior_days: Sequence[DailyLog],
) -> str:
    """Build the user message sent alongside the fixed instructions."""
    return (
        f"Current date and time: {as_of.strftime('%A %Y-%m-%d %H:%M')}\n\n"
        f"Previous days:\n{render_prior_days(prior_days)}\n\n"
        f"Today's food so far:\n{render_day(today_state)}\n\n"
        f"Transcript: {transcript.strip()}"
    )
