"""Day, entry and logging endpoints of a user's ledger."""

from __future__ import annotations

from datetime import date
from typing import TYPE_CHECKING
from uuid import UUID  # noqa: TC003

from fastapi import APIRouter, Depends, HTTPException, Request, status

from macro_ledger.api.schemas import (
    EntryPayload,
    LifecyclePayload,
    LogTextPayload,
    day_response,
    outcome_response,
    state_response,
)
from macro_ledger.domain.dates import DECEMBER, parse_date_key
from macro_ledger.domain.meals import MealSlot
from macro_ledger.services.lifecycle import LocalLifecycleObserver

if TYPE_CHECKING:
    from macro_ledger.containers import AppContainer

TODAY = "today"

router = APIRouter(prefix="/users/{user_id}", tags=["ledger"])


def _container(request: Request) -> AppContainer:
    return request.app.state.container


async def require_user(user_id: UUID, request: Request) -> None:
    """Reject requests for unknown users."""
    if _container(request).user_service.get_user(user_id) is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND)


def _parse_day(raw: str, container: AppContainer) -> date:
    if raw == TODAY:
        return container.ledger_service.today()
    try:
        return parse_date_key(raw)
    except ValueError as exc:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=f"Invalid date: {raw}",
        ) from exc


@router.get("/days/{day}", dependencies=[Depends(require_user)])
async def get_day(user_id: UUID, day: str, request: Request) -> dict[str, object]:
    """Return a day's meals, totals and targets."""
    container = _container(request)
    log = await container.ledger_service.get_day(
        user_id, _parse_day(day, container)
    )
    return day_response(log)


@router.post("/days/{day}/refresh", dependencies=[Depends(require_user)])
async def refresh_day(user_id: UUID, day: str, request: Request) -> dict[str, object]:
    """Reload a day from storage, bypassing the cache."""
    container = _container(request)
    orchestrator = container.orchestrators.get(user_id)
    log = await orchestrator.refresh(_parse_day(day, container))
    return day_response(log)


@router.post(
    "/prefetch",
    status_code=status.HTTP_202_ACCEPTED,
    dependencies=[Depends(require_user)],
)
async def prefetch(
    user_id: UUID, request: Request, center: date | None = None
) -> dict[str, object]:
    """Warm the cache with the days leading up to ``center``."""
    task = _container(request).ledger_service.prefetch(user_id, center)
    return {"scheduled": task is not None}


@router.post(
    "/days/{day}/entries",
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_user)],
)
async def add_entry(
    user_id: UUID, day: str, payload: EntryPayload, request: Request
) -> dict[str, object]:
    """Add a food entry by hand."""
    container = _container(request)
    log = await container.ledger_service.add_entry(
        user_id,
        _parse_day(day, container),
        payload.meal or MealSlot.SNACKS,
        payload.to_item(),
    )
    return day_response(log)


@router.patch("/entries/{entry_id}", dependencies=[Depends(require_user)])
async def edit_entry(
    user_id: UUID, entry_id: UUID, payload: EntryPayload, request: Request
) -> dict[str, object]:
    """Edit a food entry and return its day."""
    log = await _container(request).ledger_service.edit_entry(
        user_id, entry_id, payload.to_item(), payload.meal
    )
    if log is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND)
    return day_response(log)


@router.delete("/entries/{entry_id}", dependencies=[Depends(require_user)])
async def delete_entry(
    user_id: UUID, entry_id: UUID, request: Request
) -> dict[str, object]:
    """Delete a food entry and return its day."""
    log = await _container(request).ledger_service.delete_entry(user_id, entry_id)
    if log is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND)
    return day_response(log)


@router.post("/log", dependencies=[Depends(require_user)])
async def log_text(
    user_id: UUID, payload: LogTextPayload, request: Request
) -> dict[str, object]:
    """Log food described in natural language."""
    orchestrator = _container(request).orchestrators.get(user_id)
    outcome = await orchestrator.log_text(payload.text, payload.day)
    return outcome_response(outcome)


@router.post("/log/cancel", dependencies=[Depends(require_user)])
async def cancel_log(user_id: UUID, request: Request) -> dict[str, object]:
    """Abandon the running extraction, if any."""
    orchestrator = _container(request).orchestrators.get(user_id)
    return {"cancelled": orchestrator.cancel_processing()}


@router.get("/state", dependencies=[Depends(require_user)])
async def get_state(user_id: UUID, request: Request) -> dict[str, object]:
    """Return the observable logging state."""
    orchestrator = _container(request).orchestrators.get(user_id)
    return state_response(orchestrator.state)


@router.post("/state/dismiss", dependencies=[Depends(require_user)])
async def dismiss_error(user_id: UUID, request: Request) -> dict[str, object]:
    """Clear the last surfaced error."""
    orchestrator = _container(request).orchestrators.get(user_id)
    orchestrator.dismiss_error()
    return state_response(orchestrator.state)


@router.post("/lifecycle", dependencies=[Depends(require_user)])
async def lifecycle(
    user_id: UUID, payload: LifecyclePayload, request: Request
) -> dict[str, str]:
    """Record that the client moved to the foreground or background."""
    orchestrator = _container(request).orchestrators.get(user_id)
    if isinstance(orchestrator.lifecycle, LocalLifecycleObserver):
        orchestrator.lifecycle.notify(payload.state)
    return {"state": payload.state.value}


@router.get("/calendar/{year}/{month}", dependencies=[Depends(require_user)])
async def calendar(
    user_id: UUID, year: int, month: int, request: Request
) -> dict[str, object]:
    """Return calories per logged day of a month."""
    if not 1 <= month <= DECEMBER:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY)
    ledger_service = _container(request).ledger_service
    days = await ledger_service.month_calories(user_id, year, month)
    earliest = await ledger_service.earliest_log_date(user_id)
    return {
        "days": [
            {
                "date": day.day.isoformat(),
                "calories": day.calories,
                "calorie_target": day.calorie_target,
            }
            for day in days
        ],
        "earliest_log_date": earliest.isoformat() if earliest else None,
    }
