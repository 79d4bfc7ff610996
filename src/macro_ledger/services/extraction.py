"""Food extraction service using LLMs."""

import asyncio
import json
import logging
import socket
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from datetime import datetime
from typing import Protocol

from pydantic import ValidationError

from macro_ledger.domain.errors import ExtractionError, ExtractionErrorKind
from macro_ledger.domain.extraction import ExtractionResult
from macro_ledger.domain.meals import DailyLog
from macro_ledger.services.prompts import FOOD_LOG_INSTRUCTIONS, build_user_prompt

_logger = logging.getLogger(__name__)

_FOOD_ITEM_SCHEMA: dict[str, object] = {
    "type": "object",
    "properties": {
        "name": {"type": "string"},
        "quantity": {"type": "string"},
        "calories": {"type": "integer"},
        "protein": {"type": "integer"},
        "carbs": {"type": "integer"},
        "fat": {"type": "integer"},
    },
    "required": ["name", "quantity", "calories", "protein", "carbs", "fat"],
    "additionalProperties": False,
}

EXTRACTION_SCHEMA: dict[str, object] = {
    "type": "object",
    "properties": {
        "breakfast": {"type": "array", "items": _FOOD_ITEM_SCHEMA},
        "lunch": {"type": "array", "items": _FOOD_ITEM_SCHEMA},
        "dinner": {"type": "array", "items": _FOOD_ITEM_SCHEMA},
        "snacks": {"type": "array", "items": _FOOD_ITEM_SCHEMA},
    },
    "required": ["breakfast", "lunch", "dinner", "snacks"],
    "additionalProperties": False,
}

_NETWORK_MARKERS = (
    "network request failed",
    "network connection was lost",
    "connection reset",
    "connection refused",
    "name resolution",
    "internet connection appears to be offline",
)


class ExtractionClient(Protocol):
    """Interface for LLM structured extraction."""

    async def extract(  # noqa: PLR0913
        self,
        *,
        model: str,
        reasoning_effort: str | None,
        store: bool,
        web_search: bool,
        instructions: str,
        user_prompt: str,
        schema: dict[str, object],
        timeout: float,
    ) -> dict[str, object]:
        """Return structured extraction data."""


@dataclass
class ExtractionService:
    """Service that prepares extraction prompts, retries and validates results."""

    client: ExtractionClient
    model: str
    reasoning_effort: str | None
    store: bool
    web_search: bool = True
    timeout_seconds: float = 180.0
    max_attempts: int = 3
    backoff_seconds: float = 2.0
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep

    async def extract(
        self,
        transcript: str,
        *,
        as_of: datetime,
        today_state: DailyLog | None,
        prior_days: Sequence[DailyLog] = (),
    ) -> ExtractionResult:
        """Return the complete new state of the day's meals.

        Timeouts and network failures are retried with exponential backoff;
        every other failure is raised immediately.
        """
        user_prompt = build_user_prompt(transcript, as_of, today_state, prior_days)
        attempt = 0
        while True:
            attempt += 1
            try:
                return await self._attempt(user_prompt)
            except ExtractionError as exc:
                if not exc.is_transient or attempt >= self.max_attempts:
                    _logger.error(
                        "Extraction failed (attempt %s/%s): %s",
                        attempt,
                        self.max_attempts,
                        exc,
                    )
                    raise
                delay = self.backoff_seconds * 2 ** (attempt - 1)
                _logger.warning(
                    "Extraction failed (attempt %s/%s, kind=%s), retrying in %.1fs",
                    attempt,
                    self.max_attempts,
                    exc.kind,
                    delay,
                )
                await self.sleep(delay)

    async def _attempt(self, user_prompt: str) -> ExtractionResult:
        try:
            raw = await asyncio.wait_for(
                self.client.extract(
                    model=self.model,
                    reasoning_effort=self.reasoning_effort,
                    store=self.store,
                    web_search=self.web_search,
                    instructions=FOOD_LOG_INSTRUCTIONS,
                    user_prompt=user_prompt,
                    schema=EXTRACTION_SCHEMA,
                    timeout=self.timeout_seconds,
                ),
                timeout=self.timeout_seconds,
            )
            return ExtractionResult.model_validate(raw)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            raise classify_failure(exc) from exc


def classify_failure(exc: BaseException) -> ExtractionError:
    """Map an arbitrary failure onto the extraction error taxonomy."""
    if isinstance(exc, ExtractionError):
        return exc
    if isinstance(exc, TimeoutError):
        return ExtractionError(ExtractionErrorKind.TIMEOUT, "request timed out")
    if isinstance(exc, ValidationError | json.JSONDecodeError):
        return ExtractionError(ExtractionErrorKind.SCHEMA_INVALID, str(exc))
    if isinstance(exc, ConnectionError | socket.gaierror):
        return ExtractionError(ExtractionErrorKind.NETWORK, str(exc))
    message = str(exc).lower()
    if any(marker in message for marker in _NETWORK_MARKERS):
        return ExtractionError(ExtractionErrorKind.NETWORK, str(exc))
    if isinstance(exc, OSError):
        return ExtractionError(ExtractionErrorKind.NETWORK, str(exc))
    return ExtractionError(ExtractionErrorKind.SERVICE, str(exc))
