"""Reconciliation orchestrator for voice and text food logging.

One orchestrator serves one user. An attempt moves through
``EXTRACTING -> SAVING -> IDLE``; only one attempt runs at a time, and a
cancelled attempt's late response is dropped without touching state.
"""

import asyncio
import itertools
import logging
from collections.abc import Callable
from dataclasses import dataclass, field, replace
from datetime import date
from enum import StrEnum
from uuid import UUID

from macro_ledger.domain.errors import (
    AttemptInProgressError,
    CaptureStateError,
    LedgerError,
)
from macro_ledger.domain.meals import DailyLog, MacroTotals
from macro_ledger.services.capture import (
    CaptureController,
    CaptureOutcome,
    OutcomeKind,
)
from macro_ledger.services.extraction import ExtractionService
from macro_ledger.services.ledger import LedgerService
from macro_ledger.services.lifecycle import AppLifecycle, LifecycleObserver

_logger = logging.getLogger(__name__)

BACKGROUND_MESSAGE = (
    "The request was interrupted because the app went to the background. "
    "Keep the app open while your food is being logged."
)


class AttemptPhase(StrEnum):
    """Phase of a single logging attempt."""

    IDLE = "idle"
    EXTRACTING = "extracting"
    SAVING = "saving"
    CANCELLED = "cancelled"


class AttemptStatus(StrEnum):
    """How a logging attempt ended."""

    SAVED = "saved"
    CANCELLED = "cancelled"
    FAILED = "failed"
    IGNORED = "ignored"


@dataclass(frozen=True)
class LoggingState:
    """Observable state for the presentation layer."""

    is_recording: bool = False
    is_processing: bool = False
    is_saving: bool = False
    last_error: str | None = None
    current_transcript: str = ""


@dataclass(frozen=True)
class LogOutcome:
    """Result of a logging attempt."""

    status: AttemptStatus
    log: DailyLog | None = None
    previous_totals: MacroTotals | None = None
    error: str | None = None

    @property
    def totals(self) -> MacroTotals | None:
        if self.log is None:
            return None
        return self.log.totals

    @property
    def delta(self) -> MacroTotals | None:
        """What this attempt added to the day (negative for removals)."""
        totals = self.totals
        if totals is None or self.previous_totals is None:
            return None
        return totals - self.previous_totals


@dataclass
class _Attempt:
    id: int
    phase: AttemptPhase = AttemptPhase.EXTRACTING
    backgrounded: bool = False


StateListener = Callable[[LoggingState], None]


@dataclass
class ReconciliationOrchestrator:
    """Drives capture, extraction and persistence for one user."""

    user_id: UUID
    ledger: LedgerService
    extraction: ExtractionService
    capture: CaptureController | None = None
    lifecycle: LifecycleObserver | None = None
    save_watchdog_seconds: float = 10.0
    state: LoggingState = field(default_factory=LoggingState, init=False)
    _listeners: list[StateListener] = field(default_factory=list, init=False)
    _attempt: _Attempt | None = field(default=None, init=False, repr=False)
    _attempt_ids: itertools.count = field(
        default_factory=lambda: itertools.count(1), init=False, repr=False
    )

    def __post_init__(self) -> None:
        if self.capture is not None:
            self.capture.on_transcript = self._on_transcript
            self.capture.on_outcome = self._on_capture_outcome

    @property
    def phase(self) -> AttemptPhase:
        if self._attempt is None:
            return AttemptPhase.IDLE
        return self._attempt.phase

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        """Register a state listener and return a function that removes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    async def start_recording(self) -> None:
        """Start voice capture; rejected while an attempt is running."""
        capture = self._require_capture()
        if self._attempt is not None:
            raise AttemptInProgressError
        await capture.start()
        self._update(is_recording=True, current_transcript="", last_error=None)

    async def stop_recording_and_log(self, day: date | None = None) -> LogOutcome:
        """Stop capture and log the final transcript."""
        capture = self._require_capture()
        outcome = await capture.stop()
        if outcome.kind is OutcomeKind.FINAL_TRANSCRIPT:
            return await self._log(outcome.transcript, day)
        if outcome.kind is OutcomeKind.ERROR:
            return LogOutcome(AttemptStatus.FAILED, error=self.state.last_error)
        return LogOutcome(AttemptStatus.IGNORED)

    async def cancel_recording(self) -> None:
        capture = self._require_capture()
        await capture.cancel()
        self._update(is_recording=False, current_transcript="")

    async def log_text(self, text: str, day: date | None = None) -> LogOutcome:
        """Log a typed description of food."""
        if self.capture is not None:
            outcome = self.capture.submit_typed(text)
            if outcome.kind is not OutcomeKind.FINAL_TRANSCRIPT:
                return LogOutcome(AttemptStatus.IGNORED)
            text = outcome.transcript
        elif not text.strip():
            return LogOutcome(AttemptStatus.IGNORED)
        return await self._log(text.strip(), day)

    def cancel_processing(self) -> bool:
        """Abandon the running extraction; returns False when there is none."""
        attempt = self._attempt
        if attempt is None or attempt.phase is not AttemptPhase.EXTRACTING:
            return False
        attempt.phase = AttemptPhase.CANCELLED
        self._attempt = None
        self._update(is_processing=False, last_error=None)
        _logger.info("Attempt %s cancelled by the user", attempt.id)
        return True

    def dismiss_error(self) -> None:
        self._update(last_error=None)

    async def refresh(self, day: date | None = None) -> DailyLog:
        return await self.ledger.refresh(self.user_id, day)

    def invalidate(self, day: date | None = None) -> None:
        self.ledger.invalidate(self.user_id, day)

    async def _log(self, text: str, day: date | None) -> LogOutcome:
        if self._attempt is not None:
            raise AttemptInProgressError
        attempt = _Attempt(id=next(self._attempt_ids))
        self._attempt = attempt
        self._update(is_processing=True, last_error=None)
        unsubscribe = self._watch_lifecycle(attempt)
        try:
            return await self._run_attempt(attempt, text, day or self.ledger.today())
        finally:
            unsubscribe()
            if self._attempt is attempt:
                self._attempt = None
                if self.state.is_processing or self.state.is_saving:
                    self._update(is_processing=False, is_saving=False)

    async def _run_attempt(
        self, attempt: _Attempt, text: str, day: date
    ) -> LogOutcome:
        previous_totals: MacroTotals | None = None
        try:
            current = await self.ledger.get_day(self.user_id, day)
            previous_totals = current.totals
            prior_days = await self.ledger.prior_days(self.user_id, day)
            result = await self.extraction.extract(
                text,
                as_of=self.ledger.now(),
                today_state=current,
                prior_days=prior_days,
            )
        except LedgerError as exc:
            if attempt.phase is AttemptPhase.CANCELLED:
                _logger.info("Attempt %s failed after cancel: %s", attempt.id, exc)
                return LogOutcome(
                    AttemptStatus.CANCELLED, previous_totals=previous_totals
                )
            message = BACKGROUND_MESSAGE if attempt.backgrounded else exc.user_message
            self._update(is_processing=False, last_error=message)
            return LogOutcome(
                AttemptStatus.FAILED, previous_totals=previous_totals, error=message
            )

        if attempt.phase is AttemptPhase.CANCELLED:
            _logger.info("Dropping late extraction response (attempt %s)", attempt.id)
            return LogOutcome(AttemptStatus.CANCELLED, previous_totals=previous_totals)

        attempt.phase = AttemptPhase.SAVING
        self._update(is_saving=True)
        watchdog = asyncio.get_running_loop().call_later(
            self.save_watchdog_seconds, self._release_saving, attempt
        )
        try:
            log = await self.ledger.apply_extraction(self.user_id, current, result)
        except LedgerError as exc:
            self._update(
                is_processing=False, is_saving=False, last_error=exc.user_message
            )
            return LogOutcome(
                AttemptStatus.FAILED,
                previous_totals=previous_totals,
                error=exc.user_message,
            )
        finally:
            watchdog.cancel()

        attempt.phase = AttemptPhase.IDLE
        self._update(is_processing=False, is_saving=False)
        return LogOutcome(AttemptStatus.SAVED, log=log, previous_totals=previous_totals)

    def _watch_lifecycle(self, attempt: _Attempt) -> Callable[[], None]:
        if self.lifecycle is None:
            return lambda: None

        def on_change(state: AppLifecycle) -> None:
            if state is not AppLifecycle.BACKGROUND:
                return
            if attempt.phase is AttemptPhase.EXTRACTING:
                attempt.backgrounded = True

        return self.lifecycle.subscribe(on_change)

    def _release_saving(self, attempt: _Attempt) -> None:
        if self._attempt is not attempt or not self.state.is_saving:
            return
        _logger.warning(
            "Save for attempt %s exceeded %.0fs; releasing the saving indicator",
            attempt.id,
            self.save_watchdog_seconds,
        )
        self._update(is_saving=False)

    def _on_transcript(self, text: str) -> None:
        self._update(current_transcript=text)

    def _on_capture_outcome(self, outcome: CaptureOutcome) -> None:
        if outcome.kind is OutcomeKind.ERROR:
            self._update(
                is_recording=False,
                current_transcript="",
                last_error=outcome.error or "Speech recognition failed.",
            )
            return
        self._update(is_recording=False, current_transcript=outcome.transcript)

    def _require_capture(self) -> CaptureController:
        if self.capture is None:
            raise CaptureStateError("No speech transducer is configured")
        return self.capture

    def _update(self, **changes: object) -> None:
        self.state = replace(self.state, **changes)
        for listener in list(self._listeners):
            listener(self.state)


@dataclass
class OrchestratorRegistry:
    """Lazily creates one orchestrator per user."""

    factory: Callable[[UUID], ReconciliationOrchestrator]
    _orchestrators: dict[UUID, ReconciliationOrchestrator] = field(
        default_factory=dict, init=False
    )

    def get(self, user_id: UUID) -> ReconciliationOrchestrator:
        orchestrator = self._orchestrators.get(user_id)
        if orchestrator is None:
            orchestrator = self.factory(user_id)
            self._orchestrators[user_id] = orchestrator
        return orchestrator
