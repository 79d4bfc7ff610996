"""Capture controller for spoken and typed food descriptions.

The controller owns the recording lifecycle on top of a speech transducer
that reports progress through callbacks. A recording session always ends
with exactly one ``CaptureOutcome``.
"""

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Protocol

from macro_ledger.domain.errors import AlreadyActiveError, CaptureStateError

_logger = logging.getLogger(__name__)

NO_SPEECH_CODE = "recognition_fail"
NO_SPEECH_MESSAGE = "No speech detected"


class SpeechTransducer(Protocol):
    """Interface for the on-device speech recognizer."""

    async def start(self, locale: str) -> None:
        """Begin recognizing speech."""

    async def stop(self) -> None:
        """Stop listening; the final result arrives through callbacks."""

    async def cancel(self) -> None:
        """Abort recognition and discard results."""


class CaptureState(StrEnum):
    """Recording lifecycle state."""

    IDLE = "idle"
    RECORDING = "recording"
    STOPPING = "stopping"


class OutcomeKind(StrEnum):
    """How a capture session ended."""

    FINAL_TRANSCRIPT = "final_transcript"
    SILENT_RESET = "silent_reset"
    ERROR = "error"


@dataclass(frozen=True)
class CaptureOutcome:
    """Result of a capture session."""

    kind: OutcomeKind
    transcript: str = ""
    error: str | None = None


@dataclass
class CaptureController:
    """State machine between the UI and the speech transducer."""

    transducer: SpeechTransducer
    stop_timeout_seconds: float = 0.5
    locale: str = "en-US"
    on_outcome: Callable[[CaptureOutcome], None] | None = None
    on_transcript: Callable[[str], None] | None = None
    state: CaptureState = field(default=CaptureState.IDLE, init=False)
    transcript: str = field(default="", init=False)
    _final: asyncio.Future[str] | None = field(default=None, init=False, repr=False)
    _session: int = field(default=0, init=False, repr=False)
    _emitted: bool = field(default=True, init=False, repr=False)
    _last_outcome: CaptureOutcome | None = field(default=None, init=False, repr=False)

    @property
    def is_recording(self) -> bool:
        return self.state is not CaptureState.IDLE

    async def start(self) -> None:
        """Start a recording session."""
        if self.state is not CaptureState.IDLE:
            raise AlreadyActiveError
        self._session += 1
        self._emitted = False
        self._set_transcript("")
        self.state = CaptureState.RECORDING
        try:
            await self.transducer.start(self.locale)
        except Exception as exc:
            _logger.exception("Speech transducer failed to start")
            self._finish(CaptureOutcome(OutcomeKind.ERROR, error=str(exc)))
            raise

    async def stop(self) -> CaptureOutcome:
        """Stop recording and wait for the transducer's final transcript."""
        if self.state is not CaptureState.RECORDING:
            raise CaptureStateError
        session = self._session
        final: asyncio.Future[str] = asyncio.get_running_loop().create_future()
        self._final = final
        self.state = CaptureState.STOPPING
        try:
            await self.transducer.stop()
        except Exception as exc:
            _logger.exception("Speech transducer failed to stop")
            return self._finish(CaptureOutcome(OutcomeKind.ERROR, error=str(exc)))

        try:
            text = await asyncio.wait_for(
                asyncio.shield(final), timeout=self.stop_timeout_seconds
            )
        except TimeoutError:
            _logger.info("Stop timed out; using the last partial transcript")
            text = self.transcript

        if session != self._session or self._emitted:
            # The session already ended through cancel() or an error callback.
            return self._last_outcome or CaptureOutcome(OutcomeKind.SILENT_RESET)
        return self._finish(self._outcome_for(text))

    async def cancel(self) -> None:
        """Abort any session and discard its transcript."""
        was_active = self.state is not CaptureState.IDLE
        self._set_transcript("")
        if was_active:
            self._finish(CaptureOutcome(OutcomeKind.SILENT_RESET))
        try:
            await self.transducer.cancel()
        except Exception:
            _logger.exception("Speech transducer failed to cancel")

    def submit_typed(self, text: str) -> CaptureOutcome:
        """Typed input path, available only while not recording."""
        if self.state is not CaptureState.IDLE:
            raise AlreadyActiveError
        return self._outcome_for(text)

    def on_started(self) -> None:
        _logger.debug("Speech started")

    def on_partial_result(self, text: str) -> None:
        if self.state is CaptureState.IDLE:
            return
        self._set_transcript(text)

    def on_ended(self) -> None:
        if self._final is not None and not self._final.done():
            self._final.set_result(self.transcript)

    def on_error(self, code: str | None, message: str | None) -> None:
        """Handle a transducer error for the active session."""
        if self.state is CaptureState.IDLE:
            return
        if self._final is not None and not self._final.done():
            self._final.set_result(self.transcript)
        text = message or ""
        if code == NO_SPEECH_CODE or NO_SPEECH_MESSAGE in text:
            _logger.info("No speech detected, resetting capture")
            self._set_transcript("")
            self._finish(CaptureOutcome(OutcomeKind.SILENT_RESET))
            return
        _logger.error("Speech recognition error: code=%s message=%s", code, text)
        self._finish(
            CaptureOutcome(
                OutcomeKind.ERROR,
                error=text or "Speech recognition error",
            )
        )

    def _outcome_for(self, text: str) -> CaptureOutcome:
        cleaned = text.strip()
        if not cleaned:
            return CaptureOutcome(OutcomeKind.SILENT_RESET)
        return CaptureOutcome(OutcomeKind.FINAL_TRANSCRIPT, transcript=cleaned)

    def _finish(self, outcome: CaptureOutcome) -> CaptureOutcome:
        self.state = CaptureState.IDLE
        if self._final is not None and not self._final.done():
            self._final.set_result(self.transcript)
        self._final = None
        self._last_outcome = outcome
        if self._emitted:
            return outcome
        self._emitted = True
        if self.on_outcome is not None:
            self.on_outcome(outcome)
        return outcome

    def _set_transcript(self, text: str) -> None:
        self.transcript = text
        if self.on_transcript is not None:
            self.on_transcript(text)
