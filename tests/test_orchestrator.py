"""Tests for the reconciliation orchestrator."""

import asyncio
import threading
from collections.abc import Callable
from uuid import uuid4

import pytest

from macro_ledger.domain.errors import (
    AttemptInProgressError,
    CaptureStateError,
    ExtractionError,
    ExtractionErrorKind,
    PersistenceError,
)
from macro_ledger.domain.meals import MacroTotals
from macro_ledger.services.capture import CaptureController
from macro_ledger.services.lifecycle import AppLifecycle, LocalLifecycleObserver
from macro_ledger.services.orchestrator import (
    BACKGROUND_MESSAGE,
    AttemptPhase,
    AttemptStatus,
    LoggingState,
    LogOutcome,
    OrchestratorRegistry,
    ReconciliationOrchestrator,
)
from tests.conftest import (
    FakeExtractionClient,
    FakeTransducer,
    InMemoryDailyLogRepository,
    day_payload,
    food,
    make_extraction_service,
    make_ledger,
)

EGGS = food("Eggs", "3 large", 216, 18, 1, 15)
TOAST = food("Toast", "1 slice", 80, 3, 14, 1)


def _orchestrator(
    repository: InMemoryDailyLogRepository,
    client: FakeExtractionClient,
    **overrides,
) -> ReconciliationOrchestrator:
    return ReconciliationOrchestrator(
        user_id=uuid4(),
        ledger=make_ledger(repository),
        extraction=make_extraction_service(client),
        **overrides,
    )


async def _wait_until(predicate: Callable[[], bool]) -> None:
    for _ in range(500):
        if predicate():
            return
        await asyncio.sleep(0.01)
    raise AssertionError("condition not reached")


def test_log_text_saves_day_and_reports_delta(
    daily_log_repository: InMemoryDailyLogRepository,
) -> None:
    client = FakeExtractionClient(
        responses=[day_payload(breakfast=[EGGS]), day_payload(breakfast=[EGGS, TOAST])]
    )
    orchestrator = _orchestrator(daily_log_repository, client)
    states: list[LoggingState] = []
    orchestrator.subscribe(states.append)

    async def run() -> tuple[LogOutcome, LogOutcome]:
        first = await orchestrator.log_text("three eggs")
        second = await orchestrator.log_text("and a slice of toast")
        return first, second

    first, second = asyncio.run(run())

    assert first.status is AttemptStatus.SAVED
    assert first.delta == MacroTotals(216, 18, 1, 15)
    assert second.previous_totals == MacroTotals(216, 18, 1, 15)
    assert second.totals == MacroTotals(296, 21, 15, 16)
    assert second.delta == MacroTotals(80, 3, 14, 1)
    assert "Eggs (3 large) [216, 18P, 1C, 15F]" in str(client.calls[1]["user_prompt"])
    assert states[0].is_processing
    assert states[-1] == LoggingState()
    assert orchestrator.phase is AttemptPhase.IDLE


def test_blank_text_is_ignored(
    daily_log_repository: InMemoryDailyLogRepository,
) -> None:
    client = FakeExtractionClient()
    orchestrator = _orchestrator(daily_log_repository, client)

    outcome = asyncio.run(orchestrator.log_text("   "))

    assert outcome == LogOutcome(AttemptStatus.IGNORED)
    assert client.calls == []


def test_cancelled_attempt_drops_late_response(
    daily_log_repository: InMemoryDailyLogRepository,
) -> None:
    client = FakeExtractionClient(
        responses=[day_payload(lunch=[EGGS]), day_payload(lunch=[TOAST])],
        gate=asyncio.Event(),
    )
    orchestrator = _orchestrator(daily_log_repository, client)

    async def run() -> tuple[LogOutcome, LogOutcome]:
        task = asyncio.create_task(orchestrator.log_text("eggs"))
        await _wait_until(lambda: len(client.calls) == 1)
        assert orchestrator.phase is AttemptPhase.EXTRACTING
        assert orchestrator.cancel_processing()
        assert not orchestrator.state.is_processing
        assert not orchestrator.cancel_processing()

        assert client.gate is not None
        client.gate.set()
        cancelled = await task
        saved = await orchestrator.log_text("toast")
        return cancelled, saved

    cancelled, saved = asyncio.run(run())

    assert cancelled.status is AttemptStatus.CANCELLED
    assert saved.status is AttemptStatus.SAVED
    assert saved.log is not None
    assert [entry.name for entry in saved.log.lunch] == ["Toast"]
    assert daily_log_repository.replace_calls == 1
    assert orchestrator.state.last_error is None


def test_second_attempt_is_rejected_while_one_runs(
    daily_log_repository: InMemoryDailyLogRepository,
) -> None:
    client = FakeExtractionClient(
        responses=[day_payload(dinner=[EGGS])], gate=asyncio.Event()
    )
    orchestrator = _orchestrator(daily_log_repository, client)

    async def run() -> LogOutcome:
        task = asyncio.create_task(orchestrator.log_text("eggs"))
        await _wait_until(lambda: len(client.calls) == 1)
        with pytest.raises(AttemptInProgressError):
            await orchestrator.log_text("toast")
        assert client.gate is not None
        client.gate.set()
        return await task

    outcome = asyncio.run(run())

    assert outcome.status is AttemptStatus.SAVED
    assert len(client.calls) == 1


def test_backgrounded_failure_reports_background_message(
    daily_log_repository: InMemoryDailyLogRepository,
) -> None:
    lifecycle = LocalLifecycleObserver()
    client = FakeExtractionClient(
        responses=[RuntimeError("stream closed")], gate=asyncio.Event()
    )
    orchestrator = _orchestrator(daily_log_repository, client, lifecycle=lifecycle)

    async def run() -> LogOutcome:
        task = asyncio.create_task(orchestrator.log_text("eggs"))
        await _wait_until(lambda: len(client.calls) == 1)
        assert lifecycle.listener_count == 1
        lifecycle.notify(AppLifecycle.BACKGROUND)
        assert client.gate is not None
        client.gate.set()
        return await task

    outcome = asyncio.run(run())

    assert outcome.status is AttemptStatus.FAILED
    assert outcome.error == BACKGROUND_MESSAGE
    assert orchestrator.state.last_error == BACKGROUND_MESSAGE
    assert lifecycle.listener_count == 0


def test_extraction_failure_surfaces_user_message(
    daily_log_repository: InMemoryDailyLogRepository,
) -> None:
    error = ExtractionError(ExtractionErrorKind.AUTH, "invalid api key")
    client = FakeExtractionClient(responses=[error])
    orchestrator = _orchestrator(daily_log_repository, client)

    outcome = asyncio.run(orchestrator.log_text("eggs"))

    assert outcome.status is AttemptStatus.FAILED
    assert outcome.error == error.user_message
    assert not orchestrator.state.is_processing
    orchestrator.dismiss_error()
    assert orchestrator.state.last_error is None


def test_persistence_failure_is_surfaced(
    daily_log_repository: InMemoryDailyLogRepository,
) -> None:
    daily_log_repository.fail_replace = True
    client = FakeExtractionClient(responses=[day_payload(snacks=[TOAST])])
    orchestrator = _orchestrator(daily_log_repository, client)

    outcome = asyncio.run(orchestrator.log_text("toast"))

    assert outcome.status is AttemptStatus.FAILED
    assert outcome.error == PersistenceError.user_message
    assert orchestrator.state == LoggingState(last_error=PersistenceError.user_message)


def test_save_watchdog_releases_saving_indicator(
    daily_log_repository: InMemoryDailyLogRepository,
) -> None:
    gate = threading.Event()
    daily_log_repository.replace_gate = gate
    client = FakeExtractionClient(responses=[day_payload(breakfast=[EGGS])])
    orchestrator = _orchestrator(
        daily_log_repository, client, save_watchdog_seconds=0.05
    )

    states: list[LoggingState] = []
    orchestrator.subscribe(states.append)

    def released() -> bool:
        saving = orchestrator.phase is AttemptPhase.SAVING
        return saving and not orchestrator.state.is_saving

    async def run() -> LogOutcome:
        task = asyncio.create_task(orchestrator.log_text("eggs"))
        try:
            await _wait_until(released)
            assert any(state.is_saving for state in states)
            assert orchestrator.state.is_processing
        finally:
            gate.set()
        return await task

    outcome = asyncio.run(run())

    assert outcome.status is AttemptStatus.SAVED
    assert orchestrator.state == LoggingState()


def test_cancel_is_refused_once_saving_begins(
    daily_log_repository: InMemoryDailyLogRepository,
) -> None:
    gate = threading.Event()
    daily_log_repository.replace_gate = gate
    client = FakeExtractionClient(responses=[day_payload(dinner=[EGGS, TOAST])])
    orchestrator = _orchestrator(daily_log_repository, client)

    async def run() -> LogOutcome:
        task = asyncio.create_task(orchestrator.log_text("eggs and toast"))
        try:
            await _wait_until(lambda: orchestrator.phase is AttemptPhase.SAVING)
            assert not orchestrator.cancel_processing()
            assert orchestrator.state.is_processing
        finally:
            gate.set()
        return await task

    outcome = asyncio.run(run())

    assert outcome.status is AttemptStatus.SAVED
    assert outcome.log is not None
    assert [entry.name for entry in outcome.log.dinner] == ["Eggs", "Toast"]
    assert daily_log_repository.replace_calls == 1
    assert len(daily_log_repository.entries) == 2
    assert orchestrator.state == LoggingState()


def test_voice_capture_logs_final_transcript(
    daily_log_repository: InMemoryDailyLogRepository,
) -> None:
    transducer = FakeTransducer()
    capture = CaptureController(transducer=transducer, stop_timeout_seconds=0.05)
    client = FakeExtractionClient(responses=[day_payload(breakfast=[EGGS])])
    orchestrator = _orchestrator(daily_log_repository, client, capture=capture)

    def finish() -> None:
        capture.on_partial_result("three eggs")
        capture.on_ended()

    transducer.on_stop = finish

    async def run() -> LogOutcome:
        await orchestrator.start_recording()
        assert orchestrator.state.is_recording
        capture.on_partial_result("three")
        assert orchestrator.state.current_transcript == "three"
        return await orchestrator.stop_recording_and_log()

    outcome = asyncio.run(run())

    assert outcome.status is AttemptStatus.SAVED
    assert "Transcript: three eggs" in str(client.calls[0]["user_prompt"])
    assert not orchestrator.state.is_recording


def test_voice_capture_without_speech_is_ignored(
    daily_log_repository: InMemoryDailyLogRepository,
) -> None:
    transducer = FakeTransducer()
    capture = CaptureController(transducer=transducer, stop_timeout_seconds=0.05)
    client = FakeExtractionClient()
    orchestrator = _orchestrator(daily_log_repository, client, capture=capture)
    transducer.on_stop = lambda: capture.on_error("recognition_fail", None)

    async def run() -> LogOutcome:
        await orchestrator.start_recording()
        return await orchestrator.stop_recording_and_log()

    outcome = asyncio.run(run())

    assert outcome.status is AttemptStatus.IGNORED
    assert orchestrator.state.last_error is None
    assert client.calls == []


def test_recording_requires_a_transducer(
    daily_log_repository: InMemoryDailyLogRepository,
) -> None:
    orchestrator = _orchestrator(daily_log_repository, FakeExtractionClient())

    with pytest.raises(CaptureStateError):
        asyncio.run(orchestrator.start_recording())


def test_registry_returns_one_orchestrator_per_user(
    daily_log_repository: InMemoryDailyLogRepository,
) -> None:
    ledger = make_ledger(daily_log_repository)
    extraction = make_extraction_service(FakeExtractionClient())
    registry = OrchestratorRegistry(
        lambda user_id: ReconciliationOrchestrator(user_id, ledger, extraction)
    )
    user_id = uuid4()

    assert registry.get(user_id) is registry.get(user_id)
    assert registry.get(uuid4()) is not registry.get(user_id)
