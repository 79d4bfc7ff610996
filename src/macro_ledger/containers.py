"""Dependency container wiring for the application."""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from uuid import UUID

from supabase import create_client

from macro_ledger.adapters.openai_extraction_client import OpenAIExtractionClient
from macro_ledger.adapters.supabase_daily_log_repository import (
    SupabaseDailyLogRepository,
)
from macro_ledger.adapters.supabase_targets_repository import (
    SupabaseTargetsRepository,
)
from macro_ledger.adapters.supabase_user_repository import SupabaseUserRepository
from macro_ledger.config import Settings, parse_timezone
from macro_ledger.domain.meals import MacroTotals
from macro_ledger.services.capture import CaptureController, SpeechTransducer
from macro_ledger.services.daily_logs import DailyLogService
from macro_ledger.services.day_cache import DayCache
from macro_ledger.services.extraction import ExtractionService
from macro_ledger.services.ledger import LedgerService
from macro_ledger.services.lifecycle import LocalLifecycleObserver
from macro_ledger.services.orchestrator import (
    OrchestratorRegistry,
    ReconciliationOrchestrator,
)
from macro_ledger.services.targets import TargetsService
from macro_ledger.services.users import UserService


@dataclass
class AppContainer:
    """Holds application-wide dependencies."""

    settings: Settings
    user_service: UserService
    targets_service: TargetsService
    daily_log_service: DailyLogService
    ledger_service: LedgerService
    extraction_service: ExtractionService
    orchestrators: OrchestratorRegistry
    close_resources: Callable[[], Awaitable[None]]


def default_targets(settings: Settings) -> MacroTotals:
    return MacroTotals(
        calories=settings.default_calories,
        protein=settings.default_protein,
        carbs=settings.default_carbs,
        fat=settings.default_fat,
    )


def build_orchestrators(
    settings: Settings,
    ledger_service: LedgerService,
    extraction_service: ExtractionService,
    transducer_factory: Callable[[UUID], SpeechTransducer] | None = None,
) -> OrchestratorRegistry:
    """Create the per-user orchestrator registry.

    Without a transducer factory the orchestrators accept typed input only.
    Each orchestrator gets its own lifecycle observer fed by the client.
    """

    def factory(user_id: UUID) -> ReconciliationOrchestrator:
        capture = None
        if transducer_factory is not None:
            capture = CaptureController(
                transducer=transducer_factory(user_id),
                stop_timeout_seconds=settings.capture_stop_timeout_seconds,
                locale=settings.capture_locale,
            )
        return ReconciliationOrchestrator(
            user_id=user_id,
            ledger=ledger_service,
            extraction=extraction_service,
            capture=capture,
            lifecycle=LocalLifecycleObserver(),
            save_watchdog_seconds=settings.save_watchdog_seconds,
        )

    return OrchestratorRegistry(factory)


def build_container(settings: Settings | None = None) -> AppContainer:
    """Create the default dependency container."""
    resolved_settings = settings or Settings()
    supabase_client = create_client(
        resolved_settings.supabase_url, resolved_settings.supabase_service_key
    )
    user_repository = SupabaseUserRepository(supabase_client)
    targets_repository = SupabaseTargetsRepository(supabase_client)
    daily_log_repository = SupabaseDailyLogRepository(supabase_client)

    targets_service = TargetsService(
        targets_repository, defaults=default_targets(resolved_settings)
    )
    user_service = UserService(user_repository, targets_service)
    daily_log_service = DailyLogService(daily_log_repository, targets_service)
    cache = DayCache(
        loader=daily_log_service.load_day,
        timezone=parse_timezone(resolved_settings.timezone),
    )
    ledger_service = LedgerService(
        daily_logs=daily_log_service,
        targets_service=targets_service,
        cache=cache,
        context_days=resolved_settings.context_days,
        prefetch_window_days=resolved_settings.prefetch_window_days,
    )
    openai_client = OpenAIExtractionClient.create(
        resolved_settings.openai_api_key,
        timeout_seconds=resolved_settings.extraction_timeout_seconds,
    )
    extraction_service = ExtractionService(
        client=openai_client,
        model=resolved_settings.openai_model,
        reasoning_effort=resolved_settings.openai_reasoning_effort,
        store=resolved_settings.openai_store,
        web_search=resolved_settings.openai_web_search,
        timeout_seconds=resolved_settings.extraction_timeout_seconds,
        max_attempts=resolved_settings.extraction_max_attempts,
        backoff_seconds=resolved_settings.extraction_backoff_seconds,
    )
    orchestrators = build_orchestrators(
        resolved_settings, ledger_service, extraction_service
    )

    async def close_resources() -> None:
        await openai_client.close()

    return AppContainer(
        settings=resolved_settings,
        user_service=user_service,
        targets_service=targets_service,
        daily_log_service=daily_log_service,
        ledger_service=ledger_service,
        extraction_service=extraction_service,
        orchestrators=orchestrators,
        close_resources=close_resources,
    )
