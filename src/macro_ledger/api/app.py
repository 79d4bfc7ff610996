"""FastAPI application factory."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from uuid import UUID

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.responses import JSONResponse

from macro_ledger.api.ledger import router as ledger_router
from macro_ledger.api.schemas import (
    TargetsPayload,
    UserPayload,
    targets_response,
    user_response,
)
from macro_ledger.app_logging import configure_logging
from macro_ledger.containers import AppContainer
from macro_ledger.domain.errors import (
    AlreadyActiveError,
    AttemptInProgressError,
    CaptureStateError,
    LedgerError,
    PersistenceError,
    TargetValidationError,
)
from macro_ledger.services.target_solver import TargetDraft


def create_app(container: AppContainer) -> FastAPI:
    """Create a FastAPI app configured with dependencies."""
    configure_logging()
    logger = logging.getLogger(__name__)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        yield
        await app.state.container.close_resources()

    app = FastAPI(lifespan=lifespan)
    app.state.container = container

    app.include_router(ledger_router)

    @app.exception_handler(LedgerError)
    async def ledger_error_handler(request: Request, exc: LedgerError) -> JSONResponse:
        status_code = _status_for(exc)
        if status_code >= status.HTTP_500_INTERNAL_SERVER_ERROR:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc)
        detail = exc.user_message
        if isinstance(exc, TargetValidationError):
            detail = str(exc)
        return JSONResponse(status_code=status_code, content={"detail": detail})

    @app.get("/health")
    async def health() -> dict[str, str]:
        """Simple health check endpoint."""
        return {"status": "ok"}

    @app.post("/users", status_code=status.HTTP_201_CREATED)
    async def create_user(payload: UserPayload, request: Request) -> dict[str, object]:
        """Create a user with default macro targets."""
        state_container: AppContainer = request.app.state.container
        user = state_container.user_service.create_user(
            payload.first_name, payload.last_name
        )
        return user_response(user)

    @app.get("/users/{user_id}")
    async def get_user(user_id: UUID, request: Request) -> dict[str, object]:
        state_container: AppContainer = request.app.state.container
        user = state_container.user_service.get_user(user_id)
        if user is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND)
        return user_response(user)

    @app.put("/users/{user_id}")
    async def update_user(
        user_id: UUID, payload: UserPayload, request: Request
    ) -> dict[str, object]:
        state_container: AppContainer = request.app.state.container
        user = state_container.user_service.update_user(
            user_id, payload.first_name, payload.last_name
        )
        if user is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND)
        return user_response(user)

    @app.get("/users/{user_id}/targets")
    async def get_targets(user_id: UUID, request: Request) -> dict[str, object]:
        """Return the user's live macro targets."""
        state_container: AppContainer = request.app.state.container
        _require_user(state_container, user_id)
        targets = await state_container.ledger_service.get_targets(user_id)
        return targets_response(targets)

    @app.put("/users/{user_id}/targets")
    async def update_targets(
        user_id: UUID, payload: TargetsPayload, request: Request
    ) -> dict[str, object]:
        """Update targets; a single missing field is computed from the others."""
        state_container: AppContainer = request.app.state.container
        _require_user(state_container, user_id)
        draft = TargetDraft().edit(**payload.model_dump()).solve()
        targets = await state_container.ledger_service.update_targets(
            user_id, draft.finalize()
        )
        derived = draft.derived.value if draft.derived is not None else None
        return targets_response(targets, derived=derived)

    return app


def _require_user(container: AppContainer, user_id: UUID) -> None:
    if container.user_service.get_user(user_id) is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND)


def _status_for(exc: LedgerError) -> int:
    if isinstance(exc, AttemptInProgressError | AlreadyActiveError):
        return status.HTTP_409_CONFLICT
    if isinstance(exc, TargetValidationError):
        return status.HTTP_422_UNPROCESSABLE_ENTITY
    if isinstance(exc, CaptureStateError):
        return status.HTTP_400_BAD_REQUEST
    if isinstance(exc, PersistenceError):
        return status.HTTP_503_SERVICE_UNAVAILABLE
    return status.HTTP_502_BAD_GATEWAY
