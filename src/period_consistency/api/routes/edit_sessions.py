"""Editing session API endpoints."""

from datetime import timedelta
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, HTTPException, Path, status

from period_consistency.api.dependencies import ActorId, CompanyId, DbSession
from period_consistency.api.schemas import (
    CleanupRequest,
    CleanupResponse,
    EditingSessionResponse,
    ErrorResponse,
    StageChangeRequest,
    ValidationResultResponse,
)
from period_consistency.services.changes import ChangeSet
from period_consistency.services.editing_service import EditingSessionService

router = APIRouter(tags=["edit-sessions"])


@router.post(
    "/periods/{period_id}/edit-sessions",
    response_model=EditingSessionResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
        423: {"model": ErrorResponse},
    },
)
async def start_editing_session(
    db: DbSession,
    company_id: CompanyId,
    actor_id: ActorId,
    period_id: Annotated[UUID, Path()],
) -> EditingSessionResponse:
    """Open an editing session on a closed period, taking its lock."""
    service = EditingSessionService(db, company_id)
    editing_session = await service.start_editing_session(period_id, actor_id)
    return EditingSessionResponse.model_validate(editing_session)


@router.get(
    "/periods/{period_id}/edit-sessions/active",
    response_model=EditingSessionResponse,
    responses={404: {"model": ErrorResponse}},
)
async def get_active_session(
    db: DbSession,
    company_id: CompanyId,
    period_id: Annotated[UUID, Path()],
) -> EditingSessionResponse:
    """Get the session currently holding the period lock."""
    service = EditingSessionService(db, company_id)
    editing_session = await service.get_active_session(period_id)
    if editing_session is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="No active editing session for this period",
        )
    return EditingSessionResponse.model_validate(editing_session)


@router.post(
    "/edit-sessions/cleanup",
    response_model=CleanupResponse,
)
async def cleanup_sessions(
    db: DbSession,
    company_id: CompanyId,
    payload: CleanupRequest | None = None,
) -> CleanupResponse:
    """Expire abandoned sessions of this company."""
    timeout = None
    if payload is not None and payload.timeout_minutes is not None:
        timeout = timedelta(minutes=payload.timeout_minutes)
    service = EditingSessionService(db, company_id)
    expired = await service.cleanup_abandoned_sessions(timeout)
    return CleanupResponse(expired=expired)


@router.get(
    "/edit-sessions/{session_id}",
    response_model=EditingSessionResponse,
    responses={404: {"model": ErrorResponse}},
)
async def get_session(
    db: DbSession,
    company_id: CompanyId,
    session_id: Annotated[UUID, Path()],
) -> EditingSessionResponse:
    service = EditingSessionService(db, company_id)
    return EditingSessionResponse.model_validate(await service.get_session(session_id))


@router.post(
    "/edit-sessions/{session_id}/changes",
    response_model=ChangeSet,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def stage_change(
    db: DbSession,
    company_id: CompanyId,
    session_id: Annotated[UUID, Path()],
    payload: StageChangeRequest,
) -> ChangeSet:
    """Stage one change; live tables are untouched until apply."""
    service = EditingSessionService(db, company_id)
    return await service.stage_change(session_id, payload.change)


@router.post(
    "/edit-sessions/{session_id}/validate",
    response_model=ValidationResultResponse,
    responses={404: {"model": ErrorResponse}},
)
async def validate_changes(
    db: DbSession,
    company_id: CompanyId,
    session_id: Annotated[UUID, Path()],
) -> ValidationResultResponse:
    service = EditingSessionService(db, company_id)
    result = await service.validate_changes(session_id)
    return ValidationResultResponse.model_validate(result)


@router.post(
    "/edit-sessions/{session_id}/apply",
    response_model=EditingSessionResponse,
    responses={
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
        422: {"model": ErrorResponse},
        503: {"model": ErrorResponse},
    },
)
async def apply_changes(
    db: DbSession,
    company_id: CompanyId,
    session_id: Annotated[UUID, Path()],
) -> EditingSessionResponse:
    """Apply the staged change set atomically as a new version."""
    service = EditingSessionService(db, company_id)
    editing_session = await service.apply_changes(session_id)
    return EditingSessionResponse.model_validate(editing_session)


@router.post(
    "/edit-sessions/{session_id}/discard",
    response_model=EditingSessionResponse,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def discard_changes(
    db: DbSession,
    company_id: CompanyId,
    session_id: Annotated[UUID, Path()],
) -> EditingSessionResponse:
    service = EditingSessionService(db, company_id)
    editing_session = await service.discard_changes(session_id)
    return EditingSessionResponse.model_validate(editing_session)
