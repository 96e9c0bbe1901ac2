"""Period version history, rollback and recovery endpoints."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Path, Query, status

from period_consistency.api.dependencies import ActorId, CompanyId, DbSession
from period_consistency.api.schemas import (
    ErrorResponse,
    PeriodSummaryResponse,
    RecoveryResponse,
    RollbackPreviewResponse,
    RollbackRequest,
    RollbackResponse,
    VersionComparisonResponse,
    VersionResponse,
)
from period_consistency.services.recovery_service import RecoveryService
from period_consistency.services.version_service import VersionService

router = APIRouter(prefix="/periods", tags=["periods"])


# ============================================================================
# Recovery
# ============================================================================


@router.get(
    "/recovery-candidates",
    response_model=list[PeriodSummaryResponse],
)
async def list_recovery_candidates(
    db: DbSession,
    company_id: CompanyId,
) -> list[PeriodSummaryResponse]:
    """List closed periods that carry totals but no detail rows."""
    service = RecoveryService(db, company_id)
    periods = await service.find_badly_closed_periods()
    return [PeriodSummaryResponse.model_validate(p) for p in periods]


@router.post(
    "/{period_id}/recover",
    response_model=RecoveryResponse,
    responses={404: {"model": ErrorResponse}, 503: {"model": ErrorResponse}},
)
async def recover_period(
    db: DbSession,
    company_id: CompanyId,
    actor_id: ActorId,
    period_id: Annotated[UUID, Path()],
) -> RecoveryResponse:
    """Rebuild detail rows of a badly closed period from its totals."""
    service = RecoveryService(db, company_id)
    result = await service.recover_badly_closed_period(period_id, actor_id)
    return RecoveryResponse.model_validate(result)


# ============================================================================
# Versions
# ============================================================================


@router.get(
    "/{period_id}/versions",
    response_model=list[VersionResponse],
    responses={404: {"model": ErrorResponse}},
)
async def list_versions(
    db: DbSession,
    company_id: CompanyId,
    period_id: Annotated[UUID, Path()],
) -> list[VersionResponse]:
    """List a period's versions, oldest first."""
    service = VersionService(db, company_id)
    versions = await service.list_versions(period_id)
    return [VersionResponse.model_validate(v) for v in versions]


@router.get(
    "/{period_id}/versions/compare",
    response_model=VersionComparisonResponse,
    responses={404: {"model": ErrorResponse}},
)
async def compare_versions(
    db: DbSession,
    company_id: CompanyId,
    period_id: Annotated[UUID, Path()],
    from_version_id: Annotated[UUID, Query()],
    to_version_id: Annotated[UUID, Query()],
) -> VersionComparisonResponse:
    service = VersionService(db, company_id)
    comparison = await service.compare_versions(period_id, from_version_id, to_version_id)
    return VersionComparisonResponse.model_validate(comparison)


@router.get(
    "/{period_id}/versions/{version_id}",
    response_model=VersionResponse,
    responses={404: {"model": ErrorResponse}},
)
async def get_version(
    db: DbSession,
    company_id: CompanyId,
    period_id: Annotated[UUID, Path()],
    version_id: Annotated[UUID, Path()],
) -> VersionResponse:
    service = VersionService(db, company_id)
    return VersionResponse.model_validate(await service.get_version(period_id, version_id))


@router.get(
    "/{period_id}/versions/{version_id}/rollback-preview",
    response_model=RollbackPreviewResponse,
    responses={404: {"model": ErrorResponse}},
)
async def preview_rollback(
    db: DbSession,
    company_id: CompanyId,
    period_id: Annotated[UUID, Path()],
    version_id: Annotated[UUID, Path()],
) -> RollbackPreviewResponse:
    """Per-employee impact of a rollback, without applying it."""
    service = VersionService(db, company_id)
    impact = await service.preview_rollback(period_id, version_id)
    return RollbackPreviewResponse.model_validate(impact)


@router.post(
    "/{period_id}/rollback",
    response_model=RollbackResponse,
    status_code=status.HTTP_200_OK,
    responses={
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
        422: {"model": ErrorResponse},
        423: {"model": ErrorResponse},
        503: {"model": ErrorResponse},
    },
)
async def rollback_period(
    db: DbSession,
    company_id: CompanyId,
    actor_id: ActorId,
    period_id: Annotated[UUID, Path()],
    payload: RollbackRequest,
) -> RollbackResponse:
    """Restore a version's snapshot as the period's live state."""
    service = VersionService(db, company_id)
    result = await service.rollback_to_version(
        period_id, payload.version_id, payload.justification, actor_id
    )
    return RollbackResponse.model_validate(result)
