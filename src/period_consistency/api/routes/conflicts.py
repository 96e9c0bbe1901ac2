"""Absence/adjustment conflict detection endpoint."""

from datetime import date
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Query

from period_consistency.api.dependencies import CompanyId, DbSession
from period_consistency.api.schemas import ConflictReportResponse, ErrorResponse
from period_consistency.services.conflict_detector import ConflictDetector, DateRange

router = APIRouter(prefix="/conflicts", tags=["conflicts"])


@router.get(
    "",
    response_model=ConflictReportResponse,
    responses={422: {"model": ErrorResponse}, 503: {"model": ErrorResponse}},
)
async def detect_conflicts(
    db: DbSession,
    company_id: CompanyId,
    start_date: Annotated[date, Query()],
    end_date: Annotated[date, Query()],
    period_id: Annotated[UUID | None, Query()] = None,
) -> ConflictReportResponse:
    """Report leave recorded in both the absence and payroll modules."""
    detector = ConflictDetector(db, company_id)
    report = await detector.detect_conflicts(DateRange(start_date, end_date), period_id)
    return ConflictReportResponse.model_validate(report)
