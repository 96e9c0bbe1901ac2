"""Pydantic schemas for API request/response models."""

from datetime import date, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from period_consistency.services.changes import Change


# ============================================================================
# Editing sessions
# ============================================================================


class EditingSessionResponse(BaseModel):
    """Schema for editing session response."""

    model_config = ConfigDict(from_attributes=True)

    session_id: UUID
    company_id: UUID
    period_id: UUID
    actor_id: UUID | None = None
    status: str
    changes: dict[str, Any]
    error_message: str | None = None
    started_at: datetime
    completed_at: datetime | None = None


class ValidationResultResponse(BaseModel):
    """Schema for change set validation response."""

    model_config = ConfigDict(from_attributes=True)

    is_valid: bool
    errors: list[str]
    warnings: list[str]


class StageChangeRequest(BaseModel):
    """Schema for staging one change."""

    change: Change


class CleanupRequest(BaseModel):
    """Schema for abandoned session cleanup."""

    timeout_minutes: int | None = Field(default=None, ge=1)


class CleanupResponse(BaseModel):
    expired: int


# ============================================================================
# Versions
# ============================================================================


class VersionResponse(BaseModel):
    """Schema for version history entry (without snapshot)."""

    model_config = ConfigDict(from_attributes=True)

    version_id: UUID
    period_id: UUID
    version_number: int
    version_type: str
    changes_summary: str
    previous_version_id: UUID | None = None
    actor_id: UUID | None = None
    created_at: datetime


class RollbackRequest(BaseModel):
    """Schema for rollback request."""

    version_id: UUID
    justification: str


class TotalsResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    gross: Decimal
    deductions: Decimal
    net: Decimal
    employee_count: int


class RollbackResponse(BaseModel):
    """Schema for rollback response."""

    model_config = ConfigDict(from_attributes=True)

    period_id: UUID
    restored_version_id: UUID
    new_version_id: UUID
    new_version_number: int
    rows_restored: int
    adjustments_restored: int
    totals: TotalsResponse


class EmployeeImpactResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    employee_id: UUID
    employee_name: str
    current_net: Decimal
    target_net: Decimal
    difference: Decimal


class RollbackPreviewResponse(BaseModel):
    """Schema for rollback impact preview."""

    model_config = ConfigDict(from_attributes=True)

    can_rollback: bool
    reason: str | None = None
    employee_changes: list[EmployeeImpactResponse]
    gross_difference: Decimal
    net_difference: Decimal
    affected_count: int


class FieldChangeResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    field_name: str
    initial_value: Decimal
    current_value: Decimal
    difference: Decimal


class EmployeeVersionChangeResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    employee_id: UUID
    employee_name: str
    change_type: str
    field_changes: list[FieldChangeResponse]
    adjustments_added: int
    adjustments_removed: int
    adjustments_modified: int
    impact_amount: Decimal


class VersionComparisonResponse(BaseModel):
    """Schema for version comparison response."""

    model_config = ConfigDict(from_attributes=True)

    period_id: UUID
    from_version_number: int
    to_version_number: int
    employee_changes: list[EmployeeVersionChangeResponse]
    employees_with_changes: int
    total_impact: Decimal


# ============================================================================
# Conflicts
# ============================================================================


class ConflictRecordResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    record_id: UUID
    employee_id: UUID
    employee_name: str
    type: str
    start_date: date
    end_date: date
    source: str
    status: str | None = None
    notes: str | None = None


class ConflictGroupResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    employee_id: UUID
    employee_name: str
    conflict_type: str
    severity: str
    records: list[ConflictRecordResponse]


class ConflictReportResponse(BaseModel):
    """Schema for conflict detection report."""

    model_config = ConfigDict(from_attributes=True)

    has_conflicts: bool
    total_conflicts: int
    groups: list[ConflictGroupResponse]
    summary: dict[str, int]


# ============================================================================
# Recovery
# ============================================================================


class RecoveryResponse(BaseModel):
    """Schema for historical recovery response."""

    model_config = ConfigDict(from_attributes=True)

    success: bool
    message: str
    records_created: int
    employees_processed: list[str]
    warnings: list[str]


class PeriodSummaryResponse(BaseModel):
    """Schema for payroll period summary."""

    model_config = ConfigDict(from_attributes=True)

    period_id: UUID
    label: str
    start_date: date
    end_date: date
    status: str
    total_gross: Decimal
    total_deductions: Decimal
    total_net: Decimal
    employee_count: int


# ============================================================================
# Errors
# ============================================================================


class ErrorResponse(BaseModel):
    """Schema for error response."""

    detail: str
    code: str | None = None
    errors: list[str] | None = None
    warnings: list[str] | None = None
