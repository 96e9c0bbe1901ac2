"""Type definitions shared by the engine services."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from pydantic import BaseModel, Field

ZERO = Decimal("0")


# ===== Snapshot payload =====


class SnapshotTotals(BaseModel):
    """Aggregate totals of a period at capture time."""

    gross: Decimal = ZERO
    deductions: Decimal = ZERO
    net: Decimal = ZERO
    employee_count: int = 0


class SnapshotEmployee(BaseModel):
    """Roster entry."""

    employee_id: UUID
    first_name: str
    last_name: str
    document_number: str
    status: str
    base_salary: Decimal

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"


class SnapshotDetailRow(BaseModel):
    """Detail row as captured; detail_id is informational only."""

    detail_id: UUID | None = None
    employee_id: UUID
    base_salary: Decimal
    worked_days: int
    gross: Decimal
    deductions: Decimal
    net: Decimal
    status: str = "processed"
    is_recovered: bool = False


class SnapshotAdjustment(BaseModel):
    """Adjustment entry as captured; adjustment_id is informational only."""

    adjustment_id: UUID | None = None
    employee_id: UUID
    adjustment_type: str
    subtype: str | None = None
    value: Decimal
    start_date: date | None = None
    end_date: date | None = None
    days: int | None = None
    notes: str | None = None


class SnapshotPayload(BaseModel):
    """Complete, immutable copy of a period's state."""

    period_id: UUID
    label: str
    start_date: date
    end_date: date
    status: str
    totals: SnapshotTotals
    employees: list[SnapshotEmployee] = Field(default_factory=list)
    detail_rows: list[SnapshotDetailRow] = Field(default_factory=list)
    adjustments: list[SnapshotAdjustment] = Field(default_factory=list)
    captured_at: datetime

    @classmethod
    def from_json(cls, data: dict[str, Any]) -> SnapshotPayload:
        return cls.model_validate(data)

    def to_json(self) -> dict[str, Any]:
        return self.model_dump(mode="json")

    def rows_by_employee(self) -> dict[UUID, SnapshotDetailRow]:
        """Index detail rows by employee."""
        return {row.employee_id: row for row in self.detail_rows}

    def computed_totals(self) -> SnapshotTotals:
        """Totals recomputed from the detail rows."""
        return SnapshotTotals(
            gross=sum((r.gross for r in self.detail_rows), ZERO),
            deductions=sum((r.deductions for r in self.detail_rows), ZERO),
            net=sum((r.net for r in self.detail_rows), ZERO),
            employee_count=len(self.detail_rows),
        )


# ===== Results =====


@dataclass
class ValidationResult:
    """Outcome of change set validation."""

    is_valid: bool
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


@dataclass
class RollbackResult:
    """Outcome of a successful rollback."""

    period_id: UUID
    restored_version_id: UUID
    new_version_id: UUID
    new_version_number: int
    rows_restored: int
    adjustments_restored: int
    totals: SnapshotTotals


@dataclass
class EmployeeImpact:
    """Net change for one employee if a rollback were applied."""

    employee_id: UUID
    employee_name: str
    current_net: Decimal
    target_net: Decimal

    @property
    def difference(self) -> Decimal:
        return self.target_net - self.current_net


@dataclass
class RollbackImpact:
    """Read-only rollback impact analysis."""

    can_rollback: bool
    reason: str | None = None
    employee_changes: list[EmployeeImpact] = field(default_factory=list)
    gross_difference: Decimal = ZERO
    net_difference: Decimal = ZERO

    @property
    def affected_count(self) -> int:
        return len(self.employee_changes)


@dataclass
class FieldChange:
    """Difference in one numeric detail-row field between two versions."""

    field_name: str
    initial_value: Decimal
    current_value: Decimal

    @property
    def difference(self) -> Decimal:
        return self.current_value - self.initial_value


@dataclass
class EmployeeVersionChange:
    """Per-employee comparison between two versions."""

    employee_id: UUID
    employee_name: str
    change_type: str  # no_change, values_modified, employee_added, employee_removed
    field_changes: list[FieldChange] = field(default_factory=list)
    adjustments_added: int = 0
    adjustments_removed: int = 0
    adjustments_modified: int = 0

    @property
    def impact_amount(self) -> Decimal:
        for change in self.field_changes:
            if change.field_name == "net":
                return change.difference
        return ZERO


@dataclass
class VersionComparison:
    """Comparison of two version snapshots of the same period."""

    period_id: UUID
    from_version_number: int
    to_version_number: int
    employee_changes: list[EmployeeVersionChange] = field(default_factory=list)

    @property
    def employees_with_changes(self) -> int:
        return sum(1 for c in self.employee_changes if c.change_type != "no_change")

    @property
    def total_impact(self) -> Decimal:
        return sum((c.impact_amount for c in self.employee_changes), ZERO)


@dataclass
class RecoveryResult:
    """Outcome of historical recovery.

    warnings carries rounding-tolerance mismatches; they never block recovery.
    """

    success: bool
    message: str
    records_created: int = 0
    employees_processed: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
