"""Tenant-scoped persistence collaborator for the engine services.

Every query filters on company_id; services never issue unscoped reads.
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Iterable, Sequence
from uuid import UUID

from sqlalchemy import delete, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from period_consistency.exceptions import NotFoundError
from period_consistency.models import (
    AbsenceRecord,
    AdjustmentEntry,
    EditingSession,
    Employee,
    PayrollDetailRow,
    PayrollPeriod,
    PeriodSnapshot,
    VersionHistoryEntry,
)
from period_consistency.services.state_machine import SessionStateMachine
from period_consistency.services.types import SnapshotTotals

ZERO = Decimal("0")


class PeriodRepository:
    """Typed reads and transaction-scoped writes for one tenant."""

    def __init__(self, session: AsyncSession, company_id: UUID):
        self.session = session
        self.company_id = company_id

    # ----- Periods -----

    async def get_period(self, period_id: UUID, for_update: bool = False) -> PayrollPeriod | None:
        """Load a period, refreshing any stale identity-map copy."""
        query = (
            select(PayrollPeriod)
            .where(
                PayrollPeriod.period_id == period_id,
                PayrollPeriod.company_id == self.company_id,
            )
            .execution_options(populate_existing=True)
        )
        if for_update:
            query = query.with_for_update()
        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    async def require_period(self, period_id: UUID, for_update: bool = False) -> PayrollPeriod:
        period = await self.get_period(period_id, for_update=for_update)
        if period is None:
            raise NotFoundError("PayrollPeriod", period_id)
        return period

    async def list_periods_without_detail(self) -> list[PayrollPeriod]:
        """Closed periods with totals but no detail rows and a zero employee count."""
        has_rows = (
            select(PayrollDetailRow.detail_id)
            .where(PayrollDetailRow.period_id == PayrollPeriod.period_id)
            .exists()
        )
        result = await self.session.execute(
            select(PayrollPeriod)
            .where(
                PayrollPeriod.company_id == self.company_id,
                PayrollPeriod.status == "closed",
                PayrollPeriod.employee_count == 0,
                (PayrollPeriod.total_gross != ZERO)
                | (PayrollPeriod.total_deductions != ZERO)
                | (PayrollPeriod.total_net != ZERO),
                ~has_rows,
            )
            .order_by(PayrollPeriod.start_date)
        )
        return list(result.scalars().all())

    async def update_period_totals(self, period: PayrollPeriod, totals: SnapshotTotals) -> None:
        """Overwrite a period's aggregate totals."""
        period.total_gross = totals.gross
        period.total_deductions = totals.deductions
        period.total_net = totals.net
        period.employee_count = totals.employee_count
        await self.session.flush()

    async def compute_totals(self, period_id: UUID) -> SnapshotTotals:
        """Aggregate totals as currently implied by the detail rows."""
        result = await self.session.execute(
            select(
                func.coalesce(func.sum(PayrollDetailRow.gross), 0),
                func.coalesce(func.sum(PayrollDetailRow.deductions), 0),
                func.coalesce(func.sum(PayrollDetailRow.net), 0),
                func.count(PayrollDetailRow.detail_id),
            ).where(
                PayrollDetailRow.period_id == period_id,
                PayrollDetailRow.company_id == self.company_id,
            )
        )
        gross, deductions, net, count = result.one()
        return SnapshotTotals(
            gross=Decimal(str(gross)),
            deductions=Decimal(str(deductions)),
            net=Decimal(str(net)),
            employee_count=int(count),
        )

    # ----- Detail rows -----

    async def list_detail_rows(self, period_id: UUID) -> list[PayrollDetailRow]:
        result = await self.session.execute(
            select(PayrollDetailRow)
            .where(
                PayrollDetailRow.period_id == period_id,
                PayrollDetailRow.company_id == self.company_id,
            )
            .order_by(PayrollDetailRow.employee_id)
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    async def count_detail_rows(self, period_id: UUID) -> int:
        result = await self.session.execute(
            select(func.count(PayrollDetailRow.detail_id)).where(
                PayrollDetailRow.period_id == period_id,
                PayrollDetailRow.company_id == self.company_id,
            )
        )
        return int(result.scalar_one())

    async def employee_has_processed_rows(
        self, employee_id: UUID, exclude_period_id: UUID
    ) -> bool:
        """Check for non-draft detail rows of an employee in other periods."""
        result = await self.session.execute(
            select(PayrollDetailRow.detail_id)
            .where(
                PayrollDetailRow.company_id == self.company_id,
                PayrollDetailRow.employee_id == employee_id,
                PayrollDetailRow.period_id != exclude_period_id,
                PayrollDetailRow.status != "draft",
            )
            .limit(1)
        )
        return result.first() is not None

    async def delete_detail_rows(
        self, period_id: UUID, employee_ids: Iterable[UUID] | None = None
    ) -> int:
        stmt = delete(PayrollDetailRow).where(
            PayrollDetailRow.period_id == period_id,
            PayrollDetailRow.company_id == self.company_id,
        )
        if employee_ids is not None:
            stmt = stmt.where(PayrollDetailRow.employee_id.in_(list(employee_ids)))
        result = await self.session.execute(stmt)
        return result.rowcount or 0

    # ----- Adjustment entries -----

    async def list_adjustments(self, period_id: UUID) -> list[AdjustmentEntry]:
        result = await self.session.execute(
            select(AdjustmentEntry)
            .where(
                AdjustmentEntry.period_id == period_id,
                AdjustmentEntry.company_id == self.company_id,
            )
            .order_by(
                AdjustmentEntry.employee_id,
                AdjustmentEntry.adjustment_type,
                AdjustmentEntry.start_date,
                AdjustmentEntry.adjustment_id,
            )
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    async def delete_adjustments(
        self,
        period_id: UUID,
        employee_ids: Iterable[UUID] | None = None,
        adjustment_ids: Iterable[UUID] | None = None,
    ) -> int:
        stmt = delete(AdjustmentEntry).where(
            AdjustmentEntry.period_id == period_id,
            AdjustmentEntry.company_id == self.company_id,
        )
        if employee_ids is not None:
            stmt = stmt.where(AdjustmentEntry.employee_id.in_(list(employee_ids)))
        if adjustment_ids is not None:
            stmt = stmt.where(AdjustmentEntry.adjustment_id.in_(list(adjustment_ids)))
        result = await self.session.execute(stmt)
        return result.rowcount or 0

    async def list_absence_adjustments(
        self,
        adjustment_types: Sequence[str],
        start_date: date,
        end_date: date,
        period_id: UUID | None = None,
    ) -> list[tuple[AdjustmentEntry, Employee]]:
        """Absence-type adjustments with their employees.

        Filtered by period when given, otherwise by the date window.
        """
        query = (
            select(AdjustmentEntry, Employee)
            .join(Employee, Employee.employee_id == AdjustmentEntry.employee_id)
            .where(
                AdjustmentEntry.company_id == self.company_id,
                Employee.company_id == self.company_id,
                AdjustmentEntry.adjustment_type.in_(list(adjustment_types)),
            )
        )
        if period_id is not None:
            query = query.where(AdjustmentEntry.period_id == period_id)
        else:
            query = query.where(
                or_(AdjustmentEntry.start_date.is_(None), AdjustmentEntry.start_date >= start_date),
                or_(AdjustmentEntry.end_date.is_(None), AdjustmentEntry.end_date <= end_date),
            )
        result = await self.session.execute(
            query.order_by(AdjustmentEntry.employee_id, AdjustmentEntry.adjustment_id)
        )
        return [(adj, emp) for adj, emp in result.all()]

    # ----- Employees & absences -----

    async def get_employees(self, employee_ids: Iterable[UUID]) -> dict[UUID, Employee]:
        ids = list(employee_ids)
        if not ids:
            return {}
        result = await self.session.execute(
            select(Employee).where(
                Employee.company_id == self.company_id,
                Employee.employee_id.in_(ids),
            )
        )
        return {emp.employee_id: emp for emp in result.scalars().all()}

    async def list_active_employees_hired_by(self, cutoff: date) -> list[Employee]:
        """Active employees already hired on the cutoff date."""
        result = await self.session.execute(
            select(Employee)
            .where(
                Employee.company_id == self.company_id,
                Employee.status == "active",
                Employee.hire_date.is_not(None),
                Employee.hire_date <= cutoff,
            )
            .order_by(Employee.hire_date, Employee.employee_id)
        )
        return list(result.scalars().all())

    async def list_absence_records(
        self, start_date: date, end_date: date, statuses: Sequence[str]
    ) -> list[tuple[AbsenceRecord, Employee]]:
        result = await self.session.execute(
            select(AbsenceRecord, Employee)
            .join(Employee, Employee.employee_id == AbsenceRecord.employee_id)
            .where(
                AbsenceRecord.company_id == self.company_id,
                Employee.company_id == self.company_id,
                AbsenceRecord.start_date >= start_date,
                AbsenceRecord.end_date <= end_date,
                AbsenceRecord.status.in_(list(statuses)),
            )
            .order_by(AbsenceRecord.employee_id, AbsenceRecord.absence_id)
        )
        return [(absence, emp) for absence, emp in result.all()]

    # ----- Editing sessions & snapshots -----

    async def get_session(self, session_id: UUID) -> EditingSession | None:
        result = await self.session.execute(
            select(EditingSession)
            .where(
                EditingSession.session_id == session_id,
                EditingSession.company_id == self.company_id,
            )
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def require_session(self, session_id: UUID) -> EditingSession:
        editing_session = await self.get_session(session_id)
        if editing_session is None:
            raise NotFoundError("EditingSession", session_id)
        return editing_session

    async def find_open_session(self, period_id: UUID) -> EditingSession | None:
        """The active/saving session holding the period lock, if any."""
        result = await self.session.execute(
            select(EditingSession)
            .where(
                EditingSession.period_id == period_id,
                EditingSession.company_id == self.company_id,
                EditingSession.status.in_(
                    sorted(status.value for status in SessionStateMachine.LOCK_HOLDING)
                ),
            )
            .execution_options(populate_existing=True)
        )
        return result.scalars().first()

    async def list_sessions_started_before(
        self, status: str, cutoff: datetime
    ) -> list[EditingSession]:
        result = await self.session.execute(
            select(EditingSession)
            .where(
                EditingSession.company_id == self.company_id,
                EditingSession.status == status,
                EditingSession.started_at < cutoff,
            )
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    async def get_snapshot(self, session_id: UUID) -> PeriodSnapshot | None:
        result = await self.session.execute(
            select(PeriodSnapshot).where(
                PeriodSnapshot.session_id == session_id,
                PeriodSnapshot.company_id == self.company_id,
            )
        )
        return result.scalar_one_or_none()

    async def delete_snapshots(self, session_ids: Iterable[UUID]) -> int:
        ids = list(session_ids)
        if not ids:
            return 0
        result = await self.session.execute(
            delete(PeriodSnapshot).where(
                PeriodSnapshot.company_id == self.company_id,
                PeriodSnapshot.session_id.in_(ids),
            )
        )
        return result.rowcount or 0

    # ----- Version history -----

    async def next_version_number(self, period_id: UUID) -> int:
        """MAX()+1 for the period, read inside the caller's transaction."""
        result = await self.session.execute(
            select(func.coalesce(func.max(VersionHistoryEntry.version_number), 0)).where(
                VersionHistoryEntry.period_id == period_id,
                VersionHistoryEntry.company_id == self.company_id,
            )
        )
        return int(result.scalar_one()) + 1

    async def count_versions(self, period_id: UUID) -> int:
        result = await self.session.execute(
            select(func.count(VersionHistoryEntry.version_id)).where(
                VersionHistoryEntry.period_id == period_id,
                VersionHistoryEntry.company_id == self.company_id,
            )
        )
        return int(result.scalar_one())

    async def list_versions(self, period_id: UUID) -> list[VersionHistoryEntry]:
        result = await self.session.execute(
            select(VersionHistoryEntry)
            .where(
                VersionHistoryEntry.period_id == period_id,
                VersionHistoryEntry.company_id == self.company_id,
            )
            .order_by(VersionHistoryEntry.version_number)
        )
        return list(result.scalars().all())

    async def get_version(self, period_id: UUID, version_id: UUID) -> VersionHistoryEntry | None:
        result = await self.session.execute(
            select(VersionHistoryEntry).where(
                VersionHistoryEntry.version_id == version_id,
                VersionHistoryEntry.period_id == period_id,
                VersionHistoryEntry.company_id == self.company_id,
            )
        )
        return result.scalar_one_or_none()

    async def require_version(self, period_id: UUID, version_id: UUID) -> VersionHistoryEntry:
        version = await self.get_version(period_id, version_id)
        if version is None:
            raise NotFoundError("VersionHistoryEntry", version_id)
        return version

    # ----- Generic -----

    def add(self, instance) -> None:
        self.session.add(instance)

    def add_all(self, instances: Iterable) -> None:
        self.session.add_all(list(instances))

    async def flush(self) -> None:
        await self.session.flush()
