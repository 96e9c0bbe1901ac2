"""Capture and restore of complete period state."""

from __future__ import annotations

import logging
from uuid import UUID

from period_consistency.models import (
    AdjustmentEntry,
    PayrollDetailRow,
    PayrollPeriod,
    PeriodSnapshot,
)
from period_consistency.models.base import utcnow
from period_consistency.services.repository import PeriodRepository
from period_consistency.services.types import (
    SnapshotAdjustment,
    SnapshotDetailRow,
    SnapshotEmployee,
    SnapshotPayload,
    SnapshotTotals,
)

logger = logging.getLogger(__name__)


class SnapshotService:
    """Builds SnapshotPayloads from live tables and writes them back.

    The roster is every employee with a detail row in the period.
    """

    def __init__(self, repository: PeriodRepository):
        self.repository = repository

    async def capture(self, period: PayrollPeriod) -> SnapshotPayload:
        """Read the period's current state into an immutable payload."""
        rows = await self.repository.list_detail_rows(period.period_id)
        adjustments = await self.repository.list_adjustments(period.period_id)
        employees = await self.repository.get_employees(row.employee_id for row in rows)

        return SnapshotPayload(
            period_id=period.period_id,
            label=period.label,
            start_date=period.start_date,
            end_date=period.end_date,
            status=period.status,
            totals=SnapshotTotals(
                gross=period.total_gross,
                deductions=period.total_deductions,
                net=period.total_net,
                employee_count=period.employee_count,
            ),
            employees=[
                SnapshotEmployee(
                    employee_id=emp.employee_id,
                    first_name=emp.first_name,
                    last_name=emp.last_name,
                    document_number=emp.document_number,
                    status=emp.status,
                    base_salary=emp.base_salary,
                )
                for emp in sorted(employees.values(), key=lambda e: str(e.employee_id))
            ],
            detail_rows=[
                SnapshotDetailRow(
                    detail_id=row.detail_id,
                    employee_id=row.employee_id,
                    base_salary=row.base_salary,
                    worked_days=row.worked_days,
                    gross=row.gross,
                    deductions=row.deductions,
                    net=row.net,
                    status=row.status,
                    is_recovered=row.is_recovered,
                )
                for row in rows
            ],
            adjustments=[
                SnapshotAdjustment(
                    adjustment_id=adj.adjustment_id,
                    employee_id=adj.employee_id,
                    adjustment_type=adj.adjustment_type,
                    subtype=adj.subtype,
                    value=adj.value,
                    start_date=adj.start_date,
                    end_date=adj.end_date,
                    days=adj.days,
                    notes=adj.notes,
                )
                for adj in adjustments
            ],
            captured_at=utcnow(),
        )

    async def persist_for_session(
        self, period: PayrollPeriod, session_id: UUID
    ) -> PeriodSnapshot:
        """Capture and store the pre-edit snapshot owned by a session."""
        payload = await self.capture(period)
        snapshot = PeriodSnapshot(
            company_id=self.repository.company_id,
            period_id=period.period_id,
            session_id=session_id,
            payload=payload.to_json(),
            captured_at=payload.captured_at,
        )
        self.repository.add(snapshot)
        return snapshot

    async def load_for_session(self, session_id: UUID) -> SnapshotPayload | None:
        snapshot = await self.repository.get_snapshot(session_id)
        if snapshot is None:
            return None
        return SnapshotPayload.from_json(snapshot.payload)

    async def restore(self, period: PayrollPeriod, payload: SnapshotPayload) -> SnapshotTotals:
        """Replace the period's rows and adjustments with the payload's.

        Restored rows get fresh identities. Returns the totals written to the
        period: recomputed from the restored rows, or the payload's stored
        totals when it carries no rows.
        """
        company_id = self.repository.company_id
        await self.repository.delete_detail_rows(period.period_id)
        await self.repository.delete_adjustments(period.period_id)
        await self.repository.flush()

        self.repository.add_all(
            PayrollDetailRow(
                company_id=company_id,
                period_id=period.period_id,
                employee_id=row.employee_id,
                base_salary=row.base_salary,
                worked_days=row.worked_days,
                gross=row.gross,
                deductions=row.deductions,
                net=row.net,
                status=row.status,
                is_recovered=row.is_recovered,
            )
            for row in payload.detail_rows
        )
        self.repository.add_all(
            AdjustmentEntry(
                company_id=company_id,
                period_id=period.period_id,
                employee_id=adj.employee_id,
                adjustment_type=adj.adjustment_type,
                subtype=adj.subtype,
                value=adj.value,
                start_date=adj.start_date,
                end_date=adj.end_date,
                days=adj.days,
                notes=adj.notes,
            )
            for adj in payload.adjustments
        )
        await self.repository.flush()

        totals = payload.computed_totals() if payload.detail_rows else payload.totals
        await self.repository.update_period_totals(period, totals)
        logger.info(
            "Restored period %s: %d rows, %d adjustments",
            period.period_id,
            len(payload.detail_rows),
            len(payload.adjustments),
        )
        return totals
