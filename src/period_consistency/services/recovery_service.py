"""Historical recovery of periods closed without per-employee detail."""

from __future__ import annotations

import logging
from decimal import ROUND_HALF_UP, Decimal
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from period_consistency.config import get_settings
from period_consistency.exceptions import PersistenceError
from period_consistency.models import Employee, PayrollDetailRow, PayrollPeriod
from period_consistency.services.audit_service import AuditAction, AuditService
from period_consistency.services.repository import PeriodRepository
from period_consistency.services.state_machine import PeriodStatus
from period_consistency.services.types import RecoveryResult

logger = logging.getLogger(__name__)

ZERO = Decimal("0")

AMOUNT_FIELDS = ("gross", "deductions", "net")


def round_to_unit(value: Decimal, unit: Decimal) -> Decimal:
    """Round half-up to a multiple of unit."""
    return (value / unit).quantize(Decimal("1"), rounding=ROUND_HALF_UP) * unit


def distribute(
    total: Decimal, weights: list[Decimal], unit: Decimal
) -> list[Decimal]:
    """Split total by weight, rounded to unit, with the residual on the last share.

    Equal weights are used when every weight is zero.
    """
    weight_sum = sum(weights, ZERO)
    if weight_sum == ZERO:
        weights = [Decimal("1")] * len(weights)
        weight_sum = Decimal(len(weights))

    shares = [round_to_unit(total * weight / weight_sum, unit) for weight in weights]
    shares[-1] += total - sum(shares, ZERO)
    return shares


class RecoveryService:
    """Rebuilds detail rows for closed periods that only carry aggregates.

    A badly closed period is closed, has a zero employee count and at least
    one non-zero total. Recovery never fails on rounding mismatches; those are
    reported as warnings.
    """

    def __init__(self, session: AsyncSession, company_id: UUID):
        self.session = session
        self.company_id = company_id
        self.repository = PeriodRepository(session, company_id)
        self.audit = AuditService(session, company_id)
        settings = get_settings()
        self.tolerance = settings.recovery_tolerance
        self.rounding_unit = settings.recovery_rounding_unit

    @staticmethod
    def is_badly_closed(period: PayrollPeriod) -> bool:
        return (
            period.status == PeriodStatus.CLOSED.value
            and period.employee_count == 0
            and period.has_totals
        )

    async def find_badly_closed_periods(self) -> list[PayrollPeriod]:
        """Periods needing recovery, oldest first."""
        return await self.repository.list_periods_without_detail()

    async def recover_badly_closed_period(
        self, period_id: UUID, actor_id: UUID | None = None
    ) -> RecoveryResult:
        period = await self.repository.require_period(period_id)

        if not self.is_badly_closed(period):
            return RecoveryResult(success=False, message="Period does not need recovery")

        if await self.repository.count_detail_rows(period_id) > 0:
            return RecoveryResult(
                success=False, message="Detail rows already exist for this period"
            )

        employees = await self.repository.list_active_employees_hired_by(period.end_date)
        if not employees:
            return RecoveryResult(
                success=False, message="No eligible employees to recover the period onto"
            )

        rows = self._build_rows(period, employees)
        try:
            self.repository.add_all(rows)
            period.employee_count = len(rows)
            await self.repository.flush()
            await self.audit.record(
                AuditAction.RECOVERY_APPLIED,
                period_id,
                actor_id=actor_id,
                details={
                    "period_id": str(period_id),
                    "records_created": len(rows),
                    "total_gross": str(period.total_gross),
                    "total_net": str(period.total_net),
                },
            )
            await self.session.commit()
        except SQLAlchemyError as exc:
            await self.session.rollback()
            raise PersistenceError("recover_badly_closed_period", str(exc)) from exc

        warnings = self._check_totals(period, rows)
        for warning in warnings:
            logger.warning("Recovery of period %s: %s", period_id, warning)

        logger.info("Recovered period %s onto %d employee(s)", period_id, len(rows))
        return RecoveryResult(
            success=True,
            message=f"Period recovered: {len(rows)} detail row(s) created",
            records_created=len(rows),
            employees_processed=[employee.full_name for employee in employees],
            warnings=warnings,
        )

    def _build_rows(
        self, period: PayrollPeriod, employees: list[Employee]
    ) -> list[PayrollDetailRow]:
        weights = [employee.base_salary or ZERO for employee in employees]
        amounts = {
            name: distribute(getattr(period, f"total_{name}"), weights, self.rounding_unit)
            for name in AMOUNT_FIELDS
        }
        return [
            PayrollDetailRow(
                company_id=self.company_id,
                period_id=period.period_id,
                employee_id=employee.employee_id,
                base_salary=employee.base_salary,
                worked_days=employee.default_worked_days,
                gross=amounts["gross"][index],
                deductions=amounts["deductions"][index],
                net=amounts["net"][index],
                status="processed",
                is_recovered=True,
            )
            for index, employee in enumerate(employees)
        ]

    def _check_totals(
        self, period: PayrollPeriod, rows: list[PayrollDetailRow]
    ) -> list[str]:
        warnings = []
        for name in AMOUNT_FIELDS:
            expected = getattr(period, f"total_{name}")
            actual = sum((getattr(row, name) for row in rows), ZERO)
            if abs(actual - expected) > self.tolerance:
                warnings.append(
                    f"{name} mismatch: detail rows sum to {actual}, period total is {expected}"
                )
        return warnings
