"""Tests for historical recovery of badly closed periods."""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import select

from conftest import count_rows
from period_consistency.exceptions import NotFoundError
from period_consistency.models import (
    AuditLogEntry,
    Company,
    Employee,
    PayrollDetailRow,
    PayrollPeriod,
)
from period_consistency.services.recovery_service import (
    RecoveryService,
    distribute,
    round_to_unit,
)


async def seed_badly_closed(session, salaries, total_gross, total_deductions=Decimal("0")):
    company = Company(company_id=uuid4(), name="Legacy SAS")
    session.add(company)
    employees = [
        Employee(
            company_id=company.company_id,
            first_name=f"Employee{index}",
            last_name="Test",
            document_number=f"D{index}",
            base_salary=salary,
            hire_date=date(2023, 1, index + 1),
            default_worked_days=30,
        )
        for index, salary in enumerate(salaries)
    ]
    session.add_all(employees)
    period = PayrollPeriod(
        company_id=company.company_id,
        label="2024-01",
        start_date=date(2024, 1, 1),
        end_date=date(2024, 1, 31),
        status="closed",
        total_gross=total_gross,
        total_deductions=total_deductions,
        total_net=total_gross - total_deductions,
        employee_count=0,
    )
    session.add(period)
    await session.commit()
    return company, employees, period


async def recovered_rows(session, period_id) -> list[PayrollDetailRow]:
    result = await session.execute(
        select(PayrollDetailRow)
        .where(PayrollDetailRow.period_id == period_id)
        .order_by(PayrollDetailRow.base_salary.desc())
    )
    return list(result.scalars().all())


class TestDistribution:
    def test_round_half_up(self):
        assert round_to_unit(Decimal("2.5"), Decimal("1")) == Decimal("3")
        assert round_to_unit(Decimal("1234"), Decimal("100")) == Decimal("1200")
        assert round_to_unit(Decimal("1250"), Decimal("100")) == Decimal("1300")

    def test_residual_goes_to_last_share(self):
        shares = distribute(Decimal("100"), [Decimal("1")] * 3, Decimal("1"))
        assert shares == [Decimal("33"), Decimal("33"), Decimal("34")]
        assert sum(shares) == Decimal("100")

    def test_zero_salaries_split_equally(self):
        shares = distribute(Decimal("90"), [Decimal("0"), Decimal("0")], Decimal("1"))
        assert shares == [Decimal("45"), Decimal("45")]


class TestRecoverBadlyClosedPeriod:
    async def test_proportional_split(self, session):
        company, employees, period = await seed_badly_closed(
            session,
            [Decimal("600000"), Decimal("400000")],
            Decimal("1000000"),
            Decimal("80000"),
        )
        service = RecoveryService(session, company.company_id)

        result = await service.recover_badly_closed_period(period.period_id)

        assert result.success is True
        assert result.records_created == 2
        assert result.warnings == []
        rows = await recovered_rows(session, period.period_id)
        assert [r.gross for r in rows] == [Decimal("600000"), Decimal("400000")]
        assert [r.deductions for r in rows] == [Decimal("48000"), Decimal("32000")]
        assert sum(r.net for r in rows) == Decimal("920000")
        assert all(r.is_recovered and r.status == "processed" for r in rows)
        assert all(r.worked_days == 30 for r in rows)

        refreshed = await session.get(PayrollPeriod, period.period_id)
        assert refreshed.employee_count == 2

        actions = (
            await session.execute(
                select(AuditLogEntry.action).where(AuditLogEntry.entity_id == period.period_id)
            )
        ).scalars().all()
        assert actions == ["RECOVERY_APPLIED"]

    async def test_sums_match_exactly_with_uneven_shares(self, session):
        company, employees, period = await seed_badly_closed(
            session,
            [Decimal("1000"), Decimal("1000"), Decimal("1000")],
            Decimal("1000"),
        )
        service = RecoveryService(session, company.company_id)

        await service.recover_badly_closed_period(period.period_id)

        rows = await recovered_rows(session, period.period_id)
        assert sum(r.gross for r in rows) == Decimal("1000")
        assert sorted(r.gross for r in rows) == [Decimal("333"), Decimal("333"), Decimal("334")]

    async def test_second_run_is_noop(self, session):
        company, employees, period = await seed_badly_closed(
            session, [Decimal("500")], Decimal("500")
        )
        service = RecoveryService(session, company.company_id)
        await service.recover_badly_closed_period(period.period_id)

        result = await service.recover_badly_closed_period(period.period_id)

        assert result.success is False
        assert await count_rows(session, PayrollDetailRow, period_id=period.period_id) == 1

    async def test_existing_detail_rows_block_recovery(self, session):
        company, employees, period = await seed_badly_closed(
            session, [Decimal("500")], Decimal("500")
        )
        session.add(
            PayrollDetailRow(
                company_id=company.company_id,
                period_id=period.period_id,
                employee_id=employees[0].employee_id,
                gross=Decimal("500"),
                net=Decimal("500"),
            )
        )
        await session.commit()
        service = RecoveryService(session, company.company_id)

        result = await service.recover_badly_closed_period(period.period_id)

        assert result.success is False
        assert "already exist" in result.message
        assert await count_rows(session, PayrollDetailRow, period_id=period.period_id) == 1

    async def test_healthy_period_is_left_alone(self, session, payroll):
        service = RecoveryService(session, payroll.company_id)

        result = await service.recover_badly_closed_period(payroll.period_id)

        assert result.success is False
        assert await count_rows(session, PayrollDetailRow, period_id=payroll.period_id) == 2

    async def test_only_active_employees_hired_in_time(self, session):
        company, employees, period = await seed_badly_closed(
            session, [Decimal("100"), Decimal("100")], Decimal("100")
        )
        late = Employee(
            company_id=company.company_id,
            first_name="Late",
            last_name="Hire",
            document_number="LATE",
            base_salary=Decimal("100"),
            hire_date=date(2024, 2, 15),
        )
        gone = Employee(
            company_id=company.company_id,
            first_name="Gone",
            last_name="Away",
            document_number="GONE",
            status="terminated",
            base_salary=Decimal("100"),
            hire_date=date(2022, 1, 1),
        )
        session.add_all([late, gone])
        await session.commit()
        service = RecoveryService(session, company.company_id)

        result = await service.recover_badly_closed_period(period.period_id)

        assert result.records_created == 2
        assert result.employees_processed == ["Employee0 Test", "Employee1 Test"]

    async def test_no_eligible_employees(self, session):
        company, employees, period = await seed_badly_closed(session, [], Decimal("100"))
        service = RecoveryService(session, company.company_id)

        result = await service.recover_badly_closed_period(period.period_id)

        assert result.success is False
        assert result.records_created == 0

    async def test_unknown_period(self, session, payroll):
        service = RecoveryService(session, payroll.company_id)
        with pytest.raises(NotFoundError):
            await service.recover_badly_closed_period(uuid4())

    async def test_find_badly_closed_periods(self, session):
        company, employees, period = await seed_badly_closed(
            session, [Decimal("500")], Decimal("500")
        )
        service = RecoveryService(session, company.company_id)

        candidates = await service.find_badly_closed_periods()
        assert [p.period_id for p in candidates] == [period.period_id]

        await service.recover_badly_closed_period(period.period_id)
        assert await service.find_badly_closed_periods() == []

    async def test_coarse_rounding_unit_keeps_sums_exact(self, session):
        company, employees, period = await seed_badly_closed(
            session, [Decimal("1"), Decimal("1")], Decimal("10")
        )
        service = RecoveryService(session, company.company_id)
        service.rounding_unit = Decimal("100")

        result = await service.recover_badly_closed_period(period.period_id)

        assert result.success is True
        assert result.warnings == []
        rows = await recovered_rows(session, period.period_id)
        assert sum(r.gross for r in rows) == Decimal("10")


class TestTotalsCheck:
    def test_mismatch_beyond_tolerance_is_reported(self, caplog):
        service = RecoveryService(None, uuid4())
        period = PayrollPeriod(
            total_gross=Decimal("100"),
            total_deductions=Decimal("0"),
            total_net=Decimal("100"),
        )
        rows = [
            PayrollDetailRow(gross=Decimal("97"), deductions=Decimal("0"), net=Decimal("100.5")),
        ]

        warnings = service._check_totals(period, rows)

        assert len(warnings) == 1
        assert warnings[0].startswith("gross mismatch")
