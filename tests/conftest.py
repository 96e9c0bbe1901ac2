"""Pytest fixtures for period consistency tests."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import AsyncGenerator
from uuid import UUID, uuid4

import pytest
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from period_consistency.models import (
    AdjustmentEntry,
    Base,
    Company,
    Employee,
    PayrollDetailRow,
    PayrollPeriod,
)

# In-memory SQLite shared across connections of one engine
TEST_DATABASE_URL = "sqlite+aiosqlite://"


@pytest.fixture
async def engine():
    """Create a fresh test database per test."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest.fixture
async def session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create a database session for each test."""
    async with session_factory() as session:
        yield session


@dataclass
class PayrollData:
    """Seeded company with one closed period under edit and one earlier period."""

    company_id: UUID
    period_id: UUID
    previous_period_id: UUID
    ana: Employee
    bruno: Employee
    carla: Employee
    ana_vacation_id: UUID


async def seed_payroll(session: AsyncSession) -> PayrollData:
    """Seed the standard fixture data and commit it.

    March 2024 (closed): Ana 3000/300/2700 and Bruno 2000/200/1800, plus a
    vacation adjustment for Ana. February 2024 (closed): a processed row for
    Bruno. Carla is employed but not on the March roster.
    """
    company = Company(company_id=uuid4(), name="Acme SAS", status="active")
    session.add(company)

    ana = Employee(
        company_id=company.company_id,
        first_name="Ana",
        last_name="Gómez",
        document_number="1001",
        base_salary=Decimal("3000"),
        hire_date=date(2023, 1, 10),
    )
    bruno = Employee(
        company_id=company.company_id,
        first_name="Bruno",
        last_name="Díaz",
        document_number="1002",
        base_salary=Decimal("2000"),
        hire_date=date(2023, 6, 1),
    )
    carla = Employee(
        company_id=company.company_id,
        first_name="Carla",
        last_name="Ruiz",
        document_number="1003",
        base_salary=Decimal("2500"),
        hire_date=date(2024, 3, 1),
    )
    session.add_all([ana, bruno, carla])
    await session.flush()

    march = PayrollPeriod(
        company_id=company.company_id,
        label="2024-03",
        start_date=date(2024, 3, 1),
        end_date=date(2024, 3, 31),
        status="closed",
        total_gross=Decimal("5000"),
        total_deductions=Decimal("500"),
        total_net=Decimal("4500"),
        employee_count=2,
    )
    february = PayrollPeriod(
        company_id=company.company_id,
        label="2024-02",
        start_date=date(2024, 2, 1),
        end_date=date(2024, 2, 29),
        status="closed",
        total_gross=Decimal("2000"),
        total_deductions=Decimal("200"),
        total_net=Decimal("1800"),
        employee_count=1,
    )
    session.add_all([march, february])
    await session.flush()

    session.add_all(
        [
            PayrollDetailRow(
                company_id=company.company_id,
                period_id=march.period_id,
                employee_id=ana.employee_id,
                base_salary=Decimal("3000"),
                worked_days=30,
                gross=Decimal("3000"),
                deductions=Decimal("300"),
                net=Decimal("2700"),
            ),
            PayrollDetailRow(
                company_id=company.company_id,
                period_id=march.period_id,
                employee_id=bruno.employee_id,
                base_salary=Decimal("2000"),
                worked_days=30,
                gross=Decimal("2000"),
                deductions=Decimal("200"),
                net=Decimal("1800"),
            ),
            PayrollDetailRow(
                company_id=company.company_id,
                period_id=february.period_id,
                employee_id=bruno.employee_id,
                base_salary=Decimal("2000"),
                worked_days=29,
                gross=Decimal("2000"),
                deductions=Decimal("200"),
                net=Decimal("1800"),
                status="paid",
            ),
        ]
    )
    vacation = AdjustmentEntry(
        company_id=company.company_id,
        period_id=march.period_id,
        employee_id=ana.employee_id,
        adjustment_type="vacation",
        value=Decimal("500"),
        start_date=date(2024, 3, 4),
        end_date=date(2024, 3, 8),
        days=5,
    )
    session.add(vacation)
    await session.commit()

    return PayrollData(
        company_id=company.company_id,
        period_id=march.period_id,
        previous_period_id=february.period_id,
        ana=ana,
        bruno=bruno,
        carla=carla,
        ana_vacation_id=vacation.adjustment_id,
    )


@pytest.fixture
async def payroll(session: AsyncSession) -> PayrollData:
    return await seed_payroll(session)


async def period_state(session: AsyncSession, period_id: UUID) -> dict:
    """Comparable view of a period's rows, adjustments and totals (ids excluded)."""
    period = (
        await session.execute(
            select(PayrollPeriod)
            .where(PayrollPeriod.period_id == period_id)
            .execution_options(populate_existing=True)
        )
    ).scalar_one()
    rows = (
        await session.execute(
            select(PayrollDetailRow)
            .where(PayrollDetailRow.period_id == period_id)
            .order_by(PayrollDetailRow.employee_id)
            .execution_options(populate_existing=True)
        )
    ).scalars().all()
    adjustments = (
        await session.execute(
            select(AdjustmentEntry)
            .where(AdjustmentEntry.period_id == period_id)
            .order_by(AdjustmentEntry.employee_id, AdjustmentEntry.adjustment_type)
            .execution_options(populate_existing=True)
        )
    ).scalars().all()
    return {
        "totals": (
            period.total_gross,
            period.total_deductions,
            period.total_net,
            period.employee_count,
        ),
        "rows": [
            (r.employee_id, r.base_salary, r.worked_days, r.gross, r.deductions, r.net, r.status)
            for r in rows
        ],
        "adjustments": [
            (a.employee_id, a.adjustment_type, a.value, a.start_date, a.end_date, a.days)
            for a in adjustments
        ],
    }


async def count_rows(session: AsyncSession, model, **filters) -> int:
    query = select(func.count()).select_from(model)
    for name, value in filters.items():
        query = query.where(getattr(model, name) == value)
    return int((await session.execute(query)).scalar_one())
