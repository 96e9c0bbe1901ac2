"""Payroll period, detail row and adjustment entry models."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from period_consistency.models.base import Base, TimestampMixin, utcnow

ZERO = Decimal("0")


class PayrollPeriod(Base, TimestampMixin):
    """Payroll period with aggregate totals.

    Totals are only rewritten by the editing session manager, rollback and
    historical recovery.
    """

    __tablename__ = "payroll_period"

    period_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    company_id: Mapped[UUID] = mapped_column(
        ForeignKey("company.company_id", ondelete="CASCADE"),
        nullable=False,
    )
    label: Mapped[str] = mapped_column(String, nullable=False)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)
    status: Mapped[str] = mapped_column(String, nullable=False, default="draft")

    total_gross: Mapped[Decimal] = mapped_column(nullable=False, default=ZERO)
    total_deductions: Mapped[Decimal] = mapped_column(nullable=False, default=ZERO)
    total_net: Mapped[Decimal] = mapped_column(nullable=False, default=ZERO)
    employee_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        onupdate=utcnow,
        nullable=False,
    )

    __table_args__ = (
        UniqueConstraint(
            "company_id", "start_date", "end_date", name="payroll_period_company_dates_unique"
        ),
        CheckConstraint(
            "status IN ('draft', 'open', 'closed')",
            name="payroll_period_status_check",
        ),
        CheckConstraint("end_date >= start_date", name="payroll_period_dates_check"),
    )

    @property
    def has_totals(self) -> bool:
        """Check if any aggregate total is non-zero."""
        return any(
            (value or ZERO) != ZERO
            for value in (self.total_gross, self.total_deductions, self.total_net)
        )


class PayrollDetailRow(Base, TimestampMixin):
    """One employee's payroll figures within a period."""

    __tablename__ = "payroll_detail_row"

    detail_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    company_id: Mapped[UUID] = mapped_column(
        ForeignKey("company.company_id", ondelete="CASCADE"),
        nullable=False,
    )
    period_id: Mapped[UUID] = mapped_column(
        ForeignKey("payroll_period.period_id", ondelete="CASCADE"),
        nullable=False,
    )
    employee_id: Mapped[UUID] = mapped_column(
        ForeignKey("employee.employee_id", ondelete="RESTRICT"),
        nullable=False,
    )
    base_salary: Mapped[Decimal] = mapped_column(nullable=False, default=ZERO)
    worked_days: Mapped[int] = mapped_column(Integer, nullable=False, default=30)
    gross: Mapped[Decimal] = mapped_column(nullable=False, default=ZERO)
    deductions: Mapped[Decimal] = mapped_column(nullable=False, default=ZERO)
    net: Mapped[Decimal] = mapped_column(nullable=False, default=ZERO)
    status: Mapped[str] = mapped_column(String, nullable=False, default="processed")
    is_recovered: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    __table_args__ = (
        UniqueConstraint("period_id", "employee_id", name="payroll_detail_period_employee_unique"),
        CheckConstraint(
            "status IN ('draft', 'processed', 'paid')",
            name="payroll_detail_status_check",
        ),
        Index("ix_payroll_detail_employee_status", "company_id", "employee_id", "status"),
    )


class AdjustmentEntry(Base, TimestampMixin):
    """Discrete pay modifier (novedad) for one employee in one period."""

    __tablename__ = "adjustment_entry"

    adjustment_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    company_id: Mapped[UUID] = mapped_column(
        ForeignKey("company.company_id", ondelete="CASCADE"),
        nullable=False,
    )
    period_id: Mapped[UUID] = mapped_column(
        ForeignKey("payroll_period.period_id", ondelete="CASCADE"),
        nullable=False,
    )
    employee_id: Mapped[UUID] = mapped_column(
        ForeignKey("employee.employee_id", ondelete="RESTRICT"),
        nullable=False,
    )
    adjustment_type: Mapped[str] = mapped_column(String, nullable=False)
    subtype: Mapped[str | None] = mapped_column(String, nullable=True)
    value: Mapped[Decimal] = mapped_column(nullable=False)
    start_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    end_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    days: Mapped[int | None] = mapped_column(Integer, nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    __table_args__ = (
        CheckConstraint(
            "start_date IS NULL OR end_date IS NULL OR end_date >= start_date",
            name="adjustment_entry_dates_check",
        ),
        Index("ix_adjustment_entry_period_employee", "period_id", "employee_id"),
    )
