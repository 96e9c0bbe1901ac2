"""Editing session and snapshot models."""

from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, Index, String, Text, text
from sqlalchemy.orm import Mapped, mapped_column

from period_consistency.models.base import Base, JSONType, utcnow

OPEN_SESSION_PREDICATE = "status IN ('active', 'saving')"


class EditingSession(Base):
    """Single-owner unit of work proposing changes to one closed period.

    The partial unique index on period_id over open statuses is the
    single-writer lock: at most one active/saving session per period.
    """

    __tablename__ = "editing_session"

    session_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    company_id: Mapped[UUID] = mapped_column(
        ForeignKey("company.company_id", ondelete="CASCADE"),
        nullable=False,
    )
    period_id: Mapped[UUID] = mapped_column(
        ForeignKey("payroll_period.period_id", ondelete="CASCADE"),
        nullable=False,
    )
    actor_id: Mapped[UUID | None] = mapped_column(nullable=True)
    status: Mapped[str] = mapped_column(String, nullable=False, default="active")
    changes: Mapped[dict[str, Any]] = mapped_column(JSONType, nullable=False, default=dict)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    started_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False,
    )
    completed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    __table_args__ = (
        CheckConstraint(
            "status IN ('active', 'saving', 'completed', 'cancelled', 'expired')",
            name="editing_session_status_check",
        ),
        Index(
            "uq_editing_session_open_period",
            "period_id",
            unique=True,
            postgresql_where=text(OPEN_SESSION_PREDICATE),
            sqlite_where=text(OPEN_SESSION_PREDICATE),
        ),
        Index("ix_editing_session_status_started", "status", "started_at"),
    )


class PeriodSnapshot(Base):
    """Full copy of a period's state captured when a session starts.

    Lives only as long as its session; version entries carry their own copy.
    """

    __tablename__ = "period_snapshot"

    snapshot_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    company_id: Mapped[UUID] = mapped_column(
        ForeignKey("company.company_id", ondelete="CASCADE"),
        nullable=False,
    )
    period_id: Mapped[UUID] = mapped_column(
        ForeignKey("payroll_period.period_id", ondelete="CASCADE"),
        nullable=False,
    )
    session_id: Mapped[UUID] = mapped_column(
        ForeignKey("editing_session.session_id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    payload: Mapped[dict[str, Any]] = mapped_column(JSONType, nullable=False)
    captured_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False,
    )
