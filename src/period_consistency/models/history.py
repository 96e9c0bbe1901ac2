"""Version history and audit log models (both append-only)."""

from __future__ import annotations

from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import CheckConstraint, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from period_consistency.models.base import Base, JSONType, TimestampMixin


class VersionHistoryEntry(Base, TimestampMixin):
    """Immutable, numbered historical state of a period."""

    __tablename__ = "version_history_entry"

    version_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    company_id: Mapped[UUID] = mapped_column(
        ForeignKey("company.company_id", ondelete="CASCADE"),
        nullable=False,
    )
    period_id: Mapped[UUID] = mapped_column(
        ForeignKey("payroll_period.period_id", ondelete="CASCADE"),
        nullable=False,
    )
    version_number: Mapped[int] = mapped_column(Integer, nullable=False)
    version_type: Mapped[str] = mapped_column(String, nullable=False)
    snapshot: Mapped[dict[str, Any]] = mapped_column(JSONType, nullable=False)
    changes_summary: Mapped[str] = mapped_column(Text, nullable=False, default="")
    previous_version_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("version_history_entry.version_id"),
        nullable=True,
    )
    actor_id: Mapped[UUID | None] = mapped_column(nullable=True)

    __table_args__ = (
        UniqueConstraint("period_id", "version_number", name="version_history_period_number_unique"),
        CheckConstraint(
            "version_type IN ('initial', 'manual_edit', 'rollback', 'auto_recalculation')",
            name="version_history_type_check",
        ),
        CheckConstraint("version_number > 0", name="version_history_number_positive"),
    )


class AuditLogEntry(Base, TimestampMixin):
    """Audit trail entry."""

    __tablename__ = "audit_log_entry"

    audit_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    company_id: Mapped[UUID] = mapped_column(
        ForeignKey("company.company_id", ondelete="CASCADE"),
        nullable=False,
    )
    actor_id: Mapped[UUID | None] = mapped_column(nullable=True)
    entity_type: Mapped[str] = mapped_column(String, nullable=False)
    entity_id: Mapped[UUID] = mapped_column(nullable=False)
    action: Mapped[str] = mapped_column(String, nullable=False)
    details: Mapped[dict[str, Any] | None] = mapped_column(JSONType, nullable=True)
