"""Typed change set accumulated by an editing session."""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Annotated, Any, Literal, Union
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter


class EmployeeAddition(BaseModel):
    """Employee joining the period, with caller-computed figures."""

    model_config = ConfigDict(frozen=True)

    employee_id: UUID
    base_salary: Decimal
    worked_days: int = 30
    gross: Decimal = Decimal("0")
    deductions: Decimal = Decimal("0")
    net: Decimal = Decimal("0")


class AdjustmentDraft(BaseModel):
    """New adjustment entry. value stays optional so validation can report it."""

    model_config = ConfigDict(frozen=True)

    employee_id: UUID
    adjustment_type: str
    subtype: str | None = None
    value: Decimal | None = None
    start_date: date | None = None
    end_date: date | None = None
    days: int | None = None
    notes: str | None = None


class AdjustmentModification(BaseModel):
    """Field updates for an existing adjustment entry.

    Only fields given explicitly are written; an explicit None clears a
    nullable field.
    """

    model_config = ConfigDict(frozen=True)

    adjustment_id: UUID
    adjustment_type: str | None = None
    subtype: str | None = None
    value: Decimal | None = None
    start_date: date | None = None
    end_date: date | None = None
    days: int | None = None
    notes: str | None = None

    def updated_fields(self) -> dict[str, Any]:
        """Fields to overwrite (adjustment_id excluded)."""
        return self.model_dump(exclude_unset=True, exclude={"adjustment_id"})


class DetailOverride(BaseModel):
    """Replacement figures for one employee's detail row."""

    model_config = ConfigDict(frozen=True)

    employee_id: UUID
    base_salary: Decimal | None = None
    worked_days: int | None = None
    gross: Decimal | None = None
    deductions: Decimal | None = None
    net: Decimal | None = None

    def updated_fields(self) -> dict[str, Any]:
        """Fields to overwrite (employee_id excluded)."""
        return self.model_dump(exclude_none=True, exclude={"employee_id"})


# ===== Staged change variants =====


class AddEmployee(BaseModel):
    kind: Literal["add_employee"] = "add_employee"
    employee: EmployeeAddition


class RemoveEmployee(BaseModel):
    kind: Literal["remove_employee"] = "remove_employee"
    employee_id: UUID


class AddAdjustment(BaseModel):
    kind: Literal["add_adjustment"] = "add_adjustment"
    adjustment: AdjustmentDraft


class ModifyAdjustment(BaseModel):
    kind: Literal["modify_adjustment"] = "modify_adjustment"
    modification: AdjustmentModification


class DeleteAdjustment(BaseModel):
    kind: Literal["delete_adjustment"] = "delete_adjustment"
    adjustment_id: UUID


class OverrideDetail(BaseModel):
    kind: Literal["override_detail"] = "override_detail"
    override: DetailOverride


Change = Annotated[
    Union[
        AddEmployee,
        RemoveEmployee,
        AddAdjustment,
        ModifyAdjustment,
        DeleteAdjustment,
        OverrideDetail,
    ],
    Field(discriminator="kind"),
]

change_adapter: TypeAdapter[Change] = TypeAdapter(Change)


class ChangeSet(BaseModel):
    """Pending changes for one period.

    Stored as JSON on the editing session; live tables are untouched until
    the session is applied.
    """

    employees_added: list[EmployeeAddition] = Field(default_factory=list)
    employees_removed: list[UUID] = Field(default_factory=list)
    adjustments_added: list[AdjustmentDraft] = Field(default_factory=list)
    adjustments_modified: list[AdjustmentModification] = Field(default_factory=list)
    adjustments_deleted: list[UUID] = Field(default_factory=list)
    detail_overrides: list[DetailOverride] = Field(default_factory=list)

    @classmethod
    def from_json(cls, data: dict[str, Any] | None) -> ChangeSet:
        """Load from the session's JSON column."""
        return cls.model_validate(data or {})

    def to_json(self) -> dict[str, Any]:
        """Serialize for the session's JSON column.

        Modifications keep only their explicitly set fields so that an
        explicit None survives the round trip.
        """
        data = self.model_dump(mode="json", exclude={"adjustments_modified"})
        data["adjustments_modified"] = [
            modification.model_dump(mode="json", exclude_unset=True)
            for modification in self.adjustments_modified
        ]
        return data

    def stage(self, change: Change) -> None:
        """Append one change to the matching bucket."""
        if isinstance(change, AddEmployee):
            self.employees_added.append(change.employee)
        elif isinstance(change, RemoveEmployee):
            self.employees_removed.append(change.employee_id)
        elif isinstance(change, AddAdjustment):
            self.adjustments_added.append(change.adjustment)
        elif isinstance(change, ModifyAdjustment):
            self.adjustments_modified.append(change.modification)
        elif isinstance(change, DeleteAdjustment):
            self.adjustments_deleted.append(change.adjustment_id)
        elif isinstance(change, OverrideDetail):
            self.detail_overrides.append(change.override)
        else:
            raise TypeError(f"Unsupported change type: {type(change).__name__}")

    @property
    def is_empty(self) -> bool:
        """Check if nothing has been staged."""
        return not any(
            (
                self.employees_added,
                self.employees_removed,
                self.adjustments_added,
                self.adjustments_modified,
                self.adjustments_deleted,
                self.detail_overrides,
            )
        )

    def summary(self) -> str:
        """Human readable change summary for version history."""
        parts = []
        if self.employees_added:
            parts.append(f"{len(self.employees_added)} employee(s) added")
        if self.employees_removed:
            parts.append(f"{len(self.employees_removed)} employee(s) removed")
        if self.adjustments_added:
            parts.append(f"{len(self.adjustments_added)} adjustment(s) added")
        if self.adjustments_modified:
            parts.append(f"{len(self.adjustments_modified)} adjustment(s) modified")
        if self.adjustments_deleted:
            parts.append(f"{len(self.adjustments_deleted)} adjustment(s) deleted")
        if self.detail_overrides:
            parts.append(f"{len(self.detail_overrides)} detail override(s)")
        return "Manual edit: " + (", ".join(parts) if parts else "no changes")
