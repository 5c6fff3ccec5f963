"""Input contracts accepted by the engine."""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Any, Iterable
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic import ValidationError as PydanticValidationError

from hr_payroll.errors import ValidationError


class AttendanceRow(BaseModel):
    """Normalized attendance row produced by the import source."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    employee_id: UUID
    working_days: Decimal = Field(ge=0, le=31)
    leave_days: Decimal = Field(default=Decimal("0"), ge=0, le=31)
    overtime_hours: Decimal = Field(default=Decimal("0"), ge=0)


class OverrideCreate(BaseModel):
    """Request to set an employee-specific allowance or deduction amount."""

    model_config = ConfigDict(frozen=True)

    employee_id: UUID
    type_id: UUID
    amount: Decimal = Field(ge=0)
    effective_date: date
    end_date: date | None = None
    reason: str | None = None
    created_by: str | None = None

    @model_validator(mode="after")
    def _check_range(self) -> OverrideCreate:
        if self.end_date is not None and self.end_date < self.effective_date:
            raise ValueError("end_date must be on or after effective_date")
        return self


class PeriodSummary(BaseModel):
    """Read model of a payroll period with its aggregates."""

    model_config = ConfigDict(from_attributes=True)

    period_id: UUID
    year: int
    month: int
    period_number: int
    start_date: date
    end_date: date
    pay_date: date
    status: str
    employee_count: int
    total_basic_pay: Decimal
    total_gross_pay: Decimal
    total_deductions: Decimal
    total_net_pay: Decimal
    reopen_count: int


def parse_model(model: type[BaseModel], data: Any, context: str = "") -> Any:
    """Validate one payload, converting pydantic errors to ValidationError."""
    if isinstance(data, model):
        return data
    try:
        return model.model_validate(data)
    except PydanticValidationError as e:
        prefix = f"{context}: " if context else ""
        raise ValidationError(
            f"{prefix}{e.error_count()} invalid field(s)",
            {"errors": e.errors(include_url=False, include_context=False)},
        ) from e


def parse_attendance_rows(rows: Iterable[Any]) -> list[AttendanceRow]:
    """Validate a batch of rows; duplicates of an employee are rejected."""
    parsed: list[AttendanceRow] = []
    seen: set[UUID] = set()
    for index, raw in enumerate(rows, start=1):
        row = parse_model(AttendanceRow, raw, context=f"row {index}")
        if row.employee_id in seen:
            raise ValidationError(
                f"row {index}: duplicate employee {row.employee_id}",
                {"row": index, "employee_id": str(row.employee_id)},
            )
        seen.add(row.employee_id)
        parsed.append(row)
    if not parsed:
        raise ValidationError("Attendance import contains no rows")
    return parsed
