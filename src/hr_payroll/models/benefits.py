"""Benefit cycle, benefit item, and compensation ledger models."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from hr_payroll.models.base import Base, Days, Money, TimestampMixin, utcnow

BENEFIT_TYPES_SQL = (
    "'PBB', 'MID_YEAR_BONUS', 'YEAR_END_BONUS', 'GSIS', "
    "'TERMINAL_LEAVE', 'MONETIZATION', 'LOYALTY'"
)


class BenefitCycle(Base, TimestampMixin):
    """Scheduled benefit run producing one item per eligible employee."""

    __tablename__ = "benefit_cycle"

    cycle_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    benefit_type: Mapped[str] = mapped_column(String(30), nullable=False)
    year: Mapped[int] = mapped_column(Integer, nullable=False)
    applicable_date: Mapped[date] = mapped_column(Date, nullable=False)
    payment_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    cutoff_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="Draft")
    created_by: Mapped[str | None] = mapped_column(String(100), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    __table_args__ = (
        CheckConstraint(f"benefit_type IN ({BENEFIT_TYPES_SQL})", name="benefit_cycle_type_check"),
        CheckConstraint(
            "status IN ('Draft', 'Processing', 'Completed', 'Cancelled')",
            name="benefit_cycle_status_check",
        ),
    )

    items: Mapped[list[BenefitItem]] = relationship(
        back_populates="cycle", cascade="all, delete-orphan"
    )


class BenefitItem(Base, TimestampMixin):
    """Calculated benefit for one employee within a cycle."""

    __tablename__ = "benefit_item"

    item_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    cycle_id: Mapped[UUID] = mapped_column(
        ForeignKey("benefit_cycle.cycle_id", ondelete="CASCADE"),
        nullable=False,
    )
    employee_id: Mapped[UUID] = mapped_column(
        ForeignKey("employee.employee_id", ondelete="RESTRICT"),
        nullable=False,
    )
    calculated_amount: Mapped[Decimal] = mapped_column(Money, nullable=False, default=0)
    tax_amount: Mapped[Decimal] = mapped_column(Money, nullable=False, default=0)
    net_amount: Mapped[Decimal] = mapped_column(Money, nullable=False, default=0)
    is_eligible: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    eligibility_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    calculation_basis: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)

    __table_args__ = (
        UniqueConstraint("cycle_id", "employee_id", name="benefit_item_cycle_emp_unique"),
    )

    cycle: Mapped[BenefitCycle] = relationship(back_populates="items")


class CompensationBenefit(Base):
    """Ledger entry for a processed one-off benefit payout."""

    __tablename__ = "compensation_benefit"

    benefit_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    employee_id: Mapped[UUID] = mapped_column(
        ForeignKey("employee.employee_id", ondelete="RESTRICT"),
        nullable=False,
    )
    benefit_type: Mapped[str] = mapped_column(String(30), nullable=False)
    days_used: Mapped[Decimal | None] = mapped_column(Days, nullable=True)
    amount: Mapped[Decimal] = mapped_column(Money, nullable=False)
    processed_by: Mapped[str] = mapped_column(String(100), nullable=False)
    processed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    __table_args__ = (
        CheckConstraint(
            f"benefit_type IN ({BENEFIT_TYPES_SQL})", name="compensation_benefit_type_check"
        ),
        CheckConstraint("amount >= 0", name="compensation_benefit_amount_check"),
    )
