"""Payroll period state machine with transition validation."""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING, Iterable

from hr_payroll.errors import InvalidTransitionError

if TYPE_CHECKING:
    from hr_payroll.models import PayrollItem, PayrollPeriod


class PayrollPeriodStatus(str, Enum):
    """Payroll period status values."""

    DRAFT = "Draft"
    OPEN = "Open"
    PROCESSING = "Processing"
    COMPLETED = "Completed"
    FINALIZED = "Finalized"
    PAID = "Paid"
    LOCKED = "Locked"


class PayrollItemStatus(str, Enum):
    """Payroll item status values."""

    CALCULATED = "Calculated"
    PROCESSED = "Processed"
    FINALIZED = "Finalized"
    PAID = "Paid"


def status_value(status: str) -> str:
    """Plain string value of a status enum or string."""
    return status.value if isinstance(status, Enum) else status


class PayrollStateMachine:
    """State machine for payroll period status transitions.

    Allowed transitions:
    - Draft → Open
    - Draft/Open → Processing (generate, requires attendance)
    - Processing → Draft (cancel, discards items)
    - Processing → Completed (optional review checkpoint)
    - Processing/Completed → Finalized (all items approved)
    - Finalized → Paid (all items finalized)
    - Paid → Locked (terminal)
    - Completed/Finalized/Paid → Processing (reopen, reason required)
    """

    VALID_TRANSITIONS: dict[str, list[str]] = {
        PayrollPeriodStatus.DRAFT: [PayrollPeriodStatus.OPEN, PayrollPeriodStatus.PROCESSING],
        PayrollPeriodStatus.OPEN: [PayrollPeriodStatus.PROCESSING],
        PayrollPeriodStatus.PROCESSING: [
            PayrollPeriodStatus.DRAFT,
            PayrollPeriodStatus.COMPLETED,
            PayrollPeriodStatus.FINALIZED,
        ],
        PayrollPeriodStatus.COMPLETED: [
            PayrollPeriodStatus.FINALIZED,
            PayrollPeriodStatus.PROCESSING,
        ],
        PayrollPeriodStatus.FINALIZED: [PayrollPeriodStatus.PAID, PayrollPeriodStatus.PROCESSING],
        PayrollPeriodStatus.PAID: [PayrollPeriodStatus.LOCKED, PayrollPeriodStatus.PROCESSING],
        PayrollPeriodStatus.LOCKED: [],  # Terminal state
    }

    # Statuses where attendance may be imported and payroll generated
    EDITABLE = {PayrollPeriodStatus.DRAFT, PayrollPeriodStatus.OPEN}

    # Statuses where individual items may be recalculated or approved
    RECALCULATION_ALLOWED = {PayrollPeriodStatus.PROCESSING}

    # Statuses a period can be reopened from
    REOPENABLE = {
        PayrollPeriodStatus.COMPLETED,
        PayrollPeriodStatus.FINALIZED,
        PayrollPeriodStatus.PAID,
    }

    # Item statuses that count as approved
    APPROVED_ITEM_STATUSES = {PayrollItemStatus.PROCESSED, PayrollItemStatus.FINALIZED}

    # Item statuses whose amounts must never be overwritten by generation
    FROZEN_ITEM_STATUSES = {PayrollItemStatus.FINALIZED, PayrollItemStatus.PAID}

    @classmethod
    def can_transition(cls, from_status: str, to_status: str) -> bool:
        """Check if a transition is valid."""
        allowed = cls.VALID_TRANSITIONS.get(from_status, [])
        return to_status in allowed

    @classmethod
    def validate_transition(cls, from_status: str, to_status: str) -> None:
        """Validate a transition, raising InvalidTransitionError if invalid."""
        if not cls.can_transition(from_status, to_status):
            raise InvalidTransitionError(status_value(from_status), status_value(to_status))

    @classmethod
    def is_editable(cls, status: str) -> bool:
        """Check if attendance import and generation are allowed."""
        return status in cls.EDITABLE

    @classmethod
    def can_recalculate(cls, status: str) -> bool:
        return status in cls.RECALCULATION_ALLOWED

    @classmethod
    def is_reopen(cls, from_status: str, to_status: str) -> bool:
        """Check if this transition is a reopen back to Processing."""
        return from_status in cls.REOPENABLE and to_status == PayrollPeriodStatus.PROCESSING

    @classmethod
    def get_next_statuses(cls, current_status: str) -> list[str]:
        """Get list of valid next statuses from current status."""
        return cls.VALID_TRANSITIONS.get(current_status, [])

    @staticmethod
    def describe_item(item: PayrollItem) -> str:
        return f"item {item.item_id} (employee {item.employee_id}): {item.status}"

    @classmethod
    def blocking_items(
        cls, items: Iterable[PayrollItem], allowed: set[PayrollItemStatus]
    ) -> list[PayrollItem]:
        """Items whose status is outside the allowed set."""
        return [item for item in items if item.status not in allowed]

    @classmethod
    def validate_period_for_transition(
        cls,
        period: PayrollPeriod,
        to_status: str,
        items: list[PayrollItem],
        reason: str | None = None,
        has_attendance: bool = True,
    ) -> tuple[list[str], list[str]]:
        """Validate a period for a specific transition.

        Returns (errors, blocking) where errors are human-readable
        conditions and blocking describes the offending items. Both are
        empty when the transition is allowed.
        """
        errors: list[str] = []
        blocking: list[str] = []
        from_status = period.status
        to_status = status_value(to_status)

        if not cls.can_transition(from_status, to_status):
            errors.append(f"Cannot transition from '{from_status}' to '{to_status}'")
            return errors, blocking

        if to_status == PayrollPeriodStatus.PROCESSING and from_status in cls.EDITABLE:
            if not has_attendance:
                errors.append("cannot process payroll without attendance data")

        elif to_status in (PayrollPeriodStatus.COMPLETED, PayrollPeriodStatus.FINALIZED):
            if not items:
                errors.append("Period has no payroll items")
            unapproved = cls.blocking_items(items, cls.APPROVED_ITEM_STATUSES)
            if unapproved:
                errors.append(f"{len(unapproved)} payroll item(s) not yet approved")
                blocking.extend(cls.describe_item(i) for i in unapproved)

        elif to_status == PayrollPeriodStatus.PAID:
            unfinalized = cls.blocking_items(
                items, {PayrollItemStatus.FINALIZED, PayrollItemStatus.PAID}
            )
            if unfinalized:
                errors.append(f"{len(unfinalized)} payroll item(s) not finalized")
                blocking.extend(cls.describe_item(i) for i in unfinalized)

        elif to_status == PayrollPeriodStatus.LOCKED:
            unpaid = cls.blocking_items(items, {PayrollItemStatus.PAID})
            if unpaid:
                errors.append(f"{len(unpaid)} payroll item(s) not yet paid")
                blocking.extend(cls.describe_item(i) for i in unpaid)

        elif cls.is_reopen(from_status, to_status):
            if not reason or not reason.strip():
                errors.append("Reopen requires a reason")

        return errors, blocking
