"""Tests for payroll period state machine."""

from uuid import uuid4

import pytest

from hr_payroll.errors import InvalidTransitionError
from hr_payroll.models import PayrollItem, PayrollPeriod
from hr_payroll.services.state_machine import (
    PayrollItemStatus,
    PayrollPeriodStatus,
    PayrollStateMachine,
)


def _period(status: str) -> PayrollPeriod:
    return PayrollPeriod(period_id=uuid4(), year=2024, month=1, period_number=1, status=status)


def _item(status: str) -> PayrollItem:
    return PayrollItem(item_id=uuid4(), employee_id=uuid4(), status=status)


class TestPayrollStateMachine:
    """Test state machine transitions."""

    def test_valid_transitions(self):
        """Test that valid transitions are allowed."""
        assert PayrollStateMachine.can_transition("Draft", "Open") is True
        assert PayrollStateMachine.can_transition("Open", "Processing") is True
        assert PayrollStateMachine.can_transition("Processing", "Completed") is True
        assert PayrollStateMachine.can_transition("Processing", "Finalized") is True
        assert PayrollStateMachine.can_transition("Completed", "Finalized") is True
        assert PayrollStateMachine.can_transition("Finalized", "Paid") is True
        assert PayrollStateMachine.can_transition("Paid", "Locked") is True

        # Reopen
        assert PayrollStateMachine.can_transition("Finalized", "Processing") is True
        assert PayrollStateMachine.can_transition("Paid", "Processing") is True

    def test_invalid_transitions(self):
        """Test that invalid transitions are blocked."""
        # Can't skip generation
        assert PayrollStateMachine.can_transition("Draft", "Finalized") is False
        assert PayrollStateMachine.can_transition("Processing", "Paid") is False

        # Locked is terminal
        assert PayrollStateMachine.can_transition("Locked", "Processing") is False
        assert PayrollStateMachine.get_next_statuses("Locked") == []

    def test_accepts_enum_members(self):
        assert PayrollStateMachine.can_transition(
            PayrollPeriodStatus.FINALIZED, PayrollPeriodStatus.PAID
        )

    def test_validate_transition_raises(self):
        with pytest.raises(InvalidTransitionError) as exc_info:
            PayrollStateMachine.validate_transition("Draft", "Paid")

        assert exc_info.value.from_status == "Draft"
        assert exc_info.value.to_status == "Paid"

    def test_editable_statuses(self):
        assert PayrollStateMachine.is_editable("Draft") is True
        assert PayrollStateMachine.is_editable("Open") is True
        assert PayrollStateMachine.is_editable("Processing") is False
        assert PayrollStateMachine.is_editable("Finalized") is False

    def test_is_reopen(self):
        assert PayrollStateMachine.is_reopen("Paid", "Processing") is True
        assert PayrollStateMachine.is_reopen("Open", "Processing") is False


class TestPeriodValidation:
    def test_generation_requires_attendance(self):
        errors, _ = PayrollStateMachine.validate_period_for_transition(
            _period("Draft"), "Processing", [], has_attendance=False
        )
        assert errors == ["cannot process payroll without attendance data"]

    def test_finalize_lists_unapproved_items(self):
        pending = _item(PayrollItemStatus.CALCULATED.value)
        items = [_item(PayrollItemStatus.PROCESSED.value), pending]

        errors, blocking = PayrollStateMachine.validate_period_for_transition(
            _period("Processing"), PayrollPeriodStatus.FINALIZED, items
        )

        assert errors == ["1 payroll item(s) not yet approved"]
        assert len(blocking) == 1
        assert str(pending.item_id) in blocking[0]
        assert "Calculated" in blocking[0]

    def test_finalize_requires_items(self):
        errors, _ = PayrollStateMachine.validate_period_for_transition(
            _period("Processing"), "Finalized", []
        )
        assert "Period has no payroll items" in errors

    def test_paid_requires_finalized_items(self):
        errors, blocking = PayrollStateMachine.validate_period_for_transition(
            _period("Finalized"), "Paid", [_item("Processed")]
        )
        assert errors == ["1 payroll item(s) not finalized"]
        assert len(blocking) == 1

    def test_reopen_requires_reason(self):
        errors, _ = PayrollStateMachine.validate_period_for_transition(
            _period("Finalized"), "Processing", [], reason="  "
        )
        assert errors == ["Reopen requires a reason"]

    def test_illegal_transition_reported(self):
        errors, _ = PayrollStateMachine.validate_period_for_transition(
            _period("Draft"), "Locked", []
        )
        assert errors == ["Cannot transition from 'Draft' to 'Locked'"]
