"""Type definitions for the calculation layer."""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any


class EmploymentStatus(str, Enum):
    """Employment status values from the HR directory."""

    ACTIVE = "Active"
    ON_LEAVE = "OnLeave"
    RESIGNED = "Resigned"
    RETIRED = "Retired"
    TERMINATED = "Terminated"


SEPARATED_STATUSES = frozenset(
    {EmploymentStatus.RESIGNED, EmploymentStatus.RETIRED, EmploymentStatus.TERMINATED}
)


class BenefitType(str, Enum):
    """Cycle-based and one-off benefit types."""

    PERFORMANCE_BONUS = "PBB"
    MID_YEAR_BONUS = "MID_YEAR_BONUS"
    YEAR_END_BONUS = "YEAR_END_BONUS"
    GSIS_PAYOUT = "GSIS"
    TERMINAL_LEAVE = "TERMINAL_LEAVE"
    MONETIZATION = "MONETIZATION"
    LOYALTY_AWARD = "LOYALTY"


class ProrationReason(str, Enum):
    """Why a period's pay was (or was not) prorated."""

    FULL_PERIOD = "full_period"
    NEW_HIRE = "new_hire"
    SEPARATED = "separated"
    NEW_HIRE_AND_SEPARATED = "new_hire_and_separated"
    NOT_EMPLOYED = "not_employed"


class StepIncrementReason(str, Enum):
    """Outcome codes for step-increment eligibility."""

    ELIGIBLE = "eligible"
    MAX_STEP_REACHED = "max_step_reached"
    INSUFFICIENT_TENURE = "insufficient_tenure"
    NOT_ANNIVERSARY_MONTH = "not_anniversary_month"
    MISSING_REFERENCE_DATE = "missing_reference_date"


@dataclass(frozen=True)
class Contribution:
    """One statutory contribution split into employee and employer shares."""

    employee_share: Decimal
    employer_share: Decimal
    basis: Decimal

    @property
    def total(self) -> Decimal:
        return self.employee_share + self.employer_share


@dataclass(frozen=True)
class TaxBracket:
    """Progressive bracket: tax = base_tax + (income - lower_bound) * marginal_rate."""

    lower_bound: Decimal
    base_tax: Decimal
    marginal_rate: Decimal


@dataclass(frozen=True)
class PhilHealthBand:
    """Salary band for the PhilHealth premium table.

    Within the band the total premium is ``salary * rate``; a band with
    ``fixed_premium`` set pays that flat amount instead (floor/ceiling).
    """

    lower_bound: Decimal
    upper_bound: Decimal | None
    rate: Decimal = Decimal("0")
    fixed_premium: Decimal | None = None


@dataclass(frozen=True)
class StatutoryDeductions:
    """All statutory deductions computed for one monthly salary."""

    salary: Decimal
    gsis: Contribution
    pagibig: Contribution
    philhealth: Contribution
    taxable_income: Decimal
    withholding_tax: Decimal

    @property
    def employee_contributions(self) -> Decimal:
        return (
            self.gsis.employee_share
            + self.pagibig.employee_share
            + self.philhealth.employee_share
        )

    @property
    def total_employee(self) -> Decimal:
        """Everything withheld from the employee (contributions plus tax)."""
        return self.employee_contributions + self.withholding_tax

    def breakdown(self) -> dict[str, Decimal]:
        return {
            "GSIS": self.gsis.employee_share,
            "PAGIBIG": self.pagibig.employee_share,
            "PHILHEALTH": self.philhealth.employee_share,
            "WTAX": self.withholding_tax,
        }


@dataclass(frozen=True)
class ProratedSalary:
    """Result of prorating a daily rate over a partial period."""

    prorated_days: int
    prorated_salary: Decimal
    reason: ProrationReason
    effective_start: Any = None
    effective_end: Any = None

    @property
    def is_prorated(self) -> bool:
        return self.reason != ProrationReason.FULL_PERIOD


@dataclass(frozen=True)
class StepIncrementEligibility:
    """Eligibility verdict with the reason code behind it."""

    eligible: bool
    reason: StepIncrementReason
    current_step: int
    years_elapsed: int = 0
    next_step: int | None = None


@dataclass
class BenefitCalculation:
    """Result of a single benefit formula."""

    benefit_type: BenefitType
    amount: Decimal
    tax_amount: Decimal = Decimal("0")
    days_used: Decimal | None = None
    basis: dict[str, Any] = field(default_factory=dict)

    @property
    def net_amount(self) -> Decimal:
        return self.amount - self.tax_amount
