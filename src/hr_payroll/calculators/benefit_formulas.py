"""Benefit formulas and their eligibility gates.

Each formula is a pure function of employee attributes. Eligibility
failures raise CalculationError instead of returning a silent zero.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Any

from hr_payroll.calculators.money import ZERO, round_to_cents, to_decimal
from hr_payroll.calculators.proration import DEFAULT_WORKING_DAYS_PER_MONTH, service_months
from hr_payroll.calculators.types import (
    SEPARATED_STATUSES,
    BenefitCalculation,
    BenefitType,
    EmploymentStatus,
)
from hr_payroll.errors import CalculationError, ValidationError

BONUS_SALARY_RATE = Decimal("1.00")
MIN_BONUS_SERVICE_MONTHS = 4

GSIS_PAYOUT_RATE = Decimal("0.09")

TLB_FACTOR = Decimal("1.0")

LOYALTY_BASE_AMOUNT = Decimal("10000")
LOYALTY_BASE_YEARS = 10
LOYALTY_INCREMENT_YEARS = 5
LOYALTY_INCREMENT_MULTIPLIER = Decimal("0.5")

# Bonuses above the annual exemption spread monthly are taxed at a flat rate.
BENEFIT_TAX_THRESHOLD = Decimal("250000") / Decimal("12")
BENEFIT_TAX_RATE = Decimal("0.10")

CYCLE_BONUS_TYPES = frozenset(
    {BenefitType.PERFORMANCE_BONUS, BenefitType.MID_YEAR_BONUS, BenefitType.YEAR_END_BONUS}
)


def benefit_tax(amount: Any) -> Decimal:
    """Flat tax on benefit amounts above the threshold."""
    value = to_decimal(amount)
    if value <= BENEFIT_TAX_THRESHOLD:
        return ZERO
    return round_to_cents(value * BENEFIT_TAX_RATE)


def _require_salary(monthly_salary: Any, label: str = "monthly salary") -> Decimal:
    salary = to_decimal(monthly_salary, "monthly_salary")
    if salary <= 0:
        raise CalculationError(f"Employee {label} information not available")
    return salary


def _with_tax(calc: BenefitCalculation) -> BenefitCalculation:
    calc.amount = round_to_cents(calc.amount)
    calc.tax_amount = benefit_tax(calc.amount)
    return calc


def check_bonus_eligibility(
    employment_status: str,
    appointment_date: date | None,
    cutoff_date: date,
    min_service_months: int = MIN_BONUS_SERVICE_MONTHS,
) -> int:
    """Gate for cycle bonuses: active status and minimum service by cutoff.

    Returns the service months counted at the cutoff date.
    """
    if employment_status != EmploymentStatus.ACTIVE.value:
        raise CalculationError(
            f"Employee is not active (status: {employment_status})",
            {"employment_status": employment_status},
        )
    if appointment_date is None:
        raise CalculationError("Employee has no appointment date")

    months = service_months(appointment_date, cutoff_date)
    if months < min_service_months:
        raise CalculationError(
            f"Insufficient service: {months} month(s) by {cutoff_date}, "
            f"minimum {min_service_months} required",
            {"service_months": months, "required": min_service_months},
        )
    return months


def salary_bonus(
    benefit_type: BenefitType,
    monthly_salary: Any,
    rate: Decimal = BONUS_SALARY_RATE,
) -> BenefitCalculation:
    """Performance-based, mid-year, or year-end bonus as a share of salary."""
    if benefit_type not in CYCLE_BONUS_TYPES:
        raise ValidationError(f"{benefit_type.value} is not a salary-based bonus")
    salary = _require_salary(monthly_salary)
    return _with_tax(
        BenefitCalculation(
            benefit_type=benefit_type,
            amount=salary * rate,
            basis={"monthly_salary": str(salary), "rate": str(rate)},
        )
    )


def gsis_payout(monthly_salary: Any, years_of_service: int) -> BenefitCalculation:
    """GSIS retirement payout: salary share scaled by years of service."""
    salary = _require_salary(monthly_salary)
    if years_of_service < 1:
        raise CalculationError(
            "GSIS payout requires at least 1 year of service",
            {"years_of_service": years_of_service},
        )
    return _with_tax(
        BenefitCalculation(
            benefit_type=BenefitType.GSIS_PAYOUT,
            amount=salary * GSIS_PAYOUT_RATE * years_of_service,
            basis={
                "monthly_salary": str(salary),
                "gsis_rate": str(GSIS_PAYOUT_RATE),
                "years_of_service": years_of_service,
            },
        )
    )


def terminal_leave_benefit(
    employment_status: str,
    monetizable_leave_earned: Any,
    highest_monthly_salary: Any,
    current_monthly_salary: Any = None,
) -> BenefitCalculation:
    """TLB = monetizable leave earned x daily rate of highest salary x factor.

    Falls back to the current salary when no highest salary is recorded.
    """
    if employment_status not in {s.value for s in SEPARATED_STATUSES}:
        raise CalculationError(
            "Terminal Leave Benefit is only available for Resigned, Retired, or "
            f"Terminated employees (status: {employment_status})",
            {"employment_status": employment_status},
        )

    highest = to_decimal(highest_monthly_salary, "highest_monthly_salary")
    if highest <= 0:
        highest = to_decimal(current_monthly_salary, "current_monthly_salary")
    if highest <= 0:
        raise CalculationError("Highest monthly salary data is missing")

    days = to_decimal(monetizable_leave_earned, "leave_earned")
    if days <= 0:
        raise CalculationError("No monetizable leave earned", {"leave_earned": str(days)})

    daily_rate = highest / Decimal(DEFAULT_WORKING_DAYS_PER_MONTH)
    return _with_tax(
        BenefitCalculation(
            benefit_type=BenefitType.TERMINAL_LEAVE,
            amount=days * daily_rate * TLB_FACTOR,
            days_used=days,
            basis={
                "total_leave_earned": str(days),
                "highest_salary": str(highest),
                "daily_rate": str(round_to_cents(daily_rate)),
                "tlb_factor": str(TLB_FACTOR),
            },
        )
    )


def leave_monetization(
    requested_days: Any,
    monetizable_balance: Any,
    monthly_salary: Any,
) -> BenefitCalculation:
    """Cash conversion of min(requested, monetizable balance) days."""
    requested = to_decimal(requested_days, "days_to_monetize")
    if requested <= 0:
        raise ValidationError("days_to_monetize must be greater than zero")

    balance = to_decimal(monetizable_balance, "leave_balance")
    if balance <= 0:
        raise CalculationError("Monetizable leave balance is zero")

    salary = _require_salary(monthly_salary)
    days = min(requested, balance)
    daily_rate = salary / Decimal(DEFAULT_WORKING_DAYS_PER_MONTH)
    return _with_tax(
        BenefitCalculation(
            benefit_type=BenefitType.MONETIZATION,
            amount=days * daily_rate,
            days_used=days,
            basis={
                "requested_days": str(requested),
                "current_balance": str(balance),
                "monthly_salary": str(salary),
                "daily_rate": str(round_to_cents(daily_rate)),
            },
        )
    )


def loyalty_award(years_of_service: int) -> BenefitCalculation:
    """Base award for 10 years, plus half the base per further 5-year block."""
    if years_of_service < LOYALTY_BASE_YEARS:
        raise CalculationError(
            f"Loyalty award requires {LOYALTY_BASE_YEARS} years of service, "
            f"employee has {years_of_service}",
            {"years_of_service": years_of_service},
        )
    blocks = (years_of_service - LOYALTY_BASE_YEARS) // LOYALTY_INCREMENT_YEARS
    multiplier = 1 + LOYALTY_INCREMENT_MULTIPLIER * blocks
    return _with_tax(
        BenefitCalculation(
            benefit_type=BenefitType.LOYALTY_AWARD,
            amount=LOYALTY_BASE_AMOUNT * multiplier,
            basis={
                "years_of_service": years_of_service,
                "base_amount": str(LOYALTY_BASE_AMOUNT),
                "additional_increments": blocks,
            },
        )
    )
