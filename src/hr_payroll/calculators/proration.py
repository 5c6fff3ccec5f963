"""Proration and tenure-based eligibility calculations."""

from __future__ import annotations

from datetime import date, timedelta
from decimal import Decimal
from typing import Any

from hr_payroll.calculators.money import ZERO, round_to_cents, to_decimal
from hr_payroll.calculators.types import (
    ProratedSalary,
    ProrationReason,
    StepIncrementEligibility,
    StepIncrementReason,
)
from hr_payroll.errors import ValidationError

DEFAULT_WORKING_DAYS_PER_MONTH = 22
MAX_STEP = 8
STEP_INCREMENT_YEARS = 3


def overlap_days(start: date, end: date, weekdays_only: bool = False) -> int:
    """Count days in [start, end] inclusive, optionally skipping weekends."""
    if end < start:
        return 0
    total = (end - start).days + 1
    if not weekdays_only:
        return total

    full_weeks, remainder = divmod(total, 7)
    count = full_weeks * 5
    day = start + timedelta(days=full_weeks * 7)
    for _ in range(remainder):
        if day.weekday() < 5:
            count += 1
        day += timedelta(days=1)
    return count


def full_years_between(start: date, end: date) -> int:
    """Completed anniversaries from start to end (never negative)."""
    years = end.year - start.year
    if (end.month, end.day) < (start.month, start.day):
        years -= 1
    return max(years, 0)


def service_months(start: date, end: date) -> int:
    """Months of service; a trailing partial month counts once it reaches 15 days."""
    months = (end.year - start.year) * 12 + (end.month - start.month)
    day_diff = end.day - start.day
    if day_diff >= 15:
        months += 1
    elif day_diff < 0:
        months -= 1
    return max(months, 0)


def daily_rate_from_monthly(
    monthly_salary: Any, working_days: int = DEFAULT_WORKING_DAYS_PER_MONTH
) -> Decimal:
    """Daily rate as monthly salary over standard working days."""
    if working_days <= 0:
        raise ValidationError("working_days must be positive")
    salary = to_decimal(monthly_salary, "monthly_salary")
    if salary <= 0:
        return ZERO
    return round_to_cents(salary / Decimal(working_days))


def prorate_salary(
    daily_rate: Any,
    appointment_date: date | None,
    separation_date: date | None,
    period_start: date,
    period_end: date,
    standard_working_days: int | None = None,
    weekdays_only: bool = False,
) -> ProratedSalary:
    """Prorate a daily rate over the part of a period the employee was employed.

    prorated_days = min(standard, overlap(max(start, appointment),
    min(end, separation))). The standard defaults to the period's own day
    count under the same counting rule.
    """
    if period_end < period_start:
        raise ValidationError(
            f"Invalid period range {period_start} to {period_end}",
            {"period_start": str(period_start), "period_end": str(period_end)},
        )
    rate = to_decimal(daily_rate, "daily_rate")
    if rate < 0:
        raise ValidationError("daily_rate cannot be negative")

    effective_start = max(period_start, appointment_date) if appointment_date else period_start
    effective_end = min(period_end, separation_date) if separation_date else period_end

    if standard_working_days is None:
        standard = overlap_days(period_start, period_end, weekdays_only)
    else:
        standard = standard_working_days

    days = min(standard, overlap_days(effective_start, effective_end, weekdays_only))

    new_hire = appointment_date is not None and appointment_date > period_start
    separated = separation_date is not None and separation_date < period_end
    if days <= 0:
        reason = ProrationReason.NOT_EMPLOYED
        days = 0
    elif new_hire and separated:
        reason = ProrationReason.NEW_HIRE_AND_SEPARATED
    elif new_hire:
        reason = ProrationReason.NEW_HIRE
    elif separated:
        reason = ProrationReason.SEPARATED
    else:
        reason = ProrationReason.FULL_PERIOD

    return ProratedSalary(
        prorated_days=days,
        prorated_salary=round_to_cents(rate * days),
        reason=reason,
        effective_start=effective_start,
        effective_end=effective_end,
    )


def evaluate_step_increment(
    current_step: int,
    reference_date: date | None,
    evaluation_date: date,
    max_step: int = MAX_STEP,
    required_years: int = STEP_INCREMENT_YEARS,
) -> StepIncrementEligibility:
    """Decide whether an employee earns the next salary step.

    The reference date is the last step increment, or the appointment date
    when no increment has been granted yet. Eligibility falls on the
    anniversary month once the required years have elapsed.
    """
    if current_step >= max_step:
        return StepIncrementEligibility(
            eligible=False,
            reason=StepIncrementReason.MAX_STEP_REACHED,
            current_step=current_step,
        )
    if reference_date is None:
        return StepIncrementEligibility(
            eligible=False,
            reason=StepIncrementReason.MISSING_REFERENCE_DATE,
            current_step=current_step,
        )

    years = full_years_between(reference_date, evaluation_date)
    if years < required_years:
        return StepIncrementEligibility(
            eligible=False,
            reason=StepIncrementReason.INSUFFICIENT_TENURE,
            current_step=current_step,
            years_elapsed=years,
        )
    if evaluation_date.month != reference_date.month:
        return StepIncrementEligibility(
            eligible=False,
            reason=StepIncrementReason.NOT_ANNIVERSARY_MONTH,
            current_step=current_step,
            years_elapsed=years,
        )

    return StepIncrementEligibility(
        eligible=True,
        reason=StepIncrementReason.ELIGIBLE,
        current_step=current_step,
        years_elapsed=years,
        next_step=current_step + 1,
    )
