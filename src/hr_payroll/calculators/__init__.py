"""Pure payroll and benefit calculators."""

from hr_payroll.calculators.money import round_to_cents
from hr_payroll.calculators.proration import (
    evaluate_step_increment,
    full_years_between,
    overlap_days,
    prorate_salary,
    service_months,
)
from hr_payroll.calculators.statutory import StatutoryDeductionCalculator
from hr_payroll.calculators.types import (
    BenefitType,
    Contribution,
    EmploymentStatus,
    ProrationReason,
    StatutoryDeductions,
    StepIncrementReason,
    TaxBracket,
)

__all__ = [
    "StatutoryDeductionCalculator",
    "StatutoryDeductions",
    "Contribution",
    "TaxBracket",
    "BenefitType",
    "EmploymentStatus",
    "ProrationReason",
    "StepIncrementReason",
    "prorate_salary",
    "overlap_days",
    "evaluate_step_increment",
    "full_years_between",
    "service_months",
    "round_to_cents",
]
