"""Statutory deduction calculation (GSIS, Pag-IBIG, PhilHealth, withholding tax).

All functions are pure: the same salary always yields the same amounts.
Amounts are non-negative and rounded to centavos; a salary of zero or
less produces zero deductions rather than an error.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any, Sequence

from hr_payroll.calculators.money import ZERO, round_to_cents, to_decimal
from hr_payroll.calculators.types import (
    Contribution,
    PhilHealthBand,
    StatutoryDeductions,
    TaxBracket,
)

GSIS_EMPLOYEE_RATE = Decimal("0.09")
GSIS_EMPLOYER_RATE = Decimal("0.12")

PAGIBIG_RATE = Decimal("0.02")
PAGIBIG_MAX_CONTRIBUTION = Decimal("200.00")

# Total premium; employee and employer each pay half.
PHILHEALTH_BANDS: tuple[PhilHealthBand, ...] = (
    PhilHealthBand(Decimal("0"), Decimal("10000"), fixed_premium=Decimal("400.00")),
    PhilHealthBand(Decimal("10000"), Decimal("100000"), rate=Decimal("0.04")),
    PhilHealthBand(Decimal("100000"), None, fixed_premium=Decimal("4000.00")),
)

# Annual graduated income tax table (TRAIN law, 2023 onwards).
ANNUAL_TAX_BRACKETS: tuple[TaxBracket, ...] = (
    TaxBracket(Decimal("0"), Decimal("0"), Decimal("0")),
    TaxBracket(Decimal("250000"), Decimal("0"), Decimal("0.15")),
    TaxBracket(Decimal("400000"), Decimal("22500"), Decimal("0.20")),
    TaxBracket(Decimal("800000"), Decimal("102500"), Decimal("0.25")),
    TaxBracket(Decimal("2000000"), Decimal("402500"), Decimal("0.30")),
    TaxBracket(Decimal("8000000"), Decimal("2202500"), Decimal("0.35")),
)

MONTHS_PER_YEAR = Decimal("12")

_ZERO_CONTRIBUTION = Contribution(ZERO, ZERO, ZERO)


class StatutoryDeductionCalculator:
    """Computes government-mandated deductions from a monthly salary.

    Tables default to the current schedules and can be replaced per
    instance, e.g. to compute a historical period.
    """

    def __init__(
        self,
        tax_brackets: Sequence[TaxBracket] = ANNUAL_TAX_BRACKETS,
        philhealth_bands: Sequence[PhilHealthBand] = PHILHEALTH_BANDS,
    ):
        self.tax_brackets = tuple(sorted(tax_brackets, key=lambda b: b.lower_bound))
        self.philhealth_bands = tuple(sorted(philhealth_bands, key=lambda b: b.lower_bound))

    def gsis(self, salary: Any) -> Contribution:
        """GSIS life and retirement premium; only the employee share is deducted."""
        basis = to_decimal(salary, "salary")
        if basis <= 0:
            return _ZERO_CONTRIBUTION
        return Contribution(
            employee_share=round_to_cents(basis * GSIS_EMPLOYEE_RATE),
            employer_share=round_to_cents(basis * GSIS_EMPLOYER_RATE),
            basis=basis,
        )

    def pagibig(self, salary: Any) -> Contribution:
        """Pag-IBIG (HDMF) contribution, each share capped."""
        basis = to_decimal(salary, "salary")
        if basis <= 0:
            return _ZERO_CONTRIBUTION
        share = min(round_to_cents(basis * PAGIBIG_RATE), PAGIBIG_MAX_CONTRIBUTION)
        return Contribution(employee_share=share, employer_share=share, basis=basis)

    def philhealth(self, salary: Any) -> Contribution:
        """PhilHealth premium from the band table, split evenly."""
        basis = to_decimal(salary, "salary")
        if basis <= 0:
            return _ZERO_CONTRIBUTION

        band = self._find_band(basis)
        if band.fixed_premium is not None:
            total = band.fixed_premium
        else:
            total = round_to_cents(basis * band.rate)

        employee_share = round_to_cents(total / 2)
        return Contribution(
            employee_share=employee_share,
            employer_share=total - employee_share,
            basis=basis,
        )

    def withholding_tax(self, taxable_monthly: Any) -> Decimal:
        """Monthly withholding tax from the annualized progressive table."""
        monthly = to_decimal(taxable_monthly, "taxable_income")
        if monthly <= 0:
            return ZERO

        annual = monthly * MONTHS_PER_YEAR
        bracket = self.tax_brackets[0]
        for candidate in self.tax_brackets:
            if annual >= candidate.lower_bound:
                bracket = candidate
            else:
                break

        annual_tax = bracket.base_tax + (annual - bracket.lower_bound) * bracket.marginal_rate
        if annual_tax <= 0:
            return ZERO
        return round_to_cents(annual_tax / MONTHS_PER_YEAR)

    def compute(
        self,
        salary: Any,
        other_non_taxable: Any = ZERO,
        taxable_additions: Any = ZERO,
    ) -> StatutoryDeductions:
        """Compute all four deductions for a salary.

        The tax base is salary plus taxable additions, less the employee
        contribution shares and any other non-taxable deductions.
        """
        basis = to_decimal(salary, "salary")
        gsis = self.gsis(basis)
        pagibig = self.pagibig(basis)
        philhealth = self.philhealth(basis)

        if basis <= 0:
            taxable = ZERO
        else:
            taxable = (
                basis
                + to_decimal(taxable_additions, "taxable_additions")
                - gsis.employee_share
                - pagibig.employee_share
                - philhealth.employee_share
                - to_decimal(other_non_taxable, "other_non_taxable")
            )
            taxable = max(round_to_cents(taxable), ZERO)

        return StatutoryDeductions(
            salary=basis,
            gsis=gsis,
            pagibig=pagibig,
            philhealth=philhealth,
            taxable_income=taxable,
            withholding_tax=self.withholding_tax(taxable),
        )

    def _find_band(self, salary: Decimal) -> PhilHealthBand:
        for band in self.philhealth_bands:
            if band.upper_bound is None or salary < band.upper_bound:
                if salary >= band.lower_bound:
                    return band
        return self.philhealth_bands[-1]
