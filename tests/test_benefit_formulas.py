"""Unit tests for benefit formulas and eligibility gates."""

from datetime import date
from decimal import Decimal

import pytest
from hypothesis import given, strategies as st

from hr_payroll.calculators import benefit_formulas as bf
from hr_payroll.calculators.types import BenefitType
from hr_payroll.errors import CalculationError, ValidationError


class TestBenefitTax:
    def test_below_threshold_untaxed(self):
        assert bf.benefit_tax(Decimal("20000")) == Decimal("0")

    def test_above_threshold_flat_rate(self):
        assert bf.benefit_tax(Decimal("30000")) == Decimal("3000.00")

    @given(amount=st.decimals(min_value=0, max_value=10**7, places=2))
    def test_tax_never_exceeds_amount(self, amount):
        assert Decimal("0") <= bf.benefit_tax(amount) <= amount


class TestBonusEligibility:
    def test_active_with_enough_service(self):
        months = bf.check_bonus_eligibility("Active", date(2023, 1, 1), date(2024, 5, 15))
        assert months == 16

    def test_inactive_rejected(self):
        with pytest.raises(CalculationError, match="not active"):
            bf.check_bonus_eligibility("Resigned", date(2020, 1, 1), date(2024, 5, 15))

    def test_short_service_rejected(self):
        with pytest.raises(CalculationError, match="Insufficient service"):
            bf.check_bonus_eligibility("Active", date(2024, 3, 1), date(2024, 5, 15))


class TestSalaryBonus:
    def test_full_month_salary(self):
        calc = bf.salary_bonus(BenefitType.YEAR_END_BONUS, Decimal("30000"))
        assert calc.amount == Decimal("30000.00")
        assert calc.tax_amount == Decimal("3000.00")
        assert calc.net_amount == Decimal("27000.00")

    def test_missing_salary(self):
        with pytest.raises(CalculationError, match="salary"):
            bf.salary_bonus(BenefitType.MID_YEAR_BONUS, Decimal("0"))

    def test_only_salary_bonuses(self):
        with pytest.raises(ValidationError):
            bf.salary_bonus(BenefitType.LOYALTY_AWARD, Decimal("30000"))


class TestGsisPayout:
    def test_scaled_by_years(self):
        calc = bf.gsis_payout(Decimal("20000"), 10)
        assert calc.amount == Decimal("18000.00")

    def test_requires_one_year(self):
        with pytest.raises(CalculationError):
            bf.gsis_payout(Decimal("20000"), 0)


class TestTerminalLeave:
    def test_uses_highest_salary(self):
        calc = bf.terminal_leave_benefit("Retired", Decimal("5"), Decimal("22000"), Decimal("11000"))
        assert calc.amount == Decimal("5000.00")
        assert calc.days_used == Decimal("5")

    def test_falls_back_to_current_salary(self):
        calc = bf.terminal_leave_benefit("Resigned", Decimal("10"), None, Decimal("22000"))
        assert calc.amount == Decimal("10000.00")

    def test_requires_separation(self):
        with pytest.raises(CalculationError, match="Resigned, Retired, or"):
            bf.terminal_leave_benefit("Active", Decimal("5"), Decimal("22000"))

    def test_zero_leave(self):
        with pytest.raises(CalculationError, match="No monetizable leave"):
            bf.terminal_leave_benefit("Retired", Decimal("0"), Decimal("22000"))

    def test_missing_salary(self):
        with pytest.raises(CalculationError, match="salary"):
            bf.terminal_leave_benefit("Retired", Decimal("5"), None, None)


class TestLeaveMonetization:
    def test_limited_to_balance(self):
        calc = bf.leave_monetization(Decimal("10"), Decimal("5"), Decimal("22000"))
        assert calc.days_used == Decimal("5")
        assert calc.amount == Decimal("5000.00")

    def test_requested_days_must_be_positive(self):
        with pytest.raises(ValidationError):
            bf.leave_monetization(Decimal("0"), Decimal("5"), Decimal("22000"))

    def test_empty_balance(self):
        with pytest.raises(CalculationError, match="balance is zero"):
            bf.leave_monetization(Decimal("3"), Decimal("0"), Decimal("22000"))


class TestLoyaltyAward:
    @pytest.mark.parametrize(
        "years, expected",
        [
            (10, Decimal("10000.00")),
            (14, Decimal("10000.00")),
            (15, Decimal("15000.00")),
            (20, Decimal("20000.00")),
        ],
    )
    def test_award_by_years(self, years, expected):
        assert bf.loyalty_award(years).amount == expected

    def test_under_ten_years(self):
        with pytest.raises(CalculationError, match="10 years"):
            bf.loyalty_award(9)
