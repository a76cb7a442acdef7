"""Tests for federal tax calculation."""

from datetime import date
from decimal import Decimal

import pytest

from taxlens.tax.calculator import (
    Dependent,
    ItemizedDeductions,
    TaxScenario,
    calculate_accuracy_penalty,
    calculate_american_opportunity_credit,
    calculate_amt,
    calculate_child_tax_credit,
    calculate_deductions,
    calculate_eitc,
    calculate_estimated_tax_penalty,
    calculate_lifetime_learning_credit,
    calculate_self_employment_tax,
    calculate_tax,
    calculate_tax_impact,
    calculate_total_tax,
    count_qualifying_children,
    evaluate_credits,
)
from taxlens.tax.rules import FilingStatus, RuleTableUnavailableError, get_rule_table


@pytest.fixture
def rules_2023():
    """2023 rule table."""
    return get_rule_table(2023)


# =============================================================================
# Per-Year Tax
# =============================================================================


class TestCalculateTax:
    """Tests for calculate_tax."""

    def test_single_2023_golden(self) -> None:
        """$86,000 single in 2023: taxable 72,150, tax 11,180.50."""
        result = calculate_tax(Decimal("86000"), FilingStatus.SINGLE, 2023)

        assert result.deduction.method == "standard"
        assert result.deduction.amount == Decimal("13850")
        assert result.taxable_income == Decimal("72150")
        assert result.federal_tax == Decimal("11180.50")
        assert result.marginal_rate == Decimal("0.22")
        assert result.effective_rate == result.federal_tax / Decimal("86000")

    def test_bracket_breakdown_sums_to_tax(self) -> None:
        """Per-bracket tax adds up to the federal tax."""
        result = calculate_tax(Decimal("86000"), "single", 2023)

        assert [s.rate for s in result.bracket_breakdown] == [
            Decimal("0.10"),
            Decimal("0.12"),
            Decimal("0.22"),
        ]
        assert sum(s.tax for s in result.bracket_breakdown) == result.federal_tax

    def test_income_below_deduction_is_zero_tax(self) -> None:
        """Income under the standard deduction owes nothing."""
        result = calculate_tax(Decimal("10000"), "single", 2023)

        assert result.taxable_income == Decimal("0")
        assert result.federal_tax == Decimal("0")
        assert result.bracket_breakdown == []
        assert result.marginal_rate == Decimal("0.10")

    def test_zero_income_effective_rate(self) -> None:
        """Zero income has a zero effective rate rather than dividing by zero."""
        result = calculate_tax(Decimal("0"), "single", 2023)
        assert result.effective_rate == Decimal("0")

    def test_unknown_status_falls_back_to_single(self) -> None:
        """Unrecognized status computes as single."""
        result = calculate_tax(Decimal("86000"), "unknown", 2023)
        assert result.filing_status is FilingStatus.SINGLE
        assert result.federal_tax == Decimal("11180.50")

    def test_married_joint_uses_joint_brackets(self) -> None:
        """$86,000 jointly in 2023: taxable 58,300 all in the 12% bracket."""
        result = calculate_tax(Decimal("86000"), "mfj", 2023)

        assert result.taxable_income == Decimal("58300")
        # 22,000 x 10% + 36,300 x 12%
        assert result.federal_tax == Decimal("6556.00")
        assert result.marginal_rate == Decimal("0.12")

    def test_state_tax_added(self) -> None:
        """Illinois flat tax is included in the total."""
        result = calculate_tax(Decimal("86000"), "single", 2023, state_code="il")

        assert result.state_code == "IL"
        assert result.state_tax == Decimal("4136.9625")
        assert result.total_tax == result.federal_tax + result.state_tax

    def test_unsupported_year_raises(self) -> None:
        """Years without a rule table are rejected."""
        with pytest.raises(RuleTableUnavailableError):
            calculate_tax(Decimal("50000"), "single", 2018)


class TestDeductions:
    """Tests for deduction selection."""

    def test_itemized_wins_when_larger(self, rules_2023) -> None:
        """Itemized deductions above the standard amount are used, SALT capped."""
        itemized = ItemizedDeductions(
            state_local_taxes=Decimal("15000"),
            mortgage_interest=Decimal("9000"),
            charitable=Decimal("2000"),
        )
        result = calculate_deductions(Decimal("150000"), "single", rules_2023, itemized)

        assert result.method == "itemized"
        assert result.salt_deducted == Decimal("10000")
        assert result.amount == Decimal("21000")

    def test_medical_floor_applies(self, rules_2023) -> None:
        """Only medical expenses above 7.5% of AGI count."""
        itemized = ItemizedDeductions(medical=Decimal("20000"), mortgage_interest=Decimal("8000"))
        result = calculate_deductions(Decimal("100000"), "single", rules_2023, itemized)

        assert result.itemized_amount == Decimal("20500.000")

    def test_standard_when_itemized_smaller(self, rules_2023) -> None:
        """Small itemized totals fall back to standard."""
        itemized = ItemizedDeductions(charitable=Decimal("500"))
        result = calculate_deductions(Decimal("60000"), "single", rules_2023, itemized)

        assert result.method == "standard"
        assert result.amount == Decimal("13850")


# =============================================================================
# Self-Employment Tax and AMT
# =============================================================================


class TestSelfEmploymentTax:
    """Tests for self-employment tax."""

    def test_basic_se_tax(self, rules_2023) -> None:
        """$50,000 SE income: 92.35% net earnings at 12.4% + 2.9%."""
        result = calculate_self_employment_tax(Decimal("50000"), "single", rules_2023)

        assert result.net_earnings == Decimal("46175.0000")
        assert result.social_security == Decimal("46175.0000") * Decimal("0.124")
        assert result.medicare == Decimal("46175.0000") * Decimal("0.029")
        assert result.additional_medicare == Decimal("0")

    def test_wages_consume_wage_base(self, rules_2023) -> None:
        """Wages at the wage base leave no Social Security portion."""
        result = calculate_self_employment_tax(
            Decimal("50000"), "single", rules_2023, wages=Decimal("160200")
        )
        assert result.social_security == Decimal("0")

    def test_no_se_income(self, rules_2023) -> None:
        """Losses produce no SE tax."""
        result = calculate_self_employment_tax(Decimal("-500"), "single", rules_2023)
        assert result.total == Decimal("0")


class TestAMT:
    """Tests for the alternative minimum tax."""

    def test_below_exemption_owes_nothing(self, rules_2023) -> None:
        """Income under the exemption has no AMT."""
        result = calculate_amt(Decimal("60000"), "single", rules_2023, Decimal("5000"))
        assert result.amt == Decimal("0")

    def test_salt_addback_can_trigger_amt(self, rules_2023) -> None:
        """Large add-backs push the tentative tax above regular tax."""
        result = calculate_amt(
            Decimal("200000"),
            "single",
            rules_2023,
            regular_tax=Decimal("20000"),
            salt_deducted=Decimal("10000"),
            other_adjustments=Decimal("100000"),
        )
        assert result.amt_income == Decimal("310000")
        assert result.exemption == Decimal("81300")
        assert result.tentative_minimum_tax > result.regular_tax
        assert result.amt == result.tentative_minimum_tax - Decimal("20000")


# =============================================================================
# Credits
# =============================================================================


class TestChildTaxCredit:
    """Tests for the child tax credit."""

    def test_full_credit_below_threshold(self, rules_2023) -> None:
        """Two children under the threshold receive $4,000."""
        assert calculate_child_tax_credit(2, Decimal("80000"), "single", rules_2023) == Decimal(
            "4000"
        )

    def test_phaseout_rounds_up_per_thousand(self, rules_2023) -> None:
        """$50 per $1,000 or part thereof above $200,000."""
        credit = calculate_child_tax_credit(2, Decimal("209500"), "single", rules_2023)
        assert credit == Decimal("3500")

    @pytest.mark.parametrize(
        ("status", "agi"),
        [("single", Decimal("280001")), ("single", Decimal("500000")), ("mfj", Decimal("480001"))],
    )
    def test_fully_phased_out(self, rules_2023, status: str, agi: Decimal) -> None:
        """Once the reduction exceeds the credit, nothing is left."""
        assert calculate_child_tax_credit(2, agi, status, rules_2023) == Decimal("0")

    @pytest.mark.parametrize("status", ["single", "mfj", "hoh"])
    def test_non_increasing_past_threshold(self, rules_2023, status: str) -> None:
        """Each step of AGI above the threshold never raises the credit."""
        threshold = rules_2023.for_status(status).ctc_phaseout_threshold
        incomes = [threshold + Decimal(step) * 2500 for step in range(0, 40)]

        credits = [calculate_child_tax_credit(2, agi, status, rules_2023) for agi in incomes]

        assert credits[0] == Decimal("4000")
        assert credits == sorted(credits, reverse=True)
        assert credits[-1] == Decimal("0")

    def test_no_children(self, rules_2023) -> None:
        """No qualifying children means no credit."""
        assert calculate_child_tax_credit(0, Decimal("50000"), "single", rules_2023) == Decimal(
            "0"
        )

    def test_count_qualifying_children(self) -> None:
        """Only dependents under 17 at year end with a birth date count."""
        dependents = [
            Dependent("A", date(2010, 5, 1)),
            Dependent("B", date(2005, 5, 1)),
            Dependent("C"),
        ]
        assert count_qualifying_children(dependents, 2023) == 1


class TestEITC:
    """Tests for the earned income credit."""

    def test_plateau(self, rules_2023) -> None:
        """Income on the plateau receives the maximum credit."""
        credit = calculate_eitc(Decimal("15000"), "single", 1, rules_2023)
        assert credit == Decimal("3995")

    def test_phase_in(self, rules_2023) -> None:
        """Phase-in credit is income times the phase-in rate."""
        credit = calculate_eitc(Decimal("5000"), "single", 1, rules_2023)
        assert credit == Decimal("1700.00")

    def test_married_separate_ineligible(self, rules_2023) -> None:
        """Married filing separately receives nothing."""
        assert calculate_eitc(Decimal("15000"), "mfs", 1, rules_2023) == Decimal("0")

    def test_agi_above_earned_income_limits_credit(self, rules_2023) -> None:
        """With AGI past the phase-out start, the smaller curve value is used."""
        earned_only = calculate_eitc(Decimal("15000"), "single", 1, rules_2023)
        with_agi = calculate_eitc(Decimal("15000"), "single", 1, rules_2023, agi=Decimal("30000"))
        assert with_agi < earned_only

    def test_above_phase_out_end(self, rules_2023) -> None:
        """Income past the phase-out end receives nothing."""
        assert calculate_eitc(Decimal("60000"), "single", 1, rules_2023) == Decimal("0")

    @pytest.mark.parametrize("children", [0, 1, 2, 3])
    @pytest.mark.parametrize("status", ["single", "mfj"])
    def test_curve_shape(self, rules_2023, children: int, status: str) -> None:
        """Rises through phase-in, holds on the plateau, never rises in phase-out."""
        schedule = rules_2023.eitc_schedule(children)
        start, end = schedule.phase_out_range(status == "mfj")

        phase_in = [schedule.phase_in_limit * Decimal(i) / 10 for i in range(1, 11)]
        plateau = [schedule.phase_in_limit + 1, (schedule.phase_in_limit + start) / 2, start]
        phase_out = [start + (end - start) * Decimal(i) / 20 for i in range(21)]

        def credits(incomes: list[Decimal]) -> list[Decimal]:
            return [calculate_eitc(i, status, children, rules_2023) for i in incomes]

        rising = credits(phase_in)
        assert rising == sorted(rising)
        assert rising[-1] <= schedule.max_credit
        assert set(credits(plateau)) == {schedule.max_credit}
        falling = credits(phase_out)
        assert falling == sorted(falling, reverse=True)
        assert falling[-1] == Decimal("0")


class TestEducationCredits:
    """Tests for education credits."""

    def test_aotc_maximum(self, rules_2023) -> None:
        """$4,000 of expenses earns the $2,500 maximum."""
        credit = calculate_american_opportunity_credit(
            Decimal("4000"), Decimal("50000"), "single", rules_2023
        )
        assert credit == Decimal("2500")

    def test_aotc_partial_phaseout(self, rules_2023) -> None:
        """Half way through the phase-out band keeps half the credit."""
        credit = calculate_american_opportunity_credit(
            Decimal("4000"), Decimal("85000"), "single", rules_2023
        )
        assert credit == Decimal("1250")

    def test_married_separate_ineligible(self, rules_2023) -> None:
        """Married filing separately cannot claim education credits."""
        assert calculate_american_opportunity_credit(
            Decimal("4000"), Decimal("50000"), "mfs", rules_2023
        ) == Decimal("0")
        assert calculate_lifetime_learning_credit(
            Decimal("4000"), Decimal("50000"), "mfs", rules_2023
        ) == Decimal("0")

    def test_lifetime_learning_caps_expenses(self, rules_2023) -> None:
        """20% of at most $10,000."""
        credit = calculate_lifetime_learning_credit(
            Decimal("15000"), Decimal("50000"), "single", rules_2023
        )
        assert credit == Decimal("2000.00")

    def test_evaluate_credits_splits_refundable(self, rules_2023) -> None:
        """CTC refundable portion and AOTC 40% are refundable."""
        result = evaluate_credits(
            Decimal("100000"),
            Decimal("100000"),
            "mfj",
            rules_2023,
            qualifying_children=1,
            education_expenses=Decimal("4000"),
        )
        names = [c.name for c in result.credits]
        assert "Additional Child Tax Credit" in names
        assert "American Opportunity Credit (Refundable)" in names
        assert result.total_refundable == Decimal("1600") + Decimal("1000.00")
        assert result.total_nonrefundable == Decimal("400") + Decimal("1500.00")


# =============================================================================
# Total Liability and Impact
# =============================================================================


class TestTotalTax:
    """Tests for total liability and tax impact."""

    def test_wages_only_matches_calculate_tax(self) -> None:
        """A wage-only scenario owes the plain bracket tax."""
        liability = calculate_total_tax(TaxScenario(tax_year=2023, wages=Decimal("86000")))

        assert liability.agi == Decimal("86000")
        assert liability.income_tax == Decimal("11180.50")
        assert liability.net_tax == Decimal("11180.50")

    def test_half_se_tax_deducted_from_agi(self) -> None:
        """AGI excludes half of self-employment tax."""
        liability = calculate_total_tax(
            TaxScenario(tax_year=2023, self_employment_income=Decimal("50000"))
        )
        assert liability.agi == Decimal("50000") - liability.self_employment.deductible_half
        assert liability.net_tax > liability.income_tax

    def test_tax_impact_of_lower_wages(self) -> None:
        """Removing $5,000 of 22%-bracket wages saves $1,100."""
        baseline = TaxScenario(tax_year=2023, wages=Decimal("65000"))
        impact = calculate_tax_impact(baseline, {"wages": Decimal("60000")})

        assert impact.tax_impact == Decimal("1100")
        assert impact.revised.agi == Decimal("60000")

    def test_tax_impact_of_higher_income_is_negative(self) -> None:
        """Adding income raises tax, so the impact is negative."""
        baseline = TaxScenario(tax_year=2023, wages=Decimal("65000"))
        impact = calculate_tax_impact(baseline, {"other_income": Decimal("1000")})
        assert impact.tax_impact == Decimal("-220")


class TestPenaltyEstimates:
    """Tests for penalty estimators."""

    def test_estimated_tax_penalty(self) -> None:
        """Required payment is the lesser of prior-year tax and 90% of current tax."""
        result = calculate_estimated_tax_penalty(
            current_year_tax=Decimal("10000"),
            prior_year_tax=Decimal("8000"),
            payments=Decimal("5000"),
            agi=Decimal("100000"),
        )
        assert result.applies
        assert result.base_amount == Decimal("3000")
        assert result.penalty == Decimal("240")

    def test_high_agi_safe_harbor(self) -> None:
        """Above $150,000 AGI the safe harbor is 110% of prior-year tax."""
        result = calculate_estimated_tax_penalty(
            current_year_tax=Decimal("50000"),
            prior_year_tax=Decimal("10000"),
            payments=Decimal("10000"),
            agi=Decimal("200000"),
        )
        assert result.base_amount == Decimal("1000")

    def test_accuracy_penalty_applies(self) -> None:
        """Understatement above the threshold is penalized at 20%."""
        result = calculate_accuracy_penalty(Decimal("10000"), Decimal("20000"))
        assert result.applies
        assert result.penalty == Decimal("2000")

    def test_accuracy_penalty_below_threshold(self) -> None:
        """Small understatements are not substantial."""
        result = calculate_accuracy_penalty(Decimal("18000"), Decimal("20000"))
        assert not result.applies
        assert result.penalty == Decimal("0")
