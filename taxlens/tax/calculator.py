"""Federal tax calculation functions.

This module provides pure functions parameterized by a TaxYearRuleTable:
- Progressive bracket tax with per-bracket breakdown
- Standard vs itemized deduction selection
- Self-employment tax
- Alternative Minimum Tax (excess over regular tax)
- Phase-out aware credits (CTC, EITC, AOTC, Lifetime Learning)
- Total liability and delta-method tax impact
- Estimated-tax and accuracy-related penalty estimates

All monetary values use Decimal for precision.

Example:
    >>> from decimal import Decimal
    >>> from taxlens.tax.calculator import calculate_tax
    >>> result = calculate_tax(Decimal("86000"), "single", 2023)
    >>> result.taxable_income
    Decimal('72150')
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field, replace
from datetime import date
from decimal import ROUND_CEILING, Decimal
from typing import Any

from taxlens.tax.brackets import BracketSlice, calculate_progressive_tax, marginal_rate
from taxlens.tax.rules import (
    EITCSchedule,
    FilingStatus,
    TaxYearRuleTable,
    get_rule_table,
)
from taxlens.tax.state import calculate_state_tax

ZERO = Decimal("0")

# Self-employment tax (combined employer + employee rates)
SE_NET_EARNINGS_FACTOR = Decimal("0.9235")
SE_SOCIAL_SECURITY_RATE = Decimal("0.124")
SE_MEDICARE_RATE = Decimal("0.029")
ADDITIONAL_MEDICARE_RATE = Decimal("0.009")

# American Opportunity Credit tiers
AOTC_FULL_TIER = Decimal("2000")
AOTC_PARTIAL_TIER = Decimal("2000")
AOTC_PARTIAL_RATE = Decimal("0.25")

CTC_QUALIFYING_AGE = 17

# Penalty estimators
ESTIMATED_TAX_HIGH_AGI = Decimal("150000")
ESTIMATED_TAX_HIGH_AGI_FACTOR = Decimal("1.1")
ESTIMATED_TAX_CURRENT_YEAR_FACTOR = Decimal("0.9")
ESTIMATED_TAX_PENALTY_RATE = Decimal("0.08")
ACCURACY_PENALTY_RATE = Decimal("0.20")
ACCURACY_MIN_UNDERSTATEMENT = Decimal("5000")
ACCURACY_UNDERSTATEMENT_FRACTION = Decimal("0.10")


# =============================================================================
# Data Structures
# =============================================================================


@dataclass(frozen=True)
class ItemizedDeductions:
    """Itemized deduction inputs before caps and floors.

    Attributes:
        state_local_taxes: State and local taxes paid (SALT), before the cap.
        mortgage_interest: Home mortgage interest.
        charitable: Charitable contributions, before the AGI limit.
        medical: Total medical expenses, before the AGI floor.
        other: Other itemized deductions taken as-is.
    """

    state_local_taxes: Decimal = ZERO
    mortgage_interest: Decimal = ZERO
    charitable: Decimal = ZERO
    medical: Decimal = ZERO
    other: Decimal = ZERO


@dataclass(frozen=True)
class DeductionResult:
    """Result of deduction selection.

    Attributes:
        method: Either "standard" or "itemized".
        amount: The deduction amount used.
        standard_amount: The standard deduction for this filing status.
        itemized_amount: Itemized total after caps and floors.
        salt_deducted: SALT amount included in the itemized total.
    """

    method: str
    amount: Decimal
    standard_amount: Decimal
    itemized_amount: Decimal
    salt_deducted: Decimal = ZERO


@dataclass(frozen=True)
class TaxCalculationResult:
    """Per-year tax computation.

    Attributes:
        tax_year: Tax year.
        filing_status: Filing status used.
        gross_income: Income before deductions.
        deduction: Deduction selection.
        taxable_income: Gross income minus deduction, floored at 0.
        federal_tax: Progressive federal income tax.
        state_code: Two-letter state code used, if any.
        state_tax: State income tax (0 when no state or not modeled).
        total_tax: Federal plus state tax.
        effective_rate: Federal tax / gross income.
        marginal_rate: Rate of the bracket holding the last taxable dollar.
        bracket_breakdown: Federal tax per bracket.
    """

    tax_year: int
    filing_status: FilingStatus
    gross_income: Decimal
    deduction: DeductionResult
    taxable_income: Decimal
    federal_tax: Decimal
    state_code: str | None
    state_tax: Decimal
    total_tax: Decimal
    effective_rate: Decimal
    marginal_rate: Decimal
    bracket_breakdown: list[BracketSlice] = field(default_factory=list)


@dataclass(frozen=True)
class SelfEmploymentTaxResult:
    """Self-employment tax components."""

    net_earnings: Decimal
    social_security: Decimal
    medicare: Decimal
    additional_medicare: Decimal

    @property
    def total(self) -> Decimal:
        return self.social_security + self.medicare + self.additional_medicare

    @property
    def deductible_half(self) -> Decimal:
        """Employer-equivalent half, deductible above the line."""
        return (self.social_security + self.medicare) / 2


@dataclass(frozen=True)
class AMTResult:
    """Alternative Minimum Tax computation.

    Attributes:
        amt_income: AGI plus add-backs.
        exemption: Exemption after phase-out.
        tentative_minimum_tax: Two-tier tax on income above the exemption.
        regular_tax: Regular income tax being compared against.
        amt: Excess of tentative minimum tax over regular tax, never negative.
    """

    amt_income: Decimal
    exemption: Decimal
    tentative_minimum_tax: Decimal
    regular_tax: Decimal
    amt: Decimal


@dataclass(frozen=True)
class Dependent:
    """A dependent claimed on the return."""

    name: str
    birth_date: date | None = None

    def age_at_year_end(self, tax_year: int) -> int | None:
        if self.birth_date is None:
            return None
        return tax_year - self.birth_date.year


@dataclass(frozen=True)
class CreditItem:
    """Individual tax credit.

    Attributes:
        name: Name of the credit (e.g., "Child Tax Credit").
        amount: Credit amount in dollars.
        refundable: Whether the credit can exceed tax liability.
        form: IRS form for claiming this credit.
    """

    name: str
    amount: Decimal
    refundable: bool
    form: str


@dataclass(frozen=True)
class CreditsResult:
    """Result of credits evaluation."""

    credits: list[CreditItem]
    total_nonrefundable: Decimal
    total_refundable: Decimal

    @property
    def total_credits(self) -> Decimal:
        return self.total_nonrefundable + self.total_refundable


@dataclass(frozen=True)
class TaxScenario:
    """Inputs for a full liability computation.

    Attributes:
        tax_year: Tax year.
        filing_status: Filing status.
        wages: W-2 and other non-SE earned income.
        self_employment_income: Net self-employment income.
        other_income: Interest, dividends and other unearned income.
        adjustments: Above-the-line adjustments besides half of SE tax.
        itemized: Itemized deductions, if any.
        qualifying_children: Children under 17 at year end.
        education_expenses: Qualified education expenses.
        education_credit_type: "aotc" or "llc".
        amt_adjustments: Add-backs for AMT besides SALT.
    """

    tax_year: int
    filing_status: FilingStatus | str = FilingStatus.SINGLE
    wages: Decimal = ZERO
    self_employment_income: Decimal = ZERO
    other_income: Decimal = ZERO
    adjustments: Decimal = ZERO
    itemized: ItemizedDeductions | None = None
    qualifying_children: int = 0
    education_expenses: Decimal = ZERO
    education_credit_type: str = "aotc"
    amt_adjustments: Decimal = ZERO


@dataclass(frozen=True)
class TaxLiability:
    """Total liability for a TaxScenario.

    Attributes:
        agi: Adjusted gross income.
        deduction: Deduction selection.
        taxable_income: AGI minus deduction, floored at 0.
        income_tax: Regular income tax.
        self_employment: SE tax components.
        amt: AMT computation.
        credits: Credits evaluation.
        net_tax: max(0, income tax + SE tax + AMT - nonrefundable credits).
    """

    agi: Decimal
    deduction: DeductionResult
    taxable_income: Decimal
    income_tax: Decimal
    self_employment: SelfEmploymentTaxResult
    amt: AMTResult
    credits: CreditsResult
    net_tax: Decimal

    @property
    def refundable_credits(self) -> Decimal:
        return self.credits.total_refundable


@dataclass(frozen=True)
class TaxImpactResult:
    """Liability before and after a change, with impact = original - revised."""

    original: TaxLiability
    revised: TaxLiability

    @property
    def tax_impact(self) -> Decimal:
        return self.original.net_tax - self.revised.net_tax


@dataclass(frozen=True)
class PenaltyEstimate:
    """Estimated penalty with the amount it was computed from."""

    penalty: Decimal
    base_amount: Decimal
    applies: bool


# =============================================================================
# Deductions
# =============================================================================


def calculate_itemized_total(
    itemized: ItemizedDeductions,
    agi: Decimal,
    rules: TaxYearRuleTable,
    charitable_limit: Decimal | None = None,
    medical_floor: Decimal | None = None,
) -> tuple[Decimal, Decimal]:
    """Apply the SALT cap, charitable limit and medical floor.

    Args:
        itemized: Raw itemized amounts.
        agi: Adjusted gross income.
        rules: Rule table for the year.
        charitable_limit: AGI fraction override (default from rules, 60%).
        medical_floor: AGI fraction override (default from rules, 7.5%).

    Returns:
        Tuple of (itemized total, SALT amount included).
    """
    charitable_limit = rules.charitable_agi_limit if charitable_limit is None else charitable_limit
    medical_floor = rules.medical_expense_floor if medical_floor is None else medical_floor

    salt = min(itemized.state_local_taxes, rules.salt_cap)
    charitable = min(itemized.charitable, max(ZERO, agi) * charitable_limit)
    medical = max(ZERO, itemized.medical - max(ZERO, agi) * medical_floor)

    total = salt + itemized.mortgage_interest + charitable + medical + itemized.other
    return total, salt


def calculate_deductions(
    agi: Decimal,
    filing_status: FilingStatus | str,
    rules: TaxYearRuleTable,
    itemized: ItemizedDeductions | None = None,
    charitable_limit: Decimal | None = None,
    medical_floor: Decimal | None = None,
) -> DeductionResult:
    """Select the larger of the standard and itemized deductions.

    Args:
        agi: Adjusted gross income.
        filing_status: Filing status (unknown values fall back to single).
        rules: Rule table for the year.
        itemized: Itemized deduction inputs, if any.
        charitable_limit: Optional charitable AGI-limit override.
        medical_floor: Optional medical AGI-floor override.

    Returns:
        DeductionResult recording the method used.

    Example:
        >>> result = calculate_deductions(Decimal("86000"), "single", get_rule_table(2023))
        >>> result.method, result.amount
        ('standard', Decimal('13850'))
    """
    standard_amount = rules.for_status(filing_status).standard_deduction
    itemized_amount, salt = ZERO, ZERO
    if itemized is not None:
        itemized_amount, salt = calculate_itemized_total(
            itemized, agi, rules, charitable_limit, medical_floor
        )

    if itemized_amount > standard_amount:
        return DeductionResult(
            method="itemized",
            amount=itemized_amount,
            standard_amount=standard_amount,
            itemized_amount=itemized_amount,
            salt_deducted=salt,
        )
    return DeductionResult(
        method="standard",
        amount=standard_amount,
        standard_amount=standard_amount,
        itemized_amount=itemized_amount,
    )


# =============================================================================
# Per-Year Tax
# =============================================================================


def calculate_tax(
    gross_income: Decimal,
    filing_status: FilingStatus | str | None,
    tax_year: int,
    itemized: ItemizedDeductions | None = None,
    state_code: str | None = None,
    rules: TaxYearRuleTable | None = None,
) -> TaxCalculationResult:
    """Calculate federal and state income tax for one year.

    Args:
        gross_income: Income before deductions.
        filing_status: Filing status; unknown values fall back to single.
        tax_year: Tax year.
        itemized: Optional itemized deductions.
        state_code: Optional two-letter state code.
        rules: Rule table; loaded for ``tax_year`` when omitted.

    Returns:
        TaxCalculationResult with breakdown and rates.

    Raises:
        RuleTableUnavailableError: If no rule table exists for the year.
    """
    rules = rules or get_rule_table(tax_year)
    status = FilingStatus.coerce(filing_status)
    status_rules = rules.for_status(status)

    deduction = calculate_deductions(gross_income, status, rules, itemized)
    taxable_income = max(ZERO, gross_income - deduction.amount)
    federal_tax, breakdown = calculate_progressive_tax(taxable_income, status_rules.brackets)

    state_tax = ZERO
    if state_code:
        state_tax = calculate_state_tax(gross_income, state_code, status)

    effective_rate = federal_tax / gross_income if gross_income > ZERO else ZERO

    return TaxCalculationResult(
        tax_year=tax_year,
        filing_status=status,
        gross_income=gross_income,
        deduction=deduction,
        taxable_income=taxable_income,
        federal_tax=federal_tax,
        state_code=state_code.upper() if state_code else None,
        state_tax=state_tax,
        total_tax=federal_tax + state_tax,
        effective_rate=effective_rate,
        marginal_rate=marginal_rate(taxable_income, status_rules.brackets),
        bracket_breakdown=breakdown,
    )


# =============================================================================
# Self-Employment Tax and AMT
# =============================================================================


def calculate_self_employment_tax(
    self_employment_income: Decimal,
    filing_status: FilingStatus | str,
    rules: TaxYearRuleTable,
    wages: Decimal = ZERO,
) -> SelfEmploymentTaxResult:
    """Calculate self-employment tax.

    Net earnings are 92.35% of SE income. W-2 wages consume the Social
    Security wage base and the additional-Medicare threshold first.

    Args:
        self_employment_income: Net SE income.
        filing_status: Filing status.
        rules: Rule table for the year.
        wages: W-2 wages for the same taxpayer.

    Returns:
        SelfEmploymentTaxResult; all zero when SE income <= 0.
    """
    if self_employment_income <= ZERO:
        return SelfEmploymentTaxResult(ZERO, ZERO, ZERO, ZERO)

    net_earnings = self_employment_income * SE_NET_EARNINGS_FACTOR
    remaining_base = max(ZERO, rules.ss_wage_base - max(ZERO, wages))
    social_security = min(net_earnings, remaining_base) * SE_SOCIAL_SECURITY_RATE
    medicare = net_earnings * SE_MEDICARE_RATE

    threshold = max(
        ZERO, rules.for_status(filing_status).additional_medicare_threshold - max(ZERO, wages)
    )
    additional_medicare = max(ZERO, net_earnings - threshold) * ADDITIONAL_MEDICARE_RATE

    return SelfEmploymentTaxResult(
        net_earnings=net_earnings,
        social_security=social_security,
        medicare=medicare,
        additional_medicare=additional_medicare,
    )


def calculate_amt(
    agi: Decimal,
    filing_status: FilingStatus | str,
    rules: TaxYearRuleTable,
    regular_tax: Decimal,
    salt_deducted: Decimal = ZERO,
    other_adjustments: Decimal = ZERO,
) -> AMTResult:
    """Calculate Alternative Minimum Tax as the excess over regular tax.

    Args:
        agi: Adjusted gross income.
        filing_status: Filing status.
        rules: Rule table for the year.
        regular_tax: Regular income tax already computed.
        salt_deducted: SALT taken as an itemized deduction (added back).
        other_adjustments: Miscellaneous add-backs.

    Returns:
        AMTResult whose ``amt`` is never negative.
    """
    status_rules = rules.for_status(filing_status)
    amt_income = agi + salt_deducted + other_adjustments

    phaseout = max(ZERO, amt_income - status_rules.amt_phaseout_threshold)
    exemption = max(
        ZERO, status_rules.amt_exemption - phaseout * rules.amt.exemption_phaseout_rate
    )

    base = max(ZERO, amt_income - exemption)
    low_portion = min(base, status_rules.amt_rate_threshold)
    high_portion = max(ZERO, base - status_rules.amt_rate_threshold)
    tentative = low_portion * rules.amt.low_rate + high_portion * rules.amt.high_rate

    return AMTResult(
        amt_income=amt_income,
        exemption=exemption,
        tentative_minimum_tax=tentative,
        regular_tax=regular_tax,
        amt=max(ZERO, tentative - regular_tax),
    )


# =============================================================================
# Credits
# =============================================================================


def count_qualifying_children(dependents: Sequence[Dependent], tax_year: int) -> int:
    """Count dependents under 17 at the end of the tax year.

    Dependents without a birth date are not counted.
    """
    count = 0
    for dependent in dependents:
        age = dependent.age_at_year_end(tax_year)
        if age is not None and 0 <= age < CTC_QUALIFYING_AGE:
            count += 1
    return count


def calculate_child_tax_credit(
    qualifying_children: int,
    agi: Decimal,
    filing_status: FilingStatus | str,
    rules: TaxYearRuleTable,
) -> Decimal:
    """Calculate the Child Tax Credit after phase-out.

    The credit drops by $50 for each $1,000, or part thereof, of AGI over
    the status threshold.

    Args:
        qualifying_children: Number of children under 17.
        agi: Adjusted gross income.
        filing_status: Filing status.
        rules: Rule table for the year.

    Returns:
        Credit amount, floored at 0.
    """
    if qualifying_children <= 0:
        return ZERO

    ctc = rules.child_tax_credit
    base_credit = ctc.max_per_child * qualifying_children
    threshold = rules.for_status(filing_status).ctc_phaseout_threshold

    if agi <= threshold:
        return base_credit

    steps = ((agi - threshold) / ctc.phaseout_step).to_integral_value(rounding=ROUND_CEILING)
    return max(ZERO, base_credit - steps * ctc.phaseout_per_step)


def _eitc_curve(income: Decimal, schedule: EITCSchedule, joint: bool) -> Decimal:
    """Evaluate the phase-in / plateau / phase-out curve at one income."""
    if income <= ZERO:
        return ZERO
    start, end = schedule.phase_out_range(joint)
    if income >= end:
        return ZERO
    if income <= schedule.phase_in_limit:
        return min(income * schedule.phase_in_rate, schedule.max_credit)
    if income <= start:
        return schedule.max_credit
    return max(ZERO, schedule.max_credit - (income - start) * schedule.phase_out_rate)


def calculate_eitc(
    earned_income: Decimal,
    filing_status: FilingStatus | str,
    qualifying_children: int,
    rules: TaxYearRuleTable,
    agi: Decimal | None = None,
) -> Decimal:
    """Calculate the Earned Income Tax Credit.

    When AGI is given and exceeds the phase-out start, the credit is the
    smaller of the curve evaluated at earned income and at AGI.

    Args:
        earned_income: Wages plus net SE earnings.
        filing_status: Filing status; married filing separately is ineligible.
        qualifying_children: Qualifying children (capped at 3).
        rules: Rule table for the year.
        agi: Optional adjusted gross income.

    Returns:
        EITC amount.
    """
    status = FilingStatus.coerce(filing_status)
    if status is FilingStatus.MARRIED_SEPARATE:
        return ZERO

    schedule = rules.eitc_schedule(qualifying_children)
    joint = rules.for_status(status).eitc_joint
    credit = _eitc_curve(earned_income, schedule, joint)

    start, _ = schedule.phase_out_range(joint)
    if agi is not None and agi > start:
        credit = min(credit, _eitc_curve(agi, schedule, joint))
    return credit


def _education_phaseout_factor(agi: Decimal, band: tuple[Decimal, Decimal] | None) -> Decimal:
    """Fraction of an education credit left after the AGI phase-out band."""
    if band is None:
        return ZERO
    start, end = band
    if agi <= start:
        return Decimal("1")
    if agi >= end:
        return ZERO
    return (end - agi) / (end - start)


def calculate_american_opportunity_credit(
    expenses: Decimal,
    agi: Decimal,
    filing_status: FilingStatus | str,
    rules: TaxYearRuleTable,
) -> Decimal:
    """100% of the first $2,000 plus 25% of the next $2,000, then phased out."""
    if expenses <= ZERO:
        return ZERO
    full = min(expenses, AOTC_FULL_TIER)
    partial = min(max(ZERO, expenses - AOTC_FULL_TIER), AOTC_PARTIAL_TIER)
    credit = min(full + partial * AOTC_PARTIAL_RATE, rules.education.aotc_max)
    band = rules.for_status(filing_status).education_phaseout
    return credit * _education_phaseout_factor(agi, band)


def calculate_lifetime_learning_credit(
    expenses: Decimal,
    agi: Decimal,
    filing_status: FilingStatus | str,
    rules: TaxYearRuleTable,
) -> Decimal:
    """20% of up to $10,000 of expenses, phased out on the same band as AOTC."""
    if expenses <= ZERO:
        return ZERO
    credit = min(expenses, rules.education.llc_max_expenses) * rules.education.llc_rate
    band = rules.for_status(filing_status).education_phaseout
    return credit * _education_phaseout_factor(agi, band)


def evaluate_credits(
    agi: Decimal,
    earned_income: Decimal,
    filing_status: FilingStatus | str,
    rules: TaxYearRuleTable,
    qualifying_children: int = 0,
    education_expenses: Decimal = ZERO,
    education_credit_type: str = "aotc",
) -> CreditsResult:
    """Evaluate CTC, EITC and education credits for one return.

    Args:
        agi: Adjusted gross income.
        earned_income: Earned income for EITC.
        filing_status: Filing status.
        rules: Rule table for the year.
        qualifying_children: Children under 17.
        education_expenses: Qualified education expenses.
        education_credit_type: "aotc" or "llc".

    Returns:
        CreditsResult split into refundable and nonrefundable totals.
    """
    credits: list[CreditItem] = []

    ctc = calculate_child_tax_credit(qualifying_children, agi, filing_status, rules)
    if ctc > ZERO:
        refundable = min(ctc, rules.child_tax_credit.refundable_per_child * qualifying_children)
        if ctc - refundable > ZERO:
            credits.append(CreditItem("Child Tax Credit", ctc - refundable, False, "Schedule 8812"))
        credits.append(
            CreditItem("Additional Child Tax Credit", refundable, True, "Schedule 8812")
        )

    eitc = calculate_eitc(earned_income, filing_status, qualifying_children, rules, agi)
    if eitc > ZERO:
        credits.append(CreditItem("Earned Income Tax Credit", eitc, True, "Schedule EIC"))

    if education_credit_type.lower().strip() == "llc":
        llc = calculate_lifetime_learning_credit(education_expenses, agi, filing_status, rules)
        if llc > ZERO:
            credits.append(CreditItem("Lifetime Learning Credit", llc, False, "Form 8863"))
    else:
        aotc = calculate_american_opportunity_credit(education_expenses, agi, filing_status, rules)
        if aotc > ZERO:
            refundable = aotc * rules.education.aotc_refundable_rate
            credits.append(
                CreditItem("American Opportunity Credit", aotc - refundable, False, "Form 8863")
            )
            credits.append(
                CreditItem("American Opportunity Credit (Refundable)", refundable, True, "Form 8863")
            )

    return CreditsResult(
        credits=credits,
        total_nonrefundable=sum((c.amount for c in credits if not c.refundable), ZERO),
        total_refundable=sum((c.amount for c in credits if c.refundable), ZERO),
    )


# =============================================================================
# Total Liability and Impact
# =============================================================================


def calculate_total_tax(
    scenario: TaxScenario, rules: TaxYearRuleTable | None = None
) -> TaxLiability:
    """Combine income tax, SE tax, AMT and credits for one scenario.

    Args:
        scenario: Income, deductions and credit inputs.
        rules: Rule table; loaded for ``scenario.tax_year`` when omitted.

    Returns:
        TaxLiability with net tax floored at 0.
    """
    rules = rules or get_rule_table(scenario.tax_year)
    status = FilingStatus.coerce(scenario.filing_status)

    se_tax = calculate_self_employment_tax(
        scenario.self_employment_income, status, rules, scenario.wages
    )
    gross = scenario.wages + scenario.self_employment_income + scenario.other_income
    agi = gross - se_tax.deductible_half - scenario.adjustments

    deduction = calculate_deductions(agi, status, rules, scenario.itemized)
    taxable_income = max(ZERO, agi - deduction.amount)
    income_tax, _ = calculate_progressive_tax(taxable_income, rules.for_status(status).brackets)

    amt = calculate_amt(
        agi, status, rules, income_tax, deduction.salt_deducted, scenario.amt_adjustments
    )
    earned = scenario.wages + max(ZERO, se_tax.net_earnings - se_tax.deductible_half)
    credits = evaluate_credits(
        agi,
        earned,
        status,
        rules,
        scenario.qualifying_children,
        scenario.education_expenses,
        scenario.education_credit_type,
    )

    net_tax = max(
        ZERO, income_tax + se_tax.total + amt.amt - credits.total_nonrefundable
    )
    return TaxLiability(
        agi=agi,
        deduction=deduction,
        taxable_income=taxable_income,
        income_tax=income_tax,
        self_employment=se_tax,
        amt=amt,
        credits=credits,
        net_tax=net_tax,
    )


def calculate_tax_impact(
    original: TaxScenario,
    changes: Mapping[str, Any],
    rules: TaxYearRuleTable | None = None,
) -> TaxImpactResult:
    """Recompute liability with scenario fields replaced.

    Args:
        original: Baseline scenario.
        changes: Field overrides for the revised scenario.
        rules: Optional rule table shared by both computations.

    Returns:
        TaxImpactResult; a positive impact means the change lowers tax.
    """
    rules = rules or get_rule_table(original.tax_year)
    revised = replace(original, **dict(changes))
    return TaxImpactResult(
        original=calculate_total_tax(original, rules),
        revised=calculate_total_tax(revised, rules),
    )


# =============================================================================
# Penalty Estimates
# =============================================================================


def calculate_estimated_tax_penalty(
    current_year_tax: Decimal,
    prior_year_tax: Decimal,
    payments: Decimal,
    agi: Decimal,
) -> PenaltyEstimate:
    """Estimate the underpayment-of-estimated-tax penalty.

    Required payment is the lesser of the safe harbor (prior-year tax, 110%
    when AGI exceeds $150,000) and 90% of current-year tax.
    """
    factor = ESTIMATED_TAX_HIGH_AGI_FACTOR if agi > ESTIMATED_TAX_HIGH_AGI else Decimal("1")
    safe_harbor = prior_year_tax * factor
    required = min(safe_harbor, current_year_tax * ESTIMATED_TAX_CURRENT_YEAR_FACTOR)
    underpayment = max(ZERO, required - payments)
    return PenaltyEstimate(
        penalty=underpayment * ESTIMATED_TAX_PENALTY_RATE,
        base_amount=underpayment,
        applies=underpayment > ZERO,
    )


def calculate_accuracy_penalty(reported_tax: Decimal, correct_tax: Decimal) -> PenaltyEstimate:
    """Estimate the 20% accuracy-related penalty on a substantial understatement."""
    understatement = max(ZERO, correct_tax - reported_tax)
    threshold = max(ACCURACY_MIN_UNDERSTATEMENT, correct_tax * ACCURACY_UNDERSTATEMENT_FRACTION)
    applies = understatement > threshold
    return PenaltyEstimate(
        penalty=understatement * ACCURACY_PENALTY_RATE if applies else ZERO,
        base_amount=understatement,
        applies=applies,
    )
