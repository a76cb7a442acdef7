"""Compare third-party reported amounts with what was filed for one year.

For each tracked category the difference is ``reported - filed``:
- Income categories (wages, interest, dividends, self-employment) are
  priced with the delta method: the filed return is recomputed with the
  category adjusted by the difference. A refund is only possible when the
  return was taxed on more than third parties reported (difference < 0).
- Withholding differences are dollar-for-dollar: withholding reported by
  payers but not credited on the return is refundable (difference > 0).

Both sides read a category the same way: the account transcript's return
data when present, otherwise the transcript's own income items. Two
identical transcripts therefore never produce findings.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import date
from decimal import Decimal

from taxlens.analysis.models import ConfidenceLevel, Finding, FindingType, Severity, StatuteKind
from taxlens.analysis.statute import compute_statute
from taxlens.core.config import settings
from taxlens.core.logging import get_logger
from taxlens.tax.calculator import TaxScenario, calculate_tax_impact
from taxlens.tax.rules import FilingStatus, get_rule_table
from taxlens.transcripts.models import (
    AccountTranscript,
    IncomeCategory,
    IncomeItem,
    TranscriptBase,
)

logger = get_logger(__name__)

ZERO = Decimal("0")
CENT = Decimal("0.01")

HIGH_IMPACT = Decimal("500")
MEDIUM_IMPACT = Decimal("100")


@dataclass(frozen=True)
class TrackedCategory:
    """An income category and the return-data field holding its filed amount."""

    category: IncomeCategory
    return_field: str
    label: str


TRACKED_INCOME: tuple[TrackedCategory, ...] = (
    TrackedCategory(IncomeCategory.WAGES, "wages", "Wages"),
    TrackedCategory(IncomeCategory.INTEREST, "interest", "Interest"),
    TrackedCategory(IncomeCategory.DIVIDENDS, "dividends", "Dividends"),
    TrackedCategory(IncomeCategory.SELF_EMPLOYMENT, "business_income", "Self-Employment"),
)


def severity_for(amount: Decimal) -> Severity:
    """High above $500, medium above $100, otherwise low."""
    amount = abs(amount)
    if amount > HIGH_IMPACT:
        return Severity.HIGH
    if amount > MEDIUM_IMPACT:
        return Severity.MEDIUM
    return Severity.LOW


def category_total(transcript: TranscriptBase, tracked: TrackedCategory) -> Decimal:
    if isinstance(transcript, AccountTranscript):
        filed = getattr(transcript.return_data, tracked.return_field)
        if filed is not None:
            return filed
    return transcript.income_by_category(tracked.category)


def withholding_total(transcript: TranscriptBase) -> Decimal:
    if isinstance(transcript, AccountTranscript) and transcript.return_data.withholding is not None:
        return transcript.return_data.withholding
    return transcript.item_withholding


def _baseline_scenario(
    account: TranscriptBase, filing_status: FilingStatus, dependents: int
) -> TaxScenario:
    wages = category_total(account, TRACKED_INCOME[0])
    self_employment = category_total(account, TRACKED_INCOME[3])
    other = sum((category_total(account, t) for t in TRACKED_INCOME[1:3]), ZERO)

    if isinstance(account, AccountTranscript) and account.return_data.adjusted_gross_income is not None:
        other = max(ZERO, account.return_data.adjusted_gross_income - wages - self_employment)

    return TaxScenario(
        tax_year=account.tax_year,
        filing_status=filing_status,
        wages=max(ZERO, wages),
        self_employment_income=max(ZERO, self_employment),
        other_income=other,
        qualifying_children=dependents,
    )


def _scenario_change(
    scenario: TaxScenario, category: IncomeCategory, delta: Decimal
) -> dict[str, Decimal]:
    if category is IncomeCategory.WAGES:
        return {"wages": max(ZERO, scenario.wages + delta)}
    if category is IncomeCategory.SELF_EMPLOYMENT:
        return {"self_employment_income": max(ZERO, scenario.self_employment_income + delta)}
    return {"other_income": max(ZERO, scenario.other_income + delta)}


def _income_finding(
    tracked: TrackedCategory,
    reported: Decimal,
    filed: Decimal,
    baseline: TaxScenario,
    as_of: date | None,
) -> Finding:
    delta = reported - filed
    impact = calculate_tax_impact(
        baseline,
        _scenario_change(baseline, tracked.category, delta),
        get_rule_table(baseline.tax_year),
    )
    # Positive tax_impact means the adjusted return owes less.
    tax_impact = impact.tax_impact.quantize(CENT)
    refund_possible = delta < ZERO
    return Finding(
        finding_type=FindingType.INCOME_DISCREPANCY,
        tax_year=baseline.tax_year,
        severity=severity_for(tax_impact),
        title=f"{tracked.label} Income Discrepancy",
        description=(
            f"Reported {tracked.label.lower()} income (${reported:,.2f}) differs from the "
            f"filed amount (${filed:,.2f}) by ${abs(delta):,.2f}"
        ),
        potential_refund=abs(tax_impact) if refund_possible else ZERO,
        action_required=(
            "File amended return (Form 1040X)"
            if refund_possible
            else "Verify accuracy of original return"
        ),
        confidence=ConfidenceLevel.HIGH,
        statute=compute_statute(
            baseline.tax_year,
            StatuteKind.REFUND if refund_possible else StatuteKind.ASSESSMENT,
            as_of,
        ),
        supporting_data={
            "category": tracked.category.value,
            "reported": reported,
            "filed": filed,
            "difference": delta,
            "tax_impact": tax_impact,
        },
    )


def _withholding_finding(
    tax_year: int, reported: Decimal, filed: Decimal, as_of: date | None
) -> Finding:
    delta = reported - filed
    refund_possible = delta > ZERO
    return Finding(
        finding_type=FindingType.WITHHOLDING_DISCREPANCY,
        tax_year=tax_year,
        severity=severity_for(delta),
        title="Withholding Discrepancy",
        description=(
            f"Reported withholding (${reported:,.2f}) differs from the amount claimed "
            f"(${filed:,.2f}) by ${abs(delta):,.2f}"
        ),
        potential_refund=delta if refund_possible else ZERO,
        action_required=(
            "File amended return (Form 1040X) to claim additional withholding"
            if refund_possible
            else "Verify withholding documentation"
        ),
        confidence=ConfidenceLevel.HIGH,
        statute=compute_statute(
            tax_year, StatuteKind.REFUND if refund_possible else StatuteKind.ASSESSMENT, as_of
        ),
        supporting_data={"reported": reported, "claimed": filed, "difference": delta},
    )


def analyze_discrepancies(
    income_source: TranscriptBase,
    account: TranscriptBase,
    filing_status: FilingStatus | str | None = None,
    dependents: int | None = None,
    threshold: Decimal | None = None,
    as_of: date | None = None,
) -> list[Finding]:
    """Compare an income-source transcript with an account transcript.

    Args:
        income_source: Wage-and-income transcript (third-party amounts).
        account: Account-of-record transcript (filed amounts).
        filing_status: Override; defaults to the status on either transcript.
        dependents: Override for qualifying children in the tax recompute.
        threshold: Materiality threshold; differences at or below it are
            ignored. Defaults to settings.
        as_of: Date statute days are counted from.

    Returns:
        Findings, one per material category difference.

    Raises:
        RuleTableUnavailableError: If the year has no rule table.
    """
    threshold = threshold if threshold is not None else settings.materiality_threshold
    status = FilingStatus.coerce(
        filing_status or account.taxpayer.filing_status or income_source.taxpayer.filing_status
    )
    children = dependents if dependents is not None else account.taxpayer.dependents
    baseline: TaxScenario | None = None
    findings: list[Finding] = []

    for tracked in TRACKED_INCOME:
        reported = category_total(income_source, tracked)
        filed = category_total(account, tracked)
        if abs(reported - filed) <= threshold:
            continue
        if baseline is None:
            baseline = _baseline_scenario(account, status, children)
        findings.append(_income_finding(tracked, reported, filed, baseline, as_of))

    reported_wh = withholding_total(income_source)
    filed_wh = withholding_total(account)
    if abs(reported_wh - filed_wh) > threshold:
        findings.append(_withholding_finding(account.tax_year, reported_wh, filed_wh, as_of))

    logger.info(
        "discrepancies_analyzed",
        tax_year=account.tax_year,
        findings=len(findings),
        potential_refund=sum((f.potential_refund for f in findings), ZERO),
    )
    return findings


def reconcile_reporting(
    income_source: TranscriptBase,
    account: AccountTranscript,
    threshold: Decimal | None = None,
) -> TranscriptBase:
    """Flag the part of each category the filed return under-reports.

    A category is short when its filed total (from return data) is lower
    than the third-party total by more than the materiality threshold.
    The shortfall is allocated to the category's items in transcript
    order; each item it touches is marked ``reported=False`` with
    ``unreported_amount`` set to its share. Categories without filed
    figures are left unchanged.

    Returns:
        A copy of ``income_source`` with updated items.
    """
    threshold = threshold if threshold is not None else settings.materiality_threshold
    shortfalls: dict[IncomeCategory, Decimal] = {}
    for tracked in TRACKED_INCOME:
        filed = getattr(account.return_data, tracked.return_field)
        if filed is None:
            continue
        shortfall = income_source.income_by_category(tracked.category) - filed
        if shortfall > threshold:
            shortfalls[tracked.category] = shortfall

    if not shortfalls:
        return income_source

    remaining = dict(shortfalls)
    items: list[IncomeItem] = []
    for item in income_source.income_items:
        left = remaining.get(item.category, ZERO)
        share = min(left, item.amount)
        if share <= ZERO:
            items.append(item)
            continue
        remaining[item.category] = left - share
        items.append(item.model_copy(update={"reported": False, "unreported_amount": share}))

    logger.info(
        "income_marked_unreported",
        tax_year=income_source.tax_year,
        shortfalls={c.value: str(amount) for c, amount in shortfalls.items()},
    )
    return income_source.model_copy(update={"income_items": tuple(items)})


def total_potential_refund(findings: Sequence[Finding]) -> Decimal:
    return sum((f.potential_refund for f in findings), ZERO)
