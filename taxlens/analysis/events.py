"""Turn account transaction codes into actionable findings.

Only codes marked reversible in the code table are considered:
- Penalties (160/161/162/166/176/276): abatement opportunity scored by a
  heuristic likelihood
- Examination (420/424): audit-response finding
- Undeliverable refund (740): amount recovered from a refund issued within
  30 days
- Refund freeze (570): frozen refund from the filed return
- Substitute return (560): benefit of filing an original return
"""

from __future__ import annotations

from collections.abc import Mapping
from datetime import date
from decimal import Decimal

from taxlens.analysis.models import (
    ConfidenceLevel,
    Finding,
    FindingType,
    Severity,
    StatuteInformation,
    StatuteKind,
)
from taxlens.analysis.statute import compute_statute
from taxlens.core.logging import get_logger
from taxlens.tax.brackets import marginal_rate
from taxlens.tax.rules import FilingStatus, get_rule_table
from taxlens.transcripts.codes import REFUND_ISSUED_CODES, lookup_code
from taxlens.transcripts.models import (
    AccountTranscript,
    PenaltyType,
    TranscriptBase,
    TransactionCategory,
    TransactionCode,
)

logger = get_logger(__name__)

ZERO = Decimal("0")
CENT = Decimal("0.01")

# Penalty abatement likelihood heuristic
BASE_LIKELIHOOD = 0.3
FIRST_TIME_BONUS = 0.3
REASONABLE_CAUSE_BONUS = 0.2
SMALL_PENALTY_BONUS = 0.1
SMALL_PENALTY_AMOUNT = Decimal("500")
REFUND_LIKELIHOOD = 0.5
HIGH_CONFIDENCE_LIKELIHOOD = 0.7

HIGH_PENALTY = Decimal("1000")
MEDIUM_PENALTY = Decimal("250")

REFUND_MATCH_WINDOW_DAYS = 30
FIRST_TIME_LOOKBACK_YEARS = 3

PENALTY_ACTIONS: dict[PenaltyType, str] = {
    PenaltyType.LATE_FILING: "Submit Form 843 for First-Time Penalty Abatement",
    PenaltyType.LATE_PAYMENT: "Submit Form 843 for Reasonable Cause Penalty Abatement",
    PenaltyType.ESTIMATED_TAX: "Submit Form 843 for Estimated Tax Penalty Waiver",
}


def abatement_likelihood(
    amount: Decimal, first_time: bool, reasonable_cause: bool
) -> tuple[float, list[str]]:
    """Score how likely a penalty is to be abated.

    Base 0.3, +0.3 for first-time relief, +0.2 for reasonable cause, +0.1
    for penalties under $500; capped at 1.0.

    Returns:
        Tuple of (likelihood, reasons).
    """
    likelihood = BASE_LIKELIHOOD
    reasons: list[str] = []
    if first_time:
        likelihood += FIRST_TIME_BONUS
        reasons.append("No penalties in the prior three years")
    if reasonable_cause:
        likelihood += REASONABLE_CAUSE_BONUS
        reasons.append("Reasonable cause indicated")
    if amount < SMALL_PENALTY_AMOUNT:
        likelihood += SMALL_PENALTY_BONUS
        reasons.append("Small penalty amount")
    return min(round(likelihood, 4), 1.0), reasons


def is_first_time_abatement_eligible(
    tax_year: int, history: Mapping[int, TranscriptBase]
) -> bool:
    """True when at least one of the three prior years is present and none has penalties."""
    prior = [
        history[year]
        for year in range(tax_year - FIRST_TIME_LOOKBACK_YEARS, tax_year)
        if year in history
    ]
    return bool(prior) and not any(t.penalties for t in prior)


def find_associated_refund(
    undeliverable: TransactionCode, transactions: tuple[TransactionCode, ...]
) -> Decimal:
    """Amount of a refund issued within 30 days of a returned check, else 0."""
    for tx in transactions:
        if tx.code not in REFUND_ISSUED_CODES:
            continue
        if abs((tx.transaction_date - undeliverable.transaction_date).days) <= REFUND_MATCH_WINDOW_DAYS:
            return abs(tx.amount)
    return ZERO


def _penalty_severity(amount: Decimal) -> Severity:
    if amount > HIGH_PENALTY:
        return Severity.HIGH
    if amount > MEDIUM_PENALTY:
        return Severity.MEDIUM
    return Severity.LOW


class _EventContext:
    """Per-transcript inputs shared by the finding builders."""

    def __init__(
        self,
        account: TranscriptBase,
        first_time: bool,
        reasonable_cause: bool,
        filing_status: FilingStatus,
        as_of: date | None,
    ) -> None:
        self.account = account
        self.first_time = first_time
        self.reasonable_cause = reasonable_cause
        self.filing_status = filing_status
        self.as_of = as_of

    def statute(self, kind: StatuteKind) -> StatuteInformation:
        return compute_statute(self.account.tax_year, kind, self.as_of)


def _penalty_finding(tx: TransactionCode, ctx: _EventContext) -> Finding:
    amount = abs(tx.amount)
    info = lookup_code(tx.code)
    likelihood, reasons = abatement_likelihood(amount, ctx.first_time, ctx.reasonable_cause)
    return Finding(
        finding_type=FindingType.PENALTY_ABATEMENT,
        tax_year=ctx.account.tax_year,
        severity=_penalty_severity(amount),
        title=f"{info.description} - Abatement Opportunity",
        description=f"Penalty of ${amount:,.2f} may be eligible for abatement",
        potential_refund=amount if likelihood > REFUND_LIKELIHOOD else ZERO,
        action_required=PENALTY_ACTIONS.get(
            info.penalty_type, "Submit Form 843 for Penalty Abatement"
        ),
        confidence=(
            ConfidenceLevel.HIGH
            if likelihood > HIGH_CONFIDENCE_LIKELIHOOD
            else ConfidenceLevel.MEDIUM
        ),
        statute=ctx.statute(StatuteKind.ASSESSMENT),
        supporting_data={
            "code": tx.code,
            "amount": amount,
            "likelihood": likelihood,
            "reasons": reasons,
        },
    )


def _examination_finding(tx: TransactionCode, ctx: _EventContext) -> Finding:
    return Finding(
        finding_type=FindingType.AUDIT_RESPONSE,
        tax_year=ctx.account.tax_year,
        severity=Severity.HIGH,
        title="Return Under Examination",
        description=f"Transaction code {tx.code} shows the {ctx.account.tax_year} return is under review",
        action_required="Respond to the examination notice and assemble documentation for reported items",
        confidence=ConfidenceLevel.MEDIUM,
        statute=ctx.statute(StatuteKind.ASSESSMENT),
        supporting_data={"code": tx.code, "date": tx.transaction_date.isoformat()},
    )


def _undeliverable_refund_finding(tx: TransactionCode, ctx: _EventContext) -> Finding:
    refund = find_associated_refund(tx, ctx.account.transaction_codes)
    return Finding(
        finding_type=FindingType.UNDELIVERABLE_REFUND,
        tax_year=ctx.account.tax_year,
        severity=Severity.HIGH,
        title="Undeliverable Refund Check",
        description=(
            f"Refund check of ${refund:,.2f} was undeliverable and may still be claimable"
        ),
        potential_refund=refund,
        action_required="Contact IRS to update address and request refund reissuance",
        confidence=ConfidenceLevel.HIGH,
        statute=ctx.statute(StatuteKind.REFUND),
        supporting_data={"code": tx.code, "refund_amount": refund},
    )


def _refund_freeze_finding(tx: TransactionCode, ctx: _EventContext) -> Finding:
    refund = ZERO
    if isinstance(ctx.account, AccountTranscript):
        refund = ctx.account.return_data.refund_amount or ZERO
    return Finding(
        finding_type=FindingType.REFUND_FREEZE,
        tax_year=ctx.account.tax_year,
        severity=Severity.MEDIUM,
        title="Refund Freeze",
        description="The refund has been frozen pending additional review",
        potential_refund=abs(refund),
        action_required="Contact IRS to determine the reason for the freeze and provide requested information",
        confidence=ConfidenceLevel.MEDIUM,
        statute=ctx.statute(StatuteKind.REFUND),
        supporting_data={"code": tx.code},
    )


def estimate_substitute_return_benefit(
    account: TranscriptBase, filing_status: FilingStatus
) -> Decimal:
    """Standard deduction the substitute return omitted, priced at the marginal rate."""
    income = account.total_income
    if isinstance(account, AccountTranscript) and account.return_data.adjusted_gross_income is not None:
        income = account.return_data.adjusted_gross_income
    status_rules = get_rule_table(account.tax_year).for_status(filing_status)
    # Substitute returns are assessed without deductions.
    rate = marginal_rate(max(ZERO, income), status_rules.brackets)
    return (status_rules.standard_deduction * rate).quantize(CENT)


def _substitute_return_finding(tx: TransactionCode, ctx: _EventContext) -> Finding:
    benefit = estimate_substitute_return_benefit(ctx.account, ctx.filing_status)
    return Finding(
        finding_type=FindingType.SUBSTITUTE_RETURN,
        tax_year=ctx.account.tax_year,
        severity=Severity.HIGH,
        title="Substitute Return Filed by IRS",
        description=(
            "The IRS filed a substitute return, which may omit deductions and credits"
        ),
        potential_refund=benefit,
        action_required="File an original return to replace the substitute return",
        confidence=ConfidenceLevel.HIGH,
        statute=ctx.statute(StatuteKind.ASSESSMENT),
        supporting_data={"code": tx.code, "estimated_benefit": benefit},
    )


def _finding_for(tx: TransactionCode, ctx: _EventContext) -> Finding | None:
    category = lookup_code(tx.code).category
    if category is TransactionCategory.PENALTY:
        return _penalty_finding(tx, ctx)
    if category is TransactionCategory.EXAMINATION:
        return _examination_finding(tx, ctx)
    if tx.code == "740":
        return _undeliverable_refund_finding(tx, ctx)
    if tx.code == "570":
        return _refund_freeze_finding(tx, ctx)
    if tx.code == "560":
        return _substitute_return_finding(tx, ctx)
    return None


def analyze_events(
    account: TranscriptBase,
    history: Mapping[int, TranscriptBase] | None = None,
    reasonable_cause: bool = False,
    filing_status: FilingStatus | str | None = None,
    as_of: date | None = None,
) -> list[Finding]:
    """Analyze an account transcript's transaction codes.

    Args:
        account: Transcript carrying the transaction history.
        history: Transcripts of other years, keyed by year, used to decide
            first-time abatement.
        reasonable_cause: Client reports reasonable-cause circumstances.
        filing_status: Override for the substitute-return estimate.
        as_of: Date statute days are counted from.

    Returns:
        Findings in transaction order.
    """
    ctx = _EventContext(
        account=account,
        first_time=is_first_time_abatement_eligible(account.tax_year, history or {}),
        reasonable_cause=reasonable_cause,
        filing_status=FilingStatus.coerce(filing_status or account.taxpayer.filing_status),
        as_of=as_of,
    )

    findings: list[Finding] = []
    for tx in account.transaction_codes:
        if not lookup_code(tx.code).reversible:
            continue
        finding = _finding_for(tx, ctx)
        if finding is None:
            logger.debug("transaction_not_actionable", code=tx.code, tax_year=account.tax_year)
            continue
        findings.append(finding)

    logger.info("events_analyzed", tax_year=account.tax_year, findings=len(findings))
    return findings
