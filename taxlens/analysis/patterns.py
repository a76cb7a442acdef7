"""Multi-year pattern detection over a year -> transcript map.

Patterns:
- Recurring underreporting: unreported income items in at least two years
- Business income: unreported 1099-NEC / Schedule C income across years
  with business activity
- Investment income: unreported interest and dividends across years with
  investment income
- Penalty pattern: abatement-eligible penalties in any year

Recovery estimates use fixed assumed rates rather than a full recompute,
since the patterns span years with different rule tables.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from decimal import Decimal

from taxlens.analysis.models import (
    DetectedPattern,
    PatternAnalysisResult,
    PatternEvidence,
    PatternType,
    Severity,
)
from taxlens.core.logging import get_logger
from taxlens.transcripts.models import (
    BUSINESS_FORMS,
    INVESTMENT_FORMS,
    IncomeFormType,
    IncomeItem,
    TranscriptBase,
)

logger = get_logger(__name__)

ZERO = Decimal("0")

ASSUMED_MARGINAL_RATE = Decimal("0.22")
ASSUMED_SE_TAX_RATE = Decimal("0.1413")
ASSUMED_CAPITAL_GAINS_RATE = Decimal("0.15")

MIN_PATTERN_YEARS = 2
HIGH_SEVERITY_YEARS = 3
HIGH_BUSINESS_ISSUES = Decimal("50000")
MEDIUM_INVESTMENT_ISSUES = Decimal("10000")
HIGH_PENALTY_TOTAL = Decimal("5000")

FULL_DATA_YEARS = 3


def estimate_underreporting_recovery(amount: Decimal) -> Decimal:
    return amount * ASSUMED_MARGINAL_RATE


def estimate_business_recovery(amount: Decimal) -> Decimal:
    return amount * (ASSUMED_MARGINAL_RATE + ASSUMED_SE_TAX_RATE)


def estimate_investment_recovery(amount: Decimal) -> Decimal:
    return amount * ASSUMED_CAPITAL_GAINS_RATE


def _form_label(item: IncomeItem) -> str:
    return item.form_type.value


def detect_underreporting(transcripts: Mapping[int, TranscriptBase]) -> DetectedPattern | None:
    """Unreported items in two or more years; high at three or more."""
    years: list[int] = []
    evidence: list[PatternEvidence] = []
    total = ZERO

    for year in sorted(transcripts):
        unreported = transcripts[year].unreported_items()
        if not unreported:
            continue
        years.append(year)
        for item in unreported:
            total += item.unreported_value
            evidence.append(
                PatternEvidence(
                    year=year,
                    description=f"Unreported {_form_label(item)} from {item.payer}",
                    amount=item.unreported_value,
                    source="transcript_analysis",
                )
            )

    if len(years) < MIN_PATTERN_YEARS:
        return None

    return DetectedPattern(
        pattern_type=PatternType.RECURRING_UNDERREPORTING,
        description=f"Consistent pattern of unreported income across {len(years)} years",
        years_affected=tuple(years),
        severity=Severity.HIGH if len(years) >= HIGH_SEVERITY_YEARS else Severity.MEDIUM,
        potential_recovery=estimate_underreporting_recovery(total),
        evidence=tuple(evidence),
        recommendation=(
            "File amended returns strategically, starting with years closest to statute expiration"
        ),
    )


def _detect_form_group_issues(
    transcripts: Mapping[int, TranscriptBase],
    forms: frozenset[IncomeFormType],
    label: str,
    source: str,
) -> tuple[list[int], list[PatternEvidence], Decimal]:
    """Years with any item from ``forms`` plus evidence for the unreported ones."""
    years: list[int] = []
    evidence: list[PatternEvidence] = []
    total = ZERO
    for year in sorted(transcripts):
        items = [i for i in transcripts[year].income_items if i.form_type in forms]
        if not items:
            continue
        years.append(year)
        for item in items:
            if item.reported:
                continue
            total += item.unreported_value
            evidence.append(
                PatternEvidence(
                    year=year,
                    description=f"Unreported {label} income: {_form_label(item)}",
                    amount=item.unreported_value,
                    source=source,
                )
            )
    return years, evidence, total


def detect_business_income_issues(
    transcripts: Mapping[int, TranscriptBase],
) -> DetectedPattern | None:
    """Unreported business income across two or more years with business activity."""
    years, evidence, total = _detect_form_group_issues(
        transcripts, BUSINESS_FORMS, "business", "business_analysis"
    )
    if len(years) < MIN_PATTERN_YEARS or total <= ZERO:
        return None
    return DetectedPattern(
        pattern_type=PatternType.BUSINESS_INCOME_PATTERN,
        description=f"Business income reporting issues across {len(years)} years",
        years_affected=tuple(years),
        severity=Severity.HIGH if total > HIGH_BUSINESS_ISSUES else Severity.MEDIUM,
        potential_recovery=estimate_business_recovery(total),
        evidence=tuple(evidence),
        recommendation=(
            "Review business income reporting and consider amended returns with proper "
            "business deductions"
        ),
    )


def detect_investment_income_issues(
    transcripts: Mapping[int, TranscriptBase],
) -> DetectedPattern | None:
    """Unreported interest and dividends; severity never exceeds medium."""
    years, evidence, total = _detect_form_group_issues(
        transcripts, INVESTMENT_FORMS, "investment", "investment_analysis"
    )
    if len(years) < MIN_PATTERN_YEARS or total <= ZERO:
        return None
    return DetectedPattern(
        pattern_type=PatternType.INVESTMENT_INCOME_PATTERN,
        description=f"Investment income reporting issues across {len(years)} years",
        years_affected=tuple(years),
        severity=Severity.MEDIUM if total > MEDIUM_INVESTMENT_ISSUES else Severity.LOW,
        potential_recovery=estimate_investment_recovery(total),
        evidence=tuple(evidence),
        recommendation=(
            "Review investment income reporting and consider tax-loss harvesting opportunities"
        ),
    )


def detect_recurring_penalties(
    transcripts: Mapping[int, TranscriptBase],
) -> DetectedPattern | None:
    """Abatement-eligible penalties in any year; high when the total exceeds $5,000."""
    years: list[int] = []
    evidence: list[PatternEvidence] = []
    total = ZERO

    for year in sorted(transcripts):
        eligible = [p for p in transcripts[year].penalties if p.abatement_eligible]
        if not eligible:
            continue
        years.append(year)
        for penalty in eligible:
            total += penalty.amount
            evidence.append(
                PatternEvidence(
                    year=year,
                    description=f"{penalty.penalty_type.value} penalty eligible for abatement",
                    amount=penalty.amount,
                    source="penalty_analysis",
                )
            )

    if not years:
        return None

    return DetectedPattern(
        pattern_type=PatternType.PENALTY_PATTERN,
        description=f"Penalties eligible for abatement across {len(years)} years",
        years_affected=tuple(years),
        severity=Severity.HIGH if total > HIGH_PENALTY_TOTAL else Severity.MEDIUM,
        potential_recovery=total,
        evidence=tuple(evidence),
        recommendation=(
            "Request penalty abatement for eligible penalties, especially first-time occurrences"
        ),
    )


PATTERN_DETECTORS: tuple[Callable[[Mapping[int, TranscriptBase]], DetectedPattern | None], ...] = (
    detect_underreporting,
    detect_business_income_issues,
    detect_investment_income_issues,
    detect_recurring_penalties,
)


def calculate_risk_level(patterns: tuple[DetectedPattern, ...]) -> Severity:
    """High with two high patterns; medium with one high or three medium."""
    high = sum(1 for p in patterns if p.severity is Severity.HIGH)
    medium = sum(1 for p in patterns if p.severity is Severity.MEDIUM)
    if high >= 2:
        return Severity.HIGH
    if high >= 1 or medium >= 3:
        return Severity.MEDIUM
    return Severity.LOW


def calculate_confidence_score(
    patterns: tuple[DetectedPattern, ...], years_of_data: int
) -> float:
    """Blend evidence count, year span and severity, scaled by data quantity.

    Each pattern contributes min(evidence * years * severity_weight / 10, 1).
    Full weight needs three years of data and ten pieces of evidence.
    """
    weighted = 0.0
    total_evidence = 0
    for pattern in patterns:
        evidence_count = len(pattern.evidence)
        score = evidence_count * len(pattern.years_affected) * pattern.severity.rank / 10
        weighted += min(score, 1.0)
        total_evidence += evidence_count

    data_quality = min(years_of_data / FULL_DATA_YEARS, 1.0)
    evidence_quality = min(total_evidence / 10, 1.0)
    return min(weighted * data_quality * evidence_quality, 1.0)


def _general_recommendations(patterns: tuple[DetectedPattern, ...]) -> tuple[str, ...]:
    recommendations = list(dict.fromkeys(p.recommendation for p in patterns))
    types = {p.pattern_type for p in patterns}
    if PatternType.RECURRING_UNDERREPORTING in types:
        recommendations.append(
            "Implement better record-keeping procedures to prevent future underreporting"
        )
    if PatternType.PENALTY_PATTERN in types:
        recommendations.append(
            "Consider setting up estimated tax payments to avoid future penalties"
        )
    return tuple(dict.fromkeys(recommendations))


def analyze_patterns(transcripts: Mapping[int, TranscriptBase]) -> PatternAnalysisResult:
    """Run every pattern detector over a multi-year transcript map.

    Args:
        transcripts: One (combined) transcript per tax year.

    Returns:
        PatternAnalysisResult with patterns, risk level and confidence.
    """
    patterns = tuple(
        pattern
        for detector in PATTERN_DETECTORS
        if (pattern := detector(transcripts)) is not None
    )
    result = PatternAnalysisResult(
        patterns=patterns,
        risk_level=calculate_risk_level(patterns),
        recommendations=_general_recommendations(patterns),
        total_potential_recovery=sum((p.potential_recovery for p in patterns), ZERO),
        confidence_score=calculate_confidence_score(patterns, len(transcripts)),
    )
    logger.info(
        "patterns_analyzed",
        years=sorted(transcripts),
        patterns=[p.pattern_type.value for p in patterns],
        risk_level=result.risk_level.value,
    )
    return result
