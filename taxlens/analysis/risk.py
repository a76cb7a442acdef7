"""Heuristic risk layer: anomalies, predictions and a risk assessment.

Every score here is an explicit weighted rule, not a trained model. Each
anomaly and prediction carries the evidence it was derived from so the
number can be audited.

Anomalies:
- Income outlier: |z| of a year's total income above the threshold
- Deduction anomaly: deductions above 25% of income
- Timing irregularity: estimated payments more than 30 days from the
  quarterly due dates
- Amount inconsistency: more than half of four or more items are exact
  multiples of $100
"""

from __future__ import annotations

import statistics
from collections.abc import Sequence
from datetime import date
from decimal import Decimal

from taxlens.analysis.models import (
    AnomalyType,
    DetectedPattern,
    PatternAnalysisResult,
    PatternType,
    PredictionType,
    RefundPrediction,
    RiskAnalysisResult,
    RiskAssessment,
    RiskFactor,
    RiskRecommendation,
    Severity,
    TaxAnomaly,
)
from taxlens.core.config import settings
from taxlens.core.logging import get_logger
from taxlens.transcripts.models import BUSINESS_FORMS, PaymentType, TranscriptBase

logger = get_logger(__name__)

ZERO = Decimal("0")

DEDUCTION_RATIO_THRESHOLD = 0.25
TIMING_DEVIATION_DAYS = 30
ROUND_AMOUNT_RATIO = 0.5
ROUND_AMOUNT_MIN_ITEMS = 4
ROUND_AMOUNT_UNIT = Decimal("100")
ASSUMED_DEDUCTION_RATE = Decimal("0.22")

# Audit risk factors: (threshold, weight)
HIGH_INCOME_FACTOR = (Decimal("200000"), 0.15)
BUSINESS_INCOME_FACTOR = (Decimal("25000"), 0.10)
LARGE_DEDUCTIONS_FACTOR = (0.30, 0.12)
PENALTY_RISK_PER_SEVERITY = 0.1

PENALTY_ABATEMENT_PROBABILITY = 0.85
EDUCATION_CREDIT_AMOUNT = Decimal("2500")
EDUCATION_CREDIT_PROBABILITY = 0.7
CHILD_CREDIT_PER_CHILD = Decimal("2000")
CHILD_CREDIT_CAP = Decimal("6000")
CHILD_CREDIT_PROBABILITY = 0.6
EDUCATION_PAYER_KEYWORDS = ("UNIVERSITY", "COLLEGE")

PATTERN_TIMEFRAMES: dict[PatternType, str] = {
    PatternType.PENALTY_PATTERN: "30-60 days",
    PatternType.RECURRING_UNDERREPORTING: "90-180 days",
}
DEFAULT_TIMEFRAME = "60-90 days"
BASE_REQUIREMENTS = ("Gather supporting documentation", "Review applicable tax law")
PATTERN_REQUIREMENTS: dict[PatternType, tuple[str, ...]] = {
    PatternType.RECURRING_UNDERREPORTING: (
        "File amended returns (Form 1040X)",
        "Pay any additional tax owed",
    ),
    PatternType.PENALTY_PATTERN: (
        "Submit penalty abatement request",
        "Demonstrate reasonable cause",
    ),
}


def quarterly_due_dates(tax_year: int) -> tuple[date, date, date, date]:
    return (
        date(tax_year, 4, 15),
        date(tax_year, 6, 15),
        date(tax_year, 9, 15),
        date(tax_year + 1, 1, 15),
    )


# =============================================================================
# Anomalies
# =============================================================================


def detect_income_outliers(
    transcripts: Sequence[TranscriptBase], z_threshold: float | None = None
) -> list[TaxAnomaly]:
    """Flag years whose total income is more than ``z_threshold`` deviations from the mean."""
    threshold = z_threshold if z_threshold is not None else settings.outlier_z_threshold
    if len(transcripts) < 2:
        return []

    incomes = [float(t.total_income) for t in transcripts]
    mean = statistics.fmean(incomes)
    std_dev = statistics.pstdev(incomes)
    if std_dev == 0:
        return []

    anomalies: list[TaxAnomaly] = []
    for transcript, income in zip(transcripts, incomes):
        z_score = abs(income - mean) / std_dev
        if z_score <= threshold:
            continue
        anomalies.append(
            TaxAnomaly(
                anomaly_type=AnomalyType.INCOME_OUTLIER,
                tax_year=transcript.tax_year,
                description=(
                    f"Income for {transcript.tax_year} significantly deviates from historical pattern"
                ),
                severity=min(z_score / 3, 1.0),
                likelihood=0.8,
                potential_impact=abs(transcript.total_income - Decimal(str(round(mean, 2)))),
                evidence=(
                    f"Income: ${income:,.2f}",
                    f"Historical average: ${mean:,.2f}",
                    f"Standard deviations from mean: {z_score:.2f}",
                ),
            )
        )
    return anomalies


def detect_deduction_anomalies(transcripts: Sequence[TranscriptBase]) -> list[TaxAnomaly]:
    anomalies: list[TaxAnomaly] = []
    for transcript in transcripts:
        income = transcript.total_income
        if income <= ZERO:
            continue
        deductions = transcript.total_deductions
        ratio = float(deductions / income)
        if ratio <= DEDUCTION_RATIO_THRESHOLD:
            continue
        anomalies.append(
            TaxAnomaly(
                anomaly_type=AnomalyType.DEDUCTION_ANOMALY,
                tax_year=transcript.tax_year,
                description=f"Unusually high deduction ratio for {transcript.tax_year}",
                severity=min(ratio / 0.5, 1.0),
                likelihood=0.7,
                potential_impact=deductions * ASSUMED_DEDUCTION_RATE,
                evidence=(
                    f"Total deductions: ${deductions:,.2f}",
                    f"Deduction ratio: {ratio * 100:.1f}%",
                    f"Income: ${income:,.2f}",
                ),
            )
        )
    return anomalies


def detect_timing_irregularities(transcripts: Sequence[TranscriptBase]) -> list[TaxAnomaly]:
    """Compare the n-th estimated payment (by date) with the n-th quarterly due date."""
    anomalies: list[TaxAnomaly] = []
    for transcript in transcripts:
        dated = sorted(
            p.payment_date
            for p in transcript.payments_of_type(PaymentType.ESTIMATED)
            if p.payment_date is not None
        )
        for paid, due in zip(dated, quarterly_due_dates(transcript.tax_year)):
            days = abs((paid - due).days)
            if days <= TIMING_DEVIATION_DAYS:
                continue
            anomalies.append(
                TaxAnomaly(
                    anomaly_type=AnomalyType.TIMING_IRREGULARITY,
                    tax_year=transcript.tax_year,
                    description=(
                        f"Estimated tax payment timing irregularity for {transcript.tax_year}"
                    ),
                    severity=min(days / 90, 1.0),
                    likelihood=0.6,
                    evidence=(
                        f"Payment date: {paid.isoformat()}",
                        f"Expected date: {due.isoformat()}",
                        f"Days difference: {days}",
                    ),
                )
            )
    return anomalies


def detect_amount_inconsistencies(transcripts: Sequence[TranscriptBase]) -> list[TaxAnomaly]:
    anomalies: list[TaxAnomaly] = []
    for transcript in transcripts:
        items = transcript.income_items
        if len(items) < ROUND_AMOUNT_MIN_ITEMS:
            continue
        round_count = sum(1 for i in items if i.amount % ROUND_AMOUNT_UNIT == 0)
        ratio = round_count / len(items)
        if ratio <= ROUND_AMOUNT_RATIO:
            continue
        anomalies.append(
            TaxAnomaly(
                anomaly_type=AnomalyType.AMOUNT_INCONSISTENCY,
                tax_year=transcript.tax_year,
                description=(
                    f"Unusually high proportion of round amounts for {transcript.tax_year}"
                ),
                severity=ratio,
                likelihood=0.5,
                evidence=(
                    f"Round amounts: {round_count} of {len(items)}",
                    f"Round ratio: {ratio * 100:.1f}%",
                    "May indicate estimated or fabricated amounts",
                ),
            )
        )
    return anomalies


def detect_anomalies(
    transcripts: Sequence[TranscriptBase], z_threshold: float | None = None
) -> list[TaxAnomaly]:
    return [
        *detect_income_outliers(transcripts, z_threshold),
        *detect_deduction_anomalies(transcripts),
        *detect_timing_irregularities(transcripts),
        *detect_amount_inconsistencies(transcripts),
    ]


# =============================================================================
# Predictions
# =============================================================================


def pattern_probability(pattern: DetectedPattern) -> float:
    """Severity weight (0.9/0.7/0.5) scaled by evidence (/5) and years (/3)."""
    severity_weight = {Severity.HIGH: 0.9, Severity.MEDIUM: 0.7, Severity.LOW: 0.5}[
        pattern.severity
    ]
    evidence_weight = min(len(pattern.evidence) / 5, 1.0)
    year_weight = min(len(pattern.years_affected) / 3, 1.0)
    return severity_weight * evidence_weight * year_weight


def predict_refund_opportunities(
    pattern_analysis: PatternAnalysisResult,
) -> list[RefundPrediction]:
    predictions: list[RefundPrediction] = []
    for pattern in pattern_analysis.patterns:
        if pattern.potential_recovery <= ZERO:
            continue
        predictions.append(
            RefundPrediction(
                prediction_type=PredictionType.REFUND_OPPORTUNITY,
                description=(
                    f"Potential refund from {pattern.pattern_type.value.replace('_', ' ')}"
                ),
                estimated_amount=pattern.potential_recovery,
                probability=pattern_probability(pattern),
                timeframe=PATTERN_TIMEFRAMES.get(pattern.pattern_type, DEFAULT_TIMEFRAME),
                requirements=BASE_REQUIREMENTS + PATTERN_REQUIREMENTS.get(pattern.pattern_type, ()),
            )
        )
    return predictions


def predict_penalty_abatement(transcripts: Sequence[TranscriptBase]) -> list[RefundPrediction]:
    predictions: list[RefundPrediction] = []
    for transcript in transcripts:
        eligible = [p for p in transcript.penalties if p.abatement_eligible]
        if not eligible:
            continue
        predictions.append(
            RefundPrediction(
                prediction_type=PredictionType.PENALTY_ABATEMENT,
                tax_year=transcript.tax_year,
                description=f"First-time penalty abatement for {transcript.tax_year}",
                estimated_amount=sum((p.amount for p in eligible), ZERO),
                probability=PENALTY_ABATEMENT_PROBABILITY,
                timeframe="60-90 days",
                requirements=(
                    "No penalties in prior 3 years",
                    "Current on all filing and payment requirements",
                    "Submit written request with explanation",
                ),
            )
        )
    return predictions


def predict_credit_eligibility(
    transcripts: Sequence[TranscriptBase], dependents: int | None = None
) -> list[RefundPrediction]:
    predictions: list[RefundPrediction] = []
    for transcript in transcripts:
        if any(
            keyword in item.payer.upper()
            for item in transcript.income_items
            for keyword in EDUCATION_PAYER_KEYWORDS
        ):
            predictions.append(
                RefundPrediction(
                    prediction_type=PredictionType.CREDIT_ELIGIBILITY,
                    tax_year=transcript.tax_year,
                    description=f"Potential education credit for {transcript.tax_year}",
                    estimated_amount=EDUCATION_CREDIT_AMOUNT,
                    probability=EDUCATION_CREDIT_PROBABILITY,
                    timeframe="Next filing season",
                    requirements=(
                        "Qualified education expenses",
                        "Income limits apply",
                        "Form 1098-T required",
                    ),
                )
            )

        children = dependents if dependents is not None else transcript.taxpayer.dependents
        if children > 0:
            predictions.append(
                RefundPrediction(
                    prediction_type=PredictionType.CREDIT_ELIGIBILITY,
                    tax_year=transcript.tax_year,
                    description=(
                        f"Potential child tax credit optimization for {transcript.tax_year}"
                    ),
                    estimated_amount=min(CHILD_CREDIT_PER_CHILD * children, CHILD_CREDIT_CAP),
                    probability=CHILD_CREDIT_PROBABILITY,
                    timeframe="Current year",
                    requirements=(
                        "Qualifying children under 17",
                        "Income phase-out limits apply",
                        "Proper documentation required",
                    ),
                )
            )
    return predictions


# =============================================================================
# Assessment
# =============================================================================


def assess_risk(
    transcripts: Sequence[TranscriptBase], anomalies: Sequence[TaxAnomaly]
) -> RiskAssessment:
    """Weighted audit risk, anomaly-driven penalty risk and a compliance score.

    Audit risk adds 0.15 per year with income above $200k, 0.10 per year
    with business income above $25k and 0.12 per year with deductions above
    30% of income. Penalty risk adds 0.1 x severity per anomaly. Both are
    capped at 1; compliance is 1 - (audit + penalty), floored at 0.
    """
    audit_risk = 0.0
    factors: list[RiskFactor] = []

    for transcript in transcripts:
        year = transcript.tax_year
        income = transcript.total_income

        threshold, weight = HIGH_INCOME_FACTOR
        if income > threshold:
            audit_risk += weight
            factors.append(
                RiskFactor(
                    factor="High Income",
                    tax_year=year,
                    impact=weight,
                    description=f"Income of ${income:,.2f} increases audit risk",
                )
            )

        business = sum(
            (i.amount for i in transcript.income_items if i.form_type in BUSINESS_FORMS), ZERO
        )
        threshold, weight = BUSINESS_INCOME_FACTOR
        if business > threshold:
            audit_risk += weight
            factors.append(
                RiskFactor(
                    factor="Business Income",
                    tax_year=year,
                    impact=weight,
                    description=f"Business income of ${business:,.2f} increases audit risk",
                )
            )

        ratio_threshold, weight = LARGE_DEDUCTIONS_FACTOR
        if income > ZERO:
            ratio = float(transcript.total_deductions / income)
            if ratio > ratio_threshold:
                audit_risk += weight
                factors.append(
                    RiskFactor(
                        factor="Large Deductions",
                        tax_year=year,
                        impact=weight,
                        description=f"Deduction ratio of {ratio * 100:.1f}% increases audit risk",
                    )
                )

    penalty_risk = sum(a.severity * PENALTY_RISK_PER_SEVERITY for a in anomalies)
    return RiskAssessment(
        audit_risk=min(audit_risk, 1.0),
        penalty_risk=min(penalty_risk, 1.0),
        compliance_score=max(0.0, 1.0 - (audit_risk + penalty_risk)),
        factors=tuple(factors),
    )


def generate_risk_recommendations(
    anomalies: Sequence[TaxAnomaly],
    predictions: Sequence[RefundPrediction],
    assessment: RiskAssessment,
) -> list[RiskRecommendation]:
    recommendations: list[RiskRecommendation] = []

    if assessment.audit_risk > 0.7:
        recommendations.append(
            RiskRecommendation(
                priority=Severity.HIGH,
                action="Implement comprehensive documentation and record-keeping procedures",
                reasoning="High audit risk detected based on income and deduction patterns",
                expected_outcome="Reduced audit risk and improved compliance",
                timeline="Immediate",
            )
        )

    high_value = [p for p in predictions if p.estimated_amount > Decimal("5000")]
    if high_value:
        total = sum((p.estimated_amount for p in high_value), ZERO)
        recommendations.append(
            RiskRecommendation(
                priority=Severity.HIGH,
                action="Pursue high-value refund opportunities immediately",
                reasoning=f"{len(high_value)} opportunities with total potential of ${total:,.2f}",
                expected_outcome="Significant tax savings and refunds",
                timeline="30-90 days",
            )
        )

    severe = [a for a in anomalies if a.severity > 0.7]
    if severe:
        recommendations.append(
            RiskRecommendation(
                priority=Severity.MEDIUM,
                action="Address identified anomalies and inconsistencies",
                reasoning=f"{len(severe)} high-severity anomalies detected",
                expected_outcome="Improved data quality and reduced compliance risk",
                timeline="60 days",
            )
        )

    if assessment.compliance_score < 0.8:
        recommendations.append(
            RiskRecommendation(
                priority=Severity.MEDIUM,
                action="Implement proactive tax planning strategies",
                reasoning="Compliance score indicates room for improvement",
                expected_outcome="Better tax outcomes and reduced future issues",
                timeline="Next tax year",
            )
        )

    return recommendations


def calculate_risk_confidence(
    years_of_data: int,
    anomalies: Sequence[TaxAnomaly],
    predictions: Sequence[RefundPrediction],
) -> float:
    """0.5 base, +0.2 x data quantity, +0.2 x evidence, +0.1 x mean prediction probability."""
    confidence = 0.5
    confidence += min(years_of_data / 3, 1.0) * 0.2
    evidence = sum(len(a.evidence) for a in anomalies)
    confidence += min(evidence / 20, 1.0) * 0.2
    if predictions:
        confidence += statistics.fmean(p.probability for p in predictions) * 0.1
    return min(confidence, 1.0)


def map_audit_risk(audit_risk: float) -> Severity:
    if audit_risk > 0.7:
        return Severity.HIGH
    if audit_risk > 0.4:
        return Severity.MEDIUM
    return Severity.LOW


def analyze_risk(
    transcripts: Sequence[TranscriptBase],
    pattern_analysis: PatternAnalysisResult,
    dependents: int | None = None,
    z_threshold: float | None = None,
) -> RiskAnalysisResult:
    """Run the heuristic risk layer.

    Args:
        transcripts: One (combined) transcript per year, ascending by year.
        pattern_analysis: Output of the pattern analyzer, used for
            refund-opportunity predictions.
        dependents: Client-supplied dependent count override.
        z_threshold: Income outlier threshold; defaults to settings.

    Returns:
        RiskAnalysisResult.
    """
    anomalies = detect_anomalies(transcripts, z_threshold)
    predictions = [
        *predict_refund_opportunities(pattern_analysis),
        *predict_penalty_abatement(transcripts),
        *predict_credit_eligibility(transcripts, dependents),
    ]
    assessment = assess_risk(transcripts, anomalies)
    result = RiskAnalysisResult(
        anomalies=tuple(anomalies),
        predictions=tuple(predictions),
        risk_assessment=assessment,
        recommendations=tuple(generate_risk_recommendations(anomalies, predictions, assessment)),
        confidence_score=calculate_risk_confidence(len(transcripts), anomalies, predictions),
    )
    logger.info(
        "risk_analyzed",
        anomalies=len(anomalies),
        predictions=len(predictions),
        audit_risk=assessment.audit_risk,
    )
    return result
