"""Pydantic models for analysis output.

- Finding / StatuteInformation: single-year issues from discrepancy and
  event analysis
- DetectedPattern / PatternAnalysisResult: multi-year recurring issues
- TaxAnomaly / RefundPrediction / RiskAssessment: heuristic risk layer
- PrioritizedRecommendation / ActionTimelineEntry / AnalysisSummary: the
  merged, deadline-aware action plan

Models are frozen once created. Probabilities, severities and scores are
floats on a 0-1 scale; dollar amounts are Decimal.
"""

from __future__ import annotations

import uuid
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from taxlens.tax.calculator import TaxCalculationResult
from taxlens.tax.rules import FilingStatus
from taxlens.transcripts.models import ParsedTranscript

ZERO = Decimal("0")


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True)


# =============================================================================
# Enums
# =============================================================================


class Severity(str, Enum):
    """Severity of a finding or pattern; also used for overall risk levels."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]


_SEVERITY_RANK = {Severity.LOW: 1, Severity.MEDIUM: 2, Severity.HIGH: 3}


class ConfidenceLevel(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class FindingType(str, Enum):
    INCOME_DISCREPANCY = "income_discrepancy"
    WITHHOLDING_DISCREPANCY = "withholding_discrepancy"
    PENALTY_ABATEMENT = "penalty_abatement"
    UNDELIVERABLE_REFUND = "undeliverable_refund"
    REFUND_FREEZE = "refund_freeze"
    SUBSTITUTE_RETURN = "substitute_return"
    AUDIT_RESPONSE = "audit_response"


class StatuteKind(str, Enum):
    """Statute of limitations that governs an action."""

    REFUND = "refund"
    ASSESSMENT = "assessment"
    COLLECTION = "collection"


class PatternType(str, Enum):
    RECURRING_UNDERREPORTING = "recurring_underreporting"
    BUSINESS_INCOME_PATTERN = "business_income_pattern"
    INVESTMENT_INCOME_PATTERN = "investment_income_pattern"
    PENALTY_PATTERN = "penalty_pattern"


class AnomalyType(str, Enum):
    INCOME_OUTLIER = "income_outlier"
    DEDUCTION_ANOMALY = "deduction_anomaly"
    TIMING_IRREGULARITY = "timing_irregularity"
    AMOUNT_INCONSISTENCY = "amount_inconsistency"


class PredictionType(str, Enum):
    REFUND_OPPORTUNITY = "refund_opportunity"
    PENALTY_ABATEMENT = "penalty_abatement"
    CREDIT_ELIGIBILITY = "credit_eligibility"


class RecommendationSource(str, Enum):
    """Where a prioritized recommendation came from."""

    FINDING = "finding"
    PATTERN = "pattern"
    RISK = "risk"
    PREDICTION = "prediction"


class Importance(str, Enum):
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


# =============================================================================
# Single-Year Findings
# =============================================================================


class StatuteInformation(_Frozen):
    """Statute-of-limitations deadline for one tax year.

    Attributes:
        tax_year: Year the statute runs from.
        kind: refund, assessment or collection.
        filing_deadline: April 15 of the following year.
        deadline: Date the statute expires.
        days_remaining: Days from the as-of date to the deadline; negative
            once expired.
    """

    tax_year: int
    kind: StatuteKind
    filing_deadline: date
    deadline: date
    days_remaining: int

    @property
    def expired(self) -> bool:
        return self.days_remaining < 0


class Finding(_Frozen):
    """A single detected issue for one tax year.

    Attributes:
        finding_id: Unique identifier.
        finding_type: Kind of issue.
        tax_year: Year the issue belongs to.
        severity: low, medium or high.
        title: Short heading.
        description: What was found, with amounts.
        potential_refund: Dollars recoverable if acted on; 0 when the
            issue is a liability rather than a refund.
        action_required: What the taxpayer should do.
        confidence: How certain the finding is.
        statute: Deadline computed from ``tax_year``.
        supporting_data: Figures the finding was derived from.
    """

    finding_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    finding_type: FindingType
    tax_year: int
    severity: Severity
    title: str
    description: str
    potential_refund: Decimal = ZERO
    action_required: str
    confidence: ConfidenceLevel
    statute: StatuteInformation
    supporting_data: dict[str, Any] = Field(default_factory=dict)


class AnalysisWarning(_Frozen):
    """Recoverable issue attached to the result; never changes amounts."""

    code: str
    message: str
    tax_year: int | None = None


# =============================================================================
# Multi-Year Patterns
# =============================================================================


class PatternEvidence(_Frozen):
    year: int
    description: str
    amount: Decimal
    source: str


class DetectedPattern(_Frozen):
    """A recurring issue across tax years."""

    pattern_type: PatternType
    description: str
    years_affected: tuple[int, ...]
    severity: Severity
    potential_recovery: Decimal
    evidence: tuple[PatternEvidence, ...] = ()
    recommendation: str


class PatternAnalysisResult(_Frozen):
    patterns: tuple[DetectedPattern, ...] = ()
    risk_level: Severity = Severity.LOW
    recommendations: tuple[str, ...] = ()
    total_potential_recovery: Decimal = ZERO
    confidence_score: float = 0.0


# =============================================================================
# Risk Layer
# =============================================================================


class TaxAnomaly(_Frozen):
    """Statistical or rule-based irregularity in one year's data."""

    anomaly_type: AnomalyType
    tax_year: int
    description: str
    severity: float = Field(ge=0, le=1)
    likelihood: float = Field(ge=0, le=1)
    potential_impact: Decimal = ZERO
    evidence: tuple[str, ...] = ()


class RefundPrediction(_Frozen):
    """Estimated opportunity with an explicit probability."""

    prediction_type: PredictionType
    tax_year: int | None = None
    description: str
    estimated_amount: Decimal
    probability: float = Field(ge=0, le=1)
    timeframe: str
    requirements: tuple[str, ...] = ()


class RiskFactor(_Frozen):
    factor: str
    tax_year: int
    impact: float
    description: str


class RiskAssessment(_Frozen):
    audit_risk: float = 0.0
    penalty_risk: float = 0.0
    compliance_score: float = 1.0
    factors: tuple[RiskFactor, ...] = ()


class RiskRecommendation(_Frozen):
    priority: Severity
    action: str
    reasoning: str
    expected_outcome: str
    timeline: str


class RiskAnalysisResult(_Frozen):
    anomalies: tuple[TaxAnomaly, ...] = ()
    predictions: tuple[RefundPrediction, ...] = ()
    risk_assessment: RiskAssessment = Field(default_factory=RiskAssessment)
    recommendations: tuple[RiskRecommendation, ...] = ()
    confidence_score: float = 0.0


# =============================================================================
# Action Plan
# =============================================================================


class PrioritizedRecommendation(_Frozen):
    """Findings, patterns and predictions on one 1-10 priority scale."""

    priority: int = Field(ge=1, le=10)
    action: str
    description: str
    potential_value: Decimal = ZERO
    timeframe: str
    requirements: tuple[str, ...] = ()
    risk_level: Severity
    source: RecommendationSource
    tax_year: int | None = None
    statute: StatuteInformation | None = None


class ActionTimelineEntry(_Frozen):
    deadline: date
    action: str
    importance: Importance
    description: str
    estimated_value: Decimal = ZERO
    tax_year: int | None = None


class ClientInfo(_Frozen):
    """Optional client context supplied with an analysis request.

    Attributes:
        state: Two-letter state code for state tax.
        filing_status: Overrides the status printed on the transcripts.
        dependents: Overrides the dependent count printed on the transcripts.
        reasonable_cause: Client reports circumstances (illness, disaster,
            records lost) that support reasonable-cause penalty relief.
    """

    state: str | None = None
    filing_status: FilingStatus | None = None
    dependents: int | None = Field(default=None, ge=0)
    reasonable_cause: bool = False

    @field_validator("filing_status", mode="before")
    @classmethod
    def coerce_status(cls, value: Any) -> FilingStatus | None:
        if value is None or value == "":
            return None
        return FilingStatus.coerce(value)

    @field_validator("state")
    @classmethod
    def normalize_state(cls, value: str | None) -> str | None:
        return value.strip().upper() if value else None


class YearAnalysis(_Frozen):
    """Everything computed for one tax year."""

    tax_year: int
    transcripts: tuple[ParsedTranscript, ...]
    tax_calculation: TaxCalculationResult
    findings: tuple[Finding, ...] = ()


class AnalysisSummary(_Frozen):
    """Headline figures for the whole run.

    ``total_potential_refund`` is multi-year pattern recovery; the
    refund-opportunity predictions restate it and are not added again.
    Refunds from single-year findings are reported separately in
    ``total_finding_refunds``.
    """

    total_potential_refund: Decimal = ZERO
    total_penalty_abatement: Decimal = ZERO
    total_finding_refunds: Decimal = ZERO
    highest_priority_issues: tuple[str, ...] = ()
    risk_level: Severity = Severity.LOW
    confidence_score: float = 0.0
    years_analyzed: tuple[int, ...] = ()
    processing_time_ms: float = 0.0


class ComprehensiveAnalysisResult(_Frozen):
    analysis_id: str
    years: tuple[YearAnalysis, ...]
    pattern_analysis: PatternAnalysisResult
    risk_analysis: RiskAnalysisResult
    recommendations: tuple[PrioritizedRecommendation, ...]
    timeline: tuple[ActionTimelineEntry, ...]
    summary: AnalysisSummary
    warnings: tuple[AnalysisWarning, ...] = ()

    def year(self, tax_year: int) -> YearAnalysis | None:
        return next((y for y in self.years if y.tax_year == tax_year), None)
