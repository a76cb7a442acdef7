"""Top-level analysis orchestration.

Pipeline for one run:
1. Extract text for every document (bounded concurrency), then parse.
   Parsing is the join point; everything after is pure computation.
2. Group transcripts by year (ascending). Per year:
   - validate the wage-and-income / account pair when both exist
   - discrepancy findings for the pair, event findings for the account
   - one combined transcript: income items reconciled against the filed
     return, plus the account's penalties, payments and transactions
   - federal and state tax on the year's income
3. Pattern analysis across the combined multi-year map.
4. Heuristic risk analysis using the pattern output.
5. Merge findings, patterns, risk recommendations and predictions into one
   priority-sorted list, build a deadline-sorted timeline and a summary.

Fatal problems (no documents, unknown transcript type, missing rule table,
identity mismatch) raise and no partial result is returned.
"""

from __future__ import annotations

import time
import uuid
from collections.abc import Sequence
from datetime import date, timedelta
from decimal import Decimal
from typing import TypeVar

from taxlens.analysis.discrepancy import analyze_discrepancies, reconcile_reporting
from taxlens.analysis.events import analyze_events
from taxlens.analysis.models import (
    ActionTimelineEntry,
    AnalysisSummary,
    AnalysisWarning,
    ClientInfo,
    ComprehensiveAnalysisResult,
    DetectedPattern,
    Finding,
    Importance,
    PatternAnalysisResult,
    PredictionType,
    PrioritizedRecommendation,
    RecommendationSource,
    RefundPrediction,
    RiskAnalysisResult,
    RiskRecommendation,
    Severity,
    StatuteKind,
    YearAnalysis,
)
from taxlens.analysis.patterns import analyze_patterns
from taxlens.analysis.risk import analyze_risk, map_audit_risk
from taxlens.analysis.statute import compute_statute
from taxlens.analysis.validation import validate_transcript_pair
from taxlens.core.config import settings
from taxlens.core.logging import analysis_context, analysis_id_ctx, get_logger, tax_year_context
from taxlens.tax.calculator import TaxCalculationResult, calculate_tax
from taxlens.tax.rules import FilingStatus
from taxlens.transcripts.extraction import TextExtractor, extract_documents
from taxlens.transcripts.models import (
    AccountTranscript,
    ParsedTranscript,
    TranscriptBase,
    WageIncomeTranscript,
)
from taxlens.transcripts.parser import parse_transcript

logger = get_logger(__name__)

T = TypeVar("T", bound=TranscriptBase)

ZERO = Decimal("0")

MAX_PRIORITY = 10
MIN_PRIORITY = 1
TIMELINE_PRIORITY = 7
CRITICAL_PRIORITY = 9
DEFAULT_DEADLINE_DAYS = 60
TOP_ISSUES = 5

RISK_RECOMMENDATION_PRIORITY: dict[Severity, int] = {
    Severity.HIGH: 9,
    Severity.MEDIUM: 6,
    Severity.LOW: 3,
}
PATTERN_REQUIREMENTS = ("Gather documentation", "Review tax law", "File appropriate forms")
PATTERN_TIMEFRAME = "60-90 days"


class AnalysisInputError(ValueError):
    """Raised for an empty or oversized document batch."""


# =============================================================================
# Priorities
# =============================================================================


def _cap(priority: int) -> int:
    return max(MIN_PRIORITY, min(priority, MAX_PRIORITY))


def finding_priority(finding: Finding) -> int:
    """5 base, +1/+2/+3 by severity, +1 over $1k or +2 over $5k, +1 under 180 statute days."""
    priority = 5 + finding.severity.rank
    if finding.potential_refund > Decimal("5000"):
        priority += 2
    elif finding.potential_refund > Decimal("1000"):
        priority += 1
    if finding.statute.days_remaining < 180:
        priority += 1
    return _cap(priority)


def pattern_priority(pattern: DetectedPattern) -> int:
    """5 base, +1/+2/+3 by severity, +1 over $5k or +2 over $10k, +1 at 3+ years."""
    priority = 5 + pattern.severity.rank
    if pattern.potential_recovery > Decimal("10000"):
        priority += 2
    elif pattern.potential_recovery > Decimal("5000"):
        priority += 1
    if len(pattern.years_affected) >= 3:
        priority += 1
    return _cap(priority)


def prediction_priority(prediction: RefundPrediction) -> int:
    """4 base, +1/+2/+3 by probability, +1 over $5k or +2 over $10k, +1 for abatement."""
    priority = 4
    if prediction.probability > 0.8:
        priority += 3
    elif prediction.probability > 0.6:
        priority += 2
    else:
        priority += 1
    if prediction.estimated_amount > Decimal("10000"):
        priority += 2
    elif prediction.estimated_amount > Decimal("5000"):
        priority += 1
    if prediction.prediction_type is PredictionType.PENALTY_ABATEMENT:
        priority += 1
    return _cap(priority)


def _prediction_risk(probability: float) -> Severity:
    if probability > 0.8:
        return Severity.LOW
    if probability > 0.6:
        return Severity.MEDIUM
    return Severity.HIGH


def prioritize_recommendations(
    findings: Sequence[Finding],
    pattern_analysis: PatternAnalysisResult,
    risk_analysis: RiskAnalysisResult,
    as_of: date | None = None,
) -> list[PrioritizedRecommendation]:
    """Merge every source into one list sorted by descending priority.

    The sort is stable, so equal priorities keep source order: findings,
    patterns, risk recommendations, then predictions.
    """
    recommendations: list[PrioritizedRecommendation] = []

    for finding in findings:
        recommendations.append(
            PrioritizedRecommendation(
                priority=finding_priority(finding),
                action=finding.action_required,
                description=f"{finding.title}: {finding.description}",
                potential_value=finding.potential_refund,
                timeframe="30 days" if finding.statute.days_remaining < 180 else "60-90 days",
                requirements=("Gather supporting documentation",),
                risk_level=finding.severity,
                source=RecommendationSource.FINDING,
                tax_year=finding.tax_year,
                statute=finding.statute,
            )
        )

    for pattern in pattern_analysis.patterns:
        recommendations.append(
            PrioritizedRecommendation(
                priority=pattern_priority(pattern),
                action=pattern.recommendation,
                description=pattern.description,
                potential_value=pattern.potential_recovery,
                timeframe=PATTERN_TIMEFRAME,
                requirements=PATTERN_REQUIREMENTS,
                risk_level=pattern.severity,
                source=RecommendationSource.PATTERN,
                tax_year=min(pattern.years_affected),
                statute=compute_statute(min(pattern.years_affected), StatuteKind.REFUND, as_of),
            )
        )

    for rec in risk_analysis.recommendations:
        recommendations.append(_risk_recommendation(rec))

    for prediction in risk_analysis.predictions:
        recommendations.append(
            PrioritizedRecommendation(
                priority=prediction_priority(prediction),
                action=f"Pursue {prediction.prediction_type.value.replace('_', ' ')}",
                description=prediction.description,
                potential_value=prediction.estimated_amount,
                timeframe=prediction.timeframe,
                requirements=prediction.requirements,
                risk_level=_prediction_risk(prediction.probability),
                source=RecommendationSource.PREDICTION,
                tax_year=prediction.tax_year,
                statute=(
                    compute_statute(prediction.tax_year, StatuteKind.REFUND, as_of)
                    if prediction.tax_year is not None
                    else None
                ),
            )
        )

    return sorted(recommendations, key=lambda r: r.priority, reverse=True)


def _risk_recommendation(rec: RiskRecommendation) -> PrioritizedRecommendation:
    return PrioritizedRecommendation(
        priority=RISK_RECOMMENDATION_PRIORITY[rec.priority],
        action=rec.action,
        description=rec.reasoning,
        timeframe=rec.timeline,
        requirements=(rec.expected_outcome,),
        risk_level=Severity.MEDIUM,
        source=RecommendationSource.RISK,
    )


# =============================================================================
# Timeline
# =============================================================================


def deadline_days(timeframe: str) -> int:
    """Days implied by a timeframe: first of 30/60/90 found in the text, else 60."""
    for days in (30, 60, 90):
        if str(days) in timeframe:
            return days
    return DEFAULT_DEADLINE_DAYS


def _statute_importance(days_remaining: int) -> Importance:
    if days_remaining < 90:
        return Importance.CRITICAL
    if days_remaining < 180:
        return Importance.HIGH
    return Importance.MEDIUM


def build_timeline(
    years: Sequence[int],
    recommendations: Sequence[PrioritizedRecommendation],
    as_of: date | None = None,
    lookahead_days: int | None = None,
) -> list[ActionTimelineEntry]:
    """Statute deadlines inside the look-ahead window plus high-priority actions.

    Returns:
        Entries sorted by ascending deadline.
    """
    as_of = as_of or date.today()
    lookahead = lookahead_days if lookahead_days is not None else settings.timeline_lookahead_days
    entries: list[ActionTimelineEntry] = []

    for year in years:
        statute = compute_statute(year, StatuteKind.REFUND, as_of)
        if not 0 < statute.days_remaining < lookahead:
            continue
        entries.append(
            ActionTimelineEntry(
                deadline=statute.deadline,
                action=f"File amended return for {year}",
                importance=_statute_importance(statute.days_remaining),
                description=f"Statute of limitations expires for {year} refund claims",
                tax_year=year,
            )
        )

    for rec in recommendations:
        if rec.priority < TIMELINE_PRIORITY:
            continue
        entries.append(
            ActionTimelineEntry(
                deadline=as_of + timedelta(days=deadline_days(rec.timeframe)),
                action=rec.action,
                importance=(
                    Importance.CRITICAL if rec.priority >= CRITICAL_PRIORITY else Importance.HIGH
                ),
                description=rec.description,
                estimated_value=rec.potential_value,
                tax_year=rec.tax_year,
            )
        )

    return sorted(entries, key=lambda e: e.deadline)


# =============================================================================
# Per-Year Assembly
# =============================================================================


def combine_year(
    wage_income: WageIncomeTranscript | None, account: AccountTranscript | None
) -> TranscriptBase:
    """One transcript per year for multi-year analysis.

    With both kinds present the wage-and-income items (reconciled against
    the filed return) are joined with the account's penalties, payments,
    deductions, credits and transactions.
    """
    if wage_income is None and account is None:
        raise AnalysisInputError("A tax year needs at least one transcript")
    if wage_income is None:
        return account
    if account is None:
        return wage_income

    reconciled = reconcile_reporting(wage_income, account)
    return reconciled.model_copy(
        update={
            "deductions": reconciled.deductions + account.deductions,
            "credits": reconciled.credits + account.credits,
            "payments": reconciled.payments + account.payments,
            "penalties": reconciled.penalties + account.penalties,
            "transaction_codes": reconciled.transaction_codes + account.transaction_codes,
        }
    )


def _first_of_kind(
    transcripts: Sequence[ParsedTranscript], kind: type[T], warnings: list[AnalysisWarning]
) -> T | None:
    matches: list[T] = [t for t in transcripts if isinstance(t, kind)]
    if len(matches) > 1:
        warnings.append(
            AnalysisWarning(
                code="duplicate_transcript",
                message=f"{len(matches)} {matches[0].kind.value} transcripts found; using the first",
                tax_year=matches[0].tax_year,
            )
        )
    return matches[0] if matches else None


def _year_income(combined: TranscriptBase, account: AccountTranscript | None) -> Decimal:
    income = combined.total_income
    if income == ZERO and account is not None and account.return_data.adjusted_gross_income:
        return account.return_data.adjusted_gross_income
    return income


def _resolve_status(
    client: ClientInfo, transcripts: Sequence[ParsedTranscript]
) -> FilingStatus:
    if client.filing_status is not None:
        return client.filing_status
    printed = next(
        (t.taxpayer.filing_status for t in transcripts if t.taxpayer.filing_status), None
    )
    return FilingStatus.coerce(printed)


# =============================================================================
# Entry Points
# =============================================================================


def analyze_parsed(
    transcripts: Sequence[ParsedTranscript],
    client_info: ClientInfo | None = None,
    as_of: date | None = None,
    analysis_id: str | None = None,
    started: float | None = None,
) -> ComprehensiveAnalysisResult:
    """Analyze already-parsed transcripts.

    Args:
        transcripts: Parsed transcripts, any order, any mix of years.
        client_info: Optional state, filing status, dependents and
            reasonable-cause context.
        as_of: Date statute days and timeline deadlines are counted from.
        analysis_id: Identifier for the run; generated when omitted.
        started: ``time.perf_counter()`` value the run started at, so
            processing time can include extraction.

    Returns:
        ComprehensiveAnalysisResult.

    Raises:
        AnalysisInputError: If no transcripts are given.
        IdentityMismatchError: If a same-year pair disagrees on SSN or year.
        RuleTableUnavailableError: If a year has no rule table.
    """
    started = started if started is not None else time.perf_counter()
    if not transcripts:
        raise AnalysisInputError("At least one transcript is required")

    client = client_info or ClientInfo()
    as_of = as_of or date.today()
    analysis_id = analysis_id or str(uuid.uuid4())
    warnings: list[AnalysisWarning] = []

    by_year: dict[int, list[ParsedTranscript]] = {}
    for transcript in transcripts:
        by_year.setdefault(transcript.tax_year, []).append(transcript)
        if transcript.tax_year_inferred:
            warnings.append(
                AnalysisWarning(
                    code="tax_year_inferred",
                    message=(
                        f"No tax year found on the {transcript.kind.value} transcript; "
                        f"assumed {transcript.tax_year}"
                    ),
                    tax_year=transcript.tax_year,
                )
            )

    pairs: dict[int, tuple[WageIncomeTranscript | None, AccountTranscript | None]] = {}
    combined: dict[int, TranscriptBase] = {}
    for year in sorted(by_year):
        wage = _first_of_kind(by_year[year], WageIncomeTranscript, warnings)
        account = _first_of_kind(by_year[year], AccountTranscript, warnings)
        pairs[year] = (wage, account)
        combined[year] = combine_year(wage, account)

    year_results: list[YearAnalysis] = []
    all_findings: list[Finding] = []
    for year, (wage, account) in pairs.items():
        with tax_year_context(year):
            status = _resolve_status(client, by_year[year])
            findings: list[Finding] = []
            if wage is not None and account is not None:
                warnings.extend(validate_transcript_pair(wage, account).warnings)
                findings.extend(
                    analyze_discrepancies(
                        wage, account, status, client.dependents, as_of=as_of
                    )
                )
            if account is not None:
                findings.extend(
                    analyze_events(
                        account,
                        history=combined,
                        reasonable_cause=client.reasonable_cause,
                        filing_status=status,
                        as_of=as_of,
                    )
                )
            calculation: TaxCalculationResult = calculate_tax(
                _year_income(combined[year], account), status, year, state_code=client.state
            )

        all_findings.extend(findings)
        year_results.append(
            YearAnalysis(
                tax_year=year,
                transcripts=tuple(by_year[year]),
                tax_calculation=calculation,
                findings=tuple(findings),
            )
        )

    pattern_analysis = analyze_patterns(combined)
    risk_analysis = analyze_risk(list(combined.values()), pattern_analysis, client.dependents)
    recommendations = prioritize_recommendations(
        all_findings, pattern_analysis, risk_analysis, as_of
    )
    timeline = build_timeline(sorted(combined), recommendations, as_of)

    summary = build_summary(
        all_findings,
        pattern_analysis,
        risk_analysis,
        years=sorted(combined),
        processing_time_ms=(time.perf_counter() - started) * 1000,
    )
    logger.info(
        "analysis_completed",
        analysis_id=analysis_id,
        years=list(summary.years_analyzed),
        recommendations=len(recommendations),
        risk_level=summary.risk_level.value,
        duration_ms=round(summary.processing_time_ms, 2),
    )
    return ComprehensiveAnalysisResult(
        analysis_id=analysis_id,
        years=tuple(year_results),
        pattern_analysis=pattern_analysis,
        risk_analysis=risk_analysis,
        recommendations=tuple(recommendations),
        timeline=tuple(timeline),
        summary=summary,
        warnings=tuple(warnings),
    )


def build_summary(
    findings: Sequence[Finding],
    pattern_analysis: PatternAnalysisResult,
    risk_analysis: RiskAnalysisResult,
    years: Sequence[int],
    processing_time_ms: float,
) -> AnalysisSummary:
    """Headline totals, top issues, overall risk and blended confidence.

    Refund-opportunity predictions restate pattern recoveries, so only the
    pattern total counts toward ``total_potential_refund``.
    """
    abatement = sum(
        (
            p.estimated_amount
            for p in risk_analysis.predictions
            if p.prediction_type is PredictionType.PENALTY_ABATEMENT
        ),
        ZERO,
    )
    issues = [
        *(p.description for p in pattern_analysis.patterns if p.severity is Severity.HIGH),
        *(a.description for a in risk_analysis.anomalies if a.severity > 0.7),
    ][:TOP_ISSUES]

    risk_level = max(
        pattern_analysis.risk_level,
        map_audit_risk(risk_analysis.risk_assessment.audit_risk),
        key=lambda level: level.rank,
    )
    return AnalysisSummary(
        total_potential_refund=pattern_analysis.total_potential_recovery,
        total_penalty_abatement=abatement,
        total_finding_refunds=sum((f.potential_refund for f in findings), ZERO),
        highest_priority_issues=tuple(issues),
        risk_level=risk_level,
        confidence_score=(pattern_analysis.confidence_score + risk_analysis.confidence_score) / 2,
        years_analyzed=tuple(sorted(years)),
        processing_time_ms=processing_time_ms,
    )


async def analyze_transcripts(
    documents: Sequence[bytes | str],
    client_info: ClientInfo | None = None,
    extractor: TextExtractor | None = None,
    as_of: date | None = None,
) -> ComprehensiveAnalysisResult:
    """Extract, parse and analyze a batch of transcript documents.

    Args:
        documents: Document buffers (extracted by ``extractor``) or text.
        client_info: Optional client context.
        extractor: Text-extraction collaborator; plain text when omitted.
        as_of: Date deadlines are counted from; today when omitted.

    Returns:
        ComprehensiveAnalysisResult.

    Raises:
        AnalysisInputError: If the batch is empty or too large.
        TranscriptTypeUnknownError: If a document is not a known transcript.
    """
    started = time.perf_counter()
    if not documents:
        raise AnalysisInputError("At least one transcript document is required")
    if len(documents) > settings.max_documents:
        raise AnalysisInputError(
            f"Too many documents: {len(documents)} (maximum {settings.max_documents})"
        )

    with analysis_context(analysis_id_ctx.get() or str(uuid.uuid4())) as analysis_id:
        logger.info("analysis_started", documents=len(documents))
        extracted = await extract_documents(documents, extractor)
        parsed = [parse_transcript(e.text, e.sections) for e in extracted]
        return analyze_parsed(
            parsed,
            client_info,
            as_of=as_of,
            analysis_id=analysis_id,
            started=started,
        )
