"""Cross-checks for a pair of transcripts covering the same taxpayer and year.

Identity problems that invalidate the comparison (different SSN, different
tax year) raise IdentityMismatchError. Everything else is reported as an
AnalysisWarning and the analysis continues.

Example:
    >>> result = validate_transcript_pair(wage_income, account)
    >>> [w.code for w in result.warnings]
    ['name_mismatch']
"""

from __future__ import annotations

import difflib
import re
from dataclasses import dataclass, field

from taxlens.analysis.models import AnalysisWarning
from taxlens.core.config import settings
from taxlens.core.logging import get_logger
from taxlens.transcripts.models import AccountTranscript, TranscriptBase

logger = get_logger(__name__)


class IdentityMismatchError(ValueError):
    """Raised when two transcripts cannot belong to the same return."""

    def __init__(self, field_name: str, detail: str) -> None:
        self.field_name = field_name
        self.detail = detail
        super().__init__(f"Identity mismatch on {field_name}: {detail}")


@dataclass
class ValidationResult:
    """Result of validating a transcript pair.

    Attributes:
        warnings: Recoverable issues to attach to the analysis result.
        name_similarity: Similarity of the two taxpayer names (0-1), or
            None when either name is missing.
    """

    warnings: list[AnalysisWarning] = field(default_factory=list)
    name_similarity: float | None = None


def name_similarity(first: str, second: str) -> float:
    """Similarity ratio of two names, ignoring case, spaces and punctuation."""
    a = re.sub(r"[^a-z]", "", first.lower())
    b = re.sub(r"[^a-z]", "", second.lower())
    if not a and not b:
        return 1.0
    return difflib.SequenceMatcher(None, a, b).ratio()


def validate_transcript_pair(
    income_source: TranscriptBase,
    account: TranscriptBase,
    name_threshold: float | None = None,
) -> ValidationResult:
    """Validate that two transcripts describe the same taxpayer and year.

    Args:
        income_source: Wage-and-income transcript.
        account: Account-of-record transcript.
        name_threshold: Minimum name similarity; defaults to settings.

    Returns:
        ValidationResult with warnings.

    Raises:
        IdentityMismatchError: If the SSNs or tax years differ.
    """
    threshold = name_threshold if name_threshold is not None else settings.name_similarity_threshold
    tax_year = account.tax_year
    result = ValidationResult()

    ssn_a = income_source.taxpayer.ssn_last_four
    ssn_b = account.taxpayer.ssn_last_four
    if ssn_a and ssn_b and ssn_a != ssn_b:
        raise IdentityMismatchError("ssn", f"***-**-{ssn_a} does not match ***-**-{ssn_b}")
    if not ssn_a or not ssn_b:
        result.warnings.append(
            AnalysisWarning(
                code="ssn_missing",
                message="SSN could not be compared because it is missing from a transcript",
                tax_year=tax_year,
            )
        )

    if income_source.tax_year != account.tax_year:
        raise IdentityMismatchError(
            "tax_year", f"{income_source.tax_year} does not match {account.tax_year}"
        )

    name_a = income_source.taxpayer.name
    name_b = account.taxpayer.name
    if name_a and name_b:
        result.name_similarity = name_similarity(name_a, name_b)
        if result.name_similarity < threshold:
            result.warnings.append(
                AnalysisWarning(
                    code="name_mismatch",
                    message=(
                        f"Taxpayer names differ between transcripts "
                        f"(similarity {result.name_similarity:.2f})"
                    ),
                    tax_year=tax_year,
                )
            )

    if isinstance(account, AccountTranscript) and account.return_data.adjusted_gross_income is None:
        result.warnings.append(
            AnalysisWarning(
                code="missing_agi",
                message="Adjusted gross income is missing from the account transcript",
                tax_year=tax_year,
            )
        )

    if not income_source.income_items:
        result.warnings.append(
            AnalysisWarning(
                code="no_income_items",
                message="No income items found in the wage and income transcript",
                tax_year=tax_year,
            )
        )

    if result.warnings:
        logger.info(
            "transcript_pair_warnings",
            tax_year=tax_year,
            codes=[w.code for w in result.warnings],
        )
    return result
