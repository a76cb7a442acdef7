"""Statute-of-limitations deadlines.

Every deadline runs from the return's filing deadline, April 15 of the year
after the tax year: three years for refund claims and assessments, ten for
collection.
"""

from __future__ import annotations

from datetime import date

from taxlens.analysis.models import StatuteInformation, StatuteKind

FILING_DEADLINE_MONTH = 4
FILING_DEADLINE_DAY = 15

STATUTE_YEARS: dict[StatuteKind, int] = {
    StatuteKind.REFUND: 3,
    StatuteKind.ASSESSMENT: 3,
    StatuteKind.COLLECTION: 10,
}


def filing_deadline(tax_year: int) -> date:
    return date(tax_year + 1, FILING_DEADLINE_MONTH, FILING_DEADLINE_DAY)


def compute_statute(
    tax_year: int, kind: StatuteKind, as_of: date | None = None
) -> StatuteInformation:
    """Compute the statute deadline for a tax year.

    Args:
        tax_year: Tax year the statute runs from.
        kind: refund, assessment or collection.
        as_of: Date days remaining are counted from; today when omitted.

    Returns:
        StatuteInformation. For a 2020 refund claim the deadline is
        April 15, 2024.
    """
    as_of = as_of or date.today()
    filed = filing_deadline(tax_year)
    deadline = filed.replace(year=filed.year + STATUTE_YEARS[kind])
    return StatuteInformation(
        tax_year=tax_year,
        kind=kind,
        filing_deadline=filed,
        deadline=deadline,
        days_remaining=(deadline - as_of).days,
    )
