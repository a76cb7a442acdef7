"""Marginal bracket walking shared by federal and state calculators."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from decimal import Decimal

from taxlens.tax.rules import TaxBracket

ZERO = Decimal("0")


@dataclass(frozen=True)
class BracketSlice:
    """Tax owed on the slice of income that falls inside one bracket."""

    lower: Decimal
    upper: Decimal | None
    rate: Decimal
    taxable_amount: Decimal
    tax: Decimal


def calculate_progressive_tax(
    taxable_income: Decimal, brackets: Sequence[TaxBracket]
) -> tuple[Decimal, list[BracketSlice]]:
    """Walk ordered brackets and accumulate tax on each slice.

    Args:
        taxable_income: Income after deductions.
        brackets: Contiguous, ascending brackets ending unbounded.

    Returns:
        Tuple of total tax and the per-bracket breakdown. Income <= 0 yields
        zero tax and an empty breakdown.

    Example:
        >>> tax, slices = calculate_progressive_tax(Decimal("20000"), brackets)
        >>> [s.rate for s in slices]
        [Decimal('0.10'), Decimal('0.12')]
    """
    total = ZERO
    breakdown: list[BracketSlice] = []
    if taxable_income <= ZERO:
        return total, breakdown

    for bracket in brackets:
        if taxable_income <= bracket.lower:
            break
        top = taxable_income if bracket.upper is None else min(taxable_income, bracket.upper)
        portion = top - bracket.lower
        tax = portion * bracket.rate
        total += tax
        breakdown.append(
            BracketSlice(
                lower=bracket.lower,
                upper=bracket.upper,
                rate=bracket.rate,
                taxable_amount=portion,
                tax=tax,
            )
        )
    return total, breakdown


def marginal_rate(taxable_income: Decimal, brackets: Sequence[TaxBracket]) -> Decimal:
    """Rate of the bracket containing the last dollar of taxable income."""
    for bracket in brackets:
        if bracket.upper is None or taxable_income <= bracket.upper:
            return bracket.rate
    return brackets[-1].rate
