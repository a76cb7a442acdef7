"""Tests for the transaction-code reference table."""

from taxlens.transcripts.codes import is_penalty_code, lookup_code
from taxlens.transcripts.models import PaymentType, PenaltyType, TransactionCategory


class TestLookupCode:
    """Tests for lookup_code."""

    def test_known_codes(self) -> None:
        """Modeled codes carry their category and payment type."""
        assert lookup_code("806").payment_type is PaymentType.WITHHOLDING
        assert lookup_code("430").payment_type is PaymentType.ESTIMATED
        assert lookup_code("846").category is TransactionCategory.REFUND
        assert lookup_code("826").category is TransactionCategory.CREDIT

    def test_late_filing_penalty_is_reversible(self) -> None:
        """TC 160 is an abatable late-filing penalty."""
        info = lookup_code("160")
        assert info.category is TransactionCategory.PENALTY
        assert info.penalty_type is PenaltyType.LATE_FILING
        assert info.reversible

    def test_unlisted_code_in_penalty_range(self) -> None:
        """Unlisted 16x codes are generic penalties."""
        info = lookup_code("164")
        assert info.penalty_type is PenaltyType.OTHER
        assert "164" in info.description

    def test_unknown_code(self) -> None:
        """Anything else falls back to a generic entry."""
        info = lookup_code("999")
        assert info.category is TransactionCategory.OTHER
        assert info.penalty_type is None
        assert not info.reversible

    def test_is_penalty_code(self) -> None:
        """Only codes with a penalty type count."""
        assert is_penalty_code("160")
        assert is_penalty_code("276")
        assert not is_penalty_code("806")
        assert not is_penalty_code("ABC")

    def test_lien_is_not_actionable(self) -> None:
        """A lien is a collection status, not an event the taxpayer can reverse."""
        info = lookup_code("582")
        assert info.category is TransactionCategory.COLLECTION
        assert not info.reversible
