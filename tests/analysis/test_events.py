"""Tests for transaction-code event analysis."""

from datetime import date
from decimal import Decimal

import pytest

from taxlens.analysis.events import (
    abatement_likelihood,
    analyze_events,
    estimate_substitute_return_benefit,
    find_associated_refund,
    is_first_time_abatement_eligible,
)
from taxlens.analysis.models import ConfidenceLevel, FindingType, Severity, StatuteKind
from taxlens.tax.rules import FilingStatus
from taxlens.transcripts.codes import TRANSACTION_CODES
from taxlens.transcripts.models import AccountTranscript, TransactionCategory, TransactionCode
from taxlens.transcripts.parser import parse_transcript


def _tx(code: str, posted: date, amount: str, category: TransactionCategory) -> TransactionCode:
    return TransactionCode(
        code=code,
        transaction_date=posted,
        amount=Decimal(amount),
        description="",
        category=category,
    )


class TestAbatementLikelihood:
    """Tests for the abatement heuristic."""

    def test_small_penalty_without_history(self) -> None:
        """Only the small-amount bonus applies."""
        likelihood, reasons = abatement_likelihood(Decimal("250"), False, False)
        assert likelihood == 0.4
        assert reasons == ["Small penalty amount"]

    def test_all_bonuses(self) -> None:
        """First-time, reasonable cause and small amount add up."""
        likelihood, _ = abatement_likelihood(Decimal("250"), True, True)
        assert likelihood == 0.9

    def test_large_penalty(self) -> None:
        """Penalties of $500 or more get no small-amount bonus."""
        likelihood, _ = abatement_likelihood(Decimal("500"), True, False)
        assert likelihood == 0.6


class TestFirstTimeAbatement:
    """Tests for first-time abatement eligibility."""

    def test_requires_prior_year(self, account_with_penalty: AccountTranscript) -> None:
        """No prior history means no first-time relief."""
        assert not is_first_time_abatement_eligible(2022, {2022: account_with_penalty})

    def test_clean_prior_year(
        self, account: AccountTranscript, account_with_penalty: AccountTranscript
    ) -> None:
        """A prior year without penalties qualifies."""
        clean_2022 = account.model_copy(update={"tax_year": 2022})
        assert is_first_time_abatement_eligible(2023, {2022: clean_2022})
        assert not is_first_time_abatement_eligible(2023, {2022: account_with_penalty})


class TestAnalyzeEvents:
    """Tests for analyze_events."""

    def test_clean_account_has_no_findings(self, account: AccountTranscript, as_of: date) -> None:
        """Filing, withholding and refund codes are not actionable."""
        assert analyze_events(account, as_of=as_of) == []

    def test_penalty_without_history(
        self, account_with_penalty: AccountTranscript, as_of: date
    ) -> None:
        """A lone penalty is scored below the refund cutoff."""
        (finding,) = analyze_events(account_with_penalty, as_of=as_of)

        assert finding.finding_type is FindingType.PENALTY_ABATEMENT
        assert finding.severity is Severity.LOW
        assert finding.potential_refund == Decimal("0")
        assert finding.supporting_data["likelihood"] == 0.4
        assert finding.statute.kind is StatuteKind.ASSESSMENT
        assert "First-Time" in finding.action_required

    def test_penalty_with_clean_history(
        self, account: AccountTranscript, account_with_penalty: AccountTranscript, as_of: date
    ) -> None:
        """A clean prior year makes the penalty likely to be abated."""
        history = {2021: account.model_copy(update={"tax_year": 2021})}

        (finding,) = analyze_events(account_with_penalty, history, as_of=as_of)

        assert finding.potential_refund == Decimal("250.00")
        assert finding.confidence is ConfidenceLevel.MEDIUM

        (with_cause,) = analyze_events(
            account_with_penalty, history, reasonable_cause=True, as_of=as_of
        )
        assert with_cause.supporting_data["likelihood"] == 0.9
        assert with_cause.confidence is ConfidenceLevel.HIGH

    def test_undeliverable_refund(self, account_text: str, as_of: date) -> None:
        """A returned check is matched to the refund issued near it."""
        account = parse_transcript(account_text + "740 Undelivered refund 05/20/2024 1,175.50\n")

        (finding,) = analyze_events(account, as_of=as_of)

        assert finding.finding_type is FindingType.UNDELIVERABLE_REFUND
        assert finding.potential_refund == Decimal("1175.50")
        assert finding.statute.kind is StatuteKind.REFUND

    def test_examination_and_freeze(self, account_text: str, as_of: date) -> None:
        """Examination and freeze codes each produce a finding."""
        text = account_text + (
            "420 Examination of tax return 07/01/2024 0.00\n"
            "570 Additional account action pending 07/01/2024 0.00\n"
        )
        findings = analyze_events(parse_transcript(text), as_of=as_of)

        assert [f.finding_type for f in findings] == [
            FindingType.AUDIT_RESPONSE,
            FindingType.REFUND_FREEZE,
        ]

    def test_substitute_return(self, account_text: str, as_of: date) -> None:
        """A substitute return is priced at the omitted standard deduction."""
        account = parse_transcript(account_text + "560 Substitute return 07/01/2024 0.00\n")

        (finding,) = analyze_events(account, as_of=as_of)

        assert finding.finding_type is FindingType.SUBSTITUTE_RETURN
        # 13,850 standard deduction at the 22% marginal rate
        assert finding.potential_refund == Decimal("3047.00")
        assert estimate_substitute_return_benefit(account, FilingStatus.SINGLE) == Decimal(
            "3047.00"
        )

    @pytest.mark.parametrize(
        "code", sorted(code for code, info in TRANSACTION_CODES.items() if info.reversible)
    )
    def test_every_reversible_code_is_reported(
        self, account_text: str, as_of: date, code: str
    ) -> None:
        """Codes marked reversible always produce a finding."""
        account = parse_transcript(account_text + f"{code} Event 07/01/2024 100.00\n")
        assert len(analyze_events(account, as_of=as_of)) == 1

    def test_lien_has_no_finding(self, account_text: str, as_of: date) -> None:
        """A lien indicator alone is not actionable."""
        account = parse_transcript(account_text + "582 Lien indicator 07/01/2024 0.00\n")
        assert analyze_events(account, as_of=as_of) == []


class TestFindAssociatedRefund:
    """Tests for matching returned checks to refunds."""

    def test_outside_window(self) -> None:
        """Refunds more than 30 days away are not matched."""
        returned = _tx("740", date(2024, 8, 1), "500.00", TransactionCategory.REFUND)
        refund = _tx("846", date(2024, 5, 6), "-500.00", TransactionCategory.REFUND)
        assert find_associated_refund(returned, (refund,)) == Decimal("0")
