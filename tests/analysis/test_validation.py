"""Tests for transcript pair validation."""

import pytest

from taxlens.analysis.validation import (
    IdentityMismatchError,
    name_similarity,
    validate_transcript_pair,
)
from taxlens.transcripts.models import (
    AccountTranscript,
    ReturnData,
    TaxpayerInfo,
    WageIncomeTranscript,
)


def _with_taxpayer(transcript, **fields):
    taxpayer = transcript.taxpayer.model_copy(update=fields)
    return transcript.model_copy(update={"taxpayer": taxpayer})


class TestValidateTranscriptPair:
    """Tests for validate_transcript_pair."""

    def test_matching_pair_has_no_warnings(
        self, wage_income: WageIncomeTranscript, account: AccountTranscript
    ) -> None:
        """Identical identities validate cleanly."""
        result = validate_transcript_pair(wage_income, account)

        assert result.warnings == []
        assert result.name_similarity == 1.0

    def test_ssn_mismatch_raises(
        self, wage_income: WageIncomeTranscript, account: AccountTranscript
    ) -> None:
        """Different SSNs cannot be compared."""
        other = _with_taxpayer(account, ssn_last_four="9999")

        with pytest.raises(IdentityMismatchError) as exc_info:
            validate_transcript_pair(wage_income, other)

        assert exc_info.value.field_name == "ssn"
        assert "9999" in str(exc_info.value)
        assert isinstance(exc_info.value, ValueError)

    def test_year_mismatch_raises(
        self, wage_income: WageIncomeTranscript, account_with_penalty: AccountTranscript
    ) -> None:
        """Transcripts for different years cannot be compared."""
        with pytest.raises(IdentityMismatchError) as exc_info:
            validate_transcript_pair(wage_income, account_with_penalty)
        assert exc_info.value.field_name == "tax_year"

    def test_missing_ssn_warns(
        self, wage_income: WageIncomeTranscript, account: AccountTranscript
    ) -> None:
        """A missing SSN is a warning, not an error."""
        result = validate_transcript_pair(wage_income, _with_taxpayer(account, ssn_last_four=None))
        assert [w.code for w in result.warnings] == ["ssn_missing"]

    def test_name_mismatch_warns(
        self, wage_income: WageIncomeTranscript, account: AccountTranscript
    ) -> None:
        """Dissimilar names produce a warning with the year."""
        other = _with_taxpayer(account, name="ROBERT BROWN")

        result = validate_transcript_pair(wage_income, other)

        (warning,) = result.warnings
        assert warning.code == "name_mismatch"
        assert warning.tax_year == 2023
        assert result.name_similarity < 0.8

    def test_missing_agi_and_items_warn(self, account: AccountTranscript) -> None:
        """Missing AGI and an empty income list are both reported."""
        bare = account.model_copy(update={"return_data": ReturnData()})

        result = validate_transcript_pair(account, bare)

        assert {w.code for w in result.warnings} == {"missing_agi", "no_income_items"}


class TestNameSimilarity:
    """Tests for name_similarity."""

    def test_ignores_case_and_punctuation(self) -> None:
        """Formatting differences do not lower the score."""
        assert name_similarity("Jane A. Smith", "JANE A SMITH") == 1.0

    def test_small_typo_scores_high(self) -> None:
        """A one-letter typo stays above the default threshold."""
        assert name_similarity("JANE A SMITH", "JANE A SMYTH") > 0.8

    def test_taxpayer_info_masks_ssn(self) -> None:
        """Identity records never keep a full SSN."""
        assert TaxpayerInfo(ssn_last_four="123-45-6789").ssn_last_four == "6789"
