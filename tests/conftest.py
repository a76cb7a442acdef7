"""Pytest configuration and shared fixtures for tests."""

from datetime import date

import pytest

from taxlens.transcripts.models import AccountTranscript, WageIncomeTranscript
from taxlens.transcripts.parser import parse_transcript

AS_OF = date(2025, 1, 15)

WAGE_INCOME_2023 = """\
Wage and Income Transcript
Tax Year: 2023
Name: Jane A Smith
SSN: XXX-XX-1234
Filing Status: Single

INCOME
W-2 ACME CORPORATION 12-3456789 65,000.00 WH 8,000.00
1099-INT FIRST NATIONAL BANK 1,200.00
"""

ACCOUNT_2023 = """\
Account Transcript
Tax Period: Dec. 31, 2023
Name: Jane A Smith
SSN: XXX-XX-1234
Filing Status: Single

Adjusted Gross Income: 66,200.00
Taxable Income: 52,350.00
Wages: 65,000.00
Interest: 1,200.00
Total Tax: 6,824.50
Federal Withholding: 8,000.00

TRANSACTIONS
150 Tax return filed 04/15/2024 6,824.50
806 W-2 or 1099 withholding 04/15/2024 -8,000.00
846 Refund issued 05/06/2024 -1,175.50
"""

ACCOUNT_2023_SHORT_WITHHOLDING = ACCOUNT_2023.replace(
    "Federal Withholding: 8,000.00", "Federal Withholding: 7,500.00"
)

ACCOUNT_2022_PENALTY = """\
Account Transcript
Tax Period: Dec. 31, 2022
Name: Jane A Smith
SSN: XXX-XX-1234
Filing Status: Single

Adjusted Gross Income: 58,000.00
Wages: 58,000.00
Federal Withholding: 6,500.00

TRANSACTIONS
150 Tax return filed 06/20/2023 5,600.00
806 W-2 or 1099 withholding 04/15/2023 -6,500.00
160 Penalty for filing tax return after the due date 06/20/2023 250.00
"""


@pytest.fixture
def wage_income_text() -> str:
    """Raw 2023 wage and income transcript text."""
    return WAGE_INCOME_2023


@pytest.fixture
def account_text() -> str:
    """Raw 2023 account transcript text matching the wage and income transcript."""
    return ACCOUNT_2023


@pytest.fixture
def wage_income() -> WageIncomeTranscript:
    """Parsed 2023 wage and income transcript."""
    transcript = parse_transcript(WAGE_INCOME_2023)
    assert isinstance(transcript, WageIncomeTranscript)
    return transcript


@pytest.fixture
def account() -> AccountTranscript:
    """Parsed 2023 account transcript."""
    transcript = parse_transcript(ACCOUNT_2023)
    assert isinstance(transcript, AccountTranscript)
    return transcript


@pytest.fixture
def account_short_withholding() -> AccountTranscript:
    """Parsed 2023 account transcript claiming $500 less withholding."""
    transcript = parse_transcript(ACCOUNT_2023_SHORT_WITHHOLDING)
    assert isinstance(transcript, AccountTranscript)
    return transcript


@pytest.fixture
def account_with_penalty() -> AccountTranscript:
    """Parsed 2022 account transcript with a late-filing penalty."""
    transcript = parse_transcript(ACCOUNT_2022_PENALTY)
    assert isinstance(transcript, AccountTranscript)
    return transcript


@pytest.fixture
def as_of() -> date:
    """Fixed date statute days are counted from."""
    return AS_OF


@pytest.fixture
def short_withholding_text() -> str:
    """Raw 2023 account transcript text claiming $500 less withholding."""
    return ACCOUNT_2023_SHORT_WITHHOLDING


@pytest.fixture
def penalty_account_text() -> str:
    """Raw 2022 account transcript text with a late-filing penalty."""
    return ACCOUNT_2022_PENALTY
