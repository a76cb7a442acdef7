"""Pydantic models for parsed IRS transcripts.

A parsed transcript is a tagged variant on ``kind``:
- WageIncomeTranscript: third-party reported income (W-2, 1099 family)
- AccountTranscript: what was filed plus the account's transaction history

Both carry the same line-item collections. Models are frozen; derived
copies are made with ``model_copy(update=...)``.

All monetary fields use Decimal for precision. Only the last four digits
of an SSN are ever retained.
"""

from __future__ import annotations

import re
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from taxlens.tax.rules import FilingStatus

ZERO = Decimal("0")


class TranscriptKind(str, Enum):
    """Source kind of a transcript."""

    WAGE_AND_INCOME = "wage_and_income"
    ACCOUNT = "account"


class IncomeCategory(str, Enum):
    """Category used to compare reported and filed income."""

    WAGES = "wages"
    INTEREST = "interest"
    DIVIDENDS = "dividends"
    SELF_EMPLOYMENT = "self_employment"
    RETIREMENT = "retirement"
    OTHER = "other"


class IncomeFormType(str, Enum):
    """Information return that reported an income item."""

    W2 = "W-2"
    FORM_1099_INT = "1099-INT"
    FORM_1099_DIV = "1099-DIV"
    FORM_1099_MISC = "1099-MISC"
    FORM_1099_NEC = "1099-NEC"
    FORM_1099_R = "1099-R"
    FORM_1099_G = "1099-G"
    FORM_1099_B = "1099-B"
    FORM_1099_K = "1099-K"
    SCHEDULE_C = "SCHEDULE-C"
    OTHER = "OTHER"

    @property
    def category(self) -> IncomeCategory:
        return _FORM_CATEGORIES.get(self, IncomeCategory.OTHER)


_FORM_CATEGORIES: dict[IncomeFormType, IncomeCategory] = {
    IncomeFormType.W2: IncomeCategory.WAGES,
    IncomeFormType.FORM_1099_INT: IncomeCategory.INTEREST,
    IncomeFormType.FORM_1099_DIV: IncomeCategory.DIVIDENDS,
    IncomeFormType.FORM_1099_MISC: IncomeCategory.SELF_EMPLOYMENT,
    IncomeFormType.FORM_1099_NEC: IncomeCategory.SELF_EMPLOYMENT,
    IncomeFormType.FORM_1099_K: IncomeCategory.SELF_EMPLOYMENT,
    IncomeFormType.SCHEDULE_C: IncomeCategory.SELF_EMPLOYMENT,
    IncomeFormType.FORM_1099_R: IncomeCategory.RETIREMENT,
}

# Forms the multi-year analysis treats as business or investment income
BUSINESS_FORMS = frozenset({IncomeFormType.FORM_1099_NEC, IncomeFormType.SCHEDULE_C})
INVESTMENT_FORMS = frozenset({IncomeFormType.FORM_1099_INT, IncomeFormType.FORM_1099_DIV})


class PaymentType(str, Enum):
    WITHHOLDING = "withholding"
    ESTIMATED = "estimated"
    REFUND = "refund"
    OTHER = "other"


class PenaltyType(str, Enum):
    LATE_FILING = "late_filing"
    LATE_PAYMENT = "late_payment"
    ESTIMATED_TAX = "estimated_tax"
    ACCURACY = "accuracy"
    OTHER = "other"


class TransactionCategory(str, Enum):
    RETURN = "return"
    ASSESSMENT = "assessment"
    PAYMENT = "payment"
    PENALTY = "penalty"
    INTEREST = "interest"
    REFUND = "refund"
    CREDIT = "credit"
    EXAMINATION = "examination"
    FREEZE = "freeze"
    COLLECTION = "collection"
    OTHER = "other"


def mask_ssn(value: str | None) -> str | None:
    """Reduce an SSN (full or masked) to its last four digits.

    Args:
        value: SSN such as ``123-45-6789`` or ``***-**-6789``.

    Returns:
        The last four digits, or None if fewer than four digits are present.
    """
    if not value:
        return None
    digits = re.sub(r"\D", "", value)
    if len(digits) < 4:
        return None
    return digits[-4:]


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True)


class TaxpayerInfo(_Frozen):
    """Taxpayer identity as printed on the transcript."""

    name: str | None = None
    ssn_last_four: str | None = None
    address: str | None = None
    filing_status: FilingStatus | None = None
    dependents: int = 0

    @field_validator("ssn_last_four", mode="before")
    @classmethod
    def keep_last_four(cls, value: str | None) -> str | None:
        return mask_ssn(value)


class IncomeItem(_Frozen):
    """One third-party reported income record.

    Attributes:
        form_type: Information return type.
        payer: Payer or employer name.
        payer_ein: Payer EIN when printed.
        amount: Reported income amount.
        withholding: Federal tax withheld on this item.
        reported: False when the income was not reported on the filed return.
        unreported_amount: Portion missing from the filed return when only
            part of the item was left off; None means the whole amount.
        source: Raw transcript line the item came from.
    """

    form_type: IncomeFormType
    payer: str
    payer_ein: str | None = None
    amount: Decimal
    withholding: Decimal = ZERO
    reported: bool = True
    unreported_amount: Decimal | None = None
    source: str = ""

    @property
    def category(self) -> IncomeCategory:
        return self.form_type.category

    @property
    def unreported_value(self) -> Decimal:
        """Amount of this item missing from the filed return."""
        if self.reported:
            return ZERO
        return self.amount if self.unreported_amount is None else self.unreported_amount


class DeductionItem(_Frozen):
    kind: str
    description: str
    amount: Decimal


class CreditItem(_Frozen):
    name: str
    amount: Decimal


class PaymentItem(_Frozen):
    payment_type: PaymentType
    amount: Decimal
    payment_date: date | None = None
    code: str | None = None


class PenaltyItem(_Frozen):
    """Penalty assessed on the account.

    Attributes:
        code: Transaction code (160-169).
        penalty_type: Penalty kind.
        amount: Assessed amount.
        assessed_date: Assessment date.
        reason: Human-readable description.
        abatement_eligible: Whether first-time or reasonable-cause relief applies.
    """

    code: str
    penalty_type: PenaltyType
    amount: Decimal
    assessed_date: date | None = None
    reason: str = ""
    abatement_eligible: bool = False


class TransactionCode(_Frozen):
    code: str
    transaction_date: date
    amount: Decimal
    description: str
    category: TransactionCategory


class ReturnData(_Frozen):
    """Figures from the filed return, as shown on an account transcript."""

    adjusted_gross_income: Decimal | None = None
    taxable_income: Decimal | None = None
    wages: Decimal | None = None
    interest: Decimal | None = None
    dividends: Decimal | None = None
    business_income: Decimal | None = None
    total_tax: Decimal | None = None
    withholding: Decimal | None = None
    total_payments: Decimal | None = None
    refund_amount: Decimal | None = None
    account_balance: Decimal | None = None


class TranscriptBase(_Frozen):
    """Fields shared by both transcript kinds."""

    tax_year: int
    tax_year_inferred: bool = False
    """True when no tax year was printed and the default year was used."""

    document_title: str = ""
    taxpayer: TaxpayerInfo = Field(default_factory=TaxpayerInfo)
    income_items: tuple[IncomeItem, ...] = ()
    deductions: tuple[DeductionItem, ...] = ()
    credits: tuple[CreditItem, ...] = ()
    payments: tuple[PaymentItem, ...] = ()
    penalties: tuple[PenaltyItem, ...] = ()
    transaction_codes: tuple[TransactionCode, ...] = ()
    skipped_lines: int = 0

    @property
    def total_income(self) -> Decimal:
        return sum((item.amount for item in self.income_items), ZERO)

    @property
    def total_deductions(self) -> Decimal:
        return sum((item.amount for item in self.deductions), ZERO)

    @property
    def total_penalties(self) -> Decimal:
        return sum((item.amount for item in self.penalties), ZERO)

    @property
    def item_withholding(self) -> Decimal:
        return sum((item.withholding for item in self.income_items), ZERO)

    def income_by_category(self, category: IncomeCategory) -> Decimal:
        return sum(
            (item.amount for item in self.income_items if item.category is category), ZERO
        )

    def payments_of_type(self, payment_type: PaymentType) -> list[PaymentItem]:
        return [p for p in self.payments if p.payment_type is payment_type]

    def unreported_items(self) -> list[IncomeItem]:
        return [item for item in self.income_items if not item.reported]


class WageIncomeTranscript(TranscriptBase):
    """Income-source transcript listing third-party information returns."""

    kind: Literal[TranscriptKind.WAGE_AND_INCOME] = TranscriptKind.WAGE_AND_INCOME


class AccountTranscript(TranscriptBase):
    """Account-of-record transcript: filed return figures and transactions."""

    kind: Literal[TranscriptKind.ACCOUNT] = TranscriptKind.ACCOUNT
    return_data: ReturnData = Field(default_factory=ReturnData)


ParsedTranscript = Annotated[
    Union[WageIncomeTranscript, AccountTranscript], Field(discriminator="kind")
]


class TranscriptSection(_Frozen):
    """A named range of lines, either hinted by the extractor or detected.

    Attributes:
        name: Section name (income, deductions, credits, payments,
            penalties, transactions).
        start_line: Index of the first line in the section.
        end_line: Index one past the last line in the section.
    """

    name: str
    start_line: int
    end_line: int
