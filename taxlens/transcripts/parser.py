"""Parse raw transcript text into structured records.

The text has already been extracted from the PDF by an upstream service.
Parsing is purely lexical:
- The transcript kind comes from fixed title markers
- Identity fields (tax year, name, masked SSN, filing status) come from
  labeled lines
- Income items come from one-line form entries (``W-2 ACME INC 65000.00``)
  or from ``Form W-2`` blocks with ``Box N:`` lines
- Transactions come from ``CODE [DESCRIPTION] MM/DD/YYYY AMOUNT`` lines;
  penalties and payments are derived from their codes
- Deductions, credits and filed-return figures come from ``LABEL: AMOUNT``
  lines

A line that looks like an income or transaction entry but cannot be read
is skipped and counted; it never fails the whole parse.

Example:
    >>> transcript = parse_transcript(text)
    >>> transcript.kind, transcript.tax_year
    (<TranscriptKind.WAGE_AND_INCOME: 'wage_and_income'>, 2023)
"""

from __future__ import annotations

import re
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, assert_never

from taxlens.core.logging import get_logger
from taxlens.tax.rules import FilingStatus, supported_years
from taxlens.transcripts.codes import ABATEMENT_ELIGIBLE_PENALTIES, lookup_code
from taxlens.transcripts.models import (
    AccountTranscript,
    CreditItem,
    DeductionItem,
    IncomeFormType,
    IncomeItem,
    ParsedTranscript,
    PaymentItem,
    PenaltyItem,
    ReturnData,
    TaxpayerInfo,
    TranscriptKind,
    TranscriptSection,
    TransactionCode,
    WageIncomeTranscript,
)

logger = get_logger(__name__)


class TranscriptTypeUnknownError(ValueError):
    """Raised when the text is empty or carries no known transcript marker."""


# Checked in order; the first marker found wins.
TRANSCRIPT_MARKERS: tuple[tuple[str, TranscriptKind], ...] = (
    ("WAGE AND INCOME TRANSCRIPT", TranscriptKind.WAGE_AND_INCOME),
    ("WAGE & INCOME TRANSCRIPT", TranscriptKind.WAGE_AND_INCOME),
    ("WAGE AND INCOME", TranscriptKind.WAGE_AND_INCOME),
    ("RECORD OF ACCOUNT", TranscriptKind.ACCOUNT),
    ("ACCOUNT TRANSCRIPT", TranscriptKind.ACCOUNT),
    ("TAX RETURN TRANSCRIPT", TranscriptKind.ACCOUNT),
)

FILING_STATUS_CODES: dict[str, FilingStatus] = {
    "1": FilingStatus.SINGLE,
    "2": FilingStatus.MARRIED_JOINT,
    "3": FilingStatus.MARRIED_SEPARATE,
    "4": FilingStatus.HEAD_OF_HOUSEHOLD,
    "5": FilingStatus.QUALIFYING_WIDOW,
}

# Section headers; first keyword match wins.
SECTION_KEYWORDS: tuple[tuple[str, str], ...] = (
    ("TRANSACTION", "transactions"),
    ("PENALT", "penalties"),
    ("DEDUCTION", "deductions"),
    ("CREDIT", "credits"),
    ("PAYMENT", "payments"),
    ("WITHHOLDING", "payments"),
    ("INCOME", "income"),
)

# =============================================================================
# Patterns
# =============================================================================

AMOUNT = r"-?\$?-?[\d,]*\d(?:\.\d{2})?"
MONEY = r"-?\$?-?[\d,]*\d\.\d{2}"
DATE = r"\d{1,2}[/-]\d{1,2}[/-]\d{4}"
FORM_TOKEN = r"(?P<form>W-?2|1099-?(?:INT|DIV|MISC|NEC|R|G|B|K)|SCHEDULE\s+C)"

TAX_YEAR_PATTERNS = (
    re.compile(r"\b(?:TAX\s+YEAR|FOR\s+YEAR)\s*:?\s*(\d{4})\b"),
    re.compile(
        r"\bTAX\s+PERIOD(?:\s+(?:ENDING|ENDED|REQUESTED))?\s*:?\s*"
        r"(?:[A-Z]{3,9}\.?(?:\s+\d{1,2})?,?\s+|\d{1,2}[/-]\d{1,2}[/-])?(\d{4})\b"
    ),
)
NAME_PATTERN = re.compile(r"^\s*(?:TAXPAYER\s+)?NAME\s*:\s*(.+?)\s*$", re.MULTILINE)
SSN_PATTERN = re.compile(
    r"\b(?:SSN/ITIN|SSN|TAXPAYER\s+IDENTIFICATION\s+NUMBER)\s*:?\s*"
    r"([\dX*]{3}-?[\dX*]{2}-?\d{4})\b"
)
ADDRESS_PATTERN = re.compile(r"^\s*ADDRESS\s*:\s*(.+?)\s*$", re.MULTILINE)
FILING_STATUS_PATTERN = re.compile(r"^\s*FILING\s+STATUS\s*:\s*(.+?)\s*$", re.MULTILINE)
DEPENDENTS_PATTERN = re.compile(
    r"\b(?:DEPENDENTS|EXEMPTIONS|QUALIFYING\s+CHILDREN)\s*:\s*(\d+)\b"
)

INCOME_LINE = re.compile(
    rf"^\s*{FORM_TOKEN}\s+(?P<payer>.+?)\s+"
    r"(?:(?P<ein>\d{2}-\d{7})\s+)?"
    rf"(?P<amount>{AMOUNT})"
    rf"(?:\s+(?:FED(?:ERAL)?\s+)?(?:WH|WITHHELD|WITHHOLDING)\s*:?\s*(?P<withholding>{AMOUNT}))?"
    r"(?:\s+(?P<flag>UNREPORTED|NOT\s+REPORTED))?\s*$"
)
INCOME_LINE_PREFIX = re.compile(r"^\s*(?:W-?2|1099-?[A-Z]+|SCHEDULE\s+C)\b")

FORM_BLOCK_HEADER = re.compile(rf"^\s*FORM\s+{FORM_TOKEN}\b")
BLOCK_EIN = re.compile(
    r"\b(?:EIN|FIN|EMPLOYER\s+IDENTIFICATION\s+NUMBER|"
    r"PAYER'S\s+FEDERAL\s+IDENTIFICATION\s+NUMBER)\s*:?\s*(\d{2}-\d{7})\b"
)
BLOCK_PAYER = re.compile(r"^\s*(?:EMPLOYER|PAYER)(?:'S)?(?:\s+NAME)?\s*:\s*(.+?)\s*$")
BLOCK_FLAG = re.compile(r"^\s*(?:STATUS\s*:\s*)?(UNREPORTED|NOT\s+REPORTED)\s*$")
BOX_LINE = re.compile(rf"^\s*BOX\s*(?P<box>\d{{1,2}}[A-Z]?)\b[^\d$-]*?(?P<amount>{AMOUNT})\s*$")

TRANSACTION_LINE = re.compile(
    r"^\s*(?:TC\s*)?(?P<code>\d{3})\s+(?:(?P<description>\S.*?)\s+)?"
    rf"(?P<date>{DATE})\s+(?P<amount>{MONEY})\s*$"
)
TRANSACTION_LINE_PREFIX = re.compile(r"^\s*(?:TC\s*)?\d{3}\s+.*\d{1,2}[/-]\d{1,2}[/-]\d{2,4}")

LABEL_VALUE = re.compile(
    rf"^\s*(?P<label>[A-Z][A-Z0-9 ,/&'().\-]*?)\s*:\s*(?P<amount>{MONEY})\s*$"
)
IDENTITY_LABELS = (
    "TAX YEAR",
    "FOR YEAR",
    "TAX PERIOD",
    "SSN",
    "NAME",
    "ADDRESS",
    "FILING STATUS",
    "DEPENDENTS",
    "EXEMPTIONS",
    "QUALIFYING CHILDREN",
)

RETURN_DATA_LABELS: tuple[tuple[re.Pattern[str], str], ...] = tuple(
    (re.compile(pattern), field_name)
    for pattern, field_name in (
        (r"ADJUSTED GROSS INCOME", "adjusted_gross_income"),
        (r"TAXABLE INCOME", "taxable_income"),
        (r"(?:TOTAL )?WAGES(?:,? SALARIES)?(?:,? (?:AND )?TIPS)?", "wages"),
        (r"(?:TAXABLE )?INTEREST(?: INCOME)?", "interest"),
        (r"(?:ORDINARY )?DIVIDENDS?(?: INCOME)?", "dividends"),
        (r"(?:BUSINESS INCOME(?: OR LOSS)?|SCHEDULE C (?:NET )?(?:PROFIT|INCOME))", "business_income"),
        (r"TOTAL TAX(?: LIABILITY)?(?: PER RETURN)?", "total_tax"),
        (r"(?:FEDERAL )?(?:INCOME )?TAX WITHHELD|(?:FEDERAL )?WITHHOLDING", "withholding"),
        (r"TOTAL PAYMENTS", "total_payments"),
        (r"REFUND AMOUNT|AMOUNT REFUNDED|REFUND", "refund_amount"),
        (r"ACCOUNT BALANCE", "account_balance"),
    )
)

# Box numbers holding (income amount, federal withholding) per form.
BOX_ROLES: dict[IncomeFormType, tuple[frozenset[str], frozenset[str]]] = {
    IncomeFormType.W2: (frozenset({"1"}), frozenset({"2"})),
    IncomeFormType.FORM_1099_INT: (frozenset({"1"}), frozenset({"4"})),
    IncomeFormType.FORM_1099_DIV: (frozenset({"1A"}), frozenset({"4"})),
    IncomeFormType.FORM_1099_MISC: (frozenset({"1", "2", "3"}), frozenset({"4"})),
    IncomeFormType.FORM_1099_NEC: (frozenset({"1"}), frozenset({"4"})),
    IncomeFormType.FORM_1099_R: (frozenset({"2A"}), frozenset({"4"})),
    IncomeFormType.FORM_1099_G: (frozenset({"1"}), frozenset({"4"})),
    IncomeFormType.FORM_1099_B: (frozenset({"1D"}), frozenset({"4"})),
    IncomeFormType.FORM_1099_K: (frozenset({"1A"}), frozenset({"4"})),
    IncomeFormType.SCHEDULE_C: (frozenset({"31"}), frozenset()),
}


# =============================================================================
# Helpers
# =============================================================================


def parse_amount(raw: str | None) -> Decimal | None:
    """Parse ``$1,234.56`` / ``-1,234.56`` into Decimal; None if unreadable."""
    if raw is None:
        return None
    cleaned = raw.replace("$", "").replace(",", "").strip()
    if not cleaned or cleaned in {"-", "."}:
        return None
    try:
        return Decimal(cleaned)
    except InvalidOperation:
        return None


def parse_date(raw: str) -> date | None:
    """Parse MM/DD/YYYY or MM-DD-YYYY; None for impossible dates."""
    for fmt in ("%m/%d/%Y", "%m-%d-%Y"):
        try:
            return datetime.strptime(raw, fmt).date()
        except ValueError:
            continue
    return None


def _form_type(token: str) -> IncomeFormType:
    normalized = re.sub(r"\s+", " ", token.upper())
    if normalized in {"W2", "W-2"}:
        return IncomeFormType.W2
    if normalized.startswith("SCHEDULE"):
        return IncomeFormType.SCHEDULE_C
    if normalized.startswith("1099") and "-" not in normalized:
        normalized = f"1099-{normalized[4:]}"
    try:
        return IncomeFormType(normalized)
    except ValueError:
        return IncomeFormType.OTHER


def default_tax_year() -> int:
    """Year assumed when a transcript prints none: latest supported year minus one."""
    return max(supported_years()) - 1


def _skip(line_number: int, reason: str) -> None:
    logger.debug("transcript_line_skipped", line_number=line_number, reason=reason)


# =============================================================================
# Kind, Sections and Identity
# =============================================================================


def identify_transcript_kind(text: str) -> tuple[TranscriptKind, str]:
    """Identify the transcript kind from its title markers.

    Args:
        text: Raw transcript text.

    Returns:
        Tuple of (kind, matched marker).

    Raises:
        TranscriptTypeUnknownError: If no marker is present.
    """
    upper = text.upper()
    for marker, kind in TRANSCRIPT_MARKERS:
        if marker in upper:
            return kind, marker
    raise TranscriptTypeUnknownError(
        "Transcript type unknown: expected a wage-and-income or account transcript marker"
    )


def identify_sections(lines: Sequence[str]) -> list[TranscriptSection]:
    """Detect section boundaries from all-caps header lines without amounts."""
    headers: list[tuple[int, str]] = []
    for index, line in enumerate(lines):
        stripped = line.strip()
        if not stripped or len(stripped) > 60 or ":" in stripped:
            continue
        if any(ch.isdigit() for ch in stripped) or stripped != stripped.upper():
            continue
        for keyword, name in SECTION_KEYWORDS:
            if keyword in stripped:
                headers.append((index, name))
                break

    sections: list[TranscriptSection] = []
    for position, (start, name) in enumerate(headers):
        end = headers[position + 1][0] if position + 1 < len(headers) else len(lines)
        sections.append(TranscriptSection(name=name, start_line=start, end_line=end))
    return sections


def _section_at(index: int, sections: Sequence[TranscriptSection]) -> str | None:
    for section in sections:
        if section.start_line <= index < section.end_line:
            return section.name
    return None


def extract_tax_year(text: str) -> tuple[int, bool]:
    """Return (tax year, inferred). Falls back to ``default_tax_year()``."""
    upper = text.upper()
    for pattern in TAX_YEAR_PATTERNS:
        match = pattern.search(upper)
        if match:
            return int(match.group(1)), False
    year = default_tax_year()
    logger.warning("tax_year_defaulted", tax_year=year)
    return year, True


def _filing_status(raw: str) -> FilingStatus | None:
    value = raw.strip().upper()
    code = value.split()[0] if value else ""
    if code in FILING_STATUS_CODES:
        return FILING_STATUS_CODES[code]
    if "JOINT" in value:
        return FilingStatus.MARRIED_JOINT
    if "SEPARATE" in value:
        return FilingStatus.MARRIED_SEPARATE
    if "HEAD" in value:
        return FilingStatus.HEAD_OF_HOUSEHOLD
    if "WIDOW" in value or "SURVIVING" in value:
        return FilingStatus.QUALIFYING_WIDOW
    if "SINGLE" in value:
        return FilingStatus.SINGLE
    logger.warning("filing_status_unrecognized", value=raw)
    return None


def extract_taxpayer_info(text: str) -> TaxpayerInfo:
    """Extract name, masked SSN, address, filing status and dependents."""
    upper = text.upper()
    name = NAME_PATTERN.search(upper)
    ssn = SSN_PATTERN.search(upper)
    address = ADDRESS_PATTERN.search(upper)
    status = FILING_STATUS_PATTERN.search(upper)
    dependents = DEPENDENTS_PATTERN.search(upper)
    return TaxpayerInfo(
        name=re.sub(r"\s+", " ", name.group(1)).strip(" ,") if name else None,
        ssn_last_four=ssn.group(1) if ssn else None,
        address=address.group(1) if address else None,
        filing_status=_filing_status(status.group(1)) if status else None,
        dependents=int(dependents.group(1)) if dependents else 0,
    )


# =============================================================================
# Income Items
# =============================================================================


@dataclass
class _FormBlock:
    form_type: IncomeFormType
    source: str
    payer: str | None = None
    ein: str | None = None
    reported: bool = True
    boxes: dict[str, Decimal] = field(default_factory=dict)

    def to_item(self) -> IncomeItem | None:
        amount_boxes, withholding_boxes = BOX_ROLES.get(self.form_type, (frozenset({"1"}), frozenset()))
        amounts = [value for box, value in self.boxes.items() if box in amount_boxes]
        if not amounts:
            return None
        return IncomeItem(
            form_type=self.form_type,
            payer=self.payer or "UNKNOWN PAYER",
            payer_ein=self.ein,
            amount=sum(amounts, Decimal("0")),
            withholding=sum(
                (value for box, value in self.boxes.items() if box in withholding_boxes),
                Decimal("0"),
            ),
            reported=self.reported,
            source=self.source,
        )


def _income_item_from_line(line: str) -> IncomeItem | None:
    match = INCOME_LINE.match(line)
    if not match:
        return None
    amount = parse_amount(match.group("amount"))
    if amount is None:
        return None
    withholding = Decimal("0")
    if match.group("withholding"):
        parsed = parse_amount(match.group("withholding"))
        if parsed is None:
            return None
        withholding = parsed
    return IncomeItem(
        form_type=_form_type(match.group("form")),
        payer=match.group("payer").strip(),
        payer_ein=match.group("ein"),
        amount=amount,
        withholding=withholding,
        reported=match.group("flag") is None,
        source=line.strip(),
    )


def extract_income_items(lines: Sequence[str]) -> tuple[list[IncomeItem], int]:
    """Extract income items from one-line entries and ``Form`` blocks.

    Args:
        lines: Upper-cased transcript lines.

    Returns:
        Tuple of (items, number of skipped malformed entries).
    """
    items: list[IncomeItem] = []
    skipped = 0
    block: _FormBlock | None = None

    def flush(current: _FormBlock | None, line_number: int) -> None:
        nonlocal skipped
        if current is None:
            return
        item = current.to_item()
        if item is None:
            skipped += 1
            _skip(line_number, f"{current.form_type.value} block without an amount box")
        else:
            items.append(item)

    for index, line in enumerate(lines):
        header = FORM_BLOCK_HEADER.match(line)
        if header:
            flush(block, index)
            block = _FormBlock(form_type=_form_type(header.group("form")), source=line.strip())
            continue

        if block is not None:
            if not line.strip():
                flush(block, index)
                block = None
                continue
            if ein := BLOCK_EIN.search(line):
                block.ein = ein.group(1)
                continue
            if payer := BLOCK_PAYER.match(line):
                block.payer = payer.group(1)
                continue
            if BLOCK_FLAG.match(line):
                block.reported = False
                continue
            if box := BOX_LINE.match(line):
                amount = parse_amount(box.group("amount"))
                if amount is None:
                    skipped += 1
                    _skip(index, "unreadable box amount")
                else:
                    block.boxes[box.group("box")] = amount
                continue

        if INCOME_LINE_PREFIX.match(line):
            item = _income_item_from_line(line)
            if item is None:
                skipped += 1
                _skip(index, "malformed income line")
            else:
                items.append(item)

    flush(block, len(lines))
    return items, skipped


# =============================================================================
# Transactions, Penalties and Payments
# =============================================================================


def extract_transaction_codes(lines: Sequence[str]) -> tuple[list[TransactionCode], int]:
    """Extract transaction-code lines; malformed ones are skipped and counted."""
    transactions: list[TransactionCode] = []
    skipped = 0
    for index, line in enumerate(lines):
        if not TRANSACTION_LINE_PREFIX.match(line):
            continue
        match = TRANSACTION_LINE.match(line)
        posted = parse_date(match.group("date")) if match else None
        amount = parse_amount(match.group("amount")) if match else None
        if match is None or posted is None or amount is None:
            skipped += 1
            _skip(index, "malformed transaction line")
            continue

        code = match.group("code")
        info = lookup_code(code)
        description = (match.group("description") or "").strip() or info.description
        transactions.append(
            TransactionCode(
                code=code,
                transaction_date=posted,
                amount=amount,
                description=description,
                category=info.category,
            )
        )
    return transactions, skipped


def penalties_from_transactions(transactions: Sequence[TransactionCode]) -> list[PenaltyItem]:
    """Derive penalty records from penalty transaction codes."""
    penalties: list[PenaltyItem] = []
    for tx in transactions:
        info = lookup_code(tx.code)
        if info.penalty_type is None:
            continue
        penalties.append(
            PenaltyItem(
                code=tx.code,
                penalty_type=info.penalty_type,
                amount=abs(tx.amount),
                assessed_date=tx.transaction_date,
                reason=info.description,
                abatement_eligible=info.penalty_type in ABATEMENT_ELIGIBLE_PENALTIES,
            )
        )
    return penalties


def payments_from_transactions(transactions: Sequence[TransactionCode]) -> list[PaymentItem]:
    """Derive withholding, estimated, refund and other payments from codes."""
    payments: list[PaymentItem] = []
    for tx in transactions:
        info = lookup_code(tx.code)
        if info.payment_type is None:
            continue
        payments.append(
            PaymentItem(
                payment_type=info.payment_type,
                amount=abs(tx.amount),
                payment_date=tx.transaction_date,
                code=tx.code,
            )
        )
    return payments


# =============================================================================
# Labeled Amounts
# =============================================================================


def _return_data_field(label: str) -> str | None:
    label = re.sub(r"\s*\([^)]*\)", "", label).strip()
    for pattern, field_name in RETURN_DATA_LABELS:
        if pattern.fullmatch(label):
            return field_name
    return None


def _deduction_kind(label: str) -> str:
    if "STANDARD" in label:
        return "standard"
    if "ITEMIZED" in label:
        return "itemized"
    return re.sub(r"[^a-z0-9]+", "_", label.lower()).strip("_")


def extract_labeled_amounts(
    lines: Sequence[str],
    sections: Sequence[TranscriptSection],
    kind: TranscriptKind,
) -> tuple[list[DeductionItem], list[CreditItem], dict[str, Decimal]]:
    """Read ``LABEL: AMOUNT`` lines into deductions, credits and return data.

    Return-data labels are only read from account transcripts. Elsewhere a
    line counts as a deduction or credit when it sits in that section or
    its label names one.
    """
    deductions: list[DeductionItem] = []
    credits: list[CreditItem] = []
    return_values: dict[str, Decimal] = {}

    for index, line in enumerate(lines):
        match = LABEL_VALUE.match(line)
        if not match:
            continue
        label = re.sub(r"\s+", " ", match.group("label")).strip()
        if label.startswith(IDENTITY_LABELS):
            continue
        amount = parse_amount(match.group("amount"))
        if amount is None:
            continue

        if kind is TranscriptKind.ACCOUNT:
            field_name = _return_data_field(label)
            if field_name is not None and field_name not in return_values:
                return_values[field_name] = amount
                continue

        section = _section_at(index, sections)
        if section == "deductions" or "DEDUCTION" in label:
            deductions.append(
                DeductionItem(kind=_deduction_kind(label), description=label.title(), amount=amount)
            )
        elif section == "credits" or "CREDIT" in label:
            credits.append(CreditItem(name=label.title(), amount=amount))

    return deductions, credits, return_values


# =============================================================================
# Entry Point
# =============================================================================


def parse_transcript(
    text: str, sections: Sequence[TranscriptSection] | None = None
) -> ParsedTranscript:
    """Parse one transcript's raw text.

    Args:
        text: Raw text produced by the extraction collaborator.
        sections: Optional section boundaries hinted by the extractor;
            detected from header lines when omitted.

    Returns:
        WageIncomeTranscript or AccountTranscript.

    Raises:
        TranscriptTypeUnknownError: If the text is empty or unrecognized.
    """
    if not text or not text.strip():
        raise TranscriptTypeUnknownError("Transcript text is empty")

    kind, marker = identify_transcript_kind(text)
    upper = text.upper()
    lines = upper.splitlines()
    if sections is None:
        sections = identify_sections(lines)

    tax_year, inferred = extract_tax_year(upper)
    income_items, skipped_income = extract_income_items(lines)
    transactions, skipped_transactions = extract_transaction_codes(lines)
    deductions, credits, return_values = extract_labeled_amounts(lines, sections, kind)

    common: dict[str, Any] = {
        "tax_year": tax_year,
        "tax_year_inferred": inferred,
        "document_title": marker,
        "taxpayer": extract_taxpayer_info(upper),
        "income_items": tuple(income_items),
        "deductions": tuple(deductions),
        "credits": tuple(credits),
        "payments": tuple(payments_from_transactions(transactions)),
        "penalties": tuple(penalties_from_transactions(transactions)),
        "transaction_codes": tuple(transactions),
        "skipped_lines": skipped_income + skipped_transactions,
    }

    transcript: ParsedTranscript
    if kind is TranscriptKind.WAGE_AND_INCOME:
        transcript = WageIncomeTranscript(**common)
    elif kind is TranscriptKind.ACCOUNT:
        transcript = AccountTranscript(**common, return_data=ReturnData(**return_values))
    else:
        assert_never(kind)

    logger.info(
        "transcript_parsed",
        kind=kind.value,
        tax_year=tax_year,
        income_items=len(income_items),
        transactions=len(transactions),
        skipped_lines=common["skipped_lines"],
    )
    return transcript
