"""IRS transaction-code reference table.

Maps each modeled code to a description, a category, whether the event it
records can be reversed by taxpayer action, and (for penalty codes) the
penalty type. The parser uses it to label transactions; the event analyzer
uses the reversibility flag to decide what is actionable.
"""

from __future__ import annotations

from dataclasses import dataclass

from taxlens.transcripts.models import PaymentType, PenaltyType, TransactionCategory


@dataclass(frozen=True)
class CodeInfo:
    """Reference data for one transaction code."""

    description: str
    category: TransactionCategory
    reversible: bool = False
    penalty_type: PenaltyType | None = None
    payment_type: PaymentType | None = None


TRANSACTION_CODES: dict[str, CodeInfo] = {
    "150": CodeInfo("Tax return filed", TransactionCategory.RETURN),
    "290": CodeInfo("Additional tax assessed", TransactionCategory.ASSESSMENT),
    "291": CodeInfo("Abatement of prior tax assessment", TransactionCategory.ASSESSMENT),
    "300": CodeInfo("Additional tax assessed by examination", TransactionCategory.EXAMINATION),
    "301": CodeInfo("Abatement of tax by examination", TransactionCategory.EXAMINATION),
    "420": CodeInfo("Examination of tax return", TransactionCategory.EXAMINATION, reversible=True),
    "421": CodeInfo("Closed examination of tax return", TransactionCategory.EXAMINATION),
    "424": CodeInfo("Examination request indicator", TransactionCategory.EXAMINATION, reversible=True),
    "430": CodeInfo(
        "Estimated tax payment", TransactionCategory.PAYMENT, payment_type=PaymentType.ESTIMATED
    ),
    "460": CodeInfo("Extension of time to file", TransactionCategory.RETURN),
    "560": CodeInfo("Substitute for return prepared", TransactionCategory.RETURN, reversible=True),
    "570": CodeInfo("Additional account action pending", TransactionCategory.FREEZE, reversible=True),
    "571": CodeInfo("Resolved additional account action", TransactionCategory.FREEZE),
    "582": CodeInfo("Lien indicator", TransactionCategory.COLLECTION),
    "583": CodeInfo("Lien indicator reversed", TransactionCategory.COLLECTION),
    "610": CodeInfo(
        "Payment with return", TransactionCategory.PAYMENT, payment_type=PaymentType.OTHER
    ),
    "660": CodeInfo(
        "Estimated tax payment", TransactionCategory.PAYMENT, payment_type=PaymentType.ESTIMATED
    ),
    "670": CodeInfo("Subsequent payment", TransactionCategory.PAYMENT, payment_type=PaymentType.OTHER),
    "700": CodeInfo("Credit transferred in", TransactionCategory.CREDIT),
    "706": CodeInfo("Overpayment credit applied", TransactionCategory.CREDIT),
    "740": CodeInfo("Undeliverable refund returned", TransactionCategory.REFUND, reversible=True),
    "766": CodeInfo("Credit to your account", TransactionCategory.CREDIT),
    "768": CodeInfo("Earned income credit", TransactionCategory.CREDIT),
    "806": CodeInfo(
        "Credit for withheld taxes", TransactionCategory.PAYMENT, payment_type=PaymentType.WITHHOLDING
    ),
    "826": CodeInfo("Overpayment transferred", TransactionCategory.CREDIT),
    "840": CodeInfo("Manual refund issued", TransactionCategory.REFUND, payment_type=PaymentType.REFUND),
    "846": CodeInfo("Refund issued", TransactionCategory.REFUND, payment_type=PaymentType.REFUND),
    "971": CodeInfo("Notice issued", TransactionCategory.OTHER),
    "196": CodeInfo("Interest charged for late payment", TransactionCategory.INTEREST),
    # Penalties
    "160": CodeInfo(
        "Penalty for filing tax return after the due date",
        TransactionCategory.PENALTY,
        reversible=True,
        penalty_type=PenaltyType.LATE_FILING,
    ),
    "161": CodeInfo(
        "Penalty for late payment of tax",
        TransactionCategory.PENALTY,
        reversible=True,
        penalty_type=PenaltyType.LATE_PAYMENT,
    ),
    "162": CodeInfo(
        "Penalty for underpayment of estimated tax",
        TransactionCategory.PENALTY,
        reversible=True,
        penalty_type=PenaltyType.ESTIMATED_TAX,
    ),
    "163": CodeInfo(
        "Accuracy-related penalty",
        TransactionCategory.PENALTY,
        penalty_type=PenaltyType.ACCURACY,
    ),
    "166": CodeInfo(
        "Penalty for filing tax return after the due date",
        TransactionCategory.PENALTY,
        reversible=True,
        penalty_type=PenaltyType.LATE_FILING,
    ),
    "176": CodeInfo(
        "Penalty for underpayment of estimated tax",
        TransactionCategory.PENALTY,
        reversible=True,
        penalty_type=PenaltyType.ESTIMATED_TAX,
    ),
    "276": CodeInfo(
        "Penalty for late payment of tax",
        TransactionCategory.PENALTY,
        reversible=True,
        penalty_type=PenaltyType.LATE_PAYMENT,
    ),
}

# Codes 160-169 not listed above are still penalties.
PENALTY_RANGE = range(160, 170)

# Relief (first-time or reasonable cause) is available for these.
ABATEMENT_ELIGIBLE_PENALTIES = frozenset(
    {PenaltyType.LATE_FILING, PenaltyType.LATE_PAYMENT, PenaltyType.ESTIMATED_TAX}
)

REFUND_ISSUED_CODES = frozenset({"840", "846"})


def lookup_code(code: str) -> CodeInfo:
    """Return reference data for a code, with a generic entry for unknown codes."""
    info = TRANSACTION_CODES.get(code)
    if info is not None:
        return info
    if code.isdigit() and int(code) in PENALTY_RANGE:
        return CodeInfo(
            f"Penalty assessed (TC {code})",
            TransactionCategory.PENALTY,
            penalty_type=PenaltyType.OTHER,
        )
    return CodeInfo(f"Transaction code {code}", TransactionCategory.OTHER)


def is_penalty_code(code: str) -> bool:
    return lookup_code(code).penalty_type is not None
