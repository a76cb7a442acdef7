"""Table-driven state income tax.

States are modeled as having no income tax, a flat rate, or progressive
brackets, each with a state standard deduction. The table is loaded from
``states.yaml`` in the rules directory. Jurisdictions not in the table are
treated as "no tax" and logged, since only a subset of states is modeled.

Example:
    >>> from decimal import Decimal
    >>> from taxlens.tax.state import calculate_state_tax
    >>> calculate_state_tax(Decimal("86000"), "IL")
    Decimal('4136.9625')
"""

from __future__ import annotations

from decimal import Decimal
from enum import Enum
from functools import lru_cache
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, ValidationError, field_validator, model_validator

from taxlens.core.config import settings
from taxlens.core.logging import get_logger
from taxlens.tax.brackets import calculate_progressive_tax
from taxlens.tax.rules import (
    DEFAULT_RULES_DIR,
    FilingStatus,
    RuleTableLoadError,
    TaxBracket,
    brackets_from_bounds,
    check_bracket_order,
    read_yaml_mapping,
)

logger = get_logger(__name__)

STATE_TABLE_FILE = "states.yaml"
ZERO = Decimal("0")


class StateTaxKind(str, Enum):
    """How a state taxes income."""

    NONE = "none"
    FLAT = "flat"
    PROGRESSIVE = "progressive"


class StateTaxInfo(BaseModel):
    """Tax parameters for one state.

    Attributes:
        code: Two-letter state code.
        name: State name.
        kind: none, flat or progressive.
        rate: Flat rate (flat states only).
        standard_deduction: Subtracted from income before tax.
        standard_deduction_joint: Deduction for joint filers; falls back to
            ``standard_deduction`` when not set.
        brackets: Progressive brackets (progressive states only).
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    code: str
    name: str
    kind: StateTaxKind
    rate: Decimal = ZERO
    standard_deduction: Decimal = ZERO
    standard_deduction_joint: Decimal | None = None
    brackets: tuple[TaxBracket, ...] = ()

    def deduction_for(self, filing_status: FilingStatus | str | None) -> Decimal:
        if FilingStatus.coerce(filing_status).is_joint and self.standard_deduction_joint is not None:
            return self.standard_deduction_joint
        return self.standard_deduction

    @field_validator("brackets", mode="before")
    @classmethod
    def expand_bounds(cls, value: Any) -> Any:
        if isinstance(value, list):
            return brackets_from_bounds(value)
        return value

    @model_validator(mode="after")
    def check_kind(self) -> StateTaxInfo:
        if self.kind is StateTaxKind.PROGRESSIVE:
            check_bracket_order(self.brackets)
        elif self.kind is StateTaxKind.FLAT and self.rate <= ZERO:
            raise ValueError(f"flat-tax state {self.code} needs a positive rate")
        return self


def load_state_table(path: str | Path) -> dict[str, StateTaxInfo]:
    """Load the state table from YAML.

    Raises:
        RuleTableLoadError: If the file is missing or invalid.
    """
    path = Path(path)
    data = read_yaml_mapping(path)
    states = data.get("states")
    if not isinstance(states, dict):
        raise RuleTableLoadError("State table must define a 'states' mapping", path=path)

    table: dict[str, StateTaxInfo] = {}
    errors: list[str] = []
    for code, entry in states.items():
        try:
            table[code.upper()] = StateTaxInfo.model_validate({"code": code.upper(), **entry})
        except ValidationError as e:
            errors.extend(f"{code}: {err['msg']}" for err in e.errors())
    if errors:
        raise RuleTableLoadError(
            f"Invalid state table: {len(errors)} error(s)", path=path, errors=errors
        )
    return table


@lru_cache(maxsize=1)
def _state_table() -> dict[str, StateTaxInfo]:
    return load_state_table((settings.rules_dir or DEFAULT_RULES_DIR) / STATE_TABLE_FILE)


def get_state_info(state_code: str) -> StateTaxInfo | None:
    """Return the modeled parameters for a state, or None if not modeled."""
    return _state_table().get(state_code.strip().upper())


def get_all_states() -> list[StateTaxInfo]:
    """All modeled states sorted by code."""
    return [info for _, info in sorted(_state_table().items())]


def _states_of_kind(kind: StateTaxKind) -> list[str]:
    return [info.code for info in get_all_states() if info.kind is kind]


def get_no_tax_states() -> list[str]:
    return _states_of_kind(StateTaxKind.NONE)


def get_flat_tax_states() -> list[str]:
    return _states_of_kind(StateTaxKind.FLAT)


def get_progressive_tax_states() -> list[str]:
    return _states_of_kind(StateTaxKind.PROGRESSIVE)


def calculate_state_tax(
    income: Decimal,
    state_code: str,
    filing_status: FilingStatus | str = FilingStatus.SINGLE,
) -> Decimal:
    """Calculate state income tax.

    Taxable state income is income minus the state standard deduction,
    floored at 0. Progressive states use the same bracket walk as federal.

    Args:
        income: Income subject to state tax.
        state_code: Two-letter state code (case-insensitive).
        filing_status: Joint statuses use the state's joint deduction when it
            has one.

    Returns:
        State tax. Unknown states return 0.
    """
    info = get_state_info(state_code)
    if info is None:
        logger.warning("state_not_modeled", state=state_code, assumed="no_tax")
        return ZERO

    if info.kind is StateTaxKind.NONE:
        return ZERO

    taxable = max(ZERO, income - info.deduction_for(filing_status))
    if info.kind is StateTaxKind.FLAT:
        return taxable * info.rate

    tax, _ = calculate_progressive_tax(taxable, info.brackets)
    return tax
