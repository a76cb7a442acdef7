"""Per-year federal rule tables loaded from versioned YAML data.

Each supported tax year has one ``federal_<year>.yaml`` file under
``taxlens/tax/data``. Files are parsed once per process into frozen Pydantic
models and shared read-only by every calculator. Adding a year is additive:
drop in a new file, no code changes.

Example:
    >>> from taxlens.tax.rules import FilingStatus, get_rule_table
    >>> rules = get_rule_table(2023)
    >>> rules.for_status(FilingStatus.SINGLE).standard_deduction
    Decimal('13850')
"""

from __future__ import annotations

from decimal import Decimal
from enum import Enum
from functools import lru_cache
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, ValidationError, field_validator, model_validator
from ruamel.yaml import YAML

from taxlens.core.config import settings
from taxlens.core.logging import get_logger

logger = get_logger(__name__)

DEFAULT_RULES_DIR = Path(__file__).parent / "data"
RULE_FILE_PATTERN = "federal_*.yaml"


class FilingStatus(str, Enum):
    """Federal filing status."""

    SINGLE = "single"
    MARRIED_JOINT = "married_joint"
    MARRIED_SEPARATE = "married_separate"
    HEAD_OF_HOUSEHOLD = "head_of_household"
    QUALIFYING_WIDOW = "qualifying_widow"

    @classmethod
    def coerce(cls, value: FilingStatus | str | None) -> FilingStatus:
        """Resolve a status name or common abbreviation, defaulting to single.

        Args:
            value: Enum member, canonical value, or abbreviation (mfj, hoh, ...).

        Returns:
            Matching FilingStatus, or SINGLE when the value is not recognized.
        """
        if isinstance(value, FilingStatus):
            return value
        if value:
            key = str(value).strip().lower().replace(" ", "_").replace("-", "_")
            resolved = _STATUS_ALIASES.get(key)
            if resolved is not None:
                return resolved
            logger.warning("filing_status_defaulted", value=value, default=cls.SINGLE.value)
        return cls.SINGLE

    @property
    def is_joint(self) -> bool:
        """Whether joint-return thresholds apply."""
        return self in (FilingStatus.MARRIED_JOINT, FilingStatus.QUALIFYING_WIDOW)


_STATUS_ALIASES: dict[str, FilingStatus] = {
    **{status.value: status for status in FilingStatus},
    "mfj": FilingStatus.MARRIED_JOINT,
    "married_filing_jointly": FilingStatus.MARRIED_JOINT,
    "mfs": FilingStatus.MARRIED_SEPARATE,
    "married_filing_separately": FilingStatus.MARRIED_SEPARATE,
    "hoh": FilingStatus.HEAD_OF_HOUSEHOLD,
    "qw": FilingStatus.QUALIFYING_WIDOW,
    "qss": FilingStatus.QUALIFYING_WIDOW,
    "qualifying_surviving_spouse": FilingStatus.QUALIFYING_WIDOW,
}


class RuleTableLoadError(ValueError):
    """Raised when a rule file cannot be read or fails validation."""

    def __init__(self, message: str, path: Path | None = None, errors: list[str] | None = None):
        """Initialize RuleTableLoadError.

        Args:
            message: Human-readable error message
            path: Path to the rule file that failed to load
            errors: List of specific validation errors
        """
        self.path = path
        self.errors = errors or []
        super().__init__(message)


class RuleTableUnavailableError(ValueError):
    """Raised when no rule table exists for a requested tax year."""

    def __init__(self, year: int, available: list[int]):
        self.year = year
        self.available = available
        super().__init__(
            f"Rule table unavailable for tax year {year}. "
            f"Available years: {', '.join(str(y) for y in available) or 'none'}"
        )


# =============================================================================
# Rule Models
# =============================================================================


class _FrozenModel(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")


class TaxBracket(_FrozenModel):
    """One marginal bracket: income in (lower, upper] is taxed at rate."""

    lower: Decimal
    upper: Decimal | None
    rate: Decimal


def brackets_from_bounds(bounds: list[Any]) -> list[dict[str, Any]]:
    """Expand ``[[upper, rate], ...]`` entries into consecutive brackets."""
    brackets: list[dict[str, Any]] = []
    lower: Any = 0
    for entry in bounds:
        if isinstance(entry, dict):
            brackets.append(entry)
            lower = entry.get("upper")
            continue
        upper, rate = entry
        brackets.append({"lower": lower, "upper": upper, "rate": rate})
        lower = upper
    return brackets


def check_bracket_order(brackets: tuple[TaxBracket, ...]) -> tuple[TaxBracket, ...]:
    """Brackets must ascend, be contiguous, and end unbounded."""
    if not brackets:
        raise ValueError("at least one bracket is required")
    for previous, current in zip(brackets, brackets[1:]):
        if previous.upper is None or previous.upper != current.lower:
            raise ValueError("brackets must be contiguous and ascending")
        if current.upper is not None and current.upper <= current.lower:
            raise ValueError(f"bracket starting at {current.lower} has no width")
    if brackets[-1].upper is not None:
        raise ValueError("the top bracket must be unbounded")
    return brackets


class FilingStatusRules(_FrozenModel):
    """Thresholds that vary by filing status within one year."""

    standard_deduction: Decimal
    brackets: tuple[TaxBracket, ...]
    additional_medicare_threshold: Decimal
    ctc_phaseout_threshold: Decimal
    amt_exemption: Decimal
    amt_phaseout_threshold: Decimal
    amt_rate_threshold: Decimal
    education_phaseout: tuple[Decimal, Decimal] | None
    """AGI band over which education credits phase out; None means ineligible."""

    eitc_joint: bool

    @field_validator("brackets", mode="before")
    @classmethod
    def expand_bounds(cls, value: Any) -> Any:
        if isinstance(value, list):
            return brackets_from_bounds(value)
        return value

    @field_validator("brackets")
    @classmethod
    def validate_order(cls, value: tuple[TaxBracket, ...]) -> tuple[TaxBracket, ...]:
        return check_bracket_order(value)


class AMTRules(_FrozenModel):
    low_rate: Decimal
    high_rate: Decimal
    exemption_phaseout_rate: Decimal


class ChildTaxCreditRules(_FrozenModel):
    max_per_child: Decimal
    refundable_per_child: Decimal
    phaseout_step: Decimal
    phaseout_per_step: Decimal


class EducationCreditRules(_FrozenModel):
    aotc_max: Decimal
    aotc_refundable_rate: Decimal
    llc_rate: Decimal
    llc_max_expenses: Decimal


class EITCSchedule(_FrozenModel):
    """Phase-in / plateau / phase-out curve for one qualifying-child count."""

    children: int
    phase_in_limit: Decimal
    phase_in_rate: Decimal
    max_credit: Decimal
    phase_out_start: Decimal
    phase_out_start_joint: Decimal
    phase_out_end: Decimal
    phase_out_end_joint: Decimal
    phase_out_rate: Decimal

    def phase_out_range(self, joint: bool) -> tuple[Decimal, Decimal]:
        """Return (start, end) of the phase-out segment."""
        if joint:
            return self.phase_out_start_joint, self.phase_out_end_joint
        return self.phase_out_start, self.phase_out_end


class TaxYearRuleTable(_FrozenModel):
    """Immutable federal parameters for one tax year.

    Attributes:
        tax_year: Year these rules apply to.
        ss_wage_base: Social Security wage base for SE tax.
        salt_cap: Cap on state and local tax deductions.
        medical_expense_floor: AGI fraction medical expenses must exceed.
        charitable_agi_limit: Cap on charitable deductions as a fraction of AGI.
        amt: Two-tier AMT rates and exemption phase-out rate.
        child_tax_credit: Per-child credit parameters.
        education: AOTC and Lifetime Learning parameters.
        eitc: EITC curves indexed by qualifying children (0-3).
        filing_statuses: Status-specific thresholds and brackets.
    """

    tax_year: int
    ss_wage_base: Decimal
    salt_cap: Decimal
    medical_expense_floor: Decimal
    charitable_agi_limit: Decimal
    amt: AMTRules
    child_tax_credit: ChildTaxCreditRules
    education: EducationCreditRules
    eitc: tuple[EITCSchedule, ...]
    filing_statuses: dict[FilingStatus, FilingStatusRules]

    @model_validator(mode="after")
    def check_completeness(self) -> TaxYearRuleTable:
        missing = [s.value for s in FilingStatus if s not in self.filing_statuses]
        if missing:
            raise ValueError(f"missing filing statuses: {', '.join(missing)}")
        if [schedule.children for schedule in self.eitc] != [0, 1, 2, 3]:
            raise ValueError("eitc must list schedules for 0, 1, 2 and 3 children in order")
        return self

    def for_status(self, status: FilingStatus | str | None) -> FilingStatusRules:
        """Return status-specific rules; unknown statuses fall back to single."""
        return self.filing_statuses[FilingStatus.coerce(status)]

    def eitc_schedule(self, qualifying_children: int) -> EITCSchedule:
        """Return the EITC curve, capping the child count at three."""
        return self.eitc[max(0, min(qualifying_children, 3))]


# =============================================================================
# Loading
# =============================================================================


def read_yaml_mapping(path: Path) -> dict[str, Any]:
    """Parse a YAML file and return its contents as a dictionary.

    Args:
        path: Path to the YAML file

    Returns:
        Dictionary containing the parsed YAML content

    Raises:
        RuleTableLoadError: If the file cannot be read or parsed
    """
    yaml = YAML(typ="safe")

    try:
        with path.open("r", encoding="utf-8") as f:
            data = yaml.load(f)
    except FileNotFoundError as e:
        raise RuleTableLoadError(f"Rule file not found: {path}", path=path) from e
    except Exception as e:
        raise RuleTableLoadError(f"Failed to parse YAML: {e}", path=path) from e

    if data is None:
        raise RuleTableLoadError("Empty rule file", path=path)

    if not isinstance(data, dict):
        raise RuleTableLoadError(
            f"Rule file must be a YAML mapping, got {type(data).__name__}",
            path=path,
        )

    return dict(data)


def load_rule_table(path: str | Path) -> TaxYearRuleTable:
    """Load and validate one federal rule file.

    Args:
        path: Path to a ``federal_<year>.yaml`` file.

    Returns:
        Validated TaxYearRuleTable.

    Raises:
        RuleTableLoadError: If the file is missing, malformed, or invalid.
    """
    path = Path(path)
    data = read_yaml_mapping(path)
    try:
        return TaxYearRuleTable.model_validate(data)
    except ValidationError as e:
        errors = [
            f"{'.'.join(str(part) for part in err['loc'])}: {err['msg']}"
            for err in e.errors()
        ]
        raise RuleTableLoadError(
            f"Invalid rule file {path.name}: {len(errors)} error(s)",
            path=path,
            errors=errors,
        ) from e


def load_rule_tables(directory: str | Path) -> dict[int, TaxYearRuleTable]:
    """Load every federal rule file in a directory, keyed by tax year."""
    directory = Path(directory)
    tables: dict[int, TaxYearRuleTable] = {}
    for path in sorted(directory.glob(RULE_FILE_PATTERN)):
        table = load_rule_table(path)
        if table.tax_year in tables:
            raise RuleTableLoadError(
                f"Duplicate rule table for tax year {table.tax_year}", path=path
            )
        tables[table.tax_year] = table
    logger.debug("rule_tables_loaded", directory=str(directory), years=sorted(tables))
    return tables


@lru_cache(maxsize=1)
def _default_rule_tables() -> dict[int, TaxYearRuleTable]:
    return load_rule_tables(settings.rules_dir or DEFAULT_RULES_DIR)


def supported_years() -> list[int]:
    """Return the tax years that have rule tables, ascending."""
    return sorted(_default_rule_tables())


def get_rule_table(year: int) -> TaxYearRuleTable:
    """Get the federal rule table for a tax year.

    Args:
        year: Tax year.

    Returns:
        TaxYearRuleTable for that year.

    Raises:
        RuleTableUnavailableError: If no table exists for the year. There is
            no extrapolation from neighboring years.
    """
    tables = _default_rule_tables()
    if year not in tables:
        raise RuleTableUnavailableError(year, sorted(tables))
    return tables[year]
