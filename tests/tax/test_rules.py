"""Tests for rule table loading."""

from decimal import Decimal
from pathlib import Path

import pytest

from taxlens.tax.rules import (
    DEFAULT_RULES_DIR,
    FilingStatus,
    RuleTableLoadError,
    RuleTableUnavailableError,
    get_rule_table,
    load_rule_table,
    load_rule_tables,
    supported_years,
)


class TestFilingStatus:
    """Tests for filing status coercion."""

    def test_coerce_accepts_abbreviations(self) -> None:
        """Common abbreviations resolve to their status."""
        assert FilingStatus.coerce("mfj") is FilingStatus.MARRIED_JOINT
        assert FilingStatus.coerce("MFS") is FilingStatus.MARRIED_SEPARATE
        assert FilingStatus.coerce("hoh") is FilingStatus.HEAD_OF_HOUSEHOLD
        assert FilingStatus.coerce("qss") is FilingStatus.QUALIFYING_WIDOW

    def test_coerce_defaults_to_single(self) -> None:
        """Unknown or missing statuses fall back to single."""
        assert FilingStatus.coerce(None) is FilingStatus.SINGLE
        assert FilingStatus.coerce("") is FilingStatus.SINGLE
        assert FilingStatus.coerce("domestic partnership") is FilingStatus.SINGLE

    def test_is_joint(self) -> None:
        """Qualifying widow uses joint thresholds."""
        assert FilingStatus.MARRIED_JOINT.is_joint
        assert FilingStatus.QUALIFYING_WIDOW.is_joint
        assert not FilingStatus.HEAD_OF_HOUSEHOLD.is_joint


class TestPackagedRules:
    """Tests for the packaged rule data."""

    def test_supported_years(self) -> None:
        """Rule tables ship for 2021 through 2024."""
        assert supported_years() == [2021, 2022, 2023, 2024]

    def test_unknown_year_raises(self) -> None:
        """No extrapolation to years without a table."""
        with pytest.raises(RuleTableUnavailableError) as exc_info:
            get_rule_table(2019)
        assert exc_info.value.year == 2019
        assert exc_info.value.available == [2021, 2022, 2023, 2024]
        assert isinstance(exc_info.value, ValueError)

    def test_2023_single_figures(self) -> None:
        """2023 single standard deduction and top bracket."""
        rules = get_rule_table(2023).for_status(FilingStatus.SINGLE)
        assert rules.standard_deduction == Decimal("13850")
        assert rules.brackets[0].upper == Decimal("11000")
        assert rules.brackets[0].rate == Decimal("0.10")
        assert rules.brackets[-1].upper is None
        assert rules.brackets[-1].rate == Decimal("0.37")

    @pytest.mark.parametrize("year", [2021, 2022, 2023, 2024])
    def test_qualifying_widow_uses_joint_brackets(self, year: int) -> None:
        """Qualifying widow figures equal married filing jointly."""
        table = get_rule_table(year)
        widow = table.for_status(FilingStatus.QUALIFYING_WIDOW)
        joint = table.for_status(FilingStatus.MARRIED_JOINT)
        assert widow.brackets == joint.brackets
        assert widow.standard_deduction == joint.standard_deduction

    @pytest.mark.parametrize("year", [2021, 2022, 2023, 2024])
    def test_brackets_are_ascending(self, year: int) -> None:
        """Every status has ascending brackets ending unbounded."""
        table = get_rule_table(year)
        for status in FilingStatus:
            bounds = [b.upper for b in table.for_status(status).brackets]
            assert bounds[-1] is None
            assert bounds[:-1] == sorted(bounds[:-1])

    def test_eitc_schedule_caps_children(self) -> None:
        """Five children use the three-child schedule."""
        table = get_rule_table(2023)
        assert table.eitc_schedule(5) == table.eitc_schedule(3)
        assert table.eitc_schedule(-1) == table.eitc_schedule(0)


class TestLoadRuleTable:
    """Tests for loading rule files from disk."""

    def test_load_directory_matches_packaged(self) -> None:
        """Loading the packaged directory yields every year."""
        tables = load_rule_tables(DEFAULT_RULES_DIR)
        assert sorted(tables) == supported_years()

    def test_missing_file_raises(self, tmp_path: Path) -> None:
        """Missing file is a load error naming the path."""
        path = tmp_path / "federal_2030.yaml"
        with pytest.raises(RuleTableLoadError) as exc_info:
            load_rule_table(path)
        assert exc_info.value.path == path

    def test_malformed_yaml_raises(self, tmp_path: Path) -> None:
        """Unparseable YAML is a load error."""
        path = tmp_path / "federal_2030.yaml"
        path.write_text("tax_year: [2030\n", encoding="utf-8")
        with pytest.raises(RuleTableLoadError, match="Failed to parse YAML"):
            load_rule_table(path)

    def test_non_mapping_raises(self, tmp_path: Path) -> None:
        """A YAML list is not a rule table."""
        path = tmp_path / "federal_2030.yaml"
        path.write_text("- 1\n- 2\n", encoding="utf-8")
        with pytest.raises(RuleTableLoadError, match="mapping"):
            load_rule_table(path)

    def test_incomplete_table_lists_errors(self, tmp_path: Path) -> None:
        """Validation failures are collected on the error."""
        path = tmp_path / "federal_2030.yaml"
        path.write_text("tax_year: 2030\nsalt_cap: 10000\n", encoding="utf-8")
        with pytest.raises(RuleTableLoadError) as exc_info:
            load_rule_table(path)
        assert exc_info.value.errors
        assert any("ss_wage_base" in error for error in exc_info.value.errors)
