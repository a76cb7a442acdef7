"""Tests for the Excel action plan export."""

from datetime import date
from pathlib import Path

import pytest
from openpyxl import load_workbook

from taxlens.analysis.engine import analyze_parsed
from taxlens.analysis.models import ComprehensiveAnalysisResult
from taxlens.output import write_action_plan_workbook
from taxlens.transcripts.models import AccountTranscript, WageIncomeTranscript


@pytest.fixture
def analysis_result(
    wage_income: WageIncomeTranscript,
    account_short_withholding: AccountTranscript,
    account_with_penalty: AccountTranscript,
    as_of: date,
) -> ComprehensiveAnalysisResult:
    """Analysis with a withholding finding and a penalty."""
    return analyze_parsed(
        [wage_income, account_short_withholding, account_with_penalty], as_of=as_of
    )


class TestWriteActionPlanWorkbook:
    """Tests for write_action_plan_workbook."""

    def test_creates_parent_directories(
        self, tmp_path: Path, analysis_result: ComprehensiveAnalysisResult
    ) -> None:
        """Missing parent directories are created."""
        path = write_action_plan_workbook(analysis_result, tmp_path / "nested" / "plan.xlsx")

        assert path.exists()
        assert path.parent.name == "nested"

    def test_sheet_layout(
        self, tmp_path: Path, analysis_result: ComprehensiveAnalysisResult
    ) -> None:
        """Four sheets in reading order with bold headers."""
        path = write_action_plan_workbook(analysis_result, tmp_path / "plan.xlsx")
        workbook = load_workbook(path)

        assert workbook.sheetnames == ["Summary", "Recommendations", "Timeline", "Findings"]
        assert workbook["Recommendations"]["A1"].value == "Priority"
        assert workbook["Recommendations"]["A1"].font.bold
        assert workbook["Timeline"]["A1"].value == "Deadline"
        assert workbook["Findings"]["A1"].value == "Tax Year"

    def test_rows_follow_result_order(
        self, tmp_path: Path, analysis_result: ComprehensiveAnalysisResult
    ) -> None:
        """One row per recommendation, in priority order."""
        path = write_action_plan_workbook(analysis_result, tmp_path / "plan.xlsx")
        sheet = load_workbook(path)["Recommendations"]

        priorities = [row[0] for row in sheet.iter_rows(min_row=2, values_only=True)]
        assert priorities == [rec.priority for rec in analysis_result.recommendations]

    def test_summary_headline(
        self, tmp_path: Path, analysis_result: ComprehensiveAnalysisResult
    ) -> None:
        """Summary carries the analysis ID and potential refund."""
        path = write_action_plan_workbook(analysis_result, tmp_path / "plan.xlsx")
        sheet = load_workbook(path)["Summary"]

        assert sheet["A2"].value == f"Analysis ID: {analysis_result.analysis_id}"
        assert sheet["B7"].value == pytest.approx(
            float(analysis_result.summary.total_potential_refund)
        )
        assert sheet["A10"].value == "Risk Level"
