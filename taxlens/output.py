"""Excel export of a comprehensive analysis.

write_action_plan_workbook produces the CPA-facing action plan:
- Summary: headline totals, risk level, per-year tax
- Recommendations: priority-sorted actions
- Timeline: deadline-sorted actions
- Findings: single-year findings with statute deadlines
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from pathlib import Path

from openpyxl import Workbook
from openpyxl.styles import Alignment, Font, PatternFill
from openpyxl.worksheet.worksheet import Worksheet

from taxlens.analysis.models import ComprehensiveAnalysisResult
from taxlens.core.logging import get_logger

logger = get_logger(__name__)

CURRENCY_FORMAT = '"$"#,##0.00'
PERCENT_FORMAT = "0.00%"
HEADER_FILL = PatternFill(start_color="DAEEF3", end_color="DAEEF3", fill_type="solid")
CRITICAL_FILL = PatternFill(start_color="F8CBAD", end_color="F8CBAD", fill_type="solid")
MAX_COLUMN_WIDTH = 60


def _format_decimal(value: Decimal | None) -> float | None:
    """Convert Decimal to float for Excel."""
    if value is None:
        return None
    return float(value)


def _auto_fit_columns(worksheet: Worksheet) -> None:
    """Size columns to their longest value, capped at MAX_COLUMN_WIDTH."""
    for column_cells in worksheet.columns:
        max_length = max(
            (len(str(cell.value)) for cell in column_cells if cell.value is not None),
            default=0,
        )
        column = column_cells[0].column_letter
        worksheet.column_dimensions[column].width = min(max_length + 2, MAX_COLUMN_WIDTH)


def _write_header(worksheet: Worksheet, headers: list[str]) -> None:
    for col, header in enumerate(headers, 1):
        cell = worksheet.cell(row=1, column=col, value=header)
        cell.font = Font(bold=True)
        cell.alignment = Alignment(horizontal="center", wrap_text=True)
        cell.fill = HEADER_FILL
    worksheet.freeze_panes = "A2"


# =============================================================================
# Sheets
# =============================================================================


def _add_summary_sheet(workbook: Workbook, result: ComprehensiveAnalysisResult) -> None:
    ws = workbook.active
    ws.title = "Summary"
    summary = result.summary

    ws["A1"] = "Transcript Analysis Action Plan"
    ws["A1"].font = Font(bold=True, size=14)
    ws["A2"] = f"Analysis ID: {result.analysis_id}"
    ws["A3"] = f"Generated: {datetime.now().strftime('%Y-%m-%d %H:%M')}"
    ws["A4"] = f"Years Analyzed: {', '.join(str(y) for y in summary.years_analyzed)}"

    ws["A6"] = "OVERVIEW"
    ws["A6"].font = Font(bold=True)
    amounts = [
        ("Potential Refund (multi-year patterns)", summary.total_potential_refund),
        ("Potential Penalty Abatement", summary.total_penalty_abatement),
        ("Refunds From Findings", summary.total_finding_refunds),
    ]
    row = 7
    for label, amount in amounts:
        ws[f"A{row}"] = label
        ws[f"B{row}"] = _format_decimal(amount)
        ws[f"B{row}"].number_format = CURRENCY_FORMAT
        row += 1
    ws[f"A{row}"] = "Risk Level"
    ws[f"B{row}"] = summary.risk_level.value.upper()
    ws[f"B{row}"].font = Font(bold=True)
    row += 1
    ws[f"A{row}"] = "Confidence"
    ws[f"B{row}"] = summary.confidence_score
    ws[f"B{row}"].number_format = PERCENT_FORMAT
    row += 2

    ws[f"A{row}"] = "TAX BY YEAR"
    ws[f"A{row}"].font = Font(bold=True)
    row += 1
    for col, header in enumerate(
        ["Year", "Filing Status", "Gross Income", "Federal Tax", "State Tax", "Effective Rate"], 1
    ):
        ws.cell(row=row, column=col, value=header).font = Font(bold=True)
    row += 1
    for year in result.years:
        calc = year.tax_calculation
        ws.cell(row=row, column=1, value=year.tax_year)
        ws.cell(row=row, column=2, value=calc.filing_status.value)
        ws.cell(row=row, column=3, value=_format_decimal(calc.gross_income))
        ws.cell(row=row, column=4, value=_format_decimal(calc.federal_tax))
        ws.cell(row=row, column=5, value=_format_decimal(calc.state_tax))
        ws.cell(row=row, column=6, value=float(calc.effective_rate))
        for col in (3, 4, 5):
            ws.cell(row=row, column=col).number_format = CURRENCY_FORMAT
        ws.cell(row=row, column=6).number_format = PERCENT_FORMAT
        row += 1

    if summary.highest_priority_issues:
        row += 1
        ws[f"A{row}"] = "TOP ISSUES"
        ws[f"A{row}"].font = Font(bold=True)
        for issue in summary.highest_priority_issues:
            row += 1
            ws[f"A{row}"] = issue

    _auto_fit_columns(ws)


def _add_recommendations_sheet(workbook: Workbook, result: ComprehensiveAnalysisResult) -> None:
    ws = workbook.create_sheet("Recommendations")
    _write_header(
        ws,
        [
            "Priority",
            "Action",
            "Description",
            "Potential Value",
            "Timeframe",
            "Risk Level",
            "Source",
            "Tax Year",
            "Statute Deadline",
        ],
    )
    for row, rec in enumerate(result.recommendations, 2):
        ws.cell(row=row, column=1, value=rec.priority)
        ws.cell(row=row, column=2, value=rec.action)
        ws.cell(row=row, column=3, value=rec.description)
        ws.cell(row=row, column=4, value=_format_decimal(rec.potential_value))
        ws.cell(row=row, column=4).number_format = CURRENCY_FORMAT
        ws.cell(row=row, column=5, value=rec.timeframe)
        ws.cell(row=row, column=6, value=rec.risk_level.value)
        ws.cell(row=row, column=7, value=rec.source.value)
        ws.cell(row=row, column=8, value=rec.tax_year)
        ws.cell(row=row, column=9, value=rec.statute.deadline if rec.statute else None)
    _auto_fit_columns(ws)


def _add_timeline_sheet(workbook: Workbook, result: ComprehensiveAnalysisResult) -> None:
    ws = workbook.create_sheet("Timeline")
    _write_header(
        ws, ["Deadline", "Action", "Importance", "Description", "Estimated Value", "Tax Year"]
    )
    for row, entry in enumerate(result.timeline, 2):
        ws.cell(row=row, column=1, value=entry.deadline)
        ws.cell(row=row, column=2, value=entry.action)
        ws.cell(row=row, column=3, value=entry.importance.value)
        ws.cell(row=row, column=4, value=entry.description)
        ws.cell(row=row, column=5, value=_format_decimal(entry.estimated_value))
        ws.cell(row=row, column=5).number_format = CURRENCY_FORMAT
        ws.cell(row=row, column=6, value=entry.tax_year)
        if entry.importance.value == "critical":
            for col in range(1, 7):
                ws.cell(row=row, column=col).fill = CRITICAL_FILL
    _auto_fit_columns(ws)


def _add_findings_sheet(workbook: Workbook, result: ComprehensiveAnalysisResult) -> None:
    ws = workbook.create_sheet("Findings")
    _write_header(
        ws,
        [
            "Tax Year",
            "Type",
            "Severity",
            "Title",
            "Description",
            "Potential Refund",
            "Action Required",
            "Confidence",
            "Statute Deadline",
            "Days Remaining",
        ],
    )
    row = 2
    for year in result.years:
        for finding in year.findings:
            ws.cell(row=row, column=1, value=finding.tax_year)
            ws.cell(row=row, column=2, value=finding.finding_type.value)
            ws.cell(row=row, column=3, value=finding.severity.value)
            ws.cell(row=row, column=4, value=finding.title)
            ws.cell(row=row, column=5, value=finding.description)
            ws.cell(row=row, column=6, value=_format_decimal(finding.potential_refund))
            ws.cell(row=row, column=6).number_format = CURRENCY_FORMAT
            ws.cell(row=row, column=7, value=finding.action_required)
            ws.cell(row=row, column=8, value=finding.confidence.value)
            ws.cell(row=row, column=9, value=finding.statute.deadline)
            ws.cell(row=row, column=10, value=finding.statute.days_remaining)
            row += 1
    _auto_fit_columns(ws)


def write_action_plan_workbook(result: ComprehensiveAnalysisResult, output_path: Path) -> Path:
    """Write the analysis as an Excel action plan.

    Args:
        result: Output of the analysis engine.
        output_path: Where to save the xlsx file; parent directories are
            created.

    Returns:
        Path to the generated file.

    Example:
        >>> write_action_plan_workbook(result, Path("/tmp/output/plan.xlsx"))
    """
    workbook = Workbook()

    _add_summary_sheet(workbook, result)
    _add_recommendations_sheet(workbook, result)
    _add_timeline_sheet(workbook, result)
    _add_findings_sheet(workbook, result)

    output_path.parent.mkdir(parents=True, exist_ok=True)
    workbook.save(output_path)
    logger.info(
        "action_plan_written",
        path=str(output_path),
        recommendations=len(result.recommendations),
    )
    return output_path
