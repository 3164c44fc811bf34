"""
Excel report of reconciliation runs.

Creates a workbook with two sheets:
1. Results - one row per balance (per symbol for multi-asset balances)
2. Summary - one row per site run with its outcome and exit code
"""
from decimal import Decimal
from typing import List, Optional

from openpyxl import Workbook
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side
from openpyxl.utils import get_column_letter

from reconciler.engine import RunReport


# Style definitions
HEADER_FONT = Font(bold=True, color="FFFFFF")
HEADER_FILL = PatternFill(start_color="4472C4", end_color="4472C4", fill_type="solid")
MISMATCH_FILL = PatternFill(start_color="FFEB9C", end_color="FFEB9C", fill_type="solid")
ERROR_FILL = PatternFill(start_color="FFC7CE", end_color="FFC7CE", fill_type="solid")
ALT_ROW_FILL = PatternFill(start_color="F2F2F2", end_color="F2F2F2", fill_type="solid")
THIN_BORDER = Border(
    left=Side(style='thin'),
    right=Side(style='thin'),
    top=Side(style='thin'),
    bottom=Side(style='thin')
)
AMOUNT_FORMAT = '#,##0.########'
DATETIME_FORMAT = 'DD-MMM-YYYY HH:MM:SS'

RESULT_HEADERS = ["Site", "Balance", "Symbol", "Remote", "Ledger", "Diff", "Status", "Error"]
SUMMARY_HEADERS = [
    "Site", "Started", "Finished", "Matched", "Mismatched", "Errors", "Outcome", "Exit Code", "Error",
]


def generate_report(reports: List[RunReport], output_path: str) -> str:
    """
    Write an Excel workbook describing one or more runs.

    Args:
        reports: Run reports, one per site
        output_path: Path to save the Excel file

    Returns:
        Path to the generated file
    """
    wb = Workbook()

    # Remove default sheet
    if 'Sheet' in wb.sheetnames:
        del wb['Sheet']

    _create_results_sheet(wb, reports)
    _create_summary_sheet(wb, reports)

    wb.save(output_path)
    return output_path


def _create_results_sheet(wb: Workbook, reports: List[RunReport]) -> None:
    ws = wb.create_sheet("Results")
    _write_header(ws, RESULT_HEADERS)

    row_idx = 2
    for report in reports:
        for result in report.results:
            values = [
                report.site,
                result.tracked_balance_id,
                result.symbol or "",
                _as_number(result.actual),
                _as_number(result.expected),
                _as_number(result.diff),
                result.status,
                result.error or "",
            ]
            for col, value in enumerate(values, 1):
                cell = ws.cell(row=row_idx, column=col, value=value)
                cell.border = THIN_BORDER
                if col in (4, 5, 6) and value is not None:
                    cell.number_format = AMOUNT_FORMAT

            fill = _status_fill(result.status, row_idx)
            if fill is not None:
                for col in range(1, len(RESULT_HEADERS) + 1):
                    ws.cell(row=row_idx, column=col).fill = fill
            row_idx += 1

    for col, width in enumerate([14, 18, 10, 18, 18, 14, 12, 50], 1):
        ws.column_dimensions[get_column_letter(col)].width = width

    ws.auto_filter.ref = f"A1:{get_column_letter(len(RESULT_HEADERS))}{max(row_idx - 1, 1)}"
    ws.freeze_panes = "A2"


def _create_summary_sheet(wb: Workbook, reports: List[RunReport]) -> None:
    ws = wb.create_sheet("Summary")
    _write_header(ws, SUMMARY_HEADERS)

    for row_idx, report in enumerate(reports, 2):
        values = [
            report.site,
            report.started_at,
            report.finished_at,
            report.matched,
            report.mismatched,
            report.errors,
            report.outcome.value,
            int(report.exit_code),
            report.error or "",
        ]
        for col, value in enumerate(values, 1):
            cell = ws.cell(row=row_idx, column=col, value=value)
            cell.border = THIN_BORDER
            if col in (2, 3):
                cell.number_format = DATETIME_FORMAT

    # Worst case over all runs
    total_row = len(reports) + 3
    ws.cell(row=total_row, column=1, value="WORST EXIT CODE").font = Font(bold=True)
    worst = max((int(r.exit_code) for r in reports), default=0)
    ws.cell(row=total_row, column=8, value=worst).font = Font(bold=True)

    for col, width in enumerate([14, 22, 22, 10, 12, 10, 14, 10, 50], 1):
        ws.column_dimensions[get_column_letter(col)].width = width

    ws.freeze_panes = "A2"


def _write_header(ws, headers: List[str]) -> None:
    for col, header in enumerate(headers, 1):
        cell = ws.cell(row=1, column=col, value=header)
        cell.font = HEADER_FONT
        cell.fill = HEADER_FILL
        cell.alignment = Alignment(horizontal='center')


def _status_fill(status: str, row_idx: int) -> Optional[PatternFill]:
    if status == "ERROR":
        return ERROR_FILL
    if status == "MISMATCH":
        return MISMATCH_FILL
    if row_idx % 2 == 0:
        return ALT_ROW_FILL
    return None


def _as_number(value: Optional[Decimal]) -> Optional[float]:
    # openpyxl stores numbers as floats; the exact text is in the logs
    if value is None:
        return None
    return float(value)
