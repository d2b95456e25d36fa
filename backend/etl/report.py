"""
Quarantine Review Report - Excel workbook for the humans who clear the quarantine.

Sheets:
1. Run Summary - one row per processed file with its counts
2. Quarantine - one row per quarantined entry with reason and payload
"""
import json
from io import BytesIO
from typing import List, Dict, Any, Optional

from openpyxl import Workbook
from openpyxl.styles import Font, PatternFill, Alignment, Border, Side
from openpyxl.utils import get_column_letter


class QuarantineReport:

    SUMMARY_HEADERS = ["File", "Detected Type", "Status", "Total Rows", "Clean", "Quarantined",
                       "Uploaded", "Already Existed", "Errored", "Error"]
    QUARANTINE_HEADERS = ["Created At", "Source", "Reason", "Original Data"]

    def __init__(self):
        self.header_font = Font(bold=True, color="FFFFFF")
        self.header_fill = PatternFill(start_color="1F3A5F", end_color="1F3A5F", fill_type="solid")
        self.warning_fill = PatternFill(start_color="FEE2E2", end_color="FEE2E2", fill_type="solid")
        self.success_fill = PatternFill(start_color="DCFCE7", end_color="DCFCE7", fill_type="solid")
        self.border = Border(bottom=Side(style='thin', color='DDDDDD'))

    def generate(self, entries: List[Dict[str, Any]], results: Optional[List[Dict[str, Any]]] = None) -> BytesIO:
        output = BytesIO()
        wb = Workbook()

        # ════════════════════════════════════════════════════════════════
        # SHEET 1: RUN SUMMARY
        # ════════════════════════════════════════════════════════════════
        ws1 = wb.active
        ws1.title = "Run Summary"
        self._write_header(ws1, self.SUMMARY_HEADERS)

        for row_idx, result in enumerate(results or [], 2):
            row_data = [
                result.get("filename"),
                result.get("file_type"),
                "OK" if result.get("success") else "FAILED",
                result.get("total_rows", 0),
                result.get("clean_rows", 0),
                result.get("quarantined_rows", 0),
                result.get("uploaded", 0),
                result.get("already_existed", 0),
                result.get("errored", 0),
                result.get("error") or "",
            ]
            for col_idx, val in enumerate(row_data, 1):
                cell = ws1.cell(row=row_idx, column=col_idx, value=val)
                cell.border = self.border
            status_cell = ws1.cell(row=row_idx, column=3)
            clean = result.get("success") and not result.get("quarantined_rows")
            status_cell.fill = self.success_fill if clean else self.warning_fill

        self._auto_width(ws1)
        ws1.freeze_panes = "A2"

        # ════════════════════════════════════════════════════════════════
        # SHEET 2: QUARANTINE
        # ════════════════════════════════════════════════════════════════
        ws2 = wb.create_sheet("Quarantine")
        self._write_header(ws2, self.QUARANTINE_HEADERS)

        if entries:
            for row_idx, entry in enumerate(entries, 2):
                row_data = [
                    entry.get("created_at", ""),
                    entry.get("source_table", ""),
                    entry.get("error_reason", ""),
                    json.dumps(entry.get("original_data", {}), default=str, ensure_ascii=False),
                ]
                for col_idx, val in enumerate(row_data, 1):
                    cell = ws2.cell(row=row_idx, column=col_idx, value=val)
                    cell.border = self.border
        else:
            ws2.cell(row=2, column=1, value="No quarantined rows").fill = self.success_fill

        self._auto_width(ws2)
        ws2.freeze_panes = "A2"

        wb.save(output)
        output.seek(0)
        return output

    def _write_header(self, ws, headers: List[str]) -> None:
        for col_idx, header in enumerate(headers, 1):
            cell = ws.cell(row=1, column=col_idx, value=header)
            cell.font = self.header_font
            cell.fill = self.header_fill
            cell.alignment = Alignment(horizontal='center')

    def _auto_width(self, ws) -> None:
        """Auto-adjust column widths"""
        for col_idx, column in enumerate(ws.columns, 1):
            max_length = 0
            for cell in column:
                if cell.value is not None:
                    max_length = max(max_length, len(str(cell.value)))
            ws.column_dimensions[get_column_letter(col_idx)].width = min(max_length + 4, 60)
