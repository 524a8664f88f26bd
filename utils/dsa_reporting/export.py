# utils/dsa_reporting/export.py
"""
Export, Backup and Restore for DSA Reporting

- CSV export of the visible records (UTF-8 with BOM so Excel reads it)
- Full JSON backup and validated JSON restore
- Formatted Excel report (summary + records) via openpyxl
"""

import csv
import io
import json
import logging
from datetime import date, datetime
from io import BytesIO
from typing import Dict, Iterable, List, Optional, Tuple, Union

from openpyxl import Workbook
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side
from openpyxl.utils import get_column_letter

from .constants import (
    CSV_COLUMNS,
    EXCEL_STYLES,
    LEGACY_STATUS_ALIASES,
    NUMERIC_FIELDS,
    VALID_STATUSES,
)
from .exceptions import ValidationError
from .models import SalesRecord

logger = logging.getLogger(__name__)

CSV_BOM = '\ufeff'

# Statuses a backup row may carry
RESTORABLE_STATUSES = set(VALID_STATUSES) | set(LEGACY_STATUS_ALIASES)


def export_filename(kind: str, on: Optional[date] = None) -> str:
    """'csv' -> DSA_Report_<date>.csv, 'json' -> backup_dsa_full_<date>.json, 'xlsx' -> ..."""
    stamp = (on or date.today()).isoformat()
    names = {
        'csv': f"DSA_Report_{stamp}.csv",
        'json': f"backup_dsa_full_{stamp}.json",
        'xlsx': f"DSA_Report_{stamp}.xlsx",
    }
    return names[kind]


# =============================================================================
# CSV / JSON
# =============================================================================

def to_csv(records: Iterable[SalesRecord]) -> str:
    """
    CSV text with a leading BOM. Strings are double-quoted, numbers are not.

    Columns: ID, DSA Code, Name, DSS, SM, ReportDate, Status, ApprovalStatus,
    then the metric columns.
    """
    buffer = io.StringIO()
    writer = csv.writer(buffer, quoting=csv.QUOTE_NONNUMERIC, lineterminator='\n')
    writer.writerow([header for header, _ in CSV_COLUMNS])
    for record in records:
        writer.writerow([
            getattr(record, attr) if getattr(record, attr) is not None else ''
            for _, attr in CSV_COLUMNS
        ])
    return CSV_BOM + buffer.getvalue()


def to_json_backup(records: Iterable[SalesRecord]) -> str:
    """Full array dump of the records in document form."""
    return json.dumps(
        [r.to_dict() for r in records if not r.is_placeholder],
        ensure_ascii=False,
        indent=2,
    )


def _is_restorable(doc) -> bool:
    return (
        isinstance(doc, dict)
        and bool(doc.get('dsaCode'))
        and bool(doc.get('reportDate'))
        and bool(doc.get('id'))
        and doc.get('status') in RESTORABLE_STATUSES
    )


def parse_backup(content: Union[str, bytes]) -> Tuple[List[SalesRecord], int]:
    """
    Validate a JSON backup.

    Returns:
        (valid_records, total_rows_in_file)

    Raises:
        ValidationError: Unreadable JSON, not an array, empty, or no valid rows
    """
    if isinstance(content, bytes):
        content = content.decode('utf-8-sig')

    try:
        data = json.loads(content)
    except json.JSONDecodeError as e:
        raise ValidationError("Could not read the backup file; please check it is valid JSON") from e

    if not isinstance(data, list):
        raise ValidationError("Invalid backup: the data must be a list of records")
    if not data:
        raise ValidationError("The backup file is empty")

    valid = [SalesRecord.from_dict(d) for d in data if _is_restorable(d)]
    if not valid:
        raise ValidationError("No valid records found in the backup file")

    if len(valid) < len(data):
        logger.warning(f"Backup: skipped {len(data) - len(valid)} invalid row(s) of {len(data)}")
    return valid, len(data)


# =============================================================================
# EXCEL REPORT
# =============================================================================

class SalesExport:
    """
    Excel report generator for DSA reports.

    Usage:
        exporter = SalesExport()
        excel_bytes = exporter.create_report(records, stats, filters)

        st.download_button(
            label="Download Excel",
            data=excel_bytes,
            file_name=export_filename('xlsx'),
            mime="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
        )
    """

    def __init__(self):
        self.wb = None
        self._init_styles()

    def _init_styles(self):
        self.header_fill = PatternFill(
            start_color=EXCEL_STYLES['header_fill_color'],
            end_color=EXCEL_STYLES['header_fill_color'],
            fill_type='solid'
        )
        self.header_font = Font(bold=True, color=EXCEL_STYLES['header_font_color'], size=11)
        self.title_font = Font(bold=True, size=16)
        self.subtitle_font = Font(bold=True, size=12)

        thin = Side(style='thin', color='000000')
        self.cell_border = Border(left=thin, right=thin, top=thin, bottom=thin)

        self.center_align = Alignment(horizontal='center', vertical='center')
        self.right_align = Alignment(horizontal='right', vertical='center')

        self.currency_format = EXCEL_STYLES['currency_format']

    def create_report(
        self,
        records: List[SalesRecord],
        stats: Dict,
        filters: Dict,
    ) -> BytesIO:
        """
        Args:
            records: Reconciled records as shown in the table
            stats: Overview metrics (SalesMetrics.calculate_overview_metrics)
            filters: start_date, end_date, status, sm, dss labels

        Returns:
            BytesIO containing the workbook
        """
        self.wb = Workbook()
        self._create_summary_sheet(stats, filters)
        self._create_records_sheet(records)

        output = BytesIO()
        self.wb.save(output)
        output.seek(0)

        logger.info(f"Excel report created ({len(records)} rows)")
        return output

    def _create_summary_sheet(self, stats: Dict, filters: Dict):
        ws = self.wb.active
        ws.title = "Summary"

        row = 1
        ws.cell(row=row, column=1, value="DSA Sales Report").font = self.title_font
        ws.merge_cells(start_row=row, start_column=1, end_row=row, end_column=4)
        row += 2

        info_rows = [
            ("Date Range:", f"{filters.get('start_date', '')} to {filters.get('end_date', '')}"),
            ("Status:", filters.get('status', 'all')),
            ("SM:", filters.get('sm', 'all')),
            ("DSS:", filters.get('dss', 'all')),
            ("Generated:", datetime.now().strftime('%Y-%m-%d %H:%M')),
        ]
        for label, value in info_rows:
            ws.cell(row=row, column=1, value=label)
            ws.cell(row=row, column=2, value=value)
            row += 1
        row += 1

        ws.cell(row=row, column=1, value="Key Metrics").font = self.subtitle_font
        row += 1

        kpi_rows = [
            ("Total Volume", f"{stats.get('totalVolume', 0):,.0f}"),
            ("Direct Volume", f"{stats.get('totalDirectVolume', 0):,.0f}"),
            ("Total Apps", f"{stats.get('totalApps', 0):,.0f}"),
            ("Total Loans", f"{stats.get('totalLoans', 0):,.0f}"),
            ("FEOL Loans", f"{stats.get('totalLoansFEOL', 0):,.0f}"),
            ("CRC Loans", f"{stats.get('totalLoanCRC', 0):,.0f}"),
            ("Banca", f"{stats.get('totalBanca', 0):,.0f}"),
            ("Banca %", f"{stats.get('bancaPercentage', 0):.1f}%"),
            ("Pro-App", f"{stats.get('proApp', 0):.2f}"),
            ("Case Size", f"{stats.get('caseSize', 0):,.0f}"),
            ("Reported", f"{stats.get('reportedCount', 0)} / {stats.get('totalRecords', 0)}"),
            ("Activity Rate", f"{stats.get('activityRate', 0):.1f}%"),
        ]
        for label, value in kpi_rows:
            ws.cell(row=row, column=1, value=label)
            ws.cell(row=row, column=2, value=value).alignment = self.right_align
            row += 1

        ws.column_dimensions['A'].width = 25
        ws.column_dimensions['B'].width = 24

    def _create_records_sheet(self, records: List[SalesRecord]):
        ws = self.wb.create_sheet("Records")

        for col_idx, (header, attr) in enumerate(CSV_COLUMNS, 1):
            cell = ws.cell(row=1, column=col_idx, value=header)
            cell.fill = self.header_fill
            cell.font = self.header_font
            cell.alignment = self.center_align
            cell.border = self.cell_border
            ws.column_dimensions[get_column_letter(col_idx)].width = 12 if attr in NUMERIC_FIELDS else 18

        for row_idx, record in enumerate(records, 2):
            for col_idx, (_, attr) in enumerate(CSV_COLUMNS, 1):
                cell = ws.cell(row=row_idx, column=col_idx, value=getattr(record, attr))
                cell.border = self.cell_border
                if attr in NUMERIC_FIELDS:
                    cell.number_format = self.currency_format
                    cell.alignment = self.right_align

        ws.freeze_panes = 'A2'
