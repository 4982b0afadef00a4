import datetime
import logging
from decimal import Decimal
from io import BytesIO
from pathlib import Path
from typing import List, Tuple, Union

import openpyxl
from openpyxl.styles import Border, Side, Alignment, Font
from openpyxl.worksheet.worksheet import Worksheet

from .config import settings
from .exceptions import ReportError, ReportReason
from .models import SaleRecord
from .store import SeasonStore

logger = logging.getLogger(__name__)


class SalesReportGenerator:
    """Ryot Sugar Coupon Statement: sales in a date range plus a TOTAL row"""

    # Column set and order are read by factory accounting; keep them stable
    HEADERS = [
        "Division",
        "Section",
        "Coupon No",
        "Ryot Number",
        "Ryot Name",
        "Village",
        "Cane Wt",
        "Eligible Qty",
        "Sugar Rate (Per KG)",
        "Amt In Rs",
    ]
    COLUMN_WIDTHS = {
        'A': 12, 'B': 12, 'C': 10, 'D': 14, 'E': 20,
        'F': 20, 'G': 15, 'H': 10, 'I': 12, 'J': 16
    }
    TOTAL_LABEL = "TOTAL"
    SHEET_TITLE = "Sales Report"
    BACKUP_SHEET_TITLE = "SalesBackup"

    TITLE_FONT = Font(bold=True, size=12)
    HEADER_FONT = Font(bold=True)
    DATA_FONT = Font()
    TOTAL_FONT = Font(bold=True)

    # header row index (1-based): two title rows, a blank row, then headers
    HEADER_ROW = 4

    def __init__(self, store: SeasonStore, title_lines: List[str] = None):
        self.store = store
        self.title_lines = title_lines or settings.report_title_lines

    @staticmethod
    def normalize_range(from_date: datetime.date, to_date: datetime.date
                        ) -> Tuple[datetime.datetime, datetime.datetime]:
        """Whole calendar days: from 00:00:00.000 through 23:59:59.999"""
        if isinstance(from_date, datetime.datetime):
            from_date = from_date.date()
        if isinstance(to_date, datetime.datetime):
            to_date = to_date.date()
        if from_date > to_date:
            raise ReportError(ReportReason.INVALID_RANGE)
        start = datetime.datetime.combine(from_date, datetime.time(0, 0, 0, 0))
        end = datetime.datetime.combine(to_date, datetime.time(23, 59, 59, 999000))
        return start, end

    def query_sales(self, from_date: datetime.date, to_date: datetime.date) -> List[SaleRecord]:
        start, end = self.normalize_range(from_date, to_date)
        sales = self.store.sales_between(start, end)
        if not sales:
            logger.warning(f"[Sales report] no sales between {start} and {end}")
            raise ReportError(ReportReason.NO_DATA)
        return sales

    def build_rows(self, sales: List[SaleRecord]) -> Tuple[List[str], List[list], list]:
        """Header, data rows and the TOTAL row, computed from the sale records alone"""
        rows = []
        total_cane = Decimal("0")
        total_qty = Decimal("0")
        total_amount = Decimal("0")
        for sale in sales:
            rows.append([
                sale.division,
                sale.section,
                sale.coupon_no,
                sale.ryot_number,
                sale.ryot_name,
                sale.village,
                sale.cane_weight,
                sale.sugar_quantity,
                sale.sugar_rate,
                sale.amount,
            ])
            total_cane += sale.cane_weight
            total_qty += sale.sugar_quantity
            total_amount += sale.amount

        totals = [self.TOTAL_LABEL, "", "", "", "", "", total_cane, total_qty, "", total_amount]
        return list(self.HEADERS), rows, totals

    def add_border(self, ws: Worksheet, start_row: int, end_row: int, cols: List[str]):
        """Thin border around every cell of the region"""
        thin_border = Border(
            left=Side(style='thin'),
            right=Side(style='thin'),
            top=Side(style='thin'),
            bottom=Side(style='thin')
        )
        for row in range(start_row, end_row + 1):
            for col in cols:
                ws[f"{col}{row}"].border = thin_border

    def _write_row(self, ws: Worksheet, row_idx: int, values: list, font: Font):
        alignment = Alignment(horizontal='center', vertical='center', wrap_text=True)
        for col_idx, value in enumerate(values, start=1):
            cell = ws.cell(row=row_idx, column=col_idx)
            cell.value = float(value) if isinstance(value, Decimal) else value
            cell.font = font
            cell.alignment = alignment

    def _populate_sheet(self, ws: Worksheet, header: List[str], rows: List[list], totals: list):
        cols = list(self.COLUMN_WIDTHS.keys())

        for i, line in enumerate(self.title_lines, start=1):
            ws.cell(row=i, column=1).value = line
            ws.cell(row=i, column=1).font = self.TITLE_FONT

        self._write_row(ws, self.HEADER_ROW, header, self.HEADER_FONT)
        for i, values in enumerate(rows, start=1):
            self._write_row(ws, self.HEADER_ROW + i, values, self.DATA_FONT)
        total_row_idx = self.HEADER_ROW + len(rows) + 1
        self._write_row(ws, total_row_idx, totals, self.TOTAL_FONT)

        for row in range(self.HEADER_ROW + 1, total_row_idx + 1):
            for col in ('G', 'H', 'I', 'J'):
                ws[f"{col}{row}"].number_format = '0.00'

        self.add_border(ws, self.HEADER_ROW, total_row_idx, cols)
        for col, width in self.COLUMN_WIDTHS.items():
            ws.column_dimensions[col].width = width

    def render(self, sales: List[SaleRecord]) -> bytes:
        header, rows, totals = self.build_rows(sales)
        wb = openpyxl.Workbook()
        ws = wb.active
        ws.title = self.SHEET_TITLE
        self._populate_sheet(ws, header, rows, totals)

        buffer = BytesIO()
        wb.save(buffer)
        return buffer.getvalue()

    def export_range(self, from_date: datetime.date, to_date: datetime.date) -> bytes:
        """Build the statement workbook for [from_date, to_date]"""
        sales = self.query_sales(from_date, to_date)
        content = self.render(sales)
        logger.info(f"[Sales report] {from_date} ~ {to_date}: {len(sales)} sales exported")
        return content

    def backup_workbook(self) -> bytes:
        """Raw dump of sales_table, taken before a season reset"""
        sales = self.store.all_sales()
        wb = openpyxl.Workbook()
        ws = wb.active
        ws.title = self.BACKUP_SHEET_TITLE
        fields = list(SaleRecord.model_fields.keys())
        ws.append(fields)
        for sale in sales:
            ws.append(list(sale.model_dump(mode="json").values()))

        buffer = BytesIO()
        wb.save(buffer)
        logger.info(f"[Sales backup] {len(sales)} sales dumped")
        return buffer.getvalue()

    def write_backup(self, output_path: Union[str, Path]) -> str:
        output_path = Path(output_path) if isinstance(output_path, str) else output_path
        output_path.parent.mkdir(parents=True, exist_ok=True)
        output_path.write_bytes(self.backup_workbook())
        logger.info(f"[Sales backup] written to {output_path}")
        return str(output_path)
