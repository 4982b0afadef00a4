"""
Season roster parsing.

Reads the factory workbook (first sheet, row 0 is a header) into FarmerRecord
values. Columns are positional, not looked up by header text:

    0 S.No (ignored)   4 ryot number     8  cane weight
    1 division         5 ryot name       9  eligible qty
    2 section          6 father name     10 sugar rate
    3 coupon no        7 village         11 amount (recomputed)
"""
import io
import logging
from decimal import Decimal, InvalidOperation
from typing import Any, Iterator, List, Optional, Sequence

import pandas as pd

from ..config import settings
from ..exceptions import ParseError, ParseReason
from ..models import FarmerRecord, QUANTITY_PLACES, RATE_PLACES, compute_amount, to_scale

logger = logging.getLogger(__name__)

COL_DIVISION = 1
COL_SECTION = 2
COL_COUPON_NO = 3
COL_RYOT_NUMBER = 4
COL_RYOT_NAME = 5
COL_FATHER_NAME = 6
COL_VILLAGE = 7
COL_CANE_WT = 8
COL_ELIGIBLE_QTY = 9
COL_SUGAR_RATE = 10
COL_AMOUNT = 11

EXCEL_EXTENSIONS = (".xlsx", ".xls")
CSV_EXTENSIONS = (".csv",)


def _cell(row: Sequence[Any], index: int) -> Any:
    return row[index] if index < len(row) else None


def _is_blank(value: Any) -> bool:
    if value is None:
        return True
    try:
        if pd.isna(value):
            return True
    except (TypeError, ValueError):
        pass
    return str(value).strip() == ""


def safe_str(value: Any) -> str:
    """Cell as trimmed text; NaN and None become empty"""
    if _is_blank(value):
        return ""
    if isinstance(value, float) and value.is_integer():
        # Excel hands numeric coupon / ryot numbers back as floats
        return str(int(value))
    return str(value).strip()


def safe_decimal(value: Any) -> Optional[Decimal]:
    """Numeric cell as Decimal, None when blank or not a number"""
    if _is_blank(value):
        return None
    try:
        number = Decimal(str(value).strip().replace(",", ""))
    except (InvalidOperation, ValueError):
        return None
    if not number.is_finite():
        return None
    return number


def parse_rate(value: Any, default_rate: Decimal) -> Decimal:
    rate = safe_decimal(value)
    if rate is not None:
        rate = to_scale(rate, RATE_PLACES)
    if rate is None or rate <= 0:
        return to_scale(default_rate, RATE_PLACES)
    return rate


def row_to_record(row: Sequence[Any], default_rate: Decimal) -> Optional[FarmerRecord]:
    """Build a FarmerRecord from one data row, None when the row has no ryot number"""
    ryot_number = safe_str(_cell(row, COL_RYOT_NUMBER))
    if not ryot_number:
        return None

    eligible_qty = to_scale(safe_decimal(_cell(row, COL_ELIGIBLE_QTY)) or Decimal("0"), QUANTITY_PLACES)
    sugar_rate = parse_rate(_cell(row, COL_SUGAR_RATE), default_rate)

    return FarmerRecord(
        division=safe_str(_cell(row, COL_DIVISION)),
        section=safe_str(_cell(row, COL_SECTION)),
        coupon_no=safe_str(_cell(row, COL_COUPON_NO)),
        ryot_number=ryot_number,
        ryot_name=safe_str(_cell(row, COL_RYOT_NAME)),
        father_name=safe_str(_cell(row, COL_FATHER_NAME)),
        village=safe_str(_cell(row, COL_VILLAGE)),
        cane_weight=to_scale(safe_decimal(_cell(row, COL_CANE_WT)) or Decimal("0"), QUANTITY_PLACES),
        eligible_quantity=eligible_qty,
        sugar_rate=sugar_rate,
        amount=compute_amount(eligible_qty, sugar_rate),
    )


def _iter_records(rows: Sequence[Sequence[Any]], default_rate: Decimal) -> Iterator[FarmerRecord]:
    seen = set()
    for idx, row in enumerate(rows[1:], start=1):
        if not row or all(_is_blank(c) for c in row):
            continue

        record = row_to_record(row, default_rate)
        if record is None:
            logger.debug(f"[Roster parse] row {idx + 1} skipped: no ryot number")
            continue

        # first occurrence of a ryot number is authoritative
        if record.ryot_number in seen:
            logger.debug(f"[Roster parse] row {idx + 1} skipped: duplicate ryot {record.ryot_number}")
            continue
        seen.add(record.ryot_number)

        yield record


def parse(raw_sheet: Sequence[Sequence[Any]], default_rate: Optional[Decimal] = None) -> Iterator[FarmerRecord]:
    """
    Turn a cell grid into deduplicated FarmerRecords.

    Raises ParseError(EMPTY_INPUT) straight away when the grid has no rows
    below the header. The returned iterator is lazy and can be consumed once.
    """
    if not raw_sheet or len(raw_sheet) < 2:
        raise ParseError(ParseReason.EMPTY_INPUT)
    rate = Decimal(default_rate) if default_rate is not None else settings.DEFAULT_SUGAR_RATE
    return _iter_records(raw_sheet, rate)


def read_sheet(content: bytes, filename: str) -> List[List[Any]]:
    """Decode the first worksheet of an uploaded .xlsx / .xls / .csv into a grid of cells"""
    name = (filename or "").lower()
    if not name.endswith(EXCEL_EXTENSIONS + CSV_EXTENSIONS):
        raise ParseError(ParseReason.INVALID_FILE_TYPE)
    if not content:
        raise ParseError(ParseReason.EMPTY_INPUT)

    try:
        if name.endswith(CSV_EXTENSIONS):
            df = pd.read_csv(io.BytesIO(content), header=None, dtype=str, keep_default_na=False)
        else:
            engine = "openpyxl" if name.endswith(".xlsx") else "xlrd"
            df = pd.read_excel(io.BytesIO(content), sheet_name=0, header=None, dtype=str, engine=engine)
    except pd.errors.EmptyDataError as e:
        raise ParseError(ParseReason.EMPTY_INPUT) from e
    except Exception as e:
        logger.error(f"[Roster parse] cannot read {filename}: {str(e)}")
        raise ParseError(ParseReason.UNREADABLE, f"Error reading Excel file: {str(e)}") from e

    df = df.fillna("")
    return df.values.tolist()


def parse_upload(content: bytes, filename: str, default_rate: Optional[Decimal] = None) -> List[FarmerRecord]:
    """Read an uploaded workbook and return the full deduplicated roster"""
    grid = read_sheet(content, filename)
    records = list(parse(grid, default_rate))
    logger.info(f"[Roster parse] {filename}: {len(grid) - 1} data rows -> {len(records)} farmers")
    return records
