import datetime
from decimal import Decimal
from io import BytesIO
from unittest.mock import MagicMock

import openpyxl
import pytest

from sugar_coupons.exceptions import ReportError, ReportReason
from sugar_coupons.models import SaleRecord, PaymentMode
from sugar_coupons.orm_models import Sale
from sugar_coupons.reports import SalesReportGenerator

from .test_store import sale_row

TITLES = ["NSL SUGARS LTD., KOPPA UNIT", "Ryot Sugar Coupon Statement for Crushing Season -2024-25"]


@pytest.fixture
def dated_sales(store, session_factory):
    with session_factory() as db:
        db.add_all([
            Sale(**sale_row("R1", cane_wt=1000, sugar_qty=10, sugar_rate=31.5, amount=315),
                 sale_date=datetime.datetime(2025, 1, 1, 0, 0, 0, 1000)),
            Sale(**sale_row("R2", cane_wt=2500.5, sugar_qty=12.5, sugar_rate=40, amount=500),
                 sale_date=datetime.datetime(2025, 1, 2, 23, 59, 59, 998000)),
            Sale(**sale_row("R3", sugar_qty=1, sugar_rate=31.5, amount=31.5),
                 sale_date=datetime.datetime(2025, 1, 3, 0, 0, 0, 1000)),
            Sale(**sale_row("R0", sugar_qty=1, sugar_rate=31.5, amount=31.5),
                 sale_date=datetime.datetime(2024, 12, 31, 23, 59, 59, 998000)),
        ])
        db.commit()
    return store


@pytest.fixture
def generator(dated_sales):
    return SalesReportGenerator(dated_sales, title_lines=TITLES)


def sale(ryot, qty, amount, cane="0"):
    return SaleRecord(ryot_number=ryot, cane_weight=Decimal(cane), sugar_quantity=Decimal(qty),
                      sugar_rate=Decimal("31.5"), amount=Decimal(amount),
                      payment_mode=PaymentMode.CASH, collected_by="counter1@nslsugars.in")


class TestNormalizeRange:

    def test_covers_whole_days(self):
        start, end = SalesReportGenerator.normalize_range(datetime.date(2025, 1, 1), datetime.date(2025, 1, 2))

        assert start == datetime.datetime(2025, 1, 1, 0, 0, 0)
        assert end == datetime.datetime(2025, 1, 2, 23, 59, 59, 999000)

    def test_datetimes_are_truncated_to_days(self):
        start, end = SalesReportGenerator.normalize_range(
            datetime.datetime(2025, 1, 1, 15, 30), datetime.datetime(2025, 1, 1, 8, 0)
        )

        assert start == datetime.datetime(2025, 1, 1)
        assert end.date() == datetime.date(2025, 1, 1)

    def test_inverted_range(self):
        with pytest.raises(ReportError) as exc_info:
            SalesReportGenerator.normalize_range(datetime.date(2025, 1, 2), datetime.date(2025, 1, 1))

        assert exc_info.value.reason == ReportReason.INVALID_RANGE


class TestSalesReportGenerator:

    def test_range_is_inclusive_of_both_days(self, generator):
        sales = generator.query_sales(datetime.date(2025, 1, 1), datetime.date(2025, 1, 2))

        assert [s.ryot_number for s in sales] == ["R1", "R2"]

    def test_single_day(self, generator):
        sales = generator.query_sales(datetime.date(2025, 1, 3), datetime.date(2025, 1, 3))

        assert [s.ryot_number for s in sales] == ["R3"]

    def test_no_data(self, generator):
        with pytest.raises(ReportError) as exc_info:
            generator.query_sales(datetime.date(2025, 2, 1), datetime.date(2025, 2, 28))

        assert exc_info.value.reason == ReportReason.NO_DATA

    def test_invalid_range_skips_query(self):
        store = MagicMock()

        with pytest.raises(ReportError):
            SalesReportGenerator(store, title_lines=TITLES).export_range(
                datetime.date(2025, 1, 5), datetime.date(2025, 1, 1)
            )

        store.sales_between.assert_not_called()

    def test_build_rows_totals(self):
        generator = SalesReportGenerator(MagicMock(), title_lines=TITLES)
        sales = [sale("R1", "10", "315.00", cane="1000"), sale("R2", "12.5", "393.75", cane="2500.5")]

        header, rows, totals = generator.build_rows(sales)

        assert header == SalesReportGenerator.HEADERS
        assert len(header) == 10
        assert [r[3] for r in rows] == ["R1", "R2"]
        assert totals[0] == "TOTAL"
        assert totals[6] == Decimal("3500.5")
        assert totals[7] == Decimal("22.5")
        assert totals[9] == Decimal("708.75")
        assert totals[8] == ""

    def test_totals_on_empty_list(self):
        generator = SalesReportGenerator(MagicMock(), title_lines=TITLES)

        _, rows, totals = generator.build_rows([])

        assert rows == []
        assert totals[7] == Decimal("0")

    def test_workbook_layout(self, generator):
        content = generator.export_range(datetime.date(2025, 1, 1), datetime.date(2025, 1, 2))

        ws = openpyxl.load_workbook(BytesIO(content)).active
        assert ws.title == "Sales Report"
        assert ws["A1"].value == TITLES[0]
        assert ws["A2"].value == TITLES[1]
        assert ws["A3"].value is None
        assert [c.value for c in ws[4]] == SalesReportGenerator.HEADERS
        assert ws["D5"].value == "R1"
        assert ws["D6"].value == "R2"
        assert ws["A7"].value == "TOTAL"
        assert ws["H7"].value == pytest.approx(22.5)
        assert ws["J7"].value == pytest.approx(815)
        assert ws["J7"].number_format == "0.00"
        assert ws["A4"].border.left.style == "thin"
        assert ws.max_row == 7

    def test_default_titles_come_from_settings(self, store):
        generator = SalesReportGenerator(store)

        assert generator.title_lines[0] == "NSL SUGARS LTD., KOPPA UNIT"
        assert generator.title_lines[1].startswith("Ryot Sugar Coupon Statement")


class TestSalesBackup:

    def test_backup_holds_every_sale(self, generator):
        ws = openpyxl.load_workbook(BytesIO(generator.backup_workbook()))["SalesBackup"]

        rows = list(ws.iter_rows(values_only=True))
        assert rows[0] == tuple(SaleRecord.model_fields.keys())
        assert sorted(r[3] for r in rows[1:]) == ["R0", "R1", "R2", "R3"]

    def test_backup_of_empty_history(self, store, tmp_path):
        path = SalesReportGenerator(store, title_lines=TITLES).write_backup(str(tmp_path / "nested" / "b.xlsx"))

        ws = openpyxl.load_workbook(path)["SalesBackup"]
        assert ws.max_row == 1
