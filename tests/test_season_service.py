from unittest.mock import MagicMock, patch

import openpyxl
import pytest

from sugar_coupons.exceptions import StoreError, StorePermissionError, TransactionError, TransactionReason
from sugar_coupons.services.roster_parser import parse
from sugar_coupons.services.season_service import SeasonReplacementService

from .helpers import HEADER, roster_row
from .test_store import sale_row


def roster(count):
    grid = [HEADER] + [roster_row(i, f"R{i:04d}", f"C{i:04d}") for i in range(1, count + 1)]
    return list(parse(grid))


class TestSeasonReplacementService:

    def test_replaces_roster_and_clears_sales(self, loaded_store, admin):
        loaded_store.insert_sales([sale_row("R100")])
        service = SeasonReplacementService(loaded_store)

        count = service.replace_season(roster(5), admin)

        assert count == 5
        assert loaded_store.count_farmers() == 5
        assert loaded_store.count_sales() == 0
        assert loaded_store.find_farmer("R100") is None
        assert loaded_store.find_farmer("R0003").coupon_no == "C0003"

    def test_inserts_in_batches(self, store, admin):
        service = SeasonReplacementService(store, batch_size=2)

        with patch.object(store, "insert_farmers", wraps=store.insert_farmers) as insert:
            count = service.replace_season(roster(5), admin)

        assert count == 5
        assert [len(c.args[0]) for c in insert.call_args_list] == [2, 2, 1]

    def test_empty_roster_leaves_season_untouched(self, loaded_store, admin):
        loaded_store.insert_sales([sale_row("R100")])
        service = SeasonReplacementService(loaded_store)

        with pytest.raises(TransactionError) as exc_info:
            service.replace_season([], admin)

        assert exc_info.value.reason == TransactionReason.EMPTY_ROSTER
        assert loaded_store.count_farmers() == 3
        assert loaded_store.count_sales() == 1

    def test_only_admins_can_replace(self, loaded_store, clerk):
        service = SeasonReplacementService(loaded_store)

        with pytest.raises(TransactionError) as exc_info:
            service.replace_season(roster(2), clerk)

        assert exc_info.value.reason == TransactionReason.FORBIDDEN
        assert loaded_store.count_farmers() == 3

    def test_reset_failure_inserts_nothing(self, admin):
        store = MagicMock()
        store.reset_farmers_and_sales.side_effect = StoreError("lock wait timeout")
        service = SeasonReplacementService(store, report_generator=MagicMock())

        with pytest.raises(TransactionError) as exc_info:
            service.replace_season(roster(3), admin)

        assert exc_info.value.reason == TransactionReason.RESET_FAILED
        assert not exc_info.value.partial
        store.insert_farmers.assert_not_called()

    def test_reset_permission_error_is_kept_as_cause(self, admin):
        store = MagicMock()
        store.reset_farmers_and_sales.side_effect = StorePermissionError("Permission denied")
        service = SeasonReplacementService(store, report_generator=MagicMock())

        with pytest.raises(TransactionError) as exc_info:
            service.replace_season(roster(3), admin)

        assert isinstance(exc_info.value.__cause__, StorePermissionError)

    def test_failed_batch_reports_partial_upload(self, store, admin):
        service = SeasonReplacementService(store, batch_size=2)
        real_insert = store.insert_farmers
        calls = {"n": 0}

        def flaky_insert(batch):
            calls["n"] += 1
            if calls["n"] == 3:
                raise StoreError("payload too large")
            return real_insert(batch)

        with patch.object(store, "insert_farmers", side_effect=flaky_insert):
            with pytest.raises(TransactionError) as exc_info:
                service.replace_season(roster(6), admin)

        error = exc_info.value
        assert error.reason == TransactionReason.INSERT_FAILED
        assert error.batch_index == 2
        assert error.committed == 4
        assert error.partial is True
        assert error.to_dict()["partial"] is True
        assert store.count_farmers() == 4

    def test_first_batch_failure_still_reports_reset_season(self, loaded_store, admin):
        loaded_store.insert_sales([sale_row("R100")])
        service = SeasonReplacementService(loaded_store)

        with patch.object(loaded_store, "insert_farmers", side_effect=StoreError("boom")):
            with pytest.raises(TransactionError) as exc_info:
                service.replace_season(roster(3), admin)

        error = exc_info.value
        assert error.batch_index == 0
        assert error.committed == 0
        # the previous season was already cleared
        assert error.partial is True
        assert error.to_dict()["partial"] is True
        assert loaded_store.count_farmers() == 0
        assert loaded_store.count_sales() == 0

    def test_backup_written_before_reset(self, loaded_store, admin, tmp_path):
        loaded_store.insert_sales([sale_row("R100"), sale_row("R200")])
        backup_path = tmp_path / "backups" / "sales_backup.xlsx"
        service = SeasonReplacementService(loaded_store)

        service.replace_season(roster(2), admin, backup_path=backup_path)

        wb = openpyxl.load_workbook(backup_path)
        ws = wb["SalesBackup"]
        rows = list(ws.iter_rows(values_only=True))
        assert rows[0][3] == "ryot_number"
        assert sorted(r[3] for r in rows[1:]) == ["R100", "R200"]
        assert loaded_store.count_sales() == 0

    def test_backup_failure_does_not_abort(self, loaded_store, admin, tmp_path):
        generator = MagicMock()
        generator.write_backup.side_effect = OSError("disk full")
        service = SeasonReplacementService(loaded_store, report_generator=generator)

        count = service.replace_season(roster(2), admin, backup_path=tmp_path / "b.xlsx")

        assert count == 2
        generator.write_backup.assert_called_once()
