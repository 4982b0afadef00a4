import logging
from pathlib import Path
from typing import List, Optional, Sequence, Union

from ..auth import OperatorSession
from ..config import settings
from ..exceptions import StoreError, TransactionError, TransactionReason
from ..models import FarmerRecord
from ..store import SeasonStore
from ..reports import SalesReportGenerator

logger = logging.getLogger(__name__)


class SeasonReplacementService:
    """Replaces the season roster: optional sales backup, atomic reset, batched insert"""

    def __init__(self, store: SeasonStore, batch_size: int = None,
                 report_generator: SalesReportGenerator = None):
        self.store = store
        self.batch_size = batch_size or settings.ROSTER_BATCH_SIZE
        self.report_generator = report_generator or SalesReportGenerator(store)

    def _batches(self, records: List[FarmerRecord]):
        for start in range(0, len(records), self.batch_size):
            yield records[start:start + self.batch_size]

    def backup_sales(self, backup_path: Union[str, Path]) -> Optional[str]:
        """Best effort; a failed backup is logged and never blocks the upload"""
        try:
            return self.report_generator.write_backup(backup_path)
        except Exception as e:
            logger.warning(f"[Season upload] sales backup failed, continuing: {str(e)}")
            return None

    def replace_season(self, records: Sequence[FarmerRecord], operator: OperatorSession,
                       backup_path: Union[str, Path, None] = None) -> int:
        records = list(records)
        if not records:
            logger.warning("[Season upload] refused: no valid records, existing season left untouched")
            raise TransactionError(TransactionReason.EMPTY_ROSTER)
        if operator is None or not operator.is_admin:
            who = operator.operator if operator else "anonymous"
            logger.warning(f"[Season upload] refused: {who} is not an admin")
            raise TransactionError(TransactionReason.FORBIDDEN)

        if backup_path:
            self.backup_sales(backup_path)

        try:
            self.store.reset_farmers_and_sales()
        except StoreError as e:
            logger.error(f"[Season upload] reset failed: {str(e)}", exc_info=True)
            raise TransactionError(TransactionReason.RESET_FAILED, str(e)) from e

        committed = 0
        for batch_index, batch in enumerate(self._batches(records)):
            try:
                committed += self.store.insert_farmers(batch)
            except StoreError as e:
                logger.error(
                    f"[Season upload] batch {batch_index} failed after {committed} rows committed: {str(e)}",
                    exc_info=True
                )
                raise TransactionError(
                    TransactionReason.INSERT_FAILED,
                    f"Upload stopped at batch {batch_index}; {committed} of {len(records)} rows were saved. "
                    f"Re-run the upload to reload the season. ({str(e)})",
                    batch_index=batch_index,
                    committed=committed
                ) from e
            logger.info(f"[Season upload] batch {batch_index} stored ({committed}/{len(records)})")

        logger.info(f"[Season upload] {committed} farmers uploaded by {operator.operator}")
        return committed
