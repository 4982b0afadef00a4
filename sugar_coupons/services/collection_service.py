"""
Sugar collection: stage ryots in an operator session, then pay them in one batch.

A ryot is paid at most once across all collection points. Lookups show
ALREADY COLLECTED for paid ryots, and confirmation re-checks sales_table right
before writing, with the unique index on sales_table.ryot_number as backstop.
"""
import logging
import uuid
from decimal import Decimal
from typing import List, Optional, Union

from ..auth import OperatorSession, SessionProvider
from ..exceptions import (
    FarmerLookupError, LookupReason, ConfirmationError, ConfirmationReason,
    SaleConflictError, StoreError
)
from ..models import CollectionEntry, CollectionStatus, ConfirmationResult, PaymentMode
from ..store import SeasonStore

logger = logging.getLogger(__name__)


class CollectionSession:
    """Ryots staged by one operator; lives only in memory"""

    def __init__(self, operator: Optional[OperatorSession], session_id: str = None):
        self.session_id = session_id or str(uuid.uuid4())
        self.operator = operator
        self.entries: List[CollectionEntry] = []
        self.payment_mode = PaymentMode.CASH

    def find(self, key: str) -> Optional[CollectionEntry]:
        """Staged entry whose ryot or coupon number equals key, ignoring case"""
        key = key.strip().lower()
        for entry in self.entries:
            if entry.ryot_number.lower() == key or (entry.coupon_no and entry.coupon_no.lower() == key):
                return entry
        return None

    def remove_entry(self, ryot_number: str) -> bool:
        before = len(self.entries)
        self.entries = [e for e in self.entries if e.ryot_number != ryot_number]
        return len(self.entries) < before

    def clear(self):
        self.entries = []

    def end(self):
        """Operator signed out: staged entries are discarded"""
        self.operator = None
        self.clear()

    @property
    def new_entries(self) -> List[CollectionEntry]:
        return [e for e in self.entries if e.status == CollectionStatus.NEW]

    @property
    def total_sugar(self) -> Decimal:
        return sum((e.eligible_quantity for e in self.new_entries), Decimal("0"))

    @property
    def total_amount(self) -> Decimal:
        return sum((e.amount for e in self.new_entries), Decimal("0"))


class CollectionLedger:
    """Looks ryots up in the roster and stages them in a CollectionSession"""

    def __init__(self, store: SeasonStore):
        self.store = store

    def open_session(self, provider: SessionProvider, session_id: str = None) -> CollectionSession:
        """New session owned by the provider's current operator, ended when that operator signs out"""
        session = CollectionSession(provider.get_current_session(), session_id)

        def _on_change(current: Optional[OperatorSession]):
            if current is None or (session.operator and current.operator != session.operator.operator):
                session.end()

        provider.on_session_change(_on_change)
        return session

    def add_farmer(self, lookup_key: str, session: CollectionSession) -> CollectionEntry:
        if session is None or session.operator is None:
            raise FarmerLookupError(LookupReason.NOT_AUTHENTICATED)

        key = (lookup_key or "").strip()
        if not key:
            raise FarmerLookupError(LookupReason.EMPTY_KEY)

        if session.find(key):
            raise FarmerLookupError(LookupReason.DUPLICATE, f"Duplicate entry: {key} is already in the list")

        farmer = self.store.find_farmer(key)
        if farmer is None:
            raise FarmerLookupError(LookupReason.NOT_FOUND, f"Farmer not found: {key}")

        # the key may have matched a coupon of an already staged ryot
        if session.find(farmer.ryot_number):
            raise FarmerLookupError(
                LookupReason.DUPLICATE, f"Duplicate entry: ryot {farmer.ryot_number} is already in the list"
            )

        sold = self.store.has_sale(farmer.ryot_number)
        entry = CollectionEntry(
            **farmer.model_dump(),
            status=CollectionStatus.ALREADY_COLLECTED if sold else CollectionStatus.NEW
        )
        session.entries.append(entry)
        logger.info(f"[Collection] {session.operator.operator} staged ryot {entry.ryot_number} ({entry.status.value})")
        return entry


class PaymentConfirmationService:
    """Turns the NEW entries of a session into sales_table rows"""

    def __init__(self, store: SeasonStore):
        self.store = store

    @staticmethod
    def _resolve_mode(payment_mode: Union[PaymentMode, str]) -> PaymentMode:
        try:
            return PaymentMode(payment_mode.value if isinstance(payment_mode, PaymentMode) else str(payment_mode).lower())
        except ValueError:
            raise ConfirmationError(ConfirmationReason.INVALID_PAYMENT_MODE)

    @staticmethod
    def _sale_row(entry: CollectionEntry, mode: PaymentMode, collected_by: str) -> dict:
        return {
            "division": entry.division,
            "section": entry.section,
            "coupon_no": entry.coupon_no,
            "ryot_number": entry.ryot_number,
            "ryot_name": entry.ryot_name,
            "father_name": entry.father_name,
            "village": entry.village,
            "cane_wt": entry.cane_weight,
            "sugar_qty": entry.eligible_quantity,
            "sugar_rate": entry.sugar_rate,
            "amount": entry.amount,
            "payment_mode": mode.value,
            "collected_by": collected_by,
        }

    def _survivors(self, candidates: List[CollectionEntry]) -> List[CollectionEntry]:
        """Candidates nobody has been paid for yet, per sales_table right now"""
        already_sold = self.store.existing_sale_ryots(e.ryot_number for e in candidates)
        return [e for e in candidates if e.ryot_number not in already_sold]

    @staticmethod
    def _all_duplicates(candidates: List[CollectionEntry]) -> ConfirmationError:
        ryots = ", ".join(e.ryot_number for e in candidates)
        logger.warning(f"[Payment] nothing left to write, already collected elsewhere: {ryots}")
        return ConfirmationError(
            ConfirmationReason.ALL_DUPLICATES,
            f"Already collected at another counter: {ryots}. Remove them and refresh the list."
        )

    def _write(self, survivors: List[CollectionEntry], mode: PaymentMode, collected_by: str):
        self.store.insert_sales([self._sale_row(e, mode, collected_by) for e in survivors])

    def confirm_payment(self, session: CollectionSession,
                        payment_mode: Union[PaymentMode, str] = PaymentMode.CASH) -> ConfirmationResult:
        mode = self._resolve_mode(payment_mode)
        if session is None or session.operator is None:
            raise ConfirmationError(ConfirmationReason.NOT_AUTHENTICATED)

        candidates = session.new_entries
        if not candidates:
            raise ConfirmationError(ConfirmationReason.NOTHING_TO_CONFIRM)

        collected_by = session.operator.operator
        try:
            survivors = self._survivors(candidates)
            if not survivors:
                raise self._all_duplicates(candidates)
            try:
                self._write(survivors, mode, collected_by)
            except SaleConflictError:
                # another collection point committed between the re-check and our insert
                logger.warning(f"[Payment] sale conflict for {collected_by}, re-checking and retrying once")
                survivors = self._survivors(survivors)
                if not survivors:
                    raise self._all_duplicates(candidates)
                self._write(survivors, mode, collected_by)
        except ConfirmationError:
            raise
        except StoreError as e:
            logger.error(f"[Payment] insert failed for {collected_by}: {str(e)}", exc_info=True)
            raise ConfirmationError(ConfirmationReason.INSERT_FAILED, f"Could not record the payment: {str(e)}") from e

        committed = {e.ryot_number for e in survivors}
        for entry in session.entries:
            if entry.ryot_number in committed:
                entry.status = CollectionStatus.ALREADY_COLLECTED
        session.payment_mode = mode

        lost_race = [e.ryot_number for e in candidates if e.ryot_number not in committed]
        if lost_race:
            logger.warning(f"[Payment] collected elsewhere first, still pending here: {lost_race}")
        logger.info(f"[Payment] {collected_by} recorded {len(committed)} sales ({mode.value})")

        return ConfirmationResult(
            committed_count=len(committed),
            committed=[e.ryot_number for e in survivors],
            lost_race=lost_race,
        )
