import logging
from datetime import datetime
from decimal import Decimal
from typing import Iterable, List, Optional, Set

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from .config import settings
from .database import SessionLocal
from .exceptions import StoreError, StorePermissionError, SaleConflictError
from .models import FarmerRecord, SaleRecord
from .orm_models import Farmer, Sale

logger = logging.getLogger(__name__)

PERMISSION_MARKERS = ("permission", "access denied", "not authorized", "command denied")


def wrap_db_error(e: Exception, action: str) -> StoreError:
    """Translate a driver error into StoreError, keeping access problems distinguishable"""
    message = str(e)
    if any(marker in message.lower() for marker in PERMISSION_MARKERS):
        return StorePermissionError(f"Permission denied while {action}. Check database grants. ({message[:200]})")
    return StoreError(f"Database error while {action}: {message[:200]}")


class SeasonStore:
    """Data access for farmers_table and sales_table"""

    def __init__(self, session_factory=None, default_rate: Optional[Decimal] = None):
        self.session_factory = session_factory or SessionLocal
        self.default_rate = default_rate if default_rate is not None else settings.DEFAULT_SUGAR_RATE

    # ---- roster ----

    def find_farmer(self, key: str) -> Optional[FarmerRecord]:
        """Ryot number match first, coupon number second; case is ignored"""
        key = key.strip().lower()
        try:
            with self.session_factory() as db:
                farmer = db.query(Farmer).filter(func.lower(Farmer.ryot_number) == key).order_by(Farmer.id).first()
                if not farmer:
                    farmer = db.query(Farmer).filter(func.lower(Farmer.coupon_no) == key).order_by(Farmer.id).first()
                return FarmerRecord.from_orm_row(farmer, self.default_rate) if farmer else None
        except SQLAlchemyError as e:
            raise wrap_db_error(e, "looking up farmer") from e

    def count_farmers(self) -> int:
        with self.session_factory() as db:
            return db.query(Farmer).count()

    def insert_farmers(self, records: List[FarmerRecord]) -> int:
        """Insert one batch in its own transaction"""
        try:
            with self.session_factory() as db:
                db.add_all([Farmer(**record.to_row()) for record in records])
                db.commit()
            return len(records)
        except SQLAlchemyError as e:
            raise wrap_db_error(e, "inserting roster batch") from e

    def reset_farmers_and_sales(self):
        """Clear sales history and roster in one transaction; nothing is removed if either delete fails"""
        try:
            with self.session_factory() as db:
                with db.begin():
                    sales_deleted = db.query(Sale).delete(synchronize_session=False)
                    farmers_deleted = db.query(Farmer).delete(synchronize_session=False)
            logger.info(f"[Season reset] removed {sales_deleted} sales and {farmers_deleted} farmers")
        except SQLAlchemyError as e:
            raise wrap_db_error(e, "resetting farmers and sales") from e

    # ---- sales ----

    def has_sale(self, ryot_number: str) -> bool:
        return bool(self.existing_sale_ryots([ryot_number]))

    def existing_sale_ryots(self, ryot_numbers: Iterable[str]) -> Set[str]:
        ryot_numbers = list(ryot_numbers)
        if not ryot_numbers:
            return set()
        try:
            with self.session_factory() as db:
                rows = db.query(Sale.ryot_number).filter(Sale.ryot_number.in_(ryot_numbers)).all()
                return {row[0] for row in rows}
        except SQLAlchemyError as e:
            raise wrap_db_error(e, "checking existing sales") from e

    def insert_sales(self, records: List[dict]):
        """Write all sale rows in one transaction; SaleConflictError if any ryot is already sold"""
        try:
            with self.session_factory() as db:
                db.add_all([Sale(**record) for record in records])
                db.commit()
        except IntegrityError as e:
            raise SaleConflictError(f"Sale already recorded for one of {len(records)} ryots") from e
        except SQLAlchemyError as e:
            raise wrap_db_error(e, "recording sales") from e

    def sales_between(self, start: datetime, end: datetime) -> List[SaleRecord]:
        try:
            with self.session_factory() as db:
                sales = db.query(Sale).filter(
                    Sale.sale_date >= start,
                    Sale.sale_date <= end
                ).order_by(Sale.sale_date.asc(), Sale.id.asc()).all()
                return [SaleRecord.from_orm_row(sale) for sale in sales]
        except SQLAlchemyError as e:
            raise wrap_db_error(e, "querying sales") from e

    def all_sales(self) -> List[SaleRecord]:
        try:
            with self.session_factory() as db:
                sales = db.query(Sale).order_by(Sale.id.asc()).all()
                return [SaleRecord.from_orm_row(sale) for sale in sales]
        except SQLAlchemyError as e:
            raise wrap_db_error(e, "reading sales history") from e

    def count_sales(self) -> int:
        with self.session_factory() as db:
            return db.query(Sale).count()
