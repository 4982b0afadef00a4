from enum import Enum
from typing import Optional


class CouponError(Exception):
    """Base for every error raised by the coupon services"""

    def __init__(self, reason: Enum, message: Optional[str] = None):
        self.reason = reason
        self.message = message or reason.value
        super().__init__(self.message)

    def to_dict(self) -> dict:
        return {"error": type(self).__name__, "reason": self.reason.name, "message": self.message}


class ParseReason(Enum):
    EMPTY_INPUT = "The uploaded sheet has no data rows"
    INVALID_FILE_TYPE = "Please upload a valid Excel file (.xlsx, .xls or .csv)"
    UNREADABLE = "The uploaded file could not be read as a spreadsheet"


class TransactionReason(Enum):
    EMPTY_ROSTER = "No valid records to upload"
    FORBIDDEN = "Only admins can upload season data"
    RESET_FAILED = "Could not reset the previous season"
    INSERT_FAILED = "Roster insert failed"


class LookupReason(Enum):
    NOT_AUTHENTICATED = "Not authenticated"
    EMPTY_KEY = "Enter a coupon or ryot number"
    DUPLICATE = "Duplicate entry"
    NOT_FOUND = "Farmer not found"


class ConfirmationReason(Enum):
    NOT_AUTHENTICATED = "Not authenticated"
    NOTHING_TO_CONFIRM = "No new entries to confirm"
    ALL_DUPLICATES = "Every staged farmer was already collected by another session"
    INSERT_FAILED = "Could not record the payment"
    INVALID_PAYMENT_MODE = "Payment mode must be cash or qr"


class ReportReason(Enum):
    INVALID_RANGE = "From date must not be after to date"
    NO_DATA = "No sales data"


class ParseError(CouponError):
    pass


class TransactionError(CouponError):
    """
    Season replacement failure.

    For INSERT_FAILED, ``batch_index`` is the batch that failed and ``committed``
    is how many roster rows earlier batches already stored. The reset has
    already run by then, so ``partial`` is true even when ``committed`` is 0:
    the previous season is gone and the upload must be re-run.
    """

    def __init__(self, reason: TransactionReason, message: Optional[str] = None,
                 batch_index: Optional[int] = None, committed: int = 0):
        super().__init__(reason, message)
        self.batch_index = batch_index
        self.committed = committed

    @property
    def partial(self) -> bool:
        return self.reason == TransactionReason.INSERT_FAILED

    def to_dict(self) -> dict:
        data = super().to_dict()
        data.update({"batch_index": self.batch_index, "committed": self.committed, "partial": self.partial})
        return data


class FarmerLookupError(CouponError):
    pass


class ConfirmationError(CouponError):
    pass


class ReportError(CouponError):
    pass


class StoreError(Exception):
    """Database failure surfaced by SeasonStore"""


class StorePermissionError(StoreError):
    """The database refused the operation; usually a grants / access policy problem"""


class SaleConflictError(StoreError):
    """sales_table already holds a sale for one of the ryots being inserted"""
