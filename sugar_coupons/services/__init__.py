from .roster_parser import parse, parse_upload, read_sheet
from .season_service import SeasonReplacementService
from .collection_service import CollectionSession, CollectionLedger, PaymentConfirmationService

__all__ = [
    "parse",
    "parse_upload",
    "read_sheet",
    "SeasonReplacementService",
    "CollectionSession",
    "CollectionLedger",
    "PaymentConfirmationService"
]
