from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum

from pydantic import BaseModel, Field
from typing import List, Optional, Literal


TWO_PLACES = Decimal("0.01")
# scales of the quantity and rate columns in farmers_table / sales_table
QUANTITY_PLACES = Decimal("0.001")
RATE_PLACES = TWO_PLACES


def to_scale(value: Decimal, places: Decimal) -> Decimal:
    return Decimal(value).quantize(places, rounding=ROUND_HALF_UP)


def compute_amount(eligible_quantity: Decimal, sugar_rate: Decimal) -> Decimal:
    """Amount owed for a ryot, rounded half-up to paise"""
    return (Decimal(eligible_quantity) * Decimal(sugar_rate)).quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


class CollectionStatus(str, Enum):
    NEW = "NEW"
    ALREADY_COLLECTED = "ALREADY COLLECTED"


class PaymentMode(str, Enum):
    CASH = "cash"
    QR = "qr"


class FarmerRecord(BaseModel):
    """One ryot of the season roster"""
    division: str = Field("", description="Division")
    section: str = Field("", description="Section")
    coupon_no: str = Field("", description="Factory-issued coupon number")
    ryot_number: str = Field(..., description="Ryot number, unique per season")
    ryot_name: str = Field("", description="Ryot name")
    father_name: str = Field("", description="Father's name")
    village: str = Field("", description="Village")
    cane_weight: Decimal = Field(Decimal("0"), description="Cane delivered (kg)")
    eligible_quantity: Decimal = Field(Decimal("0"), description="Sugar owed (kg)")
    sugar_rate: Decimal = Field(..., description="Rate per kg")
    amount: Decimal = Field(..., description="eligible_quantity x sugar_rate")

    @classmethod
    def from_orm_row(cls, farmer, default_rate: Decimal) -> "FarmerRecord":
        eligible = Decimal(farmer.eligible_qty or 0)
        rate = Decimal(farmer.sugar_rate) if farmer.sugar_rate else Decimal(default_rate)
        return cls(
            division=farmer.division or "",
            section=farmer.section or "",
            coupon_no=farmer.coupon_no or "",
            ryot_number=farmer.ryot_number,
            ryot_name=farmer.ryot_name or "",
            father_name=farmer.father_name or "",
            village=farmer.village or "",
            cane_weight=Decimal(farmer.cane_wt or 0),
            eligible_quantity=eligible,
            sugar_rate=rate,
            amount=compute_amount(eligible, rate),
        )

    def to_row(self) -> dict:
        """Column values for farmers_table"""
        return {
            "division": self.division,
            "section": self.section,
            "coupon_no": self.coupon_no,
            "ryot_number": self.ryot_number,
            "ryot_name": self.ryot_name,
            "father_name": self.father_name,
            "village": self.village,
            "cane_wt": self.cane_weight,
            "eligible_qty": self.eligible_quantity,
            "sugar_rate": self.sugar_rate,
            "amount": self.amount,
        }


class CollectionEntry(FarmerRecord):
    """A ryot staged in a collection session"""
    status: CollectionStatus = Field(CollectionStatus.NEW, description="NEW or ALREADY COLLECTED")


class SaleRecord(BaseModel):
    """Read model of a row in sales_table"""
    division: str = ""
    section: str = ""
    coupon_no: str = ""
    ryot_number: str
    ryot_name: str = ""
    father_name: str = ""
    village: str = ""
    cane_weight: Decimal = Decimal("0")
    sugar_quantity: Decimal = Decimal("0")
    sugar_rate: Decimal = Decimal("0")
    amount: Decimal = Decimal("0")
    payment_mode: PaymentMode
    collected_by: str
    sale_date: Optional[datetime] = None

    @classmethod
    def from_orm_row(cls, sale) -> "SaleRecord":
        return cls(
            division=sale.division or "",
            section=sale.section or "",
            coupon_no=sale.coupon_no or "",
            ryot_number=sale.ryot_number,
            ryot_name=sale.ryot_name or "",
            father_name=sale.father_name or "",
            village=sale.village or "",
            cane_weight=Decimal(sale.cane_wt or 0),
            sugar_quantity=Decimal(sale.sugar_qty or 0),
            sugar_rate=Decimal(sale.sugar_rate or 0),
            amount=Decimal(sale.amount or 0),
            payment_mode=sale.payment_mode,
            collected_by=sale.collected_by,
            sale_date=sale.sale_date,
        )


class ConfirmationResult(BaseModel):
    committed_count: int = Field(..., description="Sales written by this confirmation")
    committed: List[str] = Field(default_factory=list, description="Ryot numbers paid")
    lost_race: List[str] = Field(default_factory=list,
                                 description="Ryot numbers another session collected first; still NEW here")


# ---- HTTP request / response models ----

class SeasonUploadResponse(BaseModel):
    success: bool = Field(..., description="Whether the roster was replaced")
    message: str = Field(..., description="Result message")
    inserted: int = Field(..., description="Roster rows inserted")
    request_id: str = Field(..., description="Request ID for tracing")


class OpenSessionResponse(BaseModel):
    session_id: str = Field(..., description="Collection session ID")
    operator: str = Field(..., description="Operator who owns the session")


class AddFarmerRequest(BaseModel):
    lookup: str = Field(..., description="Coupon number or ryot number")


class CollectionSessionView(BaseModel):
    session_id: str
    operator: str
    payment_mode: PaymentMode
    entries: List[CollectionEntry]
    total_sugar: Decimal = Field(..., description="Sugar (kg) over NEW entries")
    total_amount: Decimal = Field(..., description="Amount over NEW entries")


class ConfirmPaymentRequest(BaseModel):
    payment_mode: Literal["cash", "qr"] = Field("cash", description="Payment method for the whole batch")


class ConfirmPaymentResponse(BaseModel):
    success: bool
    message: str
    data: ConfirmationResult
    request_id: str
