from datetime import datetime

from sqlalchemy import Column, Integer, String, DECIMAL, DateTime
from .database import Base


class Farmer(Base):
    __tablename__ = "farmers_table"

    id = Column(Integer, primary_key=True, index=True)
    division = Column(String(100), default="")
    section = Column(String(100), default="")
    coupon_no = Column(String(50), index=True)
    ryot_number = Column(String(50), unique=True, index=True, nullable=False)
    ryot_name = Column(String(200), default="")
    father_name = Column(String(200), default="")
    village = Column(String(200), default="")
    cane_wt = Column(DECIMAL(14, 3), default=0)
    eligible_qty = Column(DECIMAL(14, 3), default=0)
    sugar_rate = Column(DECIMAL(10, 2))
    amount = Column(DECIMAL(14, 2), default=0)


class Sale(Base):
    __tablename__ = "sales_table"

    id = Column(Integer, primary_key=True, index=True)
    division = Column(String(100), default="")
    section = Column(String(100), default="")
    coupon_no = Column(String(50))
    # unique: a ryot is paid at most once, whichever collection point gets there first
    ryot_number = Column(String(50), unique=True, index=True, nullable=False)
    ryot_name = Column(String(200), default="")
    father_name = Column(String(200), default="")
    village = Column(String(200), default="")
    cane_wt = Column(DECIMAL(14, 3), default=0)
    sugar_qty = Column(DECIMAL(14, 3), default=0)
    sugar_rate = Column(DECIMAL(10, 2))
    amount = Column(DECIMAL(14, 2), default=0)
    payment_mode = Column(String(10), nullable=False)  # cash, qr
    collected_by = Column(String(200), nullable=False)
    sale_date = Column(DateTime, default=datetime.now, index=True)
