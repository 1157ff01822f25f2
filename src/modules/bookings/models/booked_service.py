from enum import Enum as PyEnum

from sqlalchemy import Column, DateTime, Enum, Integer, Numeric, String

from database import Base
from modules.contracts.clock import utcnow


class BookedServiceStatus(PyEnum):
    PENDING = "pending"
    CONFIRMED = "confirmed"


class BookedService(Base):
    __tablename__ = "booked_services"

    id = Column(Integer, primary_key=True)
    event_id = Column(String(128), nullable=False, index=True)
    vendor_id = Column(String(128), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    status = Column(Enum(BookedServiceStatus), nullable=False, default=BookedServiceStatus.PENDING)
    final_price = Column(Numeric(12, 2), nullable=True)
    confirmed_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)
