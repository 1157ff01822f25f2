from datetime import datetime
from decimal import Decimal
from typing import Dict, Optional

from pydantic import BaseModel, Field

from modules.bookings.models.booked_service import BookedServiceStatus


class BookedServiceCreate(BaseModel):
    event_id: str
    vendor_id: str
    name: str = Field(min_length=1)
    final_price: Optional[Decimal] = None


class BookedServiceResponse(BaseModel):
    id: int
    event_id: str
    vendor_id: str
    name: str
    status: BookedServiceStatus
    final_price: Optional[Decimal] = None
    confirmed_at: Optional[datetime] = None

    model_config = {"from_attributes": True, "use_enum_values": True}


class FinalPricesUpdate(BaseModel):
    prices: Dict[str, Decimal]


class ConfirmServicesResponse(BaseModel):
    confirmed: int
