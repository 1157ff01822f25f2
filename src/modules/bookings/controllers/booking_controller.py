from typing import List

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from database import get_db
from modules.bookings.schemas import (
    BookedServiceCreate,
    BookedServiceResponse,
    ConfirmServicesResponse,
    FinalPricesUpdate,
)
from modules.bookings.services.booking_service import BookingService

router = APIRouter()


def get_booking_service(db: Session = Depends(get_db)) -> BookingService:
    return BookingService(db)


@router.post(
    "/services",
    response_model=BookedServiceResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Book a vendor service for an event"
)
def create_booked_service(
    payload: BookedServiceCreate,
    service: BookingService = Depends(get_booking_service)
):
    try:
        return service.add_service(payload.event_id, payload.vendor_id, payload.name, payload.final_price)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.get(
    "/events/{event_id}/services",
    response_model=List[BookedServiceResponse],
    summary="List booked services of an event"
)
def list_booked_services(
    event_id: str,
    vendor_id: str = None,
    service: BookingService = Depends(get_booking_service)
):
    return service.list_services(event_id, vendor_id)


@router.put(
    "/events/{event_id}/vendors/{vendor_id}/final-prices",
    response_model=List[BookedServiceResponse],
    summary="Set final prices of a vendor's booked services"
)
def update_final_prices(
    event_id: str,
    vendor_id: str,
    payload: FinalPricesUpdate,
    service: BookingService = Depends(get_booking_service)
):
    try:
        return service.update_final_prices(event_id, vendor_id, payload.prices)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.post(
    "/events/{event_id}/vendors/{vendor_id}/confirm",
    response_model=ConfirmServicesResponse,
    summary="Confirm a vendor's booked services"
)
def confirm_booked_services(
    event_id: str,
    vendor_id: str,
    service: BookingService = Depends(get_booking_service)
):
    return {"confirmed": service.confirm_booked_services(event_id, vendor_id)}
