import logging
from decimal import Decimal, InvalidOperation
from typing import Dict, List, Optional

from sqlalchemy.orm import Session

from modules.bookings.models.booked_service import BookedService, BookedServiceStatus
from modules.contracts.clock import utcnow

logger = logging.getLogger(__name__)


def parse_price(value) -> Decimal:
    try:
        price = Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValueError(f"Invalid price: {value!r}")
    if not price.is_finite() or price < 0:
        raise ValueError(f"Invalid price: {value!r}")
    return price.quantize(Decimal("0.01"))


class BookingService:
    def __init__(self, db_session: Session):
        self.db = db_session

    def add_service(self, event_id: str, vendor_id: str, name: str,
                    final_price=None) -> BookedService:
        service = BookedService(
            event_id=event_id,
            vendor_id=vendor_id,
            name=name,
            final_price=parse_price(final_price) if final_price is not None else None,
        )
        self.db.add(service)
        self.db.commit()
        self.db.refresh(service)
        return service

    def list_services(self, event_id: str, vendor_id: Optional[str] = None) -> List[BookedService]:
        query = self.db.query(BookedService).filter(BookedService.event_id == event_id)
        if vendor_id:
            query = query.filter(BookedService.vendor_id == vendor_id)
        return query.order_by(BookedService.id).all()

    def update_final_prices(self, event_id: str, vendor_id: str,
                            prices: Dict[str, object]) -> List[BookedService]:
        """
        Set the agreed price of each booked service, keyed by service id.
        Every id must belong to the event/vendor pair; nothing is written otherwise.
        """
        services = {str(s.id): s for s in self.list_services(event_id, vendor_id)}
        unknown = [service_id for service_id in prices if str(service_id) not in services]
        if unknown:
            raise ValueError(f"Unknown booked services for this vendor: {', '.join(map(str, unknown))}")

        parsed = {str(k): parse_price(v) for k, v in prices.items()}
        for service_id, price in parsed.items():
            services[service_id].final_price = price
        self.db.commit()
        return [services[service_id] for service_id in parsed]

    def confirm_booked_services(self, event_id: str, vendor_id: str) -> int:
        pending = (
            self.db.query(BookedService)
            .filter(
                BookedService.event_id == event_id,
                BookedService.vendor_id == vendor_id,
                BookedService.status == BookedServiceStatus.PENDING,
            )
            .all()
        )
        now = utcnow()
        for service in pending:
            service.status = BookedServiceStatus.CONFIRMED
            service.confirmed_at = now
        self.db.commit()
        logger.info(f"Confirmed {len(pending)} booked services for event {event_id} / vendor {vendor_id}")
        return len(pending)
