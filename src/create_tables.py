# create_tables.py
import logging

from database import engine, Base
# Import every model so it registers with Base
from modules.bookings.models.booked_service import BookedService
from modules.contracts.models import AuditEntry, Contract, SignatureField, Signer
from modules.notifications.models.notification import Notification

logger = logging.getLogger(__name__)


def create_tables(bind=None):
    """Create every table that does not exist yet"""
    logger.info(f"Tables to create: {list(Base.metadata.tables.keys())}")
    Base.metadata.create_all(bind=bind or engine)


if __name__ == "__main__":
    create_tables()
