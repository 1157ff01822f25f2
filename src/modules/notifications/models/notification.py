from sqlalchemy import Boolean, Column, DateTime, Integer, String

from database import Base
from modules.contracts.clock import utcnow


class Notification(Base):
    __tablename__ = 'notifications'

    id = Column(Integer, primary_key=True)
    # signer email for clients, vendor id for vendors
    recipient = Column(String(255), nullable=False, index=True)
    title = Column(String(255), nullable=False)
    message = Column(String(1024), nullable=False)
    contract_id = Column(String(36), nullable=True, index=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)
    read = Column(Boolean, default=False)
