import uuid

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, Text, event
from sqlalchemy.orm import relationship

from database import Base
from modules.contracts.clock import utcnow
from modules.contracts.exceptions import AuditTrailImmutableError


class AuditAction:
    CONTRACT_CREATED = "contract_created"
    CONTRACT_SUPERSEDED = "contract_superseded"
    SIGNATURE_FIELDS_DEFINED = "signature_fields_defined"
    VENDOR_SIGNATURE_UPLOADED = "vendor_signature_uploaded"
    VENDOR_SIGNED = "vendor_signed"
    SENT_FOR_SIGNATURE = "sent_for_signature"
    CONTRACT_VIEWED = "contract_viewed"
    DRAFT_SAVED = "draft_saved"
    SIGNATURE_DECLINED = "signature_declined"
    CLIENT_SIGNED = "client_signed"
    CONTRACT_COMPLETED = "contract_completed"


class AuditEntry(Base):
    """
    One workflow action on a contract.
    - Append-only: rows are inserted, never updated
    - Ordered by `sequence` within the contract
    """
    __tablename__ = "audit_entries"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    contract_id = Column(String(36), ForeignKey("contracts.id"), nullable=False, index=True)
    sequence = Column(Integer, nullable=False)
    timestamp = Column(DateTime, nullable=False, default=utcnow)
    action = Column(String(64), nullable=False)
    actor = Column(String(255), nullable=False)
    actor_role = Column(String(32), nullable=False)
    details = Column(Text, nullable=True)
    ip_address = Column(String(64), nullable=True)

    contract = relationship("Contract", back_populates="audit_trail")


@event.listens_for(AuditEntry, "before_update")
def _reject_audit_update(mapper, connection, target):
    raise AuditTrailImmutableError(f"Audit entry {target.id} is immutable")
