import uuid
from enum import Enum as PyEnum

from sqlalchemy import Column, DateTime, Enum, ForeignKey, Integer, String
from sqlalchemy.orm import relationship

from database import Base
from modules.contracts.clock import utcnow
from modules.contracts.models.signature_field import SignerRole


class SignerStatus(PyEnum):
    PENDING = "pending"
    SIGNED = "signed"
    DECLINED = "declined"


class Signer(Base):
    __tablename__ = "signers"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    contract_id = Column(String(36), ForeignKey("contracts.id"), nullable=False, index=True)
    position = Column(Integer, nullable=False, default=0)

    role = Column(Enum(SignerRole), nullable=False)
    name = Column(String(255), nullable=True)
    email = Column(String(255), nullable=True)
    status = Column(Enum(SignerStatus), nullable=False, default=SignerStatus.PENDING)

    access_token = Column(String(64), nullable=False, unique=True, index=True)
    access_code = Column(String(16), nullable=True)

    invited_at = Column(DateTime, nullable=True)
    accessed_at = Column(DateTime, nullable=True)
    signed_at = Column(DateTime, nullable=True)
    ip_address = Column(String(64), nullable=True)
    user_agent = Column(String(512), nullable=True)
    decline_reason = Column(String(1024), nullable=True)
    created_at = Column(DateTime, default=utcnow)

    contract = relationship("Contract", back_populates="signers")

    def matches(self, role: SignerRole, email) -> bool:
        return self.role == role and (self.email or "").strip().lower() == (email or "").strip().lower()

    def verify_access_code(self, code) -> bool:
        if self.role != SignerRole.CLIENT:
            return True
        return bool(code) and code.strip().upper() == (self.access_code or "")

    def mark_invited(self, at) -> None:
        if self.invited_at is None:
            self.invited_at = at

    def mark_accessed(self, at) -> bool:
        """Returns True on first access."""
        if self.accessed_at is None:
            self.accessed_at = at
            return True
        return False

    def mark_signed(self, at, ip_address=None, user_agent=None) -> None:
        self.status = SignerStatus.SIGNED
        self.signed_at = at
        self.ip_address = ip_address
        self.user_agent = user_agent

    def decline(self, reason, at) -> None:
        self.status = SignerStatus.DECLINED
        self.decline_reason = reason
        self.signed_at = None
        self.accessed_at = self.accessed_at or at
