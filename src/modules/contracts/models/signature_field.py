from enum import Enum as PyEnum

from sqlalchemy import (Boolean, Column, DateTime, Enum, Float, ForeignKey, Integer, String,
                        UniqueConstraint)
from sqlalchemy.orm import relationship, validates

from database import Base
from modules.contracts.exceptions import FieldLockedError, ValidationError
from modules.contracts.models.field_values import FieldValueType


class FieldType(PyEnum):
    SIGNATURE = "signature"
    INITIAL = "initial"
    DATE = "date"
    TEXT = "text"
    CHECKBOX = "checkbox"


IMAGE_FIELD_TYPES = (FieldType.SIGNATURE, FieldType.INITIAL)


class SignerRole(PyEnum):
    VENDOR = "vendor"
    CLIENT = "client"


class SignatureField(Base):
    __tablename__ = "signature_fields"

    pk = Column(Integer, primary_key=True)
    id = Column(String(64), nullable=False)
    contract_id = Column(String(36), ForeignKey("contracts.id"), nullable=False, index=True)
    position = Column(Integer, nullable=False, default=0)

    type = Column(Enum(FieldType), nullable=False)
    label = Column(String(255), nullable=False)
    required = Column(Boolean, nullable=False, default=True)
    signer_role = Column(Enum(SignerRole), nullable=False)
    signer_email = Column(String(255), nullable=True)

    signed = Column(Boolean, nullable=False, default=False)
    signed_at = Column(DateTime, nullable=True)
    signer_id = Column(String(128), nullable=True)
    value = Column(FieldValueType, nullable=True)
    draft_value = Column(FieldValueType, nullable=True)
    draft_saved_at = Column(DateTime, nullable=True)

    # Placement on the source document; width/height size the raster canvas
    page = Column(Integer, nullable=True)
    x = Column(Float, nullable=True)
    y = Column(Float, nullable=True)
    width = Column(Integer, nullable=True)
    height = Column(Integer, nullable=True)

    contract = relationship("Contract", back_populates="signature_fields")

    __table_args__ = (
        UniqueConstraint("contract_id", "id", name="uq_signature_field_contract"),
    )

    # Write-once once signed, enforced on every assignment

    @validates("signed")
    def _validate_signed(self, key, signed):
        if self.signed and not signed:
            raise FieldLockedError(self.id)
        return signed

    @validates("value")
    def _validate_value(self, key, value):
        if self.signed and self.value is not None:
            raise FieldLockedError(self.id)
        self._check_value_type(value)
        return value

    @validates("draft_value")
    def _validate_draft_value(self, key, value):
        if value is not None and self.signed:
            raise FieldLockedError(self.id)
        self._check_value_type(value)
        return value

    def _check_value_type(self, value):
        if value is None or self.type is None:
            return
        if value.type != self.type.value:
            raise ValidationError(
                f"Field '{self.label}' expects a {self.type.value} value, got {value.type}",
                errors={self.id: f"expected {self.type.value}"},
            )

    @property
    def is_image(self) -> bool:
        return self.type in IMAGE_FIELD_TYPES

    @property
    def resumable_draft(self):
        return None if self.signed else self.draft_value

    def save_draft(self, value, saved_at) -> None:
        if self.signed:
            raise FieldLockedError(self.id)
        self.draft_value = value
        self.draft_saved_at = saved_at

    def sign(self, value, signed_at, signer_id=None) -> None:
        self.value = value
        self.draft_value = None
        self.draft_saved_at = None
        self.signed = True
        self.signed_at = signed_at
        self.signer_id = signer_id
