import uuid
from enum import Enum as PyEnum

from sqlalchemy import JSON, Boolean, Column, DateTime, Enum, Integer, String
from sqlalchemy.orm import relationship, validates

from database import Base
from modules.contracts.clock import utcnow
from modules.contracts.exceptions import ValidationError, WorkflowError
from modules.contracts.models.field_values import VendorSignatureType, is_empty
from modules.contracts.models.signature_field import SignerRole


class ContractStatus(PyEnum):
    ACTIVE = "active"
    SUPERSEDED = "superseded"


class WorkflowStage(PyEnum):
    """Stored workflow position. Only ever moves forward."""
    NONE = "none"
    DRAFT = "draft"
    SENT = "sent"
    COMPLETED = "completed"


class WorkflowStatus(PyEnum):
    """Observable status; PARTIALLY_SIGNED is derived from field state."""
    NONE = "none"
    DRAFT = "draft"
    SENT = "sent"
    PARTIALLY_SIGNED = "partially_signed"
    COMPLETED = "completed"


ALLOWED_TRANSITIONS = {
    WorkflowStage.NONE: {WorkflowStage.DRAFT, WorkflowStage.COMPLETED},
    WorkflowStage.DRAFT: {WorkflowStage.SENT},
    WorkflowStage.SENT: {WorkflowStage.COMPLETED},
    WorkflowStage.COMPLETED: set(),
}


class Contract(Base):
    __tablename__ = "contracts"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    event_id = Column(String(128), nullable=False, index=True)
    vendor_id = Column(String(128), nullable=False, index=True)
    client_name = Column(String(255), nullable=True)
    client_email = Column(String(255), nullable=True)

    file_name = Column(String(255), nullable=False)
    file_size = Column(Integer, nullable=False, default=0)
    content_type = Column(String(128), nullable=True)
    storage_key = Column(String(512), nullable=True)
    contract_url = Column(String(1024), nullable=True)

    status = Column(Enum(ContractStatus), nullable=False, default=ContractStatus.ACTIVE)
    final_prices = Column(JSON, nullable=False, default=dict)
    is_electronic = Column(Boolean, nullable=False, default=True)
    workflow_stage = Column(Enum(WorkflowStage), nullable=False, default=WorkflowStage.NONE)
    vendor_signature = Column(VendorSignatureType, nullable=True)

    sent_at = Column(DateTime, nullable=True)
    vendor_signed_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)
    completed_by = Column(String(255), nullable=True)

    supersedes_id = Column(String(36), nullable=True)
    superseded_by_id = Column(String(36), nullable=True)
    expiration_date = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)
    first_uploaded = Column(DateTime, nullable=True)
    last_edited = Column(DateTime, nullable=True)

    version = Column(Integer, nullable=False)

    signature_fields = relationship(
        "SignatureField",
        back_populates="contract",
        order_by="SignatureField.position",
        cascade="all, delete-orphan",
    )
    signers = relationship(
        "Signer",
        back_populates="contract",
        order_by="Signer.position",
        cascade="all, delete-orphan",
    )
    audit_trail = relationship(
        "AuditEntry",
        back_populates="contract",
        order_by="AuditEntry.sequence",
        cascade="all, delete-orphan",
    )

    __mapper_args__ = {"version_id_col": version}

    @validates("workflow_stage")
    def _validate_stage(self, key, stage):
        current = self.workflow_stage
        if current is None or current == stage:
            return stage
        if stage not in ALLOWED_TRANSITIONS[current]:
            raise WorkflowError(
                f"cannot move contract from {current.value} to {stage.value}"
            )
        return stage

    # --- field views ---

    def field(self, field_id: str):
        for field in self.signature_fields:
            if field.id == field_id:
                return field
        return None

    def fields_for(self, role: SignerRole, required_only: bool = False):
        return [
            f for f in self.signature_fields
            if f.signer_role == role and (f.required or not required_only)
        ]

    @property
    def required_client_fields(self):
        return self.fields_for(SignerRole.CLIENT, required_only=True)

    @property
    def completion_percentage(self) -> int:
        required = self.required_client_fields
        if not required:
            return 100 if self.workflow_stage == WorkflowStage.COMPLETED else 0
        done = sum(1 for f in required if f.signed or not is_empty(f.draft_value))
        return int(done * 100 / len(required))

    @property
    def workflow_status(self) -> WorkflowStatus:
        if not self.is_electronic or self.workflow_stage == WorkflowStage.COMPLETED:
            return WorkflowStatus.COMPLETED
        if self.workflow_stage == WorkflowStage.SENT:
            tracked = self.required_client_fields or self.fields_for(SignerRole.CLIENT)
            if any(f.signed or not is_empty(f.draft_value) for f in tracked):
                return WorkflowStatus.PARTIALLY_SIGNED
            return WorkflowStatus.SENT
        return WorkflowStatus(self.workflow_stage.value)

    # --- signers ---

    def signer_by_token(self, access_token: str):
        for signer in self.signers:
            if signer.access_token == access_token:
                return signer
        return None

    def signers_for(self, role: SignerRole):
        return [s for s in self.signers if s.role == role]

    def signer_email_for(self, field) -> str:
        email = field.signer_email
        if not email and field.signer_role == SignerRole.CLIENT:
            email = self.client_email
        return (email or "").strip().lower()

    def fields_for_signer(self, signer):
        return [f for f in self.signature_fields if signer.matches(f.signer_role, self.signer_email_for(f))]

    # --- guards ---

    def assert_active(self) -> None:
        if self.status == ContractStatus.SUPERSEDED:
            raise WorkflowError("contract has been superseded by a newer upload")

    def assert_can_define_fields(self) -> None:
        self.assert_active()
        if not self.is_electronic:
            raise WorkflowError("contract is not signed electronically")
        if self.workflow_stage not in (WorkflowStage.NONE, WorkflowStage.DRAFT):
            raise WorkflowError("signature fields cannot change after the contract has been sent")

    def assert_can_send(self) -> None:
        self.assert_active()
        if self.workflow_stage == WorkflowStage.NONE:
            raise WorkflowError("signature fields have not been defined")
        if self.workflow_stage != WorkflowStage.DRAFT:
            raise WorkflowError("contract has already been sent")
        if self.vendor_signature is None or not self.vendor_signature.url:
            raise WorkflowError("vendor has not signed")
        unsigned = [f.label for f in self.fields_for(SignerRole.VENDOR, required_only=True) if not f.signed]
        if unsigned:
            raise WorkflowError(f"vendor has not completed required fields: {', '.join(unsigned)}")

    def assert_accepts_client_input(self) -> None:
        self.assert_active()
        if self.workflow_stage == WorkflowStage.COMPLETED:
            raise WorkflowError("contract is already completed")
        if self.workflow_stage != WorkflowStage.SENT:
            raise WorkflowError("contract has not been sent for signature")

    def assert_can_complete(self) -> None:
        self.assert_accepts_client_input()
        missing = [f.label for f in self.required_client_fields if not f.signed]
        if missing:
            raise ValidationError.missing_fields(missing)

    # --- transitions ---

    def touch(self, at=None) -> None:
        at = at or utcnow()
        self.updated_at = at
        self.last_edited = at

    def mark_sent(self, at) -> None:
        self.assert_can_send()
        self.workflow_stage = WorkflowStage.SENT
        self.sent_at = at

    def complete(self, completed_by: str, at) -> None:
        self.assert_can_complete()
        self.workflow_stage = WorkflowStage.COMPLETED
        self.completed_at = at
        self.completed_by = completed_by
