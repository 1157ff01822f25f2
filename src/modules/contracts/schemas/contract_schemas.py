from datetime import datetime
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, Field

from modules.contracts.models.contract import ContractStatus, WorkflowStage, WorkflowStatus
from modules.contracts.models.field_values import FieldValue, VendorSignature
from modules.contracts.models.signature_field import FieldType, SignerRole
from modules.contracts.models.signer import SignerStatus

# A raw capture: stroke path ([[x, y], ...] per stroke), typed text or image data URL
RawCapture = Union[str, List[Any]]


# ─────────── Requests ───────────

class SignatureFieldInput(BaseModel):
    id: str = Field(min_length=1, max_length=64)
    type: FieldType
    label: str = Field(min_length=1, max_length=255)
    required: bool = True
    signer_role: SignerRole
    signer_email: Optional[str] = None
    page: Optional[int] = Field(default=None, ge=0)
    x: Optional[float] = None
    y: Optional[float] = None
    width: Optional[int] = Field(default=None, gt=0, le=2000)
    height: Optional[int] = Field(default=None, gt=0, le=2000)


class DefineFieldsRequest(BaseModel):
    fields: List[SignatureFieldInput]
    actor: str
    expected_version: Optional[int] = None


class VendorSignRequest(BaseModel):
    capture: RawCapture
    vendor_name: str
    vendor_email: str
    field_values: Dict[str, Any] = {}
    actor: Optional[str] = None
    expected_version: Optional[int] = None


class SendRequest(BaseModel):
    actor: Optional[str] = None
    expected_version: Optional[int] = None


class SignerAccess(BaseModel):
    access_token: str
    access_code: Optional[str] = None


class DraftRequest(SignerAccess):
    values: Dict[str, Any]


class FinalizeRequest(SignerAccess):
    values: Dict[str, Any] = {}


class DeclineRequest(SignerAccess):
    reason: Optional[str] = Field(default=None, max_length=1024)


# ─────────── Responses ───────────

class SignatureFieldResponse(BaseModel):
    id: str
    type: FieldType
    label: str
    required: bool
    signer_role: SignerRole
    signer_email: Optional[str] = None
    signed: bool
    signed_at: Optional[datetime] = None
    value: Optional[FieldValue] = None
    page: Optional[int] = None
    x: Optional[float] = None
    y: Optional[float] = None
    width: Optional[int] = None
    height: Optional[int] = None

    model_config = {"from_attributes": True, "use_enum_values": True}


class SignerResponse(BaseModel):
    id: str
    role: SignerRole
    name: Optional[str] = None
    email: Optional[str] = None
    status: SignerStatus
    invited_at: Optional[datetime] = None
    accessed_at: Optional[datetime] = None
    signed_at: Optional[datetime] = None
    decline_reason: Optional[str] = None

    model_config = {"from_attributes": True, "use_enum_values": True}


class SigningLink(BaseModel):
    signer_id: str
    email: Optional[str] = None
    access_token: str
    access_code: Optional[str] = None


class AuditEntryResponse(BaseModel):
    sequence: int
    timestamp: datetime
    action: str
    actor: str
    actor_role: str
    details: Optional[str] = None
    ip_address: Optional[str] = None

    model_config = {"from_attributes": True}


class ContractSummary(BaseModel):
    id: str
    event_id: str
    vendor_id: str
    client_name: Optional[str] = None
    file_name: str
    status: ContractStatus
    is_electronic: bool
    workflow_status: WorkflowStatus
    completion_percentage: int
    created_at: datetime
    version: int

    model_config = {"from_attributes": True, "use_enum_values": True}


class ContractResponse(ContractSummary):
    client_email: Optional[str] = None
    file_size: int
    contract_url: Optional[str] = None
    final_prices: Dict[str, str] = {}
    workflow_stage: WorkflowStage
    vendor_signature: Optional[VendorSignature] = None
    sent_at: Optional[datetime] = None
    vendor_signed_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    completed_by: Optional[str] = None
    supersedes_id: Optional[str] = None
    superseded_by_id: Optional[str] = None
    expiration_date: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    first_uploaded: Optional[datetime] = None
    last_edited: Optional[datetime] = None
    signature_fields: List[SignatureFieldResponse] = []
    signers: List[SignerResponse] = []
    audit_trail: List[AuditEntryResponse] = []


class SendResponse(BaseModel):
    contract: ContractResponse
    signing_links: List[SigningLink]


class SigningSessionResponse(BaseModel):
    contract: ContractResponse
    signer: SignerResponse
    fields: List[SignatureFieldResponse]
    drafts: Dict[str, FieldValue]


class DraftSaveResponse(BaseModel):
    saved: List[str]
    failures: Dict[str, str]
    workflow_status: WorkflowStatus
    completion_percentage: int
    version: int

    model_config = {"use_enum_values": True}


class FinalizeResponse(BaseModel):
    contract: ContractResponse
    completed: bool
    certificate_filename: str
    certificate_available: bool
    services_confirmed: Optional[int] = None
