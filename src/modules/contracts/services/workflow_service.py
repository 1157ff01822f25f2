import io
import logging
import os
import re
import uuid
from datetime import timedelta
from typing import Dict, List, Optional, Sequence

from PyPDF2 import PdfReader
from PyPDF2.errors import PdfReadError

from config import Settings, get_settings
from modules.bookings.services.booking_service import parse_price
from modules.contracts.clock import utcnow
from modules.contracts.exceptions import ValidationError, WorkflowError
from modules.contracts.models.audit_entry import AuditAction
from modules.contracts.models.contract import Contract, ContractStatus, WorkflowStage
from modules.contracts.models.field_values import (
    InitialFieldValue,
    SignatureFieldValue,
    SignatureMetadata,
    VendorSignature,
)
from modules.contracts.models.signature_field import FieldType, SignatureField, SignerRole
from modules.contracts.services.audit_trail import AuditTrail
from modules.contracts.services.field_inputs import FieldInputBuilder, FieldSpec, raw_is_empty
from modules.contracts.services.signer_registry import (
    assert_signer_can_act,
    derive_signers,
    resolve_signer,
)

logger = logging.getLogger(__name__)

ALLOWED_CONTENT_TYPES = {
    "application/pdf": ".pdf",
    "application/msword": ".doc",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document": ".docx",
}
VENDOR_SIGNATURE_FIELD_ID = "vendor_signature"
_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
_UNSAFE_NAME_CHARS = re.compile(r"[^A-Za-z0-9_.-]")


class SigningSession:
    """What a signer sees when opening their link."""

    def __init__(self, contract: Contract, signer, fields, drafts: Dict[str, object]):
        self.contract = contract
        self.signer = signer
        self.fields = fields
        self.drafts = drafts


class ContractWorkflowService:
    def __init__(self, repository, asset_store, storage, notifications=None, booking=None,
                 settings: Settings = None):
        self.repository = repository
        self.asset_store = asset_store
        self.storage = storage
        self.notifications = notifications
        self.booking = booking
        self.settings = settings or get_settings()
        self.inputs = FieldInputBuilder(asset_store)

    # ------------------------------------------------------------------ upload

    def upload_contract(self, event_id: str, vendor_id: str, file_name: str, content: bytes,
                        content_type: str, client_name: Optional[str] = None,
                        client_email: Optional[str] = None,
                        final_prices: Optional[Dict[str, object]] = None,
                        electronic: bool = True, signature_fields: Optional[Sequence] = None,
                        replaces_contract_id: Optional[str] = None,
                        actor: Optional[str] = None) -> Contract:
        actor = actor or vendor_id

        # 1) Validate document and prices
        self._validate_file(content, file_name, content_type)
        prices = self._normalize_prices(final_prices or {})
        if client_email and not _EMAIL_RE.match(client_email):
            raise ValidationError("Client email is not valid", errors={"client_email": "invalid email"})

        replaced = None
        replaced_version = None
        if replaces_contract_id:
            replaced = self.repository.get(replaces_contract_id)
            if replaced.event_id != event_id or replaced.vendor_id != vendor_id:
                raise ValidationError("A replacement must belong to the same event and vendor")
            replaced.assert_active()
            replaced_version = replaced.version

        # 2) Store the source document
        safe_name = _UNSAFE_NAME_CHARS.sub("_", os.path.basename(file_name))
        key = f"contracts/{event_id}/{vendor_id}/{uuid.uuid4().hex}-{safe_name}"
        url = self.storage.put(key, content, content_type)

        # 3) Build the aggregate
        now = utcnow()
        contract = Contract(
            id=str(uuid.uuid4()),
            event_id=event_id,
            vendor_id=vendor_id,
            client_name=client_name,
            client_email=client_email,
            file_name=file_name,
            file_size=len(content),
            content_type=content_type,
            storage_key=key,
            contract_url=url,
            status=ContractStatus.ACTIVE,
            final_prices={k: str(v) for k, v in prices.items()},
            is_electronic=electronic,
            workflow_stage=WorkflowStage.NONE if electronic else WorkflowStage.COMPLETED,
            created_at=now,
            updated_at=now,
            first_uploaded=now,
            last_edited=now,
            expiration_date=now + timedelta(days=self.settings.contract_expiration_days),
        )
        if not electronic:
            contract.completed_at = now
            contract.completed_by = actor
        AuditTrail.append(contract, AuditAction.CONTRACT_CREATED, actor, "vendor",
                          {"file_name": file_name, "electronic": electronic}, at=now)

        if electronic and signature_fields:
            self._apply_fields(contract, signature_fields)
            contract.workflow_stage = WorkflowStage.DRAFT
            AuditTrail.append(contract, AuditAction.SIGNATURE_FIELDS_DEFINED, actor, "vendor",
                              {"field_count": len(contract.signature_fields)}, at=now)

        # 4) Persist, superseding the previous upload if any
        if replaced is not None:
            contract.supersedes_id = replaced.id
            replaced.status = ContractStatus.SUPERSEDED
            replaced.superseded_by_id = contract.id
            AuditTrail.append(replaced, AuditAction.CONTRACT_SUPERSEDED, actor, "vendor",
                              {"superseded_by": contract.id}, at=now)
            self.repository.attach(contract)
            self.repository.save(replaced, replaced_version)
            self.repository.refresh(contract)
        else:
            self.repository.add(contract)
        logger.info(f"Contract {contract.id} uploaded for event {event_id} by vendor {vendor_id}")

        # 5) Best-effort push of final prices to the booking subsystem
        if prices and self.booking is not None:
            try:
                self.booking.update_final_prices(event_id, vendor_id, prices)
            except Exception:
                logger.exception(f"Could not update final prices for contract {contract.id}")

        return contract

    def _validate_file(self, content: bytes, file_name: str, content_type: str) -> None:
        if content_type not in ALLOWED_CONTENT_TYPES:
            raise ValidationError("The contract must be a PDF or Word document",
                                  errors={"file": "unsupported content type"})
        ext = os.path.splitext(file_name or "")[1].lower()
        if ext not in ALLOWED_CONTENT_TYPES.values():
            raise ValidationError("The file extension must be .pdf, .doc or .docx",
                                  errors={"file": "unsupported extension"})
        if not content:
            raise ValidationError("The contract file is empty", errors={"file": "empty"})
        limit = self.settings.max_contract_size_bytes
        if len(content) > limit:
            raise ValidationError(f"The maximum size is {limit // (1024 * 1024)} MB",
                                  errors={"file": "too large"})
        if content_type == "application/pdf":
            try:
                reader = PdfReader(io.BytesIO(content))
                _ = reader.pages[0]
            except (PdfReadError, IndexError, ValueError, OSError) as e:
                raise ValidationError("Invalid or damaged PDF", errors={"file": "unreadable"}) from e

    @staticmethod
    def _normalize_prices(prices: Dict[str, object]):
        try:
            return {str(k): parse_price(v) for k, v in prices.items()}
        except ValueError as e:
            raise ValidationError(str(e), errors={"final_prices": str(e)}) from e

    # ------------------------------------------------------------------ fields

    def define_signature_fields(self, contract_id: str, fields: Sequence, actor: str,
                                expected_version: Optional[int] = None) -> Contract:
        contract = self.repository.get(contract_id)
        version = expected_version if expected_version is not None else contract.version

        contract.assert_can_define_fields()
        if not fields:
            raise ValidationError("At least one signature field is required")

        self._apply_fields(contract, fields)
        if contract.workflow_stage == WorkflowStage.NONE:
            contract.workflow_stage = WorkflowStage.DRAFT
        AuditTrail.append(contract, AuditAction.SIGNATURE_FIELDS_DEFINED, actor, "vendor",
                          {"field_count": len(contract.signature_fields)})
        return self.repository.save(contract, version)

    def _apply_fields(self, contract: Contract, definitions: Sequence) -> None:
        ids = [d.id for d in definitions]
        duplicates = sorted({i for i in ids if ids.count(i) > 1})
        if duplicates:
            raise ValidationError(f"Duplicate field ids: {', '.join(duplicates)}",
                                  errors={i: "duplicate id" for i in duplicates})

        existing = {f.id: f for f in contract.signature_fields}
        fields = []
        for position, d in enumerate(definitions):
            current = existing.get(d.id)
            if current is not None and current.signed:
                if current.type != FieldType(d.type) or current.signer_role != SignerRole(d.signer_role):
                    raise WorkflowError(f"Field '{d.id}' is already signed and cannot be redefined")
                current.position = position
                fields.append(current)
                continue
            # unsigned fields are updated in place so the (contract, id) key stays unique on flush
            field = current if current is not None else SignatureField(id=d.id)
            field.position = position
            field.type = FieldType(d.type)
            field.label = d.label
            field.required = d.required
            field.signer_role = SignerRole(d.signer_role)
            field.signer_email = d.signer_email
            field.page = d.page
            field.x = d.x
            field.y = d.y
            field.width = d.width
            field.height = d.height
            fields.append(field)

        dropped = [f.id for f in existing.values() if f.signed and f.id not in ids]
        if dropped:
            raise WorkflowError(f"Signed fields cannot be removed: {', '.join(dropped)}")

        contract.signature_fields = fields
        vendor_name = contract.vendor_signature.vendor_name if contract.vendor_signature else None
        contract.signers = derive_signers(
            contract.signature_fields,
            contract.signers,
            client_name=contract.client_name,
            vendor_name=vendor_name,
            default_client_email=contract.client_email,
        )

    # ------------------------------------------------------------------ vendor

    def sign_as_vendor(self, contract_id: str, capture, vendor_name: str, vendor_email: str,
                       field_values: Optional[Dict[str, object]] = None,
                       actor: Optional[str] = None, ip_address: Optional[str] = None,
                       user_agent: Optional[str] = None,
                       expected_version: Optional[int] = None) -> Contract:
        contract = self.repository.get(contract_id)
        version = expected_version if expected_version is not None else contract.version
        actor = actor or contract.vendor_id

        # 1) Guards and input validation
        contract.assert_active()
        if contract.workflow_stage == WorkflowStage.NONE:
            raise WorkflowError("signature fields have not been defined")
        if contract.workflow_stage != WorkflowStage.DRAFT:
            raise WorkflowError("contract has already been sent")

        errors = {}
        if not vendor_name or not vendor_name.strip():
            errors["vendor_name"] = "required"
        if not vendor_email or not _EMAIL_RE.match(vendor_email):
            errors["vendor_email"] = "invalid email"
        if errors:
            raise ValidationError("Vendor name and a valid email are required", errors=errors)
        vendor_name = vendor_name.strip()

        at = utcnow()
        signer = next(iter(contract.signers_for(SignerRole.VENDOR)), None)
        metadata = SignatureMetadata(
            signer_id=signer.id if signer else actor,
            signer_role=SignerRole.VENDOR.value,
            contract_id=contract.id,
            event_id=contract.event_id,
            signed_at=at,
            user_agent=user_agent,
        )

        plain_values = {}
        for field_id, raw in (field_values or {}).items():
            field = contract.field(field_id)
            if field is None or field.signer_role != SignerRole.VENDOR:
                raise ValidationError(f"Unknown vendor field '{field_id}'", errors={field_id: "unknown"})
            if field.is_image or raw_is_empty(raw) or field.signed:
                continue
            plain_values[field_id] = self.inputs.parse_plain(FieldSpec.of(field), raw, metadata)

        # 2) Capture and store the signature image
        asset = self.asset_store.capture_and_upload(
            capture, FieldType.SIGNATURE, contract.id, contract.event_id,
            VENDOR_SIGNATURE_FIELD_ID, SignerRole.VENDOR.value, signer_name=vendor_name,
            signed_at=at,
        )
        contract.vendor_signature = VendorSignature(
            **asset.model_dump(), vendor_name=vendor_name, vendor_email=vendor_email
        )
        contract.vendor_signed_at = at

        # 3) Fill the vendor's fields
        for field in contract.fields_for(SignerRole.VENDOR):
            if field.signed:
                continue
            if field.type == FieldType.SIGNATURE:
                field.sign(SignatureFieldValue(asset=asset, metadata=metadata), at, metadata.signer_id)
            elif field.type == FieldType.INITIAL:
                field.sign(InitialFieldValue(asset=asset, metadata=metadata), at, metadata.signer_id)
            elif field.id in plain_values:
                field.sign(plain_values[field.id], at, metadata.signer_id)

        for vendor_signer in contract.signers_for(SignerRole.VENDOR):
            vendor_signer.name = vendor_signer.name or vendor_name
            vendor_signer.email = vendor_signer.email or vendor_email
            vendor_signer.mark_signed(at, ip_address, user_agent)

        AuditTrail.append(contract, AuditAction.VENDOR_SIGNATURE_UPLOADED, actor, "vendor",
                          {"vendor_name": vendor_name, "vendor_email": vendor_email,
                           "signature_url": asset.url},
                          ip_address=ip_address, at=at)
        return self.repository.save(contract, version)

    def send_for_signature(self, contract_id: str, actor: Optional[str] = None,
                           expected_version: Optional[int] = None) -> Contract:
        contract = self.repository.get(contract_id)
        version = expected_version if expected_version is not None else contract.version
        actor = actor or contract.vendor_id

        at = utcnow()
        contract.mark_sent(at)
        AuditTrail.append(contract, AuditAction.VENDOR_SIGNED, actor, "vendor",
                          {"vendor_name": contract.vendor_signature.vendor_name,
                           "vendor_email": contract.vendor_signature.vendor_email},
                          at=at)
        AuditTrail.append(contract, AuditAction.SENT_FOR_SIGNATURE, actor, "vendor",
                          {"recipients": [s.email for s in contract.signers_for(SignerRole.CLIENT)]},
                          at=at)
        for signer in contract.signers_for(SignerRole.CLIENT):
            signer.mark_invited(at)

        contract = self.repository.save(contract, version)
        logger.info(f"Contract {contract.id} sent for signature")

        if self.notifications is not None:
            for signer in contract.signers_for(SignerRole.CLIENT):
                if not signer.email:
                    continue
                try:
                    self.notifications.contract_sent(signer.email, contract.id, contract.file_name,
                                                     signer.access_code)
                except Exception:
                    logger.exception(f"Could not notify {signer.email} about contract {contract.id}")
        return contract

    # ------------------------------------------------------------------ client

    def open_for_signer(self, contract_id: str, access_token: str,
                        access_code: Optional[str] = None,
                        ip_address: Optional[str] = None) -> SigningSession:
        contract = self.repository.get(contract_id)
        version = contract.version
        signer = resolve_signer(contract, access_token, access_code)

        contract.assert_active()
        if contract.workflow_stage not in (WorkflowStage.SENT, WorkflowStage.COMPLETED):
            raise WorkflowError("contract has not been sent for signature")

        if contract.workflow_stage == WorkflowStage.SENT and signer.mark_accessed(utcnow()):
            AuditTrail.append(contract, AuditAction.CONTRACT_VIEWED, signer.email or signer.id,
                              signer.role.value, ip_address=ip_address)
            contract = self.repository.save(contract, version)

        fields = contract.fields_for_signer(signer)
        drafts = {f.id: f.resumable_draft for f in fields if f.resumable_draft is not None}
        return SigningSession(contract, signer, fields, drafts)

    def decline(self, contract_id: str, access_token: str, access_code: Optional[str] = None,
                reason: Optional[str] = None, ip_address: Optional[str] = None) -> Contract:
        contract = self.repository.get(contract_id)
        version = contract.version
        signer = resolve_signer(contract, access_token, access_code)

        contract.assert_accepts_client_input()
        assert_signer_can_act(signer)

        signer.decline(reason, utcnow())
        AuditTrail.append(contract, AuditAction.SIGNATURE_DECLINED, signer.email or signer.id,
                          signer.role.value, {"reason": reason}, ip_address=ip_address)
        contract = self.repository.save(contract, version)

        if self.notifications is not None:
            try:
                self.notifications.contract_declined(contract.vendor_id, contract.id, contract.file_name,
                                                     signer.name or signer.email or "The client", reason)
            except Exception:
                logger.exception(f"Could not notify vendor about declined contract {contract.id}")
        return contract

    # ------------------------------------------------------------------ queries

    def get_contract(self, contract_id: str) -> Contract:
        return self.repository.get(contract_id)

    def list_contracts(self, event_id: Optional[str] = None, vendor_id: Optional[str] = None,
                       include_superseded: bool = True) -> List[Contract]:
        return self.repository.list(event_id, vendor_id, include_superseded)

    def delete_contract(self, contract_id: str, actor: str) -> None:
        contract = self.repository.get(contract_id)
        event_id, source_key = contract.event_id, contract.storage_key

        self.repository.delete(contract)
        logger.info(f"Contract {contract_id} deleted by {actor}")

        # leftovers are removed by the orphaned asset sweep
        try:
            self.asset_store.delete_namespace(event_id, contract_id)
            if source_key:
                self.storage.delete(source_key)
        except Exception:
            logger.exception(f"Could not remove stored files of contract {contract_id}")
