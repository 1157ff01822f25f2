import logging
from typing import Dict, NamedTuple, Optional

from modules.contracts.clock import utcnow
from modules.contracts.exceptions import FieldLockedError, ValidationError
from modules.contracts.models.audit_entry import AuditAction
from modules.contracts.models.field_values import SignatureMetadata, is_empty
from modules.contracts.services.audit_trail import AuditTrail
from modules.contracts.services.certificate_service import certificate_filename
from modules.contracts.services.field_inputs import (
    FieldInputBuilder,
    FieldSpec,
    SigningContext,
    raw_is_empty,
)
from modules.contracts.services.ip_resolver import UNKNOWN_IP
from modules.contracts.services.signer_registry import assert_signer_can_act, resolve_signer

logger = logging.getLogger(__name__)


class SignerContext(NamedTuple):
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None


class FinalizationResult:
    def __init__(self, contract, completed: bool, certificate: Optional[bytes] = None,
                 services_confirmed: Optional[int] = None):
        self.contract = contract
        self.completed = completed
        self.certificate = certificate
        self.services_confirmed = services_confirmed

    @property
    def certificate_filename(self) -> str:
        return certificate_filename(self.contract)


class FinalizationService:
    def __init__(self, repository, asset_store, ip_resolver, certificates,
                 booking=None, notifications=None):
        self.repository = repository
        self.inputs = FieldInputBuilder(asset_store)
        self.ip_resolver = ip_resolver
        self.certificates = certificates
        self.booking = booking
        self.notifications = notifications

    def finalize(self, contract_id: str, access_token: str, access_code: Optional[str] = None,
                 inputs: Optional[Dict[str, object]] = None,
                 signer_context: Optional[SignerContext] = None) -> FinalizationResult:
        """
        Sign every field of the calling client and, once all required client
        fields are signed, complete the contract.

        Nothing is committed unless every step up to the state write succeeds,
        so a failed attempt can be retried with the same inputs.
        """
        inputs = inputs or {}
        signer_context = signer_context or SignerContext()

        # 1) Load, guard and merge inputs with stored drafts
        contract = self.repository.get(contract_id)
        version = contract.version
        signer = resolve_signer(contract, access_token, access_code)
        contract.assert_accepts_client_input()
        assert_signer_can_act(signer)

        own_fields = contract.fields_for_signer(signer)
        own_ids = {f.id for f in own_fields}
        unknown = [field_id for field_id in inputs if field_id not in own_ids]
        if unknown:
            raise ValidationError(f"Unknown fields for this signer: {', '.join(unknown)}",
                                  errors={field_id: "unknown field" for field_id in unknown})

        # submitted inputs win over drafts; drafts are the only source of prebuilt values
        merged, from_draft = {}, set()
        for field in own_fields:
            raw = inputs.get(field.id)
            if field.signed:
                if not raw_is_empty(raw):
                    raise FieldLockedError(field.id)
                continue
            if not raw_is_empty(raw):
                merged[field.id] = raw
            elif not raw_is_empty(field.draft_value):
                merged[field.id] = field.draft_value
                from_draft.add(field.id)

        missing = [f.label for f in own_fields if f.required and not f.signed and f.id not in merged]
        if missing:
            raise ValidationError.missing_fields(missing)

        at = utcnow()
        ctx = SigningContext(
            contract_id=contract.id,
            event_id=contract.event_id,
            signer_role=signer.role.value,
            signer_name=signer.name,
            metadata=SignatureMetadata(
                signer_id=signer.id,
                signer_role=signer.role.value,
                contract_id=contract.id,
                event_id=contract.event_id,
                signed_at=at,
                user_agent=signer_context.user_agent,
            ),
            signed_at=at,
        )

        # 2) Type-check plain values first, then upload fresh drawings
        values = {}
        by_id = {f.id: f for f in own_fields}
        ordered = sorted(merged, key=lambda field_id: by_id[field_id].is_image)
        for field_id in ordered:
            spec = FieldSpec.of(by_id[field_id])
            if field_id in from_draft:
                value = self.inputs.from_draft(spec, merged[field_id], ctx)
            else:
                value = self.inputs.build(spec, merged[field_id], ctx)
            if by_id[field_id].required and is_empty(value):
                raise ValidationError.missing_fields([by_id[field_id].label])
            values[field_id] = value

        # 3) Signer context
        ip_address = signer_context.ip_address or self.ip_resolver.resolve() or UNKNOWN_IP

        # 4) One commit: field values, signer, stage and audit entries
        for field_id, value in values.items():
            by_id[field_id].sign(value, at, signer.id)
        signer.mark_signed(at, ip_address, signer_context.user_agent)
        actor = signer.email or signer.name or signer.id
        AuditTrail.append(contract, AuditAction.CLIENT_SIGNED, actor, signer.role.value,
                          {"fields": sorted(values), "user_agent": signer_context.user_agent},
                          ip_address=ip_address, at=at)

        completed = not [f for f in contract.required_client_fields if not f.signed]
        if completed:
            contract.complete(actor, at)
            AuditTrail.append(contract, AuditAction.CONTRACT_COMPLETED, actor, signer.role.value,
                              {"completed_at": at.isoformat()}, ip_address=ip_address, at=at)

        contract = self.repository.save(contract, version)
        logger.info(f"Contract {contract.id} signed by {actor}; completed={completed}")

        # 5) Best-effort side effects; the committed state is never reverted
        result = FinalizationResult(contract, completed)
        if not completed:
            return result

        if self.booking is not None:
            try:
                result.services_confirmed = self.booking.confirm_booked_services(
                    contract.event_id, contract.vendor_id
                )
            except Exception:
                logger.exception(f"Could not confirm booked services for contract {contract.id}")

        if self.notifications is not None:
            try:
                self.notifications.contract_completed(contract.vendor_id, contract.id,
                                                      contract.file_name, signer.name or actor)
            except Exception:
                logger.exception(f"Could not notify vendor about completed contract {contract.id}")

        try:
            result.certificate = self.certificates.generate(contract)
        except Exception:
            logger.exception(f"Could not generate the signing certificate for contract {contract.id}")

        return result
