import asyncio
import logging
from typing import Dict, List, Optional

from modules.contracts.clock import utcnow
from modules.contracts.exceptions import ContractError, FieldLockedError, PartialDraftFailure
from modules.contracts.models.audit_entry import AuditAction
from modules.contracts.models.field_values import SignatureMetadata
from modules.contracts.services.audit_trail import AuditTrail
from modules.contracts.services.field_inputs import (
    FieldInputBuilder,
    FieldSpec,
    SigningContext,
    raw_is_empty,
)
from modules.contracts.services.signer_registry import assert_signer_can_act, resolve_signer

logger = logging.getLogger(__name__)


class DraftSaveResult:
    def __init__(self, contract, saved: List[str], failures: Dict[str, str]):
        self.contract = contract
        self.saved = saved
        self.failures = failures

    @property
    def ok(self) -> bool:
        return not self.failures


class DraftService:
    """
    Partial, resumable saves of a client's field values.

    Values land in `draft_value` only; fields are never signed here. Each
    field is prepared independently and one failing upload never blocks the
    others: successful fields are committed together and failures are
    reported per field id.
    """

    def __init__(self, repository, asset_store):
        self.repository = repository
        self.inputs = FieldInputBuilder(asset_store)

    async def save_draft(self, contract_id: str, access_token: str,
                         access_code: Optional[str], inputs: Dict[str, object],
                         user_agent: Optional[str] = None) -> DraftSaveResult:
        # 1) Load and guard
        contract = self.repository.get(contract_id)
        version = contract.version
        signer = resolve_signer(contract, access_token, access_code)
        contract.assert_accepts_client_input()
        assert_signer_can_act(signer)

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
                user_agent=user_agent,
            ),
            signed_at=at,
        )
        own_fields = {f.id: f for f in contract.fields_for_signer(signer)}

        # 2) Prepare every field concurrently; no short-circuit on failure
        field_ids = list(inputs)
        results = await asyncio.gather(
            *(self._prepare(contract, own_fields, field_id, inputs[field_id], ctx)
              for field_id in field_ids),
            return_exceptions=True,
        )

        # 3) Keep what succeeded
        saved, failures = [], {}
        for field_id, result in zip(field_ids, results):
            if isinstance(result, BaseException):
                if not isinstance(result, Exception):
                    raise result
                failures[field_id] = self._describe(field_id, result)
                continue
            if result is None:
                continue
            own_fields[field_id].save_draft(result, at)
            saved.append(field_id)

        if saved:
            AuditTrail.append(contract, AuditAction.DRAFT_SAVED, signer.email or signer.id,
                              signer.role.value, {"fields": saved}, at=at)
            contract = self.repository.save(contract, version)
            logger.info(f"Draft saved on contract {contract.id}: {len(saved)} fields, {len(failures)} failed")
        elif failures:
            logger.warning(f"Draft save on contract {contract.id} stored nothing: {failures}")

        return DraftSaveResult(contract, saved, failures)

    async def _prepare(self, contract, own_fields, field_id: str, raw, ctx: SigningContext):
        if raw_is_empty(raw):
            return None
        field = own_fields.get(field_id)
        if field is None:
            reason = "field is not assigned to this signer" if contract.field(field_id) else "unknown field"
            raise PartialDraftFailure(field_id, reason)
        if field.signed:
            raise FieldLockedError(field_id)
        spec = FieldSpec.of(field)
        return await asyncio.to_thread(self.inputs.build, spec, raw, ctx)

    @staticmethod
    def _describe(field_id: str, error: Exception) -> str:
        if isinstance(error, ContractError):
            return error.message
        logger.error(f"Unexpected error saving draft field {field_id}", exc_info=error)
        return "unexpected error"
