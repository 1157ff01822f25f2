from fastapi import APIRouter, Depends, Request

from modules.contracts.dependencies import (
    get_draft_service,
    get_finalization_service,
    get_workflow_service,
    to_http_error,
)
from modules.contracts.exceptions import ContractError
from modules.contracts.schemas import (
    ContractResponse,
    DeclineRequest,
    DraftRequest,
    DraftSaveResponse,
    FinalizeRequest,
    FinalizeResponse,
    SignerAccess,
    SigningSessionResponse,
)
from modules.contracts.services.draft_service import DraftService
from modules.contracts.services.finalization_service import FinalizationService, SignerContext
from modules.contracts.services.workflow_service import ContractWorkflowService

router = APIRouter()


def _client_ip(request: Request):
    return request.client.host if request.client else None


@router.post(
    "/{contract_id}/signing/open",
    response_model=SigningSessionResponse,
    summary="Open a contract with a signer link"
)
def open_for_signer(
    contract_id: str,
    payload: SignerAccess,
    request: Request,
    service: ContractWorkflowService = Depends(get_workflow_service)
):
    try:
        session = service.open_for_signer(
            contract_id, payload.access_token, payload.access_code, ip_address=_client_ip(request)
        )
    except ContractError as e:
        raise to_http_error(e)
    return {
        "contract": session.contract,
        "signer": session.signer,
        "fields": session.fields,
        "drafts": session.drafts,
    }


@router.post(
    "/{contract_id}/signing/draft",
    response_model=DraftSaveResponse,
    summary="Save in-progress field values without signing"
)
async def save_draft(
    contract_id: str,
    payload: DraftRequest,
    request: Request,
    service: DraftService = Depends(get_draft_service)
):
    try:
        result = await service.save_draft(
            contract_id, payload.access_token, payload.access_code, payload.values,
            user_agent=request.headers.get("user-agent"),
        )
    except ContractError as e:
        raise to_http_error(e)
    return {
        "saved": result.saved,
        "failures": result.failures,
        "workflow_status": result.contract.workflow_status,
        "completion_percentage": result.contract.completion_percentage,
        "version": result.contract.version,
    }


@router.post(
    "/{contract_id}/signing/finalize",
    response_model=FinalizeResponse,
    summary="Sign the contract and complete it"
)
def finalize(
    contract_id: str,
    payload: FinalizeRequest,
    request: Request,
    service: FinalizationService = Depends(get_finalization_service)
):
    context = SignerContext(ip_address=_client_ip(request), user_agent=request.headers.get("user-agent"))
    try:
        result = service.finalize(
            contract_id, payload.access_token, payload.access_code, payload.values, context
        )
    except ContractError as e:
        raise to_http_error(e)
    return {
        "contract": result.contract,
        "completed": result.completed,
        "certificate_filename": result.certificate_filename,
        "certificate_available": result.certificate is not None,
        "services_confirmed": result.services_confirmed,
    }


@router.post(
    "/{contract_id}/signing/decline",
    response_model=ContractResponse,
    summary="Decline to sign the contract"
)
def decline(
    contract_id: str,
    payload: DeclineRequest,
    request: Request,
    service: ContractWorkflowService = Depends(get_workflow_service)
):
    try:
        return service.decline(
            contract_id, payload.access_token, payload.access_code, payload.reason,
            ip_address=_client_ip(request),
        )
    except ContractError as e:
        raise to_http_error(e)
