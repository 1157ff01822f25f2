import json
from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, Request, Response, UploadFile, status
from pydantic import TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from modules.contracts.dependencies import (
    get_certificate_service,
    get_workflow_service,
    to_http_error,
)
from modules.contracts.exceptions import ContractError, WorkflowError
from modules.contracts.models.contract import WorkflowStatus
from modules.contracts.models.signature_field import SignerRole
from modules.contracts.schemas import (
    ContractResponse,
    ContractSummary,
    DefineFieldsRequest,
    SendRequest,
    SendResponse,
    SignatureFieldInput,
    VendorSignRequest,
)
from modules.contracts.services.certificate_service import CertificateService, certificate_filename
from modules.contracts.services.workflow_service import ContractWorkflowService

router = APIRouter()

_field_list = TypeAdapter(List[SignatureFieldInput])


def _parse_json_form(raw: Optional[str], name: str):
    if not raw:
        return None
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        raise HTTPException(status.HTTP_422_UNPROCESSABLE_ENTITY, f"'{name}' must be valid JSON")


@router.post(
    "",
    response_model=ContractResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Upload a contract document"
)
async def upload_contract(
    event_id: str = Form(...),
    vendor_id: str = Form(...),
    client_name: Optional[str] = Form(None),
    client_email: Optional[str] = Form(None),
    electronic: bool = Form(True),
    final_prices: Optional[str] = Form(None),
    signature_fields: Optional[str] = Form(None),
    replaces_contract_id: Optional[str] = Form(None),
    actor: Optional[str] = Form(None),
    file: UploadFile = File(...),
    service: ContractWorkflowService = Depends(get_workflow_service)
):
    prices = _parse_json_form(final_prices, "final_prices") or {}
    fields = _parse_json_form(signature_fields, "signature_fields")
    try:
        definitions = _field_list.validate_python(fields) if fields else None
    except PydanticValidationError as e:
        raise HTTPException(status.HTTP_422_UNPROCESSABLE_ENTITY, str(e))

    contents = await file.read()
    try:
        return service.upload_contract(
            event_id=event_id,
            vendor_id=vendor_id,
            file_name=file.filename,
            content=contents,
            content_type=file.content_type,
            client_name=client_name,
            client_email=client_email,
            final_prices=prices,
            electronic=electronic,
            signature_fields=definitions,
            replaces_contract_id=replaces_contract_id,
            actor=actor,
        )
    except ContractError as e:
        raise to_http_error(e)


@router.get(
    "",
    response_model=List[ContractSummary],
    summary="List contracts of an event or vendor"
)
def list_contracts(
    event_id: Optional[str] = None,
    vendor_id: Optional[str] = None,
    include_superseded: bool = True,
    service: ContractWorkflowService = Depends(get_workflow_service)
):
    return service.list_contracts(event_id, vendor_id, include_superseded)


@router.get("/{contract_id}", response_model=ContractResponse, summary="Get a contract")
def get_contract(
    contract_id: str,
    service: ContractWorkflowService = Depends(get_workflow_service)
):
    try:
        return service.get_contract(contract_id)
    except ContractError as e:
        raise to_http_error(e)


@router.put(
    "/{contract_id}/fields",
    response_model=ContractResponse,
    summary="Define the signature fields of a contract"
)
def define_fields(
    contract_id: str,
    payload: DefineFieldsRequest,
    service: ContractWorkflowService = Depends(get_workflow_service)
):
    try:
        return service.define_signature_fields(
            contract_id, payload.fields, payload.actor, payload.expected_version
        )
    except ContractError as e:
        raise to_http_error(e)


@router.post(
    "/{contract_id}/vendor-signature",
    response_model=ContractResponse,
    summary="Sign the contract as the vendor"
)
def sign_as_vendor(
    contract_id: str,
    payload: VendorSignRequest,
    request: Request,
    service: ContractWorkflowService = Depends(get_workflow_service)
):
    try:
        return service.sign_as_vendor(
            contract_id,
            payload.capture,
            payload.vendor_name,
            payload.vendor_email,
            field_values=payload.field_values,
            actor=payload.actor,
            ip_address=request.client.host if request.client else None,
            user_agent=request.headers.get("user-agent"),
            expected_version=payload.expected_version,
        )
    except ContractError as e:
        raise to_http_error(e)


@router.post(
    "/{contract_id}/send",
    response_model=SendResponse,
    summary="Send the contract to the client for signature"
)
def send_for_signature(
    contract_id: str,
    payload: SendRequest,
    service: ContractWorkflowService = Depends(get_workflow_service)
):
    try:
        contract = service.send_for_signature(contract_id, payload.actor, payload.expected_version)
    except ContractError as e:
        raise to_http_error(e)
    links = [
        {
            "signer_id": s.id,
            "email": s.email,
            "access_token": s.access_token,
            "access_code": s.access_code,
        }
        for s in contract.signers_for(SignerRole.CLIENT)
    ]
    return {"contract": contract, "signing_links": links}


@router.delete(
    "/{contract_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete a contract"
)
def delete_contract(
    contract_id: str,
    actor: str,
    service: ContractWorkflowService = Depends(get_workflow_service)
):
    try:
        service.delete_contract(contract_id, actor)
    except ContractError as e:
        raise to_http_error(e)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/{contract_id}/certificate", summary="Download the signing certificate")
def download_certificate(
    contract_id: str,
    service: ContractWorkflowService = Depends(get_workflow_service),
    certificates: CertificateService = Depends(get_certificate_service)
):
    try:
        contract = service.get_contract(contract_id)
        if contract.workflow_status != WorkflowStatus.COMPLETED:
            raise WorkflowError("contract is not completed")
    except ContractError as e:
        raise to_http_error(e)

    data = certificates.generate(contract)
    return Response(
        content=data,
        media_type="application/pdf",
        headers={"Content-Disposition": f'attachment; filename="{certificate_filename(contract)}"'},
    )
