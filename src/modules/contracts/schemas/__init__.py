from .contract_schemas import (
    ContractResponse, ContractSummary, DeclineRequest, DefineFieldsRequest, DraftRequest,
    DraftSaveResponse, FinalizeRequest, FinalizeResponse, SendRequest, SendResponse,
    SignatureFieldInput, SignerAccess, SigningLink, SigningSessionResponse, VendorSignRequest
)

__all__ = [
    'ContractResponse', 'ContractSummary', 'DeclineRequest', 'DefineFieldsRequest',
    'DraftRequest', 'DraftSaveResponse', 'FinalizeRequest', 'FinalizeResponse', 'SendRequest',
    'SendResponse', 'SignatureFieldInput', 'SignerAccess', 'SigningLink',
    'SigningSessionResponse', 'VendorSignRequest'
]
