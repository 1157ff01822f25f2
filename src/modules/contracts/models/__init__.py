from .audit_entry import AuditAction, AuditEntry
from .contract import Contract, ContractStatus, WorkflowStage, WorkflowStatus
from .signature_field import FieldType, SignatureField, SignerRole
from .signer import Signer, SignerStatus

__all__ = [
    'AuditAction', 'AuditEntry', 'Contract', 'ContractStatus', 'WorkflowStage',
    'WorkflowStatus', 'FieldType', 'SignatureField', 'SignerRole', 'Signer', 'SignerStatus'
]
