from typing import Dict, List, Optional


class ContractError(Exception):
    """Base class for every error raised by the contract workflow"""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ContractNotFoundError(ContractError):
    pass


class ValidationError(ContractError):
    """Required client fields are missing or a submitted value is malformed"""

    def __init__(self, message: str, missing_labels: Optional[List[str]] = None,
                 errors: Optional[Dict[str, str]] = None):
        super().__init__(message)
        self.missing_labels = missing_labels or []
        self.errors = errors or {}

    @classmethod
    def missing_fields(cls, labels: List[str]) -> "ValidationError":
        return cls(
            f"Please complete all required fields: {', '.join(labels)}",
            missing_labels=labels,
        )


class WorkflowError(ContractError):
    """Illegal state transition; the message names the missing precondition"""
    pass


class AccessDeniedError(ContractError):
    """Unknown signer access token or wrong access code"""
    pass


class FieldLockedError(WorkflowError):
    """A signed field is write-once"""

    def __init__(self, field_id: str):
        super().__init__(f"Field '{field_id}' is already signed and cannot be changed")
        self.field_id = field_id


class InvalidAssetFormatError(ContractError):
    pass


class EmptyAssetError(ContractError):
    pass


class StorageError(ContractError):
    """Upstream storage failure; safe to retry"""
    pass


class TransientError(StorageError):
    pass


class ConflictError(ContractError):
    """The contract changed since it was read; reload and retry"""

    def __init__(self, contract_id: str, expected_version: int, actual_version: Optional[int]):
        super().__init__(
            f"Contract {contract_id} was modified concurrently "
            f"(expected version {expected_version}, found {actual_version}); reload and retry"
        )
        self.contract_id = contract_id
        self.expected_version = expected_version
        self.actual_version = actual_version


class AuditTrailImmutableError(ContractError):
    pass


class PartialDraftFailure(ContractError):
    """Per-field failure while saving a draft; never fails the whole save"""

    def __init__(self, field_id: str, reason: str):
        super().__init__(f"{field_id}: {reason}")
        self.field_id = field_id
        self.reason = reason
