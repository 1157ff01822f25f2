import secrets
import string
from typing import Iterable, List, Optional

from modules.contracts.exceptions import AccessDeniedError, WorkflowError
from modules.contracts.models.signature_field import SignerRole
from modules.contracts.models.signer import Signer, SignerStatus

ACCESS_CODE_LENGTH = 6
_ACCESS_CODE_ALPHABET = string.ascii_uppercase + string.digits


def generate_access_token() -> str:
    return secrets.token_urlsafe(32)


def generate_access_code(length: int = ACCESS_CODE_LENGTH) -> str:
    return "".join(secrets.choice(_ACCESS_CODE_ALPHABET) for _ in range(length))


def _signer_key(role: SignerRole, email: Optional[str]):
    return (role, (email or "").strip().lower())


def derive_signers(fields: Iterable, existing: Iterable[Signer],
                   client_name: Optional[str] = None,
                   vendor_name: Optional[str] = None,
                   default_client_email: Optional[str] = None) -> List[Signer]:
    """
    Merge the parties implied by `fields` into `existing`.

    Signers are keyed by (role, email); existing ones are returned untouched
    and keep their access tokens. Only missing pairs get a new pending signer.
    Fields without a signer email fall back to `default_client_email` for clients.
    """
    merged = list(existing)
    known = {_signer_key(s.role, s.email) for s in merged}

    for field in fields:
        email = field.signer_email
        if not email and field.signer_role == SignerRole.CLIENT:
            email = default_client_email
        if not email and field.signer_role == SignerRole.VENDOR and any(
                role == SignerRole.VENDOR for role, _ in known):
            continue
        key = _signer_key(field.signer_role, email)
        if key in known:
            continue
        known.add(key)

        is_client = field.signer_role == SignerRole.CLIENT
        merged.append(Signer(
            position=len(merged),
            role=field.signer_role,
            name=client_name if is_client else vendor_name,
            email=email or None,
            status=SignerStatus.PENDING,
            access_token=generate_access_token(),
            access_code=generate_access_code() if is_client else None,
        ))
    return merged


def resolve_signer(contract, access_token: str, access_code: Optional[str] = None,
                   role: Optional[SignerRole] = SignerRole.CLIENT) -> Signer:
    """Signer holding `access_token`; client signers must also present their access code."""
    signer = contract.signer_by_token(access_token) if access_token else None
    if signer is None:
        raise AccessDeniedError("Invalid signing link")
    if role is not None and signer.role != role:
        raise AccessDeniedError(f"This link is not valid for a {role.value} signer")
    if not signer.verify_access_code(access_code):
        raise AccessDeniedError("Invalid access code")
    return signer


def assert_signer_can_act(signer: Signer) -> None:
    if signer.status == SignerStatus.DECLINED:
        raise WorkflowError("signer has declined to sign this contract")
    if signer.status == SignerStatus.SIGNED:
        raise WorkflowError("signer has already signed this contract")
