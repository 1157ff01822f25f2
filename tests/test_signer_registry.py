import re

import pytest

from modules.contracts.exceptions import AccessDeniedError
from modules.contracts.models import Contract, FieldType, SignatureField, SignerRole, SignerStatus
from modules.contracts.services.signer_registry import derive_signers, resolve_signer


def make_field(id, role=SignerRole.CLIENT, email=None):
    return SignatureField(id=id, type=FieldType.TEXT, label=id, signer_role=role, signer_email=email)


def test_derives_one_signer_per_role_and_email():
    fields = [
        make_field("a", email="ann@example.com"),
        make_field("b", email="ANN@example.com"),
        make_field("c", email="bob@example.com"),
        make_field("v", role=SignerRole.VENDOR, email="vendor@example.com"),
    ]
    signers = derive_signers(fields, [])

    assert len(signers) == 3
    assert all(s.status == SignerStatus.PENDING for s in signers)
    assert [s.role for s in signers].count(SignerRole.CLIENT) == 2


def test_client_signers_get_access_code_vendors_do_not():
    fields = [make_field("a", email="ann@example.com"), make_field("v", role=SignerRole.VENDOR)]
    client, vendor = derive_signers(fields, [])

    assert re.fullmatch(r"[A-Z0-9]{6}", client.access_code)
    assert vendor.access_code is None
    assert client.access_token and vendor.access_token
    assert client.access_token != vendor.access_token


def test_rerunning_reuses_existing_signers_and_tokens():
    fields = [make_field("a", email="ann@example.com"), make_field("v", role=SignerRole.VENDOR)]
    first = derive_signers(fields, [])
    second = derive_signers(fields, first)

    assert len(second) == len(first)
    assert [s.access_token for s in second] == [s.access_token for s in first]
    assert [s.access_code for s in second] == [s.access_code for s in first]


def test_merge_never_discards_signers_no_longer_implied():
    first = derive_signers([make_field("a", email="ann@example.com")], [])
    second = derive_signers([make_field("b", email="bob@example.com")], first)

    assert [s.email for s in second] == ["ann@example.com", "bob@example.com"]
    assert second[0] is first[0]


def test_fields_without_email_use_default_client_email():
    signers = derive_signers([make_field("a"), make_field("b")], [], client_name="Jane",
                             default_client_email="jane@example.com")

    assert len(signers) == 1
    assert signers[0].email == "jane@example.com"
    assert signers[0].name == "Jane"


def test_resolve_signer_checks_token_and_code():
    contract = Contract(id="c1", event_id="e", vendor_id="v", file_name="x.pdf")
    contract.signers = derive_signers([make_field("a", email="ann@example.com")], [])
    signer = contract.signers[0]

    assert resolve_signer(contract, signer.access_token, signer.access_code.lower()) is signer
    with pytest.raises(AccessDeniedError):
        resolve_signer(contract, "not-a-token", signer.access_code)
    with pytest.raises(AccessDeniedError):
        resolve_signer(contract, signer.access_token, "WRONG1")
    with pytest.raises(AccessDeniedError):
        resolve_signer(contract, signer.access_token, None)
