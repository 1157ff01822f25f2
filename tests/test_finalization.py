import io

import pytest
from PyPDF2 import PdfReader

from conftest import CLIENT_EMAIL, EVENT_ID, STROKES, VENDOR_ID, StubBooking, field, sent_contract, upload
from modules.contracts.clock import utcnow
from modules.contracts.exceptions import (
    AccessDeniedError,
    FieldLockedError,
    StorageError,
    ValidationError,
    WorkflowError,
)
from modules.contracts.models import SignerRole, SignerStatus, WorkflowStage, WorkflowStatus
from modules.contracts.models.audit_entry import AuditAction
from modules.contracts.models.field_values import TextFieldValue
from modules.contracts.services.certificate_service import CertificateService
from modules.contracts.services.finalization_service import FinalizationService, SignerContext


def client_signer(contract, email=CLIENT_EMAIL):
    return [s for s in contract.signers_for(SignerRole.CLIENT) if s.email == email][0]


def finalize(finalizer, contract, signer, inputs=None, **kwargs):
    return finalizer.finalize(contract.id, signer.access_token, signer.access_code, inputs, **kwargs)


def test_single_required_field_completes_contract(workflow, finalizer, ip_resolver):
    contract, client = sent_contract(workflow, [field("f1", label="Full name")])
    audit_before = len(contract.audit_trail)

    result = finalize(finalizer, contract, client, {"f1": "John Doe"})

    contract = result.contract
    assert result.completed
    assert contract.workflow_stage == WorkflowStage.COMPLETED
    assert contract.workflow_status == WorkflowStatus.COMPLETED
    assert contract.completed_at is not None
    assert contract.completed_by == CLIENT_EMAIL
    f1 = contract.field("f1")
    assert f1.signed and f1.value.text == "John Doe"
    assert f1.signer_id == client.id
    assert client.status == SignerStatus.SIGNED
    assert client.ip_address == ip_resolver.ip
    assert [e.action for e in contract.audit_trail[audit_before:]] == [
        AuditAction.CLIENT_SIGNED, AuditAction.CONTRACT_COMPLETED,
    ]
    assert contract.completion_percentage == 100


def test_missing_required_field_is_named_and_nothing_is_committed(workflow, finalizer, session):
    contract, client = sent_contract(workflow, [
        field("f1", label="Full name"),
        field("f2", type="date", label="Event date"),
        field("f3", label="Notes", required=False),
    ])
    version = contract.version
    audit_before = len(contract.audit_trail)

    with pytest.raises(ValidationError) as excinfo:
        finalize(finalizer, contract, client, {"f1": "John Doe"})

    assert excinfo.value.missing_labels == ["Event date"]
    assert excinfo.value.message == "Please complete all required fields: Event date"
    session.expire_all()
    contract = workflow.get_contract(contract.id)
    assert contract.version == version
    assert contract.workflow_status == WorkflowStatus.SENT
    assert not contract.field("f1").signed
    assert len(contract.audit_trail) == audit_before


@pytest.mark.asyncio
async def test_stored_drafts_are_used_when_finalizing(workflow, drafts, finalizer):
    contract, client = sent_contract(workflow, [field("f1"), field("sig", type="signature")])
    await drafts.save_draft(contract.id, client.access_token, client.access_code,
                            {"f1": "Drafted name", "sig": STROKES})

    result = finalize(finalizer, contract, client)

    assert result.completed
    assert result.contract.field("f1").value.text == "Drafted name"
    assert result.contract.field("sig").value.asset.url
    assert result.contract.field("sig").draft_value is None


def test_retry_after_storage_failure_reaches_same_state(workflow, finalizer, storage, session):
    contract, client = sent_contract(workflow, [field("f1"), field("sig", type="signature")])
    inputs = {"f1": "John Doe", "sig": STROKES}
    storage.fail_on.append("/sig_")

    with pytest.raises(StorageError):
        finalize(finalizer, contract, client, inputs)
    session.expire_all()
    assert workflow.get_contract(contract.id).workflow_stage == WorkflowStage.SENT

    storage.fail_on.clear()
    result = finalize(finalizer, contract, client, inputs)

    actions = [e.action for e in result.contract.audit_trail]
    assert result.completed
    assert actions.count(AuditAction.CLIENT_SIGNED) == 1
    assert actions.count(AuditAction.CONTRACT_COMPLETED) == 1


def test_prebuilt_signature_value_is_rejected(workflow, finalizer, storage, session):
    contract, client = sent_contract(workflow, [field("f1"), field("sig", type="signature")])
    forged = {
        "type": "signature",
        "asset": {
            "url": "https://elsewhere.example/sig.png",
            "storage_key": "signatures/other-event/other-contract/sig_1.png",
            "signed_at": "2026-05-01T12:00:00",
            "field_id": "sig",
            "signer_role": "client",
        },
    }

    with pytest.raises(ValidationError, match="plain value"):
        finalize(finalizer, contract, client, {"f1": "John Doe", "sig": forged})
    with pytest.raises(ValidationError, match="plain value"):
        finalize(finalizer, contract, client, {"f1": {"type": "text", "text": "John"}, "sig": STROKES})

    session.expire_all()
    contract = workflow.get_contract(contract.id)
    assert contract.workflow_stage == WorkflowStage.SENT
    assert not contract.field("sig").signed
    assert not [k for k in storage.list_keys(f"signatures/{EVENT_ID}/{contract.id}/") if "/sig_" in k]


def test_finalizing_twice_is_rejected(workflow, finalizer):
    contract, client = sent_contract(workflow, [field("f1")])
    finalize(finalizer, contract, client, {"f1": "John Doe"})

    with pytest.raises(WorkflowError, match="contract is already completed"):
        finalize(finalizer, contract, client, {"f1": "John Doe"})


def test_finalize_before_sending_is_rejected(workflow, finalizer):
    contract = upload(workflow, [field("f1")])
    client = contract.signers[0]

    with pytest.raises(WorkflowError, match="has not been sent"):
        finalize(finalizer, contract, client, {"f1": "John Doe"})


def test_unknown_fields_and_bad_access_are_rejected(workflow, finalizer):
    contract, client = sent_contract(workflow, [field("f1")])

    with pytest.raises(ValidationError):
        finalize(finalizer, contract, client, {"f1": "John", "nope": "x"})
    with pytest.raises(AccessDeniedError):
        finalizer.finalize(contract.id, client.access_token, "WRONG1", {"f1": "John"})


def test_each_client_signs_only_their_fields(workflow, finalizer):
    contract, client = sent_contract(workflow, [
        field("f1"),
        field("f2", email="partner@example.com"),
    ])
    partner = client_signer(contract, "partner@example.com")

    first = finalize(finalizer, contract, client, {"f1": "John"})
    assert not first.completed
    assert first.contract.workflow_status == WorkflowStatus.PARTIALLY_SIGNED
    assert first.certificate is None

    with pytest.raises(ValidationError):
        finalize(finalizer, contract, partner, {"f1": "Hijack", "f2": "Pat"})
    with pytest.raises(WorkflowError):
        finalize(finalizer, contract, client, {})

    second = finalize(finalizer, contract, partner, {"f2": "Pat"})
    assert second.completed
    assert second.contract.completed_by == "partner@example.com"


def test_declined_signer_cannot_finalize(workflow, finalizer):
    contract, client = sent_contract(workflow, [field("f1")])
    workflow.decline(contract.id, client.access_token, client.access_code, "No")

    with pytest.raises(WorkflowError, match="declined"):
        finalize(finalizer, contract, client, {"f1": "John"})


def test_signer_context_ip_skips_lookup(workflow, finalizer, ip_resolver):
    contract, client = sent_contract(workflow, [field("f1")])

    result = finalize(finalizer, contract, client, {"f1": "John"},
                      signer_context=SignerContext("198.51.100.4", "pytest-agent"))

    assert ip_resolver.calls == 0
    signed = result.contract.audit_trail[-2]
    assert signed.action == AuditAction.CLIENT_SIGNED
    assert signed.ip_address == "198.51.100.4"
    assert client.user_agent == "pytest-agent"
    assert result.contract.field("f1").value.metadata.user_agent == "pytest-agent"


def test_completion_confirms_bookings_and_notifies_vendor(workflow, finalizer, booking, notifications):
    contract, client = sent_contract(workflow, [field("f1")])

    result = finalize(finalizer, contract, client, {"f1": "John"})

    assert booking.confirmed == [(EVENT_ID, VENDOR_ID)]
    assert result.services_confirmed == 1
    assert "signed" in notifications.get_notifications(VENDOR_ID)[0].title.lower()


def test_booking_failure_does_not_revert_completion(workflow, repository, asset_store, ip_resolver, caplog):
    finalizer = FinalizationService(repository, asset_store, ip_resolver, CertificateService(asset_store),
                                    booking=StubBooking(fail=True))
    contract, client = sent_contract(workflow, [field("f1")])

    result = finalize(finalizer, contract, client, {"f1": "John"})

    assert result.completed
    assert result.services_confirmed is None
    assert workflow.get_contract(contract.id).workflow_stage == WorkflowStage.COMPLETED
    assert "Could not confirm booked services" in caplog.text


def test_certificate_is_generated_on_completion(workflow, finalizer):
    contract, client = sent_contract(workflow, [field("f1", label="Full name"),
                                                field("sig", type="signature")])

    result = finalize(finalizer, contract, client, {"f1": "John Doe", "sig": STROKES})

    assert result.certificate_filename == f"signature-certificate-{contract.id}.pdf"
    reader = PdfReader(io.BytesIO(result.certificate))
    text = "".join(page.extract_text() for page in reader.pages)
    assert "Electronic Signature Certificate" in text
    assert "John Doe" in text
    assert "contract_completed" in text


def test_locked_field_input_is_rejected_for_the_same_signer(workflow, finalizer, session):
    contract, client = sent_contract(workflow, [field("f1"), field("f2", required=False)])
    contract.field("f1").sign(TextFieldValue(text="John"), utcnow(), client.id)
    session.commit()

    with pytest.raises(FieldLockedError):
        finalize(finalizer, contract, client, {"f1": "Changed"})
