import pytest

from conftest import CLIENT_EMAIL, EVENT_ID, STROKES, VENDOR_ID, create_dummy_pdf_bytes, field, sent_contract, sign_vendor, upload
from modules.contracts.exceptions import (
    AccessDeniedError,
    ContractNotFoundError,
    ValidationError,
    WorkflowError,
)
from modules.contracts.models import (
    ContractStatus,
    SignerRole,
    SignerStatus,
    WorkflowStage,
    WorkflowStatus,
)
from modules.contracts.models.audit_entry import AuditAction


def actions(contract):
    return [e.action for e in contract.audit_trail]


class TestUpload:
    def test_electronic_upload_without_fields_waits_for_fields(self, workflow, storage):
        contract = upload(workflow)

        assert contract.workflow_stage == WorkflowStage.NONE
        assert contract.workflow_status == WorkflowStatus.NONE
        assert contract.version == 1
        assert contract.storage_key.startswith(f"contracts/{EVENT_ID}/{VENDOR_ID}/")
        assert contract.storage_key.endswith("-contract.pdf")
        assert storage.read(contract.storage_key).startswith(b"%PDF")
        assert contract.expiration_date > contract.first_uploaded
        assert actions(contract) == [AuditAction.CONTRACT_CREATED]

    def test_upload_with_fields_enters_draft_and_derives_signers(self, workflow):
        contract = upload(workflow, [field("f1"), field("v1", role="vendor")])

        assert contract.workflow_status == WorkflowStatus.DRAFT
        assert [s.role for s in contract.signers] == [SignerRole.CLIENT, SignerRole.VENDOR]
        assert contract.signers[0].email == CLIENT_EMAIL
        assert actions(contract) == [AuditAction.CONTRACT_CREATED, AuditAction.SIGNATURE_FIELDS_DEFINED]

    def test_non_electronic_upload_is_completed_immediately(self, workflow):
        contract = upload(workflow, electronic=False)

        assert contract.workflow_status == WorkflowStatus.COMPLETED
        assert contract.completed_at is not None
        with pytest.raises(WorkflowError):
            workflow.define_signature_fields(contract.id, [field("f1")], VENDOR_ID)

    @pytest.mark.parametrize("kwargs", [
        {"content": b"not a pdf at all"},
        {"content_type": "image/png", "file_name": "contract.png"},
        {"file_name": "contract.txt"},
        {"content": b""},
    ])
    def test_invalid_documents_are_rejected(self, workflow, kwargs):
        with pytest.raises(ValidationError):
            upload(workflow, **kwargs)

    def test_oversized_document_is_rejected(self, workflow, settings):
        settings.max_contract_size_bytes = 100
        with pytest.raises(ValidationError):
            upload(workflow, content=create_dummy_pdf_bytes())

    def test_final_prices_are_stored_and_pushed_to_bookings(self, workflow, booking):
        contract = upload(workflow, final_prices={"1": "1500", "2": 99.5})

        assert contract.final_prices == {"1": "1500.00", "2": "99.50"}
        assert booking.prices[0][:2] == (EVENT_ID, VENDOR_ID)

    def test_invalid_price_is_rejected(self, workflow):
        with pytest.raises(ValidationError):
            upload(workflow, final_prices={"1": "-5"})

    def test_replacement_supersedes_previous_contract(self, workflow, repository):
        old = upload(workflow, [field("f1")])
        new = upload(workflow, [field("f1")], replaces_contract_id=old.id)
        old = repository.get(old.id)

        assert old.status == ContractStatus.SUPERSEDED
        assert old.superseded_by_id == new.id
        assert new.supersedes_id == old.id
        assert actions(old)[-1] == AuditAction.CONTRACT_SUPERSEDED
        with pytest.raises(WorkflowError):
            sign_vendor(workflow, old)


class TestFields:
    def test_duplicate_field_ids_are_rejected(self, workflow):
        contract = upload(workflow)
        with pytest.raises(ValidationError):
            workflow.define_signature_fields(contract.id, [field("f1"), field("f1")], VENDOR_ID)

    def test_empty_field_set_is_rejected(self, workflow):
        contract = upload(workflow)
        with pytest.raises(ValidationError):
            workflow.define_signature_fields(contract.id, [], VENDOR_ID)

    def test_redefinition_in_draft_keeps_signers(self, workflow):
        contract = upload(workflow, [field("f1")])
        token = contract.signers[0].access_token

        contract = workflow.define_signature_fields(
            contract.id, [field("f1"), field("f2", email="partner@example.com")], VENDOR_ID
        )
        assert contract.workflow_stage == WorkflowStage.DRAFT
        assert [f.id for f in contract.signature_fields] == ["f1", "f2"]
        assert contract.signers[0].access_token == token
        assert len(contract.signers) == 2

    def test_fields_cannot_change_after_sending(self, workflow):
        contract, _ = sent_contract(workflow, [field("f1")])
        with pytest.raises(WorkflowError):
            workflow.define_signature_fields(contract.id, [field("f2")], VENDOR_ID)

    def test_signed_vendor_field_survives_redefinition(self, workflow):
        contract = upload(workflow, [field("v1", type="signature", role="vendor"), field("f1")])
        sign_vendor(workflow, contract)

        contract = workflow.define_signature_fields(
            contract.id, [field("f1"), field("v1", type="signature", role="vendor")], VENDOR_ID
        )
        assert contract.field("v1").signed
        with pytest.raises(WorkflowError):
            workflow.define_signature_fields(contract.id, [field("f1")], VENDOR_ID)


class TestVendorSigningAndSending:
    def test_send_without_vendor_signature_is_rejected(self, workflow):
        contract = upload(workflow, [field("f1")])

        with pytest.raises(WorkflowError, match="vendor has not signed"):
            workflow.send_for_signature(contract.id)
        assert workflow.get_contract(contract.id).workflow_stage == WorkflowStage.DRAFT

    def test_send_before_fields_are_defined_is_rejected(self, workflow):
        contract = upload(workflow)
        with pytest.raises(WorkflowError, match="signature fields have not been defined"):
            workflow.send_for_signature(contract.id)

    def test_vendor_signature_fills_vendor_fields(self, workflow):
        contract = upload(workflow, [
            field("v_sig", type="signature", role="vendor"),
            field("v_ini", type="initial", role="vendor"),
            field("v_date", type="date", role="vendor"),
            field("f1"),
        ])
        contract = sign_vendor(workflow, contract, field_values={"v_date": "2026-06-01"})

        assert contract.vendor_signature.url
        assert contract.vendor_signature.vendor_email == "vic@vendor.com"
        assert contract.vendor_signature.storage_key.startswith(f"signatures/{EVENT_ID}/{contract.id}/vendor_signature_")
        assert contract.field("v_sig").value.asset.url == contract.vendor_signature.url
        assert contract.field("v_ini").value.type == "initial"
        assert contract.field("v_date").value.date == "2026-06-01"
        assert not contract.field("f1").signed
        vendor = contract.signers_for(SignerRole.VENDOR)[0]
        assert vendor.status == SignerStatus.SIGNED
        assert actions(contract)[-1] == AuditAction.VENDOR_SIGNATURE_UPLOADED

    def test_send_requires_required_vendor_fields(self, workflow):
        contract = upload(workflow, [field("v_text", role="vendor"), field("f1")])
        sign_vendor(workflow, contract)

        with pytest.raises(WorkflowError, match="V_TEXT"):
            workflow.send_for_signature(contract.id)

    def test_vendor_details_are_validated(self, workflow):
        contract = upload(workflow, [field("f1")])
        with pytest.raises(ValidationError):
            workflow.sign_as_vendor(contract.id, STROKES, "", "not-an-email")

    def test_send_records_audit_and_notifies_clients(self, workflow, notifications):
        contract, client = sent_contract(workflow, [field("f1")])

        assert contract.workflow_status == WorkflowStatus.SENT
        assert contract.sent_at is not None
        assert client.invited_at is not None
        assert actions(contract)[-2:] == [AuditAction.VENDOR_SIGNED, AuditAction.SENT_FOR_SIGNATURE]
        inbox = notifications.get_notifications(CLIENT_EMAIL)
        assert len(inbox) == 1
        assert client.access_code in inbox[0].message

    def test_send_twice_is_rejected(self, workflow):
        contract, _ = sent_contract(workflow, [field("f1")])
        with pytest.raises(WorkflowError, match="already been sent"):
            workflow.send_for_signature(contract.id)


class TestSignerAccess:
    def test_open_requires_valid_access_code(self, workflow):
        contract, client = sent_contract(workflow, [field("f1")])

        with pytest.raises(AccessDeniedError):
            workflow.open_for_signer(contract.id, client.access_token, "WRONG1")

    def test_open_records_first_view_once(self, workflow):
        contract, client = sent_contract(workflow, [field("f1")])

        workflow.open_for_signer(contract.id, client.access_token, client.access_code)
        session = workflow.open_for_signer(contract.id, client.access_token, client.access_code)

        assert session.signer.accessed_at is not None
        assert actions(session.contract).count(AuditAction.CONTRACT_VIEWED) == 1
        assert [f.id for f in session.fields] == ["f1"]
        assert session.drafts == {}

    def test_open_before_sending_is_rejected(self, workflow):
        contract = upload(workflow, [field("f1")])
        client = contract.signers[0]
        with pytest.raises(WorkflowError):
            workflow.open_for_signer(contract.id, client.access_token, client.access_code)

    def test_decline_notifies_vendor_and_blocks_signer(self, workflow, notifications):
        contract, client = sent_contract(workflow, [field("f1")])

        contract = workflow.decline(contract.id, client.access_token, client.access_code, "Wrong date")

        assert contract.signers_for(SignerRole.CLIENT)[0].status == SignerStatus.DECLINED
        assert contract.workflow_stage == WorkflowStage.SENT
        assert actions(contract)[-1] == AuditAction.SIGNATURE_DECLINED
        assert "Wrong date" in notifications.get_notifications(VENDOR_ID)[0].message
        with pytest.raises(WorkflowError):
            workflow.decline(contract.id, client.access_token, client.access_code)


class TestQueries:
    def test_list_and_delete(self, workflow, storage):
        first = upload(workflow, [field("f1")])
        sign_vendor(workflow, first)
        upload(workflow, event_id="event-2")

        assert len(workflow.list_contracts(event_id=EVENT_ID)) == 1
        assert len(workflow.list_contracts(vendor_id=VENDOR_ID)) == 2

        workflow.delete_contract(first.id, VENDOR_ID)
        with pytest.raises(ContractNotFoundError):
            workflow.get_contract(first.id)
        assert storage.list_keys(f"signatures/{EVENT_ID}/{first.id}/") == []
        assert storage.list_keys(f"contracts/{EVENT_ID}/") == []
