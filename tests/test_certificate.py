import io

from PyPDF2 import PdfReader

from conftest import field, sent_contract
from modules.contracts.services.certificate_service import CertificateService, certificate_filename


def pdf_text(data):
    reader = PdfReader(io.BytesIO(data))
    return "".join(page.extract_text() for page in reader.pages)


def test_certificate_lists_signers_vendor_and_audit(workflow):
    contract, client = sent_contract(workflow, [field("f1", label="Full name")])

    text = pdf_text(CertificateService().generate(contract))

    assert "Electronic Signature Certificate" in text
    assert contract.file_name in text
    assert "Vic Vendor" in text
    assert client.email in text
    assert "sent_for_signature" in text


def test_certificate_embeds_stored_images(workflow, asset_store):
    contract, _ = sent_contract(workflow, [field("f1")])

    data = CertificateService(asset_store).generate(contract)

    assert data.startswith(b"%PDF")
    assert b"/Image" in data


def test_missing_image_falls_back_to_url(workflow, asset_store, storage):
    contract, _ = sent_contract(workflow, [field("f1")])
    storage.delete(contract.vendor_signature.storage_key)

    text = pdf_text(CertificateService(asset_store).generate(contract))

    assert "Vendor signature" in text


def test_certificate_filename(workflow):
    contract, _ = sent_contract(workflow, [field("f1")])
    assert certificate_filename(contract) == f"signature-certificate-{contract.id}.pdf"
