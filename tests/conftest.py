import io

import pytest
from reportlab.pdfgen import canvas
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from config import Settings
from create_tables import create_tables
from database import Base
from modules.contracts.exceptions import StorageError
from modules.contracts.models.signature_field import FieldType, SignerRole
from modules.contracts.repositories.contract_repository import ContractRepository
from modules.contracts.schemas import SignatureFieldInput
from modules.contracts.services.asset_store import SignatureAssetStore
from modules.contracts.services.certificate_service import CertificateService
from modules.contracts.services.draft_service import DraftService
from modules.contracts.services.finalization_service import FinalizationService
from modules.contracts.services.storage import LocalAssetStorage
from modules.contracts.services.workflow_service import ContractWorkflowService
from modules.notifications.repositories.notification_repository import NotificationRepository
from modules.notifications.services.notification_service import NotificationService

engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

EVENT_ID = "event-1"
VENDOR_ID = "vendor-1"
CLIENT_EMAIL = "client@example.com"
STROKES = [[[10, 10], [60, 40], [120, 30]], [[150, 80], [200, 90]]]


class StubIpResolver:
    def __init__(self, ip="203.0.113.7"):
        self.ip = ip
        self.calls = 0

    def resolve(self):
        self.calls += 1
        return self.ip


class StubBooking:
    def __init__(self, fail=False):
        self.fail = fail
        self.confirmed = []
        self.prices = []

    def confirm_booked_services(self, event_id, vendor_id):
        if self.fail:
            raise RuntimeError("booking subsystem unavailable")
        self.confirmed.append((event_id, vendor_id))
        return 1

    def update_final_prices(self, event_id, vendor_id, prices):
        self.prices.append((event_id, vendor_id, prices))
        return []


class FlakyStorage(LocalAssetStorage):
    """Local storage whose writes fail for keys containing any of `fail_on`."""

    def __init__(self, root, base_url, fail_on=()):
        super().__init__(root, base_url)
        self.fail_on = list(fail_on)

    def put(self, key, data, content_type):
        if any(marker in key for marker in self.fail_on):
            raise StorageError(f"Could not store {key}: upstream unavailable")
        return super().put(key, data, content_type)


@pytest.fixture(autouse=True)
def clean_db():
    Base.metadata.drop_all(bind=engine)
    create_tables(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def session():
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def settings(tmp_path):
    return Settings(
        environment="testing",
        database_url="sqlite://",
        upload_dir=str(tmp_path / "uploads"),
        public_base_url="http://test/files",
    )


@pytest.fixture
def storage(settings):
    return FlakyStorage(settings.upload_dir, settings.public_base_url)


@pytest.fixture
def asset_store(storage):
    return SignatureAssetStore(storage)


@pytest.fixture
def booking():
    return StubBooking()


@pytest.fixture
def ip_resolver():
    return StubIpResolver()


@pytest.fixture
def notifications(session):
    return NotificationService(NotificationRepository(session))


@pytest.fixture
def repository(session):
    return ContractRepository(session)


@pytest.fixture
def workflow(repository, asset_store, storage, notifications, booking, settings):
    return ContractWorkflowService(repository, asset_store, storage, notifications=notifications,
                                   booking=booking, settings=settings)


@pytest.fixture
def drafts(repository, asset_store):
    return DraftService(repository, asset_store)


@pytest.fixture
def finalizer(repository, asset_store, ip_resolver, booking, notifications):
    return FinalizationService(repository, asset_store, ip_resolver, CertificateService(asset_store),
                               booking=booking, notifications=notifications)


def create_dummy_pdf_bytes(text="Contract for test"):
    buf = io.BytesIO()
    c = canvas.Canvas(buf)
    c.drawString(50, 750, text)
    c.save()
    buf.seek(0)
    return buf.read()


def field(id, type="text", label=None, role="client", required=True, email=None, **kwargs):
    return SignatureFieldInput(
        id=id,
        type=FieldType(type),
        label=label or id.upper(),
        required=required,
        signer_role=SignerRole(role),
        signer_email=email,
        **kwargs,
    )


def upload(workflow, fields=None, electronic=True, **kwargs):
    return workflow.upload_contract(
        event_id=kwargs.pop("event_id", EVENT_ID),
        vendor_id=kwargs.pop("vendor_id", VENDOR_ID),
        file_name=kwargs.pop("file_name", "contract.pdf"),
        content=kwargs.pop("content", create_dummy_pdf_bytes()),
        content_type=kwargs.pop("content_type", "application/pdf"),
        client_name=kwargs.pop("client_name", "Jane Planner"),
        client_email=kwargs.pop("client_email", CLIENT_EMAIL),
        electronic=electronic,
        signature_fields=fields,
        **kwargs,
    )


def sign_vendor(workflow, contract, **kwargs):
    return workflow.sign_as_vendor(
        contract.id, kwargs.pop("capture", STROKES), "Vic Vendor", "vic@vendor.com", **kwargs
    )


def sent_contract(workflow, fields):
    """Upload, vendor-sign and send; returns the contract and its first client signer."""
    contract = upload(workflow, fields)
    sign_vendor(workflow, contract)
    contract = workflow.send_for_signature(contract.id)
    client = [s for s in contract.signers if s.role == SignerRole.CLIENT][0]
    return contract, client
