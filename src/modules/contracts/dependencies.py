from functools import lru_cache

from fastapi import Depends, HTTPException, status
from sqlalchemy.orm import Session

from database import get_db
from modules.bookings.services.booking_service import BookingService
from modules.contracts.exceptions import (
    AccessDeniedError,
    AuditTrailImmutableError,
    ConflictError,
    ContractError,
    ContractNotFoundError,
    EmptyAssetError,
    InvalidAssetFormatError,
    StorageError,
    ValidationError,
    WorkflowError,
)
from modules.contracts.repositories.contract_repository import ContractRepository
from modules.contracts.services.asset_store import SignatureAssetStore
from modules.contracts.services.certificate_service import CertificateService
from modules.contracts.services.draft_service import DraftService
from modules.contracts.services.finalization_service import FinalizationService
from modules.contracts.services.ip_resolver import IpAddressResolver
from modules.contracts.services.storage import get_asset_storage
from modules.contracts.services.workflow_service import ContractWorkflowService
from modules.notifications.repositories.notification_repository import NotificationRepository
from modules.notifications.services.notification_service import NotificationService

_STATUS_BY_ERROR = [
    (ContractNotFoundError, status.HTTP_404_NOT_FOUND),
    (AccessDeniedError, status.HTTP_403_FORBIDDEN),
    (ValidationError, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (WorkflowError, status.HTTP_409_CONFLICT),
    (ConflictError, status.HTTP_409_CONFLICT),
    (AuditTrailImmutableError, status.HTTP_409_CONFLICT),
    (InvalidAssetFormatError, status.HTTP_400_BAD_REQUEST),
    (EmptyAssetError, status.HTTP_400_BAD_REQUEST),
    (StorageError, status.HTTP_503_SERVICE_UNAVAILABLE),
]


def to_http_error(error: ContractError) -> HTTPException:
    for error_type, status_code in _STATUS_BY_ERROR:
        if isinstance(error, error_type):
            return HTTPException(status_code=status_code, detail=error.message)
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=error.message)


@lru_cache(maxsize=1)
def get_storage():
    return get_asset_storage()


def get_ip_resolver() -> IpAddressResolver:
    return IpAddressResolver()


def get_asset_store(storage=Depends(get_storage)) -> SignatureAssetStore:
    return SignatureAssetStore(storage)


def get_notification_service(db: Session = Depends(get_db)) -> NotificationService:
    return NotificationService(NotificationRepository(db))


def get_workflow_service(
    db: Session = Depends(get_db),
    storage=Depends(get_storage),
    asset_store: SignatureAssetStore = Depends(get_asset_store),
    notifications: NotificationService = Depends(get_notification_service),
) -> ContractWorkflowService:
    return ContractWorkflowService(
        ContractRepository(db), asset_store, storage,
        notifications=notifications, booking=BookingService(db),
    )


def get_draft_service(
    db: Session = Depends(get_db),
    asset_store: SignatureAssetStore = Depends(get_asset_store),
) -> DraftService:
    return DraftService(ContractRepository(db), asset_store)


def get_certificate_service(
    asset_store: SignatureAssetStore = Depends(get_asset_store),
) -> CertificateService:
    return CertificateService(asset_store)


def get_finalization_service(
    db: Session = Depends(get_db),
    asset_store: SignatureAssetStore = Depends(get_asset_store),
    ip_resolver: IpAddressResolver = Depends(get_ip_resolver),
    certificates: CertificateService = Depends(get_certificate_service),
    notifications: NotificationService = Depends(get_notification_service),
) -> FinalizationService:
    return FinalizationService(
        ContractRepository(db), asset_store, ip_resolver, certificates,
        booking=BookingService(db), notifications=notifications,
    )
