from typing import List

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from database import get_db
from modules.notifications.models.schemas import NotificationResponse
from modules.notifications.repositories.notification_repository import NotificationRepository
from modules.notifications.services.notification_service import NotificationService

router = APIRouter()


def get_notification_service(db: Session = Depends(get_db)) -> NotificationService:
    repo = NotificationRepository(db)
    return NotificationService(repo)


@router.get(
    "/recipients/{recipient}",
    response_model=List[NotificationResponse],
    summary="List notifications for a recipient"
)
def list_notifications(
    recipient: str,
    unread_only: bool = False,
    service: NotificationService = Depends(get_notification_service)
):
    return service.get_notifications(recipient, unread_only)


@router.get(
    "/contracts/{contract_id}",
    response_model=List[NotificationResponse],
    summary="List notifications sent about a contract"
)
def list_contract_notifications(
    contract_id: str,
    service: NotificationService = Depends(get_notification_service)
):
    return service.for_contract(contract_id)


@router.patch(
    "/{notification_id}/read",
    response_model=NotificationResponse,
    summary="Mark a notification as read"
)
def mark_notification_as_read(
    notification_id: int,
    service: NotificationService = Depends(get_notification_service)
):
    notif = service.mark_as_read(notification_id)
    if not notif:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Notification not found"
        )
    return notif
