from typing import List, Optional

from sqlalchemy.orm import Session

from modules.notifications.models.notification import Notification


class NotificationRepository:
    def __init__(self, db_session: Session):
        self.db = db_session

    def save(self, notification: Notification) -> Notification:
        self.db.add(notification)
        self.db.commit()
        self.db.refresh(notification)
        return notification

    def find_by_recipient(self, recipient: str, unread_only: bool = False) -> List[Notification]:
        query = self.db.query(Notification).filter(Notification.recipient == recipient)
        if unread_only:
            query = query.filter(Notification.read.is_(False))
        return query.order_by(Notification.created_at.desc(), Notification.id.desc()).all()

    def find_by_contract(self, contract_id: str) -> List[Notification]:
        return (
            self.db.query(Notification)
            .filter(Notification.contract_id == contract_id)
            .order_by(Notification.id)
            .all()
        )

    def mark_read(self, notification_id: int) -> Optional[Notification]:
        notification = self.db.get(Notification, notification_id)
        if notification is None:
            return None
        if not notification.read:
            notification.read = True
            self.db.commit()
            self.db.refresh(notification)
        return notification
