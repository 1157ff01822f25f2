from typing import List, Optional

from modules.notifications.models.notification import Notification
from modules.notifications.repositories.notification_repository import NotificationRepository


class NotificationTemplate:
    def __init__(self, recipient: str, title: str, message: str, contract_id: Optional[str] = None):
        self.recipient = recipient
        self.title = title
        self.message = message
        self.contract_id = contract_id

    def to_dict(self):
        return {
            'recipient': self.recipient,
            'title': self.title,
            'message': self.message,
            'contract_id': self.contract_id,
        }


class ContractSentNotification(NotificationTemplate):
    def __init__(self, recipient: str, contract_id: str, file_name: str, access_code: Optional[str]):
        message = f"The contract '{file_name}' is ready for your signature."
        if access_code:
            message += f" Your access code is {access_code}."
        super().__init__(recipient, "Contract ready to sign", message, contract_id)


class ContractCompletedNotification(NotificationTemplate):
    def __init__(self, recipient: str, contract_id: str, file_name: str, signer_name: str):
        message = f"'{file_name}' was signed by {signer_name} and is now complete."
        super().__init__(recipient, "Contract signed", message, contract_id)


class ContractDeclinedNotification(NotificationTemplate):
    def __init__(self, recipient: str, contract_id: str, file_name: str, signer_name: str,
                 reason: Optional[str]):
        message = f"{signer_name} declined to sign '{file_name}'."
        if reason:
            message += f" Reason: {reason}"
        super().__init__(recipient, "Contract declined", message, contract_id)


class NotificationService:
    def __init__(self, repository: NotificationRepository):
        self.notification_repository = repository

    def notify(self, template: NotificationTemplate) -> Notification:
        return self.notification_repository.save(Notification(**template.to_dict()))

    def contract_sent(self, recipient: str, contract_id: str, file_name: str,
                      access_code: Optional[str] = None) -> Notification:
        return self.notify(ContractSentNotification(recipient, contract_id, file_name, access_code))

    def contract_completed(self, recipient: str, contract_id: str, file_name: str,
                           signer_name: str) -> Notification:
        return self.notify(ContractCompletedNotification(recipient, contract_id, file_name, signer_name))

    def contract_declined(self, recipient: str, contract_id: str, file_name: str,
                          signer_name: str, reason: Optional[str] = None) -> Notification:
        return self.notify(
            ContractDeclinedNotification(recipient, contract_id, file_name, signer_name, reason)
        )

    def get_notifications(self, recipient: str, unread_only: bool = False) -> List[Notification]:
        return self.notification_repository.find_by_recipient(recipient, unread_only)

    def mark_as_read(self, notification_id: int) -> Optional[Notification]:
        return self.notification_repository.mark_read(notification_id)

    def for_contract(self, contract_id: str) -> List[Notification]:
        return self.notification_repository.find_by_contract(contract_id)
