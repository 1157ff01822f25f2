from datetime import datetime
from typing import Optional

from pydantic import BaseModel


class NotificationResponse(BaseModel):
    id: int
    recipient: str
    title: str
    message: str
    contract_id: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    read: bool = False

    model_config = {"from_attributes": True}
