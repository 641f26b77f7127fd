from pydantic import BaseModel
from datetime import datetime

from app.models.enums import NotificationType

class Notification(BaseModel):
    id: int
    receiver_id: int
    notification_type: NotificationType
    message: str
    is_read: bool
    created_at: datetime

    class Config:
        from_attributes = True
