from sqlalchemy.orm import Session
from typing import List

from app.models.notification import Notification
from app.models.enums import NotificationType

def create_notification(db: Session, *, receiver_id: int, message: str, notification_type: NotificationType) -> Notification:
    db_obj = Notification(receiver_id=receiver_id, message=message, notification_type=notification_type)
    db.add(db_obj)
    db.commit()
    db.refresh(db_obj)
    return db_obj

def get_notifications_for_user(
    db: Session, *, receiver_id: int, unread_only: bool = False, skip: int = 0, limit: int = 50
) -> List[Notification]:
    query = db.query(Notification).filter(Notification.receiver_id == receiver_id)
    if unread_only:
        query = query.filter(Notification.is_read == False)
    return query.order_by(Notification.created_at.desc(), Notification.id.desc()).offset(skip).limit(limit).all()

def mark_all_read(db: Session, *, receiver_id: int) -> int:
    updated = (
        db.query(Notification)
        .filter(Notification.receiver_id == receiver_id, Notification.is_read == False)
        .update({Notification.is_read: True}, synchronize_session=False)
    )
    db.commit()
    return updated
