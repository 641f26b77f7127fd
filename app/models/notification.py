from sqlalchemy import Column, Integer, Text, Boolean, DateTime, ForeignKey, Enum
from sqlalchemy.sql import func
from app.db.base_class import Base
from app.models.enums import NotificationType

class Notification(Base):
    __tablename__ = "notification"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    receiver_id = Column(Integer, ForeignKey("user_account.id"), nullable=False, index=True)
    notification_type = Column(Enum(NotificationType, native_enum=False, length=20), nullable=False)
    message = Column(Text, nullable=False)
    is_read = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, server_default=func.now(), nullable=False)

    def __repr__(self):
        return f"<Notification(id={self.id}, receiver_id={self.receiver_id}, type='{self.notification_type}')>"
