from enum import Enum

from sqlalchemy import Column, String, Integer, ForeignKey, DateTime, Boolean, JSON
from .base import BaseModel


class NotificationType(str, Enum):
    VOCAB_TRAINER = "VOCAB_TRAINER"


class NotificationAction(str, Enum):
    CREATE = "CREATE"
    COMPLETE = "COMPLETE"


class PriorityLevel(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"


"""
通知模型
记录发给用户的站内通知，过期或停用后不再返回
"""
class Notification(BaseModel):
    __tablename__ = "notifications"

    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    type = Column(String(30), nullable=False, default=NotificationType.VOCAB_TRAINER.value)
    action = Column(String(30), nullable=False, default=NotificationAction.CREATE.value)
    priority = Column(String(10), nullable=False, default=PriorityLevel.MEDIUM.value)
    data = Column(JSON)
    expires_at = Column(DateTime)
    is_active = Column(Boolean, nullable=False, default=True)
    is_read = Column(Boolean, nullable=False, default=False)

    def to_dict(self):
        return {
            "id": self.id,
            "user_id": self.user_id,
            "type": self.type,
            "action": self.action,
            "priority": self.priority,
            "data": self.data,
            "expires_at": self.expires_at.isoformat() if self.expires_at else None,
            "is_active": self.is_active,
            "is_read": self.is_read,
            "created_at": self.created_at.isoformat() if self.created_at else None
        }
