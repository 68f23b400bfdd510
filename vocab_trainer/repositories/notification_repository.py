from datetime import datetime
from typing import List
from sqlalchemy import or_
from sqlalchemy.orm import Session
from vocab_trainer.models.notification import Notification
from vocab_trainer.repositories.base import BaseRepository

class NotificationRepository(BaseRepository[Notification]):
    def __init__(self, db: Session):
        super().__init__(db, Notification)

    def get_active_for_user(self, user_id: int, now: datetime, limit: int = 50) -> List[Notification]:
        """获取用户未过期的有效通知"""
        return self.db.query(Notification).filter(
            Notification.user_id == user_id,
            Notification.is_active.is_(True),
            or_(Notification.expires_at.is_(None), Notification.expires_at > now)
        ).order_by(Notification.created_at.desc(), Notification.id.desc()).limit(limit).all()
