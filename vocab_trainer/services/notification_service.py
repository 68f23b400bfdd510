"""
通知服务模块
保存站内通知记录，推送由 NotificationHub 负责
"""

import logging
from datetime import timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from vocab_trainer.config.settings import settings
from vocab_trainer.models.notification import (
    Notification, NotificationAction, NotificationType, PriorityLevel
)
from vocab_trainer.repositories.notification_repository import NotificationRepository
from vocab_trainer.utils.exceptions import NotFoundError
from vocab_trainer.utils.helpers import utc_now

logger = logging.getLogger(__name__)


class NotificationService:
    def __init__(self, db: Session):
        self.db = db
        self.notification_repo = NotificationRepository(db)

    def create(self, user_id: int, data: Dict[str, Any],
               action: str = NotificationAction.CREATE.value,
               priority: str = PriorityLevel.HIGH.value,
               notification_type: str = NotificationType.VOCAB_TRAINER.value,
               expires_in_days: Optional[int] = None) -> Notification:
        days = settings.NOTIFICATION_EXPIRES_DAYS if expires_in_days is None else expires_in_days
        notification = self.notification_repo.create(
            user_id=user_id,
            type=notification_type,
            action=action,
            priority=priority,
            data=data,
            expires_at=utc_now() + timedelta(days=days),
            is_active=True,
        )
        logger.info(f"创建通知 {notification.id} user={user_id} action={action}")
        return notification

    def create_completion_notification(self, user_id: int, trainer_name: str,
                                       pass_count: int) -> Notification:
        return self.create(user_id, {
            "trainerName": trainer_name,
            "message": f"Your test has been completed after {pass_count} passes",
            "completedAt": utc_now().isoformat(),
        }, action=NotificationAction.COMPLETE.value)

    def list_active(self, user_id: int) -> List[Notification]:
        return self.notification_repo.get_active_for_user(user_id, utc_now())

    def mark_as_read(self, notification_id: int, user_id: int) -> Notification:
        notification = self.notification_repo.get_first_by(id=notification_id, user_id=user_id)
        if not notification:
            raise NotFoundError(f"通知 {notification_id} 不存在")
        return self.notification_repo.update(notification.id, is_read=True)
