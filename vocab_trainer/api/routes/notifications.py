from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from typing import List

from vocab_trainer.utils.database import get_db
from vocab_trainer.services.notification_service import NotificationService
from vocab_trainer.api.schemas.notification_schemas import NotificationResponse

router = APIRouter()


@router.get("/{user_id}", response_model=List[NotificationResponse])
async def list_notifications(user_id: int, db: Session = Depends(get_db)):
    """
    获取用户未过期的通知
    """
    return NotificationService(db).list_active(user_id)


@router.post("/{notification_id}/read", response_model=NotificationResponse)
async def mark_notification_read(
    notification_id: int,
    user_id: int = Query(..., description="用户ID"),
    db: Session = Depends(get_db)
):
    return NotificationService(db).mark_as_read(notification_id, user_id)
