from pydantic import BaseModel, ConfigDict
from typing import Optional, Dict, Any
from datetime import datetime


class NotificationResponse(BaseModel):
    id: int
    user_id: int
    type: str
    action: str
    priority: str
    data: Optional[Dict[str, Any]] = None
    expires_at: Optional[datetime] = None
    is_active: bool
    is_read: bool
    created_at: datetime

    model_config = ConfigDict(
        from_attributes=True
    )
