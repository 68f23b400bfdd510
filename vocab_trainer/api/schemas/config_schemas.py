from pydantic import BaseModel, ConfigDict
from typing import Optional, Any


class ConfigSet(BaseModel):
    value: Any
    is_active: bool = True


class ConfigResponse(BaseModel):
    id: int
    scope: str
    user_id: Optional[int] = None
    key: str
    value: Any
    is_active: bool

    model_config = ConfigDict(
        from_attributes=True
    )
