from enum import Enum

from sqlalchemy import Column, String, Integer, ForeignKey, Boolean, JSON
from .base import BaseModel


class ConfigScope(str, Enum):
    SYSTEM = "SYSTEM"
    USER = "USER"


"""
配置模型
两级键值配置：用户级（user_id 非空）覆盖系统级（user_id 为空）
"""
class ConfigEntry(BaseModel):
    __tablename__ = "configs"

    scope = Column(String(10), nullable=False, default=ConfigScope.SYSTEM.value)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=True, index=True)
    key = Column(String(100), nullable=False, index=True)
    value = Column(JSON)
    is_active = Column(Boolean, nullable=False, default=True)

    def to_dict(self):
        return {
            "id": self.id,
            "scope": self.scope,
            "user_id": self.user_id,
            "key": self.key,
            "value": self.value,
            "is_active": self.is_active,
        }
