"""
配置服务模块
两级配置查询：用户级配置优先，其次系统级配置
"""

import logging
from typing import Any, Optional

from sqlalchemy.orm import Session

from vocab_trainer.models.config import ConfigEntry, ConfigScope
from vocab_trainer.repositories.config_repository import ConfigRepository
from vocab_trainer.utils.database import get_db_session
from vocab_trainer.utils.exceptions import NotFoundError, ValidationError

logger = logging.getLogger(__name__)


class ConfigService:
    def __init__(self, db: Session):
        self.db = db
        self.config_repo = ConfigRepository(db)

    def find_config(self, user_id: Optional[int], key: str) -> Any:
        """返回生效的配置值，都不存在时返回 None"""
        if user_id is not None:
            entry = self.config_repo.find_user(user_id, key)
            if entry:
                return entry.value
        entry = self.config_repo.find_system(key)
        return entry.value if entry else None

    def get_system_config(self, key: str) -> ConfigEntry:
        entry = self.config_repo.find_system(key)
        if not entry:
            raise NotFoundError(f"系统配置 {key} 不存在")
        return entry

    def get_user_config(self, user_id: int, key: str) -> ConfigEntry:
        entry = self.config_repo.find_user(user_id, key)
        if not entry:
            raise NotFoundError(f"用户 {user_id} 的配置 {key} 不存在")
        return entry

    def set_system_config(self, key: str, value: Any, is_active: bool = True) -> ConfigEntry:
        self._validate(key, value)
        entry = self.config_repo.find_system(key, active_only=False)
        if entry:
            return self.config_repo.update(entry.id, value=value, is_active=is_active)
        logger.info(f"创建系统配置: {key}")
        return self.config_repo.create(scope=ConfigScope.SYSTEM.value, user_id=None,
                                       key=key, value=value, is_active=is_active)

    def set_user_config(self, user_id: int, key: str, value: Any, is_active: bool = True) -> ConfigEntry:
        self._validate(key, value)
        entry = self.config_repo.find_user(user_id, key, active_only=False)
        if entry:
            return self.config_repo.update(entry.id, value=value, is_active=is_active)
        logger.info(f"创建用户配置: user={user_id} key={key}")
        return self.config_repo.create(scope=ConfigScope.USER.value, user_id=user_id,
                                       key=key, value=value, is_active=is_active)

    @staticmethod
    def _validate(key: str, value: Any):
        if not key or not key.strip():
            raise ValidationError("配置键不能为空")
        if value is None:
            raise ValidationError("配置值不能为空")


class DatabaseConfigResolver:
    """供大模型客户端使用的配置查询对象，每次查询使用独立的数据库会话"""

    def __init__(self, session_factory=None):
        self.session_factory = session_factory or get_db_session

    def get(self, user_id: Optional[int], key: str) -> Any:
        db = self.session_factory()
        try:
            return ConfigService(db).find_config(user_id, key)
        finally:
            db.close()
