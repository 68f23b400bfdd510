from typing import Optional
from sqlalchemy.orm import Session
from vocab_trainer.models.config import ConfigEntry, ConfigScope
from vocab_trainer.repositories.base import BaseRepository

class ConfigRepository(BaseRepository[ConfigEntry]):
    def __init__(self, db: Session):
        super().__init__(db, ConfigEntry)

    def find_system(self, key: str, active_only: bool = True) -> Optional[ConfigEntry]:
        query = self.db.query(ConfigEntry).filter(
            ConfigEntry.scope == ConfigScope.SYSTEM.value,
            ConfigEntry.user_id.is_(None),
            ConfigEntry.key == key
        )
        if active_only:
            query = query.filter(ConfigEntry.is_active.is_(True))
        return query.first()

    def find_user(self, user_id: int, key: str, active_only: bool = True) -> Optional[ConfigEntry]:
        query = self.db.query(ConfigEntry).filter(
            ConfigEntry.scope == ConfigScope.USER.value,
            ConfigEntry.user_id == user_id,
            ConfigEntry.key == key
        )
        if active_only:
            query = query.filter(ConfigEntry.is_active.is_(True))
        return query.first()
