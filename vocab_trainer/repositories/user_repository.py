from typing import Optional
from sqlalchemy.orm import Session
from vocab_trainer.models.user import User
from vocab_trainer.repositories.base import BaseRepository

class UserRepository(BaseRepository[User]):
    def __init__(self, db: Session):
        super().__init__(db, User)

    def get_by_email(self, email: str) -> Optional[User]:
        return self.db.query(User).filter(User.email == email).first()
