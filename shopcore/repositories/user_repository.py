"""
User Repository - read-only access to accounts owned by the auth collaborator
"""
from typing import Optional
from sqlalchemy.orm import Session

from shopcore.models.user import User


class UserRepository:

    def __init__(self, db: Session):
        self.db = db

    def get_by_id(self, user_id: int) -> Optional[User]:
        return self.db.query(User).filter(User.id == user_id).first()
