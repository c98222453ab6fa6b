"""
SQLAlchemy User model
"""
from sqlalchemy import Column, Integer, String, Boolean, DateTime, CheckConstraint
from sqlalchemy.sql import func

from shopcore.database import Base
from shopcore.models.enums import UserRole, check_in


class User(Base):
    """User database model (owned by the auth collaborator)"""

    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    email = Column(String(255), nullable=True, unique=True, index=True)
    full_name = Column(String(255), nullable=True)
    role = Column(String(20), nullable=False, default=UserRole.CUSTOMER.value)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    __table_args__ = (
        CheckConstraint(check_in("role", UserRole), name="check_user_role_valid"),
    )

    def __repr__(self):
        return f"<User(id={self.id}, email='{self.email}', role='{self.role}')>"
