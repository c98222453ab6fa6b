"""
SQLAlchemy AuditLog model
"""
from sqlalchemy import Column, Integer, String, DateTime, JSON, ForeignKey, CheckConstraint
from sqlalchemy.sql import func

from shopcore.database import Base
from shopcore.models.enums import AuditSeverity, check_in


class AuditLog(Base):
    """One row per mutating operation"""

    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    action = Column(String(100), nullable=False)
    table_name = Column(String(100), nullable=False)
    record_id = Column(Integer, nullable=True)
    old_data = Column(JSON, nullable=True)
    new_data = Column(JSON, nullable=True)
    severity = Column(String(20), nullable=False, default=AuditSeverity.INFO.value)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)

    __table_args__ = (
        CheckConstraint(check_in("severity", AuditSeverity), name='check_audit_severity_valid'),
    )

    def __repr__(self):
        return f"<AuditLog(action='{self.action}', table='{self.table_name}', record_id={self.record_id})>"
