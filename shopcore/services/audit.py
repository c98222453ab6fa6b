"""
Audit Log Writer - default audit collaborator
"""
from typing import Dict, Optional
from sqlalchemy.orm import Session

from shopcore.models.audit import AuditLog
from shopcore.models.enums import AuditSeverity


class AuditLogWriter:
    """Writes audit rows in the caller's transaction so they commit with the change"""

    def __init__(self, db: Session):
        self.db = db

    def record(
        self,
        action: str,
        table_name: str,
        record_id: Optional[int],
        user_id: Optional[int] = None,
        old_data: Optional[Dict] = None,
        new_data: Optional[Dict] = None,
        severity: AuditSeverity = AuditSeverity.INFO
    ) -> AuditLog:
        entry = AuditLog(
            action=action,
            table_name=table_name,
            record_id=record_id,
            user_id=user_id,
            old_data=old_data,
            new_data=new_data,
            severity=severity.value
        )
        self.db.add(entry)
        return entry
