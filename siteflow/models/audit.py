"""
Audit log model.

Provides an immutable, append-only trail of who changed what and when.
Entries reference their entity by id only and never take part in its lifecycle.
"""
from datetime import datetime

from sqlalchemy import Column, String, Integer, DateTime, JSON

from siteflow.database import Base


class AuditLogEntry(Base):
    """
    Immutable audit record.

    Invariants:
    - Once written, never edited or deleted
    - One entry per successful transition or mutating operation
    """
    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    entity_type = Column(String, nullable=False, index=True)  # e.g., "daily_report", "site"
    entity_id = Column(String, nullable=False, index=True)
    action = Column(String, nullable=False)  # see AuditAction
    user_id = Column(String, nullable=True)  # Nullable for system events
    changes = Column(JSON, nullable=True)  # {field: {"from": ..., "to": ...}}
    # "metadata" is reserved on declarative classes
    metadata_json = Column("metadata", JSON, nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow, index=True)


class AuditAction:
    """Audit action names."""
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"

    # Status transitions
    SUBMIT = "submit"
    APPROVE = "approve"
    REJECT = "reject"

    # Multi-collection operations
    CASCADE_DELETE = "cascade_delete"
    STEPS_COMPLETED = "steps_completed"
    STEPS_ROLLED_BACK = "steps_rolled_back"
