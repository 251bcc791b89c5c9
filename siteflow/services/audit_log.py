"""
Append-only audit log writer.

Writes are best-effort: a failed insert is rolled back, logged, and reported
as a failed Result. It never raises into the operation that triggered it, and
never undoes that operation's already committed write.
"""
import logging
from datetime import date, datetime
from enum import Enum
from typing import Any, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from siteflow.models.audit import AuditLogEntry
from siteflow.services.errors import AuditFailure, localized_message
from siteflow.services.events import WorkflowEvent
from siteflow.services.result import Result

logger = logging.getLogger(__name__)


def to_jsonable(value: Any) -> Any:
    """Convert dates and enums so the value can be stored in a JSON column."""
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, dict):
        return {str(k): to_jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_jsonable(v) for v in value]
    return value


class AuditLogWriter:
    """Persists audit entries; also usable as an EventBus subscriber."""

    def __init__(self, db: Session):
        self.db = db

    def record(
        self,
        entity_type: str,
        entity_id: str,
        action: str,
        user_id: Optional[str] = None,
        changes: Optional[dict] = None,
        metadata: Optional[dict] = None
    ) -> Result[AuditLogEntry]:
        entry = AuditLogEntry(
            entity_type=entity_type,
            entity_id=entity_id,
            action=action,
            user_id=user_id,
            changes=to_jsonable(changes or {}),
            metadata_json=to_jsonable(metadata or {}),
        )
        try:
            self.db.add(entry)
            self.db.commit()
            self.db.refresh(entry)
        except SQLAlchemyError:
            self.db.rollback()
            logger.error(
                "%s: %s %s:%s",
                AuditFailure.code, action, entity_type, entity_id,
                exc_info=True
            )
            return Result.fail(localized_message(AuditFailure.code), AuditFailure.code)

        logger.debug("Audit %s recorded for %s:%s", action, entity_type, entity_id)
        return Result.ok(entry)

    def handle(self, event: WorkflowEvent) -> None:
        self.record(
            entity_type=event.entity_type,
            entity_id=event.entity_id,
            action=event.action,
            user_id=event.user_id,
            changes=event.changes,
            metadata=event.metadata,
        )

    def list_for(self, entity_type: str, entity_id: str) -> List[AuditLogEntry]:
        """All entries for one entity, oldest first."""
        return self.db.query(AuditLogEntry).filter(
            AuditLogEntry.entity_type == entity_type,
            AuditLogEntry.entity_id == entity_id
        ).order_by(AuditLogEntry.id.asc()).all()
