"""
Optimistic concurrency guard for versioned daily reports.

Every guarded write is checked twice:
1. the stored version must equal the caller's expected version before any write
2. the UPDATE itself is conditional on that version, so a writer that slipped in
   between the check and the write makes the UPDATE match zero rows

Both failures surface as ConcurrentModificationError. No row lock is held
across the read and the write.
"""
import logging
from datetime import datetime
from typing import Optional

from pydantic import ValidationError as FieldError
from sqlalchemy.orm import Session

from siteflow.api.schemas import ReportFields
from siteflow.models.audit import AuditAction
from siteflow.models.domain import DailyReport
from siteflow.services.errors import ConcurrentModificationError, NotFoundError, ValidationError
from siteflow.services.events import EventBus, WorkflowEvent

logger = logging.getLogger(__name__)

ENTITY_TYPE = "daily_report"


class VersionGuard:
    """Applies partial updates to a report only if its version is unchanged."""

    def __init__(self, db: Session, events: Optional[EventBus] = None):
        self.db = db
        self.events = events or EventBus()

    def load(self, report_id: str) -> DailyReport:
        report = self.db.get(DailyReport, report_id)
        if report is None:
            raise NotFoundError(f"Daily report {report_id} not found")
        return report

    def check_version(self, report: DailyReport, expected_version: int) -> None:
        if report.version != expected_version:
            raise ConcurrentModificationError(
                f"Daily report {report.id} is at version {report.version}, "
                f"caller expected {expected_version}",
                expected_version=expected_version,
                current_version=report.version
            )

    def conditional_write(self, report_id: str, expected_version: int, values: dict) -> DailyReport:
        """
        UPDATE ... SET values, version = expected + 1 WHERE id = ? AND version = expected.

        Returns the refreshed report. Raises ConcurrentModificationError when no row matched.
        """
        values = dict(values)
        values["version"] = expected_version + 1
        values["updated_at"] = datetime.utcnow()

        rows = self.db.query(DailyReport).filter(
            DailyReport.id == report_id,
            DailyReport.version == expected_version
        ).update(values, synchronize_session=False)

        if rows == 0:
            self.db.rollback()
            raise ConcurrentModificationError(
                f"Daily report {report_id} changed before version {expected_version} could be written",
                expected_version=expected_version
            )

        self.db.commit()
        # commit expired the identity map, so this reloads the stored row
        return self.load(report_id)

    def update_if_version_matches(
        self,
        report_id: str,
        expected_version: int,
        patch: dict,
        user_id: Optional[str] = None
    ) -> DailyReport:
        """
        Apply a partial content update if the stored version equals expected_version.

        Only content fields can be patched; status moves through the state machine.
        """
        patch = self._validate_patch(patch)

        report = self.load(report_id)
        self.check_version(report, expected_version)

        before = {field: getattr(report, field) for field in patch}
        updated = self.conditional_write(report_id, expected_version, patch)

        changes = {
            field: {"from": before[field], "to": getattr(updated, field)}
            for field in patch
            if before[field] != getattr(updated, field)
        }
        logger.info(
            "Daily report %s updated to version %s (%s)",
            report_id, updated.version, ", ".join(sorted(patch))
        )
        self.events.publish(WorkflowEvent(
            entity_type=ENTITY_TYPE,
            entity_id=report_id,
            action=AuditAction.UPDATE,
            user_id=user_id,
            changes=changes,
            metadata={"version": updated.version}
        ))
        return updated

    def _validate_patch(self, patch: dict) -> dict:
        if not patch:
            raise ValidationError("Patch must contain at least one field")
        protected = sorted(set(patch) - DailyReport.EDITABLE_FIELDS)
        if protected:
            raise ValidationError(f"Fields cannot be patched: {', '.join(protected)}")
        return coerce_fields(patch)


def coerce_fields(fields: dict) -> dict:
    """
    Convert content field values to their column types, e.g. "2025-03-14" to a date.

    Only the keys present in fields are returned.
    """
    try:
        return ReportFields.model_validate(fields).model_dump(include=set(fields))
    except FieldError as exc:
        problems = "; ".join(
            f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}" for error in exc.errors()
        )
        raise ValidationError(f"Invalid report fields: {problems}") from None
