"""
State machine that enforces the daily report approval lifecycle.

This is the core enforcement mechanism - every status change MUST go through here.
Status writes share the version-checked write path of the VersionGuard, so two
reviewers acting on the same report cannot both succeed from the same version.
"""
import logging
from datetime import datetime
from typing import Optional, Union

from sqlalchemy.orm import Session

from siteflow import config
from siteflow.models.audit import AuditAction
from siteflow.models.domain import DailyReport, Site
from siteflow.models.enums import ReportStatus, Role, REVIEWER_ROLES, TERMINAL_STATUSES
from siteflow.services.concurrency import ENTITY_TYPE, VersionGuard, coerce_fields
from siteflow.services.errors import InvalidTransitionError, NotFoundError, ValidationError
from siteflow.services.events import EventBus, WorkflowEvent

logger = logging.getLogger(__name__)


# (acting role, current status) -> next status
TRANSITIONS = {
    (Role.WORKER, ReportStatus.DRAFT): ReportStatus.PENDING_APPROVAL,
    (Role.WORKER, ReportStatus.REJECTED): ReportStatus.PENDING_APPROVAL,
    (Role.SITE_MANAGER, ReportStatus.PENDING_APPROVAL): ReportStatus.APPROVED_BY_MANAGER,
    (Role.ADMIN, ReportStatus.APPROVED_BY_MANAGER): ReportStatus.FINAL_APPROVED,
}

# Timestamp written when a report enters the status
TRANSITION_TIMESTAMPS = {
    ReportStatus.PENDING_APPROVAL: "submitted_at",
    ReportStatus.APPROVED_BY_MANAGER: "approved_at",
    ReportStatus.FINAL_APPROVED: "approved_at",
    ReportStatus.REJECTED: "rejected_at",
}

TRANSITION_ACTIONS = {
    ReportStatus.PENDING_APPROVAL: AuditAction.SUBMIT,
    ReportStatus.APPROVED_BY_MANAGER: AuditAction.APPROVE,
    ReportStatus.FINAL_APPROVED: AuditAction.APPROVE,
    ReportStatus.REJECTED: AuditAction.REJECT,
}


def parse_role(acting_role: Union[str, Role]) -> Role:
    """Single validation point for role strings coming from callers."""
    try:
        return Role(acting_role)
    except ValueError:
        raise ValidationError(f"Unknown role: {acting_role!r}") from None


def next_status(role: Role, current: ReportStatus) -> ReportStatus:
    """Look up the transition table. Absent pairs are refused, never retried."""
    try:
        return TRANSITIONS[(role, current)]
    except KeyError:
        raise InvalidTransitionError(
            f"Role {role.value} cannot advance a report in status {current.value}"
        ) from None


class StateMachine:
    """Enforces status transition rules for daily reports."""

    def __init__(
        self,
        db: Session,
        events: Optional[EventBus] = None,
        strict_rejection: Optional[bool] = None
    ):
        self.db = db
        self.events = events or EventBus()
        self.guard = VersionGuard(db, self.events)
        self.strict_rejection = config.STRICT_REJECTION if strict_rejection is None else strict_rejection

    def create_report(self, site_id: str, created_by: str, **fields) -> DailyReport:
        """Create a report in draft state, version 1, owned by its author."""
        if not created_by:
            raise ValidationError("created_by is required")
        unknown = sorted(set(fields) - DailyReport.EDITABLE_FIELDS)
        if unknown:
            raise ValidationError(f"Unknown report fields: {', '.join(unknown)}")
        fields = coerce_fields(fields)
        if self.db.get(Site, site_id) is None:
            raise NotFoundError(f"Site {site_id} not found")

        report = DailyReport(
            site_id=site_id,
            created_by=created_by,
            status=ReportStatus.DRAFT,
            version=1,
            **fields
        )
        self.db.add(report)
        self.db.commit()
        self.db.refresh(report)

        logger.info("Daily report %s created for site %s by %s", report.id, site_id, created_by)
        self._publish(report.id, AuditAction.CREATE, created_by, {
            "status": {"from": None, "to": ReportStatus.DRAFT},
        })
        return report

    def advance(
        self,
        report_id: str,
        acting_role: Union[str, Role],
        user_id: Optional[str] = None,
        expected_version: Optional[int] = None
    ) -> DailyReport:
        """
        Move a report one step forward along the transition table.

        When expected_version is omitted, the version read here is the one the
        write is conditioned on.
        """
        role = parse_role(acting_role)
        report = self.guard.load(report_id)
        if expected_version is not None:
            self.guard.check_version(report, expected_version)

        current = report.status
        target = next_status(role, current)
        now = datetime.utcnow()

        values = {"status": target, TRANSITION_TIMESTAMPS[target]: now}
        if current == ReportStatus.REJECTED:
            # Re-submission: the reason belongs to the rejected state only
            values["rejection_reason"] = None

        updated = self.guard.conditional_write(report.id, report.version, values)

        logger.info(
            "Daily report %s: %s -> %s by %s (version %s)",
            report_id, current.value, target.value, role.value, updated.version
        )
        self._publish(report_id, TRANSITION_ACTIONS[target], user_id, {
            "status": {"from": current, "to": target},
        }, role=role.value, version=updated.version)
        return updated

    def reject(
        self,
        report_id: str,
        acting_role: Union[str, Role],
        reason: str,
        user_id: Optional[str] = None,
        expected_version: Optional[int] = None
    ) -> DailyReport:
        """
        Reject a report with a mandatory reason.

        The reason is validated before storage is touched. Unless strict_rejection
        is set, the current status is not checked.
        """
        reason = (reason or "").strip()
        if not reason:
            raise ValidationError("A rejection reason is required")
        role = parse_role(acting_role)
        if role not in REVIEWER_ROLES:
            raise InvalidTransitionError(f"Role {role.value} cannot reject reports")

        report = self.guard.load(report_id)
        if expected_version is not None:
            self.guard.check_version(report, expected_version)

        current = report.status
        if self.strict_rejection and (current in TERMINAL_STATUSES or current == ReportStatus.REJECTED):
            raise InvalidTransitionError(f"A report in status {current.value} cannot be rejected")

        updated = self.guard.conditional_write(report.id, report.version, {
            "status": ReportStatus.REJECTED,
            "rejection_reason": reason,
            "rejected_at": datetime.utcnow(),
        })

        logger.info(
            "Daily report %s: %s -> rejected by %s (version %s)",
            report_id, current.value, role.value, updated.version
        )
        self._publish(report_id, AuditAction.REJECT, user_id, {
            "status": {"from": current, "to": ReportStatus.REJECTED},
            "rejection_reason": {"from": None, "to": reason},
        }, role=role.value, version=updated.version)
        return updated

    def delete_report(self, report_id: str, user_id: Optional[str] = None) -> None:
        """Delete a report. Only drafts can be deleted; everything else is refused."""
        report = self.guard.load(report_id)
        if report.status != ReportStatus.DRAFT:
            raise InvalidTransitionError(
                f"Daily report {report_id} is {report.status.value}; only draft reports can be deleted"
            )

        self.db.delete(report)
        self.db.commit()

        logger.info("Daily report %s deleted", report_id)
        self._publish(report_id, AuditAction.DELETE, user_id, {
            "status": {"from": ReportStatus.DRAFT, "to": None},
        })

    def _publish(self, report_id: str, action: str, user_id: Optional[str], changes: dict, **metadata) -> None:
        self.events.publish(WorkflowEvent(
            entity_type=ENTITY_TYPE,
            entity_id=report_id,
            action=action,
            user_id=user_id,
            changes=changes,
            metadata=metadata
        ))
