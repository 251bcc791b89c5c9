"""
Boundary of the workflow core.

Every public method returns a Result instead of raising. Callers (the API
layer, exports, notification dispatch) branch on Result.code to react to a
specific condition, e.g. prompting a reload on ConcurrentModification.
"""
import functools
import logging
from datetime import date
from typing import Any, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from siteflow.models.audit import AuditLogEntry
from siteflow.models.domain import DailyReport, Site
from siteflow.models.enums import ReportStatus
from siteflow.services.audit_log import AuditLogWriter
from siteflow.services.cascade import CascadeDeleter, Step, StepRunner
from siteflow.services.concurrency import ENTITY_TYPE
from siteflow.services.errors import DependencyFailureError, NotFoundError, ValidationError, WorkflowError, localized_message
from siteflow.services.events import EventBus
from siteflow.services.result import Result
from siteflow.services.state_machine import StateMachine

logger = logging.getLogger(__name__)


def returns_result(operation):
    """Wrap a service method so WorkflowErrors and storage errors become failed Results."""
    @functools.wraps(operation)
    def wrapper(self, *args, **kwargs) -> Result:
        try:
            return Result.ok(operation(self, *args, **kwargs))
        except WorkflowError as exc:
            logger.info("%s refused: %s (%s)", operation.__name__, exc.code, exc.detail or exc.message)
            return Result.from_error(exc)
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.exception("%s failed with a storage error", operation.__name__)
            return Result.fail(localized_message(DependencyFailureError.code), DependencyFailureError.code, str(exc))
    return wrapper


class WorkflowService:
    """
    Facade over the state machine, version guard, cascade deleter and audit log.

    All components share one EventBus; the audit writer is subscribed to it, so
    an audit failure is logged by the writer and cannot change the Result of the
    operation that emitted the event.
    """

    def __init__(
        self,
        db: Session,
        events: Optional[EventBus] = None,
        strict_rejection: Optional[bool] = None
    ):
        self.db = db
        self.events = events or EventBus()
        self.audit = AuditLogWriter(db)
        self.events.subscribe(self.audit.handle)

        self.state_machine = StateMachine(db, self.events, strict_rejection=strict_rejection)
        self.guard = self.state_machine.guard
        self.cascade = CascadeDeleter(db, self.events)
        self.steps = StepRunner(db, self.events)

    # Status transitions
    @returns_result
    def advance(self, report_id: str, acting_role: str, user_id: Optional[str] = None,
                expected_version: Optional[int] = None) -> DailyReport:
        return self.state_machine.advance(report_id, acting_role, user_id, expected_version)

    @returns_result
    def reject(self, report_id: str, acting_role: str, reason: str, user_id: Optional[str] = None,
               expected_version: Optional[int] = None) -> DailyReport:
        return self.state_machine.reject(report_id, acting_role, reason, user_id, expected_version)

    # Content edits
    @returns_result
    def update_if_version_matches(self, report_id: str, expected_version: int, patch: dict,
                                  user_id: Optional[str] = None) -> DailyReport:
        return self.guard.update_if_version_matches(report_id, expected_version, patch, user_id)

    # Multi-collection operations
    @returns_result
    def cascade_delete(self, site_id: str, user_id: Optional[str] = None) -> dict:
        return self.cascade.cascade_delete(site_id, user_id)

    @returns_result
    def run_steps_with_rollback(self, steps: List[Step], user_id: Optional[str] = None) -> dict:
        return self.steps.run(steps, user_id)

    # Audit
    def record_audit(self, entity_type: str, entity_id: str, action: str, user_id: Optional[str] = None,
                     changes: Optional[dict] = None, metadata: Optional[dict] = None) -> Result[AuditLogEntry]:
        """Append an audit entry directly. Never raises; failures come back as AuditFailure."""
        return self.audit.record(entity_type, entity_id, action, user_id, changes, metadata)

    @returns_result
    def list_audit(self, report_id: str) -> List[AuditLogEntry]:
        return self.audit.list_for(ENTITY_TYPE, report_id)

    # Reports
    @returns_result
    def create_site(self, name: str, address: Optional[str] = None) -> Site:
        if not name or not name.strip():
            raise ValidationError("Site name is required")
        site = Site(name=name.strip(), address=address)
        self.db.add(site)
        self.db.commit()
        self.db.refresh(site)
        return site

    @returns_result
    def create_report(self, site_id: str, created_by: str, **fields: Any) -> DailyReport:
        return self.state_machine.create_report(site_id, created_by, **fields)

    @returns_result
    def delete_report(self, report_id: str, user_id: Optional[str] = None) -> None:
        self.state_machine.delete_report(report_id, user_id)

    @returns_result
    def get_report(self, report_id: str) -> DailyReport:
        report = self.db.get(DailyReport, report_id)
        if report is None:
            raise NotFoundError(f"Daily report {report_id} not found")
        return report

    @returns_result
    def list_reports(
        self,
        site_id: Optional[str] = None,
        status: Optional[ReportStatus] = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        limit: Optional[int] = None,
        offset: Optional[int] = None
    ) -> List[DailyReport]:
        """Read-only listing for dashboards and exports, newest work date first."""
        query = self.db.query(DailyReport)
        if site_id:
            query = query.filter(DailyReport.site_id == site_id)
        if status:
            try:
                status = ReportStatus(status)
            except ValueError:
                raise ValidationError(f"Unknown status: {status!r}") from None
            query = query.filter(DailyReport.status == status)
        if start_date:
            query = query.filter(DailyReport.work_date >= start_date)
        if end_date:
            query = query.filter(DailyReport.work_date <= end_date)
        query = query.order_by(DailyReport.work_date.desc(), DailyReport.created_at.desc())
        if offset:
            query = query.offset(offset)
        if limit:
            query = query.limit(limit)
        return query.all()
