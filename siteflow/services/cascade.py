"""
Multi-collection operations: cascade delete of a site and compensating rollback
of an ordered list of steps.

Cascade delete runs in a single database transaction: either the site and all
of its dependents go, or nothing does. Step sequences commit step by step, so a
failure is undone by compensating actions walked in reverse order.
"""
import logging
import uuid
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from siteflow import config
from siteflow.models.audit import AuditAction
from siteflow.models.domain import Site
from siteflow.models.enums import StepAction
from siteflow.services.errors import DependencyFailureError, NotFoundError, ValidationError, WorkflowError
from siteflow.services.events import EventBus, WorkflowEvent
from siteflow.services.store import as_dict, model_for

logger = logging.getLogger(__name__)

# Deleted in this order, before the site itself
CASCADE_COLLECTIONS = ("daily_reports", "attendance_records", "documents", "site_workers")

Compensation = Callable[[Session, dict], None]


@dataclass
class Step:
    """
    One write of a multi-step operation.

    compensate(db, result) undoes the step; when omitted, inserts are undone by
    deleting the created row and updates/deletes are left as they are.
    """
    collection: str
    action: Union[StepAction, str]
    data: dict
    compensate: Optional[Compensation] = None


class CascadeDeleter:
    """Removes a site together with every record that references it."""

    def __init__(self, db: Session, events: Optional[EventBus] = None, fetch_limit: Optional[int] = None):
        self.db = db
        self.events = events or EventBus()
        self.fetch_limit = fetch_limit or config.CASCADE_FETCH_LIMIT

    def cascade_delete(self, site_id: str, user_id: Optional[str] = None) -> Dict[str, Any]:
        site = self.db.get(Site, site_id)
        if site is None:
            raise NotFoundError(f"Site {site_id} not found")
        parent = as_dict(site)

        deleted: Dict[str, int] = {}
        for collection in CASCADE_COLLECTIONS:
            try:
                count = self._delete_dependents(collection, site_id)
            except SQLAlchemyError as exc:
                self.db.rollback()
                logger.error("Cascade delete of site %s failed at %s", site_id, collection, exc_info=True)
                raise DependencyFailureError(
                    f"Failed to delete {collection} for site {site_id}: {exc}; no records were deleted",
                    collection=collection
                ) from exc
            if count:
                deleted[collection] = count

        try:
            self.db.delete(site)
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.error("Cascade delete of site %s failed at the site row", site_id, exc_info=True)
            raise DependencyFailureError(
                f"Failed to delete site {site_id}: {exc}; no records were deleted",
                collection="sites"
            ) from exc

        logger.info("Site %s deleted with dependents %s", site_id, deleted)
        self.events.publish(WorkflowEvent(
            entity_type="site",
            entity_id=site_id,
            action=AuditAction.CASCADE_DELETE,
            user_id=user_id,
            changes={"site": {"from": parent, "to": None}},
            metadata={"deletedEntities": deleted}
        ))
        return {"parent": parent, "deletedEntities": deleted}

    def _delete_dependents(self, collection: str, site_id: str) -> int:
        """Delete the rows of one collection that reference the site. Not committed."""
        model = model_for(collection)
        existing = self.db.query(model.id).filter(model.site_id == site_id).limit(self.fetch_limit).all()
        if not existing:
            return 0
        return self.db.query(model).filter(model.site_id == site_id).delete(synchronize_session=False)


class StepRunner:
    """Executes steps strictly in order and compensates completed ones on failure."""

    def __init__(self, db: Session, events: Optional[EventBus] = None):
        self.db = db
        self.events = events or EventBus()

    def run(self, steps: List[Step], user_id: Optional[str] = None) -> Dict[str, Any]:
        if not steps:
            raise ValidationError("At least one step is required")
        batch_id = str(uuid.uuid4())
        completed: List[Tuple[Step, dict]] = []

        for index, step in enumerate(steps, start=1):
            try:
                result = self._execute(step)
            except (SQLAlchemyError, TypeError, WorkflowError) as exc:
                self.db.rollback()
                logger.error(
                    "Step %s (%s %s) of batch %s failed",
                    index, _label(step), step.collection, batch_id,
                    exc_info=True
                )
                compensated = self._compensate(completed)
                self._publish(batch_id, AuditAction.STEPS_ROLLED_BACK, user_id, {
                    "failed_step": index,
                    "completed": len(completed),
                    "compensated": compensated,
                })
                raise DependencyFailureError(
                    f"Step {index} ({step.collection} {_label(step)}) failed: {exc}; "
                    f"rolled back {compensated} of {len(completed)} completed step(s)",
                    collection=step.collection,
                    compensated=compensated
                ) from exc
            completed.append((step, result))

        logger.info("Batch %s completed %s step(s)", batch_id, len(completed))
        self._publish(batch_id, AuditAction.STEPS_COMPLETED, user_id, {"completed": len(completed)})
        return {"completed": len(completed), "results": [result for _, result in completed]}

    def _execute(self, step: Step) -> dict:
        model = model_for(step.collection)
        action = _action(step)

        if action == StepAction.INSERT:
            row = model(**step.data)
            self.db.add(row)
            self.db.commit()
            self.db.refresh(row)
            return as_dict(row)

        values = dict(step.data)
        row_id = values.pop("id", None)
        if row_id is None:
            raise ValidationError(f"{action.value} step on {step.collection} requires an id")
        query = self.db.query(model).filter(model.id == row_id)

        if action == StepAction.UPDATE:
            before = query.first()
            if before is None:
                raise NotFoundError(f"{step.collection} row {row_id} not found")
            previous = {key: getattr(before, key) for key in values}
            query.update(values, synchronize_session=False)
            self.db.commit()
            return {"id": row_id, "previous": previous}

        count = query.delete(synchronize_session=False)
        if count == 0:
            raise NotFoundError(f"{step.collection} row {row_id} not found")
        self.db.commit()
        return {"id": row_id, "deleted": count}

    def _compensate(self, completed: List[Tuple[Step, dict]]) -> int:
        """Undo completed steps newest first. Returns how many were undone."""
        compensated = 0
        for step, result in reversed(completed):
            if step.compensate is not None:
                try:
                    step.compensate(self.db, result)
                    self.db.commit()
                except Exception:
                    # caller-supplied code may raise anything
                    self.db.rollback()
                    logger.error(
                        "Supplied compensation of %s step on %s failed",
                        _label(step), step.collection, exc_info=True
                    )
                    continue
                compensated += 1
                continue
            try:
                if _action(step) == StepAction.INSERT:
                    model = model_for(step.collection)
                    self.db.query(model).filter(model.id == result["id"]).delete(synchronize_session=False)
                else:
                    logger.warning(
                        "No compensation for %s step on %s row %s",
                        _label(step), step.collection, result.get("id")
                    )
                    continue
                self.db.commit()
                compensated += 1
            except (SQLAlchemyError, WorkflowError):
                self.db.rollback()
                logger.error("Compensation of %s step on %s failed", _label(step), step.collection, exc_info=True)
        return compensated

    def _publish(self, batch_id: str, action: str, user_id: Optional[str], metadata: dict) -> None:
        self.events.publish(WorkflowEvent(
            entity_type="transaction",
            entity_id=batch_id,
            action=action,
            user_id=user_id,
            metadata=metadata
        ))


def _action(step: Step) -> StepAction:
    try:
        return StepAction(step.action)
    except ValueError:
        raise ValidationError(f"Unknown step action: {step.action!r}") from None


def _label(step: Step) -> str:
    return getattr(step.action, "value", step.action)
