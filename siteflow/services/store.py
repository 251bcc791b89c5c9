"""Named collections over the ORM models, used by the multi-collection operations."""
from typing import Any, Dict, Type

from siteflow.database import Base
from siteflow.models.domain import Site, DailyReport, AttendanceRecord, Document, SiteWorker, Notification
from siteflow.services.errors import ValidationError


COLLECTIONS: Dict[str, Type[Base]] = {
    "sites": Site,
    "daily_reports": DailyReport,
    "attendance_records": AttendanceRecord,
    "documents": Document,
    "site_workers": SiteWorker,
    "notifications": Notification,
}


def model_for(collection: str) -> Type[Base]:
    try:
        return COLLECTIONS[collection]
    except KeyError:
        raise ValidationError(f"Unknown collection: {collection}") from None


def as_dict(obj: Any) -> dict:
    """Snapshot of an ORM row's column values."""
    return {column.key: getattr(obj, column.key) for column in obj.__mapper__.column_attrs}
