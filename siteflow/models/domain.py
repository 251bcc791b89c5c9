"""Domain models - sites, daily reports and the records that hang off a site."""
import uuid
from datetime import datetime

from sqlalchemy import Column, String, Integer, Float, Date, DateTime, Text, ForeignKey, Enum as SQLEnum

from siteflow.database import Base
from siteflow.models.enums import ReportStatus


def _new_id() -> str:
    return str(uuid.uuid4())


class Site(Base):
    """A construction site. Parent of every dependent collection below."""
    __tablename__ = "sites"

    id = Column(String(36), primary_key=True, default=_new_id)
    name = Column(String, nullable=False)
    address = Column(String, nullable=True)
    status = Column(String, nullable=False, default="active")
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)


class DailyReport(Base):
    """
    A daily work report progresses: draft → pending_approval → approved_by_manager → final_approved,
    and can be rejected by a reviewer from any non-terminal state.

    Invariants enforced by the service layer:
    - status only changes through the transition engine
    - content fields only change through the version guard
    - version starts at 1 and grows by exactly 1 per guarded write
    - rejection_reason is set iff status is rejected
    """
    __tablename__ = "daily_reports"

    # Fields a caller may patch through the version guard
    EDITABLE_FIELDS = frozenset({
        "work_date",
        "member_name",
        "process_type",
        "total_workers",
        "npc1000_incoming",
        "npc1000_used",
        "npc1000_remaining",
        "issues",
        "content",
    })

    id = Column(String(36), primary_key=True, default=_new_id)
    site_id = Column(String(36), ForeignKey("sites.id"), nullable=False, index=True)
    created_by = Column(String, nullable=False)
    status = Column(SQLEnum(ReportStatus), nullable=False, default=ReportStatus.DRAFT, index=True)
    version = Column(Integer, nullable=False, default=1)

    # Report content
    work_date = Column(Date, nullable=True, index=True)
    member_name = Column(String, nullable=True)
    process_type = Column(String, nullable=True)
    total_workers = Column(Integer, nullable=True)
    npc1000_incoming = Column(Float, nullable=True)
    npc1000_used = Column(Float, nullable=True)
    npc1000_remaining = Column(Float, nullable=True)
    issues = Column(Text, nullable=True)
    content = Column(Text, nullable=True)

    rejection_reason = Column(Text, nullable=True)

    # Timestamps
    submitted_at = Column(DateTime, nullable=True)
    approved_at = Column(DateTime, nullable=True)
    rejected_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow)


class AttendanceRecord(Base):
    __tablename__ = "attendance_records"

    id = Column(String(36), primary_key=True, default=_new_id)
    site_id = Column(String(36), ForeignKey("sites.id"), nullable=False, index=True)
    user_id = Column(String, nullable=False)
    work_date = Column(Date, nullable=False)
    labor_hours = Column(Float, nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)


class Document(Base):
    __tablename__ = "documents"

    id = Column(String(36), primary_key=True, default=_new_id)
    site_id = Column(String(36), ForeignKey("sites.id"), nullable=False, index=True)
    title = Column(String, nullable=False)
    document_type = Column(String, nullable=True)  # e.g., "invoice", "drawing"
    owner_id = Column(String, nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)


class SiteWorker(Base):
    """Assignment of a worker to a site."""
    __tablename__ = "site_workers"

    id = Column(String(36), primary_key=True, default=_new_id)
    site_id = Column(String(36), ForeignKey("sites.id"), nullable=False, index=True)
    user_id = Column(String, nullable=False)
    role = Column(String, nullable=False, default="worker")
    assigned_at = Column(DateTime, nullable=False, default=datetime.utcnow)


class Notification(Base):
    __tablename__ = "notifications"

    id = Column(String(36), primary_key=True, default=_new_id)
    user_id = Column(String, nullable=False)
    title = Column(String, nullable=False)
    message = Column(Text, nullable=True)
    related_entity_id = Column(String, nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
