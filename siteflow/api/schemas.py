"""Pydantic schemas for request/response validation."""
from datetime import date, datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field

from siteflow.models.enums import ReportStatus


# Site schemas
class SiteCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    address: Optional[str] = None


class SiteResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    address: Optional[str]
    status: str
    created_at: datetime
    updated_at: datetime


# Daily report schemas
class ReportFields(BaseModel):
    """Content fields of a daily report. All optional so they double as a patch."""
    work_date: Optional[date] = None
    member_name: Optional[str] = None
    process_type: Optional[str] = None
    total_workers: Optional[int] = Field(None, ge=0)
    npc1000_incoming: Optional[float] = None
    npc1000_used: Optional[float] = None
    npc1000_remaining: Optional[float] = None
    issues: Optional[str] = None
    content: Optional[str] = None


class ReportCreate(ReportFields):
    site_id: str
    created_by: str = Field(..., min_length=1)


class ReportUpdate(BaseModel):
    expected_version: int = Field(..., ge=1)
    patch: ReportFields
    user_id: Optional[str] = None


class ReportResponse(ReportFields):
    model_config = ConfigDict(from_attributes=True)

    id: str
    site_id: str
    created_by: str
    status: ReportStatus
    version: int
    rejection_reason: Optional[str]
    submitted_at: Optional[datetime]
    approved_at: Optional[datetime]
    rejected_at: Optional[datetime]
    created_at: datetime
    updated_at: datetime


class AdvanceRequest(BaseModel):
    role: str
    user_id: Optional[str] = None
    expected_version: Optional[int] = None


class RejectRequest(BaseModel):
    role: str
    reason: str
    user_id: Optional[str] = None
    expected_version: Optional[int] = None


# Audit schemas
class AuditLogResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    entity_type: str
    entity_id: str
    action: str
    user_id: Optional[str]
    changes: Optional[Dict[str, Any]]
    metadata: Optional[Dict[str, Any]] = Field(None, validation_alias="metadata_json")
    created_at: datetime


class CascadeDeleteResponse(BaseModel):
    parent: Dict[str, Any]
    deletedEntities: Dict[str, int]


# Error response
class ErrorResponse(BaseModel):
    """Body of every refused request."""
    code: str
    message: str
    detail: Optional[str] = None
