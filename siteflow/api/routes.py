"""API routes for the daily report workflow."""
from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Response, status
from sqlalchemy.orm import Session

from siteflow.database import get_db
from siteflow.models.enums import ReportStatus
from siteflow.services.result import Result
from siteflow.services.workflow import WorkflowService
from siteflow.api.schemas import (
    SiteCreate,
    SiteResponse,
    ReportCreate,
    ReportUpdate,
    ReportResponse,
    AdvanceRequest,
    RejectRequest,
    AuditLogResponse,
    CascadeDeleteResponse,
    ErrorResponse
)

router = APIRouter()

# Result.code -> HTTP status
ERROR_STATUS = {
    "NotFound": status.HTTP_404_NOT_FOUND,
    "InvalidTransition": status.HTTP_403_FORBIDDEN,
    "ValidationError": 422,
    "ConcurrentModification": status.HTTP_409_CONFLICT,
    "DependencyFailure": status.HTTP_500_INTERNAL_SERVER_ERROR,
}

REFUSALS = {
    404: {"model": ErrorResponse, "description": "Record not found"},
    403: {"model": ErrorResponse, "description": "Transition not allowed for this role/status"},
    409: {"model": ErrorResponse, "description": "Modified by someone else - reload and retry"},
}


def get_service(db: Session = Depends(get_db)) -> WorkflowService:
    return WorkflowService(db)


def unwrap(result: Result):
    """Return the data of a successful Result, or raise the matching HTTP error."""
    if result.success:
        return result.data
    raise HTTPException(
        status_code=ERROR_STATUS.get(result.code, status.HTTP_400_BAD_REQUEST),
        detail={"code": result.code, "message": result.error, "detail": result.detail}
    )


# Site endpoints
@router.post("/sites", response_model=SiteResponse, status_code=status.HTTP_201_CREATED)
def create_site(site_data: SiteCreate, service: WorkflowService = Depends(get_service)):
    return unwrap(service.create_site(site_data.name, site_data.address))


@router.delete("/sites/{site_id}", response_model=CascadeDeleteResponse, responses=REFUSALS)
def delete_site(site_id: str, user_id: Optional[str] = None, service: WorkflowService = Depends(get_service)):
    """Delete a site and every report, attendance record, document and assignment on it."""
    return unwrap(service.cascade_delete(site_id, user_id))


# Daily report endpoints
@router.post("/reports", response_model=ReportResponse, status_code=status.HTTP_201_CREATED, responses=REFUSALS)
def create_report(report_data: ReportCreate, service: WorkflowService = Depends(get_service)):
    """Create a new daily report in draft state."""
    fields = report_data.model_dump(exclude={"site_id", "created_by"}, exclude_unset=True)
    return unwrap(service.create_report(report_data.site_id, report_data.created_by, **fields))


@router.get("/reports", response_model=List[ReportResponse])
def list_reports(
    site_id: Optional[str] = None,
    status: Optional[ReportStatus] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    limit: Optional[int] = None,
    offset: Optional[int] = None,
    service: WorkflowService = Depends(get_service)
):
    """List reports filtered by site, status and work date range."""
    return unwrap(service.list_reports(site_id, status, start_date, end_date, limit, offset))


@router.get("/reports/{report_id}", response_model=ReportResponse, responses=REFUSALS)
def get_report(report_id: str, service: WorkflowService = Depends(get_service)):
    return unwrap(service.get_report(report_id))


@router.patch("/reports/{report_id}", response_model=ReportResponse, responses=REFUSALS)
def update_report(report_id: str, update_data: ReportUpdate, service: WorkflowService = Depends(get_service)):
    """
    Edit report content.
    Refused with 409 if the report moved past expected_version since the caller read it.
    """
    patch = update_data.patch.model_dump(exclude_unset=True)
    return unwrap(service.update_if_version_matches(
        report_id, update_data.expected_version, patch, update_data.user_id
    ))


@router.delete("/reports/{report_id}", status_code=status.HTTP_204_NO_CONTENT, responses=REFUSALS)
def delete_report(report_id: str, user_id: Optional[str] = None, service: WorkflowService = Depends(get_service)):
    """Delete a draft report. Submitted or approved reports cannot be deleted."""
    unwrap(service.delete_report(report_id, user_id))
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/reports/{report_id}/advance", response_model=ReportResponse, responses=REFUSALS)
def advance_report(report_id: str, request: AdvanceRequest, service: WorkflowService = Depends(get_service)):
    """
    Move a report to its next status.

    WILL REFUSE if the acting role may not act on the report's current status.
    """
    return unwrap(service.advance(report_id, request.role, request.user_id, request.expected_version))


@router.post("/reports/{report_id}/reject", response_model=ReportResponse, responses=REFUSALS)
def reject_report(report_id: str, request: RejectRequest, service: WorkflowService = Depends(get_service)):
    """Reject a report. A non-empty reason is required."""
    return unwrap(service.reject(
        report_id, request.role, request.reason, request.user_id, request.expected_version
    ))


@router.get("/reports/{report_id}/audit", response_model=List[AuditLogResponse], responses=REFUSALS)
def list_report_audit(report_id: str, service: WorkflowService = Depends(get_service)):
    """Audit trail of a report, oldest first. Still available after the report is deleted."""
    return unwrap(service.list_audit(report_id))
