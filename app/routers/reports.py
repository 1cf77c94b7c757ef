"""Read-only interaction report endpoints for operators."""

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Header, HTTPException, Query, status
from sqlalchemy.orm import Session

from app.config import settings
from app.database import get_db
from app.schemas.report import ReportItem, ReportsResponse, ReportStatistics
from app.services.automation_rules import InteractionKind, ResponseStatus
from app.services.report_service import MAX_PAGE_SIZE, get_report_statistics, list_reports

router = APIRouter()


def _require_admin_token(provided: Optional[str]) -> None:
    expected = settings.reports_admin_token
    if not expected:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="REPORTS_ADMIN_TOKEN not configured",
        )
    if not provided or provided != expected:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid admin token")


@router.get("/reports", response_model=ReportsResponse)
def get_reports(
    channel_id: Optional[UUID] = None,
    tenant_id: Optional[str] = None,
    interaction_kind: Optional[InteractionKind] = None,
    response_status: Optional[ResponseStatus] = None,
    start: Optional[int] = Query(default=None, ge=0, description="Unix time lower bound"),
    end: Optional[int] = Query(default=None, ge=0, description="Unix time upper bound"),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=50, ge=1, le=MAX_PAGE_SIZE),
    x_admin_token: Optional[str] = Header(default=None, alias="X-Admin-Token"),
    db: Session = Depends(get_db),
):
    _require_admin_token(x_admin_token)
    result = list_reports(
        db,
        page=page,
        limit=limit,
        channel_id=channel_id,
        tenant_id=tenant_id,
        interaction_kind=interaction_kind,
        response_status=response_status,
        start=start,
        end=end,
    )
    return ReportsResponse(
        reports=[ReportItem.model_validate(row) for row in result["reports"]],
        total=result["total"],
        page=result["page"],
        limit=result["limit"],
        total_pages=result["total_pages"],
    )


@router.get("/reports/stats", response_model=ReportStatistics)
def get_reports_stats(
    channel_id: Optional[UUID] = None,
    tenant_id: Optional[str] = None,
    start: Optional[int] = Query(default=None, ge=0),
    end: Optional[int] = Query(default=None, ge=0),
    x_admin_token: Optional[str] = Header(default=None, alias="X-Admin-Token"),
    db: Session = Depends(get_db),
):
    _require_admin_token(x_admin_token)
    return ReportStatistics(
        **get_report_statistics(db, channel_id=channel_id, tenant_id=tenant_id, start=start, end=end)
    )
