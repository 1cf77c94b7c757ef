from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict


class ReportItem(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    channel_id: UUID
    tenant_id: str
    interaction_kind: str
    event_id: str
    comment_id: Optional[str] = None
    external_user_id: str
    media_id: Optional[str] = None
    username: Optional[str] = None
    interaction_text: str
    response_text: Optional[str] = None
    response_status: str
    automation_id: Optional[UUID] = None
    timestamp: int
    created_at: Optional[datetime] = None


class ReportsResponse(BaseModel):
    reports: list[ReportItem]
    total: int
    page: int
    limit: int
    total_pages: int


class ReportStatistics(BaseModel):
    total: int
    by_kind: dict[str, int]
    by_status: dict[str, int]
