import math
import uuid
from datetime import datetime, timezone
from typing import Optional
from uuid import UUID

from sqlalchemy import func
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.orm import Session

from app.logging_config import get_logger
from app.models import InteractionReport
from app.services.automation_rules import InteractionKind, ResponseStatus
from app.services.channel_service import ChannelInfo
from app.services.event_service import InboundEvent

logger = get_logger("report_service")

MAX_PAGE_SIZE = 200


def record_interaction(
    db: Session,
    *,
    channel: ChannelInfo,
    event: InboundEvent,
    automation_id: Optional[UUID],
    status: ResponseStatus,
    response_text: Optional[str],
) -> Optional[UUID]:
    """Write the outcome row for a matched event.

    Idempotent per (channel, kind, event id): returns None when a report for
    the event already exists.
    """
    stmt = (
        insert(InteractionReport)
        .values(
            id=uuid.uuid4(),
            channel_id=channel.id,
            tenant_id=channel.tenant_id,
            interaction_kind=event.interaction_kind.value,
            event_id=event.event_id,
            comment_id=event.comment_id,
            external_user_id=event.user_id,
            media_id=event.media_id,
            username=event.username,
            interaction_text=event.text,
            response_text=response_text,
            response_status=status.value,
            automation_id=automation_id,
            timestamp=event.timestamp,
            created_at=datetime.now(timezone.utc),
        )
        .on_conflict_do_nothing(constraint="uq_interaction_reports_event")
        .returning(InteractionReport.id)
    )
    report_id = db.execute(stmt).scalar()
    if report_id is None:
        logger.info(
            "Report already recorded",
            extra={"context": {"channel_id": str(channel.id), "event_id": event.event_id}},
        )
    return report_id


def _apply_filters(
    query,
    *,
    channel_id: Optional[UUID] = None,
    tenant_id: Optional[str] = None,
    interaction_kind: Optional[InteractionKind] = None,
    response_status: Optional[ResponseStatus] = None,
    start: Optional[int] = None,
    end: Optional[int] = None,
):
    if channel_id is not None:
        query = query.filter(InteractionReport.channel_id == channel_id)
    if tenant_id:
        query = query.filter(InteractionReport.tenant_id == tenant_id)
    if interaction_kind is not None:
        query = query.filter(InteractionReport.interaction_kind == interaction_kind.value)
    if response_status is not None:
        query = query.filter(InteractionReport.response_status == response_status.value)
    if start is not None:
        query = query.filter(InteractionReport.timestamp >= start)
    if end is not None:
        query = query.filter(InteractionReport.timestamp <= end)
    return query


def list_reports(db: Session, *, page: int = 1, limit: int = 50, **filters) -> dict:
    """Filtered, paginated reports, newest first."""
    page = max(page, 1)
    limit = min(max(limit, 1), MAX_PAGE_SIZE)

    query = _apply_filters(db.query(InteractionReport), **filters)
    total = query.count()
    reports = (
        query.order_by(InteractionReport.timestamp.desc()).offset((page - 1) * limit).limit(limit).all()
    )
    return {
        "reports": reports,
        "total": total,
        "page": page,
        "limit": limit,
        "total_pages": math.ceil(total / limit) if total else 0,
    }


def get_report_statistics(db: Session, **filters) -> dict:
    """Totals by interaction kind and by response status."""
    columns = [func.count(InteractionReport.id).label("total")]
    for kind in InteractionKind:
        columns.append(
            func.count(InteractionReport.id).filter(InteractionReport.interaction_kind == kind.value).label(kind.value)
        )
    for status in ResponseStatus:
        columns.append(
            func.count(InteractionReport.id)
            .filter(InteractionReport.response_status == status.value)
            .label(f"status_{status.value}")
        )

    row = _apply_filters(db.query(*columns), **filters).one()
    mapping = row._mapping
    return {
        "total": int(mapping["total"] or 0),
        "by_kind": {kind.value: int(mapping[kind.value] or 0) for kind in InteractionKind},
        "by_status": {status.value: int(mapping[f"status_{status.value}"] or 0) for status in ResponseStatus},
    }
