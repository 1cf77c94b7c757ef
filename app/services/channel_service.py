from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional
from uuid import UUID

from sqlalchemy.orm import Session, undefer

from app.logging_config import get_logger
from app.models import Channel

logger = get_logger("channel_service")

CONNECTED = "connected"


@dataclass(frozen=True)
class ChannelInfo:
    """Channel metadata without credential material."""

    id: UUID
    tenant_id: str
    route_name: str
    external_account_id: Optional[str]
    username: Optional[str]
    page_id: Optional[str]
    status: str


@dataclass(frozen=True)
class ChannelCredential:
    id: UUID
    tenant_id: str
    external_account_id: Optional[str]
    page_id: Optional[str]
    access_token: Optional[str]
    token_expires_at: Optional[datetime]
    status: str


def _to_info(channel: Channel) -> ChannelInfo:
    return ChannelInfo(
        id=channel.id,
        tenant_id=channel.tenant_id,
        route_name=channel.route_name,
        external_account_id=channel.external_account_id,
        username=channel.username,
        page_id=channel.page_id,
        status=channel.status,
    )


def _to_credential(channel: Channel) -> ChannelCredential:
    return ChannelCredential(
        id=channel.id,
        tenant_id=channel.tenant_id,
        external_account_id=channel.external_account_id,
        page_id=channel.page_id,
        access_token=channel.access_token,
        token_expires_at=channel.token_expires_at,
        status=channel.status,
    )


def get_channel_by_routing_key(db: Session, routing_key: str) -> Optional[ChannelInfo]:
    """Resolve a webhook routing key to a channel.

    The platform addresses the same account by different ids depending on
    the event type, so the primary account id is tried first, then the
    alternate webhook ids, then the internal route name from the URL.
    """
    if not routing_key:
        return None

    channel = db.query(Channel).filter(Channel.external_account_id == routing_key).first()
    if not channel:
        channel = db.query(Channel).filter(Channel.webhook_ids.any(routing_key)).first()
        if channel:
            logger.debug(f"Routing key {routing_key} resolved via alternate webhook id")
    if not channel:
        channel = db.query(Channel).filter(Channel.route_name == routing_key).first()

    if not channel:
        return None
    return _to_info(channel)


def get_channel_with_credential(db: Session, channel_id: UUID) -> Optional[ChannelCredential]:
    channel = db.query(Channel).options(undefer(Channel.access_token)).filter(Channel.id == channel_id).first()
    if not channel:
        return None
    return _to_credential(channel)


def list_expiring_channels(db: Session, *, threshold_days: int, now: Optional[datetime] = None) -> list[ChannelCredential]:
    """Connected channels whose credential expires within the threshold window."""
    now = now or datetime.now(timezone.utc)
    cutoff = now + timedelta(days=threshold_days)
    channels = (
        db.query(Channel)
        .options(undefer(Channel.access_token))
        .filter(
            Channel.status == CONNECTED,
            Channel.token_expires_at != None,  # noqa: E711
            Channel.token_expires_at <= cutoff,
        )
        .all()
    )
    return [_to_credential(channel) for channel in channels]


def update_channel_credential(db: Session, channel_id: UUID, access_token: str, expires_at: datetime) -> bool:
    channel = db.query(Channel).filter(Channel.id == channel_id).first()
    if not channel:
        return False
    channel.access_token = access_token
    channel.token_expires_at = expires_at
    channel.updated_at = datetime.now(timezone.utc)
    db.flush()
    return True

