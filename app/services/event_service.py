import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional, Union
from uuid import UUID

from sqlalchemy import update
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.orm import Session

from app.models import InboundComment, InboundMessage
from app.schemas.webhook import ChangeEvent, CommentValue, MessagingEvent
from app.services.automation_rules import InteractionKind
from app.services.channel_service import ChannelInfo


@dataclass(frozen=True)
class DirectMessageEvent:
    sender_id: str
    recipient_id: str
    message_id: str
    text: str
    timestamp: int
    raw: dict[str, Any] = field(default_factory=dict, compare=False)

    interaction_kind = InteractionKind.DIRECT_MESSAGE

    @property
    def event_id(self) -> str:
        return self.message_id

    @property
    def user_id(self) -> str:
        return self.sender_id

    comment_id = None
    media_id = None
    username = None


@dataclass(frozen=True)
class CommentEvent:
    comment_id: str
    media_id: Optional[str]
    from_user_id: str
    from_username: Optional[str]
    text: str
    timestamp: int
    raw: dict[str, Any] = field(default_factory=dict, compare=False)

    interaction_kind = InteractionKind.COMMENT

    @property
    def event_id(self) -> str:
        return self.comment_id

    @property
    def user_id(self) -> str:
        return self.from_user_id

    @property
    def username(self) -> Optional[str]:
        return self.from_username


InboundEvent = Union[DirectMessageEvent, CommentEvent]

# Platform timestamps past this are milliseconds.
MILLISECONDS_THRESHOLD = 10**11


def to_unix_seconds(value: Optional[int]) -> int:
    """Unix seconds for a platform timestamp in seconds or milliseconds; now when absent."""
    if value is None:
        return int(time.time())
    if value > MILLISECONDS_THRESHOLD:
        return value // 1000
    return value


def is_self_echo(raw: dict[str, Any]) -> bool:
    """True for messages the platform echoes back after this channel sent them."""
    message = raw.get("message") if isinstance(raw, dict) else None
    return bool(isinstance(message, dict) and message.get("is_echo"))


def parse_direct_message(raw: dict[str, Any], entry_id: Optional[str]) -> Optional[DirectMessageEvent]:
    """Normalize one messaging event. Returns None for non-message events."""
    event = MessagingEvent.model_validate(raw)
    if not event.sender or not event.sender.id or not event.message or not event.message.mid:
        return None

    recipient_id = entry_id or (event.recipient.id if event.recipient else None) or ""
    return DirectMessageEvent(
        sender_id=event.sender.id,
        recipient_id=recipient_id,
        message_id=event.message.mid,
        text=event.message.text or "",
        timestamp=to_unix_seconds(event.timestamp),
        raw=raw,
    )


def parse_comment(raw: dict[str, Any]) -> Optional[CommentEvent]:
    """Normalize one ``field=comments`` change. Returns None for other fields or incomplete values."""
    change = ChangeEvent.model_validate(raw)
    if change.field != "comments" or not change.value:
        return None

    value = CommentValue.model_validate(change.value)
    if not value.id or not value.text:
        return None

    author = value.from_user
    return CommentEvent(
        comment_id=value.id,
        media_id=value.media.id if value.media else None,
        from_user_id=(author.id if author else None) or "",
        from_username=author.username if author else None,
        text=value.text,
        timestamp=to_unix_seconds(None),
        raw=raw,
    )


def save_inbound_event(db: Session, channel: ChannelInfo, event: InboundEvent) -> bool:
    """Persist the raw event. Returns False when the event was already stored."""
    now = datetime.now(timezone.utc)
    if isinstance(event, DirectMessageEvent):
        stmt = (
            insert(InboundMessage)
            .values(
                id=uuid.uuid4(),
                channel_id=channel.id,
                tenant_id=channel.tenant_id,
                sender_id=event.sender_id,
                recipient_id=event.recipient_id or channel.external_account_id or "",
                message_id=event.message_id,
                text=event.text,
                timestamp=event.timestamp,
                replied=False,
                raw_data=event.raw,
                created_at=now,
                updated_at=now,
            )
            .on_conflict_do_nothing(index_elements=["message_id", "channel_id"])
        )
    else:
        stmt = (
            insert(InboundComment)
            .values(
                id=uuid.uuid4(),
                channel_id=channel.id,
                tenant_id=channel.tenant_id,
                comment_id=event.comment_id,
                media_id=event.media_id,
                from_user_id=event.from_user_id,
                from_username=event.from_username,
                text=event.text,
                timestamp=event.timestamp,
                replied=False,
                raw_data=event.raw,
                created_at=now,
                updated_at=now,
            )
            .on_conflict_do_nothing(index_elements=["comment_id"])
        )
    result = db.execute(stmt)
    return result.rowcount > 0


def mark_event_replied(db: Session, channel_id: UUID, event: InboundEvent, reply_text: Optional[str] = None) -> None:
    now = datetime.now(timezone.utc)
    if isinstance(event, DirectMessageEvent):
        stmt = (
            update(InboundMessage)
            .where(InboundMessage.message_id == event.message_id, InboundMessage.channel_id == channel_id)
            .values(replied=True, updated_at=now)
        )
    else:
        stmt = (
            update(InboundComment)
            .where(InboundComment.comment_id == event.comment_id)
            .values(replied=True, reply_text=reply_text, updated_at=now)
        )
    db.execute(stmt)
