import uuid

from sqlalchemy import BigInteger, Column, Index, Text, UniqueConstraint
from sqlalchemy.dialects.postgresql import TIMESTAMP, UUID
from sqlalchemy.sql import func

from app.database import Base


class InteractionReport(Base):
    __tablename__ = "interaction_reports"
    __table_args__ = (
        UniqueConstraint("channel_id", "interaction_kind", "event_id", name="uq_interaction_reports_event"),
        Index("idx_interaction_reports_channel_tenant", "channel_id", "tenant_id"),
        Index("idx_interaction_reports_timestamp", "timestamp"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    channel_id = Column(UUID(as_uuid=True), nullable=False)
    tenant_id = Column(Text, nullable=False)
    interaction_kind = Column(Text, nullable=False, index=True)  # dm, comment
    event_id = Column(Text, nullable=False)
    comment_id = Column(Text)
    external_user_id = Column(Text, nullable=False)
    media_id = Column(Text)
    username = Column(Text)
    interaction_text = Column(Text, nullable=False)
    response_text = Column(Text)
    response_status = Column(Text, nullable=False, default="pending", index=True)  # pending, sent, failed
    automation_id = Column(UUID(as_uuid=True))
    timestamp = Column(BigInteger, nullable=False)
    created_at = Column(TIMESTAMP(timezone=True), nullable=False, server_default=func.now())
