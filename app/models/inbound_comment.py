import uuid

from sqlalchemy import BigInteger, Boolean, Column, ForeignKey, Text
from sqlalchemy.dialects.postgresql import JSONB, TIMESTAMP, UUID
from sqlalchemy.sql import func

from app.database import Base


class InboundComment(Base):
    __tablename__ = "inbound_comments"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    channel_id = Column(UUID(as_uuid=True), ForeignKey("channels.id"), nullable=False)
    tenant_id = Column(Text, nullable=False)
    comment_id = Column(Text, nullable=False, unique=True)
    media_id = Column(Text)
    from_user_id = Column(Text, nullable=False)
    from_username = Column(Text)
    text = Column(Text, nullable=False)
    timestamp = Column(BigInteger, nullable=False)
    replied = Column(Boolean, nullable=False, default=False)
    reply_text = Column(Text)
    raw_data = Column(JSONB)
    created_at = Column(TIMESTAMP(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(TIMESTAMP(timezone=True), nullable=False, server_default=func.now())
