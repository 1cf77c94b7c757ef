import uuid

from sqlalchemy import BigInteger, Boolean, Column, ForeignKey, Text, UniqueConstraint
from sqlalchemy.dialects.postgresql import JSONB, TIMESTAMP, UUID
from sqlalchemy.sql import func

from app.database import Base


class InboundMessage(Base):
    __tablename__ = "inbound_messages"
    __table_args__ = (UniqueConstraint("message_id", "channel_id", name="uq_inbound_messages_message_channel"),)

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    channel_id = Column(UUID(as_uuid=True), ForeignKey("channels.id"), nullable=False)
    tenant_id = Column(Text, nullable=False)
    sender_id = Column(Text, nullable=False)
    recipient_id = Column(Text, nullable=False)
    message_id = Column(Text, nullable=False)
    text = Column(Text)
    timestamp = Column(BigInteger, nullable=False)
    replied = Column(Boolean, nullable=False, default=False)
    raw_data = Column(JSONB)
    created_at = Column(TIMESTAMP(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(TIMESTAMP(timezone=True), nullable=False, server_default=func.now())
