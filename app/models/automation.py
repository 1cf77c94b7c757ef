import uuid

from sqlalchemy import Boolean, Column, ForeignKey, Integer, Text
from sqlalchemy.dialects.postgresql import ARRAY, JSONB, TIMESTAMP, UUID
from sqlalchemy.sql import func

from app.database import Base


class Automation(Base):
    __tablename__ = "automations"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    tenant_id = Column(Text, nullable=False)
    channel_id = Column(UUID(as_uuid=True), ForeignKey("channels.id"), nullable=False, index=True)
    name = Column(Text, nullable=False)
    interaction_kind = Column(Text, nullable=False)  # dm, comment
    trigger_kind = Column(Text, nullable=False)  # keyword, all
    keywords = Column(ARRAY(Text))
    response_kind = Column(Text, nullable=False)  # direct, comment, comment_and_dm
    response_text = Column(Text)
    response_text_dm = Column(Text)
    response_sequence = Column(JSONB)
    delay_seconds = Column(Integer, nullable=False, default=0)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(TIMESTAMP(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(TIMESTAMP(timezone=True), nullable=False, server_default=func.now())
