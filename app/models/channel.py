import uuid

from sqlalchemy import Column, Text
from sqlalchemy.dialects.postgresql import ARRAY, TIMESTAMP, UUID
from sqlalchemy.orm import deferred
from sqlalchemy.sql import func

from app.database import Base


class Channel(Base):
    __tablename__ = "channels"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    tenant_id = Column(Text, nullable=False)
    route_name = Column(Text, nullable=False, unique=True)  # instance name used in the webhook URL
    name = Column(Text)
    external_account_id = Column(Text, index=True)
    username = Column(Text)
    page_id = Column(Text)
    page_name = Column(Text)
    # Never loaded by metadata reads; see channel_service.get_channel_with_credential
    access_token = deferred(Column(Text))
    token_expires_at = Column(TIMESTAMP(timezone=True))
    status = Column(Text, nullable=False, default="created")  # created, connecting, connected, disconnected, error
    webhook_ids = Column(ARRAY(Text), nullable=False, default=list)
    created_at = Column(TIMESTAMP(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(TIMESTAMP(timezone=True), nullable=False, server_default=func.now())
