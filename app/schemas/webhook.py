from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class WebhookParty(BaseModel):
    id: Optional[str] = None


class MessagingMessage(BaseModel):
    model_config = ConfigDict(extra="allow")

    mid: Optional[str] = None
    text: Optional[str] = None
    is_echo: bool = False


class MessagingEvent(BaseModel):
    model_config = ConfigDict(extra="allow")

    sender: Optional[WebhookParty] = None
    recipient: Optional[WebhookParty] = None
    timestamp: Optional[int] = None
    message: Optional[MessagingMessage] = None


class CommentAuthor(BaseModel):
    id: Optional[str] = None
    username: Optional[str] = None


class CommentMedia(BaseModel):
    id: Optional[str] = None
    media_product_type: Optional[str] = None


class CommentValue(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    id: Optional[str] = None
    text: Optional[str] = None
    parent_id: Optional[str] = None
    from_user: Optional[CommentAuthor] = Field(default=None, alias="from")
    media: Optional[CommentMedia] = None


class ChangeEvent(BaseModel):
    field: Optional[str] = None
    value: Optional[dict[str, Any]] = None


class WebhookEntry(BaseModel):
    """One account entry. Sub-events stay raw so each is validated in isolation."""

    id: Optional[str] = None
    time: Optional[int] = None
    messaging: list[dict[str, Any]] = Field(default_factory=list)
    changes: list[dict[str, Any]] = Field(default_factory=list)


class WebhookPayload(BaseModel):
    object: Optional[str] = None
    entry: list[dict[str, Any]] = Field(default_factory=list)
