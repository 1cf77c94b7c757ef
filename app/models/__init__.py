from app.models.automation import Automation
from app.models.channel import Channel
from app.models.inbound_comment import InboundComment
from app.models.inbound_message import InboundMessage
from app.models.interaction_report import InteractionReport

__all__ = [
    "Channel",
    "Automation",
    "InboundMessage",
    "InboundComment",
    "InteractionReport",
]
