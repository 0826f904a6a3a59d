"""Chat network transports for tripwire."""

from .base import Attachment, AttachmentField, ChatTransport, Message
from .slack import SlackTransport

__all__ = [
    "Attachment",
    "AttachmentField",
    "ChatTransport",
    "Message",
    "SlackTransport",
]
