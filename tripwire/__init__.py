"""tripwire: pattern-triggered command handlers for Slack bots."""

__version__ = "0.3.0"

from .bot import Bot
from .commands import (
    CommandRegistry,
    Dispatcher,
    Group,
    TriggerKind,
    ValueType,
    listen_to,
    respond_to,
)
from .transport import Attachment, AttachmentField, ChatTransport, Message

__all__ = [
    "Attachment",
    "AttachmentField",
    "Bot",
    "ChatTransport",
    "CommandRegistry",
    "Dispatcher",
    "Group",
    "Message",
    "TriggerKind",
    "ValueType",
    "listen_to",
    "respond_to",
]
