"""Chat transport boundary and the neutral message models.

The bot core never talks to a chat network directly. A ChatTransport
owns the connection, translates provider events into Message objects,
hands them to the registered callbacks, and delivers replies.
"""

from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Dict, List, Optional

from pydantic import BaseModel, Field


class Message(BaseModel):
    """An inbound chat message."""

    text: str
    channel_id: str
    sender_id: str
    timestamp: Optional[str] = None
    is_direct: bool = False
    mentions_bot: bool = False


class AttachmentField(BaseModel):
    """A title/value pair rendered inside an attachment."""

    title: str
    value: str
    short: bool = False


class Attachment(BaseModel):
    """A rich message attachment.

    Handlers return one of these instead of a string to post a
    formatted block. Unset fields are left out of the payload.
    """

    fallback: Optional[str] = None
    color: Optional[str] = None
    pretext: Optional[str] = None
    author_name: Optional[str] = None
    author_link: Optional[str] = None
    author_icon: Optional[str] = None
    title: Optional[str] = None
    title_link: Optional[str] = None
    text: Optional[str] = None
    fields: List[AttachmentField] = Field(default_factory=list)
    image_url: Optional[str] = None
    thumb_url: Optional[str] = None
    footer: Optional[str] = None
    footer_icon: Optional[str] = None
    ts: Optional[int] = None

    def to_payload(self) -> Dict[str, Any]:
        """Render the attachment as a Slack-compatible dict."""
        payload = self.model_dump(exclude_none=True)
        if not payload.get("fields"):
            payload.pop("fields", None)
        if "fallback" not in payload:
            payload["fallback"] = self.title or self.text or self.pretext or ""
        return payload


MessageCallback = Callable[[Message], Awaitable[None]]


class ChatTransport(ABC):
    """Connection to a chat network.

    Implementations call the plain-message callback for ordinary
    channel posts and the mention callback for posts that mention the
    bot and for direct messages.
    """

    def __init__(self):
        self._on_plain_message: Optional[MessageCallback] = None
        self._on_mention_or_direct_message: Optional[MessageCallback] = None

    def on_plain_message(self, callback: MessageCallback) -> None:
        """Set the handler for ordinary channel posts."""
        self._on_plain_message = callback

    def on_mention_or_direct_message(self, callback: MessageCallback) -> None:
        """Set the handler for mentions and direct messages."""
        self._on_mention_or_direct_message = callback

    async def emit(self, message: Message) -> None:
        """Hand a translated inbound message to the matching callback."""
        if message.is_direct or message.mentions_bot:
            callback = self._on_mention_or_direct_message
        else:
            callback = self._on_plain_message
        if callback is not None:
            await callback(message)

    @abstractmethod
    def self_identity(self) -> str:
        """User id the bot posts as."""
        ...

    @abstractmethod
    async def send_text(self, channel_id: str, text: str) -> None:
        """Post a plain text message to a channel."""
        ...

    @abstractmethod
    async def send_attachment(self, channel_id: str, attachment: Attachment) -> None:
        """Post a rich attachment to a channel."""
        ...

    @abstractmethod
    async def start(self) -> None:
        """Connect and begin delivering events."""
        ...

    @abstractmethod
    async def stop(self) -> None:
        """Disconnect and release resources."""
        ...

    async def wait_closed(self) -> None:
        """Block until the transport stops delivering events."""
        return None
