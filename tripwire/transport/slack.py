"""Slack transport over Socket Mode and the Web API.

Receives events through a Socket Mode websocket (no public HTTP
endpoint needed) and posts replies with ``chat.postMessage``. All
network access goes through a single aiohttp ClientSession.

Key classes:
    SlackTransport: ChatTransport implementation for Slack.
"""

import asyncio
import json
import time as _time
from collections import OrderedDict
from typing import Any, Dict, Optional

import aiohttp
import structlog

from ..exceptions import TransportError
from ..tasks import spawn
from .base import Attachment, ChatTransport, Message

logger = structlog.get_logger("tripwire.slack")

DEFAULT_API_URL = "https://slack.com/api"

# Events re-delivered within this window are treated as duplicates
DEDUP_WINDOW_SECONDS = 60


class SlackTransport(ChatTransport):
    """Slack connection using a bot token and an app-level token.

    Args:
        bot_token: Bot User OAuth token (``xoxb-...``) for Web API calls.
        app_token: App-level token (``xapp-...``) for Socket Mode.
        api_url: Web API base URL.
        session: Optional pre-built aiohttp session (closed on stop()).
    """

    def __init__(
        self,
        bot_token: str,
        app_token: str,
        api_url: str = DEFAULT_API_URL,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        super().__init__()
        self._bot_token = bot_token
        self._app_token = app_token
        self.api_url = api_url.rstrip("/")
        self.session = session
        self.running = False
        self._user_id: Optional[str] = None
        self._receive_task: Optional[asyncio.Task] = None
        self._ws: Optional[aiohttp.ClientWebSocketResponse] = None
        self._seen_events = OrderedDict()  # Dedup: channel:ts -> received at
        self._channel_ids: Optional[Dict[str, str]] = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Authenticate and start the Socket Mode receive loop."""
        if self.session is None:
            self.session = aiohttp.ClientSession()
        logger.info("slack_connecting")
        identity = await self._api("auth.test")
        self._user_id = identity.get("user_id")
        self.running = True
        self._receive_task = spawn(self._receive_loop(), name="slack-receive")
        logger.info("slack_connected", user_id=self._user_id, team=identity.get("team"))

    async def stop(self) -> None:
        """Stop receiving and close the HTTP session."""
        if not self.running and self.session is None:
            return
        logger.info("slack_disconnecting")
        self.running = False
        if self._ws is not None and not self._ws.closed:
            await self._ws.close()
        if self._receive_task is not None:
            self._receive_task.cancel()
            try:
                await self._receive_task
            except asyncio.CancelledError:
                pass
            self._receive_task = None
        if self.session is not None:
            await self.session.close()
            self.session = None
        logger.info("slack_disconnected")

    async def wait_closed(self) -> None:
        if self._receive_task is not None:
            try:
                await self._receive_task
            except asyncio.CancelledError:
                pass

    def self_identity(self) -> str:
        if self._user_id is None:
            raise TransportError("Slack identity unknown; transport not started", method="auth.test")
        return self._user_id

    # ------------------------------------------------------------------
    # Web API
    # ------------------------------------------------------------------

    async def _api(
        self,
        method: str,
        payload: Optional[Dict[str, Any]] = None,
        *,
        token: Optional[str] = None,
        form: bool = False,
    ) -> Dict[str, Any]:
        """Call a Slack Web API method and return the decoded body.

        Raises:
            TransportError: network failure or ``ok: false`` response.
        """
        if self.session is None:
            raise TransportError("transport not started", method=method)
        headers = {"Authorization": f"Bearer {token or self._bot_token}"}
        kwargs: Dict[str, Any] = {"headers": headers, "timeout": aiohttp.ClientTimeout(total=10)}
        if payload is not None:
            kwargs["data" if form else "json"] = payload
        url = f"{self.api_url}/{method}"
        try:
            async with self.session.post(url, **kwargs) as resp:
                if resp.status != 200:
                    body = await resp.text()
                    raise TransportError(
                        f"HTTP {resp.status} from Slack", method=method, status=resp.status, body=body[:200],
                    )
                data = await resp.json()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise TransportError(f"request failed: {e}", method=method) from e

        if not data.get("ok"):
            raise TransportError(
                "Slack API call failed", method=method, slack_error=data.get("error", "unknown"),
            )
        return data

    async def send_text(self, channel_id: str, text: str) -> None:
        await self._api("chat.postMessage", {"channel": channel_id, "text": text})
        logger.debug("slack_message_sent", channel=channel_id, length=len(text))

    async def send_attachment(self, channel_id: str, attachment: Attachment) -> None:
        await self._api(
            "chat.postMessage",
            {"channel": channel_id, "attachments": [attachment.to_payload()]},
        )
        logger.debug("slack_attachment_sent", channel=channel_id)

    async def add_reaction(self, channel_id: str, timestamp: str, name: str) -> None:
        """React to a message with an emoji (name without colons)."""
        await self._api(
            "reactions.add", {"channel": channel_id, "timestamp": timestamp, "name": name},
        )

    async def send_direct_message(self, user_id: str, text: str) -> None:
        """Open (or reuse) a DM channel with ``user_id`` and post ``text``."""
        data = await self._api("conversations.open", {"users": user_id})
        await self.send_text(data["channel"]["id"], text)

    async def get_channel_id_by_name(self, name: str) -> Optional[str]:
        """Look up a channel id by name, refreshing the cache on a miss."""
        name = name.lstrip("#")
        if self._channel_ids is not None and name in self._channel_ids:
            return self._channel_ids[name]

        channel_ids: Dict[str, str] = {}
        cursor = ""
        while True:
            payload = {"types": "public_channel,private_channel", "limit": "200"}
            if cursor:
                payload["cursor"] = cursor
            data = await self._api("conversations.list", payload, form=True)
            for channel in data.get("channels", []):
                channel_ids[channel["name"]] = channel["id"]
            cursor = data.get("response_metadata", {}).get("next_cursor", "")
            if not cursor:
                break
        self._channel_ids = channel_ids
        return channel_ids.get(name)

    # ------------------------------------------------------------------
    # Socket Mode
    # ------------------------------------------------------------------

    async def _receive_loop(self) -> None:
        """Hold a Socket Mode connection open, reconnecting on failure."""
        reconnect_delay = 5
        MAX_RECONNECT_DELAY = 300

        while self.running:
            try:
                opened = await self._api("apps.connections.open", token=self._app_token)
                logger.info("websocket_connecting")
                async with self.session.ws_connect(opened["url"], heartbeat=30) as ws:
                    self._ws = ws
                    logger.info("websocket_connected")
                    reconnect_delay = 5
                    async for msg in ws:
                        if msg.type == aiohttp.WSMsgType.TEXT:
                            try:
                                envelope = json.loads(msg.data)
                            except json.JSONDecodeError:
                                logger.warning("invalid_json", data=msg.data[:100])
                                continue
                            if not await self._handle_envelope(ws, envelope):
                                break
                        elif msg.type == aiohttp.WSMsgType.ERROR:
                            logger.error("websocket_error", error=str(ws.exception()))
                            break
                        elif msg.type == aiohttp.WSMsgType.CLOSED:
                            logger.info("websocket_closed")
                            break
                self._ws = None

            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error("websocket_exception", error=str(e), error_type=type(e).__name__)
                if not self.running:
                    break
                await asyncio.sleep(reconnect_delay)
                reconnect_delay = min(reconnect_delay * 2, MAX_RECONNECT_DELAY)

    async def _handle_envelope(self, ws, envelope: Dict[str, Any]) -> bool:
        """Acknowledge and route one Socket Mode envelope.

        Returns:
            False when Slack asked us to reconnect, True otherwise.
        """
        envelope_id = envelope.get("envelope_id")
        if envelope_id:
            await ws.send_json({"envelope_id": envelope_id})

        kind = envelope.get("type")
        if kind == "disconnect":
            logger.info("websocket_refresh_requested", reason=envelope.get("reason"))
            return False
        if kind == "events_api":
            event = envelope.get("payload", {}).get("event", {})
            message = self.translate_event(event)
            if message is not None:
                spawn(self.emit(message), name=f"slack-event-{message.timestamp}")
        return True

    def translate_event(self, event: Dict[str, Any]) -> Optional[Message]:
        """Turn a Slack ``message`` event into a Message, or None to ignore it."""
        if event.get("type") != "message" or event.get("subtype"):
            return None
        sender = event.get("user")
        channel = event.get("channel")
        text = event.get("text") or ""
        if not sender or not channel or not text.strip():
            return None
        if sender == self._user_id:
            logger.debug("ignore_own_post", channel=channel)
            return None

        ts = event.get("ts")
        if self._is_duplicate(f"{channel}:{ts}"):
            logger.debug("duplicate_event_skipped", channel=channel, ts=ts)
            return None

        is_direct = event.get("channel_type") == "im" or channel.startswith("D")
        mentions_bot = self._user_id is not None and f"<@{self._user_id}>" in text
        if is_direct:
            logger.info("received_direct_message", channel=channel)
        elif mentions_bot:
            logger.info("received_mention", channel=channel)
        else:
            logger.info("received_message", channel=channel)
        return Message(
            text=text,
            channel_id=channel,
            sender_id=sender,
            timestamp=ts,
            is_direct=is_direct,
            mentions_bot=mentions_bot,
        )

    def _is_duplicate(self, key: str) -> bool:
        now = _time.time()
        # Expire first so a key outside the window is accepted again
        cutoff = now - DEDUP_WINDOW_SECONDS
        while self._seen_events:
            oldest_key, oldest_time = next(iter(self._seen_events.items()))
            if oldest_time < cutoff:
                self._seen_events.pop(oldest_key)
            else:
                break

        if key in self._seen_events:
            return True
        self._seen_events[key] = now
        return False
