"""Bot facade: wires a chat transport to the command dispatcher.

Plain channel posts are dispatched as LISTEN, mentions and direct
messages as RESPOND_TO. The dispatcher's directive becomes one send
call on the transport (or none for NoResponse).

Key classes:
    Bot: Owns the message pipeline and the transport lifecycle.
"""

import structlog

from .commands.base import TriggerKind
from .commands.dispatcher import Dispatcher, OutboundDirective, PlainText, RichAttachment
from .exceptions import HandlerConfigurationError, TransportError
from .transport.base import ChatTransport, Message

logger = structlog.get_logger("tripwire.bot")


class Bot:
    """Routes transport events through the dispatcher.

    Errors raised by a handler end that single dispatch and are logged;
    send failures are logged. Neither stops the bot.

    Args:
        transport: Chat network connection.
        dispatcher: Command dispatcher (shares the process registry).
    """

    def __init__(self, transport: ChatTransport, dispatcher: Dispatcher):
        self.transport = transport
        self.dispatcher = dispatcher
        self.running = False
        transport.on_plain_message(self.on_plain_message)
        transport.on_mention_or_direct_message(self.on_mention_or_direct_message)

    async def start(self):
        """Build the command registry, then connect the transport.

        Building first surfaces handler declaration errors in the log
        before any message arrives.
        """
        registry = self.dispatcher.registry
        registry.build()
        for failure in registry.errors:
            logger.warning("command_unavailable", handler=failure.name, error=str(failure.error))
        await self.transport.start()
        self.running = True
        logger.info("bot_started", commands=len(registry))

    async def stop(self):
        # Transport stop is idempotent; also cleans up after a failed start
        was_running = self.running
        self.running = False
        await self.transport.stop()
        if was_running:
            logger.info("bot_stopped")

    async def run(self):
        """Main run loop: start, wait for the transport, stop on exit."""
        await self.start()
        try:
            await self.transport.wait_closed()
        finally:
            await self.stop()

    async def on_plain_message(self, message: Message):
        await self.handle(message, TriggerKind.LISTEN)

    async def on_mention_or_direct_message(self, message: Message):
        await self.handle(message, TriggerKind.RESPOND_TO)

    async def handle(self, message: Message, kind: TriggerKind):
        """Dispatch one inbound message and deliver the reply."""
        try:
            own_id = self.transport.self_identity()
        except TransportError as e:
            logger.error("self_identity_unavailable", error=str(e))
            return
        if message.sender_id == own_id:
            logger.debug("ignore_own_message", channel=message.channel_id)
            return

        try:
            directive = await self.dispatcher.dispatch(message.text, kind)
        except HandlerConfigurationError as e:
            logger.error(
                "command_misconfigured",
                error=str(e),
                error_type=type(e).__name__,
                channel=message.channel_id,
            )
            return
        except Exception as e:
            logger.error(
                "command_failed",
                error=str(e),
                error_type=type(e).__name__,
                channel=message.channel_id,
            )
            return

        await self.deliver(message.channel_id, directive)

    async def deliver(self, channel_id: str, directive: OutboundDirective):
        """Send a directive through the transport; failures are logged."""
        try:
            if isinstance(directive, PlainText):
                await self.transport.send_text(channel_id, directive.text)
            elif isinstance(directive, RichAttachment):
                await self.transport.send_attachment(channel_id, directive.attachment)
        except Exception as e:
            logger.error(
                "send_failed",
                channel=channel_id,
                error=str(e),
                error_type=type(e).__name__,
            )
