"""Main entry point for tripwire.

Loads the configuration, sets up logging from it, builds the command
registry, dispatcher, Slack transport and bot, and runs the event loop
with graceful shutdown on SIGTERM/SIGINT.

Key functions:
    main: Async entry point.
    run: Synchronous wrapper that calls asyncio.run(main()).
"""

import asyncio
import signal
import sys

import structlog

from . import __version__
from .bot import Bot
from .commands import Dispatcher, get_registry
from .config import get_config
from .exceptions import ConfigurationError
from .logging_config import setup_logging, shutdown_logging
from .transport.slack import SlackTransport

logger = structlog.get_logger("tripwire")


async def main():
    """Main async entry point."""
    try:
        config = get_config()
    except ConfigurationError as e:
        setup_logging()
        logger.error("config_load_failed", error=str(e), setting=e.setting_name)
        raise
    setup_logging(config)

    logger.info("tripwire_starting", version=__version__)
    config.validate()

    transport = SlackTransport(
        bot_token=config.slack_bot_token,
        app_token=config.slack_app_token,
        api_url=config.slack_api_url,
    )
    bot = Bot(transport, Dispatcher(get_registry()))

    loop = asyncio.get_running_loop()
    shutdown_event = asyncio.Event()

    def handle_shutdown(sig):
        logger.info("shutdown_signal_received", signal=sig.name)
        shutdown_event.set()

    for sig in (signal.SIGTERM, signal.SIGINT):
        try:
            loop.add_signal_handler(sig, handle_shutdown, sig)
        except NotImplementedError:
            # Windows: add_signal_handler not supported.
            if sig == signal.SIGINT:
                signal.signal(
                    signal.SIGINT,
                    lambda s, f: handle_shutdown(signal.SIGINT),
                )

    try:
        bot_task = asyncio.create_task(bot.run())
        shutdown_task = asyncio.create_task(shutdown_event.wait())

        done, _ = await asyncio.wait(
            {bot_task, shutdown_task}, return_when=asyncio.FIRST_COMPLETED
        )
        shutdown_task.cancel()
        if bot_task in done:
            # Surface startup failures (bad token, unreachable Slack)
            bot_task.result()
        else:
            bot_task.cancel()
            try:
                await bot_task
            except asyncio.CancelledError:
                pass

    except Exception as e:
        logger.error("bot_error", error=str(e), error_type=type(e).__name__)
        raise
    finally:
        await bot.stop()
        logger.info("tripwire_stopped")
        shutdown_logging()


def run():
    """Synchronous entry point for the ``tripwire`` console script."""
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        pass
    except ConfigurationError:
        # Already logged by main()
        sys.exit(1)


if __name__ == "__main__":
    run()
