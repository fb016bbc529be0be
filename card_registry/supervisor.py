"""Unified entry point for the Telegram bot and the card query API.

This module launches both services concurrently in one process, on one
shared :class:`CardService`.  Whichever service stops first, whether it
returned or crashed, decides the outcome: the other one is cancelled
without waiting for in-flight work and the process exits, with status 1
if the first service failed.  Nothing is restarted.

Configuration is read from ``config.toml`` and ``CARDBOT_*``
environment variables, see :mod:`card_registry.app.core.config`.

Usage:
    python run.py
"""

from __future__ import annotations

import asyncio
import logging
import sys
import threading
from dataclasses import dataclass
from typing import Awaitable, Mapping, Optional

from uvicorn import Config, Server

from card_registry.app.core.config import Settings, load_settings
from card_registry.app.core.db import ConnectionPool, init_db
from card_registry.app.core.errors import ConfigError, StorageError
from card_registry.app.core.logging_config import setup_logging
from card_registry.app.main import create_app
from card_registry.app.services.card_service import CardService
from card_registry.bot.commands import CardCommands
from card_registry.bot.telegram_card_bot import TelegramCardBot

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ServiceExit:
    """How the first service to stop ended."""

    name: str
    error: Optional[BaseException] = None

    @property
    def exit_code(self) -> int:
        return 0 if self.error is None else 1


async def run_until_first_exit(services: Mapping[str, Awaitable[None]]) -> ServiceExit:
    """Run ``services`` concurrently and return as soon as one of them stops.

    The remaining services are cancelled.  When several stop at once the
    one listed first in ``services`` is reported.
    """
    tasks = {name: asyncio.ensure_future(service) for name, service in services.items()}
    done, pending = await asyncio.wait(tasks.values(), return_when=asyncio.FIRST_COMPLETED)
    for task in pending:
        task.cancel()
    await asyncio.gather(*pending, return_exceptions=True)

    name, task = next((name, task) for name, task in tasks.items() if task in done)
    if task.cancelled():
        error: Optional[BaseException] = asyncio.CancelledError()
    else:
        error = task.exception()
    if error is None:
        logger.warning("Service %s stopped", name)
    else:
        logger.error("Service %s failed", name, exc_info=error)
    return ServiceExit(name, error)


async def run_api(settings: Settings, card_service: CardService) -> None:
    """Serve the query API with uvicorn until it shuts down."""
    app = create_app(card_service, settings.api_password)
    config = Config(
        app=app,
        host=settings.api_host,
        port=settings.api_port,
        log_level=settings.log_level.lower(),
        log_config=None,
    )
    server = Server(config)
    address = f"{settings.api_host}:{settings.api_port}"
    try:
        await server.serve()
    except SystemExit as exc:
        # uvicorn exits the interpreter when it cannot bind
        raise RuntimeError(f"could not start HTTP server on {address}") from exc
    if not server.started:
        raise RuntimeError(f"could not start HTTP server on {address}")


async def run_bot(bot: TelegramCardBot) -> None:
    """Run the blocking bot loop in a daemon thread and wait for it.

    Cancelling this coroutine asks the bot to stop and abandons the
    thread; being a daemon, it does not keep the process alive.
    """
    loop = asyncio.get_running_loop()
    finished: asyncio.Future = loop.create_future()

    def _resolve(error: Optional[BaseException]) -> None:
        if finished.done():
            return
        if error is None:
            finished.set_result(None)
        else:
            finished.set_exception(error)

    def _notify(error: Optional[BaseException]) -> None:
        try:
            loop.call_soon_threadsafe(_resolve, error)
        except RuntimeError:
            # event loop already closed, nobody is waiting for the bot
            logger.debug("Bot finished after the supervisor exited")

    def _target() -> None:
        try:
            bot.run()
        except BaseException as exc:
            _notify(exc)
        else:
            _notify(None)

    threading.Thread(target=_target, name="telegram-bot", daemon=True).start()
    try:
        await finished
    except asyncio.CancelledError:
        bot.stop()
        raise


async def serve(settings: Settings, card_service: CardService) -> ServiceExit:
    """Start the bot and the API on ``card_service`` and wait for the first to stop."""
    bot = TelegramCardBot(settings.bot_token, CardCommands(card_service))
    return await run_until_first_exit(
        {
            "query-api": run_api(settings, card_service),
            "telegram-bot": run_bot(bot),
        }
    )


def main() -> None:
    try:
        settings = load_settings()
    except ConfigError as exc:
        setup_logging()
        logger.error("Invalid configuration: %s", exc)
        sys.exit(1)
    setup_logging(settings.log_level, settings.log_file)

    pool = ConnectionPool(settings.database_path, size=settings.pool_size)
    try:
        version = init_db(pool)
    except StorageError as exc:
        logger.error("Cannot prepare database %s: %s", settings.database_path, exc)
        pool.close()
        sys.exit(1)
    logger.info("Database %s at schema version %d", settings.database_path, version)

    try:
        outcome = asyncio.run(serve(settings, CardService(pool)))
    except KeyboardInterrupt:
        logger.info("Interrupted, shutting down")
        sys.exit(130)
    finally:
        pool.close()
    sys.exit(outcome.exit_code)


if __name__ == "__main__":
    main()
