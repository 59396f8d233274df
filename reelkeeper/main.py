"""
Entry point module for reelkeeper.

This module wires up configuration, logging, the catalog store, the REST API
server and the Telegram bot runtime selection (polling vs webhook).
"""

from __future__ import annotations

import asyncio
import logging
import signal

import uvicorn
from dotenv import load_dotenv


def _ensure_event_loop_policy() -> None:
    """Install uvloop if available for better performance."""
    try:
        import uvloop  # type: ignore

        asyncio.set_event_loop_policy(uvloop.EventLoopPolicy())
    except ImportError:  # pragma: no cover - fallback to default loop
        pass


async def _async_main() -> None:
    """Async entry point that sets up services and starts the bot."""
    from .bot.service import ReelkeeperBotService
    from .db.catalog import CatalogError, CatalogStore
    from .runtime.config import AppConfig, ConfigError
    from .runtime.logging_setup import setup_logging
    from .web.api import create_app

    config = AppConfig.from_env()
    setup_logging(config)
    logger = logging.getLogger("reelkeeper")

    try:
        config.validate()
    except ConfigError as e:
        logger.critical("invalid configuration", extra={"error": str(e)})
        raise SystemExit(1)

    logger.info("starting reelkeeper", extra={"mode": config.telegram_mode})

    store = CatalogStore.from_config(config)
    try:
        store.init_indexes()
    except CatalogError as e:
        # Reads and writes report their own failures; keep serving
        logger.error("catalog indexes not created", extra={"error": str(e)})

    bot = ReelkeeperBotService(config, store)
    await bot.start()

    server = uvicorn.Server(
        config=uvicorn.Config(
            app=create_app(store, config, bot),
            host=config.bind_host,
            port=config.port,
            log_level="info",
            access_log=False,
        )
    )
    server_task = asyncio.create_task(server.serve())
    logger.info("http server started", extra={"port": config.port})

    # Graceful shutdown signals
    stop_event = asyncio.Event()

    def _handle_signal(signame: str) -> None:
        logger.warning("received signal, stopping", extra={"signal": signame})
        stop_event.set()

    loop = asyncio.get_running_loop()
    for signame in ("SIGINT", "SIGTERM"):
        if hasattr(signal, signame):
            loop.add_signal_handler(getattr(signal, signame), _handle_signal, signame)

    try:
        await stop_event.wait()
    finally:
        logger.info("shutting down services")
        server.should_exit = True
        try:
            await server_task
        except asyncio.CancelledError:
            pass
        await bot.stop()
        store.close()
        logger.info("shutdown complete")


def main() -> None:
    load_dotenv()
    _ensure_event_loop_policy()
    try:
        asyncio.run(_async_main())
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
