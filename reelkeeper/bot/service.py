"""Telegram bot service for reelkeeper.

Owns the python-telegram-bot `Application`: admin enforcement, mode
selection (polling/webhook), conversion of updates into `Inbound` values,
per-chat serialization, and supervision of the long-poll loop.
"""

from __future__ import annotations

import asyncio
import logging
import secrets
from typing import Any, Dict, Optional

from telegram import Update
from telegram.error import TelegramError
from telegram.ext import (
    AIORateLimiter,
    Application,
    ApplicationBuilder,
    CallbackQueryHandler,
    ContextTypes,
    MessageHandler,
    filters,
)

from ..conversation.machine import ConversationMachine
from ..conversation.sessions import ChatLocks, MemorySessionStore
from ..metrics.registry import UPDATE_SECONDS
from ..runtime.config import AppConfig
from ..utils.formatter import MessageFormatter
from .gateway import TelegramGateway
from .router import CommandRouter, Inbound


logger = logging.getLogger("reelkeeper.bot")

WATCHDOG_INTERVAL_SECONDS = 5


def _is_admin(user_id: Optional[int], cfg: AppConfig) -> bool:
    if user_id is None:
        return False
    return not cfg.telegram_admin_ids or user_id in cfg.telegram_admin_ids


class ReelkeeperBotService:
    def __init__(
        self,
        config: AppConfig,
        store,
        sessions: Optional[MemorySessionStore] = None,
    ) -> None:
        self._config = config
        self._store = store
        self._sessions = sessions if sessions is not None else MemorySessionStore()
        self._locks = ChatLocks()
        self._app: Optional[Application] = None
        self._gateway: Optional[TelegramGateway] = None
        self._machine: Optional[ConversationMachine] = None
        self._router: Optional[CommandRouter] = None
        self._watchdog_task: Optional[asyncio.Task] = None
        self._stopping = False

    @property
    def mode(self) -> str:
        return self._config.telegram_mode

    async def start(self) -> None:
        builder = (
            ApplicationBuilder()
            .token(self._config.telegram_bot_token)
            .rate_limiter(AIORateLimiter())
            .concurrent_updates(True)
        )
        if self.mode == "webhook":
            # Updates arrive through the HTTP API and are queued by process_webhook
            builder = builder.updater(None)
        self._app = builder.build()

        self._gateway = TelegramGateway(self._app.bot)
        self._machine = ConversationMachine(self._store, self._gateway, self._sessions)
        self._router = CommandRouter(
            self._store,
            self._gateway,
            self._machine,
            frontend_url=self._config.public_base_url,
        )

        self._app.add_handler(
            MessageHandler(filters.TEXT & filters.ChatType.PRIVATE, self._on_message)
        )
        self._app.add_handler(CallbackQueryHandler(self._on_callback))
        self._app.add_error_handler(self._on_error)

        if not self._config.telegram_admin_ids:
            logger.warning("TELEGRAM_ADMIN_IDS is empty, every user can edit the catalog")

        await self._app.initialize()
        await self._app.start()
        if self.mode == "webhook":
            try:
                await self._app.bot.set_webhook(
                    url=self._config.webhook_url,
                    secret_token=self._config.webhook_secret,
                    allowed_updates=Update.ALL_TYPES,
                )
                logger.info("webhook registered", extra={"path": self._config.webhook_path})
            except TelegramError as e:
                # The HTTP API keeps serving; the webhook can be set again later
                logger.error("webhook registration failed", extra={"error": str(e)})
        else:
            await self._start_polling()
            self._watchdog_task = asyncio.create_task(self._polling_watchdog())

        logger.info("bot started", extra={"mode": self.mode})

    async def stop(self) -> None:
        self._stopping = True
        if self._watchdog_task:
            self._watchdog_task.cancel()
            try:
                await self._watchdog_task
            except asyncio.CancelledError:
                pass
        if not self._app:
            return
        try:
            if self._app.updater and self._app.updater.running:
                await self._app.updater.stop()
            if self._app.running:
                await self._app.stop()
            await self._app.shutdown()
        except TelegramError as e:
            logger.warning("bot shutdown incomplete", extra={"error": str(e)})
        logger.info("bot stopped")

    # --- Delivery ---

    async def _start_polling(self) -> None:
        assert self._app and self._app.updater
        await self._app.updater.start_polling(
            allowed_updates=Update.ALL_TYPES,
            error_callback=self._on_polling_error,
        )

    def _on_polling_error(self, error: TelegramError) -> None:
        logger.warning("polling error", extra={"error": str(error)})

    async def _polling_watchdog(self) -> None:
        """Restart the long-poll loop after a fixed delay if it stops."""
        assert self._app and self._app.updater
        logger.info("polling watchdog started")
        try:
            while True:
                await asyncio.sleep(WATCHDOG_INTERVAL_SECONDS)
                if self._stopping or self._app.updater.running:
                    continue
                delay = self._config.polling_restart_delay_seconds
                logger.warning("polling loop stopped, restarting", extra={"delay_seconds": delay})
                await asyncio.sleep(delay)
                try:
                    await self._start_polling()
                    logger.info("polling restarted")
                except TelegramError as e:
                    logger.error("polling restart failed", extra={"error": str(e)})
        except asyncio.CancelledError:
            logger.info("polling watchdog stopped")

    async def process_webhook(self, payload: Dict[str, Any], secret_token: Optional[str]) -> bool:
        """Queue a webhook update; False when the secret token does not match."""
        if not secrets.compare_digest(secret_token or "", self._config.webhook_secret):
            logger.warning("webhook request with bad secret token")
            return False
        if not self._app:
            raise RuntimeError("bot service not started")
        update = Update.de_json(payload, self._app.bot)
        await self._app.update_queue.put(update)
        return True

    # --- Handlers ---

    async def _on_message(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        message = update.effective_message
        user = update.effective_user
        if not (message and user and update.effective_chat):
            return
        if not _is_admin(user.id, self._config):
            logger.info("ignoring non-admin user", extra={"user_id": user.id})
            return
        await self.dispatch(
            Inbound(chat_id=update.effective_chat.id, user_id=user.id, text=message.text)
        )

    async def _on_callback(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        query = update.callback_query
        if not query:
            return
        if not _is_admin(query.from_user.id, self._config):
            logger.info("ignoring non-admin callback", extra={"user_id": query.from_user.id})
            return
        chat_id = query.message.chat.id if query.message else query.from_user.id
        await self.dispatch(
            Inbound(
                chat_id=chat_id,
                user_id=query.from_user.id,
                callback_id=query.id,
                callback_data=query.data,
            )
        )

    async def dispatch(self, inbound: Inbound) -> None:
        """Route one update while holding its chat's lock."""
        assert self._router and self._machine and self._gateway
        async with self._locks.hold(inbound.chat_id):
            with UPDATE_SECONDS.time():
                try:
                    await self._router.route(inbound)
                except Exception:
                    logger.exception(
                        "update handling failed",
                        extra={"chat_id": inbound.chat_id, "callback": inbound.callback_data},
                    )
                    self._machine.discard(inbound.chat_id)
                    await self._gateway.send_text(
                        inbound.chat_id, MessageFormatter.format_generic_error()
                    )
                    if inbound.is_callback:
                        await self._gateway.answer_callback(inbound.callback_id, "An error occurred")

    async def _on_error(self, update: object, context: ContextTypes.DEFAULT_TYPE) -> None:
        logger.error(
            "unhandled telegram error",
            exc_info=context.error,
            extra={"update_type": type(update).__name__},
        )
