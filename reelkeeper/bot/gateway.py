"""Outbound side of the Telegram gateway.

Wraps `telegram.Bot` with the two calls the conversation layer needs.
Delivery failures are logged and swallowed: a message that cannot be sent
never turns into a store error or a crashed handler.
"""

from __future__ import annotations

import logging
from typing import Optional

from telegram import Bot
from telegram.constants import ParseMode
from telegram.error import BadRequest, TelegramError


logger = logging.getLogger("reelkeeper.gateway")


class TelegramGateway:
    def __init__(self, bot: Bot, parse_mode: Optional[str] = ParseMode.MARKDOWN) -> None:
        self._bot = bot
        self._parse_mode = parse_mode

    async def send_text(self, chat_id: int, text: str, reply_markup=None) -> bool:
        try:
            await self._bot.send_message(
                chat_id=chat_id,
                text=text,
                parse_mode=self._parse_mode,
                reply_markup=reply_markup,
            )
            return True
        except BadRequest as e:
            if "parse entities" not in str(e).lower():
                logger.warning("send failed", extra={"chat_id": chat_id, "error": str(e)})
                return False
            # Markdown rejected; deliver the text as-is instead
            try:
                await self._bot.send_message(chat_id=chat_id, text=text, reply_markup=reply_markup)
                return True
            except TelegramError as e2:
                logger.warning("send failed", extra={"chat_id": chat_id, "error": str(e2)})
                return False
        except TelegramError as e:
            logger.warning("send failed", extra={"chat_id": chat_id, "error": str(e)})
            return False

    async def answer_callback(self, callback_id: Optional[str], text: Optional[str] = None) -> bool:
        if not callback_id:
            return False
        try:
            await self._bot.answer_callback_query(callback_query_id=callback_id, text=text)
            return True
        except TelegramError as e:
            logger.warning(
                "answer callback failed", extra={"callback_id": callback_id, "error": str(e)}
            )
            return False
