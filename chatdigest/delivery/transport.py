"""
Message transport to the chat platform.
"""

import logging
from abc import ABC, abstractmethod
from typing import Optional

from telegram import Bot, LinkPreviewOptions
from telegram.constants import ParseMode

logger = logging.getLogger(__name__)


class MessageTransport(ABC):
    """Posts and edits messages. Errors are raised unchanged."""

    @abstractmethod
    async def edit_text(self, chat_id: int, message_id: int, text: str, markup: bool = True) -> None:
        """Replace the text of an existing message."""

    @abstractmethod
    async def send_text(self, chat_id: int, text: str, markup: bool = True) -> Optional[int]:
        """Post a new message and return its id."""


class TelegramTransport(MessageTransport):
    """Transport over the Telegram Bot API using legacy Markdown."""

    def __init__(self, bot: Bot):
        self.bot = bot
        self._no_preview = LinkPreviewOptions(is_disabled=True)

    async def edit_text(self, chat_id: int, message_id: int, text: str, markup: bool = True) -> None:
        await self.bot.edit_message_text(
            text=text,
            chat_id=chat_id,
            message_id=message_id,
            parse_mode=ParseMode.MARKDOWN if markup else None,
            link_preview_options=self._no_preview,
        )

    async def send_text(self, chat_id: int, text: str, markup: bool = True) -> Optional[int]:
        message = await self.bot.send_message(
            chat_id=chat_id,
            text=text,
            parse_mode=ParseMode.MARKDOWN if markup else None,
            link_preview_options=self._no_preview,
        )
        return message.message_id
