"""
Telegram command and message handlers.
"""

import dataclasses
import logging
import math
from typing import List, Optional, Sequence

from telegram import Update
from telegram.constants import ChatType
from telegram.ext import Application, CommandHandler, ContextTypes, MessageHandler, filters

from ..cache import SummaryResultCache
from ..config.constants import DEFAULT_MESSAGE_COUNT, MIN_MESSAGE_COUNT, MAX_MESSAGE_COUNT
from ..delivery.manager import DeliveryManager
from ..jobs.queue import JobQueue
from ..models.job import JobPayload
from ..models.message import ArchivedMessage
from ..storage.archive import MessageArchive
from .throttle import CommandThrottle

logger = logging.getLogger(__name__)

TOP_PARTICIPANTS_LIMIT = 10

USAGE_TEXT = (
    "📝 /summary usage\n\n"
    "🔧 In a group:\n"
    f"• /summary - summarize the last {DEFAULT_MESSAGE_COUNT} messages\n"
    f"• /summary <count> - summarize the last {MIN_MESSAGE_COUNT}-{MAX_MESSAGE_COUNT} messages\n\n"
    "💡 Examples:\n"
    "• /summary 100\n"
    "• /summary 500\n\n"
    "⚠️ Summaries only work in groups, and each user has to wait a few minutes "
    "between requests.\n\n"
    "Add me to a group to get started!"
)

START_TEXT = (
    "👋 Hi! I summarize group conversations.\n\n"
    "Add me to a group and I will start keeping track of its text messages. "
    "Then use /summary to get an overview of the recent discussion.\n\n"
    "Use /help for details."
)

HELP_TEXT = (
    "🤖 Chat Digest Bot\n\n"
    "📋 Commands:\n"
    "• /summary [count] - summarize recent group messages\n"
    "• /start - introduction\n"
    "• /help - this message\n\n"
    "📊 A summary covers the main topics, the key discussion points, "
    "participant activity and notable events.\n\n"
    "ℹ️ Only messages sent after I joined the group can be summarized."
)

INVALID_COUNT_TEXT = (
    "❌ Invalid argument. Please give a number.\n\n"
    "📝 Format: /summary <count>\n"
    f"🔢 Range: {MIN_MESSAGE_COUNT}-{MAX_MESSAGE_COUNT}\n\n"
    "💬 Example: /summary 100"
)

NO_MESSAGES_TEXT = (
    "📭 No chat history yet\n\n"
    "There are no stored messages for this group. I only see messages sent after "
    "I joined, so chat a little and try again."
)


def parse_message_count(args: Optional[Sequence[str]]) -> Optional[int]:
    """Parse the /summary argument. Returns None when it is not a valid count."""
    if not args:
        return DEFAULT_MESSAGE_COUNT
    value = args[0].strip()
    if not value.isdigit():
        return None
    count = int(value)
    if not (MIN_MESSAGE_COUNT <= count <= MAX_MESSAGE_COUNT):
        return None
    return count


def display_name_for(user) -> str:
    return user.full_name or user.username or f"user{user.id}"


class BotHandlers:
    """Handlers wired onto the python-telegram-bot application."""

    def __init__(self,
                 archive: MessageArchive,
                 queue: JobQueue,
                 result_cache: SummaryResultCache,
                 throttle: CommandThrottle,
                 delivery: DeliveryManager):
        self.archive = archive
        self.queue = queue
        self.result_cache = result_cache
        self.throttle = throttle
        self.delivery = delivery

    def register(self, application: Application) -> None:
        application.add_handler(CommandHandler("start", self.start))
        application.add_handler(CommandHandler("help", self.help))
        application.add_handler(CommandHandler("summary", self.summary))
        application.add_handler(
            MessageHandler(filters.TEXT & ~filters.COMMAND & filters.ChatType.GROUPS, self.archive_message)
        )
        application.add_error_handler(self.on_error)

    async def start(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        await update.effective_message.reply_text(START_TEXT)

    async def help(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        await update.effective_message.reply_text(HELP_TEXT)

    async def archive_message(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        """Store group text messages for later summaries."""
        message = update.effective_message
        user = update.effective_user
        if message is None or user is None or not message.text:
            return
        if user.id == context.bot.id:
            return

        try:
            await self.archive.add_message(ArchivedMessage(
                chat_id=message.chat_id,
                message_id=message.message_id,
                user_id=user.id,
                display_name=display_name_for(user),
                text=message.text,
                timestamp=message.date,
                username=user.username,
            ))
        except Exception as e:
            logger.error(f"Failed to archive message {message.message_id} from chat {message.chat_id}: {e}")

    async def summary(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        """Handle /summary [count]."""
        chat = update.effective_chat
        user = update.effective_user
        message = update.effective_message

        if chat.type == ChatType.PRIVATE:
            await message.reply_text(USAGE_TEXT)
            return

        count = parse_message_count(context.args)
        if count is None:
            await message.reply_text(INVALID_COUNT_TEXT)
            return

        if self.throttle.is_throttled(chat.id, user.id):
            minutes = max(1, math.ceil(self.throttle.remaining(chat.id, user.id) / 60))
            await message.reply_text(
                "⏰ Too many requests!\n\n"
                f"Each user has to wait between summaries in a group. Please try again in about {minutes} min."
            )
            return

        if self.queue.has_pending(chat.id):
            await message.reply_text(
                "⏳ A summary for this group is already being prepared. Please wait for it to finish."
            )
            return

        try:
            await self._start_summary(chat.id, user.id, message, count)
        except Exception as e:
            logger.exception(f"/summary failed in chat {chat.id}: {e}")
            await message.reply_text(
                "❌ The command failed. Please try again later."
            )

    async def _start_summary(self, chat_id: int, user_id: int, message, count: int) -> None:
        processing = await message.reply_text(
            "🔄 Analyzing group messages...\n\n"
            f"📊 Preparing a summary of the last {count} messages\n"
            "⏳ This usually takes 10-30 seconds."
        )

        stats = await self.archive.get_stats(chat_id)
        if stats.is_empty:
            await processing.edit_text(NO_MESSAGES_TEXT)
            return

        count = min(count, stats.total_messages)
        messages: List[ArchivedMessage] = await self.archive.get_recent_messages(chat_id, count)
        if not messages:
            await processing.edit_text(NO_MESSAGES_TEXT)
            return

        top_participants = await self.archive.get_top_participants(chat_id, TOP_PARTICIPANTS_LIMIT)

        payload = JobPayload(
            chat_id=chat_id,
            requester_id=user_id,
            anchor_message_id=processing.message_id,
            messages=messages,
            requested_count=count,
            stats=stats,
            top_participants=top_participants,
        )

        cached = await self.result_cache.get_cached_summary(payload.fingerprint)
        if cached is not None:
            logger.info(f"Serving cached summary for chat {chat_id} ({count} messages)")
            document = dataclasses.replace(cached, from_cache=True)
            await self.delivery.deliver(chat_id, processing.message_id, document)
            return

        self.throttle.mark(chat_id, user_id)
        job_id = self.queue.enqueue(payload)
        logger.info(f"User {user_id} requested a summary of {count} messages in chat {chat_id} (job {job_id})")

    async def on_error(self, update: object, context: ContextTypes.DEFAULT_TYPE) -> None:
        logger.error(f"Unhandled error while processing update: {context.error}", exc_info=context.error)
