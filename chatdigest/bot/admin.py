"""
Administrator commands: /status and /admin.

Both commands are limited to the user ids listed in ADMIN_USER_IDS. Everyone
else gets a refusal and the attempt is logged.
"""

import logging
import time
from typing import Any, Callable, Dict, List, Optional, Sequence

from telegram import Update
from telegram.constants import ChatType
from telegram.ext import Application, CommandHandler, ContextTypes

from .. import __version__
from ..cache import SummaryResultCache
from ..delivery.permissions import ChatPermissionService
from ..jobs.queue import JobQueue
from ..storage.archive import MessageArchive
from ..summarization.gateway import ProviderGateway

logger = logging.getLogger(__name__)

DEFAULT_LIST_LIMIT = 10
MAX_USERS_LIMIT = 50
MAX_MESSAGES_LIMIT = 20
PREVIEW_LENGTH = 80

ADMIN_HELP_TEXT = (
    "🔧 Admin commands\n\n"
    "• /status - bot, queue, backend and cache status\n"
    "• /admin stats [chat_id] - archive statistics for a group\n"
    f"• /admin users [chat_id] [limit] - most active users (1-{MAX_USERS_LIMIT})\n"
    f"• /admin messages [chat_id] [limit] - latest archived messages (1-{MAX_MESSAGES_LIMIT})\n"
    "• /admin cache - summary cache statistics\n"
    "• /admin clear [chat_id] - drop cached summaries for a group, or all of them\n"
    "• /admin purge <chat_id> - delete a group's archived messages and cached state\n"
    "• /admin help - this message\n\n"
    "Inside a group the chat_id defaults to the current group."
)

CHAT_ID_REQUIRED_TEXT = "❌ Please give a chat id, or run the command inside a group."


class AdminCommandError(Exception):
    """Raised for a malformed /admin invocation. The message is shown to the admin."""


def parse_limit(value: Optional[str], maximum: int, default: int = DEFAULT_LIST_LIMIT) -> int:
    if value is None:
        return default
    try:
        limit = int(value)
    except ValueError:
        raise AdminCommandError(f"❌ The limit must be a number between 1 and {maximum}.")
    if not 1 <= limit <= maximum:
        raise AdminCommandError(f"❌ The limit must be a number between 1 and {maximum}.")
    return limit


def _format_backend(slot: str, status: Dict[str, Any]) -> str:
    state = "✅ configured" if status.get("configured") else "❌ not configured"
    return f"• {slot}: {state}, {status.get('calls', 0)} calls, {status.get('failures', 0)} failures"


class AdminHandlers:
    """The /status and /admin commands."""

    def __init__(self,
                 archive: MessageArchive,
                 queue: JobQueue,
                 gateway: ProviderGateway,
                 result_cache: SummaryResultCache,
                 permissions: ChatPermissionService,
                 admin_user_ids: Sequence[int],
                 clock: Callable[[], float] = time.monotonic):
        self.archive = archive
        self.queue = queue
        self.gateway = gateway
        self.result_cache = result_cache
        self.permissions = permissions
        self.admin_user_ids = frozenset(admin_user_ids)
        self._clock = clock
        self._started_at = clock()

        self._subcommands = {
            "help": self._admin_help,
            "stats": self._admin_stats,
            "users": self._admin_users,
            "messages": self._admin_messages,
            "cache": self._admin_cache,
            "clear": self._admin_clear,
            "purge": self._admin_purge,
        }

    def register(self, application: Application) -> None:
        application.add_handler(CommandHandler("status", self.status))
        application.add_handler(CommandHandler("admin", self.admin))

    def is_admin(self, user_id: int) -> bool:
        if not self.admin_user_ids:
            logger.warning("ADMIN_USER_IDS is not configured, admin commands are disabled")
            return False
        return user_id in self.admin_user_ids

    async def _check_admin(self, update: Update, command: str) -> bool:
        user = update.effective_user
        if self.is_admin(user.id):
            return True

        chat = update.effective_chat
        logger.warning(f"Non-admin user {user.id} tried /{command} in chat {chat.id} ({chat.type})")
        await update.effective_message.reply_text(
            "🚫 Access denied\n\n"
            f"/{command} is reserved for bot administrators.\n\n"
            f"🆔 Your user id: {user.id}\n\n"
            "Use /help to see the available commands."
        )
        return False

    async def status(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        """Handle /status."""
        if not await self._check_admin(update, "status"):
            return

        chat = update.effective_chat
        logger.info(f"Admin {update.effective_user.id} requested /status in chat {chat.id}")

        lines = [f"🤖 Chat Digest Bot v{__version__}", ""]
        lines.append(f"⏱ Uptime: {self._format_uptime()}")
        lines.append("")

        queue_status = self.queue.get_status()
        lines.append("⏳ Job queue")
        lines.append(f"• Pending: {queue_status['queue_length']}")
        lines.append(f"• Processing: {'yes' if queue_status['is_processing'] else 'idle'}")
        lines.append(f"• Retained jobs: {queue_status['retained_jobs']}")
        current = queue_status["current_job"]
        if current:
            lines.append(f"• Current: {current['id'][-8:]} for chat {current['chat_id']}")
        lines.append("")

        lines.append("🧠 AI backends")
        for slot, backend_status in self.gateway.get_status().items():
            lines.append(_format_backend(slot, backend_status))
        lines.append("")

        cache_stats = self.result_cache.stats()
        lines.append("💾 Summary cache")
        lines.append(f"• Entries: {cache_stats['size']}/{cache_stats['max_size']}")
        lines.append(f"• Hits: {cache_stats['hits']}, misses: {cache_stats['misses']}")

        if chat.type != ChatType.PRIVATE:
            stats = await self.archive.get_stats(chat.id)
            lines.append("")
            lines.append("📊 This group")
            lines.append(f"• Stored messages: {stats.total_messages}")
            lines.append(f"• Participants: {stats.unique_users}")
            reason = self.permissions.restriction_reason(chat.id)
            if reason is not None:
                lines.append(f"• Sending restricted: {reason}")

        await update.effective_message.reply_text("\n".join(lines))

    async def admin(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        """Handle /admin <subcommand> [args]."""
        if not await self._check_admin(update, "admin"):
            return

        args: List[str] = list(context.args or [])
        name = args[0].lower() if args else "help"
        handler = self._subcommands.get(name)
        if handler is None:
            await update.effective_message.reply_text(f"❌ Unknown subcommand: {name}\n\n{ADMIN_HELP_TEXT}")
            return

        logger.info(f"Admin {update.effective_user.id} ran /admin {' '.join(args) or 'help'}")
        try:
            reply = await handler(update, args[1:])
        except AdminCommandError as e:
            reply = str(e)
        except Exception as e:
            logger.exception(f"/admin {name} failed: {e}")
            reply = f"❌ /admin {name} failed: {e}"
        await update.effective_message.reply_text(reply)

    def _target_chat(self, update: Update, args: Sequence[str]) -> int:
        if args:
            try:
                return int(args[0])
            except ValueError:
                raise AdminCommandError(f"❌ Invalid chat id: {args[0]}")
        chat = update.effective_chat
        if chat.type == ChatType.PRIVATE:
            raise AdminCommandError(CHAT_ID_REQUIRED_TEXT)
        return chat.id

    def _split_chat_and_limit(self, update: Update, args: Sequence[str]):
        """Accept ``[chat_id] [limit]``. A lone argument inside a group is the limit."""
        if len(args) == 1 and update.effective_chat.type != ChatType.PRIVATE:
            return update.effective_chat.id, args[0]
        chat_id = self._target_chat(update, args[:1])
        return chat_id, args[1] if len(args) > 1 else None

    async def _admin_help(self, update: Update, args: Sequence[str]) -> str:
        return ADMIN_HELP_TEXT

    async def _admin_stats(self, update: Update, args: Sequence[str]) -> str:
        chat_id = self._target_chat(update, args)
        stats = await self.archive.get_stats(chat_id)
        if stats.is_empty:
            return f"📭 No archived messages for chat {chat_id}."

        lines = [
            f"📊 Chat {chat_id}",
            f"• Stored messages: {stats.total_messages}",
            f"• Participants: {stats.unique_users}",
            f"• From: {stats.earliest_message:%Y-%m-%d %H:%M}",
            f"• To: {stats.latest_message:%Y-%m-%d %H:%M}",
        ]
        return "\n".join(lines)

    async def _admin_users(self, update: Update, args: Sequence[str]) -> str:
        chat_id, raw_limit = self._split_chat_and_limit(update, args)
        limit = parse_limit(raw_limit, MAX_USERS_LIMIT)
        participants = await self.archive.get_top_participants(chat_id, limit)
        if not participants:
            return f"📭 No archived messages for chat {chat_id}."

        lines = [f"👥 Most active users in chat {chat_id}"]
        for rank, participant in enumerate(participants, 1):
            lines.append(f"{rank}. {participant.display_name} ({participant.user_id}): "
                         f"{participant.message_count}")
        return "\n".join(lines)

    async def _admin_messages(self, update: Update, args: Sequence[str]) -> str:
        chat_id, raw_limit = self._split_chat_and_limit(update, args)
        limit = parse_limit(raw_limit, MAX_MESSAGES_LIMIT)
        messages = await self.archive.get_recent_messages(chat_id, limit)
        if not messages:
            return f"📭 No archived messages for chat {chat_id}."

        lines = [f"💬 Latest {len(messages)} messages in chat {chat_id}"]
        for message in messages:
            text = message.text.replace("\n", " ")
            if len(text) > PREVIEW_LENGTH:
                text = text[:PREVIEW_LENGTH] + "..."
            lines.append(f"[{message.timestamp:%m-%d %H:%M}] {message.display_name}: {text}")
        return "\n".join(lines)

    async def _admin_cache(self, update: Update, args: Sequence[str]) -> str:
        stats = self.result_cache.stats()
        return (
            "💾 Summary cache\n"
            f"• Entries: {stats['size']}/{stats['max_size']}\n"
            f"• TTL: {stats['default_ttl']}s\n"
            f"• Hits: {stats['hits']}\n"
            f"• Misses: {stats['misses']}\n"
            f"• Hit rate: {stats['hit_rate']:.0%}"
        )

    async def _admin_clear(self, update: Update, args: Sequence[str]) -> str:
        if not args:
            count = await self.result_cache.clear()
            return f"🧹 Cleared all cached summaries ({count})."

        chat_id = self._target_chat(update, args)
        count = await self.result_cache.invalidate_chat(chat_id)
        self.permissions.clear(chat_id)
        return f"🧹 Cleared {count} cached summaries and the send restriction for chat {chat_id}."

    async def _admin_purge(self, update: Update, args: Sequence[str]) -> str:
        if not args:
            raise AdminCommandError("❌ /admin purge needs an explicit chat id.")

        chat_id = self._target_chat(update, args)
        deleted = await self.archive.delete_chat_messages(chat_id)
        cached = await self.result_cache.invalidate_chat(chat_id)
        self.permissions.clear(chat_id)
        logger.warning(f"Purged chat {chat_id}: {deleted} messages, {cached} cached summaries")
        return f"🗑 Deleted {deleted} archived messages and {cached} cached summaries for chat {chat_id}."

    def _format_uptime(self) -> str:
        seconds = int(self._clock() - self._started_at)
        hours, remainder = divmod(seconds, 3600)
        return f"{hours}h {remainder // 60}m"
