"""
Tests for the administrator /status and /admin commands.
"""

from datetime import datetime, timezone
from types import SimpleNamespace
from typing import List

import pytest
import pytest_asyncio
from telegram.constants import ChatType

from chatdigest.bot import AdminHandlers
from chatdigest.bot.admin import ADMIN_HELP_TEXT, CHAT_ID_REQUIRED_TEXT, AdminCommandError, parse_limit
from chatdigest.cache import SummaryResultCache
from chatdigest.delivery import ChatPermissionService
from chatdigest.jobs import JobQueue
from chatdigest.models import ArchivedMessage, SummaryDocument
from chatdigest.storage import MessageArchive
from chatdigest.summarization.gateway import ProviderGateway

GROUP_ID = -100700
OTHER_GROUP_ID = -100800
ADMIN_ID = 1
STRANGER_ID = 2


class FakeMessage:
    def __init__(self):
        self.replies: List[str] = []

    async def reply_text(self, text: str, **kwargs) -> None:
        self.replies.append(text)


def make_update(user_id: int = ADMIN_ID, chat_type=ChatType.SUPERGROUP, chat_id: int = GROUP_ID):
    return SimpleNamespace(
        effective_chat=SimpleNamespace(id=chat_id, type=chat_type),
        effective_user=SimpleNamespace(id=user_id),
        effective_message=FakeMessage(),
    )


def make_context(*args):
    return SimpleNamespace(args=list(args))


class Harness:
    def __init__(self, archive: MessageArchive, admin_user_ids=(ADMIN_ID,)):
        async def workflow(payload):
            return SummaryDocument(body="done")

        self.clock_now = 0.0
        self.archive = archive
        self.queue = JobQueue(workflow)
        self.cache = SummaryResultCache()
        self.permissions = ChatPermissionService()
        self.handlers = AdminHandlers(
            archive=archive,
            queue=self.queue,
            gateway=ProviderGateway(primary=None, secondary=None),
            result_cache=self.cache,
            permissions=self.permissions,
            admin_user_ids=admin_user_ids,
            clock=lambda: self.clock_now,
        )

    async def seed(self, chat_id: int = GROUP_ID, count: int = 3) -> None:
        for index in range(count):
            await self.archive.add_message(ArchivedMessage(
                chat_id=chat_id,
                message_id=index + 1,
                user_id=index % 2 + 10,
                display_name=f"User {index % 2 + 10}",
                text=f"message {index}",
                timestamp=datetime(2024, 5, 1, 12, index, tzinfo=timezone.utc),
            ))

    async def close(self) -> None:
        await self.queue.shutdown()
        await self.archive.close()


@pytest_asyncio.fixture
async def harness(tmp_path):
    archive = MessageArchive(str(tmp_path / "messages.db"))
    await archive.initialize()
    harness = Harness(archive)
    yield harness
    await harness.close()


async def run_admin(harness: Harness, *args, **update_kwargs) -> str:
    update = make_update(**update_kwargs)
    await harness.handlers.admin(update, make_context(*args))
    return update.effective_message.replies[-1]


class TestParseLimit:
    """Tests for parse_limit()."""

    def test_default(self):
        assert parse_limit(None, 50) == 10

    @pytest.mark.parametrize("value", ["0", "51", "many"])
    def test_rejects_out_of_range(self, value):
        with pytest.raises(AdminCommandError):
            parse_limit(value, 50)


class TestAdminGate:
    """Tests for the administrator check."""

    @pytest.mark.asyncio
    async def test_non_admin_is_refused(self, harness):
        for command in ("status", "admin"):
            update = make_update(user_id=STRANGER_ID)
            await getattr(harness.handlers, command)(update, make_context("cache"))

            reply = update.effective_message.replies[0]
            assert reply.startswith("🚫 Access denied")
            assert f"/{command}" in reply
            assert str(STRANGER_ID) in reply

    @pytest.mark.asyncio
    async def test_refuses_everyone_without_configured_admins(self, tmp_path):
        archive = MessageArchive(str(tmp_path / "messages.db"))
        await archive.initialize()
        harness = Harness(archive, admin_user_ids=())
        try:
            assert not harness.handlers.is_admin(ADMIN_ID)

            update = make_update()
            await harness.handlers.status(update, make_context())
            assert update.effective_message.replies[0].startswith("🚫 Access denied")
        finally:
            await harness.close()


class TestStatusCommand:
    """Tests for AdminHandlers.status()."""

    @pytest.mark.asyncio
    async def test_reports_queue_backends_and_cache(self, harness):
        await harness.seed(count=4)
        harness.permissions.mark_send_restricted(GROUP_ID, "bot was kicked")
        await harness.cache.get_cached_summary((GROUP_ID, 4, 0.0))
        harness.clock_now = 2 * 3600 + 5 * 60

        update = make_update()
        await harness.handlers.status(update, make_context())

        reply = update.effective_message.replies[0]
        assert "Uptime: 2h 5m" in reply
        assert "Pending: 0" in reply
        assert "Processing: idle" in reply
        assert "primary: ❌ not configured, 0 calls, 0 failures" in reply
        assert "secondary: ❌ not configured" in reply
        assert "Entries: 0/500" in reply
        assert "Hits: 0, misses: 1" in reply
        assert "Stored messages: 4" in reply
        assert "Participants: 2" in reply
        assert "Sending restricted: bot was kicked" in reply

    @pytest.mark.asyncio
    async def test_private_chat_skips_group_section(self, harness):
        update = make_update(chat_type=ChatType.PRIVATE, chat_id=ADMIN_ID)
        await harness.handlers.status(update, make_context())

        reply = update.effective_message.replies[0]
        assert "Job queue" in reply
        assert "This group" not in reply


class TestAdminCommand:
    """Tests for AdminHandlers.admin() subcommands."""

    @pytest.mark.asyncio
    async def test_help_is_default(self, harness):
        assert await run_admin(harness) == ADMIN_HELP_TEXT
        assert await run_admin(harness, "help") == ADMIN_HELP_TEXT

    @pytest.mark.asyncio
    async def test_unknown_subcommand(self, harness):
        reply = await run_admin(harness, "reboot")
        assert reply.startswith("❌ Unknown subcommand: reboot")

    @pytest.mark.asyncio
    async def test_stats_for_current_and_given_chat(self, harness):
        await harness.seed(count=3)
        await harness.seed(chat_id=OTHER_GROUP_ID, count=5)

        current = await run_admin(harness, "stats")
        assert "Stored messages: 3" in current
        assert "From: 2024-05-01 12:00" in current
        assert "To: 2024-05-01 12:02" in current

        other = await run_admin(harness, "stats", str(OTHER_GROUP_ID))
        assert "Stored messages: 5" in other

    @pytest.mark.asyncio
    async def test_stats_for_empty_chat(self, harness):
        assert await run_admin(harness, "stats") == f"📭 No archived messages for chat {GROUP_ID}."

    @pytest.mark.asyncio
    async def test_private_chat_needs_chat_id(self, harness):
        reply = await run_admin(harness, "stats", chat_type=ChatType.PRIVATE, chat_id=ADMIN_ID)
        assert reply == CHAT_ID_REQUIRED_TEXT

    @pytest.mark.asyncio
    async def test_invalid_chat_id(self, harness):
        assert await run_admin(harness, "stats", "general") == "❌ Invalid chat id: general"

    @pytest.mark.asyncio
    async def test_users(self, harness):
        await harness.seed(count=5)

        reply = await run_admin(harness, "users")
        assert "1. User 10 (10): 3" in reply
        assert "2. User 11 (11): 2" in reply

        limited = await run_admin(harness, "users", "1")
        assert "User 11" not in limited

        rejected = await run_admin(harness, "users", str(GROUP_ID), "99")
        assert rejected == "❌ The limit must be a number between 1 and 50."

    @pytest.mark.asyncio
    async def test_messages(self, harness):
        await harness.seed(count=4)

        reply = await run_admin(harness, "messages", str(GROUP_ID), "2")

        assert reply.startswith(f"💬 Latest 2 messages in chat {GROUP_ID}")
        assert "message 2" in reply
        assert "message 3" in reply
        assert "message 1" not in reply

    @pytest.mark.asyncio
    async def test_cache(self, harness):
        await harness.cache.cache_summary((GROUP_ID, 3, 0.0), SummaryDocument(body="a"))
        await harness.cache.get_cached_summary((GROUP_ID, 3, 0.0))

        reply = await run_admin(harness, "cache")

        assert "Entries: 1/500" in reply
        assert "Hits: 1" in reply
        assert "Hit rate: 100%" in reply

    @pytest.mark.asyncio
    async def test_clear_one_chat(self, harness):
        await harness.cache.cache_summary((GROUP_ID, 3, 0.0), SummaryDocument(body="a"))
        await harness.cache.cache_summary((OTHER_GROUP_ID, 3, 0.0), SummaryDocument(body="b"))
        harness.permissions.mark_send_restricted(GROUP_ID, "kicked")

        reply = await run_admin(harness, "clear", str(GROUP_ID))

        assert "Cleared 1 cached summaries" in reply
        assert await harness.cache.get_cached_summary((GROUP_ID, 3, 0.0)) is None
        assert await harness.cache.get_cached_summary((OTHER_GROUP_ID, 3, 0.0)) is not None
        assert not harness.permissions.is_send_restricted(GROUP_ID)

    @pytest.mark.asyncio
    async def test_clear_everything(self, harness):
        await harness.cache.cache_summary((GROUP_ID, 3, 0.0), SummaryDocument(body="a"))
        await harness.cache.cache_summary((OTHER_GROUP_ID, 3, 0.0), SummaryDocument(body="b"))

        assert await run_admin(harness, "clear") == "🧹 Cleared all cached summaries (2)."
        assert harness.cache.stats()["size"] == 0

    @pytest.mark.asyncio
    async def test_purge(self, harness):
        await harness.seed(count=3)
        await harness.seed(chat_id=OTHER_GROUP_ID, count=2)
        await harness.cache.cache_summary((GROUP_ID, 3, 0.0), SummaryDocument(body="a"))
        harness.permissions.mark_send_restricted(GROUP_ID, "kicked")

        reply = await run_admin(harness, "purge", str(GROUP_ID))

        assert reply == f"🗑 Deleted 3 archived messages and 1 cached summaries for chat {GROUP_ID}."
        assert await harness.archive.get_recent_messages(GROUP_ID) == []
        assert len(await harness.archive.get_recent_messages(OTHER_GROUP_ID)) == 2
        assert not harness.permissions.is_send_restricted(GROUP_ID)

    @pytest.mark.asyncio
    async def test_purge_requires_explicit_chat_id(self, harness):
        await harness.seed(count=2)

        reply = await run_admin(harness, "purge")

        assert reply == "❌ /admin purge needs an explicit chat id."
        assert len(await harness.archive.get_recent_messages(GROUP_ID)) == 2
