"""
Tests for the SQLite message archive.
"""

from datetime import datetime, timedelta, timezone

import pytest

from chatdigest.models import ArchivedMessage
from chatdigest.storage import MessageArchive


NOW = datetime(2024, 5, 8, 12, 0, tzinfo=timezone.utc)
CHAT_ID = -1001


def make_message(message_id: int, user_id: int = 1, chat_id: int = CHAT_ID,
                 minutes_ago: int = 0, name: str = "Alice", text: str = "hi") -> ArchivedMessage:
    return ArchivedMessage(
        chat_id=chat_id,
        message_id=message_id,
        user_id=user_id,
        display_name=name,
        text=text,
        timestamp=NOW - timedelta(minutes=minutes_ago),
        username=name.lower(),
    )


async def open_archive(tmp_path, **kwargs) -> MessageArchive:
    archive = MessageArchive(str(tmp_path / "data" / "messages.db"), **kwargs)
    await archive.initialize()
    return archive


class TestMessageArchive:
    """Tests for MessageArchive."""

    @pytest.mark.asyncio
    async def test_creates_database_directory(self, tmp_path):
        archive = await open_archive(tmp_path)
        try:
            assert (tmp_path / "data" / "messages.db").exists()
        finally:
            await archive.close()

    @pytest.mark.asyncio
    async def test_recent_messages_oldest_first(self, tmp_path):
        archive = await open_archive(tmp_path)
        try:
            for message_id, minutes_ago in ((1, 30), (2, 20), (3, 10), (4, 0)):
                await archive.add_message(make_message(message_id, minutes_ago=minutes_ago, text=f"m{message_id}"))

            messages = await archive.get_recent_messages(CHAT_ID, limit=3)

            assert [m.text for m in messages] == ["m2", "m3", "m4"]
            assert messages[-1].timestamp == NOW
            assert messages[-1].timestamp.tzinfo is not None
            assert messages[0].username == "alice"
        finally:
            await archive.close()

    @pytest.mark.asyncio
    async def test_duplicate_message_is_ignored(self, tmp_path):
        archive = await open_archive(tmp_path)
        try:
            assert await archive.add_message(make_message(1, text="first")) is True
            assert await archive.add_message(make_message(1, text="again")) is False

            messages = await archive.get_recent_messages(CHAT_ID)
            assert [m.text for m in messages] == ["first"]
        finally:
            await archive.close()

    @pytest.mark.asyncio
    async def test_same_message_id_in_other_chat(self, tmp_path):
        archive = await open_archive(tmp_path)
        try:
            assert await archive.add_message(make_message(1, chat_id=1))
            assert await archive.add_message(make_message(1, chat_id=2))
        finally:
            await archive.close()

    @pytest.mark.asyncio
    async def test_stats(self, tmp_path):
        archive = await open_archive(tmp_path)
        try:
            await archive.add_message(make_message(1, user_id=1, minutes_ago=60))
            await archive.add_message(make_message(2, user_id=2, minutes_ago=30))
            await archive.add_message(make_message(3, user_id=1, minutes_ago=0))
            await archive.add_message(make_message(4, user_id=3, chat_id=999))

            stats = await archive.get_stats(CHAT_ID)

            assert stats.total_messages == 3
            assert stats.unique_users == 2
            assert stats.earliest_message == NOW - timedelta(minutes=60)
            assert stats.latest_message == NOW
        finally:
            await archive.close()

    @pytest.mark.asyncio
    async def test_stats_for_empty_chat(self, tmp_path):
        archive = await open_archive(tmp_path)
        try:
            stats = await archive.get_stats(CHAT_ID)

            assert stats.total_messages == 0
            assert stats.is_empty
            assert stats.earliest_message is None
        finally:
            await archive.close()

    @pytest.mark.asyncio
    async def test_top_participants(self, tmp_path):
        archive = await open_archive(tmp_path)
        try:
            await archive.add_message(make_message(1, user_id=2, name="Bob", minutes_ago=50))
            await archive.add_message(make_message(2, user_id=1, name="Alice", minutes_ago=40))
            await archive.add_message(make_message(3, user_id=2, name="Bob", minutes_ago=30))
            await archive.add_message(make_message(4, user_id=1, name="Alice B.", minutes_ago=20))
            await archive.add_message(make_message(5, user_id=2, name="Bobby", minutes_ago=10))
            await archive.add_message(make_message(6, user_id=3, name="Carol", minutes_ago=0))

            top = await archive.get_top_participants(CHAT_ID, limit=2)

            assert [(p.user_id, p.message_count) for p in top] == [(2, 3), (1, 2)]
            assert top[0].display_name == "Bobby"
            assert top[1].display_name == "Alice B."
        finally:
            await archive.close()

    @pytest.mark.asyncio
    async def test_prune_by_age(self, tmp_path):
        archive = await open_archive(tmp_path, max_message_age=3600)
        try:
            await archive.add_message(make_message(1, minutes_ago=120))
            await archive.add_message(make_message(2, minutes_ago=10))

            removed = await archive.prune(now=NOW)

            assert removed == 1
            assert [m.message_id for m in await archive.get_recent_messages(CHAT_ID)] == [2]
        finally:
            await archive.close()

    @pytest.mark.asyncio
    async def test_prune_by_count_per_chat(self, tmp_path):
        archive = await open_archive(tmp_path, max_messages_per_chat=2)
        try:
            for message_id in range(1, 5):
                await archive.add_message(make_message(message_id, minutes_ago=10 - message_id))
            await archive.add_message(make_message(1, chat_id=7))

            removed = await archive.prune(now=NOW)

            assert removed == 2
            assert [m.message_id for m in await archive.get_recent_messages(CHAT_ID)] == [3, 4]
            assert len(await archive.get_recent_messages(7)) == 1
        finally:
            await archive.close()

    @pytest.mark.asyncio
    async def test_delete_chat_messages(self, tmp_path):
        archive = await open_archive(tmp_path)
        try:
            await archive.add_message(make_message(1))
            await archive.add_message(make_message(2))

            assert await archive.delete_chat_messages(CHAT_ID) == 2
            assert await archive.get_recent_messages(CHAT_ID) == []
        finally:
            await archive.close()

    @pytest.mark.asyncio
    async def test_requires_initialize(self, tmp_path):
        archive = MessageArchive(str(tmp_path / "messages.db"))

        with pytest.raises(RuntimeError):
            await archive.get_stats(CHAT_ID)
