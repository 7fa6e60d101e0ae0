"""
SQLite message archive using aiosqlite.

Group text messages are stored as they arrive so that /summary can read the
most recent ones back. Old rows are pruned per chat by age and count.
"""

import asyncio
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

import aiosqlite

from ..models.message import ArchivedMessage, ChatStats, TopParticipant

logger = logging.getLogger(__name__)

MAX_MESSAGES_PER_CHAT = 2000
MAX_MESSAGE_AGE_SECONDS = 7 * 24 * 60 * 60

SCHEMA = """
CREATE TABLE IF NOT EXISTS messages (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    message_id INTEGER NOT NULL,
    chat_id INTEGER NOT NULL,
    user_id INTEGER NOT NULL,
    username TEXT,
    display_name TEXT NOT NULL,
    text TEXT NOT NULL,
    date INTEGER NOT NULL,
    created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
    UNIQUE(message_id, chat_id)
);
CREATE INDEX IF NOT EXISTS idx_chat_date ON messages(chat_id, date DESC);
"""


def _to_timestamp(value: datetime) -> int:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return int(value.timestamp())


def _from_timestamp(value: Optional[int]) -> Optional[datetime]:
    if value is None:
        return None
    return datetime.fromtimestamp(value, tz=timezone.utc)


class MessageArchive:
    """Persistent store of group chat messages."""

    def __init__(self, db_path: str,
                 max_messages_per_chat: int = MAX_MESSAGES_PER_CHAT,
                 max_message_age: int = MAX_MESSAGE_AGE_SECONDS):
        self.db_path = db_path
        self.max_messages_per_chat = max_messages_per_chat
        self.max_message_age = max_message_age
        self._connection: Optional[aiosqlite.Connection] = None
        self._lock = asyncio.Lock()

    async def initialize(self) -> None:
        """Open the database and create the schema."""
        async with self._lock:
            if self._connection is not None:
                return

            if self.db_path != ":memory:":
                # Ensure database directory exists
                Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)

            conn = await aiosqlite.connect(self.db_path)
            conn.row_factory = aiosqlite.Row
            if self.db_path != ":memory:":
                await conn.execute("PRAGMA journal_mode=WAL")
            await conn.executescript(SCHEMA)
            await conn.commit()
            self._connection = conn

        logger.info(f"Message archive ready at {self.db_path}")

    @property
    def connection(self) -> aiosqlite.Connection:
        if self._connection is None:
            raise RuntimeError("MessageArchive.initialize() has not been called")
        return self._connection

    async def close(self) -> None:
        async with self._lock:
            if self._connection is not None:
                await self._connection.close()
                self._connection = None
                logger.info("Message archive closed")

    async def add_message(self, message: ArchivedMessage) -> bool:
        """Store a message. Returns False if it was already archived."""
        cursor = await self.connection.execute(
            """
            INSERT OR IGNORE INTO messages
            (message_id, chat_id, user_id, username, display_name, text, date)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (
                message.message_id,
                message.chat_id,
                message.user_id,
                message.username,
                message.display_name,
                message.text,
                _to_timestamp(message.timestamp),
            ),
        )
        await self.connection.commit()
        stored = cursor.rowcount > 0
        await cursor.close()
        if stored:
            logger.debug(f"Archived message {message.message_id} from chat {message.chat_id}")
        return stored

    async def get_recent_messages(self, chat_id: int, limit: int = 100) -> List[ArchivedMessage]:
        """Return the newest messages of a chat, oldest first."""
        async with self.connection.execute(
            """
            SELECT message_id, chat_id, user_id, username, display_name, text, date
            FROM messages
            WHERE chat_id = ?
            ORDER BY date DESC, message_id DESC
            LIMIT ?
            """,
            (chat_id, limit),
        ) as cursor:
            rows = await cursor.fetchall()

        messages = [
            ArchivedMessage(
                chat_id=row["chat_id"],
                message_id=row["message_id"],
                user_id=row["user_id"],
                display_name=row["display_name"],
                text=row["text"],
                timestamp=_from_timestamp(row["date"]),
                username=row["username"],
            )
            for row in rows
        ]
        messages.reverse()
        return messages

    async def get_stats(self, chat_id: int) -> ChatStats:
        async with self.connection.execute(
            """
            SELECT
                COUNT(*) AS total_messages,
                COUNT(DISTINCT user_id) AS unique_users,
                MIN(date) AS earliest_message,
                MAX(date) AS latest_message
            FROM messages
            WHERE chat_id = ?
            """,
            (chat_id,),
        ) as cursor:
            row = await cursor.fetchone()

        return ChatStats(
            total_messages=row["total_messages"] or 0,
            unique_users=row["unique_users"] or 0,
            earliest_message=_from_timestamp(row["earliest_message"]),
            latest_message=_from_timestamp(row["latest_message"]),
        )

    async def get_top_participants(self, chat_id: int, limit: int = 10) -> List[TopParticipant]:
        """Most active users of a chat, labelled with their latest display name."""
        async with self.connection.execute(
            """
            SELECT
                m.user_id,
                COUNT(*) AS message_count,
                (SELECT display_name FROM messages
                 WHERE chat_id = m.chat_id AND user_id = m.user_id
                 ORDER BY date DESC LIMIT 1) AS display_name,
                (SELECT username FROM messages
                 WHERE chat_id = m.chat_id AND user_id = m.user_id
                 ORDER BY date DESC LIMIT 1) AS username
            FROM messages m
            WHERE m.chat_id = ?
            GROUP BY m.user_id
            ORDER BY message_count DESC, m.user_id ASC
            LIMIT ?
            """,
            (chat_id, limit),
        ) as cursor:
            rows = await cursor.fetchall()

        return [
            TopParticipant(
                user_id=row["user_id"],
                display_name=row["display_name"],
                message_count=row["message_count"],
                username=row["username"],
            )
            for row in rows
        ]

    async def delete_chat_messages(self, chat_id: int) -> int:
        """Remove every archived message of a chat."""
        cursor = await self.connection.execute("DELETE FROM messages WHERE chat_id = ?", (chat_id,))
        await self.connection.commit()
        deleted = cursor.rowcount
        await cursor.close()
        logger.info(f"Deleted {deleted} archived messages for chat {chat_id}")
        return deleted

    async def prune(self, now: Optional[datetime] = None) -> int:
        """Drop messages older than the age limit and beyond the per-chat cap."""
        now = now or datetime.now(timezone.utc)
        cutoff = _to_timestamp(now) - self.max_message_age

        cursor = await self.connection.execute("DELETE FROM messages WHERE date < ?", (cutoff,))
        removed = cursor.rowcount
        await cursor.close()

        cursor = await self.connection.execute(
            """
            DELETE FROM messages WHERE id IN (
                SELECT id FROM (
                    SELECT id, ROW_NUMBER() OVER (
                        PARTITION BY chat_id ORDER BY date DESC, message_id DESC
                    ) AS position
                    FROM messages
                ) WHERE position > ?
            )
            """,
            (self.max_messages_per_chat,),
        )
        removed += cursor.rowcount
        await cursor.close()
        await self.connection.commit()

        if removed:
            logger.info(f"Pruned {removed} archived messages")
        return removed
