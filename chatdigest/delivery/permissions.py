"""
Tracking of chats where the bot may not post.
"""

import logging
from typing import Optional

from ..cache import TTLStore
from ..config.constants import SEND_RESTRICTION_TTL

logger = logging.getLogger(__name__)

KEY_PREFIX = "chat_send_restricted"


class ChatPermissionService:
    """Remembers send-restricted chats for a limited time."""

    def __init__(self, store: Optional[TTLStore] = None, ttl: float = SEND_RESTRICTION_TTL):
        self.ttl = ttl
        self._store = store or TTLStore(default_ttl=ttl)

    def mark_send_restricted(self, chat_id: int, reason: str = "", ttl: Optional[float] = None) -> None:
        ttl = self.ttl if ttl is None else ttl
        self._store.set(f"{KEY_PREFIX}:{chat_id}", {"reason": reason}, ttl=ttl)
        logger.warning(f"Chat {chat_id} marked send-restricted for {ttl:.0f}s: {reason}")

    def is_send_restricted(self, chat_id: int) -> bool:
        return self._store.contains(f"{KEY_PREFIX}:{chat_id}")

    def restriction_reason(self, chat_id: int) -> Optional[str]:
        entry = self._store.get(f"{KEY_PREFIX}:{chat_id}")
        return entry["reason"] if entry else None

    def clear(self, chat_id: int) -> None:
        if self._store.delete(f"{KEY_PREFIX}:{chat_id}"):
            logger.info(f"Send restriction cleared for chat {chat_id}")
