"""
Per-user command cooldown.
"""

from typing import Optional

from ..cache import TTLStore
from ..config.constants import COMMAND_COOLDOWN_SECONDS


class CommandThrottle:
    """Limits how often a user may start a summary in a chat."""

    def __init__(self, cooldown_seconds: float = COMMAND_COOLDOWN_SECONDS,
                 store: Optional[TTLStore] = None):
        self.cooldown_seconds = cooldown_seconds
        self._store = store or TTLStore(default_ttl=cooldown_seconds, max_size=10_000)

    @staticmethod
    def _key(chat_id: int, user_id: int) -> tuple:
        return ("summary_cooldown", chat_id, user_id)

    def is_throttled(self, chat_id: int, user_id: int) -> bool:
        if self.cooldown_seconds <= 0:
            return False
        return self._store.contains(self._key(chat_id, user_id))

    def remaining(self, chat_id: int, user_id: int) -> float:
        """Seconds left on the cooldown, 0 when none is active."""
        return self._store.ttl_remaining(self._key(chat_id, user_id))

    def mark(self, chat_id: int, user_id: int) -> None:
        """Start the cooldown. Called only when a job is actually queued."""
        if self.cooldown_seconds > 0:
            self._store.set(self._key(chat_id, user_id), True, ttl=self.cooldown_seconds)

    def reset(self, chat_id: int, user_id: int) -> None:
        self._store.delete(self._key(chat_id, user_id))
