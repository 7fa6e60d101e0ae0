"""
Archived chat message models.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from .base import BaseModel


@dataclass
class ArchivedMessage(BaseModel):
    """A text message read back from the archive."""
    chat_id: int
    message_id: int
    user_id: int
    display_name: str
    text: str
    timestamp: datetime
    username: Optional[str] = None


@dataclass
class ChatStats(BaseModel):
    """Aggregate statistics for a chat's archive."""
    total_messages: int = 0
    unique_users: int = 0
    earliest_message: Optional[datetime] = None
    latest_message: Optional[datetime] = None

    @property
    def is_empty(self) -> bool:
        return self.total_messages == 0


@dataclass
class TopParticipant(BaseModel):
    """A user ranked by message count."""
    user_id: int
    display_name: str
    message_count: int
    username: Optional[str] = None
