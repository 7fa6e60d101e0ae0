"""
Summary document models.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from .base import BaseModel
from .message import TopParticipant


@dataclass
class TimeRange(BaseModel):
    """Span of the summarized messages."""
    earliest: Optional[datetime] = None
    latest: Optional[datetime] = None


@dataclass
class SummaryDocument(BaseModel):
    """Normalized summary ready for delivery.

    ``body`` is always non-empty and written in the chat's legacy Markdown
    dialect. The six structured fields are kept alongside so callers can
    inspect what the provider returned.
    """
    body: str
    formatted_summary: str = ""
    main_topics: List[str] = field(default_factory=list)
    discussion_points: List[str] = field(default_factory=list)
    activity_analysis: str = ""
    special_events: str = ""
    other_notes: str = ""
    recovered: bool = False
    recovery_tier: str = "strict"

    # Metadata attached by the summarization workflow
    messages_analyzed: int = 0
    unique_users: int = 0
    time_range: TimeRange = field(default_factory=TimeRange)
    top_participants: List[TopParticipant] = field(default_factory=list)
    usage: Dict[str, Any] = field(default_factory=dict)
    provider: Optional[str] = None
    language: str = "en"
    from_cache: bool = False

    @property
    def has_structured_fields(self) -> bool:
        return bool(
            self.main_topics or self.discussion_points or self.activity_analysis
            or self.special_events or self.other_notes
        )
