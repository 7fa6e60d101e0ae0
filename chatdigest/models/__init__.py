"""
Data models for Chat Digest Bot.
"""

from .base import BaseModel, generate_id, utc_now
from .message import ArchivedMessage, ChatStats, TopParticipant
from .summary import SummaryDocument, TimeRange
from .job import (
    Job, JobStatus, JobPayload, JobFailure, FailureKind,
    JobEvent, JobEventKind
)

__all__ = [
    'BaseModel', 'generate_id', 'utc_now',
    'ArchivedMessage', 'ChatStats', 'TopParticipant',
    'SummaryDocument', 'TimeRange',
    'Job', 'JobStatus', 'JobPayload', 'JobFailure', 'FailureKind',
    'JobEvent', 'JobEventKind',
]
