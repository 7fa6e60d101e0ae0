"""
Summarization job models.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from .base import BaseModel, generate_id, utc_now
from .message import ArchivedMessage, ChatStats, TopParticipant
from .summary import SummaryDocument


class JobStatus(Enum):
    """Lifecycle of a job: queued -> processing -> completed | failed."""
    QUEUED = "queued"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class FailureKind(Enum):
    """Classification of a failed job, used to pick the user notice."""
    PROVIDER = "provider"
    MESSAGE_TOO_LONG = "message_too_long"
    CONTENT_POLICY = "content_policy"
    NETWORK = "network"
    UNKNOWN = "unknown"


class JobEventKind(Enum):
    STARTED = "started"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class JobPayload(BaseModel):
    """Everything the workflow needs to summarize one request."""
    chat_id: int
    requester_id: int
    anchor_message_id: int
    messages: List[ArchivedMessage]
    requested_count: int
    stats: Optional[ChatStats] = None
    top_participants: List[TopParticipant] = field(default_factory=list)

    @property
    def latest_message_at(self) -> Optional[datetime]:
        if self.stats and self.stats.latest_message:
            return self.stats.latest_message
        if self.messages:
            return self.messages[-1].timestamp
        return None

    @property
    def fingerprint(self) -> Tuple[int, int, Optional[float]]:
        """Result cache key: (chat, requested count, newest message time)."""
        latest = self.latest_message_at
        return (self.chat_id, self.requested_count, latest.timestamp() if latest else None)


@dataclass
class JobFailure(BaseModel):
    """A classified job failure."""
    kind: FailureKind
    message: str
    details: Dict[str, Any] = field(default_factory=dict)


@dataclass
class Job(BaseModel):
    """A queued summarization request."""
    payload: JobPayload
    id: str = field(default_factory=lambda: generate_id("job"))
    status: JobStatus = JobStatus.QUEUED
    created_at: datetime = field(default_factory=utc_now)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    result: Optional[SummaryDocument] = None
    failure: Optional[JobFailure] = None

    @property
    def chat_id(self) -> int:
        return self.payload.chat_id

    def mark_processing(self) -> None:
        self.status = JobStatus.PROCESSING
        self.started_at = utc_now()

    def mark_completed(self, document: SummaryDocument) -> None:
        self.status = JobStatus.COMPLETED
        self.result = document
        self.completed_at = utc_now()

    def mark_failed(self, failure: JobFailure) -> None:
        self.status = JobStatus.FAILED
        self.failure = failure
        self.completed_at = utc_now()


@dataclass(frozen=True)
class JobEvent:
    """Lifecycle notification delivered to the single event consumer."""
    kind: JobEventKind
    job_id: str
    chat_id: int
    requester_id: int
    anchor_message_id: int
    requested_count: int
    document: Optional[SummaryDocument] = None
    failure: Optional[JobFailure] = None

    @classmethod
    def for_job(cls, kind: JobEventKind, job: Job) -> "JobEvent":
        payload = job.payload
        return cls(
            kind=kind,
            job_id=job.id,
            chat_id=payload.chat_id,
            requester_id=payload.requester_id,
            anchor_message_id=payload.anchor_message_id,
            requested_count=payload.requested_count,
            document=job.result if kind is JobEventKind.COMPLETED else None,
            failure=job.failure if kind is JobEventKind.FAILED else None,
        )
