"""
Single-consumer FIFO queue for summarization jobs.
"""

import asyncio
import logging
from collections import deque
from typing import Any, AsyncIterator, Awaitable, Callable, Deque, Dict, Optional

from ..cache import SummaryResultCache, TTLStore
from ..config.constants import JOB_RETENTION_SECONDS
from ..models.job import Job, JobEvent, JobEventKind, JobPayload
from ..models.summary import SummaryDocument
from .failures import classify_failure

logger = logging.getLogger(__name__)

Workflow = Callable[[JobPayload], Awaitable[SummaryDocument]]


class JobQueue:
    """Processes jobs strictly one at a time in submission order.

    ``enqueue`` never blocks: it appends the job and starts the drain task
    if none is running. Every job produces a ``STARTED`` event followed by
    exactly one ``COMPLETED`` or ``FAILED`` event on the event channel.
    Job records stay queryable for the retention window.
    """

    def __init__(self,
                 workflow: Workflow,
                 result_store: Optional[TTLStore] = None,
                 result_cache: Optional[SummaryResultCache] = None,
                 retention_seconds: float = JOB_RETENTION_SECONDS):
        """Initialize the queue.

        Args:
            workflow: Coroutine function producing a document for a payload
            result_store: Store for job records (retention window applies)
            result_cache: Cache that receives completed documents by fingerprint
            retention_seconds: How long finished job records are kept
        """
        self.workflow = workflow
        self.retention_seconds = retention_seconds
        self.result_cache = result_cache
        self._jobs = result_store or TTLStore(default_ttl=retention_seconds, max_size=10_000)
        self._pending: Deque[Job] = deque()
        self._events: "asyncio.Queue[JobEvent]" = asyncio.Queue()
        self._current: Optional[Job] = None
        self._drain_task: Optional[asyncio.Task] = None
        self._idle = asyncio.Event()
        self._idle.set()
        self._consumer_claimed = False

    def enqueue(self, payload: JobPayload) -> str:
        """Add a job and return its id."""
        job = Job(payload=payload)
        self._pending.append(job)
        self._jobs.set(job.id, job, ttl=self.retention_seconds)
        self._jobs.purge_expired()
        self._idle.clear()

        logger.info(
            f"Enqueued job {job.id} for chat {payload.chat_id} "
            f"({len(payload.messages)} messages, queue length {len(self._pending)})"
        )

        if self._drain_task is None or self._drain_task.done():
            self._drain_task = asyncio.get_running_loop().create_task(self._drain())
        return job.id

    async def _drain(self) -> None:
        try:
            while self._pending:
                job = self._pending.popleft()
                await self._process(job)
        finally:
            self._current = None
            if not self._pending:
                self._idle.set()

    async def _process(self, job: Job) -> None:
        self._current = job
        job.mark_processing()
        self._emit(JobEventKind.STARTED, job)
        logger.info(f"Processing job {job.id} for chat {job.chat_id}")

        try:
            document = await self.workflow(job.payload)
        except Exception as e:
            failure = classify_failure(e)
            job.mark_failed(failure)
            logger.error(f"Job {job.id} failed ({failure.kind.value}): {e}")
            self._emit(JobEventKind.FAILED, job)
        else:
            job.mark_completed(document)
            if self.result_cache is not None:
                try:
                    await self.result_cache.cache_summary(job.payload.fingerprint, document)
                except Exception as e:
                    logger.warning(f"Could not cache result of job {job.id}: {e}")
            duration = (job.completed_at - job.started_at).total_seconds()
            logger.info(f"Job {job.id} completed in {duration:.2f}s")
            self._emit(JobEventKind.COMPLETED, job)
        finally:
            # Refresh retention from completion time
            self._jobs.set(job.id, job, ttl=self.retention_seconds)
            self._current = None

    def _emit(self, kind: JobEventKind, job: Job) -> None:
        self._events.put_nowait(JobEvent.for_job(kind, job))

    async def events(self) -> AsyncIterator[JobEvent]:
        """Yield lifecycle events. Only one consumer may ever attach."""
        if self._consumer_claimed:
            raise RuntimeError("JobQueue events already have a consumer")
        self._consumer_claimed = True
        while True:
            yield await self._events.get()

    async def join(self) -> None:
        """Wait until no job is queued or running."""
        await self._idle.wait()

    def get_job(self, job_id: str) -> Optional[Job]:
        """Look up a job record; None once the retention window has passed."""
        return self._jobs.get(job_id)

    def has_pending(self, chat_id: int) -> bool:
        """True if the chat has a queued or running job."""
        if self._current is not None and self._current.chat_id == chat_id:
            return True
        return any(job.chat_id == chat_id for job in self._pending)

    @property
    def queue_length(self) -> int:
        return len(self._pending)

    @property
    def is_processing(self) -> bool:
        return self._current is not None

    def get_status(self) -> Dict[str, Any]:
        current = None
        if self._current is not None:
            current = {
                "id": self._current.id,
                "chat_id": self._current.chat_id,
                "status": self._current.status.value,
                "started_at": self._current.started_at.isoformat() if self._current.started_at else None,
            }
        return {
            "queue_length": len(self._pending),
            "is_processing": self.is_processing,
            "current_job": current,
            "retained_jobs": len(self._jobs),
        }

    async def shutdown(self) -> None:
        """Cancel the drain task. Pending jobs are dropped."""
        if self._drain_task is not None and not self._drain_task.done():
            self._drain_task.cancel()
            try:
                await self._drain_task
            except asyncio.CancelledError:
                pass
        dropped = len(self._pending)
        self._pending.clear()
        self._idle.set()
        if dropped:
            logger.warning(f"Job queue shut down with {dropped} pending jobs dropped")
