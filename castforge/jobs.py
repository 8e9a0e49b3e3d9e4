"""
Job Runner
Accepts episode production requests, acknowledges them immediately and runs
them in the background with bounded concurrency.
"""

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Optional

from .errors import JobQueueFullError, SessionBusyError
from .models import EpisodeResult, default_session_id
from .pipeline import EpisodeProducer
from .utils.validation import validate_session_id

logger = logging.getLogger(__name__)


class JobStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class Job:
    job_id: str
    session_id: str
    status: JobStatus = JobStatus.PENDING
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    error: Optional[str] = None
    result: Optional[EpisodeResult] = None
    task: Optional[asyncio.Task] = field(default=None, repr=False)

    @property
    def active(self) -> bool:
        return self.status in (JobStatus.PENDING, JobStatus.RUNNING)

    def to_dict(self) -> dict:
        return {
            "job_id": self.job_id,
            "session_id": self.session_id,
            "status": self.status.value,
            "created_at": self.created_at.isoformat(),
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "error": self.error,
            "result": self.result.model_dump() if self.result else None,
        }


class JobRunner:
    def __init__(self, producer: EpisodeProducer, max_concurrent: int = 1, max_pending: int = 8):
        self.producer = producer
        self.max_concurrent = max_concurrent
        self.max_pending = max_pending
        self._semaphore = asyncio.Semaphore(max_concurrent)
        self._jobs: Dict[str, Job] = {}

    @classmethod
    def from_settings(cls, producer: EpisodeProducer, settings) -> "JobRunner":
        return cls(producer, settings.max_concurrent_jobs, settings.max_pending_jobs)

    def active_jobs(self) -> List[Job]:
        return [job for job in self._jobs.values() if job.active]

    def submit(self, transcript: str, session_id: Optional[str] = None) -> Job:
        """
        Queue a production job and return at once.

        Raises:
            SessionBusyError: The session already has a pending or running job
            JobQueueFullError: Too many jobs are waiting
        """
        session_id = validate_session_id(session_id or default_session_id())
        active = self.active_jobs()

        if any(job.session_id == session_id for job in active):
            raise SessionBusyError(f"Session {session_id} already has an active job")
        if len(active) >= self.max_concurrent + self.max_pending:
            raise JobQueueFullError(
                f"Job queue full ({len(active)} active, limit {self.max_concurrent + self.max_pending})"
            )

        job = Job(job_id=f"job-{uuid.uuid4().hex[:8]}", session_id=session_id)
        self._jobs[job.job_id] = job
        job.task = asyncio.create_task(self._run(job, transcript), name=job.job_id)
        logger.info(f"Job {job.job_id} queued for session {session_id}")
        return job

    async def _run(self, job: Job, transcript: str) -> None:
        async with self._semaphore:
            job.status = JobStatus.RUNNING
            job.started_at = datetime.now(timezone.utc)
            logger.info(f"Job {job.job_id} started")
            try:
                job.result = await self.producer.produce(transcript, job.session_id)
                job.status = JobStatus.COMPLETED
                logger.info(f"Job {job.job_id} completed: {job.result.podcast_url}")
            except Exception as e:
                job.status = JobStatus.FAILED
                job.error = str(e) or repr(e)
                logger.error(f"Job {job.job_id} failed: {job.error}", exc_info=True)
            finally:
                job.finished_at = datetime.now(timezone.utc)

    def get_job(self, job_id: str) -> Optional[Job]:
        return self._jobs.get(job_id)

    def get_job_status(self, job_id: str) -> Optional[dict]:
        job = self._jobs.get(job_id)
        return job.to_dict() if job else None

    async def wait(self, job_id: str) -> Job:
        """Wait for a job to finish and return it."""
        job = self._jobs[job_id]
        if job.task is not None:
            await asyncio.shield(job.task)
        return job

    async def shutdown(self) -> None:
        """Cancel outstanding jobs."""
        tasks = [job.task for job in self._jobs.values() if job.task and not job.task.done()]
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        for job in self._jobs.values():
            if job.active:
                job.status = JobStatus.FAILED
                job.error = "cancelled"
