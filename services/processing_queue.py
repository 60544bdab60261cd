# services/processing_queue.py
"""Simple in-memory ingestion queue with retry bookkeeping and size limit"""
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Awaitable, Callable, Dict, Optional
from uuid import uuid4

from config import settings
from core.domain import IngestMetadata, IngestResult, ProcessingStatus
from core.interfaces import IDocumentRepository

logger = logging.getLogger(settings.LOGGER_NAME)

IngestCallable = Callable[[str, str, IngestMetadata], Awaitable[IngestResult]]


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class QueueJob:
    id: str
    document_id: str
    raw_text: str
    metadata: IngestMetadata
    status: ProcessingStatus = ProcessingStatus.PENDING
    attempts: int = 0
    max_attempts: int = settings.QUEUE_MAX_ATTEMPTS
    error: Optional[str] = None
    chunks_created: int = 0
    created_at: datetime = field(default_factory=_now)
    updated_at: datetime = field(default_factory=_now)

    @property
    def finished(self) -> bool:
        return self.status in (ProcessingStatus.COMPLETED, ProcessingStatus.FAILED)


class ProcessingQueue:
    """
    One job per document, processed one at a time, oldest first.

    Usage: add_job() → process_next() (from a worker loop). A failed attempt goes
    back to pending until max_attempts is reached; retry_failed() re-queues the rest.
    Lost on restart. Finished jobs beyond MAX_ENTRIES are evicted oldest-first.
    """
    MAX_ENTRIES = 500

    def __init__(
        self,
        ingest: IngestCallable,
        document_repo: Optional[IDocumentRepository] = None,
        max_attempts: int = settings.QUEUE_MAX_ATTEMPTS
    ):
        self._ingest = ingest
        self._document_repo = document_repo
        self.max_attempts = max_attempts
        self._jobs: Dict[str, QueueJob] = {}  # document_id -> job, insertion ordered
        self._is_processing = False

    async def add_job(self, document_id: str, raw_text: str, metadata: IngestMetadata) -> str:
        """Queue a document. Returns the existing job id if the document is already queued."""
        existing = self._jobs.get(document_id)
        if existing:
            logger.info(f"[QUEUE] Job already exists for {document_id}")
            return existing.id

        self._cleanup_if_full()
        job = QueueJob(
            id=uuid4().hex,
            document_id=document_id,
            raw_text=raw_text,
            metadata=metadata,
            max_attempts=self.max_attempts
        )
        self._jobs[document_id] = job

        if self._document_repo is not None:
            try:
                await self._document_repo.update_status(document_id, ProcessingStatus.QUEUED)
            except Exception as e:
                logger.warning(f"[QUEUE] Could not mark {document_id} as queued: {e}")

        logger.info(f"[QUEUE] Added job {job.id} for {document_id}")
        return job.id

    async def process_next(self) -> Optional[QueueJob]:
        """
        Run the oldest pending job.

        Returns None when nothing is pending or another call is already running.
        """
        if self._is_processing:
            logger.debug("[QUEUE] Already processing a job, skipping")
            return None

        job = next((j for j in self._jobs.values() if j.status == ProcessingStatus.PENDING), None)
        if job is None:
            return None

        self._is_processing = True
        try:
            job.status = ProcessingStatus.PROCESSING
            job.attempts += 1
            job.updated_at = _now()
            logger.info(f"[QUEUE] Processing job {job.id} for {job.document_id} (attempt {job.attempts}/{job.max_attempts})")

            try:
                result = await self._ingest(job.document_id, job.raw_text, job.metadata)
            except Exception as e:
                logger.exception(f"[QUEUE] Job {job.id} raised")
                self._mark_failed(job, str(e) or type(e).__name__)
                return job

            if result.success:
                job.status = ProcessingStatus.COMPLETED
                job.chunks_created = result.chunks_created
                job.error = None
                job.updated_at = _now()
                logger.info(f"[QUEUE] Job {job.id} completed: {result.chunks_created} chunk(s)")
            else:
                self._mark_failed(job, result.error or "Unknown error occurred")
            return job
        finally:
            self._is_processing = False

    def retry_failed(self) -> int:
        """
        Re-queue jobs that used up their attempts, each with a fresh attempt budget.

        Failures below the cap are retried by process_next() on its own. Returns how many.
        """
        retried = 0
        for job in self._jobs.values():
            if job.status == ProcessingStatus.FAILED:
                job.status = ProcessingStatus.PENDING
                job.attempts = 0
                job.updated_at = _now()
                retried += 1
        if retried:
            logger.info(f"[QUEUE] Re-queued {retried} failed job(s)")
        return retried

    def get_job(self, document_id: str) -> Optional[QueueJob]:
        return self._jobs.get(document_id)

    def get_stats(self) -> Dict[str, int]:
        stats = {status.value: 0 for status in (
            ProcessingStatus.PENDING, ProcessingStatus.PROCESSING,
            ProcessingStatus.COMPLETED, ProcessingStatus.FAILED
        )}
        for job in self._jobs.values():
            stats[job.status.value] += 1
        stats["total"] = len(self._jobs)
        return stats

    def _mark_failed(self, job: QueueJob, error: str) -> None:
        """Back to pending while attempts remain; failed only once the cap is reached."""
        job.error = error
        job.updated_at = _now()
        if job.attempts < job.max_attempts:
            job.status = ProcessingStatus.PENDING
            logger.warning(
                f"[QUEUE] Job {job.id} attempt {job.attempts}/{job.max_attempts} failed, "
                f"will retry: {error}"
            )
            return
        job.status = ProcessingStatus.FAILED
        logger.error(f"[QUEUE] Job {job.id} failed after {job.attempts} attempt(s): {error}")

    def _cleanup_if_full(self) -> None:
        """Evict the oldest finished jobs once the table reaches MAX_ENTRIES."""
        overflow = len(self._jobs) - self.MAX_ENTRIES + 1
        if overflow <= 0:
            return
        finished = [doc_id for doc_id, job in self._jobs.items() if job.finished]
        for doc_id in finished[:overflow]:
            del self._jobs[doc_id]
