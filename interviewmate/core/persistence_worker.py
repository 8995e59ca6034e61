"""Background persistence of completed AI turns.

Streams hand finished replies to this worker instead of writing them inside
the response lifecycle. Each job appends the AI turn to the transcript,
invalidates the cached window and creates the chat message record. Steps
that already succeeded are not repeated on retry, and jobs that exhaust
their retries are kept in a dead-letter list.

Once both writes land, the exchange is also indexed into the conversation
namespace of the semantic index so later turns can retrieve it. Indexing is
best-effort and never retried.
"""

import asyncio
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from interviewmate.core.conversation import ConversationKey, format_ai_line, format_user_line
from interviewmate.core.errors import PersistenceError
from interviewmate.core.logging import get_logger
from interviewmate.core.semantic_index import SemanticIndex
from interviewmate.core.transcript_store import TranscriptStore
from interviewmate.core.window_cache import WindowCache, WindowCacheKey

logger = get_logger(__name__)

# Configuration
MAX_RETRIES = 3
RETRY_DELAY = 0.5  # seconds

AI_ROLE = "assistant"

RecordWriter = Callable[..., dict[str, Any]]


@dataclass
class PersistenceJob:
    """One completed AI reply waiting to be written."""

    key: ConversationKey
    content: str
    user_id: str
    interview_mate_id: str
    prompt: str = ""
    attempts: int = 0
    transcript_entry_id: str | None = None
    record_id: str | None = None
    last_error: str | None = None
    indexed: bool = False

    @property
    def done(self) -> bool:
        return self.transcript_entry_id is not None and self.record_id is not None


def _default_record_writer(**fields: Any) -> dict[str, Any]:
    from interviewmate.db.messages import create_message

    return create_message(**fields)


class PersistenceWorker:
    """Queue-backed writer for AI turns with retry and dead-lettering."""

    def __init__(
        self,
        transcript_store: TranscriptStore,
        window_cache: WindowCache,
        record_writer: RecordWriter = _default_record_writer,
        max_retries: int = MAX_RETRIES,
        retry_delay: float = RETRY_DELAY,
        semantic_index: SemanticIndex | None = None,
    ):
        """Initialize the worker.

        Args:
            transcript_store: Store receiving the "AI: ..." line
            window_cache: Cache invalidated after the transcript write
            record_writer: Sync function creating the chat message record
            max_retries: Retries before a job is dead-lettered
            retry_delay: Base delay between retries, multiplied by attempt
            semantic_index: Index receiving completed exchanges, if enabled
        """
        self._transcript = transcript_store
        self._cache = window_cache
        self._write_record = record_writer
        self._semantic = semantic_index
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.dead_letters: list[PersistenceJob] = []
        self._queue: asyncio.Queue[PersistenceJob] | None = None
        self._task: asyncio.Task | None = None
        self._persisted_count = 0
        self._error_count = 0
        self._start_time: float | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def stats(self) -> dict[str, Any]:
        """Get worker statistics."""
        uptime = time.time() - self._start_time if self._start_time else 0
        return {
            "running": self.running,
            "pending": self._queue.qsize() if self._queue else 0,
            "persisted_count": self._persisted_count,
            "error_count": self._error_count,
            "dead_letters": len(self.dead_letters),
            "uptime_seconds": round(uptime, 1),
        }

    def start(self) -> None:
        """Start the background task on the running loop."""
        if self.running:
            return
        if self._queue is None:
            self._queue = asyncio.Queue()
        self._start_time = time.time()
        self._task = asyncio.create_task(self._run(), name="persistence-worker")
        logger.info("Persistence worker started")

    async def stop(self) -> None:
        """Flush queued jobs, then stop the background task."""
        await self.drain()
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info(f"Persistence worker stopped: {self.stats}")

    async def enqueue(self, job: PersistenceJob) -> None:
        """Queue a job without waiting for it to be written."""
        if not self.running:
            self.start()
        self._queue.put_nowait(job)

    async def drain(self) -> None:
        """Wait until every queued job has been processed."""
        if self._queue is not None and self.running:
            await self._queue.join()

    async def _run(self) -> None:
        while True:
            job = await self._queue.get()
            try:
                await self.process(job)
            finally:
                self._queue.task_done()

    async def process(self, job: PersistenceJob) -> bool:
        """
        Write one job, retrying failed steps.

        Returns:
            True when every step succeeded, False when dead-lettered
        """
        while True:
            try:
                await self._persist(job)
                self._persisted_count += 1
                return True
            except PersistenceError as e:
                job.attempts += 1
                job.last_error = str(e)

                if job.attempts > self.max_retries:
                    self._error_count += 1
                    self.dead_letters.append(job)
                    logger.error(
                        f"Dead-lettered AI turn for {job.key.storage_key()} "
                        f"after {job.attempts} attempts: {e}"
                    )
                    return False

                logger.warning(
                    f"Persisting AI turn for {job.key.storage_key()} failed "
                    f"(attempt {job.attempts}/{self.max_retries}), retrying: {e}"
                )
                await asyncio.sleep(self.retry_delay * job.attempts)

    async def _persist(self, job: PersistenceJob) -> None:
        if job.transcript_entry_id is None:
            try:
                job.transcript_entry_id = await self._transcript.append(
                    job.key, format_ai_line(job.content)
                )
            except Exception as e:
                raise PersistenceError(f"transcript append failed: {e}") from e
            self._cache.invalidate(WindowCacheKey(job.key.conversation_id, job.key.user_id))

        if job.record_id is None:
            try:
                record = await asyncio.to_thread(
                    self._write_record,
                    content=job.content,
                    role=AI_ROLE,
                    user_id=job.user_id,
                    interview_mate_id=job.interview_mate_id,
                    model_name=job.key.model_name,
                    transcript_entry_id=job.transcript_entry_id or None,
                )
            except Exception as e:
                raise PersistenceError(f"message record insert failed: {e}") from e
            job.record_id = str(record.get("id", ""))

        if not job.indexed and job.prompt and job.transcript_entry_id:
            await self._index_exchange(job)

    async def _index_exchange(self, job: PersistenceJob) -> None:
        if self._semantic is None or not self._semantic.enabled:
            return
        job.indexed = True
        text = format_user_line(job.prompt) + format_ai_line(job.content)
        await self._semantic.upsert(
            record_id=job.transcript_entry_id,
            text=text.rstrip("\n"),
            namespace=job.key.conversation_id,
            metadata={"user_id": job.user_id, "model_name": job.key.model_name},
        )
