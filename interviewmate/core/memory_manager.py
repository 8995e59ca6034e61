"""Conversation memory service: transcript, semantic index, read cache and persistence.

One MemoryManager is built per application (see interviewmate.main) and
handed to routes through ``get_memory_manager``. Its backends are created
lazily on first use, exactly once.
"""

import asyncio
import random
from typing import Any

from fastapi import Request

from interviewmate.core.config import Settings, get_settings
from interviewmate.core.conversation import (
    ChatTurn,
    ConversationKey,
    SimilarityMatch,
    entries_to_turns,
    format_user_line,
)
from interviewmate.core.logging import get_logger
from interviewmate.core.persistence_worker import PersistenceJob, PersistenceWorker
from interviewmate.core.rate_limiter import SlidingWindowRateLimiter
from interviewmate.core.semantic_index import SemanticIndex
from interviewmate.core.transcript_store import TranscriptStore
from interviewmate.core.window_cache import WindowCache, WindowCacheKey

logger = get_logger(__name__)


def turns_to_text(turns: list[ChatTurn]) -> str:
    """Render turns back into transcript lines."""
    prefix = {"user": "User: ", "assistant": "AI: "}
    return "\n".join(f"{prefix[t.kind]}{t.content}" for t in turns)


def _create_redis_client(settings: Settings) -> Any:
    import redis.asyncio as redis

    return redis.from_url(settings.REDIS_URL, decode_responses=True)


def _create_pinecone_index(settings: Settings) -> Any | None:
    if not settings.PINECONE_API_KEY or not settings.PINECONE_INDEX:
        logger.warning("Pinecone not configured - semantic enrichment disabled")
        return None

    from pinecone import Pinecone

    client = Pinecone(api_key=settings.PINECONE_API_KEY)
    return client.Index(settings.PINECONE_INDEX)


class MemoryManager:
    """Owns every memory backend used by the chat flow."""

    def __init__(
        self,
        settings: Settings | None = None,
        redis_client: Any | None = None,
        pinecone_index: Any | None = None,
        semantic_index: SemanticIndex | None = None,
        record_writer: Any | None = None,
        rng: random.Random | None = None,
    ):
        """
        Initialize the manager. Nothing connects until ensure_initialized.

        Args:
            settings: Settings (defaults to get_settings())
            redis_client: Pre-built redis.asyncio client
            pinecone_index: Pre-built Pinecone index handle
            semantic_index: Pre-built adapter (takes precedence over pinecone_index)
            record_writer: Chat message writer for the persistence worker
            rng: Random source for enrichment sampling
        """
        self.settings = settings or get_settings()
        self._redis = redis_client
        self._pinecone_index = pinecone_index
        self._record_writer = record_writer
        self._rng = rng

        self.transcript: TranscriptStore | None = None
        self.semantic: SemanticIndex | None = semantic_index
        self.cache: WindowCache | None = None
        self.rate_limiter: SlidingWindowRateLimiter | None = None
        self.worker: PersistenceWorker | None = None

        self._initialized = False
        self._init_lock = asyncio.Lock()

    @property
    def initialized(self) -> bool:
        return self._initialized

    async def ensure_initialized(self) -> "MemoryManager":
        """Create backends on first call; later calls return immediately."""
        if self._initialized:
            return self

        async with self._init_lock:
            if self._initialized:
                return self

            settings = self.settings
            if self._redis is None:
                self._redis = _create_redis_client(settings)

            if self.semantic is None:
                index = self._pinecone_index
                if index is None:
                    index = await asyncio.to_thread(_create_pinecone_index, settings)
                self.semantic = SemanticIndex(
                    index,
                    top_k=settings.SEMANTIC_TOP_K,
                    min_history_chars=settings.SEMANTIC_MIN_HISTORY_CHARS,
                    sample_rate=settings.SEMANTIC_SAMPLE_RATE,
                    rng=self._rng,
                )

            self.transcript = TranscriptStore(self._redis, window=settings.TRANSCRIPT_WINDOW)
            self.cache = WindowCache(
                ttl_seconds=settings.WINDOW_CACHE_TTL_SECONDS,
                max_entries=settings.WINDOW_CACHE_MAX_ENTRIES,
            )
            self.rate_limiter = SlidingWindowRateLimiter(
                self._redis,
                limit=settings.RATE_LIMIT_REQUESTS,
                window_seconds=settings.RATE_LIMIT_WINDOW_SECONDS,
            )

            worker_kwargs: dict[str, Any] = {
                "max_retries": settings.PERSIST_MAX_RETRIES,
                "retry_delay": settings.PERSIST_RETRY_DELAY,
            }
            if self._record_writer is not None:
                worker_kwargs["record_writer"] = self._record_writer
            self.worker = PersistenceWorker(
                self.transcript, self.cache, semantic_index=self.semantic, **worker_kwargs
            )

            self._initialized = True
            logger.info(
                f"Memory manager initialized (semantic enrichment "
                f"{'enabled' if self.semantic.enabled else 'disabled'})"
            )
        return self

    async def close(self) -> None:
        """Flush pending persistence and release the Redis pool. Cached windows are dropped."""
        if self.worker is not None:
            await self.worker.stop()
        if self.cache is not None:
            logger.info(f"Dropping {len(self.cache)} cached conversation windows")
            self.cache.clear()
        if self._redis is not None and hasattr(self._redis, "aclose"):
            await self._redis.aclose()

    async def seed_if_empty(self, key: ConversationKey, seed: str) -> bool:
        """Seed the transcript from the persona's example dialogue once."""
        return await self.transcript.seed_once(key, seed, self.settings.SEED_DELIMITER)

    async def record_user_turn(self, key: ConversationKey, prompt: str) -> str:
        """Append the user's line; returns the transcript entry id."""
        return await self.transcript.append(key, format_user_line(prompt))

    async def recent_turns(self, key: ConversationKey) -> list[ChatTurn]:
        """Recent parsed turns, read through the window cache."""
        cache_key = WindowCacheKey(key.conversation_id, key.user_id)
        cached = self.cache.get(cache_key)
        if cached is not None:
            logger.debug(f"Window cache hit for {cache_key}")
            return cached

        turns = entries_to_turns(await self.transcript.read_entries(key))
        self.cache.put(cache_key, turns)
        return turns

    async def enrichment(self, key: ConversationKey, turns: list[ChatTurn]) -> list[SimilarityMatch]:
        """Sampled similarity search over the caller's exchanges in the conversation namespace."""
        history = turns_to_text(turns)
        if not self.semantic.should_query(history):
            return []
        return await self.semantic.query(
            history,
            namespace=key.conversation_id,
            metadata_filter={"user_id": {"$eq": key.user_id}},
        )

    async def schedule_ai_turn(self, job: PersistenceJob) -> None:
        """Hand a completed reply to the persistence worker."""
        await self.worker.enqueue(job)

    async def forget_entry(self, key: ConversationKey, entry_id: str) -> bool:
        """Drop one transcript entry and the cached window that may hold it."""
        try:
            return await self.transcript.remove(key, entry_id)
        finally:
            self.cache.invalidate(WindowCacheKey(key.conversation_id, key.user_id))


async def get_memory_manager(request: Request) -> MemoryManager:
    """Dependency returning the application's MemoryManager."""
    manager: MemoryManager | None = getattr(request.app.state, "memory_manager", None)
    if manager is None:
        manager = MemoryManager()
        request.app.state.memory_manager = manager
    return await manager.ensure_initialized()
