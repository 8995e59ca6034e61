"""Tests for background persistence of AI turns."""

from unittest.mock import AsyncMock, MagicMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from interviewmate.core.conversation import ChatTurn, ConversationKey
from interviewmate.core.persistence_worker import PersistenceJob, PersistenceWorker
from interviewmate.core.semantic_index import SemanticIndex
from interviewmate.core.transcript_store import TranscriptStore
from interviewmate.core.window_cache import WindowCache, WindowCacheKey

KEY = ConversationKey(conversation_id="mate-1", user_id="user-1", model_name="claude-test")
CACHE_KEY = WindowCacheKey("mate-1", "user-1")


def _job(content="Tell me about a time you failed."):
    return PersistenceJob(key=KEY, content=content, user_id="user-1", interview_mate_id="mate-1")


@pytest.fixture
def store(fake_redis):
    return TranscriptStore(fake_redis)


@pytest.fixture
def cache():
    return WindowCache()


@pytest.mark.asyncio
async def test_process_writes_transcript_and_record(store, cache):
    writer = MagicMock(return_value={"id": "msg-1"})
    cache.put(CACHE_KEY, [ChatTurn.user("stale")])
    worker = PersistenceWorker(store, cache, record_writer=writer, retry_delay=0)

    job = _job()
    assert await worker.process(job) is True

    assert await store.read_recent(KEY) == "AI: Tell me about a time you failed."
    assert cache.get(CACHE_KEY) is None
    assert job.record_id == "msg-1"
    kwargs = writer.call_args.kwargs
    assert kwargs["role"] == "assistant"
    assert kwargs["content"] == "Tell me about a time you failed."
    assert kwargs["model_name"] == "claude-test"
    assert kwargs["transcript_entry_id"] == job.transcript_entry_id


@pytest.mark.asyncio
async def test_record_failure_retries_without_duplicate_append(store, cache, fake_redis):
    writer = MagicMock(side_effect=[Exception("db timeout"), {"id": "msg-1"}])
    worker = PersistenceWorker(store, cache, record_writer=writer, retry_delay=0)

    job = _job()
    assert await worker.process(job) is True

    assert job.attempts == 1
    assert writer.call_count == 2
    assert len(fake_redis.zsets[KEY.storage_key()]) == 1


@pytest.mark.asyncio
async def test_exhausted_retries_dead_letter(store, cache, fake_redis):
    fake_redis.fail_with = RedisConnectionError("down")
    writer = MagicMock(return_value={"id": "msg-1"})
    worker = PersistenceWorker(store, cache, record_writer=writer, max_retries=2, retry_delay=0)

    job = _job()
    assert await worker.process(job) is False

    assert worker.dead_letters == [job]
    assert job.attempts == 3
    assert "transcript append failed" in job.last_error
    writer.assert_not_called()
    assert worker.stats["dead_letters"] == 1


@pytest.mark.asyncio
async def test_enqueue_runs_in_background(store, cache):
    writer = MagicMock(return_value={"id": "msg-1"})
    worker = PersistenceWorker(store, cache, record_writer=writer, retry_delay=0)

    await worker.enqueue(_job("first"))
    await worker.enqueue(_job("second"))
    await worker.drain()

    assert await store.read_recent(KEY) == "AI: first\nAI: second"
    assert worker.stats["persisted_count"] == 2

    await worker.stop()
    assert not worker.running


@pytest.mark.asyncio
async def test_exchange_indexed_after_both_writes(store, cache):
    semantic = MagicMock(spec=SemanticIndex)
    semantic.enabled = True
    semantic.upsert = AsyncMock(return_value=True)
    writer = MagicMock(return_value={"id": "msg-1"})
    worker = PersistenceWorker(store, cache, record_writer=writer, retry_delay=0, semantic_index=semantic)

    job = _job("Start with the API.")
    job.prompt = "How do I begin?"
    assert await worker.process(job) is True

    semantic.upsert.assert_awaited_once_with(
        record_id=job.transcript_entry_id,
        text="User: How do I begin?\nAI: Start with the API.",
        namespace="mate-1",
        metadata={"user_id": "user-1", "model_name": "claude-test"},
    )
    assert job.indexed


@pytest.mark.asyncio
async def test_failed_indexing_does_not_fail_the_job(store, cache):
    index = MagicMock()
    index.upsert.side_effect = Exception("index unavailable")
    semantic = SemanticIndex(index, embed=AsyncMock(return_value=[0.1]))
    writer = MagicMock(return_value={"id": "msg-1"})
    worker = PersistenceWorker(store, cache, record_writer=writer, retry_delay=0, semantic_index=semantic)

    job = _job()
    job.prompt = "Any failures?"
    assert await worker.process(job) is True

    assert job.attempts == 0
    index.upsert.assert_called_once()


@pytest.mark.asyncio
async def test_record_retry_indexes_once(store, cache):
    semantic = MagicMock(spec=SemanticIndex)
    semantic.enabled = True
    semantic.upsert = AsyncMock(return_value=True)
    writer = MagicMock(side_effect=[Exception("db timeout"), {"id": "msg-1"}])
    worker = PersistenceWorker(store, cache, record_writer=writer, retry_delay=0, semantic_index=semantic)

    job = _job()
    job.prompt = "Hi"
    assert await worker.process(job) is True

    semantic.upsert.assert_awaited_once()
