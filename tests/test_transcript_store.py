"""Tests for the Redis-backed transcript store."""

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from interviewmate.core.conversation import ConversationKey, TranscriptEntry
from interviewmate.core.errors import StoreUnavailableError
from interviewmate.core.transcript_store import TranscriptStore

KEY = ConversationKey(conversation_id="mate-1", user_id="user-1", model_name="claude-test")


@pytest.fixture
def store(fake_redis):
    return TranscriptStore(fake_redis, window=30)


@pytest.mark.asyncio
async def test_append_then_read_recent(store):
    """Appended lines come back newline-joined, oldest first."""
    await store.append(KEY, "User: hi\n")
    await store.append(KEY, "AI: hello\n")

    assert await store.read_recent(KEY) == "User: hi\nAI: hello"


@pytest.mark.asyncio
async def test_append_returns_entry_id(store, fake_redis):
    entry_id = await store.append(KEY, "User: hi\n")

    assert len(entry_id) == 32
    members = list(fake_redis.zsets[KEY.storage_key()])
    assert TranscriptEntry.decode(members[0]).entry_id == entry_id


@pytest.mark.asyncio
async def test_identical_lines_are_kept_separately(store, fake_redis):
    await store.append(KEY, "User: yes\n")
    await store.append(KEY, "User: yes\n")

    assert len(fake_redis.zsets[KEY.storage_key()]) == 2
    assert await store.read_recent(KEY) == "User: yes\nUser: yes"


@pytest.mark.asyncio
async def test_read_recent_is_bounded_to_window(store, fake_redis):
    """Only the newest `window` entries are returned."""
    storage_key = KEY.storage_key()
    for i in range(35):
        entry = TranscriptEntry.new(f"User: message {i}\n", score=float(i))
        fake_redis.zsets.setdefault(storage_key, {})[entry.encode()] = entry.score

    lines = (await store.read_recent(KEY)).split("\n")

    assert len(lines) == 30
    assert lines[0] == "User: message 5"
    assert lines[-1] == "User: message 34"


@pytest.mark.asyncio
async def test_read_recent_explicit_limit(store):
    for text in ("User: a\n", "AI: b\n", "User: c\n"):
        await store.append(KEY, text)

    assert await store.read_recent(KEY, limit=2) == "AI: b\nUser: c"
    assert await store.read_recent(KEY, limit=0) == ""


@pytest.mark.asyncio
async def test_read_recent_empty_conversation(store):
    assert await store.read_recent(KEY) == ""


@pytest.mark.asyncio
async def test_seed_once_writes_pieces_in_order(store, fake_redis):
    """Seed pieces are scored 0..n-1 and keep their order."""
    seeded = await store.seed_once(KEY, "User: hi\n\nAI: hello", delimiter="\n\n")

    assert seeded is True
    entries = await store.read_entries(KEY)
    assert [e.text for e in entries] == ["User: hi", "AI: hello"]
    assert [e.score for e in entries] == [0.0, 1.0]


@pytest.mark.asyncio
async def test_seed_once_is_idempotent(store, fake_redis):
    assert await store.seed_once(KEY, "User: hi\n\nAI: hello", delimiter="\n\n") is True
    assert await store.seed_once(KEY, "User: hi\n\nAI: hello", delimiter="\n\n") is False

    assert len(fake_redis.zsets[KEY.storage_key()]) == 2


@pytest.mark.asyncio
async def test_failed_seed_write_can_be_retried(store, fake_redis):
    """A seed whose write fails releases its marker for the next request."""
    real_zadd = fake_redis.zadd

    async def failing_zadd(*args, **kwargs):
        fake_redis.zadd = real_zadd
        raise RedisConnectionError("connection reset")

    fake_redis.zadd = failing_zadd

    with pytest.raises(StoreUnavailableError):
        await store.seed_once(KEY, "User: hi\n\nAI: hello", delimiter="\n\n")

    assert await store.seed_once(KEY, "User: hi\n\nAI: hello", delimiter="\n\n") is True
    assert [e.text for e in await store.read_entries(KEY)] == ["User: hi", "AI: hello"]


@pytest.mark.asyncio
async def test_seed_marker_expires(store, fake_redis):
    await store.seed_once(KEY, "AI: welcome", delimiter="\n\n")

    assert fake_redis.expiry_ms[f"{KEY.storage_key()}:seeded"] == 30_000


@pytest.mark.asyncio
async def test_seed_once_skips_existing_history(store):
    await store.append(KEY, "User: already here\n")

    assert await store.seed_once(KEY, "AI: seed", delimiter="\n\n") is False
    assert await store.read_recent(KEY) == "User: already here"


@pytest.mark.asyncio
async def test_seeded_entries_sort_before_live_turns(store):
    await store.seed_once(KEY, "AI: welcome", delimiter="\n\n")
    await store.append(KEY, "User: hi\n")

    assert await store.read_recent(KEY) == "AI: welcome\nUser: hi"


@pytest.mark.asyncio
async def test_invalid_key_is_a_no_op(store, fake_redis):
    """Operations on a key with an empty field neither write nor fail."""
    bad_key = ConversationKey(conversation_id="mate-1", user_id="", model_name="claude-test")

    assert await store.append(bad_key, "User: hi\n") == ""
    assert await store.read_recent(bad_key) == ""
    assert await store.seed_once(bad_key, "AI: seed") is False
    assert fake_redis.calls == []


@pytest.mark.asyncio
async def test_remove_entry_by_id(store):
    first = await store.append(KEY, "User: keep\n")
    second = await store.append(KEY, "User: drop\n")

    assert await store.remove(KEY, second) is True
    assert await store.remove(KEY, second) is False
    assert await store.read_recent(KEY) == "User: keep"
    assert first


@pytest.mark.asyncio
async def test_unreachable_store_raises_store_unavailable(store, fake_redis):
    fake_redis.fail_with = RedisConnectionError("connection refused")

    with pytest.raises(StoreUnavailableError) as exc_info:
        await store.append(KEY, "User: hi\n")

    assert exc_info.value.status_code == 503


@pytest.mark.asyncio
async def test_keys_are_partitioned_by_user(store):
    other = ConversationKey(conversation_id="mate-1", user_id="user-2", model_name="claude-test")
    await store.append(KEY, "User: mine\n")
    await store.append(other, "User: theirs\n")

    assert await store.read_recent(KEY) == "User: mine"
    assert await store.read_recent(other) == "User: theirs"
