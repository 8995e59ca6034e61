"""Append-only, time-ordered transcript per conversation key, backed by Redis sorted sets."""

import time
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import TimeoutError as RedisTimeoutError

from interviewmate.core.conversation import ConversationKey, TranscriptEntry
from interviewmate.core.errors import StoreUnavailableError
from interviewmate.core.logging import get_logger

logger = get_logger(__name__)

DEFAULT_WINDOW = 30

# Seed marker lifetime; a crashed seed frees the key again after this
SEED_MARKER_TTL_SECONDS = 30


@contextmanager
def _store_errors(operation: str) -> Iterator[None]:
    """Surface connectivity failures as StoreUnavailableError."""
    try:
        yield
    except (RedisConnectionError, RedisTimeoutError) as e:
        logger.error(f"Transcript store unavailable during {operation}: {e}")
        raise StoreUnavailableError("Chat memory is temporarily unavailable.") from e


def _now_score() -> float:
    # Wall-clock milliseconds with sub-millisecond precision
    return time.time_ns() / 1_000_000


class TranscriptStore:
    """
    Transcript of chat turns for each ConversationKey.

    Entries are sorted-set members scored by write time, so range reads come
    back in insertion order. Nothing is ever edited in place.
    """

    def __init__(self, redis_client: Any, window: int = DEFAULT_WINDOW):
        """
        Initialize the store.

        Args:
            redis_client: redis.asyncio client (decode_responses=True)
            window: Default number of recent entries returned by read_recent
        """
        self._redis = redis_client
        self.window = window

    async def append(self, key: ConversationKey, text: str) -> str:
        """
        Append one entry scored with the current time.

        Args:
            key: Conversation partition
            text: Entry text, e.g. "User: hi\\n"

        Returns:
            The new entry id, or "" when the key is invalid
        """
        if not key.is_valid:
            logger.warning(f"Conversation key set incorrectly, skipping append: {key}")
            return ""

        entry = TranscriptEntry.new(text, score=_now_score())
        with _store_errors("append"):
            await self._redis.zadd(key.storage_key(), {entry.encode(): entry.score})
        return entry.entry_id

    async def read_entries(self, key: ConversationKey, limit: int | None = None) -> list[TranscriptEntry]:
        """Read the newest `limit` entries, oldest first."""
        if not key.is_valid:
            logger.warning(f"Conversation key set incorrectly, skipping read: {key}")
            return []

        limit = self.window if limit is None else limit
        if limit <= 0:
            return []

        with _store_errors("read"):
            members = await self._redis.zrange(key.storage_key(), -limit, -1, withscores=True)
        return [TranscriptEntry.decode(member, score) for member, score in members]

    async def read_recent(self, key: ConversationKey, limit: int | None = None) -> str:
        """
        Return the newest `limit` entries as newline-joined text, oldest first.

        Args:
            key: Conversation partition
            limit: Entries to keep (defaults to the store window)

        Returns:
            Transcript text, "" for an empty or invalid key
        """
        entries = await self.read_entries(key, limit)
        return "\n".join(entry.text.rstrip("\r\n") for entry in entries)

    async def seed_once(self, key: ConversationKey, content: str, delimiter: str = "\n") -> bool:
        """
        Seed a fresh transcript with example dialogue.

        Pieces are scored 0..n-1 instead of wall-clock so their order holds no
        matter how fast they are written. Any existing entry skips seeding, and
        a short-lived seed marker stops two concurrent first requests from
        both seeding. The marker is released when the seed write fails, so the
        next request can retry.

        Args:
            key: Conversation partition
            content: Seed dialogue
            delimiter: Separator between seed pieces

        Returns:
            True when the seed was written
        """
        if not key.is_valid:
            logger.warning(f"Conversation key set incorrectly, skipping seed: {key}")
            return False

        storage_key = key.storage_key()
        with _store_errors("seed"):
            if await self._redis.exists(storage_key):
                logger.debug(f"Transcript already has history: {storage_key}")
                return False

            marker = f"{storage_key}:seeded"
            if not await self._redis.set(marker, "1", nx=True, ex=SEED_MARKER_TTL_SECONDS):
                logger.debug(f"Transcript seed already in progress: {storage_key}")
                return False

            pieces = content.split(delimiter) if delimiter else [content]
            mapping = {
                TranscriptEntry.new(piece, score=float(i)).encode(): float(i)
                for i, piece in enumerate(pieces)
            }
            if mapping:
                try:
                    await self._redis.zadd(storage_key, mapping)
                except Exception:
                    await self._release_seed_marker(marker)
                    raise

        logger.info(f"Seeded transcript {storage_key} with {len(mapping)} entries")
        return True

    async def remove(self, key: ConversationKey, entry_id: str) -> bool:
        """
        Remove a single entry by id.

        Returns:
            True when an entry was removed
        """
        if not key.is_valid or not entry_id:
            return False

        storage_key = key.storage_key()
        with _store_errors("remove"):
            members = await self._redis.zrange(storage_key, 0, -1)
            for member in members:
                if TranscriptEntry.decode(member).entry_id == entry_id:
                    removed = await self._redis.zrem(storage_key, member)
                    return bool(removed)
        return False

    async def _release_seed_marker(self, marker: str) -> None:
        try:
            await self._redis.delete(marker)
        except Exception as e:
            logger.warning(f"Could not release seed marker {marker}, it expires on its own: {e}")
