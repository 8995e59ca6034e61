"""Best-effort semantic enrichment from a namespaced Pinecone index.

Similarity search is an optimisation for answer quality, not a correctness
requirement: any embedding or index failure is logged and reported as "no
matches". Querying is also sampled, so only part of the eligible requests
pay for the embedding and index round trips.
"""

import asyncio
import random
from collections.abc import Awaitable, Callable
from typing import Any

from interviewmate.core.conversation import SimilarityMatch
from interviewmate.core.embeddings import embed_text_async
from interviewmate.core.errors import UpstreamEnrichmentError
from interviewmate.core.logging import get_logger

logger = get_logger(__name__)

# Metadata field holding the indexed passage text
TEXT_FIELD = "text"

EmbedFn = Callable[[str], Awaitable[list[float]]]


class SemanticIndex:
    """Adapter over a Pinecone index, one namespace per conversation."""

    def __init__(
        self,
        index: Any | None,
        embed: EmbedFn = embed_text_async,
        top_k: int = 3,
        min_history_chars: int = 200,
        sample_rate: float = 0.3,
        rng: random.Random | None = None,
    ):
        """
        Initialize the adapter.

        Args:
            index: pinecone Index handle, or None to disable enrichment
            embed: Async text -> vector function
            top_k: Default number of matches per query
            min_history_chars: History length below which no query is made
            sample_rate: Fraction of eligible requests that query
            rng: Random source for sampling
        """
        self._index = index
        self._embed = embed
        self.top_k = top_k
        self.min_history_chars = min_history_chars
        self.sample_rate = sample_rate
        self._rng = rng or random.Random()

    @property
    def enabled(self) -> bool:
        return self._index is not None

    def should_query(self, history: str) -> bool:
        """Sampling policy: long enough history and a random subset of requests."""
        if not self.enabled:
            return False
        if len(history) < self.min_history_chars:
            return False
        return self._rng.random() < self.sample_rate

    async def query(
        self,
        text: str,
        namespace: str,
        k: int | None = None,
        metadata_filter: dict[str, Any] | None = None,
    ) -> list[SimilarityMatch]:
        """
        Return up to k matches for `text` within `namespace`.

        Never raises; an empty list means no enrichment is available.
        """
        if not self.enabled or not text.strip():
            return []

        top_k = k or self.top_k
        try:
            return await self._query(text, namespace, top_k, metadata_filter)
        except UpstreamEnrichmentError as e:
            logger.warning(f"Semantic enrichment unavailable for namespace {namespace}: {e}")
            return []

    async def _query(
        self,
        text: str,
        namespace: str,
        top_k: int,
        metadata_filter: dict[str, Any] | None = None,
    ) -> list[SimilarityMatch]:
        query_kwargs: dict[str, Any] = {
            "top_k": top_k,
            "include_metadata": True,
            "namespace": namespace,
        }
        if metadata_filter:
            query_kwargs["filter"] = metadata_filter

        try:
            vector = await self._embed(text)
            response = await asyncio.to_thread(self._index.query, vector=vector, **query_kwargs)
        except Exception as e:
            if "429" in str(e):
                raise UpstreamEnrichmentError(f"API quota exceeded: {e}") from e
            raise UpstreamEnrichmentError(str(e)) from e

        matches = []
        for match in getattr(response, "matches", None) or []:
            metadata = dict(getattr(match, "metadata", None) or {})
            content = str(metadata.pop(TEXT_FIELD, ""))
            if not content:
                continue
            matches.append(
                SimilarityMatch(
                    content=content,
                    score=float(getattr(match, "score", 0.0) or 0.0),
                    metadata=metadata,
                )
            )

        logger.debug(f"Semantic query returned {len(matches)} matches for namespace {namespace}")
        return matches

    async def upsert(
        self,
        record_id: str,
        text: str,
        namespace: str,
        metadata: dict[str, Any] | None = None,
    ) -> bool:
        """
        Embed and store one passage. Best-effort.

        Returns:
            True when the record was written
        """
        if not self.enabled:
            return False

        try:
            vector = await self._embed(text)
            await asyncio.to_thread(
                self._index.upsert,
                vectors=[
                    {
                        "id": record_id,
                        "values": vector,
                        "metadata": {**(metadata or {}), TEXT_FIELD: text},
                    }
                ],
                namespace=namespace,
            )
            return True
        except Exception as e:
            logger.warning(f"Failed to upsert {record_id} into namespace {namespace}: {e}")
            return False
