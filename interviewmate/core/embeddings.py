"""OpenAI embeddings generation with validation."""

import asyncio

from openai import OpenAI

from interviewmate.core.config import get_settings
from interviewmate.core.logging import get_logger

logger = get_logger(__name__)


def _get_client() -> OpenAI:
    """Get OpenAI client instance."""
    settings = get_settings()
    return OpenAI(api_key=settings.OPENAI_API_KEY)


def embed_text(text: str) -> list[float]:
    """
    Generate an embedding for one text using OpenAI.

    Without an API key this returns a zero vector of the configured
    dimension so callers keep working in unconfigured environments.

    Args:
        text: Text to embed

    Returns:
        Embedding vector of length EMBEDDING_DIM

    Raises:
        ValueError: If the returned dimension doesn't match EMBEDDING_DIM
        Exception: If the OpenAI API call fails
    """
    settings = get_settings()

    if not settings.OPENAI_API_KEY:
        logger.warning("OpenAI API key not configured - returning zero embedding")
        return [0.0] * settings.EMBEDDING_DIM

    client = _get_client()

    try:
        response = client.embeddings.create(
            model=settings.EMBEDDING_MODEL,
            input=[text],
            dimensions=settings.EMBEDDING_DIM,
        )
        embedding = response.data[0].embedding

        if len(embedding) != settings.EMBEDDING_DIM:
            raise ValueError(
                f"Embedding dimension mismatch: "
                f"expected {settings.EMBEDDING_DIM}, got {len(embedding)}"
            )

        logger.debug(f"Generated embedding using {settings.EMBEDDING_MODEL}")
        return embedding

    except Exception as e:
        logger.error(f"Failed to generate embedding: {e}")
        raise


async def embed_text_async(text: str) -> list[float]:
    """Async wrapper around embed_text using thread pool."""
    return await asyncio.to_thread(embed_text, text)
