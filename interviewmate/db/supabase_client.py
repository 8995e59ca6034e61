"""Shared Supabase client for message records, interview mates and token checks."""

from functools import lru_cache

from supabase import Client, create_client

from interviewmate.core.config import get_settings
from interviewmate.core.errors import ConfigurationError
from interviewmate.core.logging import get_logger

logger = get_logger(__name__)


@lru_cache(maxsize=1)
def get_supabase() -> Client:
    """
    Service-role client, created on first use and reused afterwards.

    The client is synchronous; callers on the event loop go through
    asyncio.to_thread.

    Raises:
        ConfigurationError: Supabase settings are blank or the client cannot be built
    """
    settings = get_settings()
    if not settings.SUPABASE_URL.strip() or not settings.SUPABASE_SERVICE_ROLE_KEY.strip():
        raise ConfigurationError("Message storage is not configured")

    try:
        client = create_client(settings.SUPABASE_URL, settings.SUPABASE_SERVICE_ROLE_KEY)
    except Exception as e:
        logger.error(f"Could not create Supabase client for {settings.SUPABASE_URL}: {e}")
        raise ConfigurationError("Message storage is not configured") from e

    logger.info(f"Supabase client ready for {settings.SUPABASE_URL}")
    return client
