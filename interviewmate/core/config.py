"""Configuration management for the InterviewMate service."""

from functools import lru_cache

from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Load environment variables from .env file (only if accessible)
try:
    load_dotenv()
except (PermissionError, OSError):
    # In sandboxed environments, .env might not be accessible
    pass


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="ignore",
    )

    # Supabase configuration (required) - messages, personas and identity
    SUPABASE_URL: str = Field(..., description="Supabase project URL")
    SUPABASE_SERVICE_ROLE_KEY: str = Field(..., description="Supabase service role key")

    # Environment
    INTERVIEWMATE_ENV: str = Field(default="dev", description="Environment: dev, staging, prod")

    # Generation backend (Anthropic)
    ANTHROPIC_API_KEY: str | None = Field(default=None, description="Anthropic API key")
    CHAT_MODEL: str = Field(default="claude-3-5-haiku-20241022", description="Chat model")
    CHAT_MAX_TOKENS: int = Field(default=2048, description="Max output tokens per reply")
    CHAT_TEMPERATURE: float = Field(default=0.7, description="Sampling temperature")
    CHAT_TIMEOUT_SECONDS: float = Field(
        default=30.0, description="Upper bound on a single generation stream"
    )

    # Embedding configuration (OpenAI)
    OPENAI_API_KEY: str | None = Field(default=None, description="OpenAI API key")
    EMBEDDING_MODEL: str = Field(
        default="text-embedding-3-small", description="OpenAI embedding model"
    )
    EMBEDDING_DIM: int = Field(default=768, description="Embedding vector dimension")

    # Transcript store (Redis)
    REDIS_URL: str = Field(default="redis://localhost:6379/0", description="Redis URL")
    TRANSCRIPT_WINDOW: int = Field(default=30, description="Recent entries read back for context")
    SEED_DELIMITER: str = Field(default="\n\n", description="Delimiter between seed dialogue pieces")

    # Recent-window read cache
    WINDOW_CACHE_TTL_SECONDS: float = Field(default=300.0, description="Read cache TTL")
    WINDOW_CACHE_MAX_ENTRIES: int = Field(default=1024, description="Read cache size bound")

    # Semantic index (Pinecone)
    PINECONE_API_KEY: str | None = Field(default=None, description="Pinecone API key")
    PINECONE_INDEX: str | None = Field(default=None, description="Pinecone index name")
    SEMANTIC_TOP_K: int = Field(default=3, description="Matches returned per similarity query")
    SEMANTIC_MIN_HISTORY_CHARS: int = Field(
        default=200, description="Minimum recent history length before querying the index"
    )
    SEMANTIC_SAMPLE_RATE: float = Field(
        default=0.3, description="Fraction of eligible requests that query the index"
    )

    # Rate limiting (sliding window per route and user)
    RATE_LIMIT_REQUESTS: int = Field(default=10, description="Requests allowed per window")
    RATE_LIMIT_WINDOW_SECONDS: float = Field(default=3.0, description="Sliding window length")

    # Post-stream persistence
    PERSIST_MAX_RETRIES: int = Field(default=3, description="Retries before dead-lettering")
    PERSIST_RETRY_DELAY: float = Field(default=0.5, description="Base delay between retries")


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Returns:
        Settings instance

    Raises:
        ValidationError: If required environment variables are missing
    """
    return Settings()
