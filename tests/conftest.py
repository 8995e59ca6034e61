"""Pytest configuration and fixtures."""

import os

import pytest

from interviewmate.core.config import get_settings
from tests.fakes.fake_redis import FakeRedis


@pytest.fixture(scope="session", autouse=True)
def setup_test_env():
    """Set up test environment variables."""
    os.environ["SUPABASE_URL"] = "https://test.supabase.co"
    os.environ["SUPABASE_SERVICE_ROLE_KEY"] = "test-key"
    os.environ["ANTHROPIC_API_KEY"] = "test-anthropic-key"
    os.environ["INTERVIEWMATE_ENV"] = "test"
    os.environ.pop("OPENAI_API_KEY", None)
    os.environ.pop("PINECONE_API_KEY", None)
    get_settings.cache_clear()


@pytest.fixture
def fake_redis():
    return FakeRedis()
