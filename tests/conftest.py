"""Pytest configuration and fixtures."""

import os

# Settings are read at import time by module-level singletons
os.environ.setdefault("SUPABASE_URL", "https://test.supabase.co")
os.environ.setdefault("SUPABASE_SERVICE_ROLE_KEY", "test-key")
os.environ.setdefault("ANTHROPIC_API_KEY", "test-anthropic-key")
os.environ.setdefault("CRSC_ENV", "test")

import pytest  # noqa: E402

from app.core.config import get_settings  # noqa: E402
from app.core.rate_limiter import chat_rate_limiter  # noqa: E402
from app.db.gateway import PersistenceGateway  # noqa: E402
from tests.fakes.fake_supabase import FakeSupabase  # noqa: E402

USER_ID = "11111111-1111-1111-1111-111111111111"
OTHER_USER_ID = "22222222-2222-2222-2222-222222222222"


@pytest.fixture(scope="session", autouse=True)
def setup_test_env():
    """Set up test environment variables."""
    os.environ["SUPABASE_URL"] = "https://test.supabase.co"
    os.environ["SUPABASE_SERVICE_ROLE_KEY"] = "test-key"
    os.environ["ANTHROPIC_API_KEY"] = "test-anthropic-key"
    os.environ["CRSC_ENV"] = "test"
    get_settings.cache_clear()


@pytest.fixture(autouse=True)
def reset_rate_limits():
    """Each test starts with full rate-limit buckets."""
    chat_rate_limiter._buckets.clear()
    chat_rate_limiter._request_counts.clear()
    yield


@pytest.fixture
def fake_db() -> FakeSupabase:
    return FakeSupabase()


@pytest.fixture
def gateway(fake_db: FakeSupabase) -> PersistenceGateway:
    return PersistenceGateway(client=fake_db)
