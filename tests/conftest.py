"""
Pytest configuration and fixtures for athlete support agent tests.

Provides shared fixtures for:
- Test settings (AGENT_* environment, cached settings reset)
- Fake Redis client (fakeredis)
- Canned vector and lexical hits

Builders and fake backends live in tests/factories.py.
"""

from typing import List

import pytest

from api.tools.fusion import LexicalHit, VectorHit
from libs.common.settings import Settings, get_settings
from tests.factories import SECTION_9_METADATA, SELECTION_METADATA


@pytest.fixture(autouse=True)
def setup_test_env(monkeypatch):
    """Set up test environment variables."""
    monkeypatch.setenv("AGENT_APP_ENV", "test")
    monkeypatch.setenv("LANGSMITH_TRACING", "false")
    monkeypatch.delenv("AGENT_REDIS_URL", raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def settings() -> Settings:
    """Test settings with fast retries so failure paths do not sleep."""
    return Settings(
        app_env="test",
        retry_max_attempts=2,
        retry_initial_wait_s=0.0,
        retry_max_wait_s=0.0,
    )


@pytest.fixture
async def redis_client():
    """
    Provide fakeredis client for testing.

    This avoids requiring actual Redis server during tests.
    """
    from fakeredis import aioredis as fakeredis

    client = fakeredis.FakeRedis(decode_responses=True)

    yield client

    await client.flushdb()
    await client.aclose()


@pytest.fixture
def vector_hits() -> List[VectorHit]:
    return [
        VectorHit(
            content="Athletes may appeal a selection decision within 48 hours by written grievance to the NGB.",
            metadata=dict(SELECTION_METADATA),
            distance=0.15,
        ),
        VectorHit(
            content="Section 9 of the USOPC Bylaws allows an athlete to file a claim for arbitration.",
            metadata=dict(SECTION_9_METADATA),
            distance=0.25,
        ),
    ]


@pytest.fixture
def lexical_hits() -> List[LexicalHit]:
    return [
        LexicalHit(
            id="sec9",
            content="Section 9 of the USOPC Bylaws allows an athlete to file a claim for arbitration.",
            metadata=dict(SECTION_9_METADATA),
            score=7.2,
        ),
        LexicalHit(
            id="grievance",
            content="Grievances must state the decision being challenged and the relief requested.",
            metadata=dict(SELECTION_METADATA),
            score=3.1,
        ),
    ]
