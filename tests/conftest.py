"""
Shared test fixtures for render-runtime tests.

This module provides:
- A controllable clock
- Fake renderer/uploader boundaries
- In-memory and fakeredis-backed job stores
"""

from __future__ import annotations

import fakeredis
import pytest
import redis.asyncio
from fakeredis import aioredis

from render_runtime.jobs import InMemoryJobStore
from render_runtime.storage import RedisJobStore
from tests._testkit import FakeClock, FakeRenderer, FakeUploader


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def memory_store(clock) -> InMemoryJobStore:
    return InMemoryJobStore(max_jobs=50, max_age_hours=24, clock=clock)


@pytest.fixture
def redis_client():
    # Same pool type as RedisJobStore.connect: callers wait for a free connection.
    return aioredis.FakeRedis(
        server=fakeredis.FakeServer(),
        decode_responses=True,
        max_connections=50,
        connection_pool_class=redis.asyncio.BlockingConnectionPool,
    )


@pytest.fixture
def redis_store(redis_client, clock) -> RedisJobStore:
    return RedisJobStore(redis_client, max_jobs=50, max_age_hours=24, clock=clock)


@pytest.fixture
def renderer(tmp_path) -> FakeRenderer:
    return FakeRenderer(tmp_path)


@pytest.fixture
def uploader() -> FakeUploader:
    return FakeUploader()
