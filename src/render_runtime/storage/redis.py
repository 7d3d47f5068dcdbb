"""
Redis-backed job store.

Layout (prefixes configurable):
- ``job:<id>``  hash holding the record fields, with a TTL refreshed on every
  mutation
- ``job_ids``   set of live ids (membership, cardinality)
- ``job_queue`` sorted set of ids scored by ``createdAt`` (age and rank ranges)

Creation writes the hash and both indexes in one MULTI/EXEC transaction.
Updates use optimistic locking (WATCH on the record key) so the terminal-state
check and the merge are atomic with respect to other writers, without any
lock being held across an await.

The key TTL is a backstop; the reaper is what keeps the indexes consistent
with the records.
"""

from __future__ import annotations

import time
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

import redis.asyncio as redis
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import RedisError, WatchError
from redis.exceptions import TimeoutError as RedisTimeoutError

from ..config import StoreConfig
from ..errors import ErrorContext, StoreError, StoreUnavailableError
from ..jobs.store import Clock, JobStore
from ..jobs.types import JobPatch, JobRecord, JobStats, JobStatus
from ..logging import get_logger

logger = get_logger("render_runtime.storage.redis")


@contextmanager
def _store_errors(operation: str, job_id: str | None = None) -> Iterator[None]:
    """Translate redis client failures into the store error taxonomy."""
    try:
        yield
    except (RedisConnectionError, RedisTimeoutError, OSError) as e:
        raise StoreUnavailableError(
            f"Redis unavailable during {operation}: {e}",
            context=ErrorContext(job_id=job_id, operation=operation),
            cause=e,
        ) from e
    except RedisError as e:
        raise StoreError(
            f"Redis error during {operation}: {e}",
            context=ErrorContext(job_id=job_id, operation=operation),
            cause=e,
        ) from e


class RedisJobStore(JobStore):
    """Job store on a shared ``redis.asyncio.Redis`` client.

    The client must be created with ``decode_responses=True``. Use
    :meth:`connect` to build a verified store from configuration.

    Example:
        ```python
        store = await RedisJobStore.connect(StoreConfig(redis_url="redis://localhost:6379/0"))
        job = await store.create({"title": "Quiz #1"})
        ```
    """

    def __init__(
        self,
        client: Any,  # redis.Redis
        *,
        key_prefix: str = "job:",
        ids_key: str = "job_ids",
        queue_key: str = "job_queue",
        max_jobs: int = 50,
        max_age_hours: float = 24,
        update_retries: int = 5,
        orphan_scan_batch: int = 500,
        clock: Clock = time.time,
    ):
        super().__init__(max_jobs=max_jobs, max_age_hours=max_age_hours, clock=clock)
        self._client = client
        self._prefix = key_prefix
        self._ids_key = ids_key
        self._queue_key = queue_key
        self._retries = update_retries
        self._orphan_batch = orphan_scan_batch
        self._orphan_cursor = 0

    @classmethod
    def from_config(cls, client: Any, config: StoreConfig, *, clock: Clock = time.time) -> RedisJobStore:
        return cls(
            client,
            key_prefix=config.key_prefix,
            ids_key=config.ids_key,
            queue_key=config.queue_key,
            max_jobs=config.max_jobs,
            max_age_hours=config.max_age_hours,
            update_retries=config.update_retries,
            orphan_scan_batch=config.orphan_scan_batch,
            clock=clock,
        )

    @classmethod
    async def connect(cls, config: StoreConfig, *, clock: Clock = time.time) -> RedisJobStore:
        """Create a client from ``config.redis_url`` and verify it answers.

        The client sits on a blocking pool: once ``max_connections`` are
        checked out, further commands wait for one to be released instead of
        failing.

        Raises:
            StoreUnavailableError: If Redis cannot be reached
        """
        pool = redis.BlockingConnectionPool.from_url(
            config.redis_url,
            max_connections=config.max_connections,
            timeout=config.pool_timeout_seconds,
            decode_responses=True,
            socket_connect_timeout=config.connect_timeout_seconds,
            health_check_interval=30,
        )
        client = redis.Redis.from_pool(pool)
        try:
            with _store_errors("connect"):
                await client.ping()
        except StoreError:
            await client.aclose()
            raise
        logger.info("Connected to Redis", max_jobs=config.max_jobs, max_age_hours=config.max_age_hours)
        return cls.from_config(client, config, clock=clock)

    @property
    def client(self) -> Any:
        return self._client

    def _key(self, job_id: str) -> str:
        return f"{self._prefix}{job_id}"

    async def create(self, payload: dict[str, Any]) -> JobRecord:
        with _store_errors("create"):
            for _ in range(self._retries):
                record = self._new_record(payload)
                key = self._key(record.id)
                async with self._client.pipeline(transaction=True) as pipe:
                    try:
                        await pipe.watch(key)
                        if await pipe.exists(key):
                            continue
                        pipe.multi()
                        pipe.hset(key, mapping=record.to_hash())
                        pipe.pexpire(key, self.ttl_ms)
                        pipe.sadd(self._ids_key, record.id)
                        pipe.zadd(self._queue_key, {record.id: record.created_at})
                        await pipe.execute()
                    except WatchError:
                        continue
                logger.info("Job created", job_id=record.id)
                return record.copy()
        raise StoreError("Could not allocate a unique job id", context=ErrorContext(operation="create"))

    async def get(self, job_id: str) -> JobRecord | None:
        with _store_errors("get", job_id):
            data = await self._client.hgetall(self._key(job_id))
        if not data or not data.get("id"):
            return None
        try:
            return JobRecord.from_hash(data)
        except (KeyError, ValueError) as e:
            raise StoreError(
                f"Corrupt job record {job_id}: {e}",
                context=ErrorContext(job_id=job_id, operation="get"),
                cause=e,
            ) from e

    async def update(self, job_id: str, patch: JobPatch) -> bool:
        key = self._key(job_id)
        with _store_errors("update", job_id):
            async with self._client.pipeline(transaction=True) as pipe:
                for attempt in range(self._retries):
                    try:
                        await pipe.watch(key)
                        current = await pipe.hget(key, "status")
                        if current is None:
                            return False
                        try:
                            status = JobStatus(current)
                        except ValueError as e:
                            raise StoreError(
                                f"Corrupt job record {job_id}: {e}",
                                context=ErrorContext(job_id=job_id, operation="update"),
                                cause=e,
                            ) from e
                        if not self._check_patch(job_id, status, patch):
                            return False
                        pipe.multi()
                        pipe.hset(key, mapping=patch.to_hash(self._now_ms()))
                        pipe.pexpire(key, self.ttl_ms)
                        await pipe.execute()
                        return True
                    except WatchError:
                        logger.debug("Concurrent write, retrying update", job_id=job_id, attempt=attempt + 1)
        raise StoreError(
            f"Update of job {job_id} conflicted {self._retries} times",
            context=ErrorContext(job_id=job_id, operation="update"),
        )

    async def delete(self, job_id: str) -> bool:
        with _store_errors("delete", job_id):
            async with self._client.pipeline(transaction=True) as pipe:
                pipe.delete(self._key(job_id))
                pipe.srem(self._ids_key, job_id)
                pipe.zrem(self._queue_key, job_id)
                deleted, _, _ = await pipe.execute()
        return bool(deleted)

    async def count(self) -> int:
        with _store_errors("count"):
            return int(await self._client.scard(self._ids_key))

    async def _remove_many(self, job_ids: list[str], reason: str) -> int:
        removed = 0
        for job_id in job_ids:
            try:
                await self.delete(job_id)
            except StoreError as e:
                logger.log_error(e, "Failed to evict job", job_id=job_id, reason=reason)
                continue
            logger.log_eviction(job_id, reason)
            removed += 1
        return removed

    async def _missing(self, job_ids: list[str]) -> list[str]:
        if not job_ids:
            return []
        with _store_errors("evict"):
            async with self._client.pipeline(transaction=False) as pipe:
                for job_id in job_ids:
                    pipe.exists(self._key(job_id))
                flags = await pipe.execute()
        return [job_id for job_id, exists in zip(job_ids, flags) if not exists]

    async def evict(self) -> int:
        cutoff = self._now_ms() - self.ttl_ms

        # Phase 1: age
        with _store_errors("evict"):
            expired = await self._client.zrangebyscore(self._queue_key, "-inf", cutoff)
        removed = await self._remove_many(list(expired), "age")

        # Index entries without a backing record never count as survivors.
        # Each pass checks one ZSCAN step; the cursor resumes on the next pass.
        with _store_errors("evict"):
            cursor, entries = await self._client.zscan(
                self._queue_key, self._orphan_cursor, count=self._orphan_batch
            )
        self._orphan_cursor = int(cursor)
        scanned = [job_id for job_id, _ in entries]
        removed += await self._remove_many(await self._missing(scanned), "missing")

        # Phase 2: count, oldest first
        with _store_errors("evict"):
            total = await self._client.scard(self._ids_key)
            excess = total - self.max_jobs
            oldest = await self._client.zrange(self._queue_key, 0, excess - 1) if excess > 0 else []
        removed += await self._remove_many(list(oldest), "count")

        if removed:
            logger.info("Eviction pass finished", removed=removed, cutoff_ms=cutoff)
        return removed

    async def stats(self) -> JobStats:
        with _store_errors("stats"):
            job_ids = list(await self._client.smembers(self._ids_key))
            async with self._client.pipeline(transaction=False) as pipe:
                for job_id in job_ids:
                    pipe.hmget(self._key(job_id), "status", "createdAt")
                rows = await pipe.execute() if job_ids else []

        samples: list[tuple[str, int]] = []
        for job_id, (status, created_at) in zip(job_ids, rows):
            # Deleted or expiring concurrently with this scan
            if not status or not created_at:
                continue
            try:
                samples.append((status, int(created_at)))
            except ValueError:
                logger.warning("Skipping job with unreadable createdAt", job_id=job_id)
        return JobStats.from_samples(samples, self._now_ms())

    async def close(self) -> None:
        await self._client.aclose()


__all__ = [
    "RedisJobStore",
]
