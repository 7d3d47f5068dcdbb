"""
Behavioural tests shared by every JobStore implementation.
"""

import asyncio

import pytest

from render_runtime.jobs import JobPatch, JobStatus


@pytest.fixture(params=["memory", "redis"])
def store(request):
    return request.getfixturevalue(f"{request.param}_store")


class TestCreateAndGet:
    """Test creation and reads."""

    @pytest.mark.asyncio
    async def test_create_returns_queued_job(self, store, clock):
        job = await store.create({"title": "Quiz #1"})

        assert job.status == JobStatus.QUEUED
        assert job.input_props == {"title": "Quiz #1"}
        assert job.video_url is None
        assert job.error is None
        assert job.created_at == job.updated_at == int(clock() * 1000)
        assert await store.count() == 1

    @pytest.mark.asyncio
    async def test_get_round_trips_payload(self, store):
        payload = {"title": "Deck", "slides": [{"text": "a", "duration": 2.5}], "voice": None}
        job = await store.create(payload)

        fetched = await store.get(job.id)

        assert fetched == job
        assert fetched.input_props == payload

    @pytest.mark.asyncio
    async def test_get_unknown_returns_none(self, store):
        assert await store.get("does-not-exist") is None

    @pytest.mark.asyncio
    async def test_ids_unique_under_concurrent_creates(self, store):
        jobs = await asyncio.gather(*(store.create({"n": i}) for i in range(200)))

        ids = [job.id for job in jobs]
        assert len(set(ids)) == 200
        assert await store.count() == 200

    @pytest.mark.asyncio
    async def test_returned_records_are_copies(self, store):
        job = await store.create({"nested": {"a": 1}})
        job.input_props["nested"]["a"] = 2

        fetched = await store.get(job.id)
        assert fetched.input_props == {"nested": {"a": 1}}

    @pytest.mark.asyncio
    async def test_payload_mutation_after_create_is_not_shared(self, store):
        payload = {"slides": [{"text": "a"}]}
        job = await store.create(payload)
        payload["slides"].append({"text": "b"})

        assert job.input_props == {"slides": [{"text": "a"}]}
        assert (await store.get(job.id)).input_props == {"slides": [{"text": "a"}]}

class TestUpdate:
    """Test status transitions and partial updates."""

    @pytest.mark.asyncio
    async def test_full_lifecycle(self, store, clock):
        job = await store.create({})

        clock.advance(1)
        assert await store.update(job.id, JobPatch(status=JobStatus.RENDERING))
        clock.advance(1)
        assert await store.update(job.id, JobPatch(status=JobStatus.UPLOADING))
        clock.advance(1)
        assert await store.update(
            job.id, JobPatch(status=JobStatus.DONE, video_url="https://cdn/v.mp4")
        )

        done = await store.get(job.id)
        assert done.status == JobStatus.DONE
        assert done.video_url == "https://cdn/v.mp4"
        assert done.created_at == job.created_at
        assert done.updated_at == job.created_at + 3000

    @pytest.mark.asyncio
    async def test_update_unknown_returns_false(self, store):
        assert await store.update("missing", JobPatch(status=JobStatus.RENDERING)) is False

    @pytest.mark.asyncio
    async def test_invalid_transition_rejected(self, store):
        job = await store.create({})

        assert await store.update(job.id, JobPatch(status=JobStatus.DONE)) is False
        assert (await store.get(job.id)).status == JobStatus.QUEUED

    @pytest.mark.asyncio
    async def test_terminal_state_is_immutable(self, store):
        job = await store.create({})
        assert await store.update(job.id, JobPatch(status=JobStatus.ERROR, error="boom"))

        assert await store.update(job.id, JobPatch(status=JobStatus.DONE, video_url="x")) is False
        assert await store.update(job.id, JobPatch(error="other")) is False
        assert await store.update(job.id, JobPatch()) is False

        final = await store.get(job.id)
        assert final.status == JobStatus.ERROR
        assert final.error == "boom"
        assert final.video_url is None

    @pytest.mark.asyncio
    async def test_status_sequence_is_monotonic(self, store):
        job = await store.create({})
        order = [JobStatus.QUEUED, JobStatus.RENDERING, JobStatus.UPLOADING, JobStatus.DONE]
        attempts = [
            JobStatus.RENDERING,
            JobStatus.QUEUED,
            JobStatus.UPLOADING,
            JobStatus.RENDERING,
            JobStatus.DONE,
            JobStatus.UPLOADING,
        ]
        seen = []
        for status in attempts:
            video_url = "https://cdn/v.mp4" if status is JobStatus.DONE else None
            await store.update(job.id, JobPatch(status=status, video_url=video_url))
            seen.append((await store.get(job.id)).status)

        positions = [order.index(status) for status in seen]
        assert positions == sorted(positions)
        assert seen[-1] == JobStatus.DONE

    @pytest.mark.asyncio
    async def test_video_url_only_with_move_to_done(self, store):
        job = await store.create({})

        assert await store.update(job.id, JobPatch(video_url="https://x/v.mp4")) is False
        assert await store.update(job.id, JobPatch(status=JobStatus.RENDERING, video_url="https://x/v.mp4")) is False

        assert (await store.get(job.id)).video_url is None

    @pytest.mark.asyncio
    async def test_error_only_with_move_to_error(self, store):
        job = await store.create({})
        assert await store.update(job.id, JobPatch(status=JobStatus.RENDERING))

        assert await store.update(job.id, JobPatch(error="boom")) is False
        assert await store.update(job.id, JobPatch(status=JobStatus.UPLOADING, error="boom")) is False

        current = await store.get(job.id)
        assert current.status == JobStatus.RENDERING
        assert current.error is None

    @pytest.mark.asyncio
    async def test_done_requires_video_url(self, store):
        job = await store.create({})
        assert await store.update(job.id, JobPatch(status=JobStatus.RENDERING))
        assert await store.update(job.id, JobPatch(status=JobStatus.UPLOADING))

        assert await store.update(job.id, JobPatch(status=JobStatus.DONE)) is False
        assert await store.update(job.id, JobPatch(status=JobStatus.DONE, video_url="")) is False
        assert (await store.get(job.id)).status == JobStatus.UPLOADING

        assert await store.update(job.id, JobPatch(status=JobStatus.DONE, video_url="https://x/v.mp4"))
        done = await store.get(job.id)
        assert done.video_url == "https://x/v.mp4"
        assert done.error is None

    @pytest.mark.asyncio
    async def test_empty_patch_touches_updated_at(self, store, clock):
        job = await store.create({})
        clock.advance(5)

        assert await store.update(job.id, JobPatch())

        touched = await store.get(job.id)
        assert touched.status == JobStatus.QUEUED
        assert touched.updated_at == job.updated_at + 5000


class TestDeleteAndCount:
    """Test delete and count."""

    @pytest.mark.asyncio
    async def test_delete(self, store):
        job = await store.create({})

        assert await store.delete(job.id) is True
        assert await store.get(job.id) is None
        assert await store.count() == 0
        assert await store.delete(job.id) is False


class TestEviction:
    """Test age and count bounds."""

    @pytest.mark.asyncio
    async def test_nothing_to_evict(self, store):
        await store.create({})
        assert await store.evict() == 0
        assert await store.count() == 1

    @pytest.mark.asyncio
    async def test_count_bound_keeps_most_recent(self, store, clock):
        jobs = []
        for i in range(60):
            jobs.append(await store.create({"n": i}))
            clock.advance(1)

        removed = await store.evict()

        assert removed == 10
        assert await store.count() == 50
        for job in jobs[:10]:
            assert await store.get(job.id) is None
        for job in jobs[10:]:
            assert await store.get(job.id) is not None

    @pytest.mark.asyncio
    async def test_age_bound(self, store, clock):
        old = [await store.create({}) for _ in range(3)]
        clock.advance(hours=25)
        fresh = [await store.create({}) for _ in range(2)]

        assert await store.evict() == 3
        assert await store.count() == 2
        for job in old:
            assert await store.get(job.id) is None
        for job in fresh:
            assert await store.get(job.id) is not None

    @pytest.mark.asyncio
    async def test_age_and_count_in_one_pass(self, store, clock):
        for _ in range(5):
            await store.create({})
        clock.advance(hours=25)
        for _ in range(55):
            await store.create({})
            clock.advance(1)

        assert await store.evict() == 10
        assert await store.count() == 50

    @pytest.mark.asyncio
    async def test_eviction_is_idempotent(self, store, clock):
        for _ in range(55):
            await store.create({})
            clock.advance(1)

        assert await store.evict() == 5
        assert await store.evict() == 0


class TestStats:
    """Test aggregate stats."""

    @pytest.mark.asyncio
    async def test_empty_store(self, store):
        stats = await store.stats()
        assert stats.total_jobs == 0
        assert stats.oldest_age_hours is None

    @pytest.mark.asyncio
    async def test_counts_and_ages(self, store, clock):
        first = await store.create({})
        clock.advance(hours=2)
        second = await store.create({})
        await store.update(second.id, JobPatch(status=JobStatus.RENDERING))
        clock.advance(hours=1)

        stats = await store.stats()

        assert stats.total_jobs == 2
        assert stats.counts_by_status["queued"] == 1
        assert stats.counts_by_status["rendering"] == 1
        assert stats.counts_by_status["done"] == 0
        assert stats.oldest_age_hours == 3
        assert stats.newest_age_hours == 1
        assert first.id != second.id


class TestInMemoryExpiry:
    """Test TTL handling of the in-memory store."""

    @pytest.mark.asyncio
    async def test_ttl_boundary(self, memory_store, clock):
        job = await memory_store.create({})

        clock.advance(hours=24, seconds=-0.01)
        assert await memory_store.get(job.id) is not None

        clock.advance(0.02)
        assert await memory_store.get(job.id) is None
        assert await memory_store.update(job.id, JobPatch(status=JobStatus.RENDERING)) is False

    @pytest.mark.asyncio
    async def test_update_extends_ttl(self, memory_store, clock):
        job = await memory_store.create({})
        clock.advance(hours=20)
        assert await memory_store.update(job.id, JobPatch(status=JobStatus.RENDERING))

        clock.advance(hours=20)

        assert (await memory_store.get(job.id)).status == JobStatus.RENDERING

    @pytest.mark.asyncio
    async def test_stats_after_count_eviction(self, memory_store, clock):
        for _ in range(60):
            await memory_store.create({})
            clock.advance(1)

        await memory_store.evict()

        assert (await memory_store.stats()).total_jobs == 50
