"""
Tests for the operator CLI.
"""

import json

import pytest

from render_runtime.cli import build_parser, run_command
from render_runtime.config import Settings
from render_runtime.jobs import InMemoryJobStore


async def seed(store, clock, n: int):
    jobs = []
    for i in range(n):
        jobs.append(await store.create({"n": i}))
        clock.advance(1)
    return jobs


class TestParser:
    """Test argument parsing."""

    def test_commands(self):
        parser = build_parser()

        assert parser.parse_args(["stats"]).command == "stats"
        assert parser.parse_args(["status", "abc"]).job_id == "abc"
        assert parser.parse_args(["reap", "--loop"]).loop is True
        assert parser.parse_args(["--config", "r.toml", "reap"]).config == "r.toml"

    def test_command_required(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args([])


class TestCommands:
    """Test commands against an in-memory store."""

    @pytest.mark.asyncio
    async def test_stats(self, memory_store, clock, capsys):
        await seed(memory_store, clock, 2)
        args = build_parser().parse_args(["stats"])

        assert await run_command(args, Settings(), store=memory_store) == 0

        out = json.loads(capsys.readouterr().out)
        assert out["totalJobs"] == 2
        assert out["countsByStatus"]["queued"] == 2

    @pytest.mark.asyncio
    async def test_status_found(self, memory_store, clock, capsys):
        (job,) = await seed(memory_store, clock, 1)
        args = build_parser().parse_args(["status", job.id])

        assert await run_command(args, Settings(), store=memory_store) == 0

        out = json.loads(capsys.readouterr().out)
        assert out["id"] == job.id
        assert out["status"] == "queued"

    @pytest.mark.asyncio
    async def test_status_not_found(self, memory_store, capsys):
        args = build_parser().parse_args(["status", "missing"])

        assert await run_command(args, Settings(), store=memory_store) == 1
        assert "not found" in capsys.readouterr().err

    @pytest.mark.asyncio
    async def test_reap_once(self, clock, capsys):
        store = InMemoryJobStore(max_jobs=3, clock=clock)
        await seed(store, clock, 5)
        args = build_parser().parse_args(["reap"])

        assert await run_command(args, Settings(), store=store) == 0

        assert json.loads(capsys.readouterr().out) == {"removed": 2, "remaining": 3}
