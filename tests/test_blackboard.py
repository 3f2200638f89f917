"""Tests for the plan-scoped Blackboard."""

import asyncio

import pytest

from taskAgent.blackboard import Blackboard


class TestWrites:
    """Upsert, cap and plan isolation."""

    def test_write_and_read(self):
        board = Blackboard()
        assert board.write("plan-1", "finding", "42 files", "researcher", "t1")
        entries = board.read("plan-1", "finding")
        assert len(entries) == 1
        assert entries[0].value == "42 files"
        assert entries[0].writer_role == "researcher"

    def test_same_writer_overwrites(self):
        board = Blackboard()
        board.write("p", "k", "old", "coder", "t1")
        board.write("p", "k", "new", "coder", "t1")
        assert board.count("p") == 1
        assert board.read("p", "k")[0].value == "new"

    def test_different_writers_coexist(self):
        board = Blackboard()
        board.write("p", "k", "a", "coder", "t1")
        board.write("p", "k", "b", "coder", "t2")
        board.write("p", "k", "c", "reviewer", "t1")
        assert board.count("p") == 3
        assert [e.value for e in board.read_by_role("p", "coder")] == ["a", "b"]
        assert [e.value for e in board.read_by_task("p", "t1")] == ["a", "c"]

    def test_cap_drops_new_keys(self):
        board = Blackboard(max_entries_per_plan=2)
        assert board.write("p", "a", "1", "r", "t")
        assert board.write("p", "b", "2", "r", "t")
        assert not board.write("p", "c", "3", "r", "t")
        assert board.count("p") == 2
        # Updating an existing key is still allowed at the cap
        assert board.write("p", "a", "updated", "r", "t")
        assert board.read("p", "a")[0].value == "updated"

    def test_plans_are_isolated(self):
        board = Blackboard()
        board.write("p1", "k", "v", "r", "t")
        assert board.read_all("p2") == []
        board.clear("p1")
        assert board.active_plans() == []


class TestExpiry:
    """Whole-plan TTL eviction."""

    def test_sweep_evicts_stale_plans(self):
        now = [0.0]
        board = Blackboard(ttl_seconds=600, clock=lambda: now[0])
        board.write("old", "k", "v", "r", "t")
        now[0] = 500.0
        board.write("fresh", "k", "v", "r", "t")
        now[0] = 700.0
        assert board.sweep() == 1
        assert board.active_plans() == ["fresh"]

    def test_ttl_measured_from_first_write(self):
        now = [0.0]
        board = Blackboard(ttl_seconds=600, clock=lambda: now[0])
        board.write("p", "a", "v", "r", "t")
        now[0] = 590.0
        board.write("p", "b", "v", "r", "t")
        now[0] = 601.0
        assert board.sweep() == 1
        assert board.count("p") == 0

    def test_ttl_boundary(self):
        now = [1000.0]
        board = Blackboard(ttl_seconds=600, clock=lambda: now[0])
        board.write("p", "k", "v", "r", "t")

        now[0] = 1000.0 + 600 - 0.001
        assert board.sweep() == 0
        assert board.read("p", "k")[0].value == "v"

        now[0] = 1000.0 + 600 + 0.001
        assert board.sweep() == 1
        assert board.read("p", "k") == []

    @pytest.mark.asyncio
    async def test_periodic_sweep(self):
        now = [0.0]
        board = Blackboard(ttl_seconds=600, clock=lambda: now[0])
        board.write("p", "k", "v", "r", "t")
        intervals = []

        async def fake_sleep(interval):
            intervals.append(interval)
            if len(intervals) == 2:
                raise asyncio.CancelledError()
            now[0] += 700

        with pytest.raises(asyncio.CancelledError):
            await board.sweep_periodically(interval=60, sleep=fake_sleep)
        assert intervals == [60, 60]
        assert board.active_plans() == []


class TestPromptFormatting:
    """Rendering findings for other agents."""

    def test_excludes_own_writes(self):
        now = [100.0]
        board = Blackboard(clock=lambda: now[0])
        board.write("p", "mine", "skip me", "coder", "t1")
        board.write("p", "theirs", "show me", "researcher", "t2")
        now[0] = 130.0
        text = board.format_for_prompt("p", exclude_role="coder", exclude_task_id="t1")
        assert "show me" in text
        assert "skip me" not in text
        assert "[researcher/t2] (30s ago) theirs" in text

    def test_long_values_truncated(self):
        board = Blackboard()
        board.write("p", "k", "x" * 800, "r", "t")
        text = board.format_for_prompt("p")
        assert "x" * 500 + "..." in text
        assert "x" * 501 not in text

    def test_empty_plan(self):
        assert Blackboard().format_for_prompt("nothing") == ""
