"""End-to-end tests for the orchestration loop over a scripted engine and fake tools."""

import json

import pytest

from taskAgent.blackboard import Blackboard
from taskAgent.core.models import (
    ConfidenceTier,
    ExecutionContext,
    ResultStatus,
    Task,
    TaskStatus,
    TerminationReason,
)
from taskAgent.loop.events import COMPLETED, ERROR, TOOL_RESULT
from taskAgent.utils.error_handler import ModelInvocationError

from conftest import DONE, FakeToolRegistry, ScriptedEngine, make_settings


def call(tool, **args):
    return json.dumps({"tool": tool, "args": args})


def done(summary):
    return json.dumps({"done": True, "summary": summary})


def make_task(role="executor", description="Investigate the repository"):
    return Task(id="t1", description=description, assigned_role=role)


@pytest.fixture
def tools():
    return FakeToolRegistry({
        "local::search": lambda args: f"results for {args.get('q')}",
        "local::lookup": lambda args: f"record {args.get('id')}",
        "local::file_read": lambda args: "contents of a.txt",
        "local::shell_execute": "ran",
    })


class TestCompletion:
    """Runs that end with a completion signal."""

    @pytest.mark.asyncio
    async def test_completion_after_tool_call(self, make_loop, tools):
        engine = ScriptedEngine([call("local::search", q="x"), done("Found it")])
        task = make_task()
        result = await make_loop(engine, tools).run(task, ExecutionContext(task_id="t1"))

        assert result.status == ResultStatus.SUCCESS
        assert result.reason == TerminationReason.COMPLETED
        assert result.confidence == 0.9
        assert result.tier == ConfidenceTier.HIGH
        assert result.output == "Found it"
        assert result.tools_called == ["local::search"]
        assert result.steps == 2
        assert result.tokens_in == 20
        assert result.tokens_out == 10
        assert result.model == "scripted-model"
        assert task.status == TaskStatus.COMPLETED
        assert task.attempts == 1

    @pytest.mark.asyncio
    async def test_completion_without_tools_is_partial(self, make_loop, tools):
        engine = ScriptedEngine([done("I already know")])
        result = await make_loop(engine, tools).run(make_task(), ExecutionContext(task_id="t1"))
        assert result.status == ResultStatus.PARTIAL
        assert result.confidence == 0.7
        assert result.tier == ConfidenceTier.HIGH

    @pytest.mark.asyncio
    async def test_bare_tool_name_resolves_to_local(self, make_loop, tools):
        engine = ScriptedEngine([call("search", q="x"), DONE])
        result = await make_loop(engine, tools).run(make_task(), ExecutionContext(task_id="t1"))
        assert tools.calls_for("local::search") == [{"q": "x"}]
        assert result.tools_called == ["local::search"]

    @pytest.mark.asyncio
    async def test_event_sequence(self, make_loop, tools, recorder):
        engine = ScriptedEngine([call("local::search", q="x"), DONE])
        await make_loop(engine, tools).run(make_task(), ExecutionContext(task_id="t1"))
        assert recorder.types == ["thinking", "acting", "tool-result", "thinking", "completed"]
        assert recorder.of_type(TOOL_RESULT)[0].payload["summary"] == "results for x"
        assert recorder.of_type(COMPLETED)[0].payload["tools_called"] == ["local::search"]


class TestCorrections:
    """Unparseable replies get corrective re-prompts."""

    @pytest.mark.asyncio
    async def test_gives_up_after_max_corrections(self, make_loop, tools):
        engine = ScriptedEngine(["garbage 1", "garbage 2", "garbage 3"])
        result = await make_loop(engine, tools).run(make_task(), ExecutionContext(task_id="t1"))

        assert engine.call_count == 3
        assert "INVALID RESPONSE FORMAT" in engine.calls[1]["user"]
        assert result.reason == TerminationReason.UNPARSEABLE
        assert result.status == ResultStatus.PARTIAL
        assert result.confidence == 0.5
        assert result.tier == ConfidenceTier.MEDIUM
        assert result.output == "garbage 3"

    @pytest.mark.asyncio
    async def test_recovers_after_correction(self, make_loop, tools):
        engine = ScriptedEngine(["let me think", call("local::search", q="x"), done("ok")])
        result = await make_loop(engine, tools).run(make_task(), ExecutionContext(task_id="t1"))
        assert result.status == ResultStatus.SUCCESS
        assert result.reason == TerminationReason.COMPLETED


class TestLoopDetection:

    @pytest.mark.asyncio
    async def test_identical_calls_stop_before_third_execution(self, make_loop, tools):
        repeated = call("local::search", q="x")
        engine = ScriptedEngine([repeated, repeated, repeated, "Searched twice, nothing new."])
        result = await make_loop(engine, tools).run(make_task(), ExecutionContext(task_id="t1"))

        assert len(tools.calls_for("local::search")) == 2
        assert result.reason == TerminationReason.LOOP_DETECTED
        assert result.loop_detected
        assert result.status == ResultStatus.PARTIAL
        assert result.confidence == 0.5
        assert result.tier == ConfidenceTier.MEDIUM
        # The fourth engine call is the tool-free wrap-up
        assert engine.call_count == 4
        assert engine.calls[3]["options"].response_format is None
        assert result.output == "Searched twice, nothing new."

    @pytest.mark.asyncio
    async def test_warning_skips_call_and_reaches_prompt(self, make_loop, tools):
        engine = ScriptedEngine([call("local::search", q=str(i)) for i in range(5)] + [done("stopping")])
        result = await make_loop(engine, tools).run(make_task(), ExecutionContext(task_id="t1"))

        assert len(tools.calls_for("local::search")) == 4
        skipped = result.tool_results[4]
        assert not skipped.success
        assert skipped.content.startswith("STUCK DETECTION")
        assert "WARNING:" in engine.calls[5]["user"]
        assert result.reason == TerminationReason.COMPLETED

    @pytest.mark.asyncio
    async def test_summary_falls_back_when_model_calls_a_tool(self, make_loop, tools):
        repeated = call("local::search", q="x")
        engine = ScriptedEngine([repeated, repeated, repeated, repeated])
        result = await make_loop(engine, tools).run(make_task(), ExecutionContext(task_id="t1"))
        assert result.reason == TerminationReason.LOOP_DETECTED
        assert "Completed 2 tool call(s)" in result.output


class TestLimits:
    """Cancellation, timeout and the step ceiling."""

    @pytest.mark.asyncio
    async def test_cancellation_skips_summary_call(self, make_loop):
        ctx = ExecutionContext(task_id="t1")

        def cancel_during_tool(args):
            ctx.cancellation.cancel("user stop")
            return "partial data"

        tools = FakeToolRegistry({"local::search": cancel_during_tool})
        engine = ScriptedEngine([call("local::search", q="x")])
        result = await make_loop(engine, tools).run(make_task(), ctx)

        assert engine.call_count == 1
        assert result.reason == TerminationReason.CANCELLED
        assert result.status == ResultStatus.PARTIAL
        assert result.confidence == 0.3
        assert result.tier == ConfidenceTier.LOW
        assert "user stop" in result.output

    @pytest.mark.asyncio
    async def test_cancelled_before_start_fails(self, make_loop, tools):
        ctx = ExecutionContext(task_id="t1")
        ctx.cancellation.cancel("never mind")
        engine = ScriptedEngine()
        task = make_task()
        result = await make_loop(engine, tools).run(task, ctx)
        assert engine.call_count == 0
        assert result.status == ResultStatus.FAILED
        assert result.confidence == 0.2
        assert task.status == TaskStatus.FAILED

    @pytest.mark.asyncio
    async def test_timeout(self, make_loop, clock):
        def slow(args):
            clock.advance(601)
            return "slow result"

        tools = FakeToolRegistry({"local::search": slow})
        engine = ScriptedEngine([call("local::search", q="x"), "Ran out of time after one search."])
        result = await make_loop(engine, tools).run(make_task(), ExecutionContext(task_id="t1"))

        assert result.reason == TerminationReason.TIMED_OUT
        assert result.status == ResultStatus.PARTIAL
        assert result.confidence == 0.3
        assert result.output == "Ran out of time after one search."
        assert result.duration_ms >= 601_000

    @pytest.mark.asyncio
    async def test_step_ceiling(self, make_loop, tools):
        settings = make_settings(loop={"absolute_max_steps": 3})
        engine = ScriptedEngine([
            call("local::search", q="1"),
            call("local::lookup", id=2),
            call("local::search", q="3"),
            "Three steps were not enough.",
        ])
        loop = make_loop(engine, tools, settings)
        assert loop.limits_for("executor") == (3, 600.0)
        result = await loop.run(make_task(), ExecutionContext(task_id="t1"))

        assert result.reason == TerminationReason.STEP_CEILING
        assert result.steps == 3
        assert result.status == ResultStatus.PARTIAL
        assert result.tier == ConfidenceTier.LOW
        assert engine.call_count == 4

    @pytest.mark.asyncio
    async def test_soft_warning_shown_once(self, make_loop, tools):
        settings = make_settings(loop={"soft_warning_step": 2})
        engine = ScriptedEngine([
            call("local::search", q="1"),
            call("local::lookup", id=2),
            call("local::search", q="3"),
            DONE,
        ])
        await make_loop(engine, tools, settings).run(make_task(), ExecutionContext(task_id="t1"))
        assert "NOTE: You have used 2" in engine.calls[2]["user"]
        assert "NOTE: You have used" not in engine.calls[3]["user"]


class TestPermissionsAndCache:

    @pytest.mark.asyncio
    async def test_permission_denied_never_reaches_registry(self, make_loop, tools):
        engine = ScriptedEngine([call("local::shell_execute", command="ls"), DONE])
        result = await make_loop(engine, tools).run(make_task(role="researcher"), ExecutionContext(task_id="t1"))

        assert tools.calls == []
        assert result.tool_results[0].content.startswith("PermissionDenied:")
        assert result.status == ResultStatus.PARTIAL

    @pytest.mark.asyncio
    async def test_role_only_sees_permitted_tools(self, make_loop, tools):
        engine = ScriptedEngine([DONE])
        await make_loop(engine, tools).run(make_task(role="researcher"), ExecutionContext(task_id="t1"))
        system = engine.calls[0]["system"]
        assert "- local::file_read:" in system
        assert "- local::search:" not in system
        assert "local::shell_execute" not in system

    @pytest.mark.asyncio
    async def test_repeated_read_served_from_cache(self, make_loop, tools, recorder):
        engine = ScriptedEngine([
            call("local::file_read", path="a.txt"),
            call("local::file_read", path="A.txt"),
            DONE,
        ])
        result = await make_loop(engine, tools).run(make_task(), ExecutionContext(task_id="t1"))

        assert len(tools.calls_for("local::file_read")) == 1
        assert result.tool_results[1].content == "contents of a.txt"
        assert result.tool_results[1].duration_ms == 0
        assert recorder.of_type(TOOL_RESULT)[1].payload["summary"] == "Read from cache"
        assert "FILES ALREADY READ" in engine.calls[1]["user"]


class TestDelegation:

    @pytest.mark.asyncio
    async def test_delegation_runs_nested_loop(self, make_loop, tools):
        blackboard = Blackboard()
        ctx = ExecutionContext(task_id="t1", plan_id="plan-1", blackboard=blackboard)
        engine = ScriptedEngine([
            call("local::delegate_to_agent", agent="researcher", task="Find the release date"),
            done("Released in May"),
            done("The release was in May"),
        ])
        result = await make_loop(engine, tools).run(make_task(), ctx)

        assert engine.call_count == 3
        assert 'ORIGINAL USER REQUEST: "Investigate the repository"' in engine.calls[1]["user"]
        delegated = result.tool_results[0]
        assert delegated.success
        assert "Released in May" in delegated.content
        assert result.tokens_in == 30
        assert [e.value for e in blackboard.read("plan-1", "delegation:researcher")] == ["Released in May"]
        assert [e.value for e in blackboard.read("plan-1", "final-summary")] == [
            "Released in May",
            "The release was in May",
        ]

    @pytest.mark.asyncio
    async def test_depth_limit(self, make_loop, tools):
        ctx = ExecutionContext(task_id="t1", delegation_depth=1, max_delegation_depth=1)
        engine = ScriptedEngine([
            call("local::delegate_to_agent", agent="researcher", task="dig"),
            DONE,
        ])
        result = await make_loop(engine, tools).run(make_task(), ctx)
        assert engine.call_count == 2
        assert "maximum delegation depth (1) reached" in result.tool_results[0].content

    @pytest.mark.asyncio
    async def test_self_delegation_denied(self, make_loop, tools):
        engine = ScriptedEngine([
            call("local::delegate_to_agent", agent="executor", task="do it yourself"),
            DONE,
        ])
        result = await make_loop(engine, tools).run(make_task(), ExecutionContext(task_id="t1"))
        assert "cannot delegate to itself" in result.tool_results[0].content
        assert engine.call_count == 2

    @pytest.mark.asyncio
    async def test_shared_context_from_other_roles(self, make_loop, tools):
        blackboard = Blackboard()
        blackboard.write("plan-1", "api-notes", "endpoint is /v2", "coder", "t0")
        ctx = ExecutionContext(task_id="t1", plan_id="plan-1", blackboard=blackboard)
        engine = ScriptedEngine([DONE])
        await make_loop(engine, tools).run(make_task(), ctx)
        assert "SHARED CONTEXT" in engine.calls[0]["user"]
        assert "api-notes: endpoint is /v2" in engine.calls[0]["user"]


class TestFailuresAndCompaction:

    @pytest.mark.asyncio
    async def test_engine_failure(self, make_loop, tools, recorder):
        engine = ScriptedEngine([ModelInvocationError("provider down")])
        task = make_task()
        result = await make_loop(engine, tools).run(task, ExecutionContext(task_id="t1"))

        assert result.status == ResultStatus.FAILED
        assert result.reason == TerminationReason.ERROR
        assert result.confidence == 0.0
        assert result.error == "provider down"
        assert recorder.of_type(ERROR)[0].payload["message"] == "provider down"
        assert task.status == TaskStatus.FAILED

    @pytest.mark.asyncio
    async def test_compaction_rewrites_prompt_history_only(self, make_loop):
        settings = make_settings(context={"keep_recent_actions": 1}, context_window=2000)
        tools = FakeToolRegistry({
            "local::search": "s" * 2000,
            "local::lookup": "l" * 2000,
        })
        engine = ScriptedEngine(
            [call("local::search", q="x"), call("local::lookup", id=1), DONE],
            tokens_in=1500,
        )
        result = await make_loop(engine, tools, settings).run(make_task(), ExecutionContext(task_id="t1"))

        assert "== CONTEXT COMPACTED ==" not in engine.calls[1]["user"]
        prompt = engine.calls[2]["user"]
        assert "== CONTEXT COMPACTED ==" in prompt
        assert "[Compacted] search: OK" in prompt
        assert result.tool_results[0].content == "s" * 2000
        assert result.status == ResultStatus.SUCCESS
