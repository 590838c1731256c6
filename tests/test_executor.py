import asyncio
from unittest.mock import AsyncMock

import pytest

from plan_agent.errors import StepMappingError
from plan_agent.executor import STEP_TOOLS, ExecutorState, PlanExecutor, map_step
from plan_agent.history import ExecutionHistory
from plan_agent.models import Plan, Step, StepStatus, StepType, ToolResult
from plan_agent.registry import ToolRegistry


def make_plan(*steps: dict, goal: str = "goal") -> Plan:
    return Plan(goal=goal, analysis="analysis", steps=[Step(**s) for s in steps], expectedOutcome="done")


@pytest.fixture
def executor(registry, history):
    return PlanExecutor(registry, history)


# ---------------------------------------------------------------------------
# Mapping
# ---------------------------------------------------------------------------


def test_every_step_type_has_a_tool():
    assert set(STEP_TOOLS) == set(StepType)


@pytest.mark.parametrize(
    "step, expected",
    [
        (
            {"type": "create", "target": "/a.tex", "content": "x"},
            ("write_file", {"file_path": "/a.tex", "content": "x"}),
        ),
        ({"type": "EDIT", "target": "/a.tex"}, ("edit_file", {"file_path": "/a.tex", "content": ""})),
        ({"type": "delete", "target": "/a.tex"}, ("delete_file", {"file_path": "/a.tex"})),
        (
            {"type": "move", "target": "/a.tex", "destination": "/b.tex"},
            ("move_file", {"source_path": "/a.tex", "destination_path": "/b.tex"}),
        ),
        ({"type": "search", "target": "abstract"}, ("search_in_files", {"query": "abstract"})),
        ({"type": "search", "query": "q", "target": "t"}, ("search_in_files", {"query": "q"})),
        ({"type": "compile"}, ("compile_document", {"file_path": "/main.tex"})),
        ({"type": "terminal", "content": "ls"}, ("run_terminal_command", {"command": "ls"})),
        ({"type": "ui", "description": "hello"}, ("show_message", {"message": "hello"})),
    ],
)
def test_map_step(step, expected):
    assert map_step(Step(**step)) == expected


def test_map_step_rejects_unknown_type():
    with pytest.raises(StepMappingError, match="teleport"):
        map_step(Step(type="teleport"))


# ---------------------------------------------------------------------------
# Execution
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_unknown_step_is_skipped_and_execution_continues(executor, history, project):
    plan = make_plan(
        {"id": 1, "type": "create", "description": "create a", "target": "/a.tex", "content": "x"},
        {"id": 2, "type": "bogus", "description": "nonsense"},
        {"id": 3, "type": "delete", "description": "delete a", "target": "/a.tex"},
    )

    report = await executor.execute(plan)

    assert [o.status for o in report.outcomes] == [
        StepStatus.SUCCEEDED,
        StepStatus.SKIPPED,
        StepStatus.SUCCEEDED,
    ]
    assert (report.succeeded, report.failed, report.skipped) == (2, 0, 1)
    assert not (project / "a.tex").exists()
    assert [e.description for e in history] == ["create a", "delete a"]
    assert executor.state is ExecutorState.IDLE


@pytest.mark.asyncio
async def test_failed_step_does_not_abort_or_roll_back(executor, history, project):
    plan = make_plan(
        {"type": "create", "description": "create b", "target": "/b.tex", "content": "b"},
        {"type": "delete", "description": "delete ghost", "target": "/ghost.tex"},
        {"type": "create", "description": "create c", "target": "/c.tex", "content": "c"},
    )

    report = await executor.execute(plan)

    assert [o.status for o in report.outcomes] == [
        StepStatus.SUCCEEDED,
        StepStatus.FAILED,
        StepStatus.SUCCEEDED,
    ]
    assert report.outcomes[1].tool == "delete_file"
    assert report.outcomes[1].error
    assert (project / "b.tex").read_text() == "b"
    assert (project / "c.tex").read_text() == "c"
    assert [e.description for e in history] == ["create b", "delete ghost", "create c"]


@pytest.mark.asyncio
async def test_failed_mapped_step_is_recorded_in_history(executor, history):
    report = await executor.execute(
        make_plan({"type": "delete", "description": "remove missing", "target": "/missing.tex"})
    )

    assert report.outcomes[0].status is StepStatus.FAILED
    assert len(history) == 1
    (entry,) = history
    assert (entry.description, entry.type, entry.target) == ("remove missing", "delete", "/missing.tex")


@pytest.mark.asyncio
async def test_report_rendering(executor):
    plan = make_plan(
        {"type": "create", "description": "create d", "target": "/d.tex", "content": "d"},
        {"type": "warp", "description": "warp drive"},
        goal="tidy up",
    )

    text = (await executor.execute(plan)).render()

    assert text.startswith("Goal: tidy up\nAnalysis: analysis")
    assert "[ok] Step 1: create d" in text
    assert "[skipped] Step 2: warp drive (unknown step type: 'warp')" in text
    assert text.endswith("Expected outcome: done")


@pytest.mark.asyncio
async def test_mutation_flag(executor):
    read_only = await executor.execute(make_plan({"type": "search", "target": "Hello"}))
    writing = await executor.execute(make_plan({"type": "create", "target": "/e.tex", "content": "e"}))

    assert read_only.mutated_files is False
    assert writing.mutated_files is True


# ---------------------------------------------------------------------------
# Busy lock
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_second_plan_is_rejected_while_executing(history):
    started, release = asyncio.Event(), asyncio.Event()

    async def slow_write(args):
        started.set()
        await release.wait()
        return ToolResult.ok()

    registry = ToolRegistry()
    registry.register_tool(
        "write_file",
        "Blocks until released.",
        {"properties": {"file_path": {"type": "string"}, "content": {"type": "string"}}},
        slow_write,
    )
    executor = PlanExecutor(registry, history)
    plan = make_plan({"type": "create", "description": "slow", "target": "/s.tex"})

    first = asyncio.create_task(executor.execute(plan))
    await started.wait()
    assert executor.is_executing

    second = await executor.execute(plan)
    assert second.busy is True
    assert second.outcomes == []
    assert len(history) == 0

    release.set()
    report = await first
    assert report.busy is False
    assert report.succeeded == 1
    assert len(history) == 1
    assert executor.state is ExecutorState.IDLE


@pytest.mark.asyncio
async def test_lock_is_released_when_dispatch_raises(history):
    registry = ToolRegistry()
    registry.invoke = AsyncMock(side_effect=RuntimeError("dispatcher crashed"))
    executor = PlanExecutor(registry, history)

    with pytest.raises(RuntimeError):
        await executor.execute(make_plan({"type": "delete", "target": "/x.tex"}))

    assert executor.state is ExecutorState.IDLE
    registry.invoke = AsyncMock(return_value=ToolResult.ok())
    report = await executor.execute(make_plan({"type": "delete", "target": "/x.tex"}))
    assert report.succeeded == 1


# ---------------------------------------------------------------------------
# History
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_history_is_bounded_and_evicts_oldest_first():
    history = ExecutionHistory(limit=3)
    registry = ToolRegistry()
    registry.invoke = AsyncMock(return_value=ToolResult.ok())
    executor = PlanExecutor(registry, history)

    plan = make_plan(*({"type": "ui", "description": f"step {i}"} for i in range(5)))
    await executor.execute(plan)

    assert len(history) == 3
    assert [e.description for e in history] == ["step 2", "step 3", "step 4"]
    assert [e.description for e in history.recent(2)] == ["step 3", "step 4"]
    assert all(e.type == "ui" for e in history)


def test_history_limit_must_be_positive():
    with pytest.raises(ValueError):
        ExecutionHistory(limit=0)
