import asyncio
import json
from unittest.mock import AsyncMock, MagicMock

import pytest

from plan_agent.config import AgentConfig
from plan_agent.models import ToolResult
from plan_agent.session import BUSY_MESSAGE, NO_PLAN_MESSAGE, AgentSession


def reply(*steps: dict, analysis: str = "looks fine") -> str:
    plan = {"analysis": analysis, "goal": "goal", "steps": list(steps), "expectedOutcome": "done"}
    return f"```json\n{json.dumps(plan)}\n```"


@pytest.fixture
def llm():
    return AsyncMock()


@pytest.fixture
def notifier():
    return MagicMock()


@pytest.fixture
def session(llm, fs, editor, notifier, clock, project):
    config = AgentConfig(project_root=project, cache_ttl=30)
    return AgentSession(llm, fs, editor=editor, notifier=notifier, config=config, clock=clock)


@pytest.mark.asyncio
async def test_process_message_end_to_end(session, llm, notifier, project):
    llm.complete.return_value = reply(
        {"id": 1, "type": "create", "description": "add appendix", "target": "/appendix.tex", "content": "A"},
        {"id": 2, "type": "ui", "description": "tell user", "content": "Appendix added"},
    )

    response = await session.process_message("add an appendix")

    assert response.busy is False
    assert response.report.succeeded == 2
    assert (project / "appendix.tex").read_text() == "A"
    notifier.assert_called_once_with("Appendix added", "info")
    assert session.current_plan is response.plan
    assert [e.description for e in session.history] == ["add appendix", "tell user"]
    assert "[ok] Step 1: add appendix" in response.text


@pytest.mark.asyncio
async def test_prompt_carries_context_and_history(session, llm):
    llm.complete.return_value = reply({"type": "ui", "description": "first", "content": "hi"})
    await session.process_message("first request")

    await session.process_message("second request")

    (messages,), _ = llm.complete.call_args
    prompt = messages[1]["content"]
    assert prompt.startswith("User request: second request")
    assert "main.tex (LaTeX)" in prompt
    assert "Recent actions:\n1. first" in prompt


@pytest.mark.asyncio
async def test_cache_is_cleared_after_file_mutation(session, llm):
    llm.complete.return_value = reply({"type": "search", "target": "Hello"})
    await session.process_message("find hello")
    assert "extra.tex" not in await session.context.get_file_structure()

    llm.complete.return_value = reply({"type": "create", "target": "/extra.tex", "content": "x"})
    await session.process_message("create extra")

    assert "extra.tex (LaTeX)" in await session.context.get_file_structure()


@pytest.mark.asyncio
async def test_read_only_plan_keeps_cache(session, llm, project):
    llm.complete.return_value = reply({"type": "search", "target": "Hello"})
    await session.process_message("find hello")
    (project / "outside.tex").write_text("written behind the agent's back")

    await session.process_message("find hello again")

    assert "outside.tex" not in await session.context.get_file_structure()


@pytest.mark.asyncio
async def test_unusable_plan_leaves_state_untouched(session, llm):
    llm.complete.return_value = "I cannot help with that."

    response = await session.process_message("do something")

    assert response.text == NO_PLAN_MESSAGE
    assert response.plan is None
    assert session.current_plan is None
    assert len(session.history) == 0


@pytest.mark.asyncio
async def test_busy_session_refuses_new_requests(session, llm):
    llm.complete.return_value = reply({"type": "ui", "content": "slow"})
    started, release = asyncio.Event(), asyncio.Event()

    async def blocking_invoke(name, args=None):
        started.set()
        await release.wait()
        return ToolResult.ok()

    session.registry.invoke = blocking_invoke
    first = asyncio.create_task(session.process_message("slow request"))
    await started.wait()

    busy = await session.process_message("impatient request")

    assert busy.busy is True
    assert busy.text == BUSY_MESSAGE
    assert llm.complete.await_count == 1

    release.set()
    done = await first
    assert done.busy is False
    assert session.is_executing is False


@pytest.mark.asyncio
async def test_rejected_plan_does_not_replace_running_plan(session, llm):
    gate, started, release = asyncio.Event(), asyncio.Event(), asyncio.Event()
    replies = [
        reply({"type": "ui", "content": "running"}, analysis="first"),
        reply({"type": "ui", "content": "rejected"}, analysis="second"),
    ]

    async def gated_complete(messages):
        await gate.wait()
        return replies.pop(0)

    async def blocking_invoke(name, args=None):
        started.set()
        await release.wait()
        return ToolResult.ok()

    llm.complete.side_effect = gated_complete
    session.registry.invoke = blocking_invoke

    first = asyncio.create_task(session.process_message("first"))
    second = asyncio.create_task(session.process_message("second"))
    await asyncio.sleep(0)
    gate.set()
    await started.wait()

    rejected = await second
    assert rejected.busy is True
    assert rejected.plan.analysis == "second"
    assert session.current_plan is None

    release.set()
    done = await first
    assert session.current_plan is done.plan
    assert session.current_plan.analysis == "first"


@pytest.mark.asyncio
async def test_analyze_project(session, llm, project):
    llm.complete.return_value = reply({"type": "delete", "target": "/main.tex"}, analysis="Add a bibliography.")

    assert await session.analyze_project() == "Add a bibliography."
    assert (project / "main.tex").exists()

    llm.complete.return_value = "no plan"
    assert await session.analyze_project() is None


def test_session_config_flows_into_collaborators(llm, fs, project):
    config = AgentConfig(project_root=project, history_limit=7, cache_ttl=5, allow_shell=False)

    session = AgentSession(llm, fs, config=config)

    assert session.history.limit == 7
    assert session.context.ttl == 5
    assert "compile_document" in session.registry
