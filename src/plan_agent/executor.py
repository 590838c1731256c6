# executor.py
# Plan executor.
#
# Steps run strictly in declared order, one at a time, through the tool
# registry. Execution is best-effort and non-transactional: a failed or
# unmappable step is recorded and the batch carries on; earlier successes
# are never rolled back. At most one plan runs per executor; a second
# request while EXECUTING is refused, not queued.

import logging
from collections.abc import Callable
from enum import Enum
from typing import Any

from plan_agent.errors import StepMappingError
from plan_agent.history import ExecutionHistory
from plan_agent.models import ExecutionReport, Plan, Step, StepOutcome, StepStatus, StepType
from plan_agent.registry import ToolRegistry

logger = logging.getLogger(__name__)

DEFAULT_COMPILE_TARGET = "/main.tex"


class ExecutorState(str, Enum):
    IDLE = "idle"
    EXECUTING = "executing"


# ---------------------------------------------------------------------------
# Step → tool mapping
# ---------------------------------------------------------------------------

ToolCall = tuple[str, dict[str, Any]]

STEP_TOOLS: dict[StepType, Callable[[Step], ToolCall]] = {
    StepType.CREATE: lambda s: ("write_file", {"file_path": s.target, "content": s.content or ""}),
    StepType.EDIT: lambda s: ("edit_file", {"file_path": s.target, "content": s.content or ""}),
    StepType.DELETE: lambda s: ("delete_file", {"file_path": s.target}),
    StepType.MOVE: lambda s: (
        "move_file",
        {"source_path": s.target, "destination_path": s.destination or ""},
    ),
    StepType.SEARCH: lambda s: ("search_in_files", {"query": s.query or s.target}),
    StepType.COMPILE: lambda s: ("compile_document", {"file_path": s.target or DEFAULT_COMPILE_TARGET}),
    StepType.TERMINAL: lambda s: ("run_terminal_command", {"command": s.content or s.target}),
    StepType.UI: lambda s: ("show_message", {"message": s.content or s.description}),
}

_unmapped = set(StepType) - set(STEP_TOOLS)
if _unmapped:
    raise RuntimeError(f"step types without a tool mapping: {sorted(t.value for t in _unmapped)}")


def map_step(step: Step) -> ToolCall:
    """Tool name and arguments for ``step``; raises StepMappingError on an unknown type."""
    kind = step.kind
    if kind is None:
        raise StepMappingError(f"unknown step type: {step.type!r}")
    return STEP_TOOLS[kind](step)


# ---------------------------------------------------------------------------
# Executor
# ---------------------------------------------------------------------------


class PlanExecutor:
    def __init__(self, registry: ToolRegistry, history: ExecutionHistory) -> None:
        self._registry = registry
        self._history = history
        self._state = ExecutorState.IDLE

    @property
    def state(self) -> ExecutorState:
        return self._state

    @property
    def is_executing(self) -> bool:
        return self._state is ExecutorState.EXECUTING

    async def execute(self, plan: Plan) -> ExecutionReport:
        """
        Run every step of ``plan`` and report per-step outcomes.

        Returns a ``busy`` report without touching history if another plan
        is already running.
        """
        # Test-and-set with no await in between: atomic on the event loop.
        if self._state is ExecutorState.EXECUTING:
            logger.warning("Plan rejected: another plan is executing")
            return ExecutionReport(
                goal=plan.goal,
                analysis=plan.analysis,
                expected_outcome=plan.expected_outcome,
                busy=True,
            )
        self._state = ExecutorState.EXECUTING

        try:
            report = ExecutionReport(
                goal=plan.goal, analysis=plan.analysis, expected_outcome=plan.expected_outcome
            )
            total = len(plan.steps)
            logger.info("Executing plan '%s' (%d steps)", plan.goal, total)

            for index, step in enumerate(plan.steps):
                logger.info("Step %d/%d: %s", index + 1, total, step.description)
                outcome = await self._execute_step(index, step)
                report.outcomes.append(outcome)
                if outcome.status is not StepStatus.SKIPPED:
                    self._history.record(step)

            logger.info(
                "Plan finished: %d succeeded, %d failed, %d skipped",
                report.succeeded,
                report.failed,
                report.skipped,
            )
            return report
        finally:
            self._state = ExecutorState.IDLE

    async def _execute_step(self, index: int, step: Step) -> StepOutcome:
        base = {
            "index": index,
            "step_id": step.id,
            "type": step.kind.value if step.kind else step.type,
            "description": step.description,
        }
        try:
            tool, args = map_step(step)
        except StepMappingError as exc:
            logger.warning("Skipping step %d: %s", index + 1, exc)
            return StepOutcome(status=StepStatus.SKIPPED, error=str(exc), **base)

        result = await self._registry.invoke(tool, args)
        if result.success:
            return StepOutcome(status=StepStatus.SUCCEEDED, tool=tool, result=result.to_dict(), **base)

        logger.warning("Step %d failed: %s", index + 1, result.error)
        return StepOutcome(
            status=StepStatus.FAILED,
            tool=tool,
            result=result.to_dict(),
            error=result.error,
            **base,
        )
