# session.py
# Agent session: owns the collaborators and drives one request end to end.
#
# Control flow:
#   request → busy check → context snapshot → plan generation (LLM)
#   → sequential execution → history update → cache invalidation
#
# The session never prints; presentation belongs to display.py.

import logging
from collections.abc import Callable

from pydantic import BaseModel

from plan_agent.config import AgentConfig
from plan_agent.context import ContextCollector
from plan_agent.editor import Editor
from plan_agent.executor import PlanExecutor
from plan_agent.filesystem import FileSystem, LocalFileSystem
from plan_agent.history import ExecutionHistory
from plan_agent.llm import Completion, OpenAICompletion
from plan_agent.models import ExecutionReport, Plan
from plan_agent.planner import PlanGenerator
from plan_agent.registry import ToolRegistry
from plan_agent.shell import ShellRunner
from plan_agent.tools import ChangeLog, ToolContext, register_default_tools

logger = logging.getLogger(__name__)

BUSY_MESSAGE = "A task is already running. Please wait for it to finish."
NO_PLAN_MESSAGE = "Sorry, I could not understand the request. Please describe it again."
ANALYZE_REQUEST = (
    "Analyse the structure and content of the current project and suggest improvements."
)


class AgentResponse(BaseModel):
    text: str
    plan: Plan | None = None
    report: ExecutionReport | None = None
    busy: bool = False


class AgentSession:
    """
    One agent session: a tool registry, a context collector, a planner,
    an executor and the execution history they share.

    Example:
        session = AgentSession.from_config(AgentConfig.from_env().resolve())
        response = await session.process_message("Add an abstract to main.tex")
    """

    def __init__(
        self,
        llm: Completion,
        fs: FileSystem,
        *,
        editor: Editor | None = None,
        shell: ShellRunner | None = None,
        notifier: Callable[[str, str], None] | None = None,
        change_log: ChangeLog | None = None,
        config: AgentConfig | None = None,
        clock: Callable[[], float] | None = None,
    ) -> None:
        cfg = config or AgentConfig(project_root=getattr(fs, "root", "."))
        self.config = cfg
        self.history = ExecutionHistory(cfg.history_limit)
        self.registry = ToolRegistry()
        register_default_tools(
            self.registry,
            ToolContext(
                fs=fs,
                history=self.history,
                editor=editor,
                shell=shell,
                notifier=notifier,
                change_log=change_log,
                allow_shell=cfg.allow_shell,
                compile_command=cfg.compile_command,
            ),
        )
        collector_kwargs = {"clock": clock} if clock is not None else {}
        self.context = ContextCollector(
            fs,
            editor,
            ttl=cfg.cache_ttl,
            history_context_size=cfg.history_context_size,
            **collector_kwargs,
        )
        self.planner = PlanGenerator(llm)
        self.executor = PlanExecutor(self.registry, self.history)
        self.current_plan: Plan | None = None

    @classmethod
    def from_config(
        cls,
        cfg: AgentConfig,
        *,
        editor: Editor | None = None,
        notifier: Callable[[str, str], None] | None = None,
    ) -> "AgentSession":
        return cls(
            OpenAICompletion.from_config(cfg),
            LocalFileSystem(cfg.project_root),
            editor=editor,
            shell=ShellRunner(cfg.project_root, timeout=cfg.shell_timeout) if cfg.allow_shell else None,
            notifier=notifier,
            config=cfg,
        )

    @property
    def is_executing(self) -> bool:
        return self.executor.is_executing

    async def process_message(self, message: str) -> AgentResponse:
        """Plan and execute ``message``. Busy sessions refuse immediately."""
        if self.executor.is_executing:
            return AgentResponse(text=BUSY_MESSAGE, busy=True)

        logger.info("User request: %s", message)
        snapshot = await self.context.collect(message, self.history)
        plan = await self.planner.generate_plan(message, snapshot)
        if plan is None:
            return AgentResponse(text=NO_PLAN_MESSAGE)

        report = await self.executor.execute(plan)
        if report.busy:
            return AgentResponse(text=BUSY_MESSAGE, plan=plan, report=report, busy=True)
        self.current_plan = plan

        if report.mutated_files:
            self.context.clear_cache()
        return AgentResponse(text=report.render(), plan=plan, report=report)

    async def analyze_project(self) -> str | None:
        """Ask the planner for a project analysis without executing anything."""
        snapshot = await self.context.collect(ANALYZE_REQUEST, self.history)
        plan = await self.planner.generate_plan(ANALYZE_REQUEST, snapshot)
        return plan.analysis if plan is not None else None
