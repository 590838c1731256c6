import pytest

from plan_agent.editor import BufferEditor
from plan_agent.filesystem import LocalFileSystem
from plan_agent.history import ExecutionHistory
from plan_agent.registry import ToolRegistry
from plan_agent.tools import ToolContext, register_default_tools


class FakeClock:
    """Monotonic clock the tests advance by hand."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def project(tmp_path):
    root = tmp_path / "project"
    (root / "chapters").mkdir(parents=True)
    (root / "main.tex").write_text("\\documentclass{article}\n\\begin{document}\nHello\n\\end{document}")
    (root / "refs.bib").write_text("@book{knuth84, title={The TeXbook}}")
    (root / "chapters" / "intro.tex").write_text("Introduction text\nSecond line")
    (root / ".hidden").write_text("secret")
    return root


@pytest.fixture
def fs(project):
    return LocalFileSystem(project)


@pytest.fixture
def history():
    return ExecutionHistory(limit=50)


@pytest.fixture
def editor():
    return BufferEditor()


@pytest.fixture
def tool_context(fs, history, editor):
    return ToolContext(fs=fs, history=history, editor=editor)


@pytest.fixture
def registry(tool_context):
    return register_default_tools(ToolRegistry(), tool_context)


@pytest.fixture
def clock():
    return FakeClock()
