import pytest
from pydantic import ValidationError

from plan_agent import run
from plan_agent.config import DEFAULT_COMPILE_COMMAND, AgentConfig
from plan_agent.shell import ShellRunner

ENV_VARS = (
    "PLAN_AGENT_PROJECT_ROOT",
    "PLAN_AGENT_API_KEY",
    "OPENAI_API_KEY",
    "PLAN_AGENT_MODEL",
    "PLAN_AGENT_CACHE_TTL",
    "PLAN_AGENT_HISTORY_LIMIT",
    "PLAN_AGENT_ALLOW_SHELL",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch, tmp_path):
    for var in ENV_VARS:
        monkeypatch.delenv(var, raising=False)
    # keep load_dotenv away from any .env in the working tree
    monkeypatch.chdir(tmp_path)


def test_defaults(tmp_path):
    cfg = AgentConfig(project_root=tmp_path)
    assert cfg.cache_ttl == 30
    assert cfg.history_limit == 50
    assert cfg.compile_command == DEFAULT_COMPILE_COMMAND


def test_from_env(monkeypatch, tmp_path):
    monkeypatch.setenv("PLAN_AGENT_PROJECT_ROOT", str(tmp_path))
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
    monkeypatch.setenv("PLAN_AGENT_CACHE_TTL", "12.5")
    monkeypatch.setenv("PLAN_AGENT_HISTORY_LIMIT", "9")
    monkeypatch.setenv("PLAN_AGENT_ALLOW_SHELL", "false")

    cfg = AgentConfig.from_env(model="local-model", api_key=None)

    assert cfg.project_root == tmp_path
    assert cfg.api_key == "sk-test"
    assert cfg.model == "local-model"
    assert cfg.cache_ttl == 12.5
    assert cfg.history_limit == 9
    assert cfg.allow_shell is False


def test_history_limit_is_validated(tmp_path):
    with pytest.raises(ValidationError):
        AgentConfig(project_root=tmp_path, history_limit=0)


def test_parse_args():
    args = run.parse_args(["fix typos", "compile", "--root", "/tmp/p", "--no-shell"])
    assert args.prompts == ["fix typos", "compile"]
    assert args.root == "/tmp/p"
    assert args.no_shell is True
    assert args.analyze is False


@pytest.mark.asyncio
async def test_cli_refuses_to_start_without_api_key(tmp_path):
    args = run.parse_args(["--root", str(tmp_path), "hello"])
    assert await run._run(args) == 1


@pytest.mark.asyncio
async def test_shell_runner_captures_output_and_exit_code(tmp_path):
    runner = ShellRunner(tmp_path, timeout=10)

    ok = await runner.run("echo hello")
    failed = await runner.run("exit 3")

    assert ok.ok and ok.output.strip() == "hello"
    assert (failed.ok, failed.exit_code) == (False, 3)


@pytest.mark.asyncio
async def test_shell_runner_times_out(tmp_path):
    result = await ShellRunner(tmp_path).run("sleep 5", timeout=0.2)
    assert result.timed_out is True
    assert result.ok is False
