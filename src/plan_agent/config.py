# config.py
# Session configuration. Values come from the constructor or the environment;
# nothing here is persisted.

import os
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel, Field

DEFAULT_COMPILE_COMMAND = "latexmk -pdf -interaction=nonstopmode {file}"


class AgentConfig(BaseModel):
    project_root: Path = Field(..., description="Directory every tool is jailed to.")

    # LLM
    api_key: str | None = Field(None, description="API key for the OpenAI-compatible endpoint.")
    base_url: str = "https://api.openai.com/v1"
    model: str = "gpt-4o"
    temperature: float = 0.7
    max_tokens: int = 4000
    request_timeout: float = 120.0

    # Context and history
    cache_ttl: float = Field(30.0, description="Seconds a context cache entry stays valid.")
    history_limit: int = Field(50, ge=1, description="Execution history entries retained.")
    history_context_size: int = Field(5, ge=0, description="History entries fed to the planner.")

    # Shell
    allow_shell: bool = True
    shell_timeout: float = 120.0
    compile_command: str = DEFAULT_COMPILE_COMMAND

    @classmethod
    def from_env(cls, **overrides) -> "AgentConfig":
        """Build a config from ``.env`` / ``PLAN_AGENT_*`` variables, then apply overrides."""
        load_dotenv()
        values: dict = {
            "project_root": Path(os.getenv("PLAN_AGENT_PROJECT_ROOT", os.getcwd())),
            "api_key": os.getenv("PLAN_AGENT_API_KEY") or os.getenv("OPENAI_API_KEY"),
        }
        env_map = {
            "base_url": "PLAN_AGENT_BASE_URL",
            "model": "PLAN_AGENT_MODEL",
            "temperature": "PLAN_AGENT_TEMPERATURE",
            "max_tokens": "PLAN_AGENT_MAX_TOKENS",
            "cache_ttl": "PLAN_AGENT_CACHE_TTL",
            "history_limit": "PLAN_AGENT_HISTORY_LIMIT",
            "allow_shell": "PLAN_AGENT_ALLOW_SHELL",
            "compile_command": "PLAN_AGENT_COMPILE_COMMAND",
        }
        for field, var in env_map.items():
            raw = os.getenv(var)
            if raw is not None:
                values[field] = raw
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls.model_validate(values)

    def resolve(self) -> "AgentConfig":
        self.project_root = self.project_root.expanduser().resolve()
        return self
