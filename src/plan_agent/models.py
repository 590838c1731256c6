# models.py
# Data contracts for the plan agent.
# Pure schema and validation, no business logic.

import json
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from plan_agent.errors import InvalidArgumentError

ParameterType = Literal["string", "number", "integer", "boolean", "array", "object"]

_PY_TYPES: dict[str, tuple[type, ...]] = {
    "string": (str,),
    "number": (int, float),
    "integer": (int,),
    "boolean": (bool,),
    "array": (list, tuple),
    "object": (dict,),
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_text(value: Any) -> Any:
    """Model output is loosely typed; numbers and JSON values become text."""
    if value is None or isinstance(value, str):
        return value
    if isinstance(value, (dict, list)):
        return json.dumps(value, ensure_ascii=False)
    return str(value)


# ---------------------------------------------------------------------------
# Tool parameters
# ---------------------------------------------------------------------------


class ParameterSpec(BaseModel):
    """One named property of a tool's parameter schema."""

    model_config = ConfigDict(frozen=True)

    type: ParameterType
    description: str = ""
    default: Any = None
    items: dict | None = Field(default=None, description="Item schema for array parameters.")

    def accepts(self, value: Any) -> bool:
        # bool is an int subclass; JSON-Schema keeps them apart.
        if self.type in ("number", "integer") and isinstance(value, bool):
            return False
        return isinstance(value, _PY_TYPES[self.type])


class ParameterSchema(BaseModel):
    """JSON-Schema-like object schema: named properties plus a required list."""

    model_config = ConfigDict(frozen=True)

    type: Literal["object"] = "object"
    properties: dict[str, ParameterSpec] = Field(default_factory=dict)
    required: list[str] = Field(default_factory=list)

    @model_validator(mode="after")
    def _required_are_declared(self) -> "ParameterSchema":
        undeclared = [name for name in self.required if name not in self.properties]
        if undeclared:
            raise ValueError(f"required parameters not declared in properties: {undeclared}")
        return self

    def to_json_schema(self) -> dict[str, Any]:
        properties = {
            name: spec.model_dump(exclude_none=True) for name, spec in self.properties.items()
        }
        return {"type": self.type, "properties": properties, "required": list(self.required)}

    def validate_args(self, args: dict[str, Any]) -> dict[str, Any]:
        """
        Return a copy of ``args`` with defaults filled in.

        A ``None`` value counts as absent. Undeclared keys pass through untouched.
        Raises InvalidArgumentError on a missing required field or a type mismatch.
        """
        parsed = {key: value for key, value in args.items() if value is not None}

        for name, spec in self.properties.items():
            if name not in parsed:
                if name in self.required:
                    raise InvalidArgumentError(f"missing required parameter '{name}'")
                if spec.default is not None:
                    parsed[name] = spec.default
                continue
            if not spec.accepts(parsed[name]):
                raise InvalidArgumentError(
                    f"parameter '{name}' must be of type {spec.type}, "
                    f"got {type(parsed[name]).__name__}"
                )
        return parsed


class ToolResult(BaseModel):
    """
    Uniform result envelope for every tool call.

    Domain fields ride along as pydantic extras, so ``result.content`` works
    for a read_file result and ``result.model_dump()`` returns the full mapping.
    """

    model_config = ConfigDict(extra="allow")

    success: bool
    error: str | None = None
    error_type: str | None = None

    @classmethod
    def ok(cls, **fields: Any) -> "ToolResult":
        return cls(success=True, **fields)

    @classmethod
    def fail(cls, error: str, error_type: str = "ToolFailure", **fields: Any) -> "ToolResult":
        return cls(success=False, error=error or "unknown error", error_type=error_type, **fields)

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(exclude_none=True)


# ---------------------------------------------------------------------------
# Plans
# ---------------------------------------------------------------------------


class StepType(str, Enum):
    CREATE = "create"
    EDIT = "edit"
    DELETE = "delete"
    MOVE = "move"
    SEARCH = "search"
    COMPILE = "compile"
    TERMINAL = "terminal"
    UI = "ui"


MUTATING_STEP_TYPES = frozenset(
    t.value for t in (StepType.CREATE, StepType.EDIT, StepType.DELETE, StepType.MOVE)
)


class Step(BaseModel):
    """A single unit of work in a plan. Unknown types survive parsing."""

    model_config = ConfigDict(frozen=True)

    id: int | None = Field(default=None, description="1-based step index as emitted by the model.")
    type: str = ""
    description: str = ""
    target: str = ""
    content: str | None = None
    destination: str | None = None
    query: str | None = None
    reasoning: str | None = None
    action: str | None = None

    @field_validator("id", mode="before")
    @classmethod
    def _loose_id(cls, value: Any) -> int | None:
        if isinstance(value, bool):
            return None
        try:
            return int(value)
        except (TypeError, ValueError, OverflowError):
            return None

    @field_validator("type", "description", "target", mode="before")
    @classmethod
    def _none_to_empty(cls, value: Any) -> Any:
        return "" if value is None else _as_text(value)

    @field_validator("content", "destination", "query", "reasoning", "action", mode="before")
    @classmethod
    def _stringify(cls, value: Any) -> Any:
        return _as_text(value)

    @property
    def kind(self) -> StepType | None:
        try:
            return StepType(self.type.strip().lower())
        except ValueError:
            return None


class Plan(BaseModel):
    """A complete execution plan emitted by the model."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    analysis: str = ""
    goal: str = ""
    steps: list[Step]
    expected_outcome: str = Field(default="", alias="expectedOutcome")

    @field_validator("analysis", "goal", "expected_outcome", mode="before")
    @classmethod
    def _none_to_empty(cls, value: Any) -> Any:
        return "" if value is None else _as_text(value)


class ExecutionHistoryEntry(BaseModel):
    """Immutable record of one executed step."""

    model_config = ConfigDict(frozen=True)

    timestamp: datetime = Field(default_factory=_utcnow)
    description: str
    type: str
    target: str = ""


# ---------------------------------------------------------------------------
# Execution results
# ---------------------------------------------------------------------------


class StepStatus(str, Enum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SKIPPED = "skipped"


class StepOutcome(BaseModel):
    index: int
    step_id: int | None = None
    type: str
    description: str
    status: StepStatus
    tool: str | None = None
    result: dict[str, Any] | None = None
    error: str | None = None


_STATUS_MARKERS = {
    StepStatus.SUCCEEDED: "[ok]",
    StepStatus.FAILED: "[failed]",
    StepStatus.SKIPPED: "[skipped]",
}


class ExecutionReport(BaseModel):
    """Aggregate result of executing a plan, or of refusing to."""

    goal: str = ""
    analysis: str = ""
    expected_outcome: str = ""
    busy: bool = False
    outcomes: list[StepOutcome] = Field(default_factory=list)

    def _count(self, status: StepStatus) -> int:
        return sum(1 for outcome in self.outcomes if outcome.status is status)

    @property
    def succeeded(self) -> int:
        return self._count(StepStatus.SUCCEEDED)

    @property
    def failed(self) -> int:
        return self._count(StepStatus.FAILED)

    @property
    def skipped(self) -> int:
        return self._count(StepStatus.SKIPPED)

    @property
    def mutated_files(self) -> bool:
        return any(
            outcome.status is StepStatus.SUCCEEDED and outcome.type in MUTATING_STEP_TYPES
            for outcome in self.outcomes
        )

    def render(self) -> str:
        if self.busy:
            return "A plan is already executing. Please wait for it to finish."

        lines = [f"Goal: {self.goal}", f"Analysis: {self.analysis}", ""]
        for outcome in self.outcomes:
            line = f"{_STATUS_MARKERS[outcome.status]} Step {outcome.index + 1}: {outcome.description}"
            if outcome.error:
                line += f" ({outcome.error})"
            lines.append(line)
        lines.append("")
        lines.append(f"Expected outcome: {self.expected_outcome}")
        return "\n".join(lines)


class ContextSnapshot(BaseModel):
    """Bundle of project and editor state handed to the planner."""

    user_message: str
    timestamp: datetime = Field(default_factory=_utcnow)
    project: dict[str, Any] | None = None
    file_structure: str | None = None
    editor: dict[str, Any] | None = None
    history: list[ExecutionHistoryEntry] = Field(default_factory=list)
