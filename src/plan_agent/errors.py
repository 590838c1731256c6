# errors.py
# Exception taxonomy for the plan agent.
#
# Tool-level errors carry an ``error_type`` so the dispatcher can fold them
# into a ToolResult without losing the category. None of these cross the
# dispatcher or planner boundary except DuplicateToolError.


class AgentError(Exception):
    """Base class for every error raised inside plan_agent."""


# ---------------------------------------------------------------------------
# Tool boundary
# ---------------------------------------------------------------------------


class ToolError(AgentError):
    """A tool-level failure. Converted to ``ToolResult(success=False)``."""

    error_type = "ToolFailure"


class UnknownToolError(ToolError):
    """Raised when a call names a tool absent from the registry."""

    error_type = "UnknownTool"


class ArgumentParseError(ToolError):
    """Raised when serialized tool arguments cannot be decoded."""

    error_type = "ArgumentParseError"


class InvalidArgumentError(ToolError):
    """Raised when decoded arguments do not satisfy the parameter schema."""

    error_type = "InvalidArgument"


class IOFailure(ToolError):
    """Raised when a read, write, stat or delete fails."""

    error_type = "IOFailure"


class DuplicateToolError(AgentError):
    """Raised when a tool name is registered twice. Always propagates."""


# ---------------------------------------------------------------------------
# Planning and execution
# ---------------------------------------------------------------------------


class PlanFormatError(AgentError):
    """Raised when model output holds no fenced JSON plan or the plan is malformed."""


class StepMappingError(AgentError):
    """Raised when a step type has no tool mapping."""
