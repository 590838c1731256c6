# registry.py
# Tool registry and dispatcher.
#
# The registry decouples "what can be done" from "who asks for it". Every
# call ends in a ToolResult: unknown names, undecodable arguments, schema
# violations and handler faults are all folded into success=False results.
# Only DuplicateToolError (a wiring bug) leaves this module as an exception.

import json
import logging
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass
from typing import Any

from plan_agent.errors import (
    ArgumentParseError,
    DuplicateToolError,
    IOFailure,
    ToolError,
    UnknownToolError,
)
from plan_agent.models import ParameterSchema, ToolResult

logger = logging.getLogger(__name__)

ToolHandler = Callable[[dict[str, Any]], Awaitable[ToolResult | Mapping[str, Any]]]


@dataclass(frozen=True)
class ToolDescriptor:
    name: str
    description: str
    parameters: ParameterSchema
    handler: ToolHandler

    def advertise(self) -> dict[str, Any]:
        """OpenAI ``tools`` entry for this descriptor."""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters.to_json_schema(),
            },
        }


def _decode_args(raw_args: Any) -> dict[str, Any]:
    if raw_args is None:
        return {}
    if isinstance(raw_args, (bytes, bytearray)):
        raw_args = raw_args.decode("utf-8", errors="replace")
    if isinstance(raw_args, str):
        if not raw_args.strip():
            return {}
        try:
            raw_args = json.loads(raw_args)
        except json.JSONDecodeError as exc:
            raise ArgumentParseError(f"could not parse tool arguments: {exc}") from exc
    if not isinstance(raw_args, Mapping):
        raise ArgumentParseError(
            f"tool arguments must be an object, got {type(raw_args).__name__}"
        )
    return dict(raw_args)


def _normalize(outcome: Any) -> ToolResult:
    if isinstance(outcome, ToolResult):
        return outcome
    if isinstance(outcome, Mapping):
        data = dict(outcome)
        data.setdefault("success", True)
        return ToolResult.model_validate(data)
    return ToolResult.ok(value=outcome)


class ToolRegistry:
    """Ordered set of tool descriptors plus the dispatcher that calls them."""

    def __init__(self) -> None:
        self._tools: dict[str, ToolDescriptor] = {}

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def register(self, descriptor: ToolDescriptor) -> ToolDescriptor:
        if descriptor.name in self._tools:
            raise DuplicateToolError(f"tool '{descriptor.name}' is already registered")
        self._tools[descriptor.name] = descriptor
        logger.debug("Registered tool %s", descriptor.name)
        return descriptor

    def register_tool(
        self,
        name: str,
        description: str,
        parameters: ParameterSchema | Mapping[str, Any],
        handler: ToolHandler,
    ) -> ToolDescriptor:
        schema = (
            parameters
            if isinstance(parameters, ParameterSchema)
            else ParameterSchema.model_validate(parameters)
        )
        return self.register(ToolDescriptor(name, description, schema, handler))

    def list_descriptors(self) -> list[dict[str, Any]]:
        """Tool definitions in registration order, in the shape the LLM expects."""
        return [tool.advertise() for tool in self._tools.values()]

    def names(self) -> list[str]:
        return list(self._tools)

    def get(self, name: str) -> ToolDescriptor | None:
        return self._tools.get(name)

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    async def invoke(self, name: str, raw_args: Any = None) -> ToolResult:
        """
        Execute tool ``name`` with ``raw_args`` (a mapping or a JSON string).

        Always returns a ToolResult; never raises.
        """
        try:
            tool = self._tools.get(name)
            if tool is None:
                raise UnknownToolError(f"unknown tool: {name}")
            args = tool.parameters.validate_args(_decode_args(raw_args))
        except ToolError as exc:
            logger.warning("Rejected call to %s: %s", name, exc)
            return ToolResult.fail(str(exc), exc.error_type, tool=name)

        logger.info("Executing tool %s", name)
        logger.debug("Arguments for %s: %s", name, args)
        try:
            result = _normalize(await tool.handler(args))
        except ToolError as exc:
            logger.warning("Tool %s failed: %s", name, exc)
            return ToolResult.fail(str(exc), exc.error_type, tool=name)
        except OSError as exc:
            logger.warning("Tool %s failed with I/O error: %s", name, exc)
            return ToolResult.fail(str(exc) or type(exc).__name__, IOFailure.error_type, tool=name)
        except Exception as exc:
            logger.exception("Tool %s raised", name)
            return ToolResult.fail(str(exc) or type(exc).__name__, ToolError.error_type, tool=name)

        if result.success:
            logger.info("Tool %s completed", name)
        else:
            logger.warning("Tool %s reported failure: %s", name, result.error)
        return result

    async def invoke_call(self, tool_call: Any) -> ToolResult:
        """Execute an OpenAI-style tool call (dict or SDK object)."""
        function = (
            tool_call.get("function")
            if isinstance(tool_call, Mapping)
            else getattr(tool_call, "function", None)
        )
        if function is None:
            return ToolResult.fail("tool call has no function", ArgumentParseError.error_type)
        if isinstance(function, Mapping):
            name, arguments = function.get("name"), function.get("arguments")
        else:
            name, arguments = getattr(function, "name", None), getattr(function, "arguments", None)
        return await self.invoke(str(name), arguments)
