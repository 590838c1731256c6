# planner.py
# Plan generator.
#
# The model is an untrusted text source. Its reply must contain a ```json
# fenced block holding a plan object; anything else is rejected outright
# with no free-text fallback and no partial acceptance. Every failure path ends in
# None plus a logged reason, so the caller can simply ask again.

import json
import logging
import re

from pydantic import ValidationError

from plan_agent.errors import PlanFormatError
from plan_agent.llm import Completion
from plan_agent.models import ContextSnapshot, Plan, StepType

logger = logging.getLogger(__name__)

EDITOR_PREVIEW_LENGTH = 500
FILE_STRUCTURE_LENGTH = 4000
RAW_RESPONSE_LOG_LENGTH = 2000

_FENCED_JSON = re.compile(r"```json[ \t]*\r?\n(.*?)\r?\n?```", re.DOTALL | re.IGNORECASE)


# ---------------------------------------------------------------------------
# System Prompt
# ---------------------------------------------------------------------------

_STEP_TYPE_LINES = {
    StepType.CREATE: "create a new file (target = path, content = file content)",
    StepType.EDIT: "edit an existing file (target = path, content = new content)",
    StepType.DELETE: "delete a file (target = path)",
    StepType.MOVE: "move or rename a file (target = path, destination = new path)",
    StepType.SEARCH: "search file contents (query = text to find)",
    StepType.COMPILE: "compile a LaTeX document (target = root .tex file)",
    StepType.TERMINAL: "run a terminal command (content = command line)",
    StepType.UI: "show a message to the user (content = message)",
}

SYSTEM_PROMPT = (
    """\
You are LaTeX Master, an assistant that edits LaTeX projects. Analyse the user's \
request, then produce a detailed, executable plan.

You may use these step types:
"""
    + "\n".join(f"{i}. {t.value} - {line}" for i, (t, line) in enumerate(_STEP_TYPE_LINES.items(), 1))
    + """

Respond with the plan in a fenced json block of exactly this shape:

```json
{
  "analysis": "what the user needs",
  "goal": "the goal to reach",
  "steps": [
    {
      "id": 1,
      "type": "create|edit|delete|move|search|compile|terminal|ui",
      "description": "what this step does",
      "target": "file path or object of the operation",
      "content": "file content or operation parameter",
      "reasoning": "why this step is needed"
    }
  ],
  "expectedOutcome": "the expected result"
}
```

Rules:
- Understand the user's intent precisely.
- Steps run strictly in order; make each one concrete and executable.
- Follow LaTeX best practices.
- Keep every operation safe and proportionate to the request.\
"""
)


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------


def extract_plan(response: str) -> Plan:
    """
    Extract and validate the first ```json block of ``response``.

    Raises PlanFormatError if the block is absent, is not valid JSON, or
    does not describe a plan with a ``steps`` list.
    """
    match = _FENCED_JSON.search(response or "")
    if not match:
        raise PlanFormatError("response contains no ```json block")

    try:
        data = json.loads(match.group(1))
    except json.JSONDecodeError as exc:
        raise PlanFormatError(f"plan JSON is malformed: {exc}") from exc

    if not isinstance(data, dict):
        raise PlanFormatError("plan must be a JSON object")
    if not isinstance(data.get("steps"), list):
        raise PlanFormatError("plan is missing a 'steps' list")

    try:
        return Plan.model_validate(data)
    except ValidationError as exc:
        raise PlanFormatError(f"plan content is invalid: {exc}") from exc


def build_prompt(message: str, context: ContextSnapshot | None = None) -> list[dict[str, str]]:
    """Deterministic system + user messages for ``message`` and ``context``."""
    parts = [f"User request: {message}\n"]

    if context is not None:
        if context.project:
            parts.append(f"Project information:\n{json.dumps(context.project, indent=2, default=str)}\n")

        if context.file_structure:
            structure = context.file_structure
            if len(structure) > FILE_STRUCTURE_LENGTH:
                structure = structure[:FILE_STRUCTURE_LENGTH] + "\n..."
            parts.append(f"File structure:\n{structure}\n")

        editor = context.editor
        if editor and editor.get("content"):
            content = editor["content"]
            preview = content[:EDITOR_PREVIEW_LENGTH]
            if len(content) > EDITOR_PREVIEW_LENGTH:
                preview += "..."
            parts.append(
                f"Currently open file:\nPath: {editor.get('file_path')}\nContent preview:\n{preview}\n"
            )

        if context.history:
            lines = [f"{i}. {entry.description}" for i, entry in enumerate(context.history, 1)]
            parts.append("Recent actions:\n" + "\n".join(lines) + "\n")

    parts.append("Analyse the information above and produce a detailed execution plan.")
    return [
        {"role": "system", "content": SYSTEM_PROMPT},
        {"role": "user", "content": "\n".join(parts)},
    ]


# ---------------------------------------------------------------------------
# Generator
# ---------------------------------------------------------------------------


class PlanGenerator:
    def __init__(self, llm: Completion) -> None:
        self._llm = llm

    def parse_plan(self, response: str) -> Plan | None:
        """Plan from raw model text, or None with the reason logged."""
        try:
            plan = extract_plan(response)
        except PlanFormatError as exc:
            logger.warning("Plan parsing failed: %s", exc)
            logger.debug("Raw response: %s", (response or "")[:RAW_RESPONSE_LOG_LENGTH])
            return None

        logger.info("Plan parsed: %d step(s)", len(plan.steps))
        return plan

    async def generate_plan(self, message: str, context: ContextSnapshot | None = None) -> Plan | None:
        """
        Ask the model for a plan.

        Never raises: a failed completion or an unusable reply returns None.
        Session state is left untouched; the caller decides what to keep.
        """
        messages = build_prompt(message, context)
        try:
            response = await self._llm.complete(messages)
        except Exception as exc:
            logger.error("Plan generation failed: %s", exc)
            return None
        return self.parse_plan(response)
