# tools.py
# Built-in tool implementations.
# The executor reaches these only through the registry; nothing calls the
# handlers directly. Each handler takes the session's ToolContext and the
# validated argument dict and returns a ToolResult.

import logging
import re
import shlex
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from functools import partial
from pathlib import PurePosixPath
from typing import Any, Protocol

from plan_agent.config import DEFAULT_COMPILE_COMMAND
from plan_agent.editor import Editor, detect_language
from plan_agent.errors import InvalidArgumentError, IOFailure
from plan_agent.filesystem import (
    DEFAULT_MAX_DEPTH,
    FileSystem,
    build_tree,
    join_path,
    scan_directory,
)
from plan_agent.history import ExecutionHistory
from plan_agent.models import ToolResult
from plan_agent.registry import ToolRegistry
from plan_agent.shell import ShellRunner

logger = logging.getLogger(__name__)

_LOG_LEVELS = {"info": logging.INFO, "warning": logging.WARNING, "error": logging.ERROR}


class ChangeLog(Protocol):
    async def recent(self, limit: int) -> list[dict[str, Any]]: ...


@dataclass
class ToolContext:
    """Collaborators shared by every built-in tool in one session."""

    fs: FileSystem
    history: ExecutionHistory
    editor: Editor | None = None
    shell: ShellRunner | None = None
    notifier: Callable[[str, str], None] | None = None
    change_log: ChangeLog | None = None
    allow_shell: bool = True
    compile_command: str = DEFAULT_COMPILE_COMMAND


def _invalid(message: str, **fields: Any) -> ToolResult:
    return ToolResult.fail(message, InvalidArgumentError.error_type, **fields)


def _io_failure(exc: Exception, **fields: Any) -> ToolResult:
    return ToolResult.fail(str(exc) or type(exc).__name__, IOFailure.error_type, **fields)


def glob_to_regex(pattern: str) -> re.Pattern:
    """Anchored, case-insensitive regex for a ``*``/``?`` file-name glob."""
    parts = []
    for ch in pattern:
        if ch == "*":
            parts.append(".*")
        elif ch == "?":
            parts.append(".")
        else:
            parts.append(re.escape(ch))
    return re.compile("^" + "".join(parts) + "$", re.IGNORECASE)


# ---------------------------------------------------------------------------
# File tools
# ---------------------------------------------------------------------------


async def _tool_read_file(ctx: ToolContext, args: dict) -> ToolResult:
    file_path = args.get("file_path")
    encoding = args.get("encoding", "utf8")
    if not isinstance(file_path, str) or not file_path.strip():
        return _invalid(f"invalid file path: {file_path!r}", file_path=str(file_path))

    try:
        content = await ctx.fs.read_file(file_path, encoding)
        st = await ctx.fs.stat(file_path)
    except (OSError, ValueError) as exc:
        return _io_failure(exc, file_path=file_path)

    if content is None:
        return ToolResult.fail(
            f"file could not be read: {file_path}", IOFailure.error_type, file_path=file_path
        )

    content = str(content)
    return ToolResult.ok(
        file_path=file_path,
        content=content,
        size=len(content),
        encoding=encoding,
        last_modified=st.mtime.isoformat(),
    )


async def _tool_write_file(ctx: ToolContext, args: dict) -> ToolResult:
    file_path = args["file_path"]
    content = args["content"]
    encoding = args.get("encoding", "utf8")
    if not file_path.strip():
        return _invalid("file path must not be empty", file_path=file_path)

    try:
        await ctx.fs.write_file(file_path, content, encoding)
    except (OSError, ValueError) as exc:
        return _io_failure(exc, file_path=file_path)

    return ToolResult.ok(
        file_path=file_path,
        content_length=len(content),
        encoding=encoding,
        message=f"Wrote {len(content)} characters to {file_path}.",
    )


async def _tool_edit_file(ctx: ToolContext, args: dict) -> ToolResult:
    file_path = args["file_path"]
    content = args["content"]
    start_line = args.get("start_line")
    end_line = args.get("end_line", start_line)

    try:
        st = await ctx.fs.stat(file_path)
        if st.is_directory():
            return _invalid(f"{file_path} is a directory", file_path=file_path)
        original = await ctx.fs.read_file(file_path, "utf8")
    except (OSError, ValueError) as exc:
        return _io_failure(exc, file_path=file_path)

    if start_line is None:
        updated = content
        start_line, end_line = 1, len(original.split("\n"))
    else:
        lines = original.split("\n")
        if not 1 <= start_line <= len(lines) + 1 or end_line < start_line - 1 or end_line > len(lines):
            return _invalid(
                f"line range {start_line}-{end_line} is outside 1-{len(lines)}",
                file_path=file_path,
            )
        lines[start_line - 1:end_line] = content.split("\n")
        updated = "\n".join(lines)

    try:
        await ctx.fs.write_file(file_path, updated, "utf8")
    except (OSError, ValueError) as exc:
        return _io_failure(exc, file_path=file_path)

    return ToolResult.ok(
        file_path=file_path,
        start_line=start_line,
        end_line=end_line,
        content_length=len(updated),
    )


async def _tool_move_file(ctx: ToolContext, args: dict) -> ToolResult:
    source = args["source_path"]
    destination = args["destination_path"]
    echo = {"source_path": source, "destination_path": destination}
    if not destination.strip():
        return _invalid("destination path must not be empty", **echo)

    try:
        if (await ctx.fs.stat(source)).is_directory():
            return _invalid(f"{source} is a directory; only files can be moved", **echo)
        try:
            dest_stat = await ctx.fs.stat(destination)
        except FileNotFoundError:
            dest_stat = None
        if dest_stat is not None and dest_stat.is_directory():
            destination = join_path(destination, PurePosixPath(source).name)
            echo["destination_path"] = destination
        elif dest_stat is not None:
            return _invalid(f"destination {destination} already exists", **echo)

        content = await ctx.fs.read_file(source, "utf8")
        await ctx.fs.write_file(destination, content, "utf8")
        await ctx.fs.unlink(source)
    except (OSError, ValueError) as exc:
        return _io_failure(exc, **echo)

    return ToolResult.ok(message=f"Moved {source} to {destination}.", **echo)


async def _tool_delete_file(ctx: ToolContext, args: dict) -> ToolResult:
    file_path = args["file_path"]
    try:
        if (await ctx.fs.stat(file_path)).is_directory():
            return _invalid(
                f"{file_path} is a directory; use delete_directory instead", file_path=file_path
            )
        await ctx.fs.unlink(file_path)
    except OSError as exc:
        return _io_failure(exc, file_path=file_path)

    return ToolResult.ok(file_path=file_path, message=f"Deleted {file_path}.")


async def _tool_create_directory(ctx: ToolContext, args: dict) -> ToolResult:
    directory_path = args["directory_path"]
    try:
        try:
            st = await ctx.fs.stat(directory_path)
        except FileNotFoundError:
            st = None
        if st is not None:
            if st.is_directory():
                return ToolResult.ok(
                    directory_path=directory_path, message=f"{directory_path} already exists."
                )
            return _invalid(f"{directory_path} exists and is a file", directory_path=directory_path)
        await ctx.fs.mkdir(directory_path)
    except OSError as exc:
        return _io_failure(exc, directory_path=directory_path)

    return ToolResult.ok(directory_path=directory_path, message=f"Created {directory_path}.")


async def _delete_children(fs: FileSystem, directory: str, warnings: list[str]) -> None:
    """Post-order removal of everything under ``directory``. Failures become warnings."""
    try:
        names = await fs.readdir(directory)
    except OSError as exc:
        logger.warning("Cannot read directory %s: %s", directory, exc)
        warnings.append(f"{directory}: {exc}")
        return

    for name in names:
        path = join_path(directory, name)
        try:
            st = await fs.stat(path)
            if st.is_directory():
                await _delete_children(fs, path, warnings)
                await fs.rmdir(path)
            else:
                await fs.unlink(path)
        except OSError as exc:
            logger.warning("Cannot delete %s: %s", path, exc)
            warnings.append(f"{path}: {exc}")


async def _tool_delete_directory(ctx: ToolContext, args: dict) -> ToolResult:
    directory_path = args["directory_path"]
    recursive = args.get("recursive", True)
    warnings: list[str] = []
    try:
        if not (await ctx.fs.stat(directory_path)).is_directory():
            return _invalid(
                f"{directory_path} is not a directory; use delete_file instead",
                directory_path=directory_path,
            )
        if recursive:
            await _delete_children(ctx.fs, directory_path, warnings)
        await ctx.fs.rmdir(directory_path)
    except OSError as exc:
        return _io_failure(exc, directory_path=directory_path, warnings=warnings)

    return ToolResult.ok(
        directory_path=directory_path,
        recursive=recursive,
        message=f"Deleted {directory_path}.",
        warnings=warnings,
    )


async def _tool_list_files(ctx: ToolContext, args: dict) -> ToolResult:
    directory_path = args.get("directory_path", "/")
    try:
        if not (await ctx.fs.stat(directory_path)).is_directory():
            return _invalid(f"{directory_path} is not a directory", directory_path=directory_path)
    except OSError as exc:
        return _io_failure(exc, directory_path=directory_path)

    entries = await scan_directory(
        ctx.fs,
        directory_path,
        recursive=args.get("recursive", False),
        file_types=args.get("file_types"),
    )
    keys = ("name", "path", "type", "size", "extension")
    files = [{key: entry.get(key, "") for key in keys} for entry in entries]
    return ToolResult.ok(directory_path=directory_path, files=files)


async def _tool_get_file_structure(ctx: ToolContext, args: dict) -> ToolResult:
    max_depth = int(args.get("max_depth", DEFAULT_MAX_DEPTH))
    include_hidden = args.get("include_hidden", False)
    if max_depth < 1:
        return _invalid("max_depth must be at least 1")

    structure = await build_tree(ctx.fs, "/", max_depth=max_depth, include_hidden=include_hidden)
    return ToolResult.ok(structure=structure, max_depth=max_depth, include_hidden=include_hidden)


async def _tool_search_in_files(ctx: ToolContext, args: dict) -> ToolResult:
    query = args["query"]
    file_pattern = args.get("file_pattern")
    case_sensitive = args.get("case_sensitive", False)
    max_results = int(args.get("max_results", 50))
    if not query:
        return _invalid("query must not be empty", query=query)
    if max_results < 1:
        return _invalid("max_results must be at least 1", query=query)

    files = [e for e in await scan_directory(ctx.fs, "/", recursive=True) if e["type"] == "file"]
    if file_pattern:
        regex = glob_to_regex(file_pattern)
        files = [f for f in files if regex.match(f["name"])]

    needle = query if case_sensitive else query.lower()
    results: list[dict[str, Any]] = []
    for entry in files:
        if len(results) >= max_results:
            break
        try:
            content = await ctx.fs.read_file(entry["path"], "utf8")
        except (OSError, ValueError) as exc:
            logger.warning("Cannot search %s: %s", entry["path"], exc)
            continue

        for number, line in enumerate(content.split("\n"), start=1):
            haystack = line if case_sensitive else line.lower()
            position = haystack.find(needle)
            if position < 0:
                continue
            text = line.strip()
            if needle not in (text if case_sensitive else text.lower()):
                text = line
            results.append(
                {
                    "file_path": entry["path"],
                    "line_number": number,
                    "line_content": text,
                    "match_position": position,
                }
            )
            if len(results) >= max_results:
                break

    return ToolResult.ok(
        query=query,
        results=results,
        total_matches=len(results),
        files_searched=len(files),
    )


# ---------------------------------------------------------------------------
# Editor tools
# ---------------------------------------------------------------------------


async def _tool_get_current_file(ctx: ToolContext, args: dict) -> ToolResult:
    editor = ctx.editor
    if editor is None or not editor.current_file:
        return ToolResult.fail("no file is open")

    content = editor.get_text()
    return ToolResult.ok(
        file_path=editor.current_file,
        content=content,
        line_count=editor.line_count(),
        language=detect_language(editor.current_file),
        size=len(content),
    )


async def _tool_get_selection(ctx: ToolContext, args: dict) -> ToolResult:
    if ctx.editor is None:
        return ToolResult.fail("editor is not available")

    selection = ctx.editor.selection()
    if selection is None or selection.is_empty():
        return ToolResult.fail("no text is selected")

    return ToolResult.ok(
        text=selection.text,
        start_line=selection.start_line,
        start_column=selection.start_column,
        end_line=selection.end_line,
        end_column=selection.end_column,
        length=len(selection.text),
    )


async def _tool_get_cursor_position(ctx: ToolContext, args: dict) -> ToolResult:
    if ctx.editor is None:
        return ToolResult.fail("editor is not available")

    position = ctx.editor.cursor_position()
    if position is None:
        return ToolResult.fail("no file is open")

    return ToolResult.ok(
        line=position.line,
        column=position.column,
        offset=ctx.editor.offset_at(position),
        total_lines=ctx.editor.line_count(),
    )


# ---------------------------------------------------------------------------
# Project tools
# ---------------------------------------------------------------------------


async def _tool_get_project_info(ctx: ToolContext, args: dict) -> ToolResult:
    entries = await scan_directory(ctx.fs, "/", recursive=True)
    files = [e for e in entries if e["type"] == "file"]

    files_by_type: dict[str, dict[str, int]] = {}
    for entry in files:
        bucket = files_by_type.setdefault(entry["extension"] or "unknown", {"count": 0, "size": 0})
        bucket["count"] += 1
        bucket["size"] += entry["size"]

    return ToolResult.ok(
        total_files=len(files),
        total_directories=len(entries) - len(files),
        total_size=sum(e["size"] for e in files),
        files_by_type=files_by_type,
        current_file=ctx.editor.current_file if ctx.editor else None,
        open_tabs=len(ctx.editor.open_tabs()) if ctx.editor else 0,
    )


async def _tool_get_open_tabs(ctx: ToolContext, args: dict) -> ToolResult:
    if ctx.editor is None:
        return ToolResult.ok(tabs=[], current_file=None, total_tabs=0)

    current = ctx.editor.current_file
    tabs = [
        {
            "file_path": path,
            "is_current": path == current,
            "is_dirty": tab.is_dirty,
            "size": len(tab.content),
        }
        for path, tab in ctx.editor.open_tabs().items()
    ]
    return ToolResult.ok(tabs=tabs, current_file=current, total_tabs=len(tabs))


async def _tool_get_recent_changes(ctx: ToolContext, args: dict) -> ToolResult:
    limit = int(args.get("limit", 10))
    if limit < 0:
        return _invalid("limit must not be negative")

    if ctx.change_log is not None:
        changes = list(await ctx.change_log.recent(limit))[:limit]
    else:
        changes = [
            {
                "file_path": entry.target,
                "action": entry.type,
                "timestamp": entry.timestamp.isoformat(),
                "description": entry.description,
            }
            for entry in reversed(ctx.history.recent(limit))
        ]
    return ToolResult.ok(changes=changes, total=len(changes))


# ---------------------------------------------------------------------------
# Shell and UI tools
# ---------------------------------------------------------------------------


def _shell_unavailable(ctx: ToolContext) -> str | None:
    if not ctx.allow_shell:
        return "shell commands are disabled by configuration"
    if ctx.shell is None:
        return "no shell is configured for this session"
    return None


async def _tool_compile_document(ctx: ToolContext, args: dict) -> ToolResult:
    file_path = args.get("file_path", "/main.tex")
    reason = _shell_unavailable(ctx)
    if reason:
        return _invalid(reason, file_path=file_path)

    relative = PurePosixPath(file_path.lstrip("/"))
    if not relative.parts or ".." in relative.parts:
        return _invalid(f"invalid document path: {file_path}", file_path=file_path)

    command = ctx.compile_command.format(file=shlex.quote(str(relative)))
    result = await ctx.shell.run(command)
    if result.timed_out:
        return ToolResult.fail("compilation timed out", file_path=file_path, command=command)
    if not result.ok:
        return ToolResult.fail(
            f"compilation failed with exit code {result.exit_code}",
            file_path=file_path,
            command=command,
            exit_code=result.exit_code,
            output=result.output,
        )
    return ToolResult.ok(
        file_path=file_path, command=command, exit_code=result.exit_code, output=result.output
    )


async def _tool_run_terminal_command(ctx: ToolContext, args: dict) -> ToolResult:
    command = args["command"]
    reason = _shell_unavailable(ctx)
    if reason:
        return _invalid(reason, command=command)
    if not command.strip():
        return _invalid("command must not be empty", command=command)

    result = await ctx.shell.run(command, timeout=args.get("timeout"))
    if result.timed_out:
        return ToolResult.fail("command timed out", command=command)
    if not result.ok:
        return ToolResult.fail(
            f"command exited with code {result.exit_code}",
            command=command,
            exit_code=result.exit_code,
            output=result.output,
        )
    return ToolResult.ok(command=command, exit_code=result.exit_code, output=result.output)


async def _tool_show_message(ctx: ToolContext, args: dict) -> ToolResult:
    message = args["message"]
    level = args.get("level", "info")
    if level not in _LOG_LEVELS:
        return _invalid(f"unknown message level: {level}", message=message)

    logger.log(_LOG_LEVELS[level], "UI message: %s", message)
    if ctx.notifier is not None:
        ctx.notifier(message, level)
    return ToolResult.ok(message=message, level=level)


# ---------------------------------------------------------------------------
# Registration table
# ---------------------------------------------------------------------------


def _params(required: list[str] | None = None, **properties: dict) -> dict:
    return {"type": "object", "properties": properties, "required": required or []}


def _string(description: str, **extra: Any) -> dict:
    return {"type": "string", "description": description, **extra}


ToolFn = Callable[[ToolContext, dict], Awaitable[ToolResult]]

DEFAULT_TOOLS: list[tuple[str, str, dict, ToolFn]] = [
    (
        "read_file",
        "Read the content of a file in the project.",
        _params(
            ["file_path"],
            file_path=_string("Project path of the file, e.g. /main.tex."),
            encoding=_string("File encoding.", default="utf8"),
        ),
        _tool_read_file,
    ),
    (
        "write_file",
        "Create a file or overwrite its content.",
        _params(
            ["file_path", "content"],
            file_path=_string("Project path of the file."),
            content=_string("Full content to write."),
            encoding=_string("File encoding.", default="utf8"),
        ),
        _tool_write_file,
    ),
    (
        "edit_file",
        "Replace a line range of an existing file, or the whole file when no range is given.",
        _params(
            ["file_path", "content"],
            file_path=_string("Project path of the file."),
            content=_string("Replacement text."),
            start_line={"type": "integer", "description": "First line to replace (1-based)."},
            end_line={"type": "integer", "description": "Last line to replace, inclusive."},
        ),
        _tool_edit_file,
    ),
    (
        "move_file",
        "Move or rename a file.",
        _params(
            ["source_path", "destination_path"],
            source_path=_string("Current project path."),
            destination_path=_string("New project path, or an existing directory."),
        ),
        _tool_move_file,
    ),
    (
        "delete_file",
        "Delete a single file.",
        _params(["file_path"], file_path=_string("Project path of the file.")),
        _tool_delete_file,
    ),
    (
        "create_directory",
        "Create a directory.",
        _params(["directory_path"], directory_path=_string("Project path of the directory.")),
        _tool_create_directory,
    ),
    (
        "delete_directory",
        "Delete a directory and, by default, everything in it.",
        _params(
            ["directory_path"],
            directory_path=_string("Project path of the directory."),
            recursive={"type": "boolean", "description": "Delete contents first.", "default": True},
        ),
        _tool_delete_directory,
    ),
    (
        "list_files",
        "List the files and folders of a directory.",
        _params(
            directory_path=_string("Directory to list.", default="/"),
            recursive={"type": "boolean", "description": "Descend into subdirectories.", "default": False},
            file_types={
                "type": "array",
                "items": {"type": "string"},
                "description": 'Extensions to keep, e.g. ["tex", "md"].',
            },
        ),
        _tool_list_files,
    ),
    (
        "get_file_structure",
        "Get the project's file tree.",
        _params(
            max_depth={"type": "number", "description": "Maximum depth.", "default": DEFAULT_MAX_DEPTH},
            include_hidden={"type": "boolean", "description": "Include dotfiles.", "default": False},
        ),
        _tool_get_file_structure,
    ),
    (
        "search_in_files",
        "Search the project's files for text.",
        _params(
            ["query"],
            query=_string("Text to search for."),
            file_pattern=_string('File name glob, e.g. "*.tex".'),
            case_sensitive={"type": "boolean", "description": "Match case.", "default": False},
            max_results={"type": "number", "description": "Maximum matches.", "default": 50},
        ),
        _tool_search_in_files,
    ),
    (
        "get_current_file",
        "Get the path and content of the file open in the editor.",
        _params(),
        _tool_get_current_file,
    ),
    ("get_selection", "Get the text selected in the editor.", _params(), _tool_get_selection),
    (
        "get_cursor_position",
        "Get the editor cursor position.",
        _params(),
        _tool_get_cursor_position,
    ),
    (
        "get_project_info",
        "Get project statistics: file counts, sizes and types.",
        _params(),
        _tool_get_project_info,
    ),
    ("get_open_tabs", "List the editor's open tabs.", _params(), _tool_get_open_tabs),
    (
        "get_recent_changes",
        "Get the most recent changes made by the agent.",
        _params(limit={"type": "number", "description": "Number of changes.", "default": 10}),
        _tool_get_recent_changes,
    ),
    (
        "compile_document",
        "Compile a LaTeX document.",
        _params(file_path=_string("Project path of the root document.", default="/main.tex")),
        _tool_compile_document,
    ),
    (
        "run_terminal_command",
        "Run a shell command in the project root.",
        _params(
            ["command"],
            command=_string("Command line to run."),
            timeout={"type": "number", "description": "Seconds before the command is killed."},
        ),
        _tool_run_terminal_command,
    ),
    (
        "show_message",
        "Show a message to the user.",
        _params(
            ["message"],
            message=_string("Message text."),
            level=_string("info, warning or error.", default="info"),
        ),
        _tool_show_message,
    ),
]


def register_default_tools(registry: ToolRegistry, ctx: ToolContext) -> ToolRegistry:
    for name, description, parameters, fn in DEFAULT_TOOLS:
        registry.register_tool(name, description, parameters, partial(fn, ctx))
    return registry
