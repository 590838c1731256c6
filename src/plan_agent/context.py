# context.py
# Context collector: project, file-tree and editor snapshots for the planner.
#
# Project metadata and the rendered file tree are cached per category for a
# fixed TTL. There is no file-system event invalidation; a write inside the
# TTL window may not show up until the entry expires or clear_cache() runs.

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from plan_agent.editor import Editor, detect_language, text_statistics
from plan_agent.filesystem import FileSystem, scan_directory
from plan_agent.history import ExecutionHistory
from plan_agent.models import ContextSnapshot

logger = logging.getLogger(__name__)

CACHE_TTL_SECONDS = 30.0
PREVIEW_LENGTH = 1000

TEXT_EXTENSIONS = frozenset({"tex", "bib", "md", "txt", "sty", "cls"})
IMAGE_EXTENSIONS = frozenset({"png", "jpg", "jpeg", "pdf", "eps", "svg"})
FILE_LABELS = {"tex": "LaTeX", "bib": "Bibliography", "md": "Markdown"}


@dataclass
class CacheEntry:
    data: Any
    timestamp: float


class ContextCollector:
    """
    Builds context snapshots without rescanning the project on every request.

    ``clock`` must be monotonic; tests inject a fake one to step past the TTL.
    """

    def __init__(
        self,
        fs: FileSystem,
        editor: Editor | None = None,
        *,
        ttl: float = CACHE_TTL_SECONDS,
        history_context_size: int = 5,
        project_name: str = "LaTeX Project",
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.fs = fs
        self.editor = editor
        self.ttl = ttl
        self.history_context_size = history_context_size
        self.project_name = project_name
        self._clock = clock
        self._cache: dict[str, CacheEntry] = {}

    # ------------------------------------------------------------------
    # Cache
    # ------------------------------------------------------------------

    def _get_cached(self, key: str) -> Any | None:
        entry = self._cache.get(key)
        if entry is not None and self._clock() - entry.timestamp < self.ttl:
            return entry.data
        return None

    def _set_cached(self, key: str, data: Any) -> None:
        self._cache[key] = CacheEntry(data=data, timestamp=self._clock())

    def clear_cache(self) -> None:
        self._cache.clear()
        logger.debug("Context cache cleared")

    # ------------------------------------------------------------------
    # Project
    # ------------------------------------------------------------------

    async def _all_entries(self) -> list[dict[str, Any]]:
        entries = await scan_directory(self.fs, "/", recursive=True)
        return sorted(entries, key=lambda e: e["path"])

    async def get_project_metadata(self) -> dict[str, Any]:
        cached = self._get_cached("project")
        if cached is not None:
            return cached

        entries = await self._all_entries()
        files = [e for e in entries if e["type"] == "file"]
        modified = [e["last_modified"] for e in files]
        metadata = {
            "name": self.project_name,
            "type": "latex",
            "files": len(files),
            "directories": len(entries) - len(files),
            "size": sum(e["size"] for e in files),
            "last_modified": max(modified) if modified else None,
        }
        self._set_cached("project", metadata)
        return metadata

    async def get_file_structure(self) -> str:
        cached = self._get_cached("structure")
        if cached is not None:
            return cached

        try:
            entries = await self._all_entries()
        except Exception as exc:
            logger.error("Cannot build file structure: %s", exc)
            return f"Unable to read file structure: {exc}"

        structure = render_tree(entries)
        self._set_cached("structure", structure)
        return structure

    async def get_project_stats(self) -> dict[str, Any] | None:
        try:
            entries = await self._all_entries()
        except Exception as exc:
            logger.error("Cannot collect project stats: %s", exc)
            return None

        files = [e for e in entries if e["type"] == "file"]
        total_words = total_lines = 0
        for entry in files:
            if entry["extension"] not in TEXT_EXTENSIONS:
                continue
            try:
                content = await self.fs.read_file(entry["path"], "utf8")
            except (OSError, ValueError) as exc:
                logger.warning("Skipping unreadable file %s: %s", entry["path"], exc)
                continue
            stats = text_statistics(content)
            total_words += stats["words"]
            total_lines += stats["lines"]

        return {
            "total_files": len(files),
            "tex_files": sum(1 for f in files if f["extension"] == "tex"),
            "bib_files": sum(1 for f in files if f["extension"] == "bib"),
            "image_files": sum(1 for f in files if f["extension"] in IMAGE_EXTENSIONS),
            "total_words": total_words,
            "total_lines": total_lines,
            "project_size": sum(f["size"] for f in files),
        }

    # ------------------------------------------------------------------
    # Editor
    # ------------------------------------------------------------------

    async def get_editor_context(self) -> dict[str, Any] | None:
        editor = self.editor
        if editor is None or not editor.current_file:
            return None

        content = editor.get_text()
        position = editor.cursor_position()
        selection = editor.selection()
        preview = content[:PREVIEW_LENGTH] + ("..." if len(content) > PREVIEW_LENGTH else "")

        return {
            "file_path": editor.current_file,
            "content": content,
            "content_preview": preview,
            "language": detect_language(editor.current_file),
            "position": (
                {"line": position.line, "column": position.column}
                if position
                else {"line": 1, "column": 1}
            ),
            "selection": (
                {
                    "start_line": selection.start_line,
                    "start_column": selection.start_column,
                    "end_line": selection.end_line,
                    "end_column": selection.end_column,
                    "selected_text": selection.text,
                }
                if selection
                else None
            ),
            "statistics": text_statistics(content),
        }

    # ------------------------------------------------------------------
    # Snapshot
    # ------------------------------------------------------------------

    async def collect(self, message: str, history: ExecutionHistory | None = None) -> ContextSnapshot:
        snapshot = ContextSnapshot(
            user_message=message,
            timestamp=datetime.now(timezone.utc),
            project=await self.get_project_metadata(),
            file_structure=await self.get_file_structure(),
            editor=await self.get_editor_context(),
            history=history.recent(self.history_context_size) if history is not None else [],
        )
        logger.info(
            "Context collected: %d files, editor %s, %d history entries",
            snapshot.project.get("files", 0) if snapshot.project else 0,
            "active" if snapshot.editor else "idle",
            len(snapshot.history),
        )
        return snapshot


# ---------------------------------------------------------------------------
# Tree rendering
# ---------------------------------------------------------------------------


def render_tree(entries: list[dict[str, Any]]) -> str:
    """Render a flat scan as an indented ``├──``/``└──`` tree."""
    tree: dict[str, Any] = {}
    for entry in entries:
        parts = [p for p in entry["path"].split("/") if p]
        node = tree
        for i, part in enumerate(parts):
            is_leaf_file = i == len(parts) - 1 and entry["type"] == "file"
            child = node.setdefault(
                part,
                {"type": "file", "extension": entry.get("extension", "")}
                if is_leaf_file
                else {"type": "directory", "children": {}},
            )
            node = child.get("children", {})
    return "Project root/\n" + _render_nodes(tree, "")


def _render_nodes(nodes: dict[str, Any], prefix: str) -> str:
    out = []
    items = list(nodes.items())
    for index, (name, info) in enumerate(items):
        last = index == len(items) - 1
        connector = "└── " if last else "├── "
        if info["type"] == "file":
            label = FILE_LABELS.get(info.get("extension", ""))
            out.append(f"{prefix}{connector}{name}" + (f" ({label})" if label else "") + "\n")
        else:
            out.append(f"{prefix}{connector}{name}/\n")
            out.append(_render_nodes(info["children"], prefix + ("    " if last else "│   ")))
    return "".join(out)
