# editor.py
# Editor collaborator. The agent only reads editor state through this
# protocol; BufferEditor is an in-memory implementation used by the CLI and
# the tests.

import re
from dataclasses import dataclass, field
from typing import Protocol

from plan_agent.filesystem import file_extension

LANGUAGE_MAP = {
    "tex": "latex",
    "bib": "bibtex",
    "md": "markdown",
    "js": "javascript",
    "json": "json",
    "html": "html",
    "css": "css",
    "py": "python",
    "cpp": "cpp",
    "c": "c",
    "java": "java",
}


def detect_language(file_path: str | None) -> str:
    if not file_path:
        return "plaintext"
    return LANGUAGE_MAP.get(file_extension(file_path.rsplit("/", 1)[-1]), "plaintext")


def text_statistics(content: str) -> dict[str, int]:
    return {
        "lines": len(content.split("\n")),
        "characters": len(content),
        "words": len(re.findall(r"\S+", content)),
        "size": len(content.encode("utf-8")),
    }


@dataclass(frozen=True)
class Position:
    line: int
    column: int


@dataclass(frozen=True)
class Selection:
    start_line: int
    start_column: int
    end_line: int
    end_column: int
    text: str

    def is_empty(self) -> bool:
        return self.start_line == self.end_line and self.start_column == self.end_column


@dataclass
class Tab:
    content: str = ""
    is_dirty: bool = False


class Editor(Protocol):
    @property
    def current_file(self) -> str | None: ...
    def get_text(self) -> str: ...
    def set_text(self, text: str) -> None: ...
    def cursor_position(self) -> Position | None: ...
    def selection(self) -> Selection | None: ...
    def offset_at(self, position: Position) -> int: ...
    def line_count(self) -> int: ...
    def open_tabs(self) -> dict[str, Tab]: ...


@dataclass
class BufferEditor:
    """
    Minimal multi-tab text buffer.

    Lines and columns are 1-based. Switching files keeps each tab's content.
    """

    tabs: dict[str, Tab] = field(default_factory=dict)
    _current: str | None = None
    _cursor: Position = field(default_factory=lambda: Position(1, 1))
    _selection: tuple[Position, Position] | None = None

    @property
    def current_file(self) -> str | None:
        return self._current

    def open(self, file_path: str, content: str = "") -> None:
        self.tabs.setdefault(file_path, Tab(content=content))
        self._current = file_path
        self._cursor = Position(1, 1)
        self._selection = None

    def close(self, file_path: str) -> None:
        self.tabs.pop(file_path, None)
        if self._current == file_path:
            self._current = next(iter(self.tabs), None)
            self._selection = None

    def get_text(self) -> str:
        if self._current is None:
            return ""
        return self.tabs[self._current].content

    def set_text(self, text: str) -> None:
        if self._current is None:
            raise RuntimeError("no file is open")
        tab = self.tabs[self._current]
        tab.content = text
        tab.is_dirty = True

    def set_cursor(self, line: int, column: int) -> None:
        self._cursor = Position(line, column)

    def select(self, start_line: int, start_column: int, end_line: int, end_column: int) -> None:
        self._selection = (Position(start_line, start_column), Position(end_line, end_column))
        self._cursor = Position(end_line, end_column)

    def cursor_position(self) -> Position | None:
        return self._cursor if self._current is not None else None

    def selection(self) -> Selection | None:
        if self._current is None or self._selection is None:
            return None
        start, end = self._selection
        text = self.get_text()[self.offset_at(start):self.offset_at(end)]
        return Selection(start.line, start.column, end.line, end.column, text)

    def offset_at(self, position: Position) -> int:
        lines = self.get_text().split("\n")
        line_index = min(max(position.line, 1), len(lines)) - 1
        column = min(max(position.column, 1), len(lines[line_index]) + 1) - 1
        return sum(len(line) + 1 for line in lines[:line_index]) + column

    def line_count(self) -> int:
        return len(self.get_text().split("\n"))

    def open_tabs(self) -> dict[str, Tab]:
        return dict(self.tabs)
