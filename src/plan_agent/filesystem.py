# filesystem.py
# File-system collaborator and the bounded directory walks built on it.
#
# Paths are project paths ("/main.tex", "/chapters/intro.tex"). LocalFileSystem
# maps them under a root directory and refuses anything that escapes it.

import logging
import os
import stat
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Protocol

logger = logging.getLogger(__name__)

DEFAULT_MAX_DEPTH = 10


@dataclass(frozen=True)
class FileStat:
    is_dir: bool
    size: int
    mtime: datetime

    def is_directory(self) -> bool:
        return self.is_dir


class FileSystem(Protocol):
    async def read_file(self, path: str, encoding: str = "utf8") -> str: ...
    async def write_file(self, path: str, content: str, encoding: str = "utf8") -> None: ...
    async def stat(self, path: str) -> FileStat: ...
    async def readdir(self, path: str) -> list[str]: ...
    async def unlink(self, path: str) -> None: ...
    async def mkdir(self, path: str) -> None: ...
    async def rmdir(self, path: str) -> None: ...


# ---------------------------------------------------------------------------
# Path helpers
# ---------------------------------------------------------------------------


def jail_path(root: Path, p: str | Path) -> Path:
    pp = (root / str(p).lstrip("/\\")).resolve()
    if pp != root and root not in pp.parents:
        raise PermissionError(f"path escapes project root: {p}")
    return pp


def join_path(directory: str, entry: str) -> str:
    return f"/{entry}" if directory in ("/", "") else f"{directory.rstrip('/')}/{entry}"


def file_extension(name: str) -> str:
    """Lower-cased extension without the dot; '' for dotfiles and bare names."""
    stem, dot, ext = name.rpartition(".")
    return ext.lower() if dot and stem else ""


# ---------------------------------------------------------------------------
# Local implementation
# ---------------------------------------------------------------------------


class LocalFileSystem:
    """FileSystem backed by a real directory."""

    def __init__(self, root: Path) -> None:
        self.root = Path(root).resolve()

    def _path(self, path: str) -> Path:
        return jail_path(self.root, path)

    async def read_file(self, path: str, encoding: str = "utf8") -> str:
        return self._path(path).read_text(encoding=encoding)

    async def write_file(self, path: str, content: str, encoding: str = "utf8") -> None:
        target = self._path(path)
        if target == self.root or target.is_dir():
            raise IsADirectoryError(f"cannot write file over a directory: {path}")
        target.parent.mkdir(parents=True, exist_ok=True)
        # temp file stays beside the target, inside the root
        tmp = target.parent / f".{target.name}.tmp"
        try:
            tmp.write_text(content, encoding=encoding)
            os.replace(tmp, target)
        except BaseException:
            tmp.unlink(missing_ok=True)
            raise

    async def stat(self, path: str) -> FileStat:
        st = self._path(path).stat()
        is_dir = stat.S_ISDIR(st.st_mode)
        return FileStat(
            is_dir=is_dir,
            size=0 if is_dir else st.st_size,
            mtime=datetime.fromtimestamp(st.st_mtime, tz=timezone.utc),
        )

    async def readdir(self, path: str) -> list[str]:
        return sorted(entry.name for entry in self._path(path).iterdir())

    async def unlink(self, path: str) -> None:
        self._path(path).unlink()

    async def mkdir(self, path: str) -> None:
        self._path(path).mkdir(parents=True, exist_ok=True)

    async def rmdir(self, path: str) -> None:
        target = self._path(path)
        if target == self.root:
            raise PermissionError("refusing to remove the project root")
        target.rmdir()


# ---------------------------------------------------------------------------
# Bounded walks
# ---------------------------------------------------------------------------


async def scan_directory(
    fs: FileSystem,
    directory: str = "/",
    *,
    recursive: bool = True,
    max_depth: int = DEFAULT_MAX_DEPTH,
    include_hidden: bool = False,
    file_types: list[str] | None = None,
) -> list[dict[str, Any]]:
    """
    Flat listing of ``directory``.

    Never descends more than ``max_depth`` levels. Entries that fail to stat
    are logged and skipped; an unreadable directory yields no entries.
    """
    entries: list[dict[str, Any]] = []
    wanted = {t.lower().lstrip(".") for t in file_types} if file_types else None
    await _scan(fs, directory, entries, recursive, max_depth, include_hidden, wanted, depth=0)
    return entries


async def _scan(fs, directory, entries, recursive, max_depth, include_hidden, wanted, depth):
    if depth >= max_depth:
        return
    try:
        names = await fs.readdir(directory)
    except Exception as exc:
        logger.warning("Cannot read directory %s: %s", directory, exc)
        return

    for name in names:
        if not isinstance(name, str) or not name:
            continue
        if not include_hidden and name.startswith("."):
            continue
        path = join_path(directory, name)
        try:
            st = await fs.stat(path)
        except Exception as exc:
            logger.warning("Cannot stat %s: %s", path, exc)
            continue

        if st.is_directory():
            entries.append({"name": name, "path": path, "type": "directory", "size": 0})
            if recursive:
                await _scan(fs, path, entries, recursive, max_depth, include_hidden, wanted, depth + 1)
            continue

        extension = file_extension(name)
        if wanted is not None and extension not in wanted:
            continue
        entries.append(
            {
                "name": name,
                "path": path,
                "type": "file",
                "size": st.size,
                "extension": extension,
                "last_modified": st.mtime.isoformat(),
            }
        )


async def build_tree(
    fs: FileSystem,
    directory: str = "/",
    *,
    max_depth: int = DEFAULT_MAX_DEPTH,
    include_hidden: bool = False,
    depth: int = 0,
) -> dict[str, Any] | None:
    """Nested tree of ``directory``; ``None`` once ``max_depth`` is reached."""
    if depth >= max_depth:
        return None

    tree: dict[str, Any] = {
        "name": "root" if directory in ("/", "") else directory.rstrip("/").rsplit("/", 1)[-1],
        "path": directory,
        "type": "directory",
        "children": [],
    }
    try:
        names = await fs.readdir(directory)
    except Exception as exc:
        logger.warning("Cannot read directory %s: %s", directory, exc)
        return tree

    for name in names:
        if not isinstance(name, str) or not name:
            continue
        if not include_hidden and name.startswith("."):
            continue
        path = join_path(directory, name)
        try:
            st = await fs.stat(path)
        except Exception as exc:
            logger.warning("Cannot stat %s: %s", path, exc)
            continue

        if st.is_directory():
            subtree = await build_tree(
                fs, path, max_depth=max_depth, include_hidden=include_hidden, depth=depth + 1
            )
            if subtree is not None:
                tree["children"].append(subtree)
        else:
            tree["children"].append(
                {
                    "name": name,
                    "path": path,
                    "type": "file",
                    "size": st.size,
                    "extension": file_extension(name),
                }
            )
    return tree
