from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

from plan_agent.context import ContextCollector, render_tree
from plan_agent.editor import BufferEditor, detect_language, text_statistics
from plan_agent.filesystem import FileStat, LocalFileSystem
from plan_agent.models import Step

EPOCH = datetime(2024, 1, 1, tzinfo=timezone.utc)


@pytest.fixture
def collector(fs, editor, clock):
    return ContextCollector(fs, editor, ttl=30, clock=clock)


# ---------------------------------------------------------------------------
# Cache
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_metadata_is_cached_within_ttl(collector, project, clock):
    first = await collector.get_project_metadata()
    (project / "new.tex").write_text("x")
    clock.advance(29.9)

    second = await collector.get_project_metadata()

    assert first["files"] == 3
    assert second["files"] == 3


@pytest.mark.asyncio
async def test_cache_expires_at_ttl(collector, project, clock):
    await collector.get_project_metadata()
    (project / "new.tex").write_text("x")
    clock.advance(30)

    refreshed = await collector.get_project_metadata()

    assert refreshed["files"] == 4


@pytest.mark.asyncio
async def test_clear_cache_forces_rescan(collector, project):
    structure = await collector.get_file_structure()
    (project / "appendix.tex").write_text("x")
    assert "appendix.tex" not in await collector.get_file_structure()

    collector.clear_cache()

    assert "appendix.tex" not in structure
    assert "appendix.tex (LaTeX)" in await collector.get_file_structure()


@pytest.mark.asyncio
async def test_cache_categories_are_independent(fs, clock):
    collector = ContextCollector(fs, clock=clock)
    collector.fs = MagicMock(wraps=fs)
    collector.fs.readdir = AsyncMock(side_effect=fs.readdir)
    collector.fs.stat = AsyncMock(side_effect=fs.stat)

    await collector.get_project_metadata()
    calls_after_project = collector.fs.readdir.await_count
    await collector.get_project_metadata()
    assert collector.fs.readdir.await_count == calls_after_project

    await collector.get_file_structure()
    assert collector.fs.readdir.await_count > calls_after_project


# ---------------------------------------------------------------------------
# Structure and stats
# ---------------------------------------------------------------------------


def test_render_tree():
    entries = [
        {"path": "/chapters", "type": "directory"},
        {"path": "/chapters/intro.tex", "type": "file", "extension": "tex"},
        {"path": "/main.tex", "type": "file", "extension": "tex"},
        {"path": "/refs.bib", "type": "file", "extension": "bib"},
    ]
    assert render_tree(entries) == (
        "Project root/\n"
        "├── chapters/\n"
        "│   └── intro.tex (LaTeX)\n"
        "├── main.tex (LaTeX)\n"
        "└── refs.bib (Bibliography)\n"
    )


@pytest.mark.asyncio
async def test_project_stats(collector, project):
    (project / "figure.png").write_bytes(b"\x89PNG")

    stats = await collector.get_project_stats()

    assert stats["total_files"] == 4
    assert stats["tex_files"] == 2
    assert stats["bib_files"] == 1
    assert stats["image_files"] == 1
    assert stats["total_lines"] == 4 + 1 + 2
    assert stats["total_words"] > 0


@pytest.mark.asyncio
async def test_project_stats_skip_unreadable_files(project):
    fs = LocalFileSystem(project)
    real_read = fs.read_file

    async def flaky_read(path, encoding="utf8"):
        if path == "/main.tex":
            raise PermissionError("denied")
        return await real_read(path, encoding)

    fs.read_file = flaky_read
    stats = await ContextCollector(fs).get_project_stats()

    assert stats["total_files"] == 3
    assert stats["total_lines"] == 1 + 2


@pytest.mark.asyncio
async def test_scan_failures_are_not_fatal():
    fs = MagicMock()
    fs.readdir = AsyncMock(return_value=["a.tex", "b.tex"])
    fs.stat = AsyncMock(side_effect=[OSError("gone"), FileStat(False, 5, EPOCH)])

    metadata = await ContextCollector(fs).get_project_metadata()

    assert metadata["files"] == 1
    assert metadata["size"] == 5


# ---------------------------------------------------------------------------
# Editor
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_editor_context_absent_without_file(fs):
    assert await ContextCollector(fs).get_editor_context() is None
    assert await ContextCollector(fs, BufferEditor()).get_editor_context() is None


@pytest.mark.asyncio
async def test_editor_context_fields(collector, editor):
    content = "word " * 300
    editor.open("/main.tex", content)
    editor.select(1, 1, 1, 5)

    ctx = await collector.get_editor_context()

    assert ctx["file_path"] == "/main.tex"
    assert ctx["language"] == "latex"
    assert ctx["content_preview"] == content[:1000] + "..."
    assert ctx["selection"]["selected_text"] == "word"
    assert ctx["position"] == {"line": 1, "column": 5}
    assert ctx["statistics"] == {"lines": 1, "characters": 1500, "words": 300, "size": 1500}


def test_language_and_statistics_helpers():
    assert text_statistics("héllo wörld\nx")["size"] == len("héllo wörld\nx".encode("utf-8"))
    assert detect_language("/a/b/notes.md") == "markdown"
    assert detect_language("/Makefile") == "plaintext"
    assert detect_language(None) == "plaintext"


# ---------------------------------------------------------------------------
# Snapshot
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_collect_includes_recent_history(collector, history):
    for i in range(8):
        history.record(Step(type="edit", description=f"edit {i}", target="/main.tex"))

    snapshot = await collector.collect("fix typos", history)

    assert snapshot.user_message == "fix typos"
    assert [h.description for h in snapshot.history] == [f"edit {i}" for i in range(3, 8)]
    assert snapshot.project["files"] == 3
    assert "main.tex" in snapshot.file_structure
    assert snapshot.editor is None
