from __future__ import annotations

from pathlib import Path

import pytest

from Program_KB import convert
from Program_KB.convert import Converter
from Program_KB.service import KnowledgeBase


@pytest.fixture
def kb_root(tmp_path: Path) -> Path:
    """
    guides/
      setup.md
      deep/
        notes.txt
      diagram.png
    readme.md
    .hidden.md
    _drafts/
      wip.md
    """
    root = tmp_path / "SparkRAG"
    (root / "guides" / "deep").mkdir(parents=True)
    (root / "_drafts").mkdir()
    (root / "guides" / "setup.md").write_text("# Setup\n\nInstall it.\n", encoding="utf-8")
    (root / "guides" / "deep" / "notes.txt").write_text("deep notes", encoding="utf-8")
    (root / "guides" / "diagram.png").write_bytes(b"\x89PNG\r\n")
    (root / "readme.md").write_text("# Readme\n", encoding="utf-8")
    (root / ".hidden.md").write_text("secret", encoding="utf-8")
    (root / "_drafts" / "wip.md").write_text("wip", encoding="utf-8")
    return root


@pytest.fixture
def kb(kb_root: Path) -> KnowledgeBase:
    return KnowledgeBase(kb_root)


@pytest.fixture
def fake_pdf(monkeypatch: pytest.MonkeyPatch) -> None:
    """PDF 'extraction' that just reads the file as text."""
    monkeypatch.setitem(
        convert.REGISTRY,
        ".pdf",
        Converter("PDF", lambda path: path.read_text(encoding="utf-8")),
    )


@pytest.fixture
def inbox(tmp_path: Path) -> Path:
    """A folder outside the KB holding files to import."""
    folder = tmp_path / "incoming"
    folder.mkdir()
    return folder
