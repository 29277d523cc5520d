"""
Request/response boundary for the process that owns the knowledge base.

Windows never touch the filesystem themselves; they call a KnowledgeBase.
Every method returns a result model with `success` / `error` / `error_kind`,
so a failed call never raises into the UI loop. Each call works on disk
directly and re-reads nothing from a cache.
"""

import logging
from pathlib import Path
from typing import List, Optional

from pydantic import BaseModel

from . import convert, mutate
from .convert import ConversionResult
from .scanner import scan
from .shared import (
    KB_DIR,
    EmptyInput,
    KBError,
    TreeNode,
    basename,
    dict_to_node,
    error_from_os,
    resolve_kb_path,
)

log = logging.getLogger(__name__)


# ─────────────────────────────────────────────
# Result Models
# ─────────────────────────────────────────────
class OpResult(BaseModel):
    success: bool
    error: Optional[str] = None
    error_kind: Optional[str] = None


class ScanResult(OpResult):
    path: str = ""
    structure: List[dict] = []

    def nodes(self) -> List[TreeNode]:
        """Rebuild an independent snapshot from the serialized structure."""
        return [dict_to_node(d) for d in self.structure]


class MutationResult(OpResult):
    path: Optional[str] = None


class KBFile(BaseModel):
    path: str
    name: str
    content: str = ""
    error: Optional[str] = None


class ReadResult(OpResult):
    files: List[KBFile] = []


def _failed(model, e: KBError, **extra):
    log.warning("%s: %s", e.kind, e.message)
    return model(success=False, error=e.message, error_kind=e.kind, **extra)


# ─────────────────────────────────────────────
# Service
# ─────────────────────────────────────────────
class KnowledgeBase:
    """All scanner, mutator and converter calls for one KB root."""

    def __init__(self, root: Optional[Path] = None):
        self.root = Path(root or KB_DIR)

    def get_knowledge_base(self) -> ScanResult:
        try:
            nodes = scan(self.root)
        except KBError as e:
            return _failed(ScanResult, e, path=str(self.root))
        return ScanResult(
            success=True,
            path=str(self.root),
            structure=[n.to_dict() for n in nodes],
        )

    def _mutate(self, op, *args) -> MutationResult:
        try:
            path = op(*args, kb_root=self.root)
        except KBError as e:
            return _failed(MutationResult, e)
        except OSError as e:
            return _failed(MutationResult, error_from_os(e))
        return MutationResult(success=True, path=path)

    def create_folder(self, path: str) -> MutationResult:
        if not path.strip():
            return _failed(MutationResult, EmptyInput("A folder name is required"))
        return self._mutate(mutate.create_folder, path)

    def create_file(self, path: str, content: str = "") -> MutationResult:
        if not path.strip():
            return _failed(MutationResult, EmptyInput("A file name is required"))
        return self._mutate(mutate.create_file, path, content)

    def save_file(self, path: str, content: str) -> MutationResult:
        return self._mutate(mutate.save_file, path, content)

    def rename(self, old_path: str, new_name: str) -> MutationResult:
        if not new_name.strip():
            return _failed(MutationResult, EmptyInput("A name is required"))
        return self._mutate(mutate.rename, old_path, new_name.strip())

    def delete(self, path: str) -> MutationResult:
        return self._mutate(mutate.delete, path)

    def handle_drop(self, paths: List[str], target_folder: str = "") -> List[ConversionResult]:
        return convert.handle_drop(paths, target_folder, kb_root=self.root)

    def convert_file(self, source_path: str, target_folder: str = "") -> ConversionResult:
        return convert.convert_file(source_path, target_folder, kb_root=self.root)

    def read_files(self, paths: List[str]) -> ReadResult:
        """
        Read KB files for context assembly, in the order given.
        Unreadable entries come back with `error` set instead of content.
        """
        files: List[KBFile] = []
        for rel in paths:
            try:
                content = resolve_kb_path(self.root, rel).read_text(encoding="utf-8", errors="replace")
            except KBError as e:
                files.append(KBFile(path=rel, name=basename(rel), error=e.message))
                continue
            except OSError as e:
                files.append(KBFile(path=rel, name=basename(rel), error=error_from_os(e).message))
                continue
            files.append(KBFile(path=rel, name=basename(rel), content=content))
        return ReadResult(success=True, files=files)
