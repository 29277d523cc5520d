"""
KB Mutator
==========
Create, save, rename and delete entries directly on disk. The filesystem is
the only source of truth: nothing here touches a cached tree, callers
re-scan after every call that changes the tree shape.

All paths are relative to the KB root. Failures are raised as KBError
subclasses carrying the OS message; `service.KnowledgeBase` turns them into
result envelopes.
"""

import logging
import shutil
from pathlib import Path
from typing import Optional

from .shared import (
    KB_DIR,
    KBIOError,
    NotFound,
    error_from_os,
    join_kb_path,
    resolve_kb_path,
)

log = logging.getLogger(__name__)


def _relative_parent(path: str) -> str:
    parts = [p for p in path.replace("\\", "/").split("/") if p not in ("", ".")]
    return "/".join(parts[:-1])


def create_folder(path: str, kb_root: Optional[Path] = None) -> str:
    """Recursive mkdir. Creating a folder that already exists is fine."""
    target = resolve_kb_path(kb_root or KB_DIR, path)
    try:
        target.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise error_from_os(e) from e
    log.info("Created folder %s", path)
    return path


def create_file(path: str, content: str = "", kb_root: Optional[Path] = None) -> str:
    """Write `content` to a new file, creating parents as needed. Overwrites."""
    target = resolve_kb_path(kb_root or KB_DIR, path)
    try:
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(content, encoding="utf-8")
    except OSError as e:
        raise error_from_os(e) from e
    log.info("Created file %s (%d chars)", path, len(content))
    return path


def save_file(path: str, content: str, kb_root: Optional[Path] = None) -> str:
    """Overwrite an existing location. The parent folder must already exist."""
    target = resolve_kb_path(kb_root or KB_DIR, path)
    try:
        target.write_text(content, encoding="utf-8")
    except OSError as e:
        raise error_from_os(e) from e
    log.info("Saved %s (%d chars)", path, len(content))
    return path


def rename(old_path: str, new_name: str, kb_root: Optional[Path] = None) -> str:
    """
    Rename an entry inside its own parent folder and return the new
    relative path. Moving to another folder is not allowed.
    """
    if "/" in new_name or "\\" in new_name or new_name in (".", ".."):
        raise KBIOError(f"Invalid name: {new_name}")

    root = kb_root or KB_DIR
    source = resolve_kb_path(root, old_path)
    if source == Path(root).resolve():
        raise KBIOError("The knowledge base root cannot be renamed")

    new_path = join_kb_path(_relative_parent(old_path), new_name)
    target = resolve_kb_path(root, new_path)
    try:
        source.rename(target)
    except OSError as e:
        raise error_from_os(e) from e
    log.info("Renamed %s → %s", old_path, new_path)
    return new_path


def delete(path: str, kb_root: Optional[Path] = None) -> str:
    """
    Remove a file, or a folder and everything under it. Immediate and
    irreversible; confirmation belongs to the UI.
    """
    root = kb_root or KB_DIR
    target = resolve_kb_path(root, path)
    if target == Path(root).resolve():
        raise KBIOError("The knowledge base root cannot be deleted")
    if not target.exists() and not target.is_symlink():
        raise NotFound(f"No such file or directory: {path}")
    try:
        if target.is_dir() and not target.is_symlink():
            shutil.rmtree(target)
        else:
            target.unlink()
    except OSError as e:
        raise error_from_os(e) from e
    log.info("Deleted %s", path)
    return path
