"""
Directory Scanner
=================
Walks the knowledge-base root and mirrors the part of the filesystem the
UI cares about: folders plus `.md` / `.txt` files. Entries whose name starts
with `.` or `_` are skipped at every depth.

The listing order is whatever the OS hands back (no sorting). Every call
builds a brand-new snapshot; nothing is cached between scans.
"""

import logging
import os
from pathlib import Path
from typing import List, Dict

from .shared import (
    MAX_SCAN_DEPTH,
    VISIBLE_EXTENSIONS,
    NotFound,
    TreeNode,
    error_from_os,
    join_kb_path,
)

log = logging.getLogger(__name__)


def is_hidden(name: str) -> bool:
    return name.startswith(".") or name.startswith("_")


def scan(root: Path) -> List[TreeNode]:
    """
    Scan the KB root and return its top-level nodes.
    Raises NotFound when the root does not exist.
    """
    root = Path(root)
    if not root.is_dir():
        raise NotFound(f"Knowledge base not found: {root}")
    try:
        return _scan_dir(root, "", depth=0)
    except OSError as e:
        raise error_from_os(e) from e


def _scan_dir(directory: Path, rel_path: str, depth: int) -> List[TreeNode]:
    nodes: List[TreeNode] = []
    with os.scandir(directory) as entries:
        for entry in entries:
            if is_hidden(entry.name):
                continue
            child_path = join_kb_path(rel_path, entry.name)

            if entry.is_dir():
                if depth + 1 >= MAX_SCAN_DEPTH:
                    # Symlink loops end up here; show the folder but stop descending
                    log.warning("Scan depth limit reached at %s", child_path)
                    children: List[TreeNode] = []
                else:
                    children = _scan_dir(Path(entry.path), child_path, depth + 1)
                nodes.append(TreeNode(
                    name=entry.name,
                    path=child_path,
                    kind="folder",
                    children=tuple(children),
                ))
            elif Path(entry.name).suffix.lower() in VISIBLE_EXTENSIONS:
                nodes.append(TreeNode(
                    name=entry.name,
                    path=child_path,
                    kind="file",
                    size=entry.stat().st_size,
                ))
    return nodes


def create_node_map(nodes: List[TreeNode]) -> Dict[str, TreeNode]:
    """Flatten a snapshot into {path: node} for every folder and file."""
    m: Dict[str, TreeNode] = {}
    for n in nodes:
        m[n.path] = n
        if n.is_folder:
            m.update(create_node_map(list(n.children)))
    return m
