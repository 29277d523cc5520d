"""
Selection Model, cross-window sync and folder expansion.

Each window owns one SelectionState. The only thing that ever crosses a
window boundary is a serialized message on a SelectionChannel; no window
holds a reference to another window's sets or tree.
"""

import queue
from typing import Dict, Iterable, List, Optional, Sequence, Union

from pydantic import BaseModel

from .shared import TreeNode


# ─────────────────────────────────────────────
# Messages
# ─────────────────────────────────────────────
class SelectionChanged(BaseModel):
    """Fire-and-forget notice: this is my whole selection now."""
    files: List[str] = []
    folders: List[str] = []


class InitSelection(SelectionChanged):
    """Seed sent once to the browser window when it finishes loading."""

    @classmethod
    def from_payload(cls, data: Union[list, dict, None]) -> "InitSelection":
        # Older main windows only ever sent a bare list of file paths
        if isinstance(data, list):
            return cls(files=data, folders=[])
        data = data or {}
        return cls(files=data.get("files") or [], folders=data.get("folders") or [])


MESSAGE_TYPES = {m.__name__: m for m in (SelectionChanged, InitSelection)}


class SelectionChannel:
    """
    One-way pipe between two windows. Messages are serialized on send and
    rebuilt on receipt, and come out in the order they went in.
    """

    def __init__(self):
        self._queue: "queue.SimpleQueue[tuple]" = queue.SimpleQueue()

    def send(self, message: SelectionChanged):
        self._queue.put((type(message).__name__, message.model_dump_json()))

    def drain(self) -> List[SelectionChanged]:
        messages = []
        while True:
            try:
                name, payload = self._queue.get_nowait()
            except queue.Empty:
                return messages
            messages.append(MESSAGE_TYPES[name].model_validate_json(payload))

    def pending(self) -> bool:
        return not self._queue.empty()


# ─────────────────────────────────────────────
# State
# ─────────────────────────────────────────────
class SelectionState:
    """
    Selected file paths and selected folder paths, keyed by exact path
    string. Insertion order is kept so context is assembled in the order
    things were picked.
    """

    def __init__(self, files: Iterable[str] = (), folders: Iterable[str] = ()):
        self._files: Dict[str, None] = dict.fromkeys(files)
        self._folders: Dict[str, None] = dict.fromkeys(folders)

    @property
    def files(self):
        return self._files.keys()

    @property
    def folders(self):
        return self._folders.keys()

    def toggle_file(self, path: str) -> bool:
        """Flip a file in or out. Returns True if it is now selected."""
        if path in self._files:
            del self._files[path]
            return False
        self._files[path] = None
        return True

    def toggle_folder(self, path: str) -> bool:
        if path in self._folders:
            del self._folders[path]
            return False
        self._folders[path] = None
        return True

    def remove_file(self, path: str):
        self._files.pop(path, None)

    def remove_folder(self, path: str):
        self._folders.pop(path, None)

    def replace(self, files: Iterable[str], folders: Iterable[str] = ()):
        self._files = dict.fromkeys(files)
        self._folders = dict.fromkeys(folders)

    def apply(self, message: SelectionChanged):
        self.replace(message.files, message.folders)

    def message(self) -> SelectionChanged:
        return SelectionChanged(files=list(self._files), folders=list(self._folders))

    def is_empty(self) -> bool:
        return not self._files and not self._folders

    def __eq__(self, other):
        if not isinstance(other, SelectionState):
            return NotImplemented
        return set(self._files) == set(other._files) and set(self._folders) == set(other._folders)

    def __repr__(self):
        return f"SelectionState(files={list(self._files)}, folders={list(self._folders)})"


# ─────────────────────────────────────────────
# Folder Expansion
# ─────────────────────────────────────────────
def find_folder(tree: Sequence[TreeNode], folder_path: str) -> Optional[Sequence[TreeNode]]:
    """Walk the snapshot one segment at a time. None if any segment is not a folder."""
    current = tree
    for part in folder_path.split("/"):
        if not part:
            continue
        folder = next((n for n in current if n.is_folder and n.name == part), None)
        if folder is None:
            return None
        current = folder.children
    return current


def _collect_files(nodes: Sequence[TreeNode]) -> List[str]:
    paths: List[str] = []
    for n in nodes:
        if n.is_folder:
            paths.extend(_collect_files(n.children))
        else:
            paths.append(n.path)
    return paths


def expand(folder_path: str, tree: Sequence[TreeNode]) -> List[str]:
    """
    Every file under `folder_path` in this snapshot, recursively.
    A folder that no longer exists simply contributes nothing.
    """
    children = find_folder(tree, folder_path)
    if children is None:
        return []
    return _collect_files(children)


def resolve_selection(selection: SelectionState, tree: Sequence[TreeNode]) -> List[str]:
    """
    Flatten a selection into the file list handed to the chat request:
    directly picked files first, then each selected folder's contents.
    Duplicates are kept.
    """
    paths = list(selection.files)
    for folder in selection.folders:
        paths.extend(expand(folder, tree))
    return paths
