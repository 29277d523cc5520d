# Shared Data Structures, Constants and Errors for the Spark knowledge base
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Tuple

from rich.console import Console
from rich.logging import RichHandler

# ─────────────────────────────────────────────
# Paths
# ─────────────────────────────────────────────
KB_DIR = Path(os.environ.get("SPARK_KB_DIR", Path.home() / "SparkRAG")).expanduser()

# ─────────────────────────────────────────────
# Chat Endpoint
# ─────────────────────────────────────────────
SPARK_URL = os.environ.get("SPARK_URL", "http://100.86.36.112:30000/v1/chat/completions")
SPARK_MODEL = os.environ.get("SPARK_MODEL", "openai/gpt-oss-20b")

# ─────────────────────────────────────────────
# Tuning Constants
# ─────────────────────────────────────────────
VISIBLE_EXTENSIONS = (".md", ".txt")   # Only these show up in the tree
MAX_SCAN_DEPTH = 64                    # Stop descending past this many folder levels
MEMORY_LIMIT_MB = 4000                 # Batch conversion refuses new items above this RSS
MAX_CONTEXT_TOKENS = 24000             # KB context is trimmed to this before sending
CHAT_MAX_TOKENS = 4000
CHAT_TEMPERATURE = 0.7
CHAT_TIMEOUT = 120                     # Seconds
CONNECTION_TIMEOUT = 5                 # Seconds

console = Console()


def setup_logging(level: int = logging.INFO):
    """Route stdlib logging through rich. Safe to call more than once."""
    root = logging.getLogger()
    if any(isinstance(h, RichHandler) for h in root.handlers):
        return
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True, show_path=False)],
    )


# ─────────────────────────────────────────────
# Errors
# ─────────────────────────────────────────────
class KBError(Exception):
    """
    Base class for everything the knowledge-base core reports.
    `kind` is the stable name the UI layer switches on.
    """
    kind = "KBError"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFound(KBError):
    kind = "NotFound"


class KBIOError(KBError):
    """Permission denied and every other filesystem failure. Message is passed through untouched."""
    kind = "IOError"


class UnsupportedFormat(KBError):
    kind = "UnsupportedFormat"


class ExtractionFailed(KBError):
    kind = "ExtractionFailed"


class EmptyInput(KBError):
    kind = "EmptyInput"


def error_from_os(exc: OSError) -> KBError:
    """Map an OSError onto the KB taxonomy, keeping the OS message as-is."""
    message = exc.strerror or str(exc)
    if exc.filename:
        message = f"{message}: {exc.filename}"
    if isinstance(exc, FileNotFoundError):
        return NotFound(message)
    return KBIOError(message)


# ─────────────────────────────────────────────
# Data Structures
# ─────────────────────────────────────────────
@dataclass(frozen=True)
class TreeNode:
    """
    One filesystem entry surfaced to the UI.
    Snapshots are frozen; a fresh tree is produced by every scan and
    handed to each window by value.
    """
    name: str                               # Final path segment
    path: str                               # Slash-joined, relative to the KB root
    kind: str                               # "folder" or "file"
    children: Tuple["TreeNode", ...] = field(default_factory=tuple)  # Folders only
    size: Optional[int] = None              # Files only, in bytes

    @property
    def is_folder(self) -> bool:
        return self.kind == "folder"

    def to_dict(self) -> dict:
        """Convert the node to a JSON-ready dictionary."""
        result = {"name": self.name, "path": self.path, "type": self.kind}
        if self.is_folder:
            result["children"] = [c.to_dict() for c in self.children]
        else:
            result["size"] = self.size
        return result

    def node_count(self) -> int:
        return 1 + sum(c.node_count() for c in self.children)


def dict_to_node(d: dict) -> TreeNode:
    if d["type"] == "folder":
        return TreeNode(
            name=d["name"],
            path=d["path"],
            kind="folder",
            children=tuple(dict_to_node(c) for c in d.get("children", [])),
        )
    return TreeNode(name=d["name"], path=d["path"], kind="file", size=d.get("size"))


def join_kb_path(parent: str, name: str) -> str:
    """Child path rule: root children carry no prefix."""
    return f"{parent}/{name}" if parent else name


def basename(path: str) -> str:
    return path.rstrip("/").split("/")[-1]


# ─────────────────────────────────────────────
# Path Confinement
# ─────────────────────────────────────────────
def resolve_kb_path(root: Path, relative: str) -> Path:
    """
    Resolve a KB-relative path against the root.
    An empty string means the root itself. Absolute paths and `..`
    segments that would leave the root are rejected before any I/O.
    """
    root = Path(root).resolve()
    normalized = (relative or "").replace("\\", "/")
    if normalized.startswith("/"):
        raise KBIOError(f"Absolute paths are not allowed: {relative}")

    parts = [p for p in normalized.split("/") if p not in ("", ".")]
    if any(p == ".." for p in parts):
        raise KBIOError(f"Path escapes the knowledge base: {relative}")

    resolved = root.joinpath(*parts) if parts else root
    if not resolved.resolve(strict=False).is_relative_to(root):
        raise KBIOError(f"Path escapes the knowledge base: {relative}")
    return resolved

