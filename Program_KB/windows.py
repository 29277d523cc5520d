"""
Window controllers
==================
MainWindow   – chat window with the inline KB panel (file selection only).
BrowserWindow – the standalone KB browser (files + folders, CRUD, drops).
BrowserWindowHost – keeps at most one browser window alive.

Each controller owns its own tree snapshot and SelectionState. They talk
only through SelectionChannel messages:

    main  --InitSelection-->    browser   (once, after the browser loads)
    browser --SelectionChanged--> main    (after every toggle, delete, apply)

Every filesystem call goes through the KnowledgeBase service and is
followed by a fresh scan when it changes the tree.
"""

import logging
from typing import Callable, Dict, List, Optional, Tuple

from rich.console import Group
from rich.panel import Panel
from rich.text import Text

from .chat import ChatClient, ChatReply, build_kb_context, build_messages, wrap_attachment
from .convert import Attachment, ConversionResult, read_attachment
from .render import (
    folder_cards,
    render_file_grid,
    render_folder_sidebar,
    render_inline_panel,
    render_selected_tags,
    selection_summary,
)
from .selection import (
    InitSelection,
    SelectionChanged,
    SelectionChannel,
    SelectionState,
    resolve_selection,
)
from .service import KnowledgeBase, MutationResult
from .shared import EmptyInput, TreeNode, basename, join_kb_path

log = logging.getLogger(__name__)

NEW_FOLDER = "new_folder"
NEW_FILE = "new_file"
RENAME = "rename"


def _rejected(error: Exception) -> MutationResult:
    return MutationResult(success=False, error=str(error), error_kind=EmptyInput.kind)


def drop_summary(results: List[ConversionResult]) -> Tuple[str, str]:
    """Toast text and level ("success" / "warning" / "error") for a drop batch."""
    ok = sum(1 for r in results if r.success)
    failed = len(results) - ok
    converted = sum(1 for r in results if r.converted)

    if failed == 0:
        msg = f"✓ Uploaded {ok} item{'s' if ok != 1 else ''}"
        if converted:
            msg += f" ({converted} converted → MD)"
        return msg, "success"
    if ok == 0:
        return "✗ Failed to upload files", "error"
    return f"Uploaded {ok}, failed {failed}", "warning"


##  ##                                                       ##  ##  --  --  Browser Window  --  --  ##  ##
class BrowserWindow:
    def __init__(self, kb: KnowledgeBase, outbox: SelectionChannel, inbox: SelectionChannel,
                 on_close: Optional[Callable[["BrowserWindow"], None]] = None):
        self.kb = kb
        self.outbox = outbox            # To the main window
        self.inbox = inbox              # Initial seed from the main window
        self.on_close = on_close
        self.selection = SelectionState()
        self.tree: List[TreeNode] = []
        self.kb_path = ""
        self.current_folder = ""
        self.error: Optional[str] = None
        self.toast: Optional[Tuple[str, str]] = None
        self.is_open = True
        self.focus_count = 0

    # ── Lifecycle ──
    def load(self):
        """Re-scan and go back to the root folder. A failed scan keeps the last tree."""
        result = self.kb.get_knowledge_base()
        if not result.success:
            self.error = result.error
            return
        self.error = None
        self.tree = result.nodes()
        self.kb_path = result.path
        self.show_folder("")

    def pump(self):
        for message in self.inbox.drain():
            if isinstance(message, InitSelection):
                self.selection.apply(message)

    def focus(self):
        self.focus_count += 1

    def apply(self):
        """Confirm and close. Toggles were already sent as they happened."""
        self.notify()
        self.close()

    def close(self):
        if not self.is_open:
            return
        self.is_open = False
        if self.on_close:
            self.on_close(self)

    # ── Navigation ──
    def show_folder(self, folder_path: str):
        self.current_folder = folder_path

    def cards(self):
        return folder_cards(self.tree, self.current_folder, self.selection)

    def click_folder(self, path: str, shift: bool = False):
        if shift:
            self.show_folder(path)
        else:
            self.toggle_folder(path)

    def double_click_folder(self, path: str):
        self.show_folder(path)

    # ── Selection ──
    def notify(self):
        self.outbox.send(self.selection.message())

    def toggle_file(self, path: str) -> bool:
        selected = self.selection.toggle_file(path)
        self.notify()
        return selected

    def toggle_folder(self, path: str) -> bool:
        selected = self.selection.toggle_folder(path)
        self.notify()
        return selected

    def remove_tag(self, path: str, is_folder: bool = False):
        if is_folder:
            self.selection.remove_folder(path)
        else:
            self.selection.remove_file(path)
        self.notify()

    def summary(self) -> str:
        return selection_summary(len(self.selection.files), len(self.selection.folders))

    # ── Mutations ──
    def submit(self, action: str, value: str, target: Optional[str] = None) -> MutationResult:
        """
        Handle the name prompt for new folder / new file / rename.
        A blank name is rejected before anything touches the disk.
        """
        value = value.strip()
        if not value:
            return _rejected(EmptyInput("A name is required"))

        if action == NEW_FOLDER:
            result = self.kb.create_folder(join_kb_path(self.current_folder, value))
        elif action == NEW_FILE:
            file_name = value if value.endswith(".md") else f"{value}.md"
            heading = value[:-3] if value.endswith(".md") else value
            result = self.kb.create_file(join_kb_path(self.current_folder, file_name), f"# {heading}\n\n")
        elif action == RENAME:
            if target is None:
                return _rejected(EmptyInput("Nothing to rename"))
            # The selection keeps the old key; see DESIGN.md
            result = self.kb.rename(target, value)
        else:
            raise ValueError(f"Unknown action: {action}")

        if result.success:
            self.load()
        return result

    def delete(self, path: str, confirm: Callable[[str], bool]) -> Optional[MutationResult]:
        """Ask first; nothing happens unless `confirm` says yes."""
        if not confirm(f'Delete "{basename(path)}"? This cannot be undone.'):
            return None
        result = self.kb.delete(path)
        if result.success:
            # Only the exact path is dropped; descendants stay selected
            self.selection.remove_file(path)
            self.load()
            self.notify()
        return result

    def drop(self, paths: List[str]) -> List[ConversionResult]:
        if not paths:
            self.toast = ("Could not read file paths", "error")
            return []
        results = self.kb.handle_drop(paths, self.current_folder)
        self.toast = drop_summary(results)
        self.load()
        return results

    # ── Rendering ──
    def render(self):
        label = basename(self.kb_path) or "Knowledge Base"
        parts = [Panel(render_folder_sidebar(self.tree, label, self.current_folder), title="Folders", border_style="blue")]
        if self.error:
            parts.append(Text(f"⚠️ {self.error}", style="red"))
        else:
            parts.append(render_file_grid(self.tree, self.current_folder, self.selection))
        parts.append(Text(self.summary(), style="bold"))
        tags = render_selected_tags(self.selection)
        if tags is not None:
            parts.append(tags)
        if self.toast:
            parts.append(Text(self.toast[0], style={"success": "green", "warning": "yellow", "error": "red"}.get(self.toast[1], "")))
        return Group(*parts)


class BrowserWindowHost:
    """Opens the browser window, or focuses it when one is already up."""

    def __init__(self, kb: KnowledgeBase, main_inbox: SelectionChannel):
        self.kb = kb
        self.main_inbox = main_inbox
        self.window: Optional[BrowserWindow] = None

    @property
    def is_open(self) -> bool:
        return self.window is not None and self.window.is_open

    def open(self, seed: SelectionChanged) -> BrowserWindow:
        if self.is_open:
            self.window.focus()
            return self.window

        seed_channel = SelectionChannel()
        window = BrowserWindow(self.kb, outbox=self.main_inbox, inbox=seed_channel, on_close=self._closed)
        window.load()
        seed_channel.send(InitSelection(files=seed.files, folders=seed.folders))
        window.pump()
        self.window = window
        log.info("KB browser opened (%d files, %d folders pre-selected)", len(seed.files), len(seed.folders))
        return window

    def _closed(self, window: BrowserWindow):
        if self.window is window:
            self.window = None


##  ##                                                          ##  ##  --  --  Main Window  --  --  ##  ##
class MainWindow:
    def __init__(self, kb: KnowledgeBase, chat: Optional[ChatClient] = None):
        self.kb = kb
        self.chat = chat or ChatClient()
        self.selection = SelectionState()
        self.tree: List[TreeNode] = []
        self.error: Optional[str] = None
        self.history: List[Dict[str, str]] = []
        self.use_knowledge_base = True
        self.use_web_search = False
        self.inbox = SelectionChannel()
        self.browser = BrowserWindowHost(kb, self.inbox)
        self.attachment: Optional[Attachment] = None   # Rides along with the next message only

    def refresh(self):
        result = self.kb.get_knowledge_base()
        if result.success:
            self.error = None
            self.tree = result.nodes()
        else:
            self.error = result.error

    def seed(self, paths: List[str]):
        """Pre-select files, e.g. an assistant profile's default KB entries."""
        self.selection.replace(paths, self.selection.folders)

    def toggle_file(self, path: str) -> bool:
        return self.selection.toggle_file(path)

    def open_kb_browser(self) -> BrowserWindow:
        return self.browser.open(self.selection.message())

    def pump(self):
        for message in self.inbox.drain():
            self.selection.apply(message)

    # ── Attachment ──
    def attach_file(self, path: Optional[str]) -> Optional[Attachment]:
        """`path` comes from the file picker; None means it was cancelled."""
        if not path:
            return self.attachment
        self.attachment = read_attachment(path)
        return self.attachment

    def remove_file(self):
        self.attachment = None

    # ── Send ──
    def context_files(self) -> List[str]:
        """Expand the current selection against a fresh scan."""
        self.pump()
        self.refresh()
        return resolve_selection(self.selection, self.tree)

    def compose_context(self) -> str:
        paths = self.context_files()
        if not paths:
            return ""
        return build_kb_context(self.kb.read_files(paths).files)

    def send_message(self, text: str) -> ChatReply:
        content = text.strip()
        if not content:
            return ChatReply(success=False, error="Message is empty")

        if self.attachment is not None:
            content = wrap_attachment(self.attachment.name, self.attachment.content, content)
            self.remove_file()
        self.history.append({"role": "user", "content": content})
        kb_context = self.compose_context() if self.use_knowledge_base else ""
        messages = build_messages(self.history, self.use_knowledge_base, self.use_web_search, kb_context)

        reply = self.chat.send(messages)
        if reply.success:
            self.history.append({"role": "assistant", "content": reply.content})
        return reply

    def clear(self):
        self.history = []

    def render(self):
        label = self.kb.root.name or "Knowledge Base"
        if self.error:
            return Text(f"⚠️ {self.error}", style="red")
        panel = render_inline_panel(self.tree, self.selection.files, title=label)
        if self.attachment is None:
            return panel
        return Group(panel, Text(f"📎 {self.attachment.name}", style="cyan"))
