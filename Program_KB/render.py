"""
Tree Renderers
==============
Two independent projections of a scanned snapshot:

- the inline panel in the main window: one rich Tree, files selectable,
  folders just group them;
- the KB browser window: a folder sidebar plus a card grid for the
  folder being shown, where both files and folders can be selected.

Nothing here mutates the snapshot or the selection. Cards are built as
plain data first so they can be checked without parsing rich output.
"""

from dataclasses import dataclass
from typing import Collection, List, Optional, Sequence

from rich.table import Table
from rich.text import Text
from rich.tree import Tree as RichTree

from .selection import SelectionState, find_folder
from .shared import TreeNode, basename, join_kb_path

FOLDER_ICON = "📁"
FILE_ICON = "📄"


def format_size(size: int) -> str:
    if size < 1024:
        return f"{size} B"
    if size < 1024 * 1024:
        return f"{size / 1024:.1f} KB"
    return f"{size / (1024 * 1024):.1f} MB"


def count_files(items: Sequence[TreeNode]) -> int:
    """Recursive file count, shown on folder cards."""
    count = 0
    for item in items:
        if item.is_folder:
            count += count_files(item.children)
        else:
            count += 1
    return count


def items_at_path(tree: Sequence[TreeNode], folder_path: str) -> List[TreeNode]:
    children = find_folder(tree, folder_path)
    return list(children) if children is not None else []


def _plural(n: int, word: str) -> str:
    return f"{n} {word}{'' if n == 1 else 's'}"


def selection_summary(file_count: int, folder_count: int) -> str:
    if folder_count and file_count:
        return f"{_plural(folder_count, 'folder')}, {_plural(file_count, 'file')} selected"
    if folder_count:
        return f"{_plural(folder_count, 'folder')} selected"
    return f"{_plural(file_count, 'file')} selected"


##  ##                                                         ##  ##  --  --  Inline Panel  --  --  ##  ##
def render_inline_panel(tree: Sequence[TreeNode], selected_files: Collection[str],
                        title: str = "Knowledge Base") -> RichTree:
    """Main-window panel. Only files carry a checkbox."""
    root = RichTree(Text(f"{FOLDER_ICON} {title}", style="bold"))
    _add_branch(root, tree, selected_files)
    return root


def _add_branch(parent: RichTree, nodes: Sequence[TreeNode], selected_files: Collection[str]):
    # Names are user data, so they go in as plain Text, never as markup
    for node in nodes:
        if node.is_folder:
            branch = parent.add(Text(f"{FOLDER_ICON} {node.name}"))
            _add_branch(branch, node.children, selected_files)
        else:
            mark = ("☑", "green") if node.path in selected_files else "☐"
            parent.add(Text.assemble(mark, f" {node.name} ", (f"({format_size(node.size or 0)})", "dim")))


##  ##                                                       ##  ##  --  --  Browser Window  --  --  ##  ##
def render_folder_sidebar(tree: Sequence[TreeNode], root_label: str, active: str = "") -> RichTree:
    """Folders only. The folder currently shown in the grid is highlighted."""
    style = "bold cyan" if active == "" else ""
    root = RichTree(Text(f"{FOLDER_ICON} {root_label} (Root)", style=style))
    _add_folders(root, tree, active)
    return root


def _add_folders(parent: RichTree, nodes: Sequence[TreeNode], active: str):
    for node in nodes:
        if not node.is_folder:
            continue
        style = "bold cyan" if node.path == active else ""
        branch = parent.add(Text(f"▶ {FOLDER_ICON} {node.name}", style=style))
        _add_folders(branch, node.children, active)


@dataclass(frozen=True)
class Card:
    name: str
    path: str
    is_folder: bool
    selected: bool
    detail: str          # Size for files, recursive count for folders


def folder_cards(tree: Sequence[TreeNode], folder_path: str, selection: SelectionState) -> List[Card]:
    """Cards for one folder: sub-folders first, then files, each in scan order."""
    items = items_at_path(tree, folder_path)
    cards = []
    for item in [i for i in items if i.is_folder]:
        path = join_kb_path(folder_path, item.name)
        cards.append(Card(
            name=item.name,
            path=path,
            is_folder=True,
            selected=path in selection.folders,
            detail=_plural(count_files(item.children), "file"),
        ))
    for item in [i for i in items if not i.is_folder]:
        path = join_kb_path(folder_path, item.name)
        cards.append(Card(
            name=item.name,
            path=path,
            is_folder=False,
            selected=path in selection.files,
            detail=format_size(item.size) if item.size else "",
        ))
    return cards


def render_file_grid(tree: Sequence[TreeNode], folder_path: str, selection: SelectionState):
    cards = folder_cards(tree, folder_path, selection)
    if not cards:
        return Text("📂 This folder is empty", style="dim")

    table = Table(title=Text(folder_path) if folder_path else None, border_style="cyan", show_lines=False)
    table.add_column("", justify="center", width=2)
    table.add_column("Name", style="white", justify="left")
    table.add_column("Info", style="dim", justify="right")
    for card in cards:
        check = Text("✓", style="green") if card.selected else Text("")
        icon = FOLDER_ICON if card.is_folder else FILE_ICON
        table.add_row(check, Text(f"{icon} {card.name}"), card.detail)
    return table


def render_selected_tags(selection: SelectionState) -> Optional[Text]:
    """Folder tags first, then file tags. None when nothing is selected."""
    if selection.is_empty():
        return None
    line = Text()
    for path in selection.folders:
        line.append(f" {FOLDER_ICON} {basename(path) or path} ✕ ", style="#60a5fa on #1e3a5f")
        line.append(" ")
    for path in selection.files:
        line.append(f" {FILE_ICON} {basename(path)} ✕ ", style="white on grey23")
        line.append(" ")
    return line
