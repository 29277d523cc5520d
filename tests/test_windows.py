from __future__ import annotations

from pathlib import Path

import pytest

from Program_KB.chat import ChatReply
from Program_KB.convert import ConversionResult
from Program_KB.scanner import create_node_map
from Program_KB.service import KnowledgeBase
from Program_KB.windows import NEW_FILE, NEW_FOLDER, RENAME, MainWindow, drop_summary


class StubChat:
    def __init__(self) -> None:
        self.sent = []

    def send(self, messages):
        self.sent.append(messages)
        return ChatReply(success=True, content="ok")


@pytest.fixture
def main_window(kb: KnowledgeBase) -> MainWindow:
    window = MainWindow(kb, chat=StubChat())
    window.refresh()
    return window


def test_browser_opens_seeded_with_main_selection(main_window: MainWindow) -> None:
    main_window.toggle_file("readme.md")

    browser = main_window.open_kb_browser()

    assert set(browser.selection.files) == {"readme.md"}
    assert browser.current_folder == ""
    assert {c.name for c in browser.cards()} == {"guides", "readme.md"}


def test_second_open_focuses_existing_window(main_window: MainWindow) -> None:
    first = main_window.open_kb_browser()
    second = main_window.open_kb_browser()

    assert second is first
    assert first.focus_count == 1

    first.close()
    third = main_window.open_kb_browser()
    assert third is not first


def test_toggles_sync_back_to_main_window(main_window: MainWindow) -> None:
    browser = main_window.open_kb_browser()
    browser.toggle_file("readme.md")
    browser.click_folder("guides")
    browser.toggle_file("guides/setup.md")
    browser.toggle_file("readme.md")

    main_window.pump()

    assert main_window.selection == browser.selection
    assert set(main_window.selection.files) == {"guides/setup.md"}
    assert set(main_window.selection.folders) == {"guides"}


def test_cancel_keeps_already_sent_toggles(main_window: MainWindow) -> None:
    browser = main_window.open_kb_browser()
    browser.toggle_file("readme.md")
    browser.close()

    main_window.pump()

    assert set(main_window.selection.files) == {"readme.md"}
    assert not main_window.browser.is_open


def test_apply_sends_and_closes(main_window: MainWindow) -> None:
    browser = main_window.open_kb_browser()
    browser.remove_tag("nothing-selected.md")
    browser.apply()

    assert browser.is_open is False
    main_window.pump()
    assert main_window.selection == browser.selection


def test_shift_click_and_double_click_navigate(main_window: MainWindow) -> None:
    browser = main_window.open_kb_browser()
    browser.click_folder("guides", shift=True)
    assert browser.current_folder == "guides"
    assert set(browser.selection.folders) == set()

    browser.double_click_folder("guides/deep")
    assert [c.name for c in browser.cards()] == ["notes.txt"]


def test_blank_name_is_rejected_without_io(main_window: MainWindow, kb_root: Path) -> None:
    browser = main_window.open_kb_browser()
    before = sorted(p.name for p in kb_root.iterdir())

    result = browser.submit(NEW_FOLDER, "   ")

    assert result.success is False
    assert result.error_kind == "EmptyInput"
    assert sorted(p.name for p in kb_root.iterdir()) == before


def test_new_file_gets_md_extension_and_heading(main_window: MainWindow, kb_root: Path) -> None:
    browser = main_window.open_kb_browser()
    browser.show_folder("guides")

    result = browser.submit(NEW_FILE, "faq")

    assert result.success
    assert (kb_root / "guides" / "faq.md").read_text(encoding="utf-8") == "# faq\n\n"
    assert "guides/faq.md" in create_node_map(browser.tree)


def test_new_folder_lands_in_current_folder(main_window: MainWindow, kb_root: Path) -> None:
    browser = main_window.open_kb_browser()
    browser.show_folder("guides")

    assert browser.submit(NEW_FOLDER, "archive").path == "guides/archive"
    assert (kb_root / "guides" / "archive").is_dir()


def test_rename_leaves_stale_selection_key(main_window: MainWindow, kb_root: Path) -> None:
    browser = main_window.open_kb_browser()
    browser.toggle_file("readme.md")

    result = browser.submit(RENAME, "intro.md", target="readme.md")

    assert result.path == "intro.md"
    assert (kb_root / "intro.md").exists()
    assert set(browser.selection.files) == {"readme.md"}


def test_delete_needs_confirmation(main_window: MainWindow, kb_root: Path) -> None:
    browser = main_window.open_kb_browser()
    prompts = []

    result = browser.delete("readme.md", confirm=lambda msg: prompts.append(msg) or False)

    assert result is None
    assert prompts == ['Delete "readme.md"? This cannot be undone.']
    assert (kb_root / "readme.md").exists()


def test_folder_delete_prunes_only_exact_path(main_window: MainWindow, kb_root: Path) -> None:
    browser = main_window.open_kb_browser()
    for path in ("guides", "guides/setup.md", "guides/deep/notes.txt", "readme.md"):
        browser.toggle_file(path)

    result = browser.delete("guides", confirm=lambda msg: True)

    assert result.success
    assert not (kb_root / "guides").exists()
    assert set(browser.selection.files) == {"guides/setup.md", "guides/deep/notes.txt", "readme.md"}
    main_window.pump()
    assert main_window.selection == browser.selection


def test_drop_imports_into_current_folder(main_window: MainWindow, kb_root: Path, inbox: Path) -> None:
    (inbox / "a.txt").write_text("alpha", encoding="utf-8")
    (inbox / "b.exe").write_bytes(b"MZ")
    browser = main_window.open_kb_browser()
    browser.show_folder("guides")

    results = browser.drop([str(inbox / "a.txt"), str(inbox / "b.exe")])

    assert [r.success for r in results] == [True, False]
    assert (kb_root / "guides" / "a.md").exists()
    assert browser.toast == ("Uploaded 1, failed 1", "warning")


def test_drop_with_no_paths(main_window: MainWindow) -> None:
    browser = main_window.open_kb_browser()

    assert browser.drop([]) == []
    assert browser.toast == ("Could not read file paths", "error")


def test_drop_summary_messages() -> None:
    ok = ConversionResult(source_path="a", success=True, converted=True)
    copied = ConversionResult(source_path="b", success=True, converted=False)
    bad = ConversionResult(source_path="c", success=False)

    assert drop_summary([ok, copied]) == ("✓ Uploaded 2 items (1 converted → MD)", "success")
    assert drop_summary([copied]) == ("✓ Uploaded 1 item", "success")
    assert drop_summary([bad]) == ("✗ Failed to upload files", "error")


def test_context_expands_folders_at_send_time(main_window: MainWindow, kb_root: Path) -> None:
    browser = main_window.open_kb_browser()
    browser.toggle_file("guides/setup.md")
    browser.toggle_folder("guides")
    (kb_root / "guides" / "late.md").write_text("added later", encoding="utf-8")

    paths = main_window.context_files()

    assert paths[0] == "guides/setup.md"
    assert paths.count("guides/setup.md") == 2
    assert "guides/late.md" in paths


def test_send_message_includes_kb_context(main_window: MainWindow) -> None:
    main_window.toggle_file("readme.md")

    reply = main_window.send_message("  What is in the readme?  ")

    assert reply.success
    (messages,) = main_window.chat.sent
    assert messages[1]["role"] == "system"
    assert "--- readme.md ---\n# Readme\n" in messages[1]["content"]
    assert messages[-1] == {"role": "user", "content": "What is in the readme?"}
    assert main_window.history[-1] == {"role": "assistant", "content": "ok"}


def test_blank_message_is_not_sent(main_window: MainWindow) -> None:
    reply = main_window.send_message("   ")

    assert reply.success is False
    assert main_window.chat.sent == []


def test_failed_scan_keeps_last_tree(main_window: MainWindow, kb_root: Path) -> None:
    tree = main_window.tree
    main_window.kb.root = kb_root / "moved-away"

    main_window.refresh()

    assert main_window.error is not None
    assert main_window.tree == tree


def test_attached_file_wraps_only_the_next_message(main_window: MainWindow, inbox: Path) -> None:
    (inbox / "brief.txt").write_text("Quarterly numbers", encoding="utf-8")
    main_window.use_knowledge_base = False

    attached = main_window.attach_file(str(inbox / "brief.txt"))
    main_window.send_message("Summarize this")
    main_window.send_message("And again?")

    assert attached.name == "brief.txt"
    assert main_window.attachment is None
    first, second = main_window.chat.sent
    assert first[-1]["content"] == (
        "[Attached file: brief.txt]\n\nFile content:\nQuarterly numbers\n\n---\n\nUser question: Summarize this"
    )
    assert second[-1]["content"] == "And again?"


def test_removed_or_cancelled_attachment_is_not_sent(main_window: MainWindow, inbox: Path) -> None:
    (inbox / "brief.md").write_text("# Brief", encoding="utf-8")
    main_window.use_knowledge_base = False

    main_window.attach_file(str(inbox / "brief.md"))
    assert main_window.attach_file(None).name == "brief.md"
    main_window.remove_file()
    main_window.send_message("hello")

    assert main_window.chat.sent[0][-1] == {"role": "user", "content": "hello"}
