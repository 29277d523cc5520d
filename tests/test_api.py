from __future__ import annotations

from pathlib import Path

import pytest
from fastapi.testclient import TestClient

import main


@pytest.fixture
def client(kb_root: Path, monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setattr(main, "KB_DIR", kb_root)
    with TestClient(main.app) as c:
        yield c


def test_health_reports_kb_path(client: TestClient, kb_root: Path) -> None:
    body = client.get("/health").json()

    assert body["ready"] is True
    assert body["kb_path"] == str(kb_root)


def test_tree_endpoint_rescans_every_call(client: TestClient, kb_root: Path) -> None:
    first = client.get("/kb").json()
    (kb_root / "later.md").write_text("x", encoding="utf-8")
    second = client.get("/kb").json()

    assert first["success"] is True
    assert "later.md" not in {d["name"] for d in first["structure"]}
    assert "later.md" in {d["name"] for d in second["structure"]}


def test_crud_round_trip(client: TestClient, kb_root: Path) -> None:
    assert client.post("/kb/folder", json={"path": "notes"}).json()["success"]
    assert client.post("/kb/file", json={"path": "notes/a.md", "content": "# A\n"}).json()["success"]
    assert client.put("/kb/file", json={"path": "notes/a.md", "content": "# A2\n"}).json()["success"]

    renamed = client.post("/kb/rename", json={"old_path": "notes/a.md", "new_name": "b.md"}).json()
    assert renamed == {"success": True, "error": None, "error_kind": None, "path": "notes/b.md"}
    assert (kb_root / "notes" / "b.md").read_text(encoding="utf-8") == "# A2\n"

    assert client.post("/kb/delete", json={"path": "notes"}).json()["success"]
    assert not (kb_root / "notes").exists()


def test_failures_come_back_as_results(client: TestClient) -> None:
    resp = client.post("/kb/delete", json={"path": "ghost.md"})

    assert resp.status_code == 200
    assert resp.json()["success"] is False
    assert resp.json()["error_kind"] == "NotFound"


def test_drop_and_expand(client: TestClient, inbox: Path) -> None:
    (inbox / "x.txt").write_text("x", encoding="utf-8")
    (inbox / "y.bin").write_bytes(b"\x00")

    results = client.post(
        "/kb/drop",
        json={"paths": [str(inbox / "x.txt"), str(inbox / "y.bin")], "target_folder": "guides"},
    ).json()
    assert [r["success"] for r in results] == [True, False]

    expanded = client.post("/kb/expand", json={"files": ["readme.md"], "folders": ["guides"]}).json()
    assert expanded["files"][0] == "readme.md"
    assert set(expanded["files"][1:]) == {"guides/setup.md", "guides/deep/notes.txt", "guides/x.md"}


def test_read_endpoint(client: TestClient) -> None:
    body = client.post("/kb/read", json={"paths": ["readme.md"]}).json()

    assert body["files"][0]["content"] == "# Readme\n"


def test_blank_folder_path_is_rejected(client: TestClient) -> None:
    body = client.post("/kb/folder", json={"path": ""}).json()

    assert body["success"] is False
    assert body["error_kind"] == "EmptyInput"
