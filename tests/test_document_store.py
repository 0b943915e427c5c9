import json
from pathlib import Path

import pytest

from llmemo.errors import PersistenceError
from llmemo.storage.document import JsonDocumentStore


def test_missing_file_reads_as_empty(tmp_path: Path) -> None:
    store = JsonDocumentStore(tmp_path / "absent.json")
    assert store.keys() == []
    assert store.get("anything", "fallback") == "fallback"


def test_set_save_and_reopen(tmp_path: Path) -> None:
    path = tmp_path / "nested" / "doc.json"
    store = JsonDocumentStore(path)
    value = {"items": [1, 2]}
    store.set("key", value)
    value["items"].append(3)
    store.save()

    reopened = JsonDocumentStore(path)
    assert reopened.get("key") == {"items": [1, 2]}
    assert [item.name for item in path.parent.iterdir()] == ["doc.json"]


def test_get_returns_copies(tmp_path: Path) -> None:
    store = JsonDocumentStore(tmp_path / "doc.json")
    store.set("key", [1])
    store.get("key").append(2)
    assert store.get("key") == [1]


def test_delete_key(tmp_path: Path) -> None:
    store = JsonDocumentStore(tmp_path / "doc.json")
    store.set("a", 1)
    assert store.delete("a")
    assert not store.delete("a")


def test_invalid_json_is_persistence_error(tmp_path: Path) -> None:
    path = tmp_path / "doc.json"
    path.write_text("{not json", encoding="utf-8")
    with pytest.raises(PersistenceError):
        JsonDocumentStore(path).keys()


def test_non_object_document_is_rejected(tmp_path: Path) -> None:
    path = tmp_path / "doc.json"
    path.write_text(json.dumps([1, 2]), encoding="utf-8")
    with pytest.raises(PersistenceError):
        JsonDocumentStore(path).get("x")


def test_unwritable_location_is_persistence_error(tmp_path: Path) -> None:
    blocker = tmp_path / "blocker"
    blocker.write_text("file, not a directory", encoding="utf-8")
    store = JsonDocumentStore(blocker / "doc.json")
    store.set("a", 1)
    with pytest.raises(PersistenceError):
        store.save()
