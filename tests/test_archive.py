import asyncio
import json
from itertools import count
from pathlib import Path

import pytest

from llmemo.errors import PersistenceError
from llmemo.scribe.base import TranscriptSegment
from llmemo.storage.archive import ARCHIVE_STORE_KEY, ArchiveStore
from llmemo.storage.document import JsonDocumentStore
from llmemo.storage.models import DEFAULT_TITLE, ArchivedSpeaker, ArchiveInput


def _store(path: Path) -> ArchiveStore:
    ticks = count(1_700_000_000_000, 1000)
    ids = count(1)
    store = ArchiveStore(
        JsonDocumentStore(path),
        clock=lambda: next(ticks),
        id_factory=lambda: f"t{next(ids)}",
    )
    store.load()
    return store


def test_blank_text_is_not_archived(tmp_path: Path) -> None:
    path = tmp_path / "store.json"
    store = _store(path)

    assert asyncio.run(store.archive(ArchiveInput(text="  \n "))) is None
    assert store.transcripts == ()
    assert not path.exists()


def test_archive_survives_reload(tmp_path: Path) -> None:
    path = tmp_path / "store.json"
    store = _store(path)
    created = asyncio.run(
        store.archive(
            ArchiveInput(
                text="  Hello there.  ",
                segments=[TranscriptSegment("Hello there.", "speaker_0", 0.1, 0.9)],
                speakers=[ArchivedSpeaker("speaker_0", "Happy Otter")],
                has_consent=False,
                novelty_score=0.25,
            )
        )
    )
    assert created is not None
    assert created.title == DEFAULT_TITLE
    assert created.text == "Hello there."

    reloaded = ArchiveStore(JsonDocumentStore(path))
    reloaded.load()
    [item] = reloaded.transcripts
    assert item == created
    assert item.segments[0].start_time == 0.1
    assert item.speakers[0].name == "Happy Otter"
    assert item.has_consent is False


def test_newest_first_and_unique_ids(tmp_path: Path) -> None:
    store = _store(tmp_path / "store.json")

    async def scenario() -> None:
        await store.archive(ArchiveInput(text="first", title="One"))
        await store.archive(ArchiveInput(text="second", title="Two"))

    asyncio.run(scenario())

    assert [item.title for item in store.transcripts] == ["Two", "One"]
    assert len({item.id for item in store.transcripts}) == 2


def test_concurrent_archives_are_all_persisted(tmp_path: Path) -> None:
    path = tmp_path / "store.json"
    store = _store(path)

    async def scenario() -> None:
        await asyncio.gather(*(store.archive(ArchiveInput(text=f"note {index}")) for index in range(5)))

    asyncio.run(scenario())

    reloaded = ArchiveStore(JsonDocumentStore(path))
    assert sorted(item.text for item in reloaded.transcripts) == [f"note {index}" for index in range(5)]


def test_delete_is_durable(tmp_path: Path) -> None:
    path = tmp_path / "store.json"
    store = _store(path)

    async def scenario() -> None:
        keep = await store.archive(ArchiveInput(text="keep me"))
        drop = await store.archive(ArchiveInput(text="drop me"))
        assert await store.delete(drop.id)
        assert not await store.delete(drop.id)
        assert store.get(keep.id) is not None

    asyncio.run(scenario())

    reloaded = ArchiveStore(JsonDocumentStore(path))
    assert [item.text for item in reloaded.transcripts] == ["keep me"]


def test_update_merges_and_persists(tmp_path: Path) -> None:
    path = tmp_path / "store.json"
    store = _store(path)

    async def scenario():
        created = await store.archive(ArchiveInput(text="body", title="Draft"))
        updated = await store.update(created.id, title="  ", is_important=True, category="work")
        return created, updated

    created, updated = asyncio.run(scenario())

    assert updated.title == DEFAULT_TITLE
    assert updated.is_important is True
    assert updated.created_at == created.created_at
    reloaded = ArchiveStore(JsonDocumentStore(path))
    assert reloaded.get(created.id).category == "work"


def test_update_unknown_id_changes_nothing(tmp_path: Path) -> None:
    path = tmp_path / "store.json"
    store = _store(path)
    asyncio.run(store.archive(ArchiveInput(text="body")))
    before = path.read_bytes()

    assert asyncio.run(store.update("missing", title="x")) is None
    assert path.read_bytes() == before


def test_update_rejects_immutable_fields(tmp_path: Path) -> None:
    store = _store(tmp_path / "store.json")
    created = asyncio.run(store.archive(ArchiveInput(text="body")))

    with pytest.raises(ValueError):
        asyncio.run(store.update(created.id, id="other"))
    with pytest.raises(ValueError):
        asyncio.run(store.update(created.id, created_at=0))
    with pytest.raises(ValueError):
        asyncio.run(store.update(created.id, colour="red"))


def test_failed_write_keeps_record_in_memory(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    document = JsonDocumentStore(tmp_path / "store.json")
    store = ArchiveStore(document)

    def broken_save() -> None:
        raise PersistenceError("disk full")

    monkeypatch.setattr(document, "save", broken_save)
    with pytest.raises(PersistenceError):
        asyncio.run(store.archive(ArchiveInput(text="unsaved but visible")))

    assert [item.text for item in store.transcripts] == ["unsaved but visible"]


def test_legacy_records_are_upgraded_and_bad_entries_kept(tmp_path: Path) -> None:
    path = tmp_path / "store.json"
    legacy = {
        ARCHIVE_STORE_KEY: [
            {"id": "old-1", "text": "from before titles", "createdAt": 1000},
            {
                "id": "old-2",
                "title": "Named",
                "text": "camel record",
                "createdAt": 2000,
                "hasConsent": False,
                "isImportant": True,
                "segments": [{"text": "camel record", "speakerId": "speaker_0", "startTime": 0.5}],
                "speakers": [{"id": "speaker_0", "name": "Calm Fox"}],
            },
            "garbage",
        ],
        "other-setting": {"theme": "dark"},
    }
    path.write_text(json.dumps(legacy), encoding="utf-8")
    before = path.read_bytes()

    store = ArchiveStore(JsonDocumentStore(path))
    store.load()
    assert path.read_bytes() == before

    newest, oldest = store.transcripts
    assert oldest.title == DEFAULT_TITLE
    assert oldest.segments == []
    assert oldest.has_consent is True
    assert newest.has_consent is False
    assert newest.is_important is True
    assert newest.segments[0].speaker_id == "speaker_0"
    assert newest.segments[0].start_time == 0.5

    asyncio.run(store.archive(ArchiveInput(text="new one")))
    saved = json.loads(path.read_text(encoding="utf-8"))
    assert "garbage" in saved[ARCHIVE_STORE_KEY]
    assert saved["other-setting"] == {"theme": "dark"}
    assert all(row["schema_version"] == 2 for row in saved[ARCHIVE_STORE_KEY] if isinstance(row, dict))


def test_search_matches_text_title_and_category(tmp_path: Path) -> None:
    store = _store(tmp_path / "store.json")

    async def scenario() -> None:
        first = await store.archive(ArchiveInput(text="quarterly budget review", title="Finance"))
        await store.archive(ArchiveInput(text="grocery list", title="Errands"))
        await store.update(first.id, is_important=True, category="Work")

    asyncio.run(scenario())

    assert [item.title for item in store.search("BUDGET")] == ["Finance"]
    assert [item.title for item in store.search("errands")] == ["Errands"]
    assert [item.title for item in store.search("work")] == ["Finance"]
    assert [item.title for item in store.search(important_only=True)] == ["Finance"]
    assert len(store.search()) == 2


def test_unreadable_file_loads_empty_and_is_never_overwritten(tmp_path: Path) -> None:
    path = tmp_path / "store.json"
    path.write_text("{not json", encoding="utf-8")
    store = ArchiveStore(JsonDocumentStore(path))

    store.load()

    assert store.is_loaded
    assert isinstance(store.load_error, PersistenceError)
    assert store.transcripts == ()
    with pytest.raises(PersistenceError):
        asyncio.run(store.archive(ArchiveInput(text="kept in memory")))
    assert [item.text for item in store.transcripts] == ["kept in memory"]
    assert path.read_text(encoding="utf-8") == "{not json"
