from __future__ import annotations

import asyncio
import logging
import time
import uuid
from dataclasses import replace
from typing import Any, Callable

from llmemo.errors import PersistenceError
from llmemo.storage.document import JsonDocumentStore
from llmemo.storage.models import (
    DEFAULT_TITLE,
    EDITABLE_FIELDS,
    ArchivedTranscript,
    ArchiveInput,
    upgrade_record,
)

logger = logging.getLogger(__name__)

ARCHIVE_STORE_KEY = "archived-transcripts"


def _now_ms() -> int:
    return int(time.time() * 1000)


def _new_id() -> str:
    return str(uuid.uuid4())


class ArchiveStore:
    """Archived transcripts, newest first, mirrored from one JSON document.

    The in-memory list is what callers read. Every mutation updates it first
    and then writes the whole list back to disk, one write at a time. If the
    write fails the caller gets a ``PersistenceError`` but the in-memory change
    stays: a record is always visible once archived, durable once a write
    succeeds.
    """

    def __init__(
        self,
        document: JsonDocumentStore,
        *,
        key: str = ARCHIVE_STORE_KEY,
        clock: Callable[[], int] | None = None,
        id_factory: Callable[[], str] | None = None,
    ) -> None:
        self._document = document
        self._key = key
        self._clock = clock or _now_ms
        self._id_factory = id_factory or _new_id
        self._transcripts: list[ArchivedTranscript] = []
        self._unreadable: list[Any] = []
        self._loaded = False
        self._load_error: PersistenceError | None = None
        self._write_lock = asyncio.Lock()

    @property
    def is_loaded(self) -> bool:
        return self._loaded

    @property
    def transcripts(self) -> tuple[ArchivedTranscript, ...]:
        self.load()
        return tuple(self._transcripts)

    @property
    def load_error(self) -> PersistenceError | None:
        """Why the archive file could not be read, if it could not."""

        return self._load_error

    def load(self) -> None:
        if self._loaded:
            return
        try:
            stored = self._document.get(self._key, [])
        except PersistenceError as exc:
            # The file is left as-is; writes are refused until it is repaired.
            logger.error("Archive unreadable, continuing without it: %s", exc)
            self._load_error = exc
            self._loaded = True
            return
        if not isinstance(stored, list):
            logger.warning("Archive key %r is not a list; starting empty", self._key)
            stored = []

        transcripts: list[ArchivedTranscript] = []
        for raw in stored:
            try:
                transcripts.append(ArchivedTranscript.from_dict(upgrade_record(raw)))
            except (AttributeError, KeyError, TypeError, ValueError) as exc:
                # Kept verbatim so the next save does not drop it from disk.
                logger.warning("Skipping unreadable archive entry: %s", exc)
                self._unreadable.append(raw)

        transcripts.sort(key=lambda item: item.created_at, reverse=True)
        self._transcripts = transcripts
        self._loaded = True
        logger.info("Loaded %d archived transcripts", len(transcripts))

    def get(self, transcript_id: str) -> ArchivedTranscript | None:
        self.load()
        for transcript in self._transcripts:
            if transcript.id == transcript_id:
                return transcript
        return None

    def _unique_id(self) -> str:
        existing = {item.id for item in self._transcripts}
        candidate = self._id_factory()
        while candidate in existing:
            candidate = self._id_factory()
        return candidate

    async def _persist(self) -> None:
        if self._load_error is not None:
            raise PersistenceError(f"Archive not saved, existing file is unreadable: {self._load_error}")
        async with self._write_lock:
            rows = [item.to_dict() for item in self._transcripts]
            self._document.set(self._key, rows + self._unreadable)
            await asyncio.to_thread(self._document.save)

    async def archive(self, data: ArchiveInput) -> ArchivedTranscript | None:
        text = data.text.strip()
        if not text:
            return None
        self.load()

        transcript = ArchivedTranscript(
            id=self._unique_id(),
            title=data.title.strip() or DEFAULT_TITLE,
            text=text,
            created_at=self._clock(),
            segments=list(data.segments),
            speakers=list(data.speakers),
            has_consent=data.has_consent,
            novelty_score=data.novelty_score,
            coherence_score=data.coherence_score,
        )
        self._transcripts.insert(0, transcript)
        logger.info("Archived transcript %s (%d chars)", transcript.id, len(text))
        await self._persist()
        return transcript

    async def update(self, transcript_id: str, **changes: Any) -> ArchivedTranscript | None:
        unknown = set(changes) - EDITABLE_FIELDS
        if unknown:
            raise ValueError(f"Cannot update archive fields: {', '.join(sorted(unknown))}")
        self.load()

        for index, transcript in enumerate(self._transcripts):
            if transcript.id != transcript_id:
                continue
            if "title" in changes:
                changes["title"] = str(changes["title"] or "").strip() or DEFAULT_TITLE
            updated = replace(transcript, **changes)
            self._transcripts[index] = updated
            await self._persist()
            return updated
        return None

    async def delete(self, transcript_id: str) -> bool:
        self.load()
        remaining = [item for item in self._transcripts if item.id != transcript_id]
        if len(remaining) == len(self._transcripts):
            return False
        self._transcripts = remaining
        logger.info("Deleted archived transcript %s", transcript_id)
        await self._persist()
        return True

    def search(self, query: str = "", *, important_only: bool = False) -> list[ArchivedTranscript]:
        """Filter by a case-insensitive match on text, title or category."""

        self.load()
        needle = query.strip().lower()
        matches: list[ArchivedTranscript] = []
        for transcript in self._transcripts:
            if important_only and not transcript.is_important:
                continue
            if needle and not (
                needle in transcript.text.lower()
                or needle in transcript.title.lower()
                or (transcript.category is not None and needle in transcript.category.lower())
            ):
                continue
            matches.append(transcript)
        return matches
