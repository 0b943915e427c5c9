from __future__ import annotations

from dataclasses import dataclass, field, fields
from typing import Any, Callable

from llmemo.scribe.base import TranscriptSegment

DEFAULT_TITLE = "Untitled Recording"
CURRENT_SCHEMA_VERSION = 2


@dataclass(slots=True)
class ArchivedSpeaker:
    id: str
    name: str
    notes: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "name": self.name, "notes": self.notes}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ArchivedSpeaker":
        return cls(
            id=str(data.get("id", "")),
            name=str(data.get("name", "")),
            notes=str(data.get("notes") or ""),
        )


@dataclass(slots=True)
class ArchivedTranscript:
    id: str
    title: str
    text: str
    created_at: int
    segments: list[TranscriptSegment] = field(default_factory=list)
    speakers: list[ArchivedSpeaker] = field(default_factory=list)
    has_consent: bool = True
    novelty_score: float | None = None
    coherence_score: float | None = None
    is_important: bool | None = None
    category: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "schema_version": CURRENT_SCHEMA_VERSION,
            "id": self.id,
            "title": self.title,
            "text": self.text,
            "created_at": self.created_at,
            "segments": [segment.to_dict() for segment in self.segments],
            "speakers": [speaker.to_dict() for speaker in self.speakers],
            "has_consent": self.has_consent,
            "novelty_score": self.novelty_score,
            "coherence_score": self.coherence_score,
            "is_important": self.is_important,
            "category": self.category,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ArchivedTranscript":
        """Build a record from an already upgraded dict (see ``upgrade_record``)."""

        def _float(key: str) -> float | None:
            value = data.get(key)
            return float(value) if value is not None else None

        important = data.get("is_important")
        return cls(
            id=str(data["id"]),
            title=str(data["title"]),
            text=str(data["text"]),
            created_at=int(data["created_at"]),
            segments=[TranscriptSegment.from_dict(item) for item in data["segments"]],
            speakers=[ArchivedSpeaker.from_dict(item) for item in data["speakers"]],
            has_consent=bool(data["has_consent"]),
            novelty_score=_float("novelty_score"),
            coherence_score=_float("coherence_score"),
            is_important=bool(important) if important is not None else None,
            category=data.get("category"),
        )


EDITABLE_FIELDS = frozenset(item.name for item in fields(ArchivedTranscript)) - {"id", "created_at"}


@dataclass(slots=True)
class ArchiveInput:
    text: str
    title: str = ""
    segments: list[TranscriptSegment] = field(default_factory=list)
    speakers: list[ArchivedSpeaker] = field(default_factory=list)
    has_consent: bool = True
    novelty_score: float | None = None
    coherence_score: float | None = None


_CAMEL_TO_SNAKE = {
    "createdAt": "created_at",
    "hasConsent": "has_consent",
    "noveltyScore": "novelty_score",
    "coherenceScore": "coherence_score",
    "isImportant": "is_important",
}


def _upgrade_v0_to_v1(record: dict[str, Any]) -> dict[str, Any]:
    # v0 records predate titles, segments, speakers and the consent flag.
    record["title"] = record.get("title") or DEFAULT_TITLE
    if not record.get("segments"):
        record["segments"] = []
    if not record.get("speakers"):
        record["speakers"] = []
    has_consent = record.get("has_consent", record.get("hasConsent"))
    record["has_consent"] = True if has_consent is None else bool(has_consent)
    record.pop("hasConsent", None)
    return record


def _upgrade_v1_to_v2(record: dict[str, Any]) -> dict[str, Any]:
    for camel, snake in _CAMEL_TO_SNAKE.items():
        if camel in record:
            record.setdefault(snake, record[camel])
            del record[camel]
    record["segments"] = [TranscriptSegment.from_dict(item).to_dict() for item in record["segments"]]
    return record


_UPGRADES: dict[int, Callable[[dict[str, Any]], dict[str, Any]]] = {
    0: _upgrade_v0_to_v1,
    1: _upgrade_v1_to_v2,
}


def upgrade_record(raw: dict[str, Any]) -> dict[str, Any]:
    """Bring a stored record up to ``CURRENT_SCHEMA_VERSION``.

    Records without a ``schema_version`` are treated as version 0. The input
    dict is not modified.
    """

    record = dict(raw)
    version = int(record.get("schema_version", 0))
    while version < CURRENT_SCHEMA_VERSION:
        record = _UPGRADES[version](record)
        version += 1
    record["schema_version"] = version
    return record
