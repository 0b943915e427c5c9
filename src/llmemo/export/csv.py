from __future__ import annotations

import csv
from datetime import datetime, timezone
from pathlib import Path
from typing import Sequence

from llmemo.storage.models import ArchivedTranscript

CSV_COLUMNS: tuple[str, ...] = (
    "id",
    "title",
    "created_at",
    "text",
    "segments",
    "speakers",
    "has_consent",
    "novelty_score",
    "coherence_score",
    "is_important",
    "category",
)


def format_created_at(created_at_ms: int) -> str:
    moment = datetime.fromtimestamp(created_at_ms / 1000, tz=timezone.utc)
    return moment.replace(microsecond=0).isoformat()


def _flag(value: bool | None) -> str:
    if value is None:
        return ""
    return "yes" if value else "no"


def _number(value: float | None) -> str:
    return "" if value is None else f"{value:g}"


def archive_row(transcript: ArchivedTranscript) -> dict[str, str]:
    """Flatten one archived transcript so every field is a plain string."""

    names = {speaker.id: speaker.name for speaker in transcript.speakers}
    segments = " | ".join(
        f"[{names.get(segment.speaker_id, segment.speaker_id)}] {segment.text}"
        if segment.speaker_id
        else segment.text
        for segment in transcript.segments
    )
    speakers = "; ".join(
        f"{speaker.name} ({speaker.notes})" if speaker.notes else speaker.name
        for speaker in transcript.speakers
    )
    return {
        "id": transcript.id,
        "title": transcript.title,
        "created_at": format_created_at(transcript.created_at),
        "text": transcript.text,
        "segments": segments,
        "speakers": speakers,
        "has_consent": _flag(transcript.has_consent),
        "novelty_score": _number(transcript.novelty_score),
        "coherence_score": _number(transcript.coherence_score),
        "is_important": _flag(transcript.is_important),
        "category": transcript.category or "",
    }


def archive_rows(transcripts: Sequence[ArchivedTranscript]) -> list[dict[str, str]]:
    return [archive_row(item) for item in transcripts]


def write_csv(transcripts: Sequence[ArchivedTranscript], output_path: Path) -> Path:
    output_path.parent.mkdir(parents=True, exist_ok=True)
    with output_path.open("w", encoding="utf-8", newline="") as handle:
        writer = csv.DictWriter(handle, fieldnames=CSV_COLUMNS)
        writer.writeheader()
        writer.writerows(archive_rows(transcripts))
    return output_path
