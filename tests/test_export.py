import csv
from pathlib import Path

from llmemo.export.csv import CSV_COLUMNS, archive_row, format_created_at, write_csv
from llmemo.export.md import render_markdown
from llmemo.scribe.base import TranscriptSegment
from llmemo.storage.models import ArchivedSpeaker, ArchivedTranscript


def _transcript(**overrides) -> ArchivedTranscript:
    values = dict(
        id="t1",
        title="Standup",
        text="Morning all. Shipping today.",
        created_at=0,
        segments=[
            TranscriptSegment("Morning all.", "speaker_0", 0.0, 1.0),
            TranscriptSegment("Shipping today.", "speaker_1", 1.2, 2.0),
        ],
        speakers=[
            ArchivedSpeaker("speaker_0", "Brave Otter", notes="host"),
            ArchivedSpeaker("speaker_1", "Quiet Heron"),
        ],
        novelty_score=0.5,
        is_important=True,
        category="team",
    )
    values.update(overrides)
    return ArchivedTranscript(**values)


def test_format_created_at_is_utc_iso() -> None:
    assert format_created_at(0) == "1970-01-01T00:00:00+00:00"
    assert format_created_at(1_500) == "1970-01-01T00:00:01+00:00"


def test_archive_row_flattens_nested_fields() -> None:
    row = archive_row(_transcript())

    assert set(row) == set(CSV_COLUMNS)
    assert row["segments"] == "[Brave Otter] Morning all. | [Quiet Heron] Shipping today."
    assert row["speakers"] == "Brave Otter (host); Quiet Heron"
    assert row["has_consent"] == "yes"
    assert row["is_important"] == "yes"
    assert row["novelty_score"] == "0.5"
    assert row["coherence_score"] == ""


def test_write_csv_round_trips_through_reader(tmp_path: Path) -> None:
    path = write_csv([_transcript(), _transcript(id="t2", text='Quote "this", please')], tmp_path / "x" / "a.csv")

    with path.open(encoding="utf-8", newline="") as handle:
        rows = list(csv.DictReader(handle))

    assert [row["id"] for row in rows] == ["t1", "t2"]
    assert rows[1]["text"] == 'Quote "this", please'


def test_render_markdown_labels_speakers() -> None:
    markdown = render_markdown(_transcript())

    assert markdown.startswith("# Standup")
    assert "- Category: team" in markdown
    assert "- Brave Otter: host" in markdown
    assert "**Quiet Heron:** Shipping today." in markdown


def test_render_markdown_without_speakers_uses_paragraphs() -> None:
    transcript = _transcript(
        speakers=[],
        segments=[
            TranscriptSegment("First point.", None, 0.0, 1.0),
            TranscriptSegment("Second point.", None, 5.0, 6.0),
        ],
        text="First point. Second point.",
    )
    markdown = render_markdown(transcript)

    assert "## Speakers" not in markdown
    assert "First point.\n\nSecond point." in markdown
