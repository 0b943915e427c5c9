from __future__ import annotations

from llmemo.export.csv import format_created_at
from llmemo.storage.models import ArchivedTranscript
from llmemo.transcript.formatting import segments_to_paragraphs


def render_markdown(transcript: ArchivedTranscript) -> str:
    names = {speaker.id: speaker.name for speaker in transcript.speakers}

    lines: list[str] = []
    lines.append(f"# {transcript.title}")
    lines.append("")
    lines.append(f"- Recorded at: {format_created_at(transcript.created_at)}")
    lines.append(f"- Consent: {'yes' if transcript.has_consent else 'no'}")
    if transcript.category:
        lines.append(f"- Category: {transcript.category}")
    if transcript.novelty_score is not None:
        lines.append(f"- Novelty score: `{transcript.novelty_score:.2f}`")
    if transcript.coherence_score is not None:
        lines.append(f"- Coherence score: `{transcript.coherence_score:.2f}`")
    lines.append("")

    if transcript.speakers:
        lines.append("## Speakers")
        lines.append("")
        for speaker in transcript.speakers:
            note = f": {speaker.notes}" if speaker.notes else ""
            lines.append(f"- {speaker.name}{note}")
        lines.append("")

    lines.append("## Transcript")
    lines.append("")
    if names and any(segment.speaker_id for segment in transcript.segments):
        for segment in transcript.segments:
            label = names.get(segment.speaker_id or "", "Unknown")
            lines.append(f"**{label}:** {segment.text}")
            lines.append("")
    else:
        for paragraph in segments_to_paragraphs(transcript.segments, transcript.text):
            lines.append(paragraph)
            lines.append("")
    return "\n".join(lines)
