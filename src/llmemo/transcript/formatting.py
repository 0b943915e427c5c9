from __future__ import annotations

import re
from typing import Iterable, Sequence

from llmemo.scribe.base import TranscriptSegment, WordTag

PAUSE_THRESHOLD_S = 2.0
MAX_PARAGRAPH_SENTENCES = 5
MAX_PARAGRAPH_CHARS = 500
WORDS_PER_CHUNK = 75

_SENTENCE_SPLIT = re.compile(r"(?<=[.!?])\s+")
_TERMINAL_PUNCTUATION = re.compile(r"[.!?]\s*$")
_ANY_PUNCTUATION = re.compile(r"[.!?]")


def attribute_speaker(words: Iterable[WordTag]) -> str | None:
    """Return the speaker tagged on the most words; ties go to whoever spoke first."""

    counts: dict[str, int] = {}
    for word in words:
        if word.speaker_id:
            counts[word.speaker_id] = counts.get(word.speaker_id, 0) + 1
    if not counts:
        return None
    # dicts keep insertion order, and max() keeps the first of equal keys.
    return max(counts, key=lambda speaker: counts[speaker])


def full_transcript(segments: Sequence[TranscriptSegment]) -> str:
    return " ".join(segment.text for segment in segments)


def text_to_paragraphs(
    text: str,
    *,
    max_sentences: int = MAX_PARAGRAPH_SENTENCES,
    max_chars: int = MAX_PARAGRAPH_CHARS,
    chunk_words: int = WORDS_PER_CHUNK,
) -> list[str]:
    """Paragraph plain text with no timing information.

    Sentences are grouped until a paragraph holds ``max_sentences`` of them or
    grows past ``max_chars``. Text without any sentence punctuation is cut
    into ``chunk_words``-word chunks instead.
    """

    trimmed = text.strip()
    if not trimmed:
        return []

    if not _ANY_PUNCTUATION.search(trimmed):
        words = trimmed.split()
        return [" ".join(words[i : i + chunk_words]) for i in range(0, len(words), chunk_words)]

    paragraphs: list[str] = []
    current: list[str] = []
    for sentence in _SENTENCE_SPLIT.split(trimmed):
        current.append(sentence)
        joined = " ".join(current)
        if len(current) >= max_sentences or len(joined) > max_chars:
            paragraphs.append(joined)
            current = []
    if current:
        paragraphs.append(" ".join(current))
    return paragraphs


def _is_pause_break(previous: TranscriptSegment, segment: TranscriptSegment) -> bool:
    if not _TERMINAL_PUNCTUATION.search(previous.text.strip()):
        return False
    if previous.end_time is None or segment.start_time is None:
        return False
    return segment.start_time - previous.end_time >= PAUSE_THRESHOLD_S


def segments_to_paragraphs(
    segments: Sequence[TranscriptSegment],
    fallback_text: str = "",
) -> list[str]:
    """Group segments into paragraphs at sentence ends followed by a long pause.

    When no segment carries timing the sentence-count fallback is applied to
    the joined text, or to ``fallback_text`` when there are no segments.
    """

    if not segments:
        return text_to_paragraphs(fallback_text)
    if not any(segment.has_timing for segment in segments):
        return text_to_paragraphs(full_transcript(segments))

    paragraphs: list[str] = []
    current: list[str] = []
    previous: TranscriptSegment | None = None
    for segment in segments:
        if previous is not None and current and _is_pause_break(previous, segment):
            paragraphs.append(" ".join(current))
            current = []
        current.append(segment.text)
        previous = segment
    if current:
        paragraphs.append(" ".join(current))
    return [paragraph for paragraph in paragraphs if paragraph.strip()]
