from llmemo.scribe.base import TranscriptSegment, WordTag
from llmemo.transcript.formatting import (
    attribute_speaker,
    full_transcript,
    segments_to_paragraphs,
    text_to_paragraphs,
)


def test_full_transcript_joins_in_arrival_order() -> None:
    segments = [
        TranscriptSegment(text="Second take.", speaker_id="b", start_time=5.0, end_time=6.0),
        TranscriptSegment(text="first", speaker_id=None),
        TranscriptSegment(text="third!", speaker_id="a", start_time=1.0, end_time=2.0),
    ]
    assert full_transcript(segments) == "Second take. first third!"
    assert full_transcript([]) == ""


def test_pause_after_sentence_starts_new_paragraph() -> None:
    segments = [
        TranscriptSegment(text="Hello world.", end_time=1.0),
        TranscriptSegment(text="Next thought.", start_time=4.0),
    ]
    assert segments_to_paragraphs(segments) == ["Hello world.", "Next thought."]


def test_short_pause_or_missing_punctuation_keeps_paragraph() -> None:
    short_gap = [
        TranscriptSegment(text="Hello world.", start_time=0.0, end_time=1.0),
        TranscriptSegment(text="Next thought.", start_time=2.5, end_time=3.0),
    ]
    no_punctuation = [
        TranscriptSegment(text="Hello world", start_time=0.0, end_time=1.0),
        TranscriptSegment(text="next thought.", start_time=9.0, end_time=10.0),
    ]
    assert segments_to_paragraphs(short_gap) == ["Hello world. Next thought."]
    assert segments_to_paragraphs(no_punctuation) == ["Hello world next thought."]


def test_gap_of_exactly_two_seconds_breaks() -> None:
    segments = [
        TranscriptSegment(text="Is it done?", start_time=0.0, end_time=1.5),
        TranscriptSegment(text="Yes.", start_time=3.5, end_time=4.0),
        TranscriptSegment(text="Great!", start_time=4.1, end_time=4.5),
    ]
    assert segments_to_paragraphs(segments) == ["Is it done?", "Yes. Great!"]


def test_missing_timing_in_pair_never_breaks() -> None:
    segments = [
        TranscriptSegment(text="Timed.", start_time=0.0, end_time=1.0),
        TranscriptSegment(text="Untimed."),
        TranscriptSegment(text="Timed again.", start_time=10.0, end_time=11.0),
    ]
    assert segments_to_paragraphs(segments) == ["Timed. Untimed. Timed again."]


def test_segments_without_any_timing_use_sentence_fallback() -> None:
    segments = [TranscriptSegment(text=f"Sentence {index}.") for index in range(7)]
    assert segments_to_paragraphs(segments) == [
        "Sentence 0. Sentence 1. Sentence 2. Sentence 3. Sentence 4.",
        "Sentence 5. Sentence 6.",
    ]


def test_empty_input_yields_no_paragraphs() -> None:
    assert segments_to_paragraphs([]) == []
    assert segments_to_paragraphs([], "   ") == []
    assert text_to_paragraphs("") == []
    assert text_to_paragraphs(" \n\t ") == []


def test_no_segments_falls_back_to_text() -> None:
    assert segments_to_paragraphs([], "Only partial text so far") == ["Only partial text so far"]


def test_long_sentences_close_paragraph_by_length() -> None:
    long_sentence = "word " * 110
    text = f"{long_sentence.strip()}. Short one. Another."
    paragraphs = text_to_paragraphs(text)
    assert paragraphs[0].endswith("word.")
    assert paragraphs[1] == "Short one. Another."


def test_unpunctuated_text_is_chunked_by_words() -> None:
    text = " ".join(f"w{index}" for index in range(160))
    paragraphs = text_to_paragraphs(text)
    assert [len(paragraph.split()) for paragraph in paragraphs] == [75, 75, 10]
    assert paragraphs == text_to_paragraphs(text)


def test_attribute_speaker_majority_vote() -> None:
    words = [
        WordTag("a", "speaker_1"),
        WordTag("b", "speaker_0"),
        WordTag("c", "speaker_0"),
        WordTag("d", None),
    ]
    assert attribute_speaker(words) == "speaker_0"


def test_attribute_speaker_tie_goes_to_first_speaker() -> None:
    words = [
        WordTag("a", "speaker_1"),
        WordTag("b", "speaker_0"),
        WordTag("c", "speaker_0"),
        WordTag("d", "speaker_1"),
    ]
    assert attribute_speaker(words) == "speaker_1"
    assert attribute_speaker(words) == attribute_speaker(list(words))


def test_attribute_speaker_without_tags() -> None:
    assert attribute_speaker([]) is None
    assert attribute_speaker([WordTag("x"), WordTag("y")]) is None
