from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Protocol, Union


@dataclass(slots=True)
class TranscriptSegment:
    """One committed utterance. Timing is in seconds from session start."""

    text: str
    speaker_id: str | None = None
    start_time: float | None = None
    end_time: float | None = None

    @property
    def has_timing(self) -> bool:
        return self.start_time is not None or self.end_time is not None

    def to_dict(self) -> dict[str, Any]:
        return {
            "text": self.text,
            "speaker_id": self.speaker_id,
            "start_time": self.start_time,
            "end_time": self.end_time,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TranscriptSegment":
        start = data.get("start_time", data.get("startTime"))
        end = data.get("end_time", data.get("endTime"))
        return cls(
            text=str(data.get("text", "")),
            speaker_id=data.get("speaker_id", data.get("speakerId")),
            start_time=float(start) if start is not None else None,
            end_time=float(end) if end is not None else None,
        )


@dataclass(frozen=True, slots=True)
class WordTag:
    text: str
    speaker_id: str | None = None
    start: float | None = None
    end: float | None = None


@dataclass(frozen=True, slots=True)
class PartialTranscript:
    text: str
    speaker_id: str | None = None


@dataclass(frozen=True, slots=True)
class CommittedTranscript:
    """Committed text delivered without word timing."""

    text: str


@dataclass(frozen=True, slots=True)
class TimestampedTranscript:
    text: str
    words: tuple[WordTag, ...] = field(default_factory=tuple)


@dataclass(frozen=True, slots=True)
class AuthFailed:
    message: str


@dataclass(frozen=True, slots=True)
class QuotaExceeded:
    message: str


@dataclass(frozen=True, slots=True)
class ProviderFailure:
    message: str


@dataclass(frozen=True, slots=True)
class Disconnected:
    reason: str = ""


ProviderEvent = Union[
    PartialTranscript,
    CommittedTranscript,
    TimestampedTranscript,
    AuthFailed,
    QuotaExceeded,
    ProviderFailure,
    Disconnected,
]

EventCallback = Callable[[ProviderEvent], None]


class ProviderConnection(Protocol):
    async def send_audio(self, pcm: bytes) -> None:
        """Send one block of raw PCM audio."""

    async def close(self) -> None:
        """Close the stream. Must not emit a Disconnected event."""


class StreamingProvider(Protocol):
    async def connect(self, token: str, on_event: EventCallback) -> ProviderConnection:
        """Open a streaming connection authorised by a single-use token."""
