from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Awaitable, Callable

from llmemo.errors import (
    AuthError,
    ConfigError,
    LlmemoError,
    NetworkError,
    QuotaError,
    SessionBusyError,
)
from llmemo.scribe.base import (
    AuthFailed,
    CommittedTranscript,
    Disconnected,
    PartialTranscript,
    ProviderConnection,
    ProviderEvent,
    ProviderFailure,
    QuotaExceeded,
    StreamingProvider,
    TimestampedTranscript,
    TranscriptSegment,
)
from llmemo.transcript.formatting import attribute_speaker, full_transcript, segments_to_paragraphs
from llmemo.transcript.speakers import SpeakerIdentityCache

logger = logging.getLogger(__name__)

QUOTA_MESSAGE = "Quota exceeded. Please check your ElevenLabs plan."

TokenFetcher = Callable[[str], Awaitable[str]]


class SessionStatus(str, Enum):
    IDLE = "idle"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    PAUSED = "paused"
    ERROR = "error"


@dataclass(slots=True)
class SessionState:
    status: SessionStatus = SessionStatus.IDLE
    segments: list[TranscriptSegment] = field(default_factory=list)
    partial_text: str = ""
    partial_speaker: str | None = None
    speakers: list[str] = field(default_factory=list)
    error: LlmemoError | None = None


@dataclass(frozen=True, slots=True)
class SessionSnapshot:
    """Read-only view of a session handed to listeners and callers."""

    status: SessionStatus
    segments: tuple[TranscriptSegment, ...]
    partial_transcript: str
    partial_speaker: str | None
    speakers: tuple[str, ...]
    error: str | None

    @property
    def transcript(self) -> str:
        return full_transcript(self.segments)

    @property
    def paragraphs(self) -> list[str]:
        return segments_to_paragraphs(self.segments, self.partial_transcript)

    @property
    def is_connected(self) -> bool:
        return self.status is SessionStatus.CONNECTED

    @property
    def has_content(self) -> bool:
        return bool(self.segments) or bool(self.partial_transcript.strip())


SnapshotListener = Callable[[SessionSnapshot], None]


class TranscriptionSession:
    """Lifecycle of one realtime transcription stream.

    Idle -> Connecting -> Connected -> Paused -> ... -> Idle, with Error
    reachable from Connecting and Connected. Nothing here retries: each
    reconnect is an explicit ``start()`` or ``resume()`` because tokens are
    single-use and a silent retry would hide auth or quota problems.

    All state changes happen on the event loop that drives the session;
    provider events are applied in the order the connection delivers them.
    ``clear_transcript()`` while connected races with incoming commits, so
    callers should ``stop()`` first.
    """

    def __init__(
        self,
        credential: str,
        *,
        provider: StreamingProvider,
        fetch_token: TokenFetcher,
        speakers: SpeakerIdentityCache | None = None,
        on_error: Callable[[LlmemoError], None] | None = None,
    ) -> None:
        self.credential = credential
        self.speakers = speakers if speakers is not None else SpeakerIdentityCache()
        self._provider = provider
        self._fetch_token = fetch_token
        self._on_error = on_error
        self._state = SessionState()
        self._connection: ProviderConnection | None = None
        # Bumped whenever a connection is torn down; events and connects
        # carrying an older generation are stale.
        self._generation = 0
        self._connecting = False
        self._listeners: list[SnapshotListener] = []

    @property
    def status(self) -> SessionStatus:
        return self._state.status

    @property
    def segments(self) -> tuple[TranscriptSegment, ...]:
        return tuple(self._state.segments)

    @property
    def transcript(self) -> str:
        return full_transcript(self._state.segments)

    @property
    def partial_transcript(self) -> str:
        return self._state.partial_text

    @property
    def error(self) -> LlmemoError | None:
        return self._state.error

    def snapshot(self) -> SessionSnapshot:
        error = self._state.error
        return SessionSnapshot(
            status=self._state.status,
            segments=tuple(self._state.segments),
            partial_transcript=self._state.partial_text,
            partial_speaker=self._state.partial_speaker,
            speakers=tuple(self._state.speakers),
            error=str(error) if error is not None else None,
        )

    def subscribe(self, listener: SnapshotListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self) -> None:
        snapshot = self.snapshot()
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception:
                # Listeners run inside the provider's receive task.
                logger.exception("Session listener failed")

    def _set_status(self, status: SessionStatus) -> None:
        if status is not self._state.status:
            logger.info("Session %s -> %s", self._state.status.value, status.value)
            self._state.status = status

    def _record_error(self, error: LlmemoError) -> None:
        logger.error("Transcription error: %s", error)
        self._state.error = error
        if self._on_error is not None:
            self._on_error(error)

    def report_error(self, error: LlmemoError) -> None:
        """Record a failure raised outside the provider, e.g. while sending audio."""

        self._record_error(error)
        self._notify()

    def _require_credential(self) -> str:
        credential = (self.credential or "").strip()
        if not credential:
            error = ConfigError("API key is required")
            self._record_error(error)
            self._notify()
            raise error
        return credential

    async def start(self) -> None:
        if self._connecting or self._state.status in (SessionStatus.CONNECTING, SessionStatus.CONNECTED):
            raise SessionBusyError("Transcription session is already starting or running")
        credential = self._require_credential()
        await self._open(credential)

    async def resume(self) -> None:
        if self._connecting or self._state.status in (SessionStatus.CONNECTING, SessionStatus.CONNECTED):
            raise SessionBusyError("Transcription session is already starting or running")
        credential = self._require_credential()
        await self._open(credential)

    async def _open(self, credential: str) -> None:
        self._connecting = True
        self._generation += 1
        generation = self._generation
        self._state.error = None
        self._set_status(SessionStatus.CONNECTING)
        self._notify()

        try:
            token = await self._fetch_token(credential)
            connection = await self._provider.connect(token, self._handler(generation))
        except Exception as exc:
            if generation == self._generation:
                error = exc if isinstance(exc, LlmemoError) else NetworkError(str(exc))
                self._record_error(error)
                self._set_status(SessionStatus.ERROR)
                self._notify()
            raise
        finally:
            self._connecting = False

        if generation != self._generation:
            # stop() arrived while connecting; do not leave the stream open.
            logger.info("Session stopped while connecting; closing new connection")
            await connection.close()
            return

        self._connection = connection
        self._set_status(SessionStatus.CONNECTED)
        self._notify()

    async def stop(self) -> None:
        if self._state.status is SessionStatus.IDLE and not self._connecting:
            return
        await self._teardown(SessionStatus.IDLE)

    async def pause(self) -> None:
        if self._state.status is not SessionStatus.CONNECTED:
            return
        await self._teardown(SessionStatus.PAUSED)

    async def _teardown(self, status: SessionStatus) -> None:
        self._generation += 1
        connection, self._connection = self._connection, None
        # Providers may drop partial text on disconnect, so keep what we have.
        self._flush_partial()
        self._set_status(status)
        self._notify()
        if connection is not None:
            await connection.close()

    def clear_transcript(self) -> None:
        self._state.segments = []
        self._state.partial_text = ""
        self._state.partial_speaker = None
        self._state.speakers = []
        self._state.error = None
        self.speakers.reset()
        if self._state.status is SessionStatus.ERROR:
            self._set_status(SessionStatus.IDLE)
        self._notify()

    async def send_audio(self, pcm: bytes) -> None:
        connection = self._connection
        if connection is None or self._state.status is not SessionStatus.CONNECTED:
            return
        await connection.send_audio(pcm)

    def _handler(self, generation: int) -> Callable[[ProviderEvent], None]:
        def handle(event: ProviderEvent) -> None:
            if generation != self._generation:
                logger.debug("Dropping event from closed connection: %s", type(event).__name__)
                return
            self._apply(event)
            self._notify()

        return handle

    def _apply(self, event: ProviderEvent) -> None:
        if isinstance(event, PartialTranscript):
            self._state.partial_text = event.text
            self._state.partial_speaker = event.speaker_id
        elif isinstance(event, TimestampedTranscript):
            self._commit_timestamped(event)
        elif isinstance(event, CommittedTranscript):
            self._commit_plain(event)
        elif isinstance(event, AuthFailed):
            self._record_error(AuthError(event.message or "Authentication failed"))
        elif isinstance(event, QuotaExceeded):
            self._record_error(QuotaError(QUOTA_MESSAGE))
        elif isinstance(event, ProviderFailure):
            self._record_error(NetworkError(event.message))
        elif isinstance(event, Disconnected):
            self._generation += 1
            self._connection = None
            self._flush_partial()
            detail = f": {event.reason}" if event.reason else ""
            self._record_error(NetworkError(f"Connection to transcription provider lost{detail}"))
            self._set_status(SessionStatus.ERROR)

    def _clear_partial(self) -> None:
        self._state.partial_text = ""
        self._state.partial_speaker = None

    def _append(self, segment: TranscriptSegment) -> None:
        self._state.segments.append(segment)
        speaker_id = segment.speaker_id
        if speaker_id is not None:
            self.speakers.identity_for(speaker_id)
            if speaker_id not in self._state.speakers:
                self._state.speakers.append(speaker_id)

    def _commit_timestamped(self, event: TimestampedTranscript) -> None:
        text = event.text.strip()
        if not text:
            return
        starts = [word.start for word in event.words if word.start is not None]
        ends = [word.end for word in event.words if word.end is not None]
        self._append(
            TranscriptSegment(
                text=text,
                speaker_id=attribute_speaker(event.words),
                start_time=min(starts) if starts else None,
                end_time=max(ends) if ends else None,
            )
        )
        self._clear_partial()

    def _commit_plain(self, event: CommittedTranscript) -> None:
        text = event.text.strip()
        if not text:
            return
        self._clear_partial()
        segments = self._state.segments
        # The provider may send the same commit with and without timestamps.
        if segments and segments[-1].text == text:
            return
        self._append(TranscriptSegment(text=text))

    def _flush_partial(self) -> None:
        text = self._state.partial_text.strip()
        if text:
            self._append(TranscriptSegment(text=text, speaker_id=self._state.partial_speaker))
        self._clear_partial()
