from __future__ import annotations

import asyncio
import functools
import logging
from dataclasses import dataclass
from pathlib import Path

from llmemo.audio.capture import MicrophoneStream
from llmemo.config import Settings, get_settings
from llmemo.errors import LlmemoError, PersistenceError
from llmemo.export.csv import write_csv
from llmemo.export.md import render_markdown
from llmemo.scribe.base import StreamingProvider
from llmemo.scribe.realtime import ScribeRealtimeProvider
from llmemo.scribe.token import fetch_token
from llmemo.session import SessionStatus, TokenFetcher, TranscriptionSession
from llmemo.storage.archive import ArchiveStore
from llmemo.storage.document import JsonDocumentStore
from llmemo.storage.models import ArchivedTranscript, ArchiveInput

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class RecordingOutcome:
    segment_count: int
    speaker_count: int
    archived: ArchivedTranscript | None


class LlmemoService:
    """Wires settings, the realtime session and the archive together."""

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        provider: StreamingProvider | None = None,
        token_fetcher: TokenFetcher | None = None,
        language_code: str | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.settings.ensure_dirs()
        self.language_code = self.settings.resolve_language(language_code)

        self.document = JsonDocumentStore(self.settings.store_path)
        self.archive = ArchiveStore(self.document)
        self.archive.load()

        if provider is None:
            provider = ScribeRealtimeProvider(
                url=self.settings.realtime_url,
                model_id=self.settings.model_id,
                language_code=self.language_code,
                sample_rate=self.settings.sample_rate,
                vad_threshold=self.settings.vad_threshold,
                min_speech_duration_ms=self.settings.min_speech_duration_ms,
                min_silence_duration_ms=self.settings.min_silence_duration_ms,
            )
        if token_fetcher is None:
            token_fetcher = functools.partial(
                fetch_token,
                url=self.settings.token_url,
                timeout=self.settings.http_timeout_s,
            )
        self.session = TranscriptionSession(
            self.settings.api_key,
            provider=provider,
            fetch_token=token_fetcher,
        )

    async def new_recording(self) -> None:
        """Discard the current transcript and start a fresh stream."""

        await self.session.stop()
        self.session.clear_transcript()
        await self.session.start()

    async def stream_microphone(self, stream: MicrophoneStream) -> None:
        """Forward captured audio until the stream ends or the session drops."""

        try:
            async for block in stream.frames():
                status = self.session.status
                if status is SessionStatus.CONNECTED:
                    await self.session.send_audio(block)
                elif status is not SessionStatus.PAUSED:
                    break
        finally:
            stream.close()

    async def archive_session(
        self,
        *,
        title: str = "",
        has_consent: bool = True,
        novelty_score: float | None = None,
        coherence_score: float | None = None,
    ) -> ArchivedTranscript | None:
        snapshot = self.session.snapshot()
        text = snapshot.transcript or snapshot.partial_transcript
        return await self.archive.archive(
            ArchiveInput(
                text=text,
                title=title,
                segments=list(snapshot.segments),
                speakers=self.session.speakers.to_archived_speakers(),
                has_consent=has_consent,
                novelty_score=novelty_score,
                coherence_score=coherence_score,
            )
        )

    def export_archive(self, output_path: Path | None = None) -> Path:
        if output_path is None:
            output_path = self.settings.exports_dir / "transcripts.csv"
        path = write_csv(self.archive.transcripts, output_path)
        logger.info("Exported %d transcripts to %s", len(self.archive.transcripts), path)
        return path

    def export_transcript_markdown(self, transcript_id: str, output_path: Path | None = None) -> Path:
        transcript = self.archive.get(transcript_id)
        if transcript is None:
            raise ValueError(f"Archived transcript not found: {transcript_id}")
        if output_path is None:
            output_path = self.settings.exports_dir / f"{transcript_id}.md"
        output_path.parent.mkdir(parents=True, exist_ok=True)
        output_path.write_text(render_markdown(transcript), encoding="utf-8")
        return output_path

    async def record(
        self,
        stream: MicrophoneStream,
        stop: asyncio.Event,
        *,
        title: str = "",
        archive: bool = True,
        has_consent: bool = True,
    ) -> RecordingOutcome:
        """Stream the microphone until ``stop`` is set or the connection drops.

        Whatever was transcribed is archived even if sending audio failed.
        Send and save failures are recorded on the session instead of raised.
        """

        await self.session.start()
        pump = asyncio.create_task(self.stream_microphone(stream))
        waiter = asyncio.create_task(stop.wait())
        try:
            await asyncio.wait({pump, waiter}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            waiter.cancel()
            await self.session.stop()
            stream.close()
        try:
            await pump
        except LlmemoError as exc:
            logger.error("Audio streaming stopped: %s", exc)
            self.session.report_error(exc)

        archived = None
        snapshot = self.session.snapshot()
        if archive and snapshot.has_content:
            try:
                archived = await self.archive_session(title=title, has_consent=has_consent)
            except PersistenceError as exc:
                self.session.report_error(exc)
        return RecordingOutcome(
            segment_count=len(snapshot.segments),
            speaker_count=len(snapshot.speakers),
            archived=archived,
        )
