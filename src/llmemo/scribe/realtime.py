from __future__ import annotations

import asyncio
import base64
import json
import logging
from typing import Any
from urllib.parse import urlencode

import websockets
from websockets.exceptions import ConnectionClosed, InvalidHandshake, InvalidStatus

from llmemo.errors import AuthError, NetworkError
from llmemo.scribe.base import (
    AuthFailed,
    CommittedTranscript,
    Disconnected,
    EventCallback,
    PartialTranscript,
    ProviderEvent,
    ProviderFailure,
    QuotaExceeded,
    TimestampedTranscript,
    WordTag,
)

logger = logging.getLogger(__name__)

REALTIME_URL = "wss://api.elevenlabs.io/v1/speech-to-text/realtime"

_AUTH_STATUS_CODES = {401, 403}


def _optional_float(value: Any) -> float | None:
    if value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _parse_words(raw_words: Any) -> tuple[WordTag, ...]:
    if not isinstance(raw_words, list):
        return ()
    words: list[WordTag] = []
    for item in raw_words:
        if not isinstance(item, dict):
            continue
        # Spacing and audio-event entries carry timing but are not spoken words.
        if item.get("type", "word") != "word":
            continue
        speaker = item.get("speaker_id")
        words.append(
            WordTag(
                text=str(item.get("text", "")),
                speaker_id=str(speaker) if speaker else None,
                start=_optional_float(item.get("start")),
                end=_optional_float(item.get("end")),
            )
        )
    return tuple(words)


def parse_message(payload: dict[str, Any]) -> ProviderEvent | None:
    """Translate one decoded server message into a provider event."""

    message_type = str(payload.get("message_type", ""))
    text = str(payload.get("text", ""))
    error = str(payload.get("error") or payload.get("message") or message_type)

    if message_type == "partial_transcript":
        return PartialTranscript(text=text)
    if message_type == "committed_transcript":
        return CommittedTranscript(text=text)
    if message_type == "committed_transcript_with_timestamps":
        return TimestampedTranscript(text=text, words=_parse_words(payload.get("words")))
    if message_type == "auth_error":
        return AuthFailed(message=error)
    if message_type == "quota_exceeded":
        return QuotaExceeded(message=error)
    if "error" in message_type or message_type == "rate_limited":
        return ProviderFailure(message=error)
    return None


class ScribeConnection:
    """A live realtime websocket; events are forwarded from one receive task."""

    def __init__(self, websocket: Any, on_event: EventCallback, *, sample_rate: int) -> None:
        self._websocket = websocket
        self._on_event = on_event
        self._sample_rate = sample_rate
        self._closing = False
        self._receiver: asyncio.Task[None] | None = None

    def start(self) -> None:
        self._receiver = asyncio.create_task(self._receive_loop())

    async def send_audio(self, pcm: bytes) -> None:
        if self._closing:
            return
        message = {
            "message_type": "input_audio_chunk",
            "audio_base_64": base64.b64encode(pcm).decode("ascii"),
            "commit": False,
            "sample_rate": self._sample_rate,
        }
        try:
            await self._websocket.send(json.dumps(message))
        except ConnectionClosed as exc:
            raise NetworkError(f"Realtime connection closed: {exc}") from exc

    async def close(self) -> None:
        if self._closing:
            return
        self._closing = True
        await self._websocket.close()
        if self._receiver is not None:
            await self._receiver

    async def _receive_loop(self) -> None:
        reason = ""
        try:
            async for raw in self._websocket:
                try:
                    payload = json.loads(raw)
                except (TypeError, ValueError):
                    logger.warning("Ignoring undecodable realtime message")
                    continue
                if not isinstance(payload, dict):
                    continue
                event = parse_message(payload)
                if event is not None:
                    self._on_event(event)
        except ConnectionClosed as exc:
            reason = str(exc)
        if not self._closing:
            logger.info("Realtime connection closed by provider %s", reason)
            self._on_event(Disconnected(reason=reason))


class ScribeRealtimeProvider:
    def __init__(
        self,
        *,
        url: str = REALTIME_URL,
        model_id: str = "scribe_v2_realtime",
        language_code: str = "en",
        sample_rate: int = 16000,
        vad_threshold: float = 0.6,
        min_speech_duration_ms: int = 250,
        min_silence_duration_ms: int = 500,
    ) -> None:
        self.url = url
        self.model_id = model_id
        self.language_code = language_code
        self.sample_rate = sample_rate
        self.vad_threshold = vad_threshold
        self.min_speech_duration_ms = min_speech_duration_ms
        self.min_silence_duration_ms = min_silence_duration_ms

    def build_url(self, token: str) -> str:
        params = {
            "model_id": self.model_id,
            "token": token,
            "language_code": self.language_code,
            "include_timestamps": "true",
            "audio_format": f"pcm_{self.sample_rate}",
            "commit_strategy": "vad",
            "vad_threshold": f"{self.vad_threshold}",
            "min_speech_duration_ms": str(self.min_speech_duration_ms),
            "min_silence_duration_ms": str(self.min_silence_duration_ms),
        }
        return f"{self.url}?{urlencode(params)}"

    async def connect(self, token: str, on_event: EventCallback) -> ScribeConnection:
        try:
            websocket = await websockets.connect(self.build_url(token))
        except InvalidStatus as exc:
            status = exc.response.status_code
            if status in _AUTH_STATUS_CODES:
                raise AuthError(f"Realtime connection rejected (HTTP {status})") from exc
            raise NetworkError(f"Realtime connection failed (HTTP {status})") from exc
        except (InvalidHandshake, OSError, asyncio.TimeoutError) as exc:
            raise NetworkError(f"Realtime connection failed: {exc}") from exc

        logger.info("Connected to realtime transcription (%s, %s)", self.model_id, self.language_code)
        connection = ScribeConnection(websocket, on_event, sample_rate=self.sample_rate)
        connection.start()
        return connection
