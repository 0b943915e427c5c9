from __future__ import annotations

import asyncio
import logging
from typing import Any, AsyncIterator

import numpy as np

from llmemo.errors import ConfigError

logger = logging.getLogger(__name__)


def rms_level(pcm: bytes) -> float:
    """Root-mean-square level of int16 PCM audio, scaled to 0..1."""

    samples = np.frombuffer(pcm, dtype=np.int16)
    if samples.size == 0:
        return 0.0
    audio = samples.astype(np.float32) / 32768.0
    return float(min(1.0, np.sqrt(np.mean(audio**2))))


def _sounddevice() -> Any:
    try:
        import sounddevice as sd  # type: ignore
    except (ImportError, OSError) as exc:
        raise ConfigError(
            "Microphone capture needs sounddevice and PortAudio. Install with: pip install -e '.[audio]'"
        ) from exc
    return sd


def microphone_available() -> tuple[bool, str]:
    try:
        sd = _sounddevice()
        device = sd.query_devices(kind="input")
    except ConfigError as exc:
        return False, str(exc)
    except Exception as exc:  # pragma: no cover - hardware dependent
        return False, f"No input device: {exc}"
    return True, str(device.get("name", "default input"))


class MicrophoneStream:
    """Mono int16 microphone capture delivered as raw PCM blocks.

    PortAudio calls back on its own thread; blocks are handed to the event
    loop through ``call_soon_threadsafe`` so consumers only see them there.
    """

    def __init__(
        self,
        *,
        sample_rate: int = 16000,
        device: str | int | None = None,
        block_ms: int = 100,
    ) -> None:
        self.sample_rate = sample_rate
        self.device = device
        self.blocksize = int(sample_rate * block_ms / 1000)
        self._queue: asyncio.Queue[bytes | None] | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._stream: Any = None
        self._closed = False
        self.level = 0.0

    def _callback(self, indata: Any, frames: int, time_info: Any, status: Any) -> None:
        if status:
            logger.warning("Audio input status: %s", status)
        if self._loop is None or self._queue is None:
            return
        self._loop.call_soon_threadsafe(self._queue.put_nowait, bytes(indata))

    def open(self) -> None:
        if self._stream is not None or self._closed:
            return
        sd = _sounddevice()
        self._loop = asyncio.get_running_loop()
        self._queue = asyncio.Queue()
        try:
            self._stream = sd.RawInputStream(
                samplerate=self.sample_rate,
                blocksize=self.blocksize,
                device=self.device,
                channels=1,
                dtype="int16",
                callback=self._callback,
            )
            self._stream.start()
        except Exception as exc:  # pragma: no cover - hardware dependent
            self._stream = None
            raise ConfigError(f"Cannot open microphone {self.device or '(default)'}: {exc}") from exc
        logger.info("Microphone capture started at %d Hz", self.sample_rate)

    def close(self) -> None:
        self._closed = True
        if self._stream is None:
            return
        self._stream.stop()
        self._stream.close()
        self._stream = None
        if self._loop is not None and self._queue is not None:
            self._loop.call_soon_threadsafe(self._queue.put_nowait, None)
        logger.info("Microphone capture stopped")

    async def frames(self) -> AsyncIterator[bytes]:
        self.open()
        if self._queue is None:
            return
        while True:
            block = await self._queue.get()
            if block is None:
                return
            self.level = rms_level(block)
            yield block
