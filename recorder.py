"""Microphone capture feeding 16-bit PCM frames to the recognizer."""

from __future__ import annotations

import logging
import threading
import time
from queue import Full, Queue
from typing import Any

from models import AudioFrame

try:
    import sounddevice as sd
except Exception:  # pragma: no cover
    sd = None  # type: ignore

logger = logging.getLogger(__name__)


def microphone_available() -> bool:
    """Whether an input device can be opened; used as the permission check."""
    if sd is None:
        return False
    try:
        sd.query_devices(kind="input")
    except Exception as exc:
        logger.warning("No usable microphone: %s", exc)
        return False
    return True


class SoundDeviceRecorder:
    def __init__(
        self,
        sample_rate: int = 16000,
        channels: int = 1,
        chunk_ms: int = 100,
    ) -> None:
        self.sample_rate = sample_rate
        self.channels = channels
        self.chunk_ms = chunk_ms
        self._stream: Any = None
        self._running = False
        self._lock = threading.Lock()
        self.dropped_chunks = 0
        self._audio_queue: Queue[AudioFrame | None] | None = None

    @property
    def is_running(self) -> bool:
        return self._running

    def start(self, audio_queue: Queue[AudioFrame | None]) -> None:
        with self._lock:
            if self._running:
                return
            if sd is None:
                raise RuntimeError("sounddevice is not installed")
            self._audio_queue = audio_queue
            self.dropped_chunks = 0
            blocksize = int(self.sample_rate * (self.chunk_ms / 1000.0))
            self._stream = sd.RawInputStream(
                samplerate=self.sample_rate,
                channels=self.channels,
                dtype="int16",
                blocksize=blocksize,
                callback=self._on_audio,
            )
            self._stream.start()
            self._running = True
            logger.info("Microphone capture started at %d Hz", self.sample_rate)

    def stop(self) -> None:
        with self._lock:
            if self._running:
                self._running = False
                if self._stream is not None:
                    self._stream.stop()
                    self._stream.close()
                    self._stream = None
                if self.dropped_chunks:
                    logger.warning("Dropped %d audio chunks", self.dropped_chunks)
                logger.info("Microphone capture stopped")
            self._emit_sentinel()

    def _on_audio(self, indata: Any, frames: int, time_info: Any, status: Any) -> None:
        if status:
            logger.debug("Audio stream status: %s", status)
        if not self._running or self._audio_queue is None:
            return
        frame = AudioFrame(
            pcm16_bytes=bytes(indata),
            sample_rate=self.sample_rate,
            channels=self.channels,
            timestamp_ms=int(time.time() * 1000),
        )
        try:
            self._audio_queue.put_nowait(frame)
        except Full:
            self.dropped_chunks += 1

    def _emit_sentinel(self) -> None:
        if self._audio_queue is None:
            return
        try:
            self._audio_queue.put_nowait(None)
        except Full:
            logger.debug("Audio queue full, sentinel not delivered")
