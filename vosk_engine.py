"""Speech engine adapter over Vosk offline recognition.

Audio frames from the recorder are pushed into a queue and consumed by a
worker thread that feeds a ``KaldiRecognizer``. Partial hypotheses, final
utterances and timeouts flow back through the listener as
``RecognitionEvent`` objects.
"""

from __future__ import annotations

import json
import logging
import threading
import time
from pathlib import Path
from queue import Empty, Queue
from typing import Any, Callable, Optional

from errors import ENGINE_ERROR, RECOGNITION_TIMEOUT
from interfaces import Recorder
from models import AudioFrame, RecognitionEvent, TranscriptKind
from recorder import SoundDeviceRecorder

try:
    import vosk
except Exception:  # pragma: no cover
    vosk = None  # type: ignore

logger = logging.getLogger(__name__)

EventCallback = Callable[[RecognitionEvent], None]


class VoskSpeechEngine:
    def __init__(
        self,
        models_dir: Path | str,
        recorder: Optional[Recorder] = None,
        sample_rate: int = 16000,
        queue_maxsize: int = 50,
        join_timeout_s: float = 2.0,
    ) -> None:
        self._models_dir = Path(models_dir)
        self._recorder = recorder or SoundDeviceRecorder(sample_rate=sample_rate)
        self._sample_rate = sample_rate
        self._queue_maxsize = queue_maxsize
        self._join_timeout_s = join_timeout_s
        self._model: Any = None
        self._on_event: Optional[EventCallback] = None
        self._thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()
        self._abort_event = threading.Event()
        self._last_text = ""

    def set_listener(self, on_event: Optional[EventCallback]) -> None:
        self._on_event = on_event

    def load_model(self, model_id: str) -> bool:
        if vosk is None:
            raise RuntimeError("vosk is not installed")
        path = self._models_dir / model_id
        if not path.is_dir():
            logger.error("Vosk model not found: %s", path)
            return False
        vosk.SetLogLevel(-1)
        self._model = vosk.Model(str(path))
        logger.info("Vosk model %s loaded", model_id)
        return True

    def start(self, timeout_ms: int) -> bool:
        if self._model is None or vosk is None:
            return False
        if self._thread and self._thread.is_alive():
            return False
        recognizer = vosk.KaldiRecognizer(self._model, self._sample_rate)
        audio_queue: Queue[AudioFrame | None] = Queue(maxsize=self._queue_maxsize)
        self._stop_event.clear()
        self._abort_event.clear()
        self._last_text = ""
        self._thread = threading.Thread(
            target=self._worker,
            args=(recognizer, audio_queue, timeout_ms / 1000.0),
            daemon=True,
        )
        self._thread.start()
        try:
            self._recorder.start(audio_queue)
        except Exception as exc:
            logger.error("Microphone failed to start: %s", exc)
            self._abort_event.set()
            self._stop_event.set()
            self._join()
            return False
        return True

    def stop(self) -> str:
        self._recorder.stop()
        self._join()
        return self._last_text

    def unload(self) -> None:
        self._model = None

    def is_ready(self) -> bool:
        return self._thread is None or not self._thread.is_alive()

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _join(self) -> None:
        thread = self._thread
        if thread is None or not thread.is_alive():
            return
        thread.join(timeout=self._join_timeout_s)
        if thread.is_alive():
            # sentinel was lost, force the worker out
            self._stop_event.set()
            thread.join(timeout=self._join_timeout_s)

    def _worker(self, recognizer: Any, audio_queue: Queue[AudioFrame | None], timeout_s: float) -> None:
        deadline = time.monotonic() + timeout_s if timeout_s > 0 else None
        last_partial = ""
        emitted_final = False
        try:
            while not self._stop_event.is_set():
                if deadline is not None and time.monotonic() >= deadline:
                    self._emit(
                        RecognitionEvent(
                            kind=TranscriptKind.TIMEOUT.value,
                            code=RECOGNITION_TIMEOUT,
                        )
                    )
                    self._recorder.stop()
                    break
                try:
                    frame = audio_queue.get(timeout=0.2)
                except Empty:
                    continue
                if frame is None:  # Sentinel
                    break
                if recognizer.AcceptWaveform(frame.pcm16_bytes):
                    text = _field(recognizer.Result(), "text")
                    if text:
                        self._emit_final(text)
                        emitted_final = True
                    last_partial = ""
                    continue
                partial = _field(recognizer.PartialResult(), "partial")
                if partial and partial != last_partial:
                    last_partial = partial
                    self._emit(RecognitionEvent(kind=TranscriptKind.PARTIAL.value, text=partial))

            if self._abort_event.is_set():  # start failed, nothing to flush
                return
            text = _field(recognizer.FinalResult(), "text")
            if text or not emitted_final:
                self._emit_final(text)
        except Exception as exc:
            logger.exception("Vosk worker failed")
            self._emit(
                RecognitionEvent(
                    kind=TranscriptKind.ERROR.value,
                    code=ENGINE_ERROR,
                    message=str(exc),
                )
            )

    def _emit_final(self, text: str) -> None:
        self._last_text = text
        self._emit(RecognitionEvent(kind=TranscriptKind.FINAL.value, text=text))

    def _emit(self, event: RecognitionEvent) -> None:
        if self._on_event is not None:
            self._on_event(event)


def _field(payload: str, key: str) -> str:
    try:
        data = json.loads(payload)
    except (TypeError, json.JSONDecodeError):
        return ""
    if not isinstance(data, dict):
        return ""
    return str(data.get(key, "")).strip()
