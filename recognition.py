"""State-machine based lifecycle of the speech recognition engine."""

from __future__ import annotations

import logging
import threading
import time
from typing import Callable, Optional

from errors import (
    ENGINE_ERROR,
    ModelLoadFailure,
    PermissionDenied,
    SessionStartFailure,
)
from interfaces import Classifier, InferenceResource, PermissionCheck, SpeechEngine
from models import RecognitionEvent, RecognitionState, TranscriptKind

logger = logging.getLogger(__name__)

StateCallback = Callable[[RecognitionState, RecognitionState], None]
TextCallback = Callable[[str], None]
ErrorCallback = Callable[[str, str], None]
TimeoutCallback = Callable[[], None]

DEFAULT_TIMEOUT_MS = 30000


class RecognitionSessionManager:
    """Drives UNLOADED -> MODEL_LOADED -> LISTENING and back.

    Only this class mutates the recognition state. Unloading the engine always
    unloads the classifier session too, so an inference session never outlives
    the recognition session it served. Between native operations the manager
    polls ``engine.is_ready()`` with exponential backoff instead of sleeping a
    fixed amount of time.
    """

    def __init__(
        self,
        engine: SpeechEngine,
        classifier: Optional[Classifier] = None,
        inference: Optional[InferenceResource] = None,
        permission_check: Optional[PermissionCheck] = None,
        ready_timeout_s: float = 5.0,
        poll_initial_s: float = 0.01,
        poll_max_s: float = 0.5,
        on_state_change: Optional[StateCallback] = None,
        on_partial: Optional[TextCallback] = None,
        on_final: Optional[TextCallback] = None,
        on_error: Optional[ErrorCallback] = None,
        on_timeout: Optional[TimeoutCallback] = None,
    ) -> None:
        self._engine = engine
        self._classifier = classifier
        self._inference = inference
        self._permission_check = permission_check
        self._ready_timeout_s = ready_timeout_s
        self._poll_initial_s = poll_initial_s
        self._poll_max_s = poll_max_s
        self._on_state_change = on_state_change
        self._on_partial = on_partial
        self._on_final = on_final
        self._on_error = on_error
        self._on_timeout = on_timeout

        self._lock = threading.RLock()
        self._state = RecognitionState.UNLOADED
        self._model_id: Optional[str] = None
        self._engine.set_listener(self._handle_event)

    @property
    def state(self) -> RecognitionState:
        return self._state

    @property
    def model_id(self) -> Optional[str]:
        return self._model_id

    def load_model(self, model_id: str) -> None:
        with self._lock:
            if self._state != RecognitionState.UNLOADED:
                if model_id == self._model_id:
                    return
                raise ModelLoadFailure(
                    f"cannot load {model_id!r} while {self._state.value} with {self._model_id!r}"
                )
            self._load_locked(model_id)

    def start(self, timeout_ms: int = DEFAULT_TIMEOUT_MS) -> None:
        if self._permission_check is not None and not self._permission_check():
            raise PermissionDenied()

        with self._lock:
            if self._state == RecognitionState.LISTENING:
                logger.info("Session still active, cycling engine before restart")
                model_id = self._model_id
                self._stop_locked()
                self._unload_locked()
                if model_id is None:
                    raise SessionStartFailure("no model to reload")
                self._load_locked(model_id)
            if self._state != RecognitionState.MODEL_LOADED:
                raise SessionStartFailure("recognition model is not loaded")

            if not self.wait_until_ready():
                self._fall_back_to_unloaded()
                raise SessionStartFailure("engine did not become ready")

            logger.info("Starting recognition with timeout %d ms", timeout_ms)
            try:
                started = self._engine.start(timeout_ms)
            except Exception as exc:
                logger.error("Error starting recognition: %s", exc)
                self._fall_back_to_unloaded()
                raise SessionStartFailure(str(exc)) from exc
            if not started:
                self._fall_back_to_unloaded()
                raise SessionStartFailure()
            self._transition(RecognitionState.LISTENING)

    def stop(self) -> bool:
        with self._lock:
            if self._state != RecognitionState.LISTENING:
                return True
            return self._stop_locked()

    def unload(self) -> None:
        with self._lock:
            if self._state == RecognitionState.LISTENING:
                self._stop_locked()
            self._unload_locked()

    def close(self) -> None:
        self.unload()
        self._engine.set_listener(None)

    def wait_until_ready(self) -> bool:
        deadline = time.monotonic() + self._ready_timeout_s
        delay = self._poll_initial_s
        while not self._engine.is_ready():
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                return False
            time.sleep(min(delay, remaining))
            delay = min(delay * 2, self._poll_max_s)
        return True

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _load_locked(self, model_id: str) -> None:
        if not self.wait_until_ready():
            raise ModelLoadFailure("engine busy, cannot load model")
        logger.info("Loading recognition model %s", model_id)
        try:
            loaded = self._engine.load_model(model_id)
        except Exception as exc:
            raise ModelLoadFailure(f"{model_id}: {exc}") from exc
        if not loaded:
            raise ModelLoadFailure(f"engine rejected model {model_id!r}")
        if not self.wait_until_ready():
            self._safe_engine_unload()
            raise ModelLoadFailure(f"timed out loading {model_id!r}")
        self._model_id = model_id
        self._transition(RecognitionState.MODEL_LOADED)

    def _stop_locked(self) -> bool:
        ok = True
        try:
            self._engine.stop()
        except Exception as exc:
            logger.error("Error stopping recognition: %s", exc)
            ok = False
        self._transition(RecognitionState.MODEL_LOADED)
        if not self.wait_until_ready():
            logger.warning("Engine still busy after stop")
        return ok

    def _unload_locked(self) -> None:
        try:
            if self._state != RecognitionState.UNLOADED:
                self._safe_engine_unload()
        finally:
            if self._inference is not None:
                self._inference.unload()
            self._transition(RecognitionState.UNLOADED)

    def _fall_back_to_unloaded(self) -> None:
        try:
            self._engine.stop()
        except Exception as exc:
            logger.debug("Stop during cleanup failed: %s", exc)
        self._unload_locked()

    def _safe_engine_unload(self) -> None:
        try:
            self._engine.unload()
        except Exception as exc:
            logger.error("Error unloading recognition model: %s", exc)

    def _handle_event(self, event: RecognitionEvent) -> None:
        # runs on the engine's thread, must not take self._lock
        kind = event.kind
        if kind == TranscriptKind.PARTIAL.value:
            self._notify(self._on_partial, event.text)
            return
        if kind == TranscriptKind.FINAL.value:
            logger.info("Final transcript: %r", event.text)
            self._notify(self._on_final, event.text)
            if self._classifier is not None:
                self._classifier.classify(event.text)
            return
        if kind == TranscriptKind.ERROR.value:
            logger.error("Recognition error %s: %s", event.code, event.message)
            self._notify(self._on_error, event.code or ENGINE_ERROR, event.message)
            return
        if kind == TranscriptKind.TIMEOUT.value:
            logger.info("Recognition timeout")
            self._notify(self._on_timeout)

    def _notify(self, callback: Optional[Callable[..., None]], *args: str) -> None:
        # a failing listener must not reach the engine worker
        if callback is None:
            return
        try:
            callback(*args)
        except Exception:
            logger.exception("Recognition listener failed")

    def _transition(self, to_state: RecognitionState) -> None:
        from_state = self._state
        if from_state == to_state:
            return
        self._state = to_state
        logger.debug("Recognition state %s -> %s", from_state.value, to_state.value)
        if self._on_state_change:
            self._on_state_change(from_state, to_state)
