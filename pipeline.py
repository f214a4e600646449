"""Transcript classification pipeline.

``classify`` is called from recognition callbacks. A failed classification
must never block report submission, so every error inside the pipeline is
logged and turned into the ``["unknown"]`` result.
"""

from __future__ import annotations

import logging
import threading
from typing import Callable, Optional

from inference import InferenceEngine
from models import BusyPolicy, ClassificationResult, unknown_result
from vectorizer import is_empty_vector, vectorize
from vocabulary import LabelTable, VocabularyModel

logger = logging.getLogger(__name__)

ResultCallback = Callable[[str, ClassificationResult], None]


class ClassificationGuard:
    """Single-slot latch allowing one classification at a time."""

    def __init__(self) -> None:
        self._lock = threading.Lock()

    @property
    def busy(self) -> bool:
        return self._lock.locked()

    def try_acquire(self) -> bool:
        return self._lock.acquire(blocking=False)

    def release(self) -> None:
        self._lock.release()


class ClassificationPipeline:
    def __init__(
        self,
        vocab: VocabularyModel,
        labels: LabelTable,
        engine: InferenceEngine,
        busy_policy: BusyPolicy = BusyPolicy.DROP,
        on_result: Optional[ResultCallback] = None,
    ) -> None:
        self.vocab = vocab
        self.labels = labels
        self.engine = engine
        self.busy_policy = busy_policy
        self._on_result = on_result
        self.guard = ClassificationGuard()
        self._pending_lock = threading.Lock()
        self._pending: Optional[str] = None

    def classify(self, text: str) -> Optional[ClassificationResult]:
        """Classify ``text``; returns None when the call was dropped or deferred."""
        if not text or not text.strip():
            return unknown_result()

        if not self.guard.try_acquire():
            self._on_busy(text)
            return None

        try:
            result = self._classify_locked(text)
        finally:
            self.guard.release()
        self._emit(text, result)
        self._drain_pending()
        return result

    def _classify_locked(self, text: str) -> ClassificationResult:
        try:
            session = self.engine.ensure_loaded()
            vector = vectorize(text, self.vocab)
            if is_empty_vector(vector):
                logger.warning("Input vector is all zeros, no known words in %r", text)
                return unknown_result()
            raw = self.engine.infer(session, vector)
            predicted = self.engine.decode(raw, self.labels)
        except Exception:
            logger.exception("Classification failed")
            return unknown_result()
        logger.info("Predicted labels: %s", predicted)
        return predicted or unknown_result()

    def _on_busy(self, text: str) -> None:
        if self.busy_policy == BusyPolicy.QUEUE_LATEST:
            with self._pending_lock:
                self._pending = text
            logger.info("Classification in flight, keeping latest transcript")
            # the in-flight call may have finished between the two checks
            if not self.guard.busy:
                self._drain_pending()
            return
        logger.info("Classification in flight, dropping transcript %r", text)

    def _drain_pending(self) -> None:
        while True:
            with self._pending_lock:
                text = self._pending
                if text is None:
                    return
                if not self.guard.try_acquire():
                    return
                self._pending = None
            try:
                result = self._classify_locked(text)
            finally:
                self.guard.release()
            self._emit(text, result)

    def _emit(self, text: str, result: ClassificationResult) -> None:
        if self._on_result is None:
            return
        try:
            self._on_result(text, result)
        except Exception:
            logger.exception("Result callback failed")
