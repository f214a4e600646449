"""ONNX classifier session management and output decoding."""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Any, Callable, List, Optional

import numpy as np

from errors import InferenceFailure
from interfaces import ModelSession
from vocabulary import LabelTable, clean_label

try:
    import onnxruntime as ort
except Exception:  # pragma: no cover
    ort = None  # type: ignore

logger = logging.getLogger(__name__)

SessionFactory = Callable[[str], ModelSession]


def _default_session_factory(model_path: str) -> ModelSession:
    if ort is None:
        raise RuntimeError("onnxruntime is not installed")
    return ort.InferenceSession(model_path, providers=["CPUExecutionProvider"])


def _is_selected(value: Any) -> bool:
    # int32/int64/float/bool encodings of one all compare equal to 1
    try:
        return bool(value == 1)
    except (TypeError, ValueError):
        return False


class InferenceEngine:
    """Owns the single classifier session.

    The session is created on first use and reused by every classification
    until ``unload()`` is called, typically when the recognition session that
    produced the transcripts is torn down.
    """

    def __init__(
        self,
        model_path: Path | str,
        session_factory: Optional[SessionFactory] = None,
    ) -> None:
        self.model_path = str(model_path)
        self._session_factory = session_factory or _default_session_factory
        self._session: Optional[ModelSession] = None
        self._lock = threading.Lock()
        self.load_count = 0

    @property
    def is_loaded(self) -> bool:
        return self._session is not None

    def ensure_loaded(self) -> ModelSession:
        with self._lock:
            if self._session is not None:
                logger.debug("Reusing existing classifier session")
                return self._session
            logger.info("Loading classifier model from %s", self.model_path)
            try:
                session = self._session_factory(self.model_path)
            except Exception as exc:
                raise InferenceFailure(f"failed to load classifier: {exc}") from exc
            self._session = session
            self.load_count += 1
            logger.info("Classifier model loaded")
            return session

    def unload(self) -> None:
        with self._lock:
            if self._session is None:
                return
            logger.info("Unloading classifier session")
            self._session = None

    def infer(self, session: ModelSession, vector: np.ndarray) -> np.ndarray:
        tensor = np.asarray(vector, dtype=np.float32).reshape(1, -1)
        inputs = session.get_inputs()
        outputs = [node.name for node in session.get_outputs()]
        if not inputs or not outputs:
            raise InferenceFailure("classifier graph has no inputs or outputs")
        output_name = _pick_label_output(outputs)
        logger.debug("Running inference on %s -> %s", inputs[0].name, output_name)
        try:
            (result,) = session.run([output_name], {inputs[0].name: tensor})
        except Exception as exc:
            raise InferenceFailure(f"inference failed: {exc}") from exc
        return np.asarray(result)

    def decode(self, raw: np.ndarray, labels: LabelTable) -> List[str]:
        predicted = []
        for index, value in enumerate(np.asarray(raw).ravel()):
            if _is_selected(value):
                predicted.append(clean_label(labels.name_for(index)))
        return predicted


def _pick_label_output(names: List[str]) -> str:
    for name in names:
        if "label" in name.lower():
            return name
    return names[0]
