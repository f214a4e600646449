"""Simple JSON-based config store for pipeline settings."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path

from models import BusyPolicy

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path.home() / ".config" / "emergency_classifier" / "config.json"

DEFAULTS = {
    "tfidf_path": "assets/ml/tfidf_config_multilabel_1.0.json",
    "labels_path": "assets/ml/label_classes_multilabel_1.0.json",
    "classifier_path": "assets/ml/svm_model_multilabel_2.0.onnx",
    "models_dir": "assets/vosk",
    "vosk_model_id": "vosk-model-small-en-us-0.15",
    "recognition_timeout_ms": 30000,
    "busy_policy": BusyPolicy.DROP.value,
    "reports_path": "reports.jsonl",
}


@dataclass
class AppSettings:
    tfidf_path: Path
    labels_path: Path
    classifier_path: Path
    models_dir: Path
    vosk_model_id: str
    recognition_timeout_ms: int
    busy_policy: BusyPolicy
    reports_path: Path


class JsonConfigStore:
    def __init__(self, path: Path | None = None) -> None:
        self._path = path or DEFAULT_CONFIG_PATH
        self._path.parent.mkdir(parents=True, exist_ok=True)

    def get(self, key: str) -> object:
        data = self._read_all()
        return data.get(key, DEFAULTS.get(key))

    def set(self, key: str, value: object) -> None:
        if key not in DEFAULTS:
            raise KeyError(f"unknown setting: {key}")
        data = self._read_all()
        data[key] = value
        self._write_all(data)

    def load_settings(self) -> AppSettings:
        data = {**DEFAULTS, **self._read_all()}
        try:
            policy = BusyPolicy(data["busy_policy"])
        except ValueError:
            logger.warning("Unknown busy_policy %r, using drop", data["busy_policy"])
            policy = BusyPolicy.DROP
        try:
            timeout_ms = int(data["recognition_timeout_ms"])
        except (TypeError, ValueError):
            timeout_ms = int(DEFAULTS["recognition_timeout_ms"])
        return AppSettings(
            tfidf_path=Path(data["tfidf_path"]),
            labels_path=Path(data["labels_path"]),
            classifier_path=Path(data["classifier_path"]),
            models_dir=Path(data["models_dir"]),
            vosk_model_id=str(data["vosk_model_id"]),
            recognition_timeout_ms=timeout_ms,
            busy_policy=policy,
            reports_path=Path(data["reports_path"]),
        )

    def _read_all(self) -> dict:
        if not self._path.exists():
            return {}
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError):
            return {}
        return data if isinstance(data, dict) else {}

    def _write_all(self, data: dict) -> None:
        self._path.write_text(json.dumps(data, ensure_ascii=False, indent=2), encoding="utf-8")
