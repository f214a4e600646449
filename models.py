"""Core data models for the classification pipeline."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import List

UNKNOWN_LABEL = "unknown"

ClassificationResult = List[str]


def unknown_result() -> ClassificationResult:
    return [UNKNOWN_LABEL]


class RecognitionState(str, Enum):
    UNLOADED = "UNLOADED"
    MODEL_LOADED = "MODEL_LOADED"
    LISTENING = "LISTENING"


class TranscriptKind(str, Enum):
    PARTIAL = "partial"
    FINAL = "final"
    ERROR = "error"
    TIMEOUT = "timeout"


class BusyPolicy(str, Enum):
    """What happens to a transcript that arrives while a classification runs."""

    DROP = "drop"
    QUEUE_LATEST = "queue_latest"


@dataclass
class AudioFrame:
    pcm16_bytes: bytes
    sample_rate: int = 16000
    channels: int = 1
    timestamp_ms: int = 0


@dataclass
class RecognitionEvent:
    kind: str
    text: str = ""
    code: str = ""
    message: str = ""
