"""Protocol interfaces for the external collaborators of the pipeline."""

from __future__ import annotations

from queue import Queue
from typing import Any, Callable, Dict, List, Optional, Protocol, Sequence

from models import AudioFrame, RecognitionEvent


class Recorder(Protocol):
    def start(self, audio_queue: Queue[AudioFrame | None]) -> None: ...

    def stop(self) -> None: ...


class SpeechEngine(Protocol):
    def set_listener(self, on_event: Optional[Callable[[RecognitionEvent], None]]) -> None: ...

    def load_model(self, model_id: str) -> bool: ...

    def start(self, timeout_ms: int) -> bool: ...

    def stop(self) -> str: ...

    def unload(self) -> None: ...

    def is_ready(self) -> bool: ...


class NodeArg(Protocol):
    name: str


class ModelSession(Protocol):
    def get_inputs(self) -> Sequence[NodeArg]: ...

    def get_outputs(self) -> Sequence[NodeArg]: ...

    def run(
        self, output_names: Optional[List[str]], input_feed: Dict[str, Any]
    ) -> List[Any]: ...


class Classifier(Protocol):
    def classify(self, text: str) -> Optional[List[str]]: ...


class InferenceResource(Protocol):
    def unload(self) -> None: ...


class ReportSink(Protocol):
    def submit(self, fields: Dict[str, Any]) -> None: ...


PermissionCheck = Callable[[], bool]
