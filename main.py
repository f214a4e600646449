"""Console entrypoint: listen once, classify the transcript, file a report draft."""

from __future__ import annotations

import argparse
import logging
import sys
import threading
from pathlib import Path
from typing import List, Optional

from config import JsonConfigStore
from errors import ERROR_MESSAGES, PipelineError
from inference import InferenceEngine
from interfaces import ReportSink
from models import ClassificationResult, RecognitionState
from pipeline import ClassificationPipeline
from recognition import RecognitionSessionManager
from recorder import microphone_available
from report import JsonlReportSink, ReportDraft
from vocabulary import load_artifacts_from_files
from vosk_engine import VoskSpeechEngine

logger = logging.getLogger(__name__)


class App:
    def __init__(self, config_path: Optional[Path] = None) -> None:
        self.settings = JsonConfigStore(config_path).load_settings()
        # raises ConfigMismatch before anything is listening
        vocab, labels = load_artifacts_from_files(
            self.settings.tfidf_path, self.settings.labels_path
        )
        self.inference = InferenceEngine(self.settings.classifier_path)
        self.pipeline = ClassificationPipeline(
            vocab,
            labels,
            self.inference,
            busy_policy=self.settings.busy_policy,
            on_result=self._on_result,
        )
        self.manager = RecognitionSessionManager(
            engine=VoskSpeechEngine(self.settings.models_dir),
            classifier=self.pipeline,
            inference=self.inference,
            permission_check=microphone_available,
            on_state_change=self._on_state_change,
            on_partial=self._on_partial,
            on_final=self._on_final,
            on_error=self._on_error,
            on_timeout=self._on_timeout,
        )
        self.sink: ReportSink = JsonlReportSink(self.settings.reports_path)
        self._transcript = ""
        self._prediction: ClassificationResult = []
        self._done = threading.Event()

    # ------------------------------------------------------------------
    # Callbacks (called from the recognizer thread)
    # ------------------------------------------------------------------

    def _on_state_change(self, from_state: RecognitionState, to_state: RecognitionState) -> None:
        logger.debug("%s -> %s", from_state.value, to_state.value)

    def _on_partial(self, text: str) -> None:
        self._transcript = text
        print(f"... {text}", flush=True)

    def _on_final(self, text: str) -> None:
        if text:
            self._transcript = text

    def _on_result(self, text: str, result: ClassificationResult) -> None:
        self._prediction = result
        print(f"> Input: \"{text}\"\n  Result: {', '.join(result)}", flush=True)

    def _on_error(self, code: str, message: str) -> None:
        print(f"{ERROR_MESSAGES.get(code, code)} {message}", file=sys.stderr)

    def _on_timeout(self) -> None:
        print("Listening timed out.", flush=True)
        self._done.set()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def run(self) -> int:
        try:
            self.manager.load_model(self.settings.vosk_model_id)
            self.manager.start(self.settings.recognition_timeout_ms)
        except PipelineError as exc:
            print(f"{ERROR_MESSAGES.get(exc.code, exc.code)} {exc.message}", file=sys.stderr)
            self.manager.close()
            return 1

        print("Listening... press Enter to stop.", flush=True)
        waiter = threading.Thread(target=self._wait_for_enter, daemon=True)
        waiter.start()
        try:
            self._done.wait()
        except KeyboardInterrupt:
            pass
        self.manager.stop()
        self.submit_report()
        self.manager.close()
        return 0

    def submit_report(self) -> None:
        draft = ReportDraft.from_classification(self._prediction, self._transcript)
        self.sink.submit(draft.to_fields())
        print(f"Report classification: {draft.classification}", flush=True)

    def _wait_for_enter(self) -> None:
        try:
            input()
        except EOFError:
            pass
        self._done.set()


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        description="Classify a spoken emergency report into fire/police/medical"
    )
    parser.add_argument("--config", type=Path, default=None, help="Path to config.json")
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging verbosity",
    )
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    try:
        app = App(config_path=args.config)
    except PipelineError as exc:
        logger.error("Startup aborted: %s", exc.message)
        return 2
    return app.run()


if __name__ == "__main__":
    raise SystemExit(main())
