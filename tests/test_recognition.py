"""Tests for RecognitionSessionManager."""

from __future__ import annotations

import threading
from typing import List, Optional, Tuple

import pytest

from errors import (
    ENGINE_ERROR,
    ModelLoadFailure,
    PermissionDenied,
    SessionStartFailure,
)
from fakes import FakeClassifier, FakeInference, FakeSession, FakeSpeechEngine, SessionFactory
from inference import InferenceEngine
from models import RecognitionEvent, RecognitionState, TranscriptKind
from pipeline import ClassificationPipeline
from recognition import RecognitionSessionManager
from vocabulary import load_artifacts

MODEL = "vosk-model-small-en-us-0.15"


def _manager(**kwargs) -> Tuple[RecognitionSessionManager, FakeSpeechEngine, FakeInference]:
    engine = kwargs.pop("engine", None) or FakeSpeechEngine()
    inference = FakeInference()
    manager = RecognitionSessionManager(
        engine=engine,
        inference=inference,
        ready_timeout_s=0.1,
        poll_initial_s=0.001,
        **kwargs,
    )
    return manager, engine, inference


# ---------------------------------------------------------------
# Happy path
# ---------------------------------------------------------------

def test_full_lifecycle_transitions() -> None:
    transitions: List[Tuple[RecognitionState, RecognitionState]] = []
    manager, engine, inference = _manager(on_state_change=lambda f, t: transitions.append((f, t)))

    manager.load_model(MODEL)
    manager.start(30000)
    assert manager.state == RecognitionState.LISTENING
    assert manager.stop() is True
    manager.unload()

    assert engine.calls == [f"load:{MODEL}", "start:30000", "stop", "unload"]
    assert transitions == [
        (RecognitionState.UNLOADED, RecognitionState.MODEL_LOADED),
        (RecognitionState.MODEL_LOADED, RecognitionState.LISTENING),
        (RecognitionState.LISTENING, RecognitionState.MODEL_LOADED),
        (RecognitionState.MODEL_LOADED, RecognitionState.UNLOADED),
    ]
    assert inference.unloads == 1


def test_stop_when_not_listening_is_noop() -> None:
    manager, engine, _ = _manager()
    assert manager.stop() is True
    manager.load_model(MODEL)
    assert manager.stop() is True
    assert "stop" not in engine.calls
    assert manager.state == RecognitionState.MODEL_LOADED


def test_load_same_model_twice_is_noop() -> None:
    manager, engine, _ = _manager()
    manager.load_model(MODEL)
    manager.load_model(MODEL)
    assert engine.calls == [f"load:{MODEL}"]


def test_load_other_model_while_loaded_fails() -> None:
    manager, _, _ = _manager()
    manager.load_model(MODEL)
    with pytest.raises(ModelLoadFailure):
        manager.load_model("vosk-model-de-0.21")


# ---------------------------------------------------------------
# Failures
# ---------------------------------------------------------------

def test_rejected_model_is_model_load_failure() -> None:
    engine = FakeSpeechEngine()
    engine.load_result = False
    manager, _, _ = _manager(engine=engine)

    with pytest.raises(ModelLoadFailure):
        manager.load_model("missing-model")
    assert manager.state == RecognitionState.UNLOADED


def test_engine_exception_on_load_is_model_load_failure() -> None:
    engine = FakeSpeechEngine()
    engine.load_result = RuntimeError("corrupt model")
    manager, _, _ = _manager(engine=engine)

    with pytest.raises(ModelLoadFailure, match="corrupt model"):
        manager.load_model(MODEL)


def test_load_timeout_unloads_engine() -> None:
    engine = FakeSpeechEngine()
    manager, _, _ = _manager(engine=engine)

    original = engine.load_model

    def slow_load(model_id: str) -> bool:
        result = original(model_id)
        engine.ready = False
        return result

    engine.load_model = slow_load  # type: ignore[assignment]
    with pytest.raises(ModelLoadFailure, match="timed out"):
        manager.load_model(MODEL)
    assert engine.calls[-1] == "unload"
    assert manager.state == RecognitionState.UNLOADED


def test_start_without_model_fails() -> None:
    manager, engine, _ = _manager()
    with pytest.raises(SessionStartFailure):
        manager.start()
    assert engine.calls == []


def test_start_failure_falls_back_to_unloaded() -> None:
    engine = FakeSpeechEngine()
    engine.start_result = False
    manager, _, inference = _manager(engine=engine)
    manager.load_model(MODEL)

    with pytest.raises(SessionStartFailure):
        manager.start(1000)

    assert manager.state == RecognitionState.UNLOADED
    assert engine.calls[-2:] == ["stop", "unload"]
    assert inference.unloads == 1


def test_start_exception_falls_back_to_unloaded() -> None:
    engine = FakeSpeechEngine()
    engine.start_result = OSError("device busy")
    manager, _, _ = _manager(engine=engine)
    manager.load_model(MODEL)

    with pytest.raises(SessionStartFailure, match="device busy"):
        manager.start(1000)
    assert manager.state == RecognitionState.UNLOADED


def test_start_fails_when_engine_never_ready() -> None:
    manager, engine, _ = _manager()
    manager.load_model(MODEL)
    engine.ready = False

    with pytest.raises(SessionStartFailure):
        manager.start(1000)
    assert manager.state == RecognitionState.UNLOADED


def test_permission_denied_fails_fast() -> None:
    manager, engine, _ = _manager(permission_check=lambda: False)
    manager.load_model(MODEL)

    with pytest.raises(PermissionDenied):
        manager.start()

    assert manager.state == RecognitionState.MODEL_LOADED
    assert engine.calls == [f"load:{MODEL}"]


# ---------------------------------------------------------------
# Restart and teardown ordering
# ---------------------------------------------------------------

def test_start_while_listening_cycles_engine() -> None:
    manager, engine, inference = _manager()
    manager.load_model(MODEL)
    manager.start(1000)
    engine.calls.clear()

    manager.start(2000)

    assert engine.calls == ["stop", "unload", f"load:{MODEL}", "start:2000"]
    assert manager.state == RecognitionState.LISTENING
    assert inference.unloads == 1


def test_unload_while_listening_stops_first() -> None:
    manager, engine, inference = _manager()
    manager.load_model(MODEL)
    manager.start(1000)

    manager.unload()

    assert engine.calls[-2:] == ["stop", "unload"]
    assert manager.state == RecognitionState.UNLOADED
    assert inference.unloads == 1


def test_unload_from_unloaded_still_drops_inference_session() -> None:
    manager, engine, inference = _manager()
    manager.unload()
    assert "unload" not in engine.calls
    assert inference.unloads == 1


def test_close_detaches_listener() -> None:
    manager, engine, _ = _manager()
    manager.load_model(MODEL)
    manager.close()
    assert engine.on_event is None
    assert manager.state == RecognitionState.UNLOADED


def test_wait_until_ready_polls_until_ready() -> None:
    manager, engine, _ = _manager()
    polls = iter([False, False, True])
    engine.is_ready = lambda: next(polls)  # type: ignore[assignment]
    assert manager.wait_until_ready() is True


# ---------------------------------------------------------------
# Events
# ---------------------------------------------------------------

def test_events_are_dispatched_to_callbacks() -> None:
    partials: List[str] = []
    finals: List[str] = []
    errors: List[Tuple[str, str]] = []
    timeouts: List[bool] = []
    classifier = FakeClassifier()
    manager, engine, _ = _manager(
        classifier=classifier,
        on_partial=partials.append,
        on_final=finals.append,
        on_error=lambda c, m: errors.append((c, m)),
        on_timeout=lambda: timeouts.append(True),
    )
    manager.load_model(MODEL)
    manager.start(1000)

    engine.emit(RecognitionEvent(kind=TranscriptKind.PARTIAL.value, text="there is"))
    engine.emit(RecognitionEvent(kind=TranscriptKind.FINAL.value, text="there is a fire"))
    engine.emit(RecognitionEvent(kind=TranscriptKind.ERROR.value, message="audio glitch"))
    engine.emit(RecognitionEvent(kind=TranscriptKind.TIMEOUT.value))

    assert partials == ["there is"]
    assert finals == ["there is a fire"]
    assert classifier.texts == ["there is a fire"]
    assert errors == [(ENGINE_ERROR, "audio glitch")]
    assert timeouts == [True]


def test_partial_does_not_trigger_classification() -> None:
    classifier = FakeClassifier()
    manager, engine, _ = _manager(classifier=classifier)
    engine.emit(RecognitionEvent(kind=TranscriptKind.PARTIAL.value, text="fire"))
    assert classifier.texts == []


def test_failing_final_listener_still_classifies() -> None:
    def broken(text: str) -> None:
        raise ValueError("ui bug")

    classifier = FakeClassifier()
    manager, engine, _ = _manager(classifier=classifier, on_final=broken)
    manager.load_model(MODEL)
    manager.start(1000)

    engine.emit(RecognitionEvent(kind=TranscriptKind.FINAL.value, text="there is a fire"))

    assert classifier.texts == ["there is a fire"]


def test_failing_listeners_do_not_reach_engine_thread() -> None:
    def broken(*args: str) -> None:
        raise RuntimeError("listener bug")

    manager, engine, _ = _manager(
        on_partial=broken, on_error=broken, on_timeout=broken
    )
    manager.load_model(MODEL)
    manager.start(1000)

    engine.emit(RecognitionEvent(kind=TranscriptKind.PARTIAL.value, text="there"))
    engine.emit(RecognitionEvent(kind=TranscriptKind.ERROR.value, message="glitch"))
    engine.emit(RecognitionEvent(kind=TranscriptKind.TIMEOUT.value))

    assert manager.state == RecognitionState.LISTENING


# ---------------------------------------------------------------
# In-flight classification across teardown
# ---------------------------------------------------------------

def test_unload_does_not_abort_classification_in_flight() -> None:
    session = FakeSession()
    session.gate = threading.Event()
    inference = InferenceEngine("model.onnx", session_factory=SessionFactory(session))
    vocab, labels = load_artifacts(
        {"vocabulary": ["fire", "smoke"], "idf": [2.0, 1.5]},
        ["['Fire']", "['Police']", "['Medical']"],
    )
    pipeline = ClassificationPipeline(vocab, labels, inference)
    engine = FakeSpeechEngine()
    manager = RecognitionSessionManager(
        engine=engine,
        classifier=pipeline,
        inference=inference,
        ready_timeout_s=0.1,
        poll_initial_s=0.001,
    )
    manager.load_model(MODEL)
    manager.start(1000)

    outcome: List[Optional[List[str]]] = []
    worker = threading.Thread(target=lambda: outcome.append(pipeline.classify("fire")), daemon=True)
    worker.start()
    assert session.entered.wait(timeout=2.0)

    manager.unload()
    assert manager.state == RecognitionState.UNLOADED
    assert inference.is_loaded is False

    session.gate.set()
    worker.join(timeout=2.0)

    assert outcome == [["Fire", "Medical"]]
    assert pipeline.guard.busy is False

    session.gate = None
    assert pipeline.classify("smoke") == ["Fire", "Medical"]
    assert inference.load_count == 2
