"""Tests for InferenceEngine."""

from __future__ import annotations

import numpy as np
import pytest

from errors import InferenceFailure
from fakes import FakeSession, SessionFactory
from inference import InferenceEngine
from vocabulary import LabelTable


def _engine(factory: SessionFactory) -> InferenceEngine:
    return InferenceEngine("model.onnx", session_factory=factory)


# ---------------------------------------------------------------
# Session lifecycle
# ---------------------------------------------------------------

def test_ensure_loaded_is_lazy_and_idempotent() -> None:
    factory = SessionFactory()
    engine = _engine(factory)
    assert engine.is_loaded is False
    assert factory.paths == []

    first = engine.ensure_loaded()
    second = engine.ensure_loaded()

    assert first is second
    assert factory.paths == ["model.onnx"]
    assert engine.load_count == 1


def test_unload_forces_fresh_load() -> None:
    factory = SessionFactory()
    engine = _engine(factory)
    engine.ensure_loaded()
    engine.unload()
    assert engine.is_loaded is False

    engine.ensure_loaded()
    assert engine.load_count == 2


def test_unload_when_not_loaded_is_noop() -> None:
    engine = _engine(SessionFactory())
    engine.unload()
    assert engine.is_loaded is False
    assert engine.load_count == 0


def test_load_failure_is_inference_failure() -> None:
    engine = _engine(SessionFactory(error=OSError("no such file")))
    with pytest.raises(InferenceFailure, match="no such file"):
        engine.ensure_loaded()
    assert engine.is_loaded is False


def test_default_factory_without_onnxruntime(monkeypatch: pytest.MonkeyPatch) -> None:
    import inference as inf_mod
    monkeypatch.setattr(inf_mod, "ort", None)

    engine = InferenceEngine("model.onnx")
    with pytest.raises(InferenceFailure, match="onnxruntime is not installed"):
        engine.ensure_loaded()


# ---------------------------------------------------------------
# infer
# ---------------------------------------------------------------

def test_infer_feeds_single_row_float32_tensor() -> None:
    session = FakeSession()
    engine = _engine(SessionFactory(session))

    engine.infer(engine.ensure_loaded(), np.array([4.0, 0.0, 1.5]))

    tensor = session.calls[0]["float_input"]
    assert tensor.shape == (1, 3)
    assert tensor.dtype == np.float32
    assert tensor.tolist() == [[4.0, 0.0, 1.5]]


def test_infer_prefers_label_output() -> None:
    session = FakeSession(
        outputs={
            "probabilities": np.array([[0.2, 0.8]]),
            "output_label": np.array([[0, 1]]),
        }
    )
    engine = _engine(SessionFactory(session))

    raw = engine.infer(engine.ensure_loaded(), np.ones(2))

    assert session.requested == [["output_label"]]
    assert raw.tolist() == [[0, 1]]


def test_infer_falls_back_to_first_output() -> None:
    session = FakeSession(outputs={"variable": np.array([[1, 0]]), "scores": np.array([[0.9, 0.1]])})
    engine = _engine(SessionFactory(session))

    engine.infer(engine.ensure_loaded(), np.ones(2))
    assert session.requested == [["variable"]]


def test_infer_wraps_runtime_errors() -> None:
    session = FakeSession(error=RuntimeError("bad shape"))
    engine = _engine(SessionFactory(session))

    with pytest.raises(InferenceFailure, match="bad shape"):
        engine.infer(engine.ensure_loaded(), np.ones(3))


# ---------------------------------------------------------------
# decode
# ---------------------------------------------------------------

LABELS = LabelTable(labels=("Fire", "Police", "Medical"))


@pytest.mark.parametrize(
    "raw",
    [
        np.array([[1, 0, 1]], dtype=np.int64),
        np.array([[1, 0, 1]], dtype=np.int32),
        np.array([[1.0, 0.0, 1.0]], dtype=np.float32),
        np.array([[True, False, True]]),
    ],
)
def test_decode_accepts_int_float_and_bool_ones(raw: np.ndarray) -> None:
    engine = _engine(SessionFactory())
    assert engine.decode(raw, LABELS) == ["Fire", "Medical"]


def test_decode_ignores_values_other_than_one() -> None:
    engine = _engine(SessionFactory())
    assert engine.decode(np.array([[2, -1, 0]]), LABELS) == []


def test_decode_strips_serialization_artifacts() -> None:
    engine = _engine(SessionFactory())
    raw_table = LabelTable(labels=("['Fire']",))
    assert engine.decode(np.array([[1]]), raw_table) == ["Fire"]


def test_decode_position_outside_label_table() -> None:
    engine = _engine(SessionFactory())
    assert engine.decode(np.array([[0, 0, 0, 1]]), LABELS) == ["unknown_3"]
