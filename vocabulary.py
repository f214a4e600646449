"""Vocabulary, idf weights and label table loaded once at start-up.

Both artifacts are exported next to the trained classifier. The vocabulary
and idf sequences are positionally aligned; any mismatch means the feature
space no longer matches the model and the pipeline must not start.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Mapping, Sequence, Tuple

import numpy as np

from errors import ConfigMismatch

logger = logging.getLogger(__name__)

_LABEL_NOISE = re.compile(r"[\[\]'\"\s]")


def clean_label(raw: str) -> str:
    """Strip serialization leftovers, e.g. ``"['Fire']"`` -> ``"Fire"``."""
    return _LABEL_NOISE.sub("", str(raw))


@dataclass(frozen=True, eq=False)
class VocabularyModel:
    vocabulary: Tuple[str, ...]
    idf: np.ndarray
    _index: Dict[str, int] = field(default_factory=dict, repr=False, compare=False)

    def __post_init__(self) -> None:
        if len(self.vocabulary) != len(self.idf):
            raise ConfigMismatch(
                f"vocabulary has {len(self.vocabulary)} tokens but idf has {len(self.idf)} weights"
            )
        idf = np.array(self.idf, dtype=np.float64)
        if idf.ndim != 1:
            raise ConfigMismatch(f"idf must be one-dimensional, got shape {idf.shape}")
        idf.setflags(write=False)
        object.__setattr__(self, "idf", idf)
        for i, token in enumerate(self.vocabulary):
            self._index[token] = i

    @property
    def size(self) -> int:
        return len(self.vocabulary)

    def index_of(self, token: str) -> int | None:
        return self._index.get(token)


@dataclass(frozen=True)
class LabelTable:
    labels: Tuple[str, ...]

    @property
    def size(self) -> int:
        return len(self.labels)

    def name_for(self, index: int) -> str:
        if 0 <= index < len(self.labels):
            return self.labels[index]
        return f"unknown_{index}"


def load_vocabulary(config: Mapping[str, Any]) -> VocabularyModel:
    try:
        vocabulary = config["vocabulary"]
        idf = config["idf"]
    except (KeyError, TypeError) as exc:
        raise ConfigMismatch(f"tfidf config is missing {exc}") from exc
    if not isinstance(vocabulary, Sequence) or isinstance(vocabulary, str):
        raise ConfigMismatch("vocabulary must be a list of tokens")
    if not isinstance(idf, Sequence) or isinstance(idf, str):
        raise ConfigMismatch("idf must be a list of numbers")
    if len(vocabulary) != len(idf):
        raise ConfigMismatch(
            f"vocabulary has {len(vocabulary)} tokens but idf has {len(idf)} weights"
        )
    try:
        weights = np.asarray(idf, dtype=np.float64)
    except (TypeError, ValueError) as exc:
        raise ConfigMismatch(f"idf weights are not numeric: {exc}") from exc
    if weights.ndim != 1:
        raise ConfigMismatch(f"idf must be a flat list of numbers, got shape {weights.shape}")
    return VocabularyModel(vocabulary=tuple(str(t) for t in vocabulary), idf=weights)


def load_labels(config: Sequence[Any]) -> LabelTable:
    if not isinstance(config, Sequence) or isinstance(config, str):
        raise ConfigMismatch("label table must be a list of category names")
    labels = []
    for i, raw in enumerate(config):
        name = clean_label(raw)
        if not name:
            raise ConfigMismatch(f"label {i} is empty after cleanup: {raw!r}")
        labels.append(name)
    return LabelTable(labels=tuple(labels))


def load_artifacts(
    vocab_config: Mapping[str, Any], label_config: Sequence[Any]
) -> Tuple[VocabularyModel, LabelTable]:
    vocab = load_vocabulary(vocab_config)
    labels = load_labels(label_config)
    logger.info("Loaded vocabulary of %d tokens and %d labels", vocab.size, labels.size)
    return vocab, labels


def load_artifacts_from_files(
    tfidf_path: Path, labels_path: Path
) -> Tuple[VocabularyModel, LabelTable]:
    return load_artifacts(_read_json(tfidf_path), _read_json(labels_path))


def _read_json(path: Path) -> Any:
    try:
        return json.loads(Path(path).read_text(encoding="utf-8"))
    except (json.JSONDecodeError, OSError) as exc:
        raise ConfigMismatch(f"cannot read {path}: {exc}") from exc
