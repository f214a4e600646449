"""Transcript text to idf-weighted feature vector.

The feature layout must stay identical to the one the classifier was trained
on: every occurrence of a vocabulary token adds that token's idf weight to its
slot. There is no term-frequency scaling and no normalisation.
"""

from __future__ import annotations

import logging
import re
from typing import List

import numpy as np

from vocabulary import VocabularyModel

logger = logging.getLogger(__name__)

_TOKEN_PATTERN = re.compile(r"\b\w+\b", re.ASCII)


def tokenize(text: str) -> List[str]:
    return _TOKEN_PATTERN.findall(text.lower())


def vectorize(text: str, vocab: VocabularyModel) -> np.ndarray:
    vector = np.zeros(vocab.size, dtype=np.float64)
    tokens = tokenize(text)
    matched = 0
    for token in tokens:
        index = vocab.index_of(token)
        if index is None:
            logger.debug("Unmatched token: %r", token)
            continue
        vector[index] += vocab.idf[index]
        matched += 1
    logger.debug("Total tokens: %d, matched: %d", len(tokens), matched)
    return vector


def is_empty_vector(vector: np.ndarray) -> bool:
    return not np.any(vector)
