from __future__ import annotations

from typing import Dict

import numpy as np
from sentence_transformers import SentenceTransformer

from sectionrank.logging_config import get_logger

logger = get_logger(__name__)

DEFAULT_EMBEDDING_MODEL = "sentence-transformers/all-MiniLM-L6-v2"


class EmbeddingSimilarity:
    """Sentence-embedding cosine similarity, usable in place of the term-vector cosine."""

    _MODEL_CACHE: dict[str, SentenceTransformer] = {}

    def __init__(self, model_name: str = DEFAULT_EMBEDDING_MODEL) -> None:
        self.model_name = model_name
        if model_name in self._MODEL_CACHE:
            self._model = self._MODEL_CACHE[model_name]
            logger.info("Reusing cached embedding model %s", model_name)
        else:
            self._model = SentenceTransformer(model_name)
            self._MODEL_CACHE[model_name] = self._model
            logger.info("Loaded embedding model %s", model_name)
        self._vectors: Dict[str, np.ndarray] = {}

    def _vector(self, text: str) -> np.ndarray:
        cached = self._vectors.get(text)
        if cached is None:
            cached = self._model.encode([text], convert_to_numpy=True, normalize_embeddings=True)[0]
            self._vectors[text] = cached
        return cached

    def similarity(self, left: str, right: str) -> float:
        if not left or not right:
            return 0.0
        # Normalized embeddings: the dot product is the cosine.
        value = float(np.dot(self._vector(left), self._vector(right)))
        return min(1.0, max(0.0, value))


__all__ = ["DEFAULT_EMBEDDING_MODEL", "EmbeddingSimilarity"]
