from __future__ import annotations

import difflib
from collections import Counter
from dataclasses import dataclass
from typing import Dict, List, Optional, Protocol, Sequence

import numpy as np

from sectionrank.utils.settings import MatchingConfig
from sectionrank.workflow.normalization import TextNormalizer

MIN_SCOREABLE_CHARS = 3
MIN_STEM_PREFIX = 4

_normalizer = TextNormalizer()


class VectorSimilarity(Protocol):
    def similarity(self, left: str, right: str) -> float:
        """Symmetric similarity in [0, 1]."""


def stems_related(left: str, right: str) -> bool:
    """Light stems match when the shorter one (at least four chars) prefixes the longer one."""
    if left == right:
        return True
    shorter, longer = sorted((left, right), key=len)
    return len(shorter) >= MIN_STEM_PREFIX and longer.startswith(shorter)


def _token_similarity(left: str, right: str) -> float:
    if stems_related(_normalizer.stem(left), _normalizer.stem(right)):
        return 1.0
    return difflib.SequenceMatcher(None, left, right).ratio()


def _directional_alignment(source: Sequence[str], target: Sequence[str]) -> float:
    total = sum(len(token) for token in source)
    if not total:
        return 0.0
    weighted = sum(len(token) * max(_token_similarity(token, other) for other in target) for token in source)
    return weighted / total


def fuzzy_similarity(left: str, right: str) -> float:
    """Token alignment score: each token's best counterpart on the other side, length-weighted.

    Taking the max of both directions keeps the score symmetric.
    """
    left_tokens = _normalizer.tokenize(left)
    right_tokens = _normalizer.tokenize(right)
    if not left_tokens or not right_tokens:
        return 0.0
    score = max(_directional_alignment(left_tokens, right_tokens), _directional_alignment(right_tokens, left_tokens))
    return min(1.0, max(0.0, score))


class TermVectorSimilarity:
    """Cosine over stemmed term counts, blended with the cosine on the smaller side's vocabulary.

    Short topic phrases against long passages get a plain cosine near zero; the
    restricted cosine measures how well the passage covers the phrase.
    """

    def similarity(self, left: str, right: str) -> float:
        left_stems = [_normalizer.stem(token) for token in _normalizer.tokenize(left)]
        right_stems = [_normalizer.stem(token) for token in _normalizer.tokenize(right)]
        if not left_stems or not right_stems:
            return 0.0

        canonical = self._canonical_map(set(left_stems) | set(right_stems))
        left_counts = Counter(canonical[stem] for stem in left_stems)
        right_counts = Counter(canonical[stem] for stem in right_stems)
        vocabulary = sorted(set(left_counts) | set(right_counts))
        left_vec = np.array([left_counts.get(term, 0) for term in vocabulary], dtype=float)
        right_vec = np.array([right_counts.get(term, 0) for term in vocabulary], dtype=float)

        full = self._cosine(left_vec, right_vec)
        if len(left_counts) < len(right_counts):
            restricted = self._restricted_cosine(left_vec, right_vec)
        elif len(right_counts) < len(left_counts):
            restricted = self._restricted_cosine(right_vec, left_vec)
        else:
            restricted = max(self._restricted_cosine(left_vec, right_vec), self._restricted_cosine(right_vec, left_vec))
        return float(min(1.0, max(0.0, 0.5 * full + 0.5 * restricted)))

    @staticmethod
    def _canonical_map(stems: set) -> Dict[str, str]:
        mapping: Dict[str, str] = {}
        kept: List[str] = []
        for stem in sorted(stems, key=lambda s: (len(s), s)):
            match = next((root for root in kept if stems_related(root, stem)), None)
            if match is None:
                kept.append(stem)
                match = stem
            mapping[stem] = match
        return mapping

    @staticmethod
    def _cosine(left: np.ndarray, right: np.ndarray) -> float:
        denom = float(np.linalg.norm(left) * np.linalg.norm(right))
        if denom == 0.0:
            return 0.0
        return float(np.dot(left, right) / denom)

    @classmethod
    def _restricted_cosine(cls, support: np.ndarray, other: np.ndarray) -> float:
        return cls._cosine(support, np.where(support > 0, other, 0.0))


@dataclass(frozen=True)
class ScoreBreakdown:
    fuzzy: float
    cosine: float
    traditional: float


class ScoringEngine:
    """Traditional (fuzzy + vector) scoring and the blend with judge scores."""

    def __init__(self, config: Optional[MatchingConfig] = None, vector: Optional[VectorSimilarity] = None) -> None:
        self.config = config or MatchingConfig()
        self.vector = vector or TermVectorSimilarity()

    def breakdown(self, topic: str, text: str) -> ScoreBreakdown:
        if not text or len(text) < MIN_SCOREABLE_CHARS:
            return ScoreBreakdown(fuzzy=0.0, cosine=0.0, traditional=0.0)
        fuzzy = fuzzy_similarity(topic, text)
        cosine = min(1.0, max(0.0, self.vector.similarity(topic, text)))
        traditional = min(1.0, fuzzy * self.config.fuzzy_weight + cosine * self.config.cosine_weight)
        return ScoreBreakdown(fuzzy=fuzzy, cosine=cosine, traditional=traditional)

    def traditional_score(self, topic: str, text: str) -> float:
        return self.breakdown(topic, text).traditional

    def normalized(self, traditional: float) -> float:
        return min(1.0, max(0.0, traditional / self.config.traditional_weight))

    def final_score(self, traditional: float, ai_score: float = 0.0, judge_active: bool = True) -> float:
        """Normalized traditional score, blended with the judge score when one contributed."""
        normalized = self.normalized(traditional)
        if not judge_active or ai_score == 0:
            return normalized
        ai = min(1.0, max(0.0, ai_score))
        blended = normalized * (1 - self.config.ai_weight) + ai * self.config.ai_weight
        return min(1.0, max(0.0, blended))


__all__ = [
    "MIN_SCOREABLE_CHARS",
    "ScoreBreakdown",
    "ScoringEngine",
    "TermVectorSimilarity",
    "VectorSimilarity",
    "fuzzy_similarity",
    "stems_related",
]
