"""Vector similarity metrics."""

from __future__ import annotations

import logging
from collections.abc import Sequence

import numpy as np

from traitlens.config import SimilaritySettings
from traitlens.types import NEUTRAL_SCORES, SimilarityScores

logger = logging.getLogger(__name__)

DEFAULT_SIMILARITY = SimilaritySettings()


def _shapes_match(a: np.ndarray, b: np.ndarray) -> bool:
    if a.shape[0] != b.shape[0]:
        logger.warning("Feature vector dimension mismatch: %d vs %d", a.shape[0], b.shape[0])
        return False
    return True


def cosine_similarity(a: np.ndarray, b: np.ndarray, epsilon: float = 1e-8) -> float:
    """Cosine similarity in [-1, 1]; 0.0 on dimension mismatch or degenerate input."""
    a = np.ravel(a)
    b = np.ravel(b)
    if not _shapes_match(a, b):
        return 0.0
    denom = max(float(np.linalg.norm(a)), epsilon) * max(float(np.linalg.norm(b)), epsilon)
    value = float(np.dot(a, b) / denom)
    if np.isnan(value):
        return 0.0
    return max(-1.0, min(1.0, value))


def unit_cosine(a: np.ndarray, b: np.ndarray, epsilon: float = 1e-8) -> float:
    """Cosine similarity clamped to [0, 1] for use as a match score."""
    return max(0.0, cosine_similarity(a, b, epsilon))


def compute_similarity(
    a: np.ndarray,
    b: np.ndarray,
    settings: SimilaritySettings = DEFAULT_SIMILARITY,
) -> SimilarityScores:
    """Cosine, distance-derived and weighted composite similarity between two vectors.

    Euclidean and Manhattan distances are mapped into [0, 1] as 1 / (1 + d).
    The composite blends the clamped cosine with both, using the configured
    weights (0.5 / 0.3 / 0.2 by default). A dimension mismatch yields the
    all-zero neutral result rather than an exception.
    """
    a = np.ravel(a).astype(np.float64)
    b = np.ravel(b).astype(np.float64)
    if not _shapes_match(a, b):
        return NEUTRAL_SCORES

    cosine = cosine_similarity(a, b, settings.epsilon)
    diff = a - b
    euclidean = 1.0 / (1.0 + float(np.linalg.norm(diff)))
    manhattan = 1.0 / (1.0 + float(np.sum(np.abs(diff))))
    composite = (
        max(0.0, cosine) * settings.cosine_weight
        + euclidean * settings.euclidean_weight
        + manhattan * settings.manhattan_weight
    )
    return SimilarityScores(
        cosine=cosine,
        euclidean=min(1.0, euclidean),
        manhattan=min(1.0, manhattan),
        composite=max(0.0, min(1.0, composite)),
    )


def top_weighted_mean(scores: Sequence[float], decay: float = 0.8) -> float:
    """Mean of scores sorted descending, weighting rank i by decay**i."""
    if not scores:
        return 0.0
    ordered = sorted(scores, reverse=True)
    weights = [decay**idx for idx in range(len(ordered))]
    return sum(s * w for s, w in zip(ordered, weights)) / sum(weights)


def consensus_score(per_exemplar: Sequence[SimilarityScores], decay: float = 0.8) -> float:
    """Agreement of all four metrics on how well a set of exemplars matches.

    Each metric is reduced to a top-weighted mean over the exemplars, then the
    mean of those is penalised by their spread.
    """
    if not per_exemplar:
        return 0.0
    metrics = [
        [max(0.0, s.cosine) for s in per_exemplar],
        [s.euclidean for s in per_exemplar],
        [s.manhattan for s in per_exemplar],
        [s.composite for s in per_exemplar],
    ]
    reduced = np.array([top_weighted_mean(values, decay) for values in metrics], dtype=np.float64)
    spread = float(np.sqrt(np.var(reduced)))
    return max(0.0, float(reduced.mean()) * (1.0 - spread))


def pairwise_similarities(vectors: Sequence[np.ndarray], epsilon: float = 1e-8) -> list[float]:
    """Clamped cosine similarity for every unordered pair."""
    out: list[float] = []
    for i in range(len(vectors)):
        for j in range(i + 1, len(vectors)):
            out.append(unit_cosine(vectors[i], vectors[j], epsilon))
    return out
