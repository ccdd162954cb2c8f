"""Exemplar matching with consensus scoring and adaptive acceptance."""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass

import numpy as np

from traitlens.config import ScoringSettings, SimilaritySettings
from traitlens.traits.feedback import FeedbackCorrectionStore
from traitlens.traits.store import Exemplar
from traitlens.traits.thresholds import AdaptiveThresholdManager
from traitlens.types import NOT_DETECTED, ClassificationResult
from traitlens.vision.similarity import compute_similarity, consensus_score

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ValueScore:
    value: str
    max_similarity: float
    avg_similarity: float
    variance: float
    consistency: float
    composite: float
    consensus: float


def consistency_from_variance(variance: float, amplification: float) -> float:
    return max(0.0, 1.0 - float(np.sqrt(variance * amplification)))


class TraitClassifier:
    def __init__(
        self,
        thresholds: AdaptiveThresholdManager,
        feedback: FeedbackCorrectionStore | None = None,
        scoring: ScoringSettings | None = None,
        similarity: SimilaritySettings | None = None,
    ) -> None:
        self.thresholds = thresholds
        self.feedback = feedback
        self.scoring = scoring or ScoringSettings()
        self.similarity = similarity or SimilaritySettings()

    def score_value(self, target: np.ndarray, value: str, examples: Sequence[Exemplar]) -> ValueScore:
        per_exemplar = [compute_similarity(target, e.vector, self.similarity) for e in examples]
        if self.scoring.metric == "composite":
            sims = np.array([s.composite for s in per_exemplar], dtype=np.float64)
        else:
            sims = np.array([max(0.0, s.cosine) for s in per_exemplar], dtype=np.float64)

        max_sim = float(sims.max())
        avg_sim = float(sims.mean())
        variance = float(sims.var())
        consistency = consistency_from_variance(variance, self.scoring.consistency_amplification)
        composite = (
            max_sim * self.scoring.max_weight
            + avg_sim * self.scoring.avg_weight
            + consistency * self.scoring.consistency_weight
        )
        return ValueScore(
            value=value,
            max_similarity=max_sim,
            avg_similarity=avg_sim,
            variance=variance,
            consistency=consistency,
            composite=composite,
            consensus=consensus_score(per_exemplar, self.scoring.consensus_decay),
        )

    def score_values(
        self, target: np.ndarray, exemplars_by_value: Mapping[str, Sequence[Exemplar]]
    ) -> list[ValueScore]:
        """Score every non-empty trait value, preserving mapping order."""
        return [
            self.score_value(target, value, examples)
            for value, examples in exemplars_by_value.items()
            if examples
        ]

    def classify(
        self,
        target: np.ndarray,
        exemplars_by_value: Mapping[str, Sequence[Exemplar]],
        category: str,
        threshold: float | None = None,
    ) -> ClassificationResult | None:
        """Best-matching trait value for `target`, or the Not Detected sentinel.

        Returns None only when the category has no exemplars. Stored feedback
        corrections are consulted first and win outright. Otherwise the value
        with the highest composite score is accepted only if it clears the
        category threshold and both the consistency and similarity floors.
        """
        if not any(exemplars_by_value.values()):
            return None

        if self.feedback is not None:
            override = self.feedback.check_override(target, category)
            if override is not None:
                return override

        best: ValueScore | None = None
        for score in self.score_values(target, exemplars_by_value):
            logger.debug(
                "%s/%s: max=%.3f avg=%.3f consistency=%.3f composite=%.3f",
                category,
                score.value,
                score.max_similarity,
                score.avg_similarity,
                score.consistency,
                score.composite,
            )
            if best is None or score.composite > best.composite:
                best = score

        if best is None:
            return None

        if threshold is None:
            threshold = self.thresholds.get(category)
        accepted = (
            best.composite >= threshold
            and best.consistency >= self.scoring.min_consistency
            and best.max_similarity >= self.scoring.min_similarity
        )
        if accepted:
            logger.debug("%s accepted %s (score %.3f >= %.3f)", category, best.value, best.composite, threshold)
        else:
            logger.debug(
                "%s rejected %s: score %.3f / %.3f, consistency %.3f / %.3f, similarity %.3f / %.3f",
                category,
                best.value,
                best.composite,
                threshold,
                best.consistency,
                self.scoring.min_consistency,
                best.max_similarity,
                self.scoring.min_similarity,
            )

        return ClassificationResult(
            label=best.value if accepted else NOT_DETECTED,
            confidence=best.composite,
            similarity=best.max_similarity,
            consistency_score=best.consistency,
            consensus=best.consensus,
        )
