"""Per-category adaptive acceptance thresholds."""

from __future__ import annotations

import logging
import threading
from collections.abc import Mapping, Sequence
from dataclasses import dataclass

import numpy as np

from traitlens.config import ThresholdSettings
from traitlens.traits.store import Exemplar
from traitlens.vision.similarity import pairwise_similarities

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CategoryStats:
    average_intra_class_similarity: float
    variance: float
    pair_count: int
    min_value_count: int


def category_stats(exemplars_by_value: Mapping[str, Sequence[Exemplar]]) -> CategoryStats | None:
    """Pool pairwise similarities within each trait value of a category.

    Returns None when there are fewer than two exemplars or no trait value has
    a pair to compare.
    """
    sims: list[float] = []
    counts: list[int] = []
    for examples in exemplars_by_value.values():
        if not examples:
            continue
        counts.append(len(examples))
        sims.extend(pairwise_similarities([e.vector for e in examples]))

    if sum(counts) < 2 or not sims:
        return None

    arr = np.asarray(sims, dtype=np.float64)
    return CategoryStats(
        average_intra_class_similarity=float(arr.mean()),
        variance=float(arr.var()),
        pair_count=len(sims),
        min_value_count=min(counts),
    )


class AdaptiveThresholdManager:
    """One acceptance threshold per category, recomputed from training-data quality."""

    def __init__(self, settings: ThresholdSettings | None = None) -> None:
        self.settings = settings or ThresholdSettings()
        self._thresholds: dict[str, float] = {}
        self._stats: dict[str, CategoryStats] = {}
        self._baselines: dict[str, float] = {}
        self._lock = threading.Lock()

    @property
    def default(self) -> float:
        return self.settings.base

    def get(self, category: str) -> float:
        with self._lock:
            return self._thresholds.get(category, self.settings.base)

    def stats(self, category: str) -> CategoryStats | None:
        with self._lock:
            return self._stats.get(category)

    def all(self) -> dict[str, float]:
        with self._lock:
            return dict(self._thresholds)

    def compute(self, stats: CategoryStats, feedback_count: int = 0) -> float:
        """Pure threshold policy for a category's statistics."""
        s = self.settings
        threshold = s.base

        if stats.variance < s.low_variance:
            threshold += s.low_variance_delta
        elif stats.variance < s.moderate_variance:
            threshold += s.moderate_variance_delta
        elif stats.variance > s.high_variance:
            threshold += s.high_variance_delta

        if stats.min_value_count >= s.well_populated_count:
            threshold += s.well_populated_delta
        elif stats.min_value_count < s.under_populated_count:
            threshold += s.under_populated_delta

        if feedback_count > 0:
            threshold -= min(s.feedback_cap, s.feedback_step * feedback_count)

        return self._clamp(threshold)

    def recompute(
        self,
        category: str,
        exemplars_by_value: Mapping[str, Sequence[Exemplar]],
        feedback_count: int = 0,
    ) -> float:
        """Recompute from scratch; falls back to the last computed baseline when data is insufficient."""
        stats = category_stats(exemplars_by_value)
        if stats is None:
            with self._lock:
                baseline = self._baselines.get(category)
                if baseline is None:
                    self._thresholds.pop(category, None)
                    return self.settings.base
                self._thresholds[category] = baseline
            return baseline

        threshold = self.compute(stats, feedback_count)
        with self._lock:
            self._thresholds[category] = threshold
            self._baselines[category] = threshold
            self._stats[category] = stats
        logger.info(
            "Adaptive threshold for %s: %.3f (min %d per value, variance %.4f, %d corrections)",
            category,
            threshold,
            stats.min_value_count,
            stats.variance,
            feedback_count,
        )
        return threshold

    def nudge_for_feedback(self, category: str) -> float:
        """Small reduction below the recomputed baseline after a correction, floor-clamped.

        Repeated nudges do not compound; each one starts from the baseline.
        """
        with self._lock:
            current = self._baselines.get(category, self.settings.base)
            adjusted = max(self.settings.floor, current - self.settings.feedback_nudge)
            self._thresholds[category] = adjusted
        logger.info("Threshold for %s nudged after feedback: %.3f", category, adjusted)
        return adjusted

    def forget(self, category: str) -> None:
        with self._lock:
            self._thresholds.pop(category, None)
            self._baselines.pop(category, None)
            self._stats.pop(category, None)

    def clear(self) -> None:
        with self._lock:
            self._thresholds.clear()
            self._baselines.clear()
            self._stats.clear()

    def _clamp(self, value: float) -> float:
        return max(self.settings.floor, min(self.settings.ceiling, value))
