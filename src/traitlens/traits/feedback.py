"""Bounded per-category memory of user corrections."""

from __future__ import annotations

import logging
import threading
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone

import numpy as np

from traitlens.config import FeedbackSettings
from traitlens.types import ClassificationResult
from traitlens.vectors import clone_vector
from traitlens.vision.similarity import unit_cosine

logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True, eq=False)
class FeedbackCorrection:
    vector: np.ndarray
    wrong_label: str
    correct_label: str
    category: str
    source_id: str
    timestamp: datetime = field(default_factory=utc_now)


class FeedbackCorrectionStore:
    """Corrections keyed by category, oldest evicted first beyond `capacity`.

    Each correction holds its own clone of the feature vector, never a buffer
    shared with the exemplar store.
    """

    def __init__(self, settings: FeedbackSettings | None = None) -> None:
        self.settings = settings or FeedbackSettings()
        self._corrections: dict[str, deque[FeedbackCorrection]] = {}
        self._lock = threading.Lock()

    @property
    def capacity(self) -> int:
        return self.settings.capacity

    def add_correction(
        self,
        vector: np.ndarray,
        wrong_label: str,
        correct_label: str,
        category: str,
        source_id: str,
        timestamp: datetime | None = None,
    ) -> FeedbackCorrection:
        correction = FeedbackCorrection(
            vector=clone_vector(vector),
            wrong_label=wrong_label,
            correct_label=correct_label,
            category=category,
            source_id=source_id,
            timestamp=timestamp or utc_now(),
        )
        evicted: FeedbackCorrection | None = None
        with self._lock:
            bucket = self._corrections.setdefault(category, deque())
            bucket.append(correction)
            if len(bucket) > self.capacity:
                evicted = bucket.popleft()
            total = len(bucket)

        logger.info("Feedback stored for %s: %s -> %s (%s)", category, wrong_label, correct_label, source_id)
        if evicted is not None:
            logger.debug("Evicted oldest correction for %s (%s)", category, evicted.source_id)
        logger.debug("Total corrections for %s: %d", category, total)
        return correction

    def check_override(self, vector: np.ndarray, category: str) -> ClassificationResult | None:
        """Return the correct label of the closest stored correction above the override similarity."""
        with self._lock:
            corrections = list(self._corrections.get(category, ()))
        if not corrections:
            return None

        best: FeedbackCorrection | None = None
        best_similarity = -1.0
        for correction in corrections:
            similarity = unit_cosine(vector, correction.vector)
            if similarity > self.settings.override_similarity and similarity > best_similarity:
                best = correction
                best_similarity = similarity

        if best is None:
            return None

        logger.info(
            "Feedback override for %s: %s (similarity %.3f, source %s)",
            category,
            best.correct_label,
            best_similarity,
            best.source_id,
        )
        return ClassificationResult(
            label=best.correct_label,
            confidence=min(self.settings.confidence_cap, best_similarity + self.settings.confidence_bonus),
            similarity=best_similarity,
            consistency_score=1.0,
            consensus=best_similarity,
            source="feedback",
        )

    def corrections(self, category: str) -> list[FeedbackCorrection]:
        with self._lock:
            return list(self._corrections.get(category, ()))

    def count(self, category: str) -> int:
        with self._lock:
            return len(self._corrections.get(category, ()))

    def stats(self) -> dict[str, int]:
        with self._lock:
            return {category: len(bucket) for category, bucket in self._corrections.items()}

    def clear(self, category: str | None = None) -> int:
        """Drop corrections for one category, or all of them; returns how many were released."""
        with self._lock:
            if category is not None:
                bucket = self._corrections.pop(category, None)
                released = len(bucket) if bucket else 0
            else:
                released = sum(len(bucket) for bucket in self._corrections.values())
                self._corrections.clear()
        logger.info("Cleared %d feedback corrections%s", released, f" for {category}" if category else "")
        return released
