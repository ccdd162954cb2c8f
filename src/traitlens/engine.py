"""Trait engine: training, classification and feedback around one set of stores."""

from __future__ import annotations

import asyncio
import logging
import threading
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol

import numpy as np

from traitlens.config import EngineSettings
from traitlens.errors import ExtractorNotReadyError
from traitlens.snapshots.io import load_feedback, save_feedback
from traitlens.traits.classifier import TraitClassifier
from traitlens.traits.feedback import FeedbackCorrection, FeedbackCorrectionStore
from traitlens.traits.quality import QualityReport, TrainingQualityAnalyzer
from traitlens.traits.store import Exemplar, ExemplarStore, TrainedTraits
from traitlens.traits.thresholds import AdaptiveThresholdManager
from traitlens.types import ClassificationResult, not_detected
from traitlens.vision.extractor import FeatureExtractor
from traitlens.vision.preprocess import load_image

logger = logging.getLogger(__name__)

ImageInput = np.ndarray | str | Path
ProgressCallback = Callable[[int, int], None]


class CancelFlag(Protocol):
    def is_set(self) -> bool: ...


@dataclass(frozen=True)
class BatchItemResult:
    source_id: str
    results: dict[str, ClassificationResult] = field(default_factory=dict)
    error: str | None = None


def _as_image(image: ImageInput) -> np.ndarray:
    if isinstance(image, np.ndarray):
        return image
    return load_image(image)


class TraitEngine:
    """Owns the exemplar, threshold and feedback stores for one session.

    Construct explicitly and call `dispose()` (or use as a context manager)
    when done; nothing is shared between engine instances. A single re-entrant
    lock makes each mutation plus its threshold recomputation atomic, and
    classification reads exemplars and threshold under the same lock.
    """

    def __init__(
        self,
        settings: EngineSettings | None = None,
        extractor: FeatureExtractor | None = None,
    ) -> None:
        self.settings = settings or EngineSettings()
        self.extractor = extractor or FeatureExtractor(self.settings.embedding, self.settings.preprocess)
        self.store = ExemplarStore()
        self.thresholds = AdaptiveThresholdManager(self.settings.thresholds)
        self.feedback = FeedbackCorrectionStore(self.settings.feedback)
        self.classifier = TraitClassifier(
            thresholds=self.thresholds,
            feedback=self.feedback,
            scoring=self.settings.scoring,
            similarity=self.settings.similarity,
        )
        self.analyzer = TrainingQualityAnalyzer(self.settings.quality)
        self._lock = threading.RLock()
        self._disposed = False
        if self.settings.feedback.snapshot_dir:
            self.load_feedback(self.settings.feedback.snapshot_dir)

    @classmethod
    def create(cls, settings: EngineSettings | None = None, extractor: FeatureExtractor | None = None) -> "TraitEngine":
        """Build an engine and load its extractor."""
        engine = cls(settings, extractor)
        engine.extractor.load()
        return engine

    def __enter__(self) -> "TraitEngine":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.dispose()

    def dispose(self) -> None:
        if self._disposed:
            return
        with self._lock:
            if self.settings.feedback.snapshot_dir:
                self.save_feedback(self.settings.feedback.snapshot_dir)
            self.feedback.clear()
            self.store.clear()
            self.thresholds.clear()
            self.extractor.close()
            self._disposed = True
        logger.info("Trait engine disposed")

    # Training

    def add_category(self, category: str) -> None:
        self.store.add_category(category)

    def add_exemplar(
        self,
        category: str,
        value: str,
        vector: np.ndarray,
        source_id: str,
        display_url: str = "",
    ) -> Exemplar:
        with self._lock:
            exemplar = self.store.add_exemplar(category, value, vector, source_id, display_url)
            self._recompute(category)
        return exemplar

    def add_training_image(
        self,
        category: str,
        value: str,
        image: ImageInput,
        source_id: str | None = None,
        display_url: str = "",
    ) -> Exemplar:
        if source_id is None:
            source_id = str(image) if not isinstance(image, np.ndarray) else f"{category}/{value}"
        vector = self.extractor.extract(_as_image(image))
        return self.add_exemplar(category, value, vector, source_id, display_url)

    def remove_exemplar(self, category: str, value: str, index: int) -> Exemplar:
        with self._lock:
            removed = self.store.remove_exemplar(category, value, index)
            self._recompute(category)
        return removed

    def remove_exemplar_by_source(self, category: str, value: str, source_id: str) -> Exemplar:
        with self._lock:
            removed = self.store.remove_exemplar_by_source(category, value, source_id)
            self._recompute(category)
        return removed

    def remove_trait_value(self, category: str, value: str) -> int:
        with self._lock:
            released = self.store.remove_value(category, value)
            self._recompute(category)
        return released

    def remove_category(self, category: str) -> int:
        with self._lock:
            released = self.store.remove_category(category)
            self.thresholds.forget(category)
            self.feedback.clear(category)
        return released

    def trained_traits(self) -> TrainedTraits:
        return self.store.snapshot_all()

    def _recompute(self, category: str) -> float:
        return self.thresholds.recompute(
            category,
            self.store.snapshot(category),
            feedback_count=self.feedback.count(category),
        )

    # Classification

    def classify_vector(self, vector: np.ndarray, category: str) -> ClassificationResult | None:
        with self._lock:
            exemplars = self.store.snapshot(category)
            threshold = self.thresholds.get(category)
        return self.classifier.classify(vector, exemplars, category, threshold=threshold)

    def classify_features(self, vector: np.ndarray) -> dict[str, ClassificationResult]:
        """Classify one feature vector against every trained category."""
        results: dict[str, ClassificationResult] = {}
        for category in self.store.categories():
            result = self.classify_vector(vector, category)
            if result is not None:
                results[category] = result
        return results

    def classify_image(self, image: ImageInput) -> dict[str, ClassificationResult]:
        vector = self.extractor.extract(_as_image(image))
        return self.classify_features(vector)

    async def classify_batch(
        self,
        items: Iterable[tuple[str, ImageInput]],
        cancel: CancelFlag | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> list[BatchItemResult]:
        """Classify (source_id, image) pairs in small batches with cooperative yields.

        Each image is isolated: a failure is logged and reported as an error
        with Not Detected for every category. Setting `cancel` stops the batch
        before the next image; results gathered so far are returned.
        """
        if not self.extractor.is_ready:
            raise ExtractorNotReadyError("Feature extractor not loaded; call load() first")

        pending = list(items)
        total = len(pending)
        out: list[BatchItemResult] = []
        batch_size = self.settings.batch.size

        for start in range(0, total, batch_size):
            for source_id, image in pending[start : start + batch_size]:
                if cancel is not None and cancel.is_set():
                    logger.info("Batch classification cancelled after %d/%d images", len(out), total)
                    return out
                out.append(await self._classify_item(source_id, image))
                if on_progress is not None:
                    on_progress(len(out), total)
            if start + batch_size < total:
                await asyncio.sleep(self.settings.batch.yield_seconds)

        return out

    async def _classify_item(self, source_id: str, image: ImageInput) -> BatchItemResult:
        try:
            decoded = await asyncio.to_thread(_as_image, image)
            vector = await asyncio.to_thread(self.extractor.extract, decoded)
            return BatchItemResult(source_id=source_id, results=self.classify_features(vector))
        except Exception as exc:  # noqa: BLE001
            logger.exception("Failed to classify %s", source_id)
            fallback = {category: not_detected() for category in self.store.categories()}
            return BatchItemResult(source_id=source_id, results=fallback, error=str(exc))

    # Feedback

    def record_correction(
        self,
        vector: np.ndarray,
        category: str,
        wrong_label: str,
        correct_label: str,
        source_id: str,
    ) -> FeedbackCorrection:
        with self._lock:
            correction = self.feedback.add_correction(vector, wrong_label, correct_label, category, source_id)
            self._recompute(category)
            self.thresholds.nudge_for_feedback(category)
        return correction

    def submit_correction(
        self,
        image: ImageInput,
        category: str,
        wrong_label: str,
        correct_label: str,
        source_id: str | None = None,
    ) -> FeedbackCorrection:
        """Extract the image once and remember that it belongs to `correct_label`."""
        if source_id is None:
            source_id = str(image) if not isinstance(image, np.ndarray) else "correction"
        vector = self.extractor.extract(_as_image(image))
        return self.record_correction(vector, category, wrong_label, correct_label, source_id)

    def clear_feedback(self, category: str | None = None) -> int:
        with self._lock:
            released = self.feedback.clear(category)
            for name in [category] if category else self.store.categories():
                self._recompute(name)
        return released

    def feedback_stats(self) -> dict[str, int]:
        return self.feedback.stats()

    def save_feedback(self, snapshot_dir: str | Path) -> None:
        save_feedback(snapshot_dir, self.feedback)

    def load_feedback(self, snapshot_dir: str | Path) -> int:
        with self._lock:
            loaded = load_feedback(snapshot_dir, self.feedback)
        logger.info("Loaded %d feedback corrections from %s", loaded, snapshot_dir)
        return loaded

    # Diagnostics

    def threshold(self, category: str) -> float:
        return self.thresholds.get(category)

    def analyze_training(self) -> QualityReport:
        return self.analyzer.analyze(self.store.snapshot_all())
