"""Per-label rarity and detection statistics over a classified collection."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass

import numpy as np

from traitlens.types import NOT_DETECTED, ClassificationResult

LabelRecord = Mapping[str, str]


def detected_attributes(results: Mapping[str, ClassificationResult | None]) -> dict[str, str]:
    """Category -> label for every confident detection, dropping the sentinel."""
    return {
        category: result.label
        for category, result in results.items()
        if result is not None and result.label != NOT_DETECTED
    }


def trait_statistics(records: Sequence[LabelRecord]) -> dict[str, dict[str, int]]:
    stats: dict[str, dict[str, int]] = {}
    for record in records:
        for category, value in record.items():
            if value == NOT_DETECTED:
                continue
            bucket = stats.setdefault(category, {})
            bucket[value] = bucket.get(value, 0) + 1
    return stats


def trait_rarity(category: str, value: str, records: Sequence[LabelRecord]) -> float:
    """Fraction of records carrying `value` for `category`."""
    if not records:
        return 0.0
    count = sum(1 for record in records if record.get(category) == value)
    return count / len(records)


def format_rarity(fraction: float) -> str:
    return f"{fraction * 100:.1f}%"


def rarity_table(records: Sequence[LabelRecord]) -> dict[str, dict[str, str]]:
    total = len(records)
    if total == 0:
        return {}
    return {
        category: {value: format_rarity(count / total) for value, count in values.items()}
        for category, values in trait_statistics(records).items()
    }


@dataclass(frozen=True)
class DetectionSummary:
    mean_confidence: float
    detection_rate: float
    low_confidence_count: int
    consistency: float
    recommendations: list[str]


def summarize_detections(
    results: Sequence[Mapping[str, ClassificationResult | None]],
    low_confidence: float = 0.75,
) -> DetectionSummary:
    confidences: list[float] = []
    detected = 0
    for per_image in results:
        for result in per_image.values():
            if result is None:
                continue
            confidences.append(result.confidence)
            if result.is_detected:
                detected += 1

    if not confidences:
        return DetectionSummary(0.0, 0.0, 0, 0.0, ["No classification results to summarize."])

    arr = np.asarray(confidences, dtype=np.float64)
    mean_confidence = float(arr.mean())
    detection_rate = detected / len(confidences)
    low_count = int(np.sum(arr < low_confidence))
    consistency = max(0.0, 1.0 - float(np.sqrt(arr.var())))

    recommendations: list[str] = []
    if mean_confidence < low_confidence:
        recommendations.append("Overall confidence is low. Add more diverse training examples.")
    if detection_rate < 0.6:
        recommendations.append("Low detection rate. Add more examples to the weakest trait values.")
    if consistency < 0.7:
        recommendations.append("Inconsistent predictions. Review training data quality.")
    if low_count > len(confidences) * 0.4:
        recommendations.append("Many low-confidence predictions. Add more high-quality training examples.")

    return DetectionSummary(
        mean_confidence=mean_confidence,
        detection_rate=detection_rate,
        low_confidence_count=low_count,
        consistency=consistency,
        recommendations=recommendations,
    )
