"""Read-only training data diagnostics."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field

import numpy as np

from traitlens.config import QualitySettings
from traitlens.traits.classifier import consistency_from_variance
from traitlens.traits.store import Exemplar
from traitlens.vision.similarity import pairwise_similarities


@dataclass(frozen=True)
class ValueQuality:
    value: str
    count: int
    average_similarity: float
    variance: float
    consistency: float
    sample_score: float
    quality: float


@dataclass(frozen=True)
class CategoryQuality:
    category: str
    quality: float
    values: dict[str, ValueQuality] = field(default_factory=dict)


@dataclass(frozen=True)
class QualityReport:
    categories: dict[str, CategoryQuality]
    overall_quality: float
    recommendations: list[str]
    total_examples: int

    @property
    def per_category_quality(self) -> dict[str, float]:
        return {name: cat.quality for name, cat in self.categories.items()}


class TrainingQualityAnalyzer:
    def __init__(self, settings: QualitySettings | None = None) -> None:
        self.settings = settings or QualitySettings()

    def analyze_value(self, value: str, examples: Sequence[Exemplar]) -> ValueQuality:
        s = self.settings
        sims = np.asarray(pairwise_similarities([e.vector for e in examples]), dtype=np.float64)
        avg = float(sims.mean()) if sims.size else 0.0
        variance = float(sims.var()) if sims.size > 1 else 0.0
        consistency = consistency_from_variance(variance, s.consistency_amplification)
        sample_score = min(1.0, len(examples) / s.target_count)
        quality = consistency * s.consistency_weight + sample_score * (1.0 - s.consistency_weight)
        return ValueQuality(
            value=value,
            count=len(examples),
            average_similarity=avg,
            variance=variance,
            consistency=consistency,
            sample_score=sample_score,
            quality=quality,
        )

    def recommendations_for(self, category: str, vq: ValueQuality) -> list[str]:
        s = self.settings
        label = f"{category}/{vq.value}"
        out: list[str] = []
        if vq.count < s.minimum_count:
            out.append(f"{label}: Add more examples ({vq.count}/{s.minimum_count} minimum)")
        elif vq.count < s.recommended_count:
            out.append(f"{label}: Add more examples for better accuracy ({vq.count}/{s.recommended_count} recommended)")
        if vq.variance > s.inconsistent_variance:
            out.append(f"{label}: Training examples are inconsistent - review image quality")
        if vq.count > 1 and vq.average_similarity > s.near_duplicate_similarity:
            out.append(f"{label}: Training examples may be too similar - add more variety")
        return out

    def analyze(self, trained_traits: Mapping[str, Mapping[str, Sequence[Exemplar]]]) -> QualityReport:
        categories: dict[str, CategoryQuality] = {}
        recommendations: list[str] = []
        total_examples = 0

        for category, values in trained_traits.items():
            value_qualities: dict[str, ValueQuality] = {}
            for value, examples in values.items():
                if not examples:
                    continue
                vq = self.analyze_value(value, examples)
                value_qualities[value] = vq
                total_examples += vq.count
                recommendations.extend(self.recommendations_for(category, vq))

            if not value_qualities:
                recommendations.append(f"{category}: No training examples found")
                categories[category] = CategoryQuality(category=category, quality=0.0)
                continue

            quality = float(np.mean([vq.quality for vq in value_qualities.values()]))
            categories[category] = CategoryQuality(category=category, quality=quality, values=value_qualities)

        overall = float(np.mean([c.quality for c in categories.values()])) if categories else 0.0
        return QualityReport(
            categories=categories,
            overall_quality=overall,
            recommendations=recommendations,
            total_examples=total_examples,
        )
