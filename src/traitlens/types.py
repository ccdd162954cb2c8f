from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

NOT_DETECTED = "Not Detected"

ResultSource = Literal["classifier", "feedback", "error"]


@dataclass(frozen=True)
class SimilarityScores:
    cosine: float  # raw, -1.0 to 1.0
    euclidean: float  # 0.0 to 1.0
    manhattan: float  # 0.0 to 1.0
    composite: float  # 0.0 to 1.0


NEUTRAL_SCORES = SimilarityScores(cosine=0.0, euclidean=0.0, manhattan=0.0, composite=0.0)


@dataclass(frozen=True)
class ClassificationResult:
    label: str
    confidence: float
    similarity: float
    consistency_score: float
    consensus: float = 0.0
    source: ResultSource = "classifier"

    @property
    def is_detected(self) -> bool:
        return self.label != NOT_DETECTED


def not_detected(source: ResultSource = "error") -> ClassificationResult:
    """Empty rejection used when an image could not be scored at all."""
    return ClassificationResult(
        label=NOT_DETECTED,
        confidence=0.0,
        similarity=0.0,
        consistency_score=0.0,
        source=source,
    )
