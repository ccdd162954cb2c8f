"""Engine configuration models and YAML loading."""

from __future__ import annotations

import math
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, Field, model_validator


def _weights_sum_to_one(*weights: float) -> bool:
    return math.isclose(sum(weights), 1.0, abs_tol=1e-6)


class AugmentationSettings(BaseModel):
    brightness: float = 1.0
    contrast: float = 1.0
    saturation: float = 1.0


def _default_augmentations() -> list[AugmentationSettings]:
    return [
        AugmentationSettings(brightness=1.1, contrast=1.1, saturation=1.0),
        AugmentationSettings(brightness=0.9, contrast=1.2, saturation=1.1),
        AugmentationSettings(brightness=1.0, contrast=0.9, saturation=1.2),
    ]


class PreprocessSettings(BaseModel):
    size: int = Field(default=224, ge=8)
    contrast: float = 1.15
    brightness: float = 1.05
    saturation: float = 1.10
    augmentations: list[AugmentationSettings] = Field(default_factory=_default_augmentations)
    factor_min: float = 0.5
    factor_max: float = 2.0


class EmbeddingSettings(BaseModel):
    backbone: str = "resnet18"
    ensemble: bool = True


class SimilaritySettings(BaseModel):
    """Composite blend used by `compute_similarity`; thresholds are calibrated against it."""

    cosine_weight: float = Field(default=0.5, ge=0.0)
    euclidean_weight: float = Field(default=0.3, ge=0.0)
    manhattan_weight: float = Field(default=0.2, ge=0.0)
    epsilon: float = Field(default=1e-8, gt=0.0)

    @model_validator(mode="after")
    def _check_weights(self) -> "SimilaritySettings":
        if not _weights_sum_to_one(self.cosine_weight, self.euclidean_weight, self.manhattan_weight):
            raise ValueError("similarity weights must sum to 1")
        return self


class ScoringSettings(BaseModel):
    metric: Literal["cosine", "composite"] = "cosine"
    max_weight: float = Field(default=0.5, ge=0.0)
    avg_weight: float = Field(default=0.3, ge=0.0)
    consistency_weight: float = Field(default=0.2, ge=0.0)
    consistency_amplification: float = Field(default=2.0, gt=0.0)
    min_consistency: float = Field(default=0.6, ge=0.0, le=1.0)
    min_similarity: float = Field(default=0.70, ge=0.0, le=1.0)
    consensus_decay: float = Field(default=0.8, gt=0.0, le=1.0)

    @model_validator(mode="after")
    def _check_weights(self) -> "ScoringSettings":
        if not _weights_sum_to_one(self.max_weight, self.avg_weight, self.consistency_weight):
            raise ValueError("scoring weights must sum to 1")
        return self


class ThresholdSettings(BaseModel):
    base: float = 0.75
    floor: float = 0.65
    ceiling: float = 0.88
    low_variance: float = 0.06
    low_variance_delta: float = -0.04
    moderate_variance: float = 0.12
    moderate_variance_delta: float = -0.02
    high_variance: float = 0.20
    high_variance_delta: float = 0.05
    well_populated_count: int = 6
    well_populated_delta: float = -0.02
    under_populated_count: int = 3
    under_populated_delta: float = 0.05
    feedback_step: float = 0.005
    feedback_cap: float = 0.02
    feedback_nudge: float = 0.01

    @model_validator(mode="after")
    def _check_band(self) -> "ThresholdSettings":
        if not 0.0 <= self.floor <= self.ceiling <= 1.0:
            raise ValueError("threshold band must satisfy 0 <= floor <= ceiling <= 1")
        if not self.floor <= self.base <= self.ceiling:
            raise ValueError("base threshold must lie inside the clamp band")
        if not self.low_variance <= self.moderate_variance <= self.high_variance:
            raise ValueError("variance tiers must be ordered")
        if not self.low_variance_delta <= self.moderate_variance_delta <= 0.0 <= self.high_variance_delta:
            raise ValueError("variance adjustments must not decrease as variance grows")
        return self


class FeedbackSettings(BaseModel):
    capacity: int = Field(default=100, ge=1)
    override_similarity: float = Field(default=0.80, ge=0.0, le=1.0)
    confidence_bonus: float = Field(default=0.10, ge=0.0)
    confidence_cap: float = Field(default=0.95, ge=0.0, le=1.0)
    snapshot_dir: str | None = None


class QualitySettings(BaseModel):
    consistency_amplification: float = Field(default=1.5, gt=0.0)
    consistency_weight: float = 0.7
    target_count: int = Field(default=6, ge=1)
    minimum_count: int = 3
    recommended_count: int = 5
    inconsistent_variance: float = 0.2
    near_duplicate_similarity: float = 0.95


class BatchSettings(BaseModel):
    size: int = Field(default=4, ge=1)
    yield_seconds: float = Field(default=0.01, ge=0.0)


class EngineSettings(BaseModel):
    preprocess: PreprocessSettings = Field(default_factory=PreprocessSettings)
    embedding: EmbeddingSettings = Field(default_factory=EmbeddingSettings)
    similarity: SimilaritySettings = Field(default_factory=SimilaritySettings)
    scoring: ScoringSettings = Field(default_factory=ScoringSettings)
    thresholds: ThresholdSettings = Field(default_factory=ThresholdSettings)
    feedback: FeedbackSettings = Field(default_factory=FeedbackSettings)
    quality: QualitySettings = Field(default_factory=QualitySettings)
    batch: BatchSettings = Field(default_factory=BatchSettings)

    @model_validator(mode="after")
    def _check_cross_section(self) -> "EngineSettings":
        if self.feedback.override_similarity <= self.scoring.min_similarity:
            raise ValueError("feedback override similarity must be stricter than scoring.min_similarity")
        return self


DEFAULT_CONFIG_PATH = Path("configs/default.yaml")


def load_settings(config_path: str | Path | None = None) -> EngineSettings:
    """Load YAML configuration into typed engine settings."""
    path = Path(config_path) if config_path else DEFAULT_CONFIG_PATH

    if not path.exists():
        return EngineSettings()

    with path.open("r", encoding="utf-8") as f:
        raw: dict[str, Any] = yaml.safe_load(f) or {}

    return EngineSettings.model_validate(raw)
