"""Few-shot visual trait classification."""

from traitlens.config import EngineSettings, load_settings
from traitlens.engine import TraitEngine
from traitlens.types import NOT_DETECTED, ClassificationResult

__all__ = [
    "NOT_DETECTED",
    "ClassificationResult",
    "EngineSettings",
    "TraitEngine",
    "load_settings",
]
