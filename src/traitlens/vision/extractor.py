"""Feature extractor adapter: preprocessing plus backbone with an explicit ready state."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import numpy as np

from traitlens.config import EmbeddingSettings, PreprocessSettings
from traitlens.errors import ExtractorLoadError, ExtractorNotReadyError
from traitlens.vectors import as_feature_vector, l2_normalize
from traitlens.vision.preprocess import augment_variants, normalize_image

if TYPE_CHECKING:
    from traitlens.vision.embeddings import Embedder

logger = logging.getLogger(__name__)


class FeatureExtractor:
    """Turns raw BGR images into comparable feature vectors.

    The backbone is built on `load()`; until then `extract` raises
    ExtractorNotReadyError. With `ensemble` enabled the original and each
    augmentation variant are encoded and their mean is renormalized.
    """

    def __init__(
        self,
        embedding: EmbeddingSettings | None = None,
        preprocess: PreprocessSettings | None = None,
        embedder: Embedder | None = None,
    ) -> None:
        self.embedding = embedding or EmbeddingSettings()
        self.preprocess = preprocess or PreprocessSettings()
        self._embedder = embedder

    @property
    def is_ready(self) -> bool:
        return self._embedder is not None

    def load(self) -> None:
        if self._embedder is not None:
            return
        from traitlens.vision.embeddings import build_embedder

        logger.info("Loading %s backbone", self.embedding.backbone)
        try:
            self._embedder = build_embedder(self.embedding.backbone)
        except Exception as exc:
            raise ExtractorLoadError(f"Failed to load backbone {self.embedding.backbone!r}: {exc}") from exc

    def close(self) -> None:
        self._embedder = None

    def extract(self, image: np.ndarray) -> np.ndarray:
        if self._embedder is None:
            raise ExtractorNotReadyError("Feature extractor not loaded; call load() first")

        normalized = normalize_image(image, self.preprocess)
        if not self.embedding.ensemble:
            return as_feature_vector(self._embedder.encode(normalized))

        embeddings = [self._embedder.encode(variant) for variant in augment_variants(normalized, self.preprocess)]
        mean = np.mean(np.stack(embeddings).astype(np.float32), axis=0)
        return as_feature_vector(l2_normalize(mean))
