from __future__ import annotations

import pytest

from synthetic import MeanColorEmbedder
from traitlens.config import EmbeddingSettings, PreprocessSettings
from traitlens.vision.extractor import FeatureExtractor


@pytest.fixture
def embedder() -> MeanColorEmbedder:
    return MeanColorEmbedder()


@pytest.fixture
def extractor(embedder: MeanColorEmbedder) -> FeatureExtractor:
    return FeatureExtractor(
        EmbeddingSettings(ensemble=True),
        PreprocessSettings(size=32),
        embedder=embedder,
    )
