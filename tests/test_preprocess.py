from __future__ import annotations

from pathlib import Path

import cv2
import numpy as np
import pytest

from synthetic import MeanColorEmbedder, solid
from traitlens.config import EmbeddingSettings, PreprocessSettings
from traitlens.errors import ExtractorLoadError, ExtractorNotReadyError
from traitlens.vision.extractor import FeatureExtractor
from traitlens.vision.preprocess import (
    adjust_image,
    augment_variants,
    list_images,
    load_image,
    normalize_image,
)


def test_normalize_resizes_to_target() -> None:
    settings = PreprocessSettings()
    image = np.random.default_rng(0).integers(0, 255, size=(120, 80, 3), dtype=np.uint8)

    out = normalize_image(image, settings)

    assert out.shape == (224, 224, 3)
    assert out.dtype == np.uint8


def test_normalize_accepts_grayscale_and_alpha() -> None:
    settings = PreprocessSettings(size=16)
    gray = np.full((20, 20), 128, dtype=np.uint8)
    rgba = np.zeros((20, 20, 4), dtype=np.uint8)

    assert normalize_image(gray, settings).shape == (16, 16, 3)
    # Fully transparent pixels become white before enhancement.
    assert normalize_image(rgba, settings).min() > 200


def test_normalize_rejects_bad_shape() -> None:
    with pytest.raises(ValueError):
        normalize_image(np.zeros((4, 4, 2), dtype=np.uint8), PreprocessSettings())


def test_adjust_identity_is_noop() -> None:
    image = np.random.default_rng(1).integers(0, 255, size=(8, 8, 3), dtype=np.uint8)
    assert np.array_equal(adjust_image(image), image)


def test_augment_variants_include_original() -> None:
    settings = PreprocessSettings(size=16)
    normalized = normalize_image(solid((40, 90, 160)), settings)

    variants = augment_variants(normalized, settings)

    assert len(variants) == 1 + len(settings.augmentations)
    assert variants[0] is normalized
    assert all(v.shape == normalized.shape for v in variants)


def test_load_image_and_listing(tmp_path: Path) -> None:
    path = tmp_path / "a.png"
    cv2.imwrite(str(path), solid((10, 20, 30)))
    (tmp_path / "notes.txt").write_text("x", encoding="utf-8")

    assert list_images(tmp_path) == [path]
    assert load_image(path).shape == (32, 32, 3)
    with pytest.raises(ValueError):
        load_image(tmp_path / "missing.png")


def test_extractor_requires_load() -> None:
    extractor = FeatureExtractor()
    assert extractor.is_ready is False
    with pytest.raises(ExtractorNotReadyError):
        extractor.extract(solid((0, 0, 255)))


def test_unsupported_backbone_surfaces_as_load_error() -> None:
    extractor = FeatureExtractor(EmbeddingSettings(backbone="vgg16"))

    with pytest.raises(ExtractorLoadError):
        extractor.load()
    assert extractor.is_ready is False


def test_ensemble_averages_variants_and_renormalizes() -> None:
    embedder = MeanColorEmbedder()
    settings = PreprocessSettings(size=16)
    extractor = FeatureExtractor(EmbeddingSettings(ensemble=True), settings, embedder=embedder)

    vector = extractor.extract(solid((40, 90, 160)))

    assert embedder.calls == 1 + len(settings.augmentations)
    assert float(np.linalg.norm(vector)) == pytest.approx(1.0, abs=1e-5)
    assert vector.flags.writeable is False


def test_single_pass_when_ensemble_disabled() -> None:
    embedder = MeanColorEmbedder()
    extractor = FeatureExtractor(EmbeddingSettings(ensemble=False), PreprocessSettings(size=16), embedder=embedder)

    extractor.extract(solid((40, 90, 160)))

    assert embedder.calls == 1
