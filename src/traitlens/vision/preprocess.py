"""Image loading, normalization and augmentation before feature extraction."""

from __future__ import annotations

from pathlib import Path

import cv2
import numpy as np

from traitlens.config import AugmentationSettings, PreprocessSettings

IMAGE_SUFFIXES = {".jpg", ".jpeg", ".png", ".bmp", ".webp"}


def load_image(path: str | Path) -> np.ndarray:
    """Read an image file as a BGR uint8 array."""
    image = cv2.imread(str(path), cv2.IMREAD_COLOR)
    if image is None:
        raise ValueError(f"Could not decode image: {path}")
    return image


def list_images(folder: str | Path) -> list[Path]:
    root = Path(folder)
    if not root.exists():
        return []
    return sorted(p for p in root.iterdir() if p.is_file() and p.suffix.lower() in IMAGE_SUFFIXES)


def _ensure_bgr(image: np.ndarray) -> np.ndarray:
    if image.ndim == 2:
        return cv2.cvtColor(image, cv2.COLOR_GRAY2BGR)
    if image.ndim == 3 and image.shape[2] == 4:
        # Transparent regions are composited onto white.
        bgr = image[:, :, :3].astype(np.float32)
        alpha = image[:, :, 3:4].astype(np.float32) / 255.0
        white = np.full_like(bgr, 255.0)
        return (bgr * alpha + white * (1.0 - alpha)).astype(np.uint8)
    if image.ndim != 3 or image.shape[2] != 3:
        raise ValueError("Expected BGR image with shape [H, W, 3]")
    return image


def adjust_image(
    image: np.ndarray,
    brightness: float = 1.0,
    contrast: float = 1.0,
    saturation: float = 1.0,
) -> np.ndarray:
    """Apply multiplicative brightness, contrast and saturation factors."""
    out = image.astype(np.float32) * brightness
    if contrast != 1.0:
        mean = float(out.mean())
        out = (out - mean) * contrast + mean
    out = np.clip(np.rint(out), 0, 255).astype(np.uint8)

    if saturation != 1.0:
        hsv = cv2.cvtColor(out, cv2.COLOR_BGR2HSV).astype(np.float32)
        hsv[:, :, 1] = np.clip(hsv[:, :, 1] * saturation, 0, 255)
        out = cv2.cvtColor(hsv.astype(np.uint8), cv2.COLOR_HSV2BGR)
    return out


def normalize_image(image: np.ndarray, settings: PreprocessSettings) -> np.ndarray:
    """Resize to the backbone input size and apply the standard colour enhancement."""
    bgr = _ensure_bgr(image)
    resized = cv2.resize(bgr, (settings.size, settings.size), interpolation=cv2.INTER_AREA)
    return adjust_image(
        resized,
        brightness=settings.brightness,
        contrast=settings.contrast,
        saturation=settings.saturation,
    )


def _clamp_factor(value: float, settings: PreprocessSettings) -> float:
    return max(settings.factor_min, min(settings.factor_max, value))


def augment_variants(normalized: np.ndarray, settings: PreprocessSettings) -> list[np.ndarray]:
    """Original normalized image followed by one jittered copy per configured augmentation."""
    variants = [normalized]
    for aug in settings.augmentations:
        variants.append(apply_augmentation(normalized, aug, settings))
    return variants


def apply_augmentation(
    image: np.ndarray,
    aug: AugmentationSettings,
    settings: PreprocessSettings,
) -> np.ndarray:
    return adjust_image(
        image,
        brightness=_clamp_factor(aug.brightness, settings),
        contrast=_clamp_factor(aug.contrast, settings),
        saturation=_clamp_factor(aug.saturation, settings),
    )
