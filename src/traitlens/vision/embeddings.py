"""Pretrained backbone feature extractors."""

from __future__ import annotations

from typing import Protocol

import cv2
import numpy as np
import torch
import torch.nn as nn
from torchvision import models
from torchvision.transforms import Normalize

IMAGENET_MEAN = (0.485, 0.456, 0.406)
IMAGENET_STD = (0.229, 0.224, 0.225)


def choose_torch_device() -> torch.device:
    """Select MPS or CUDA when available, otherwise CPU."""
    if torch.backends.mps.is_available():
        return torch.device("mps")
    if torch.cuda.is_available():
        return torch.device("cuda")
    return torch.device("cpu")


class Embedder(Protocol):
    """Embeddings interface for pluggable backbones."""

    def encode(self, image: np.ndarray) -> np.ndarray:
        """Encode a normalized BGR image into an L2-normalized feature vector."""


class _TorchEmbedder:
    def __init__(self, model: nn.Module, device: torch.device) -> None:
        self.device = device
        self._model = model.to(self.device)
        self._model.eval()
        self._normalize = Normalize(mean=IMAGENET_MEAN, std=IMAGENET_STD)

    def encode(self, image: np.ndarray) -> np.ndarray:
        if image.ndim != 3 or image.shape[2] != 3:
            raise ValueError("Expected BGR image with shape [H, W, 3]")

        rgb = cv2.cvtColor(image, cv2.COLOR_BGR2RGB)
        tensor = torch.from_numpy(np.ascontiguousarray(rgb)).permute(2, 0, 1).float() / 255.0
        batch = self._normalize(tensor).unsqueeze(0).to(self.device)

        with torch.no_grad():
            emb = self._model(batch).flatten().detach().cpu().numpy().astype(np.float32)

        norm = np.linalg.norm(emb)
        if norm > 0:
            emb /= norm
        return emb


class ResNet18Embedder(_TorchEmbedder):
    """Torchvision ResNet18 with the classification head removed (512-d)."""

    def __init__(self, device: torch.device | None = None) -> None:
        try:
            backbone = models.resnet18(weights=models.ResNet18_Weights.DEFAULT)
        except Exception:
            # Offline fallback keeps the pipeline runnable without a weight download.
            backbone = models.resnet18(weights=None)
        model = nn.Sequential(*list(backbone.children())[:-1])
        super().__init__(model, device or choose_torch_device())


class MobileNetV2Embedder(_TorchEmbedder):
    """Torchvision MobileNetV2 convolutional features, global average pooled (1280-d)."""

    def __init__(self, device: torch.device | None = None) -> None:
        try:
            backbone = models.mobilenet_v2(weights=models.MobileNet_V2_Weights.DEFAULT)
        except Exception:
            backbone = models.mobilenet_v2(weights=None)
        model = nn.Sequential(backbone.features, nn.AdaptiveAvgPool2d(1))
        super().__init__(model, device or choose_torch_device())


def build_embedder(backbone: str = "resnet18") -> Embedder:
    """Factory for embedding backbones."""
    normalized = backbone.lower().strip()
    if normalized == "resnet18":
        return ResNet18Embedder()
    if normalized in {"mobilenet_v2", "mobilenet"}:
        return MobileNetV2Embedder()
    raise ValueError(f"Unsupported embedding backbone: {backbone}")
