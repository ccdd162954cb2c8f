"""Feature vector ownership helpers."""

from __future__ import annotations

import numpy as np


def as_feature_vector(values: np.ndarray) -> np.ndarray:
    """Return a read-only float32 1-D copy owned by the caller's container."""
    arr = np.array(values, dtype=np.float32, copy=True).reshape(-1)
    if arr.size == 0:
        raise ValueError("Feature vector must not be empty")
    if not np.all(np.isfinite(arr)):
        raise ValueError("Feature vector contains non-finite values")
    arr.setflags(write=False)
    return arr


def clone_vector(vector: np.ndarray) -> np.ndarray:
    """Independent copy so two containers never alias one buffer."""
    return as_feature_vector(vector)


def l2_normalize(vector: np.ndarray, epsilon: float = 1e-8) -> np.ndarray:
    norm = float(np.linalg.norm(vector))
    return (vector / max(norm, epsilon)).astype(np.float32)
