"""Feedback snapshot persistence helpers."""

from __future__ import annotations

import json
from pathlib import Path

import numpy as np

from traitlens.snapshots.schema import CorrectionRecord, FeedbackSnapshot
from traitlens.traits.feedback import FeedbackCorrection, FeedbackCorrectionStore

SNAPSHOT_FILENAME = "corrections.json"


def save_feedback(snapshot_dir: str | Path, store: FeedbackCorrectionStore) -> FeedbackSnapshot:
    """Save every stored correction as metadata JSON + one vectors matrix."""
    root = Path(snapshot_dir)
    root.mkdir(parents=True, exist_ok=True)

    corrections: list[FeedbackCorrection] = []
    for category in store.stats():
        corrections.extend(store.corrections(category))

    dims = {c.vector.shape[0] for c in corrections}
    if len(dims) > 1:
        raise ValueError(f"Corrections have mixed embedding dimensions: {sorted(dims)}")

    snapshot = FeedbackSnapshot(
        embedding_dim=dims.pop() if dims else 0,
        records=[
            CorrectionRecord(
                category=c.category,
                wrong_label=c.wrong_label,
                correct_label=c.correct_label,
                source_id=c.source_id,
                timestamp=c.timestamp,
            )
            for c in corrections
        ],
    )
    vectors = np.stack([c.vector for c in corrections]) if corrections else np.zeros((0, 0), dtype=np.float32)
    np.save(root / snapshot.vectors_file, vectors)

    with (root / SNAPSHOT_FILENAME).open("w", encoding="utf-8") as f:
        json.dump(snapshot.model_dump(mode="json"), f, indent=2)
    return snapshot


def load_feedback(snapshot_dir: str | Path, store: FeedbackCorrectionStore) -> int:
    """Replay a saved snapshot into `store`; returns the number of corrections loaded."""
    root = Path(snapshot_dir)
    snapshot_path = root / SNAPSHOT_FILENAME
    if not snapshot_path.exists():
        return 0

    with snapshot_path.open("r", encoding="utf-8") as f:
        raw = json.load(f)

    snapshot = FeedbackSnapshot.model_validate(raw)
    vectors = np.load(root / snapshot.vectors_file)
    if vectors.shape[0] != len(snapshot.records):
        raise ValueError(
            f"Snapshot has {len(snapshot.records)} records but {vectors.shape[0]} vectors"
        )

    for record, vector in zip(snapshot.records, vectors):
        store.add_correction(
            vector,
            wrong_label=record.wrong_label,
            correct_label=record.correct_label,
            category=record.category,
            source_id=record.source_id,
            timestamp=record.timestamp,
        )
    return len(snapshot.records)
