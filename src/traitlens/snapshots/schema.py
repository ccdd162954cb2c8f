"""Feedback snapshot schema definitions."""

from __future__ import annotations

from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict, Field


class CorrectionRecord(BaseModel):
    model_config = ConfigDict(extra="forbid")

    category: str
    wrong_label: str
    correct_label: str
    source_id: str
    timestamp: datetime


class FeedbackSnapshot(BaseModel):
    """Serializable correction metadata; row i of the vectors file belongs to records[i]."""

    model_config = ConfigDict(extra="forbid")

    version: str = "1"
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    embedding_dim: int = Field(ge=0)
    records: list[CorrectionRecord] = Field(default_factory=list)
    vectors_file: str = "vectors.npy"
