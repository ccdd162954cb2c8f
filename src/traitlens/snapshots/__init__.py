"""Optional on-disk snapshots of the feedback correction memory."""

from traitlens.snapshots.io import load_feedback, save_feedback
from traitlens.snapshots.schema import CorrectionRecord, FeedbackSnapshot

__all__ = [
    "CorrectionRecord",
    "FeedbackSnapshot",
    "load_feedback",
    "save_feedback",
]
