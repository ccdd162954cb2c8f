from __future__ import annotations

import numpy as np
import pytest

from synthetic import BLUE, FAR, RED, block, cluster
from traitlens.config import ScoringSettings
from traitlens.traits.classifier import TraitClassifier, consistency_from_variance
from traitlens.traits.feedback import FeedbackCorrectionStore
from traitlens.traits.store import Exemplar
from traitlens.traits.thresholds import AdaptiveThresholdManager
from traitlens.types import NOT_DETECTED


def exemplars(vectors: list[np.ndarray], prefix: str) -> tuple[Exemplar, ...]:
    return tuple(Exemplar(vector=v, source_id=f"{prefix}{idx}.png") for idx, v in enumerate(vectors))


def background() -> dict[str, tuple[Exemplar, ...]]:
    return {
        "Red": exemplars(cluster(RED, 5, seed=1), "red"),
        "Blue": exemplars(cluster(BLUE, 5, seed=2), "blue"),
    }


def make_classifier(feedback: FeedbackCorrectionStore | None = None) -> tuple[TraitClassifier, AdaptiveThresholdManager]:
    thresholds = AdaptiveThresholdManager()
    return TraitClassifier(thresholds=thresholds, feedback=feedback), thresholds


def test_empty_exemplar_map_returns_none() -> None:
    feedback = FeedbackCorrectionStore()
    feedback.add_correction(block(RED), NOT_DETECTED, "Red", "Background", "a.png")
    classifier, _ = make_classifier(feedback)

    assert classifier.classify(block(RED), {}, "Background") is None
    assert classifier.classify(block(RED), {"Red": ()}, "Background") is None


def test_identical_target_is_detected_above_threshold() -> None:
    classifier, thresholds = make_classifier()
    traits = background()
    thresholds.recompute("Background", traits)
    target = traits["Red"][2].vector

    result = classifier.classify(target, traits, "Background")

    assert result is not None
    assert result.label == "Red"
    assert result.is_detected
    assert result.confidence >= thresholds.get("Background")
    assert result.similarity == pytest.approx(1.0, abs=1e-5)


def test_far_target_is_not_detected_with_scores_populated() -> None:
    classifier, thresholds = make_classifier()
    traits = background()
    thresholds.recompute("Background", traits)

    result = classifier.classify(block(FAR), traits, "Background")

    assert result is not None
    assert result.label == NOT_DETECTED
    assert result.is_detected is False
    assert 0.0 < result.confidence < thresholds.get("Background")
    assert result.similarity < 0.70


def test_perfect_match_always_accepted() -> None:
    classifier, thresholds = make_classifier()
    target = block(RED)
    traits = {"Red": exemplars([target.copy() for _ in range(4)], "red")}
    thresholds.recompute("Background", traits)

    result = classifier.classify(target, traits, "Background")

    assert result is not None
    assert result.label == "Red"
    assert result.consistency_score == pytest.approx(1.0)
    assert result.confidence >= thresholds.get("Background")


def test_ties_resolve_to_first_value_in_order() -> None:
    classifier, _ = make_classifier()
    target = block(RED)
    same = [target.copy() for _ in range(3)]

    first = classifier.classify(target, {"Alpha": exemplars(same, "a"), "Beta": exemplars(same, "b")}, "C")
    second = classifier.classify(target, {"Beta": exemplars(same, "b"), "Alpha": exemplars(same, "a")}, "C")

    assert first is not None and first.label == "Alpha"
    assert second is not None and second.label == "Beta"


def test_feedback_override_short_circuits_scoring() -> None:
    feedback = FeedbackCorrectionStore()
    classifier, _ = make_classifier(feedback)
    traits = background()
    target = traits["Blue"][0].vector

    before = classifier.classify(target, traits, "Background")
    assert before is not None and before.label == "Blue"

    feedback.add_correction(target, "Blue", "Red", "Background", "blue0.png")
    after = classifier.classify(target, traits, "Background")

    assert after is not None
    assert after.label == "Red"
    assert after.source == "feedback"


def test_low_similarity_floor_rejects_even_when_threshold_passes() -> None:
    classifier, _ = make_classifier()
    traits = background()

    result = classifier.classify(block(FAR), traits, "Background", threshold=0.0)

    assert result is not None
    assert result.label == NOT_DETECTED


def test_consistency_floor_rejects_spread_out_exemplars() -> None:
    classifier, _ = make_classifier()
    target = np.array([1.0, 0.0], dtype=np.float32)
    off_axis = np.array([0.3, np.sqrt(1.0 - 0.3**2)], dtype=np.float32)
    # Cosines 1.0, 0.3, 0.3, 0.3: variance ~0.092, consistency ~0.57.
    traits = {"Stripes": exemplars([target.copy(), off_axis, off_axis.copy(), off_axis.copy()], "stripes")}

    result = classifier.classify(target, traits, "Pattern", threshold=0.0)

    assert result is not None
    assert result.label == NOT_DETECTED
    assert result.similarity == pytest.approx(1.0, abs=1e-5)
    assert result.consistency_score < classifier.scoring.min_consistency


def test_composite_metric_accepts_exact_copies() -> None:
    thresholds = AdaptiveThresholdManager()
    classifier = TraitClassifier(thresholds=thresholds, scoring=ScoringSettings(metric="composite"))
    target = block(BLUE)
    traits = {"Blue": exemplars([target.copy() for _ in range(3)], "blue")}

    result = classifier.classify(target, traits, "Background")

    assert result is not None
    assert result.label == "Blue"


def test_consistency_from_variance() -> None:
    assert consistency_from_variance(0.0, 2.0) == 1.0
    assert consistency_from_variance(0.125, 2.0) == pytest.approx(0.5)
    assert consistency_from_variance(10.0, 2.0) == 0.0


def test_score_values_reports_every_non_empty_value() -> None:
    classifier, _ = make_classifier()
    traits = dict(background())
    traits["Green"] = ()

    scores = classifier.score_values(block(RED), traits)

    assert [s.value for s in scores] == ["Red", "Blue"]
    assert scores[0].composite > scores[1].composite
