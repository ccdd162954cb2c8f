from __future__ import annotations

import numpy as np
import pytest

from synthetic import BLUE, RED, block, cluster
from traitlens.traits.quality import TrainingQualityAnalyzer
from traitlens.traits.store import Exemplar, ExemplarStore


def exemplars(vectors: list[np.ndarray]) -> tuple[Exemplar, ...]:
    return tuple(Exemplar(vector=v, source_id=f"{idx}.png") for idx, v in enumerate(vectors))


def test_identical_well_populated_value_scores_full_quality() -> None:
    analyzer = TrainingQualityAnalyzer()
    report = analyzer.analyze({"Background": {"Red": exemplars([block(RED)] * 6)}})

    value = report.categories["Background"].values["Red"]
    assert value.consistency == pytest.approx(1.0)
    assert value.sample_score == pytest.approx(1.0)
    assert value.quality == pytest.approx(1.0)
    assert report.overall_quality == pytest.approx(1.0)
    assert any("too similar" in r for r in report.recommendations)


def test_sparse_values_get_sample_recommendations() -> None:
    analyzer = TrainingQualityAnalyzer()
    report = analyzer.analyze(
        {
            "Background": {
                "Red": exemplars(cluster(RED, 2, seed=4)),
                "Blue": exemplars(cluster(BLUE, 4, seed=5)),
            }
        }
    )

    assert "Background/Red: Add more examples (2/3 minimum)" in report.recommendations
    assert "Background/Blue: Add more examples for better accuracy (4/5 recommended)" in report.recommendations
    assert report.total_examples == 6
    red = report.categories["Background"].values["Red"]
    assert red.sample_score == pytest.approx(2 / 6)


def test_inconsistent_examples_are_flagged() -> None:
    analyzer = TrainingQualityAnalyzer()
    mixed = [block(RED), block(RED), block(BLUE), block(BLUE), block(RED)]
    report = analyzer.analyze({"Background": {"Mixed": exemplars(mixed)}})

    assert any("inconsistent" in r for r in report.recommendations)
    assert report.per_category_quality["Background"] < 0.7


def test_empty_category_reports_zero_quality() -> None:
    analyzer = TrainingQualityAnalyzer()
    report = analyzer.analyze({"Hat": {}, "Background": {"Red": exemplars([block(RED)] * 6)}})

    assert report.per_category_quality["Hat"] == 0.0
    assert "Hat: No training examples found" in report.recommendations
    assert report.overall_quality == pytest.approx(0.5)


def test_analysis_does_not_mutate_store() -> None:
    store = ExemplarStore()
    for idx, vector in enumerate(cluster(RED, 3)):
        store.add_exemplar("Background", "Red", vector, f"{idx}.png")
    before = store.snapshot_all()

    TrainingQualityAnalyzer().analyze(store.snapshot_all())

    after = store.snapshot_all()
    assert before.keys() == after.keys()
    assert [e.source_id for e in after["Background"]["Red"]] == ["0.png", "1.png", "2.png"]
    assert store.count() == 3


def test_no_categories_gives_zero_overall() -> None:
    report = TrainingQualityAnalyzer().analyze({})
    assert report.overall_quality == 0.0
    assert report.recommendations == []
