from __future__ import annotations

import json
from pathlib import Path

import cv2
import pytest
from typer.testing import CliRunner

from synthetic import MeanColorEmbedder, solid
from traitlens.cli import app, train_from_directory
from traitlens.engine import TraitEngine
from traitlens.vision.extractor import FeatureExtractor


def write_tree(root: Path) -> Path:
    train = root / "train"
    layout = {
        ("Background", "Red"): [(0, 0, 255), (0, 10, 240), (5, 0, 250)],
        ("Background", "Blue"): [(255, 0, 0), (240, 10, 0), (250, 0, 5)],
    }
    for (category, value), colors in layout.items():
        folder = train / category / value
        folder.mkdir(parents=True)
        for idx, color in enumerate(colors):
            cv2.imwrite(str(folder / f"{value.lower()}{idx}.png"), solid(color))
    (train / "Hat").mkdir()
    return train


@pytest.fixture
def fake_backbone(monkeypatch: pytest.MonkeyPatch) -> None:
    def load(self: FeatureExtractor) -> None:
        self._embedder = MeanColorEmbedder()

    monkeypatch.setattr(FeatureExtractor, "load", load)


def test_train_from_directory(tmp_path: Path, extractor: FeatureExtractor) -> None:
    train = write_tree(tmp_path)
    engine = TraitEngine.create(extractor=extractor)

    assert train_from_directory(engine, train) == 6
    assert engine.store.categories() == ["Background", "Hat"]
    assert engine.store.values("Background") == ["Blue", "Red"]


def test_classify_command_writes_labels_and_rarity(tmp_path: Path, fake_backbone: None) -> None:
    train = write_tree(tmp_path)
    images = tmp_path / "images"
    images.mkdir()
    cv2.imwrite(str(images / "a.png"), solid((0, 0, 250)))
    cv2.imwrite(str(images / "b.png"), solid((250, 0, 0)))
    cv2.imwrite(str(images / "c.png"), solid((0, 250, 0)))
    out = tmp_path / "out" / "labels.json"

    result = CliRunner().invoke(
        app,
        ["classify", str(train), str(images), "--config", str(tmp_path / "none.yaml"), "--out", str(out)],
    )

    assert result.exit_code == 0, result.output
    payload = json.loads(out.read_text(encoding="utf-8"))
    attributes = {item["source"]: item["attributes"] for item in payload["images"]}
    assert attributes == {"a.png": {"Background": "Red"}, "b.png": {"Background": "Blue"}, "c.png": {}}
    assert payload["rarity"] == {"Background": {"Red": "33.3%", "Blue": "33.3%"}}


def test_analyze_command_reports_quality(tmp_path: Path, fake_backbone: None) -> None:
    train = write_tree(tmp_path)

    result = CliRunner().invoke(app, ["analyze", str(train), "--config", str(tmp_path / "none.yaml")])

    assert result.exit_code == 0, result.output
    assert '"overall_quality"' in result.output
    assert "Hat: No training examples found" in result.output
