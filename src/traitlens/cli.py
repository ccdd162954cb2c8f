"""Traitlens command line interface."""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Any

import typer

from traitlens.config import load_settings
from traitlens.engine import TraitEngine
from traitlens.rarity import detected_attributes, rarity_table, summarize_detections
from traitlens.vision.preprocess import list_images

app = typer.Typer(help="Traitlens few-shot trait classifier", no_args_is_help=True)

logger = logging.getLogger(__name__)


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(name)s %(levelname)s: %(message)s",
    )


def train_from_directory(engine: TraitEngine, train_root: Path) -> int:
    """Load `<category>/<value>/<image>` training images; returns exemplars added."""
    added = 0
    for category_dir in sorted(p for p in train_root.iterdir() if p.is_dir()):
        engine.add_category(category_dir.name)
        for value_dir in sorted(p for p in category_dir.iterdir() if p.is_dir()):
            for image_path in list_images(value_dir):
                engine.add_training_image(category_dir.name, value_dir.name, image_path, source_id=image_path.name)
                added += 1
    return added


def _emit(payload: dict[str, Any], out: Path | None) -> None:
    text = json.dumps(payload, indent=2)
    if out is None:
        typer.echo(text)
        return
    out.parent.mkdir(parents=True, exist_ok=True)
    out.write_text(text + "\n", encoding="utf-8")
    typer.echo(f"Wrote {out}")


@app.command("analyze")
def analyze(
    train_root: Path = typer.Argument(..., exists=True, file_okay=False, help="Training root: <category>/<value>/<image>"),
    config: Path = typer.Option(Path("configs/default.yaml"), help="Engine config yaml"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
) -> None:
    """Report training quality and per-category thresholds."""
    _configure_logging(verbose)
    with TraitEngine.create(load_settings(config)) as engine:
        train_from_directory(engine, train_root)
        report = engine.analyze_training()
        payload = {
            "overall_quality": round(report.overall_quality, 4),
            "total_examples": report.total_examples,
            "categories": {
                name: {
                    "quality": round(cat.quality, 4),
                    "threshold": round(engine.threshold(name), 4),
                    "values": {value: vq.count for value, vq in cat.values.items()},
                }
                for name, cat in report.categories.items()
            },
            "recommendations": report.recommendations,
        }
    _emit(payload, None)


@app.command("classify")
def classify(
    train_root: Path = typer.Argument(..., exists=True, file_okay=False, help="Training root: <category>/<value>/<image>"),
    images: Path = typer.Argument(..., exists=True, file_okay=False, help="Folder of images to label"),
    config: Path = typer.Option(Path("configs/default.yaml"), help="Engine config yaml"),
    out: Path | None = typer.Option(None, help="Write JSON here instead of stdout"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
) -> None:
    """Label every image in a folder and compute per-label rarity."""
    _configure_logging(verbose)
    with TraitEngine.create(load_settings(config)) as engine:
        added = train_from_directory(engine, train_root)
        logger.info("Trained %d exemplars across %d categories", added, len(engine.store.categories()))

        paths = list_images(images)

        def progress(done: int, total: int) -> None:
            logger.info("Classified %d/%d", done, total)

        batch = asyncio.run(engine.classify_batch([(p.name, p) for p in paths], on_progress=progress))

    records = [detected_attributes(item.results) for item in batch]
    summary = summarize_detections([item.results for item in batch])
    payload = {
        "images": [
            {
                "source": item.source_id,
                "attributes": detected_attributes(item.results),
                "confidence": {cat: round(r.confidence, 4) for cat, r in item.results.items()},
                "error": item.error,
            }
            for item in batch
        ],
        "rarity": rarity_table(records),
        "summary": {
            "mean_confidence": round(summary.mean_confidence, 4),
            "detection_rate": round(summary.detection_rate, 4),
            "low_confidence_count": summary.low_confidence_count,
            "recommendations": summary.recommendations,
        },
    }
    _emit(payload, out)


if __name__ == "__main__":
    app()
