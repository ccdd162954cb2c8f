"""Per-category, per-trait-value exemplar storage."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field

import numpy as np

from traitlens.errors import UnknownCategoryError, UnknownTraitValueError
from traitlens.vectors import as_feature_vector

logger = logging.getLogger(__name__)

ExemplarsByValue = dict[str, tuple["Exemplar", ...]]
TrainedTraits = dict[str, ExemplarsByValue]


@dataclass(frozen=True, eq=False)
class Exemplar:
    vector: np.ndarray
    source_id: str
    display_url: str = ""


@dataclass
class _Category:
    values: dict[str, list[Exemplar]] = field(default_factory=dict)


class ExemplarStore:
    """Owns every exemplar and its feature vector.

    Trait values with no exemplars are dropped from the mapping; categories
    may stay empty while they wait for training.
    """

    def __init__(self) -> None:
        self._categories: dict[str, _Category] = {}
        self._lock = threading.Lock()

    def __contains__(self, category: object) -> bool:
        with self._lock:
            return category in self._categories

    def add_category(self, category: str) -> None:
        with self._lock:
            self._categories.setdefault(category, _Category())

    def add_exemplar(
        self,
        category: str,
        value: str,
        vector: np.ndarray,
        source_id: str,
        display_url: str = "",
    ) -> Exemplar:
        exemplar = Exemplar(vector=as_feature_vector(vector), source_id=source_id, display_url=display_url)
        with self._lock:
            entry = self._categories.setdefault(category, _Category())
            entry.values.setdefault(value, []).append(exemplar)
            count = len(entry.values[value])
        logger.debug("Added exemplar %s to %s/%s (%d total)", source_id, category, value, count)
        return exemplar

    def remove_exemplar(self, category: str, value: str, index: int) -> Exemplar:
        with self._lock:
            examples = self._values_for(category, value)
            if not -len(examples) <= index < len(examples):
                raise IndexError(f"Exemplar index {index} out of range for {category}/{value}")
            removed = examples.pop(index)
            self._drop_if_empty(category, value)
        logger.debug("Removed exemplar %s from %s/%s", removed.source_id, category, value)
        return removed

    def remove_exemplar_by_source(self, category: str, value: str, source_id: str) -> Exemplar:
        with self._lock:
            examples = self._values_for(category, value)
            for idx, exemplar in enumerate(examples):
                if exemplar.source_id == source_id:
                    removed = examples.pop(idx)
                    self._drop_if_empty(category, value)
                    break
            else:
                raise KeyError(f"No exemplar with source {source_id!r} in {category}/{value}")
        logger.debug("Removed exemplar %s from %s/%s", source_id, category, value)
        return removed

    def remove_value(self, category: str, value: str) -> int:
        """Delete a trait value and all of its exemplars; returns how many were released."""
        with self._lock:
            examples = self._values_for(category, value)
            released = len(examples)
            examples.clear()
            del self._categories[category].values[value]
        logger.info("Removed trait value %s/%s (%d exemplars)", category, value, released)
        return released

    def remove_category(self, category: str) -> int:
        with self._lock:
            entry = self._categories.pop(category, None)
        if entry is None:
            raise UnknownCategoryError(category)
        released = sum(len(examples) for examples in entry.values.values())
        entry.values.clear()
        logger.info("Removed category %s (%d exemplars)", category, released)
        return released

    def categories(self) -> list[str]:
        with self._lock:
            return list(self._categories)

    def values(self, category: str) -> list[str]:
        with self._lock:
            entry = self._categories.get(category)
            if entry is None:
                raise UnknownCategoryError(category)
            return list(entry.values)

    def snapshot(self, category: str) -> ExemplarsByValue:
        """Immutable view of one category, trait values in insertion order."""
        with self._lock:
            entry = self._categories.get(category)
            if entry is None:
                return {}
            return {value: tuple(examples) for value, examples in entry.values.items()}

    def snapshot_all(self) -> TrainedTraits:
        with self._lock:
            return {
                category: {value: tuple(examples) for value, examples in entry.values.items()}
                for category, entry in self._categories.items()
            }

    def count(self, category: str | None = None) -> int:
        with self._lock:
            if category is None:
                entries = list(self._categories.values())
            else:
                entry = self._categories.get(category)
                entries = [entry] if entry is not None else []
            return sum(len(examples) for e in entries for examples in e.values.values())

    def clear(self) -> None:
        with self._lock:
            for entry in self._categories.values():
                entry.values.clear()
            self._categories.clear()

    def _values_for(self, category: str, value: str) -> list[Exemplar]:
        entry = self._categories.get(category)
        if entry is None:
            raise UnknownCategoryError(category)
        examples = entry.values.get(value)
        if examples is None:
            raise UnknownTraitValueError(category, value)
        return examples

    def _drop_if_empty(self, category: str, value: str) -> None:
        entry = self._categories[category]
        if not entry.values.get(value):
            entry.values.pop(value, None)
