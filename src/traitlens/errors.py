"""Error types raised by the trait engine."""

from __future__ import annotations


class TraitlensError(Exception):
    """Base class for engine errors."""


class ExtractorNotReadyError(TraitlensError, RuntimeError):
    """Feature extraction was requested before the backbone finished loading."""


class ExtractorLoadError(TraitlensError, RuntimeError):
    """The embedding backbone could not be constructed."""


class UnknownCategoryError(TraitlensError, KeyError):
    def __init__(self, category: str) -> None:
        super().__init__(category)
        self.category = category

    def __str__(self) -> str:
        return f"Unknown category: {self.category}"


class UnknownTraitValueError(TraitlensError, KeyError):
    def __init__(self, category: str, value: str) -> None:
        super().__init__(f"{category}/{value}")
        self.category = category
        self.value = value

    def __str__(self) -> str:
        return f"Unknown trait value {self.value!r} in category {self.category!r}"
