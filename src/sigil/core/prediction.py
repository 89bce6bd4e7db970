# Copyright (c) 2025 Lakshya A Agrawal and the GEPA contributors
# https://github.com/gepa-ai/gepa

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from sigil.core.example import Example

_MISSING = object()


class Prediction:
    """
    Model output overlaid on an optional source example.

    Lookup order is completions, then the example's raw fields, then its
    inputs/labels views. ``metadata`` is kept apart from the data view.
    """

    def __init__(
        self,
        example: Example | Mapping[str, Any] | None = None,
        completions: Mapping[str, Any] | None = None,
        metadata: Mapping[str, Any] | None = None,
    ):
        self.example = Example.from_value(example) if example is not None else None
        self.completions: dict[str, Any] = dict(completions or {})
        self._metadata: dict[str, Any] = dict(metadata or {})

    @classmethod
    def from_example(cls, example: Example | Mapping[str, Any], **metadata: Any) -> Prediction:
        return cls(example=example, metadata=metadata)

    def _lookup(self, key: str) -> Any:
        if key in self.completions:
            return self.completions[key]
        if self.example is None:
            return _MISSING
        if key in self.example:
            return self.example[key]
        inputs = self.example.inputs
        if key in inputs:
            return inputs[key]
        return self.example.labels.get(key, _MISSING)

    def __getitem__(self, key: str) -> Any:
        value = self._lookup(key)
        if value is _MISSING:
            raise KeyError(key)
        return value

    def __setitem__(self, key: str, value: Any) -> None:
        self.completions[key] = value

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and self._lookup(key) is not _MISSING

    def get(self, key: str, default: Any = None) -> Any:
        value = self._lookup(key)
        return default if value is _MISSING else value

    def to_dict(self) -> dict[str, Any]:
        merged = self.example.to_dict() if self.example is not None else {}
        merged.update(self.completions)
        return merged

    def keys(self):
        return self.to_dict().keys()

    def values(self):
        return self.to_dict().values()

    def items(self):
        return self.to_dict().items()

    def to_example(self) -> Example:
        return Example(self.to_dict())

    @property
    def metadata(self) -> dict[str, Any]:
        return dict(self._metadata)

    def set_metadata(self, key: str, value: Any) -> None:
        self._metadata[key] = value

    def __repr__(self) -> str:
        return f"Prediction({self.to_dict()!r}, metadata={self._metadata!r})"
