# Copyright (c) 2025 Lakshya A Agrawal and the GEPA contributors
# https://github.com/gepa-ai/gepa

from __future__ import annotations

from collections.abc import ItemsView, Iterator, KeysView, Mapping, ValuesView
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from pydantic import BaseModel

    from sigil.signature import Signature

INPUT_SUFFIX = "_input"
OUTPUT_SUFFIX = "_output"


class Example:
    """
    Flat key/value record used for training data, demonstrations and traces.

    Keys ending in ``_input`` are inputs and keys ending in ``_output`` are
    labels (with the suffix stripped in both views); every other key is an
    input. The partition is derived from the current fields on each access,
    so it always reflects the latest ``set``.
    """

    def __init__(self, fields: Mapping[str, Any] | None = None, **kwargs: Any):
        self._fields: dict[str, Any] = dict(fields or {})
        self._fields.update(kwargs)

    @classmethod
    def from_value(cls, value: Mapping[str, Any] | Example) -> Example:
        if isinstance(value, Example):
            return value
        return cls(value)

    # Map access

    def get(self, key: str, default: Any = None) -> Any:
        return self._fields.get(key, default)

    def set(self, key: str, value: Any) -> None:
        self._fields[key] = value

    def __getitem__(self, key: str) -> Any:
        return self._fields[key]

    def __setitem__(self, key: str, value: Any) -> None:
        self._fields[key] = value

    def __delitem__(self, key: str) -> None:
        del self._fields[key]

    def __contains__(self, key: object) -> bool:
        return key in self._fields

    def __iter__(self) -> Iterator[str]:
        return iter(self._fields)

    def __len__(self) -> int:
        return len(self._fields)

    def keys(self) -> KeysView[str]:
        return self._fields.keys()

    def values(self) -> ValuesView[Any]:
        return self._fields.values()

    def items(self) -> ItemsView[str, Any]:
        return self._fields.items()

    def to_dict(self) -> dict[str, Any]:
        return dict(self._fields)

    # Partition

    @property
    def inputs(self) -> dict[str, Any]:
        out = {}
        for key, value in self._fields.items():
            if key.endswith(OUTPUT_SUFFIX):
                continue
            if key.endswith(INPUT_SUFFIX):
                key = key[: -len(INPUT_SUFFIX)]
            out[key] = value
        return out

    @property
    def labels(self) -> dict[str, Any]:
        return {
            key[: -len(OUTPUT_SUFFIX)]: value for key, value in self._fields.items() if key.endswith(OUTPUT_SUFFIX)
        }

    def with_inputs(self, **values: Any) -> Example:
        """Return a copy with extra input fields, stored under ``<key>_input``."""
        fields = dict(self._fields)
        for key, value in values.items():
            fields[key if key.endswith(INPUT_SUFFIX) else key + INPUT_SUFFIX] = value
        return Example(fields)

    def typed(self, signature: Signature) -> BaseModel:
        """Validate the declared input fields of ``signature`` into a pydantic model."""
        data = self.inputs
        coerced = signature.coerce_inputs({k: v for k, v in data.items() if k in signature.input_fields})
        return signature.input_model().model_validate(coerced)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Example):
            return NotImplemented
        return self._fields == other._fields

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        return f"Example({self._fields!r})"
