"""Data loader protocols and concrete helpers for training and evaluation sets."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any, Protocol, Sequence, runtime_checkable

from sigil.core.example import Example

ExampleLike = Example | Mapping[str, Any]


@runtime_checkable
class DataLoader(Protocol):
    """Minimal interface for retrieving examples keyed by integer ids."""

    def all_ids(self) -> Sequence[int]:
        """Return the ordered universe of ids currently available."""
        ...

    def fetch(self, ids: Sequence[int]) -> list[Example]:
        """Materialise the examples corresponding to `ids`, preserving order."""
        ...

    def __len__(self) -> int: ...


class ListDataLoader:
    """In-memory loader backed by a list; mappings are wrapped as Examples."""

    def __init__(self, items: Sequence[ExampleLike]):
        self.items = [Example.from_value(item) for item in items]

    def all_ids(self) -> Sequence[int]:
        return list(range(len(self.items)))

    def fetch(self, ids: Sequence[int]) -> list[Example]:
        return [self.items[data_id] for data_id in ids]

    def __len__(self) -> int:
        return len(self.items)

    def add_items(self, items: Sequence[ExampleLike]) -> None:
        self.items.extend(Example.from_value(item) for item in items)


def ensure_loader(data: Sequence[ExampleLike] | DataLoader | None) -> DataLoader:
    if data is None:
        return ListDataLoader([])
    if isinstance(data, DataLoader):
        return data
    return ListDataLoader(data)


def load_examples(data: Sequence[ExampleLike] | DataLoader | None) -> list[Example]:
    loader = ensure_loader(data)
    return [Example.from_value(item) for item in loader.fetch(loader.all_ids())]
