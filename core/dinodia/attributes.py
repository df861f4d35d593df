"""
Hub Attribute Bag

Hub states carry a heterogeneous JSON attribute mapping. Values are one of
str, int, float, bool, list, dict or None; accessors return None when the
stored value has a different type instead of raising.
"""

from collections.abc import Iterator, Mapping
from typing import Any, Union

AttributeValue = Union[str, int, float, bool, list, dict, None]


class Attributes(Mapping):
    """Read-only view over a hub attribute mapping with typed accessors."""

    def __init__(self, data: Mapping[str, Any] | None = None):
        self._data: dict[str, AttributeValue] = dict(data or {})

    def __getitem__(self, key: str) -> AttributeValue:
        return self._data[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._data)

    def __len__(self) -> int:
        return len(self._data)

    def __repr__(self) -> str:
        return f"Attributes({self._data!r})"

    def string(self, key: str) -> str | None:
        value = self._data.get(key)
        return value if isinstance(value, str) else None

    def number(self, key: str) -> float | None:
        """Numeric attribute as float. Booleans are not numbers here."""
        value = self._data.get(key)
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            return None
        return float(value)

    def boolean(self, key: str) -> bool | None:
        value = self._data.get(key)
        return value if isinstance(value, bool) else None

    def sequence(self, key: str) -> list | None:
        value = self._data.get(key)
        return value if isinstance(value, list) else None

    def mapping(self, key: str) -> dict | None:
        value = self._data.get(key)
        return value if isinstance(value, dict) else None

    def to_dict(self) -> dict[str, AttributeValue]:
        return dict(self._data)
