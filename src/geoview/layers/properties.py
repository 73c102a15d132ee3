"""PropertyMap — the per-record attribute mapping.

Values are tagged primitives: a number (int/float), a string, or None.
Anything else arriving from GeoJSON (booleans, nested objects/arrays) is
normalized on the way in, so downstream code only ever sees those three.
The coercion helpers here are the only place number/text conversion
happens; the classifier, style classifier and filter engine all use them.
"""

from __future__ import annotations

import json
import math
import re
from collections.abc import Iterator, Mapping
from typing import Any, Union

PropertyValue = Union[int, float, str, None]

# Leading numeric prefix, same acceptance as a browser's parseFloat().
_NUMBER_PREFIX = re.compile(r"^[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?")


def parse_number(value: Any) -> float | None:
    """Coerce a property value to a float, or None if it isn't numeric.

    Strings are parsed from their leading numeric prefix after trimming,
    so "12.5 km" is 12.5 and "km 12" is not a number. NaN, infinities and
    integers too large for a float are never numbers.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        try:
            number = float(value)
        except OverflowError:
            return None
        return number if math.isfinite(number) else None
    if isinstance(value, str):
        match = _NUMBER_PREFIX.match(value.strip())
        if match is None:
            return None
        try:
            number = float(match.group(0))
        except ValueError:
            return None
        return number if math.isfinite(number) else None
    return None


def to_number(value: Any, default: float = 0.0) -> float:
    """Coerce to float, falling back to ``default`` for non-numeric values."""
    number = parse_number(value)
    return default if number is None else number


def to_text(value: Any) -> str:
    """Coerce to the string form used for text comparison."""
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def is_blank(value: Any) -> bool:
    return value is None or value == ""


def normalize_value(value: Any) -> PropertyValue:
    """Reduce an arbitrary JSON value to a tagged primitive."""
    if value is None or isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        if isinstance(value, float) and not math.isfinite(value):
            return None
        return value
    return json.dumps(value, separators=(",", ":"), sort_keys=True)


class PropertyMap(Mapping):
    """Ordered, read-only mapping of attribute name to tagged value."""

    __slots__ = ("_data",)

    def __init__(self, data: Mapping[str, Any] | None = None) -> None:
        self._data: dict[str, PropertyValue] = {}
        if data:
            for key, value in data.items():
                self._data[str(key)] = normalize_value(value)

    def __getitem__(self, key: str) -> PropertyValue:
        return self._data[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._data)

    def __len__(self) -> int:
        return len(self._data)

    def __repr__(self) -> str:
        return f"PropertyMap({self._data!r})"

    def __eq__(self, other: object) -> bool:
        if isinstance(other, PropertyMap):
            return self._data == other._data
        if isinstance(other, Mapping):
            return self._data == dict(other)
        return NotImplemented

    __hash__ = None  # type: ignore[assignment]

    def number(self, key: str) -> float | None:
        """Numeric value of ``key``, or None if missing/non-numeric."""
        return parse_number(self._data.get(key))

    def text(self, key: str) -> str | None:
        """Text value of ``key``, or None if missing."""
        if key not in self._data:
            return None
        return to_text(self._data[key])

    def select(self, keys) -> PropertyMap:
        """New PropertyMap with only ``keys``, in this map's order."""
        wanted = set(keys)
        return PropertyMap({k: v for k, v in self._data.items() if k in wanted})

    def to_dict(self) -> dict[str, PropertyValue]:
        return dict(self._data)
