"""Style classification — quantile breaks, color ramps, and point sizes.

Breaks for N classes are the values at index floor((i / N) * count) of the
sorted column values, i = 1..N-1. A value falls in the first bucket whose
break it does not exceed; anything above the last break lands in bucket
N-1. Resolved colors/sizes are memoized per (layer id, record id) in a
StyleCache that is invalidated whenever any style input of the layer
changes.
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Sequence
from functools import lru_cache
from typing import Any

import numpy as np
from loguru import logger

from geoview.layers.classify import classify_column
from geoview.layers.layer import ColorMapping, Layer, SizeMapping
from geoview.layers.properties import parse_number, to_number

MIN_CLASSES = 3
MAX_CLASSES = 10

COLOR_SCALES: dict[str, list[str]] = {
    "Reds": ["#fee5d9", "#fcae91", "#fb6a4a", "#de2d26", "#a50f15"],
    "Blues": ["#eff3ff", "#bdd7e7", "#6baed6", "#3182bd", "#08519c"],
    "Greens": ["#edf8e9", "#bae4b3", "#74c476", "#31a354", "#006d2c"],
    "Greys": ["#f7f7f7", "#cccccc", "#969696", "#636363", "#252525"],
    "YlGnBu": ["#ffffd9", "#c7e9b4", "#7fcdbb", "#41b6c4", "#225ea8"],
    "YlOrRd": ["#ffffb2", "#fecc5c", "#fd8d3c", "#f03b20", "#bd0026"],
    "PuBuGn": ["#f6eff7", "#bdc9e1", "#67a9cf", "#1c9099", "#016c59"],
    "RdPu": ["#feebe2", "#fbb4b9", "#f768a1", "#c51b8a", "#7a0177"],
}

_HEX_COLOR = re.compile(r"^#[0-9a-fA-F]{6}$")

RGBA = tuple[int, int, int, int]


def check_num_classes(num_classes: int) -> None:
    if not MIN_CLASSES <= num_classes <= MAX_CLASSES:
        raise ValueError(f"num_classes must be between {MIN_CLASSES} and {MAX_CLASSES}, got {num_classes}")


def is_hex_color(color: Any) -> bool:
    return isinstance(color, str) and bool(_HEX_COLOR.match(color))


def hex_to_rgb(color: str) -> tuple[int, int, int]:
    if not is_hex_color(color):
        raise ValueError(f"Expected a color like '#ff0000', got {color!r}")
    return int(color[1:3], 16), int(color[3:5], 16), int(color[5:7], 16)


def alpha_byte(opacity: float) -> int:
    return int(round(opacity * 255))


@lru_cache(maxsize=None)
def ramp_colors(scale: str, num_classes: int) -> tuple[tuple[int, int, int], ...]:
    """``num_classes`` RGB colors spread evenly along a named ramp."""
    if scale not in COLOR_SCALES:
        raise ValueError(f"Unknown color scale {scale!r}; expected one of {sorted(COLOR_SCALES)}")
    anchors = np.asarray([hex_to_rgb(c) for c in COLOR_SCALES[scale]], dtype=float)
    if num_classes == len(anchors):
        return tuple(tuple(int(v) for v in row) for row in anchors)
    stops = np.linspace(0, len(anchors) - 1, num_classes)
    positions = np.arange(len(anchors))
    channels = [np.interp(stops, positions, anchors[:, c]) for c in range(3)]
    return tuple(
        (int(round(r)), int(round(g)), int(round(b)))
        for r, g, b in zip(*channels)
    )


# ---------------------------------------------------------------------------
# Breaks and buckets
# ---------------------------------------------------------------------------

def quantile_breaks(values: Iterable[Any], num_classes: int) -> list[float]:
    """Quantile breaks over ``values``; non-numeric/missing values count as 0.

    Returns an empty list when there are no values.
    """
    check_num_classes(num_classes)
    ordered = np.sort(np.asarray([to_number(v) for v in values], dtype=float))
    count = len(ordered)
    if count == 0:
        return []
    idx = np.floor(np.arange(1, num_classes) / num_classes * count).astype(int)
    idx = np.clip(idx, 0, count - 1)
    return [float(v) for v in ordered[idx]]


def bucket_index(value: float, breaks: Sequence[float], num_classes: int) -> int:
    for i, brk in enumerate(breaks):
        if value <= brk:
            return i
    return num_classes - 1


def size_for_bucket(bucket: int, mapping: SizeMapping) -> float:
    fraction = bucket / (mapping.num_classes - 1)
    return mapping.min_size + (mapping.max_size - mapping.min_size) * fraction


def color_for_value(value: float, mapping: ColorMapping, base_color: str) -> tuple[int, int, int]:
    if not mapping.breaks:
        return hex_to_rgb(base_color)
    colors = ramp_colors(mapping.color_scale, mapping.num_classes)
    return colors[bucket_index(value, mapping.breaks, mapping.num_classes)]


def size_for_value(value: float, mapping: SizeMapping) -> float:
    if not mapping.breaks:
        return mapping.min_size
    return size_for_bucket(bucket_index(value, mapping.breaks, mapping.num_classes), mapping)


def numeric_columns(records: Iterable[Any]) -> list[str]:
    """Property columns where at least half the non-empty values are numeric."""
    values: dict[str, list[Any]] = {}
    for record in records:
        for key, value in record.properties.items():
            values.setdefault(key, []).append(value)
    return [key for key, vals in values.items() if classify_column(key, vals).kind == "numeric"]


# ---------------------------------------------------------------------------
# Resolution and memoization
# ---------------------------------------------------------------------------

def style_fingerprint(layer: Layer) -> tuple:
    """Every layer input that affects a resolved color or size."""
    cm = layer.color_mapping
    sm = layer.size_mapping
    return (
        layer.color,
        layer.opacity,
        layer.point_size,
        None if cm is None else (cm.column, cm.num_classes, tuple(cm.breaks), cm.color_scale),
        None if sm is None else (sm.column, sm.num_classes, tuple(sm.breaks), sm.min_size, sm.max_size),
    )


def resolve_fill_color(layer: Layer, record: Any) -> RGBA:
    """RGBA fill for one record; unmapped or non-numeric values use the base color."""
    alpha = alpha_byte(layer.opacity)
    mapping = layer.color_mapping
    if mapping is not None and mapping.column:
        value = parse_number(record.properties.get(mapping.column))
        if value is not None:
            r, g, b = color_for_value(value, mapping, layer.color)
            return (r, g, b, alpha)
    r, g, b = hex_to_rgb(layer.color)
    return (r, g, b, alpha)


def resolve_radius(layer: Layer, record: Any) -> float:
    """Pixel radius for one point record."""
    mapping = layer.size_mapping
    if mapping is not None and mapping.column:
        value = parse_number(record.properties.get(mapping.column))
        if value is not None:
            return size_for_value(value, mapping)
    return layer.point_size


class StyleCache:
    """Memoized fill colors and radii keyed by (layer id, record id).

    Each layer's entries are tied to the layer's style fingerprint;
    ``sync`` drops them as soon as the fingerprint changes, and
    ``invalidate`` drops them explicitly.
    """

    def __init__(self) -> None:
        self._colors: dict[tuple[int, int], RGBA] = {}
        self._sizes: dict[tuple[int, int], float] = {}
        self._fingerprints: dict[int, tuple] = {}

    def invalidate(self, layer_id: int) -> None:
        self._colors = {k: v for k, v in self._colors.items() if k[0] != layer_id}
        self._sizes = {k: v for k, v in self._sizes.items() if k[0] != layer_id}
        self._fingerprints.pop(layer_id, None)
        logger.debug(f"Style cache invalidated for layer {layer_id}")

    def clear(self) -> None:
        self._colors.clear()
        self._sizes.clear()
        self._fingerprints.clear()

    def sync(self, layer: Layer) -> bool:
        """Invalidate ``layer`` if its style inputs changed. Returns True if it did."""
        fingerprint = style_fingerprint(layer)
        cached = self._fingerprints.get(layer.layer_id)
        if cached == fingerprint:
            return False
        if cached is not None:
            self.invalidate(layer.layer_id)
        self._fingerprints[layer.layer_id] = fingerprint
        return cached is not None

    def fill_color(self, layer: Layer, record: Any) -> RGBA:
        self.sync(layer)
        key = (layer.layer_id, record.record_id)
        color = self._colors.get(key)
        if color is None:
            color = resolve_fill_color(layer, record)
            self._colors[key] = color
        return color

    def radius(self, layer: Layer, record: Any) -> float:
        self.sync(layer)
        key = (layer.layer_id, record.record_id)
        size = self._sizes.get(key)
        if size is None:
            size = resolve_radius(layer, record)
            self._sizes[key] = size
        return size

    def __len__(self) -> int:
        return len(self._colors) + len(self._sizes)

    def cached(self, layer_id: int, record_id: int) -> bool:
        key = (layer_id, record_id)
        return key in self._colors or key in self._sizes
