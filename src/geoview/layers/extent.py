"""Spatial extent — bounding box, center, and a heuristic zoom level.

Zoom is a fixed formula of the larger axis span:

    zoom = clamp(3, 20, -log2(max_span * 2.5))

A zero span (a single point) clamps to 20.
"""

from __future__ import annotations

import math
from collections.abc import Iterable, Sequence
from dataclasses import dataclass

import h3
import numpy as np

MIN_ZOOM = 3.0
MAX_ZOOM = 20.0
SPAN_FACTOR = 2.5


@dataclass(frozen=True)
class Extent:
    """Axis-aligned bounding box in degrees."""

    min_lat: float
    max_lat: float
    min_lng: float
    max_lng: float

    @property
    def center(self) -> tuple[float, float]:
        """(lat, lng) midpoint."""
        return (
            (self.min_lat + self.max_lat) / 2,
            (self.min_lng + self.max_lng) / 2,
        )

    @property
    def zoom(self) -> float:
        return zoom_for_span(max(self.max_lat - self.min_lat, self.max_lng - self.min_lng))


def zoom_for_span(span: float) -> float:
    if span <= 0:
        return MAX_ZOOM
    return min(MAX_ZOOM, max(MIN_ZOOM, -math.log2(span * SPAN_FACTOR)))


def extract_coordinates(geometry: dict | None) -> list[list[float]]:
    """Flatten every [lng, lat, ...] position out of a GeoJSON geometry.

    Handles Point, LineString, Polygon, their Multi- variants, and
    GeometryCollection (recursing into each member). Unknown or empty
    geometries contribute nothing.
    """
    if not isinstance(geometry, dict):
        return []
    if geometry.get("type") == "GeometryCollection":
        coords: list[list[float]] = []
        for member in geometry.get("geometries") or []:
            coords.extend(extract_coordinates(member))
        return coords
    out: list[list[float]] = []
    _flatten(geometry.get("coordinates"), out)
    return out


def _is_coordinate(value) -> bool:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    try:
        return math.isfinite(value)
    except OverflowError:
        return False


def is_position(node) -> bool:
    """True if ``node`` is a [lng, lat, ...] position with finite numeric axes."""
    return (
        isinstance(node, (list, tuple))
        and len(node) >= 2
        and _is_coordinate(node[0])
        and _is_coordinate(node[1])
    )


def _flatten(node, out: list) -> None:
    if not isinstance(node, (list, tuple)) or not node:
        return
    if not isinstance(node[0], (list, tuple)):
        # leaf position; malformed ones (null or text axes) are dropped
        if is_position(node):
            out.append(node)
        return
    for child in node:
        _flatten(child, out)


def extent_of_positions(positions: Iterable[Sequence[float]]) -> Extent | None:
    """Extent of (lng, lat) positions, or None if there are none.

    Positions without two finite numeric axes are ignored.
    """
    arr = np.asarray([(p[0], p[1]) for p in positions if is_position(p)], dtype=float)
    if arr.size == 0:
        return None
    lngs, lats = arr[:, 0], arr[:, 1]
    return Extent(
        min_lat=float(lats.min()),
        max_lat=float(lats.max()),
        min_lng=float(lngs.min()),
        max_lng=float(lngs.max()),
    )


def extent_of_geometries(geometries: Iterable[dict | None]) -> Extent | None:
    coords: list[list[float]] = []
    for geometry in geometries:
        coords.extend(extract_coordinates(geometry))
    return extent_of_positions(coords)


def extent_of_cells(cells: Iterable[str]) -> Extent | None:
    """Extent of H3 cell centers."""
    positions = []
    for cell in cells:
        lat, lng = h3.cell_to_latlng(cell)
        positions.append((lng, lat))
    return extent_of_positions(positions)
