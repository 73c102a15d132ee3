"""Column classification — decide what an uploaded table represents.

A table is either H3 data (a hex-id column whose first value is a valid
H3 cell), point data (a latitude/longitude column pair), or neither.
Every column is also classified numeric or categorical for the styling
and filter pickers. Header matching is case-insensitive and the first
matching header in header order wins.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from typing import Any, Literal

import h3

from geoview.config import settings
from geoview.layers.parsers.csv_import import Table
from geoview.layers.properties import is_blank, parse_number, to_text

H3_COLUMN_NAMES = ("hex_id", "h3_index", "h3", "hexagon")
LAT_COLUMN_NAMES = ("latitude", "lat", "y")
LNG_COLUMN_NAMES = ("longitude", "lng", "long", "lon", "x")

NUMERIC_SHARE = 0.5

ColumnKind = Literal["numeric", "categorical"]


@dataclass(frozen=True)
class CoordinateColumns:
    lat: str
    lng: str

    def to_dict(self) -> dict[str, str]:
        return {"lat": self.lat, "lng": self.lng}


@dataclass
class ColumnInfo:
    """Numeric/categorical classification of one column.

    ``unique_values`` is only set for categorical columns: the distinct
    non-empty values, sorted case-insensitively.
    """

    name: str
    kind: ColumnKind
    unique_values: list[str] | None = None


@dataclass
class Classification:
    """Result of classifying one uploaded table.

    All columns start selected. Pinned columns (the coordinate pair or the
    H3 column) can never be deselected and never become properties.
    """

    headers: list[str]
    kind: Literal["point", "h3"] | None
    coordinates: CoordinateColumns | None = None
    h3_column: str | None = None
    columns: list[ColumnInfo] = field(default_factory=list)
    selected: set[str] = field(default_factory=set)
    pinned: frozenset[str] = frozenset()
    preview: list[list[str]] = field(default_factory=list)

    def toggle(self, column: str) -> None:
        if column in self.pinned or column not in self.headers:
            return
        if column in self.selected:
            self.selected.discard(column)
        else:
            self.selected.add(column)

    def select_all(self) -> None:
        self.selected = set(self.headers)

    def deselect_all(self) -> None:
        self.selected = set(self.pinned)

    def selected_columns(self) -> list[str]:
        """Selected columns in header order."""
        return [h for h in self.headers if h in self.selected]

    def property_columns(self) -> list[str]:
        """Selected columns that become record properties."""
        return [h for h in self.headers if h in self.selected and h not in self.pinned]

    def column(self, name: str) -> ColumnInfo | None:
        for info in self.columns:
            if info.name == name:
                return info
        return None


def _key(header: str) -> str:
    return header.strip().lower()


def is_valid_h3(value: Any) -> bool:
    """True if ``value`` is a valid H3 cell address string."""
    if not isinstance(value, str) or not value.strip():
        return False
    try:
        return bool(h3.is_valid_cell(value.strip()))
    except (TypeError, ValueError):
        return False


def detect_h3_column(headers: Sequence[str]) -> str | None:
    """Find the H3 index column: exact name match first, then substring."""
    for header in headers:
        if _key(header) in H3_COLUMN_NAMES:
            return header
    for header in headers:
        if any(name in _key(header) for name in H3_COLUMN_NAMES):
            return header
    return None


def _exact_axis(headers: Sequence[str], names: tuple[str, ...]) -> str | None:
    for header in headers:
        if _key(header) in names:
            return header
    return None


def _prefixed_axis(headers: Sequence[str], names: tuple[str, ...]) -> str | None:
    for header in headers:
        if any(_key(header).startswith(name + "_") for name in names):
            return header
    return None


def detect_coordinate_columns(headers: Sequence[str]) -> CoordinateColumns | None:
    """Find the latitude/longitude column pair, or None if either is missing.

    Exact names ("lat", "longitude", ...) are tried first. If either axis
    has no exact match, both axes are looked up again by "name_" prefix
    ("lat_wgs84", "lon_wgs84"), so an exact name never pairs with a
    prefixed one.
    """
    lat = _exact_axis(headers, LAT_COLUMN_NAMES)
    lng = _exact_axis(headers, LNG_COLUMN_NAMES)
    if lat is None or lng is None:
        lat = _prefixed_axis(headers, LAT_COLUMN_NAMES)
        lng = _prefixed_axis(headers, LNG_COLUMN_NAMES)
    if lat is None or lng is None or lat == lng:
        return None
    return CoordinateColumns(lat=lat, lng=lng)


def classify_column(name: str, values: Iterable[Any]) -> ColumnInfo:
    """Classify a column as numeric (>= half of non-empty values parse) or categorical."""
    non_empty = [v for v in values if not is_blank(v)]
    numeric = sum(1 for v in non_empty if parse_number(v) is not None)
    if non_empty and numeric / len(non_empty) >= NUMERIC_SHARE:
        return ColumnInfo(name=name, kind="numeric")
    distinct = {to_text(v) for v in non_empty}
    return ColumnInfo(
        name=name,
        kind="categorical",
        unique_values=sorted(distinct, key=lambda s: (s.lower(), s)),
    )


def classify_columns(headers: Sequence[str], rows: Sequence[Sequence[str]]) -> list[ColumnInfo]:
    return [
        classify_column(header, (row[idx] for row in rows))
        for idx, header in enumerate(headers)
    ]


def classify_table(table: Table, sample_size: int | None = None) -> Classification:
    """Classify a parsed table.

    Args:
        table: Parsed CSV table (at least one data row).
        sample_size: Rows sampled for numeric/categorical classification.
            Defaults to ``settings.sample_rows``.

    Returns:
        Classification with ``kind`` None when no spatial columns exist;
        the caller decides how to reject such a table.
    """
    sample_size = sample_size or settings.sample_rows
    sample = table.rows[:sample_size]
    headers = list(table.headers)

    kind = None
    coordinates = None
    h3_column = detect_h3_column(headers)
    if h3_column is not None and sample and is_valid_h3(sample[0][headers.index(h3_column)]):
        kind = "h3"
    else:
        h3_column = None
        coordinates = detect_coordinate_columns(headers)
        if coordinates is not None:
            kind = "point"

    if kind == "h3":
        pinned = frozenset({h3_column})
    elif coordinates is not None:
        pinned = frozenset({coordinates.lat, coordinates.lng})
    else:
        pinned = frozenset()

    return Classification(
        headers=headers,
        kind=kind,
        coordinates=coordinates,
        h3_column=h3_column,
        columns=classify_columns(headers, sample),
        selected=set(headers),
        pinned=pinned,
        preview=[list(row) for row in table.rows[:settings.preview_rows]],
    )
