"""Record builder — turn classified rows into typed layer records.

Point rows with unparseable or out-of-range coordinates and H3 rows with
invalid cell ids are skipped individually; only an entirely empty result
is an error. GeoJSON features pass through with their properties narrowed
to the selected set.
"""

from __future__ import annotations

import json
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from typing import Any

from loguru import logger

from geoview.config import settings
from geoview.layers.classify import Classification, CoordinateColumns, is_valid_h3
from geoview.layers.errors import MalformedInput, NoValidRecords, UnsupportedFormat
from geoview.layers.layer import Feature, HexRecord, PointRecord
from geoview.layers.parsers.csv_import import Table, iter_chunks
from geoview.layers.properties import PropertyMap, parse_number

ProgressCallback = Callable[[float], None]


@dataclass
class BuildResult:
    """Records built from one upload plus the row accounting."""

    records: list = field(default_factory=list)
    valid: int = 0
    skipped: int = 0


def valid_position(lat: float | None, lng: float | None) -> bool:
    return (
        lat is not None
        and lng is not None
        and -90.0 <= lat <= 90.0
        and -180.0 <= lng <= 180.0
    )


def _property_indexes(headers: Sequence[str], selected: Sequence[str], excluded: set[str]) -> list[tuple[int, str]]:
    wanted = set(selected) - excluded
    return [(idx, h) for idx, h in enumerate(headers) if h in wanted]


def _report(on_progress: ProgressCallback | None, done: int, total: int) -> None:
    if on_progress is not None and total:
        on_progress(min(100.0, done / total * 100.0))


def build_point_records(
    table: Table,
    coordinates: CoordinateColumns,
    selected: Sequence[str],
    chunk_size: int | None = None,
    on_progress: ProgressCallback | None = None,
) -> BuildResult:
    """Build point records from a coordinate table.

    Args:
        table: Parsed CSV table.
        coordinates: Detected latitude/longitude columns.
        selected: Columns to keep as properties (coordinate columns are
            always dropped).
        chunk_size: Rows per chunk; ``on_progress`` fires after each.
        on_progress: Called with percent complete (0-100].

    Raises:
        NoValidRecords: If no row has a valid position.
    """
    chunk_size = chunk_size or settings.chunk_size
    lat_idx = table.column_index(coordinates.lat)
    lng_idx = table.column_index(coordinates.lng)
    props = _property_indexes(table.headers, selected, {coordinates.lat, coordinates.lng})

    result = BuildResult()
    total = len(table.rows)
    for start, chunk in iter_chunks(table.rows, chunk_size):
        for row in chunk:
            lat = parse_number(row[lat_idx])
            lng = parse_number(row[lng_idx])
            if not valid_position(lat, lng):
                result.skipped += 1
                continue
            result.records.append(
                PointRecord(
                    record_id=len(result.records),
                    position=(lng, lat),
                    properties=PropertyMap({h: row[idx] for idx, h in props}),
                )
            )
        _report(on_progress, start + len(chunk), total)

    result.valid = len(result.records)
    if result.skipped:
        logger.warning(
            f"Skipped {result.skipped} of {total} rows with invalid coordinates "
            f"({coordinates.lat}/{coordinates.lng})"
        )
    if not result.records:
        raise NoValidRecords(
            f"No valid data points found in CSV: expected numeric "
            f"'{coordinates.lat}' in [-90, 90] and '{coordinates.lng}' in "
            f"[-180, 180] ({result.skipped} rows rejected)",
            skipped=result.skipped,
        )
    return result


def build_hex_records(
    table: Table,
    h3_column: str,
    selected: Sequence[str],
    chunk_size: int | None = None,
    on_progress: ProgressCallback | None = None,
) -> BuildResult:
    """Build H3 cell records, skipping rows whose cell id is invalid.

    Raises:
        NoValidRecords: If no row has a valid H3 cell id.
    """
    chunk_size = chunk_size or settings.chunk_size
    hex_idx = table.column_index(h3_column)
    props = _property_indexes(table.headers, selected, {h3_column})

    result = BuildResult()
    total = len(table.rows)
    for start, chunk in iter_chunks(table.rows, chunk_size):
        for row in chunk:
            cell = row[hex_idx]
            if not is_valid_h3(cell):
                result.skipped += 1
                continue
            result.records.append(
                HexRecord(
                    record_id=len(result.records),
                    hex=cell,
                    properties=PropertyMap({h: row[idx] for idx, h in props}),
                )
            )
        _report(on_progress, start + len(chunk), total)

    result.valid = len(result.records)
    if result.skipped:
        logger.warning(f"Skipped {result.skipped} of {total} rows with invalid H3 cells in '{h3_column}'")
    if not result.records:
        raise NoValidRecords(
            f"No valid H3 cells found in column '{h3_column}': expected H3 "
            f"cell addresses such as '8928308280fffff' ({result.skipped} rows rejected)",
            skipped=result.skipped,
        )
    return result


def build_table_records(
    table: Table,
    classification: Classification,
    chunk_size: int | None = None,
    on_progress: ProgressCallback | None = None,
) -> BuildResult:
    """Dispatch on the classification kind."""
    selected = classification.property_columns()
    if classification.kind == "h3" and classification.h3_column:
        return build_hex_records(table, classification.h3_column, selected, chunk_size, on_progress)
    if classification.kind == "point" and classification.coordinates:
        return build_point_records(table, classification.coordinates, selected, chunk_size, on_progress)
    raise UnsupportedFormat(
        "Could not detect spatial columns: expected a latitude column "
        "(latitude, lat, y) and a longitude column (longitude, lng, long, "
        "lon, x), or an H3 column (hex_id, h3_index, h3, hexagon)"
    )


# ---------------------------------------------------------------------------
# GeoJSON
# ---------------------------------------------------------------------------

def parse_feature_collection(payload: str | dict) -> list[dict]:
    """Parse GeoJSON text (or an already-decoded dict) into raw Feature dicts.

    A lone Feature is treated as a one-feature collection.

    Raises:
        MalformedInput: If the payload is not JSON or not a Feature collection.
    """
    if isinstance(payload, (str, bytes)):
        try:
            data = json.loads(payload)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise MalformedInput(f"Invalid GeoJSON: {e}") from e
    else:
        data = payload

    if not isinstance(data, dict):
        raise MalformedInput("Invalid GeoJSON: expected a FeatureCollection object")

    if data.get("type") == "Feature":
        raw_features = [data]
    elif data.get("type") == "FeatureCollection" and isinstance(data.get("features"), list):
        raw_features = data["features"]
    else:
        raise MalformedInput(
            "Invalid GeoJSON: expected an object with \"type\": \"FeatureCollection\" "
            "and a \"features\" array"
        )

    for idx, raw in enumerate(raw_features):
        if not isinstance(raw, dict):
            raise MalformedInput(f"Invalid GeoJSON: feature {idx} is not an object")
        geometry = raw.get("geometry")
        if geometry is not None and not isinstance(geometry, dict):
            raise MalformedInput(f"Invalid GeoJSON: feature {idx} has a non-object geometry")
    return raw_features


def collect_property_names(raw_features: Sequence[dict]) -> list[str]:
    """Union of property keys across features, in first-seen order."""
    seen: dict[str, None] = {}
    for raw in raw_features:
        properties = raw.get("properties")
        if isinstance(properties, dict):
            for key in properties:
                seen.setdefault(str(key), None)
    return list(seen)


def build_features(raw_features: Sequence[dict], selected: Sequence[str] | None = None) -> BuildResult:
    """Build Feature records, keeping only ``selected`` properties.

    ``selected=None`` keeps every property; an empty selection keeps none.
    Geometries are passed through unmodified.
    """
    wanted = None if selected is None else set(selected)
    result = BuildResult()
    for raw in raw_features:
        properties: Any = raw.get("properties")
        if not isinstance(properties, dict):
            properties = {}
        if wanted is not None:
            properties = {k: v for k, v in properties.items() if k in wanted}
        result.records.append(
            Feature(
                record_id=len(result.records),
                geometry=raw.get("geometry"),
                properties=PropertyMap(properties),
                feature_id=raw.get("id"),
            )
        )
    result.valid = len(result.records)
    return result
