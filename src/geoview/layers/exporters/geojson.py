"""Export Layer to GeoJSON dict (RFC 7946 compliant).

GeoJSON coordinates are [lng, lat] (already the internal storage
convention). Point records become Point features and H3 records become
the Polygon outline of their cell.
"""

from __future__ import annotations

from collections.abc import Iterable

import h3

from geoview.layers.layer import Feature, HexRecord, Layer, PointRecord


def export_geojson(layer: Layer, records: Iterable | None = None) -> dict:
    """Export a Layer to a GeoJSON FeatureCollection dict.

    Args:
        layer: The Layer to export.
        records: Subset of the layer's records (e.g. filtered); defaults to
            all of them.

    Returns:
        Dict representing a valid GeoJSON FeatureCollection.
    """
    records = layer.records if records is None else records
    return {
        "type": "FeatureCollection",
        "features": [record_to_feature(record) for record in records],
    }


def cell_polygon(cell: str) -> dict:
    """Closed [lng, lat] Polygon geometry of an H3 cell."""
    ring = [[lng, lat] for lat, lng in h3.cell_to_boundary(cell)]
    ring.append(list(ring[0]))
    return {"type": "Polygon", "coordinates": [ring]}


def record_to_feature(record) -> dict:
    """Convert any layer record to a GeoJSON Feature dict."""
    if isinstance(record, PointRecord):
        geometry = {"type": "Point", "coordinates": list(record.position)}
    elif isinstance(record, HexRecord):
        geometry = cell_polygon(record.hex)
    elif isinstance(record, Feature):
        geometry = record.geometry
    else:
        raise TypeError(f"Not a layer record: {record!r}")

    feature = {
        "type": "Feature",
        "geometry": geometry,
        "properties": record.properties.to_dict(),
    }
    if isinstance(record, Feature) and record.feature_id is not None:
        feature["id"] = record.feature_id
    elif isinstance(record, HexRecord):
        feature["id"] = record.hex
    return feature
