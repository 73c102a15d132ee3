"""Map layer engine — ingestion, classification, styling and filtering.

Supports coordinate CSV, H3-hexagon CSV and GeoJSON (RFC 7946) input.
"""

from geoview.layers.errors import (
    InvalidConfiguration,
    LayerError,
    MalformedInput,
    NoValidRecords,
    UnsupportedFormat,
)
from geoview.layers.layer import (
    ColorMapping,
    Feature,
    HexRecord,
    Layer,
    PointRecord,
    SizeMapping,
)
from geoview.layers.properties import PropertyMap
from geoview.layers.session import MapSession, ViewState

__all__ = [
    "ColorMapping",
    "Feature",
    "HexRecord",
    "InvalidConfiguration",
    "Layer",
    "LayerError",
    "MalformedInput",
    "MapSession",
    "NoValidRecords",
    "PointRecord",
    "PropertyMap",
    "SizeMapping",
    "UnsupportedFormat",
    "ViewState",
]
