"""Layer and record dataclasses for the map layer engine.

All positions are stored in GeoJSON convention: (lng, lat).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal, Union

from geoview.config import settings
from geoview.layers.properties import PropertyMap

LayerKind = Literal["geojson", "point", "h3"]
LAYER_KINDS: tuple[str, ...] = ("geojson", "point", "h3")


@dataclass
class PointRecord:
    """A single CSV row resolved to a position.

    Attributes:
        record_id: Ordinal within the owning layer; stable style-cache key.
        position: (lng, lat) in degrees.
        properties: Selected non-coordinate columns.
    """

    record_id: int
    position: tuple[float, float]
    properties: PropertyMap


@dataclass
class HexRecord:
    """A single CSV row resolved to an H3 cell."""

    record_id: int
    hex: str
    properties: PropertyMap


@dataclass
class Feature:
    """A GeoJSON Feature passed through from an imported collection.

    Attributes:
        record_id: Ordinal within the owning layer.
        geometry: The GeoJSON geometry dict, unmodified.
        properties: Selected feature properties.
        feature_id: The Feature's own ``id`` member, if it had one.
    """

    record_id: int
    geometry: dict | None
    properties: PropertyMap
    feature_id: str | int | None = None


Record = Union[PointRecord, HexRecord, Feature]


@dataclass
class ColorMapping:
    """Quantile color classification of a numeric property.

    Attributes:
        column: Property column driving the color.
        num_classes: Number of color classes (3-10).
        breaks: num_classes - 1 ascending break values.
        color_scale: Named color ramp.
    """

    column: str
    num_classes: int
    breaks: list[float] = field(default_factory=list)
    color_scale: str = "YlOrRd"


@dataclass
class SizeMapping:
    """Quantile size classification of a numeric property (point layers)."""

    column: str
    num_classes: int
    breaks: list[float] = field(default_factory=list)
    min_size: float = 2.0
    max_size: float = 20.0


@dataclass
class Layer:
    """A named, styleable collection of records of one kind.

    Attributes:
        layer_id: Session-unique identifier, never reused.
        name: Human-readable display name (usually the file name).
        kind: "geojson", "point" or "h3". Immutable after creation.
        records: Features, PointRecords or HexRecords, in file order.
        visible: Whether the layer is currently rendered.
        color: Base fill color as "#rrggbb".
        opacity: Rendering opacity (0.0 to 1.0).
        point_size: Base point radius in pixels (point layers).
        columns: Detected {"lat": ..., "lng": ...} columns (point layers).
        h3_column: Detected H3 column (h3 layers).
        color_mapping: Optional quantile color classification.
        size_mapping: Optional quantile size classification (point layers).
    """

    layer_id: int
    name: str
    kind: LayerKind
    records: list
    visible: bool = True
    color: str = settings.default_color
    opacity: float = settings.default_opacity
    point_size: float = settings.default_point_size
    columns: dict[str, str] | None = None
    h3_column: str | None = None
    color_mapping: ColorMapping | None = None
    size_mapping: SizeMapping | None = None

    def __post_init__(self) -> None:
        if self.kind not in LAYER_KINDS:
            raise ValueError(f"Unknown layer kind: {self.kind!r} (expected one of {LAYER_KINDS})")

    def __setattr__(self, name, value):
        if name == "kind" and "kind" in self.__dict__ and value != self.__dict__["kind"]:
            raise AttributeError("Layer kind is immutable")
        super().__setattr__(name, value)

    def property_names(self) -> list[str]:
        """Union of property keys across records, in first-seen order."""
        seen: dict[str, None] = {}
        for record in self.records:
            for key in record.properties:
                seen.setdefault(key, None)
        return list(seen)
