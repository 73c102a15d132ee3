"""Draw-ready layer output and feature selection.

The renderer asks for each visible layer's filtered items with their
resolved fill color (RGBA bytes) and, for points, radius in pixels. Hover
and click events feed a FeatureSelection: a click locks the selection on a
feature (a second click on the same feature unlocks it), and hovering
only moves the selection while it is unlocked.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from geoview.layers.exporters.geojson import record_to_feature
from geoview.layers.layer import Layer
from geoview.layers.properties import PropertyMap
from geoview.layers.session import MapSession
from geoview.layers.style import RGBA

SELECTED_SCALE = 2.0


@dataclass
class DrawItem:
    record_id: int
    fill_color: RGBA
    properties: PropertyMap
    position: tuple[float, float] | None = None
    hex: str | None = None
    geometry: dict | None = None
    radius: float | None = None


@dataclass
class DrawLayer:
    """One renderer layer: ``id`` is "<kind>-layer-<layer_id>"."""

    id: str
    layer_id: int
    kind: str
    opacity: float
    items: list[DrawItem] = field(default_factory=list)


class FeatureSelection:
    """The currently selected feature (a GeoJSON Feature dict) and lock state."""

    def __init__(self) -> None:
        self.feature: dict | None = None
        self.locked = False

    def hover(self, feature: dict | None) -> None:
        if not self.locked:
            self.feature = feature

    def click(self, feature: dict | None) -> None:
        if feature is None:
            return
        if self.locked and self.is_selected(feature):
            self.clear()
        else:
            self.feature = feature
            self.locked = True

    def clear(self) -> None:
        self.feature = None
        self.locked = False

    def is_selected(self, feature: dict | None) -> bool:
        if self.feature is None or feature is None:
            return False
        return self.feature.get("geometry") == feature.get("geometry")


def draw_layer(session: MapSession, layer: Layer, selection: FeatureSelection | None = None) -> DrawLayer:
    cache = session.style_cache
    out = DrawLayer(
        id=f"{layer.kind}-layer-{layer.layer_id}",
        layer_id=layer.layer_id,
        kind=layer.kind,
        opacity=layer.opacity,
    )
    for record in session.filtered_records(layer.layer_id):
        item = DrawItem(
            record_id=record.record_id,
            fill_color=cache.fill_color(layer, record),
            properties=record.properties,
        )
        if layer.kind == "point":
            item.position = record.position
            item.radius = cache.radius(layer, record)
            if selection is not None and selection.feature is not None \
                    and selection.is_selected(record_to_feature(record)):
                item.radius *= SELECTED_SCALE
        elif layer.kind == "h3":
            item.hex = record.hex
        else:
            item.geometry = record.geometry
        out.items.append(item)
    return out


def draw_layers(session: MapSession, selection: FeatureSelection | None = None) -> list[DrawLayer]:
    """Draw-ready output for every visible layer, in layer order."""
    return [
        draw_layer(session, layer, selection)
        for layer in session.list_layers()
        if layer.visible
    ]


def pick(session: MapSession, layer_id: int, record_id: int) -> dict:
    """GeoJSON Feature for a picked record, for hover/click handling."""
    layer = session.get_layer(layer_id)
    if layer is None:
        raise KeyError(f"Layer not found: {layer_id}")
    if 0 <= record_id < len(layer.records):
        return record_to_feature(layer.records[record_id])
    raise KeyError(f"Record {record_id} not found in layer {layer_id}")
