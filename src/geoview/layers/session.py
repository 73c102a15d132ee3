"""MapSession — the aggregate that owns every layer, filter and the view.

Manages the lifecycle of Layer objects: ingest from CSV/GeoJSON text,
remove, get, list, restyle, filter, and visibility control. Nothing is
global; callers hold a session and pass it around explicitly.

Ingestion is atomic: a layer is only registered (and only consumes an id)
after its whole payload has been built, so a failed upload leaves the
session exactly as it was.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any

import h3
from loguru import logger

from geoview.config import settings
from geoview.layers.classify import Classification, classify_table
from geoview.layers.errors import UnsupportedFormat
from geoview.layers.extent import (
    Extent,
    extent_of_cells,
    extent_of_geometries,
    extent_of_positions,
)
from geoview.layers.filters import ColumnSummary, FilterDescriptor, apply_filters, summarize_columns
from geoview.layers.layer import ColorMapping, Layer, SizeMapping
from geoview.layers.parsers.csv_import import parse_table
from geoview.layers.records import (
    ProgressCallback,
    build_features,
    build_table_records,
    collect_property_names,
    parse_feature_collection,
)
from geoview.layers.style import (
    COLOR_SCALES,
    StyleCache,
    check_num_classes,
    hex_to_rgb,
    numeric_columns,
    quantile_breaks,
)


@dataclass
class ViewState:
    """Map camera: center and zoom."""

    latitude: float = settings.initial_latitude
    longitude: float = settings.initial_longitude
    zoom: float = settings.initial_zoom

    @classmethod
    def from_extent(cls, extent: Extent) -> ViewState:
        lat, lng = extent.center
        return cls(latitude=lat, longitude=lng, zoom=extent.zoom)


@dataclass
class GeoJSONPreview:
    """Property selection step for a GeoJSON upload."""

    properties: list[str]
    features: list[dict]
    selected: set[str] = field(default_factory=set)

    def toggle(self, name: str) -> None:
        if name not in self.properties:
            return
        if name in self.selected:
            self.selected.discard(name)
        else:
            self.selected.add(name)

    def select_all(self) -> None:
        self.selected = set(self.properties)

    def deselect_all(self) -> None:
        self.selected = set()

    def selected_properties(self) -> list[str]:
        return [p for p in self.properties if p in self.selected]


@dataclass
class IngestResult:
    """A newly registered layer plus row accounting for the upload."""

    layer: Layer
    valid: int
    skipped: int = 0


class MapSession:
    """Registry of map layers with their filters, view and basemap."""

    def __init__(self) -> None:
        self._layers: dict[int, Layer] = {}
        self._filters: dict[int, list[FilterDescriptor]] = {}
        self._next_id = 1
        self.view = ViewState()
        self.basemap = settings.basemaps[settings.default_basemap]
        self.style_cache = StyleCache()

    # ------------------------------------------------------------------
    # Registry
    # ------------------------------------------------------------------

    def add_layer(
        self,
        name: str,
        kind: str,
        records: list,
        filters: Iterable[FilterDescriptor | Mapping] = (),
        **attrs: Any,
    ) -> Layer:
        """Register a fully built payload as a new layer.

        The id is allocated here, after the payload exists, so ids are only
        consumed by layers that actually get registered.
        """
        descriptors = [_as_descriptor(f) for f in filters]
        layer = Layer(layer_id=self._next_id, name=name, kind=kind, records=records, **attrs)
        self._next_id += 1
        self._layers[layer.layer_id] = layer
        self._filters[layer.layer_id] = descriptors
        return layer

    def remove_layer(self, layer_id: int) -> bool:
        """Remove a layer and everything it owns.

        Returns:
            True if the layer was removed, False if it didn't exist.
        """
        if layer_id not in self._layers:
            return False
        del self._layers[layer_id]
        self._filters.pop(layer_id, None)
        self.style_cache.invalidate(layer_id)
        return True

    def get_layer(self, layer_id: int) -> Layer | None:
        return self._layers.get(layer_id)

    def list_layers(self) -> list[Layer]:
        """All layers in creation order."""
        return list(self._layers.values())

    def clear(self) -> None:
        """Drop every layer. Ids keep counting up."""
        self._layers.clear()
        self._filters.clear()
        self.style_cache.clear()

    def _require(self, layer_id: int) -> Layer:
        layer = self._layers.get(layer_id)
        if layer is None:
            raise KeyError(f"Layer not found: {layer_id}")
        return layer

    # ------------------------------------------------------------------
    # Ingestion
    # ------------------------------------------------------------------

    def preview_csv(self, text: str) -> Classification:
        """Parse and classify a CSV upload without touching the session."""
        return classify_table(parse_table(text))

    def ingest_csv(
        self,
        name: str,
        text: str,
        selected_columns: Iterable[str] | None = None,
        on_progress: ProgressCallback | None = None,
        chunk_size: int | None = None,
    ) -> IngestResult:
        """Build a point or H3 layer from CSV text.

        Args:
            name: Display name, usually the file name.
            text: Raw CSV content.
            selected_columns: Columns to keep as properties (None keeps
                all). Coordinate/H3 columns are pinned and never kept.
            on_progress: Called with percent complete after each chunk.
            chunk_size: Rows per chunk, defaults to ``settings.chunk_size``.

        Raises:
            MalformedInput: No header or no data rows.
            UnsupportedFormat: No coordinate pair or H3 column.
            NoValidRecords: Every row failed validation.
        """
        table = parse_table(text)
        classification = classify_table(table)
        if classification.kind is None:
            logger.warning(f"Rejected {name}: no spatial columns in {classification.headers}")
            raise UnsupportedFormat(
                "Could not detect latitude and longitude columns: expected "
                "latitude (latitude, lat, y) and longitude (longitude, lng, "
                "long, lon, x) columns, or an H3 column (hex_id, h3_index, "
                "h3, hexagon)"
            )
        if selected_columns is not None:
            classification.selected = set(selected_columns) | set(classification.pinned)

        built = build_table_records(table, classification, chunk_size, on_progress)

        if classification.kind == "h3":
            lat, lng = h3.cell_to_latlng(built.records[0].hex)
            view = ViewState(latitude=lat, longitude=lng, zoom=settings.h3_initial_zoom)
            layer = self.add_layer(name, "h3", built.records, h3_column=classification.h3_column)
        else:
            view = ViewState.from_extent(extent_of_positions(r.position for r in built.records))
            layer = self.add_layer(
                name, "point", built.records, columns=classification.coordinates.to_dict(),
            )
        self.view = view

        logger.info(
            f"Layer {layer.layer_id} ({layer.kind}) from {name}: "
            f"{built.valid} records, {built.skipped} rows skipped"
        )
        return IngestResult(layer=layer, valid=built.valid, skipped=built.skipped)

    def preview_geojson(self, text: str | dict) -> GeoJSONPreview:
        raw = parse_feature_collection(text)
        names = collect_property_names(raw)
        return GeoJSONPreview(
            properties=names,
            features=raw[:settings.preview_rows],
            selected=set(names),
        )

    def ingest_geojson(
        self,
        name: str,
        text: str | dict,
        selected_properties: Iterable[str] | None = None,
    ) -> IngestResult:
        """Build a GeoJSON layer; only ``selected_properties`` are kept.

        Raises:
            MalformedInput: Payload is not a Feature collection.
        """
        raw = parse_feature_collection(text)
        selected = None if selected_properties is None else list(selected_properties)
        built = build_features(raw, selected)
        extent = extent_of_geometries(f.geometry for f in built.records)
        layer = self.add_layer(name, "geojson", built.records)

        if extent is not None:
            self.view = ViewState.from_extent(extent)

        logger.info(f"Layer {layer.layer_id} (geojson) from {name}: {built.valid} features")
        return IngestResult(layer=layer, valid=built.valid)

    # ------------------------------------------------------------------
    # Layer attributes
    # ------------------------------------------------------------------

    def set_visibility(self, layer_id: int, visible: bool) -> None:
        """Show or hide a layer. Hidden layers keep their filters and mappings.

        Raises:
            KeyError: If no layer has ``layer_id``.
        """
        self._require(layer_id).visible = visible

    def set_color(self, layer_id: int, color: str) -> None:
        """Set the base color of a layer.

        Args:
            layer_id: Target layer.
            color: Hex color in ``#rrggbb`` form.

        Raises:
            KeyError: If no layer has ``layer_id``.
            ValueError: If ``color`` is not a ``#rrggbb`` hex string.
        """
        hex_to_rgb(color)
        self._require(layer_id).color = color

    def set_opacity(self, layer_id: int, opacity: float) -> None:
        """Set layer opacity.

        Raises:
            KeyError: If no layer has ``layer_id``.
            ValueError: If ``opacity`` is outside [0, 1].
        """
        if not 0.0 <= opacity <= 1.0:
            raise ValueError(f"opacity must be within [0, 1], got {opacity}")
        self._require(layer_id).opacity = opacity

    def set_point_size(self, layer_id: int, size: float) -> None:
        """Base radius for point layers; must be positive."""
        if size <= 0:
            raise ValueError(f"point size must be positive, got {size}")
        self._require(layer_id).point_size = size

    def set_basemap(self, basemap: str) -> None:
        """Select a basemap by display name or style URL."""
        if basemap in settings.basemaps:
            self.basemap = settings.basemaps[basemap]
        elif basemap in settings.basemaps.values():
            self.basemap = basemap
        else:
            raise ValueError(f"Unknown basemap {basemap!r}; expected one of {list(settings.basemaps)}")

    # ------------------------------------------------------------------
    # Filters
    # ------------------------------------------------------------------

    def add_filter(self, layer_id: int, descriptor: FilterDescriptor | Mapping) -> FilterDescriptor:
        """Append a filter; mapping breaks are recomputed over the new filtered set."""
        layer = self._require(layer_id)
        descriptor = _as_descriptor(descriptor)
        self._filters[layer_id].append(descriptor)
        self._refresh_breaks(layer)
        return descriptor

    def remove_filter(self, layer_id: int, index: int) -> FilterDescriptor:
        """Remove the filter at ``index`` and recompute mapping breaks.

        Returns:
            The removed descriptor.

        Raises:
            KeyError: If no layer has ``layer_id``.
            ValueError: If ``index`` is not a position in the filter list.
        """
        layer = self._require(layer_id)
        filters = self._filters[layer_id]
        if not 0 <= index < len(filters):
            raise ValueError(f"No filter at position {index} (layer {layer_id} has {len(filters)})")
        removed = filters.pop(index)
        self._refresh_breaks(layer)
        return removed

    def get_filters(self, layer_id: int) -> list[FilterDescriptor]:
        """Copy of the layer's filters, in the order they were added."""
        self._require(layer_id)
        return list(self._filters[layer_id])

    def filtered_records(self, layer_id: int) -> list:
        """Records passing every filter of the layer (AND semantics).

        Raises:
            KeyError: If no layer has ``layer_id``.
        """
        layer = self._require(layer_id)
        return apply_filters(layer.records, self._filters[layer_id])

    def column_summaries(self, layer_id: int) -> list[ColumnSummary]:
        return summarize_columns(self._require(layer_id).records)

    # ------------------------------------------------------------------
    # Color / size mapping
    # ------------------------------------------------------------------

    def numeric_columns(self, layer_id: int) -> list[str]:
        """Columns eligible for color or size mapping."""
        return numeric_columns(self._require(layer_id).records)

    def _compute_breaks(self, layer: Layer, column: str, num_classes: int) -> list[float]:
        records = apply_filters(layer.records, self._filters[layer.layer_id])
        return quantile_breaks((r.properties.get(column) for r in records), num_classes)

    def _refresh_breaks(self, layer: Layer) -> None:
        if layer.color_mapping is not None:
            cm = layer.color_mapping
            cm.breaks = self._compute_breaks(layer, cm.column, cm.num_classes)
        if layer.size_mapping is not None:
            sm = layer.size_mapping
            sm.breaks = self._compute_breaks(layer, sm.column, sm.num_classes)

    def set_color_mapping(
        self,
        layer_id: int,
        column: str,
        num_classes: int,
        color_scale: str | None = None,
    ) -> ColorMapping:
        """Classify ``column`` into ``num_classes`` quantile color classes."""
        layer = self._require(layer_id)
        check_num_classes(num_classes)
        color_scale = color_scale or settings.default_color_scale
        if color_scale not in COLOR_SCALES:
            raise ValueError(f"Unknown color scale {color_scale!r}; expected one of {sorted(COLOR_SCALES)}")
        layer.color_mapping = ColorMapping(
            column=column,
            num_classes=num_classes,
            breaks=self._compute_breaks(layer, column, num_classes),
            color_scale=color_scale,
        )
        return layer.color_mapping

    def clear_color_mapping(self, layer_id: int) -> None:
        self._require(layer_id).color_mapping = None

    def set_size_mapping(
        self,
        layer_id: int,
        column: str,
        num_classes: int,
        min_size: float | None = None,
        max_size: float | None = None,
    ) -> SizeMapping:
        """Classify ``column`` into ``num_classes`` point sizes (point layers only)."""
        layer = self._require(layer_id)
        if layer.kind != "point":
            raise ValueError(f"Size mapping applies to point layers, layer {layer_id} is {layer.kind}")
        check_num_classes(num_classes)
        min_size = settings.default_min_size if min_size is None else min_size
        max_size = settings.default_max_size if max_size is None else max_size
        if not 0 < min_size <= max_size:
            raise ValueError(f"Expected 0 < min_size <= max_size, got {min_size}, {max_size}")
        layer.size_mapping = SizeMapping(
            column=column,
            num_classes=num_classes,
            breaks=self._compute_breaks(layer, column, num_classes),
            min_size=min_size,
            max_size=max_size,
        )
        return layer.size_mapping

    def clear_size_mapping(self, layer_id: int) -> None:
        self._require(layer_id).size_mapping = None

    # ------------------------------------------------------------------
    # View
    # ------------------------------------------------------------------

    def fit_view(self, layer_id: int) -> ViewState:
        """Move the view to the extent of a layer's records."""
        layer = self._require(layer_id)
        if layer.kind == "geojson":
            extent = extent_of_geometries(f.geometry for f in layer.records)
        elif layer.kind == "point":
            extent = extent_of_positions(r.position for r in layer.records)
        else:
            extent = extent_of_cells(r.hex for r in layer.records)
        if extent is not None:
            self.view = ViewState.from_extent(extent)
        return self.view


def _as_descriptor(descriptor: FilterDescriptor | Mapping) -> FilterDescriptor:
    if isinstance(descriptor, FilterDescriptor):
        return descriptor.model_copy(deep=True)
    return FilterDescriptor.model_validate(descriptor)
