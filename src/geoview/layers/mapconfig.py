"""Map configuration document — export/import a whole session as JSON.

The document carries a version tag, the view, the basemap and one entry
per layer with its raw data, styling, filters and mappings. Import is all
or nothing: any structural problem raises InvalidConfiguration and no
layer is created.
"""

from __future__ import annotations

import copy
import json
from typing import Any, Literal, Optional

from loguru import logger
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from geoview.config import settings
from geoview.layers.classify import is_valid_h3
from geoview.layers.errors import InvalidConfiguration, LayerError
from geoview.layers.exporters.geojson import export_geojson
from geoview.layers.filters import FilterDescriptor
from geoview.layers.layer import HexRecord, Layer, PointRecord
from geoview.layers.properties import PropertyMap
from geoview.layers.records import build_features, parse_feature_collection, valid_position
from geoview.layers.session import MapSession, ViewState


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class ViewStateModel(_CamelModel):
    latitude: float
    longitude: float
    zoom: float


class ColorMappingModel(_CamelModel):
    column: str
    num_classes: int = Field(alias="numClasses", ge=3, le=10)
    breaks: list[float] = Field(default_factory=list)
    color_scale: str = Field(default=settings.default_color_scale, alias="colorScale")


class SizeMappingModel(_CamelModel):
    column: str
    num_classes: int = Field(alias="numClasses", ge=3, le=10)
    breaks: list[float] = Field(default_factory=list)
    min_size: float = Field(default=settings.default_min_size, alias="minSize")
    max_size: float = Field(default=settings.default_max_size, alias="maxSize")


class PointData(BaseModel):
    position: tuple[float, float]
    properties: dict[str, Any] = Field(default_factory=dict)


class HexData(BaseModel):
    hex: str
    properties: dict[str, Any] = Field(default_factory=dict)


class LayerConfig(_CamelModel):
    name: str
    type: Literal["geojson", "point", "h3"]
    visible: bool = True
    color: str = settings.default_color
    opacity: float = Field(default=settings.default_opacity, ge=0.0, le=1.0)
    point_size: Optional[float] = Field(default=None, alias="pointSize")
    columns: Optional[dict[str, str]] = None
    h3_column: Optional[str] = Field(default=None, alias="h3Column")
    data: Any
    filters: list[FilterDescriptor] = Field(default_factory=list)
    selected_properties: Optional[list[str]] = Field(default=None, alias="selectedProperties")
    color_mapping: Optional[ColorMappingModel] = Field(default=None, alias="colorMapping")
    size_mapping: Optional[SizeMappingModel] = Field(default=None, alias="sizeMapping")

    @field_validator("filters", mode="before")
    @classmethod
    def _none_filters(cls, value):
        return [] if value is None else value


class MapConfiguration(_CamelModel):
    version: str = Field(min_length=1)
    view_state: ViewStateModel = Field(alias="viewState")
    basemap: str
    layers: list[LayerConfig] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Export
# ---------------------------------------------------------------------------

def _layer_data(layer: Layer) -> Any:
    if layer.kind == "geojson":
        return export_geojson(layer)
    if layer.kind == "point":
        return [
            {"position": list(r.position), "properties": r.properties.to_dict()}
            for r in layer.records
        ]
    return [{"hex": r.hex, "properties": r.properties.to_dict()} for r in layer.records]


def _layer_config(session: MapSession, layer: Layer) -> LayerConfig:
    cm = layer.color_mapping
    sm = layer.size_mapping
    return LayerConfig(
        name=layer.name,
        type=layer.kind,
        visible=layer.visible,
        color=layer.color,
        opacity=layer.opacity,
        point_size=layer.point_size if layer.kind == "point" else None,
        columns=dict(layer.columns) if layer.columns else None,
        h3_column=layer.h3_column,
        data=_layer_data(layer),
        filters=session.get_filters(layer.layer_id),
        selected_properties=layer.property_names(),
        color_mapping=None if cm is None else ColorMappingModel(
            column=cm.column, num_classes=cm.num_classes,
            breaks=list(cm.breaks), color_scale=cm.color_scale,
        ),
        size_mapping=None if sm is None else SizeMappingModel(
            column=sm.column, num_classes=sm.num_classes, breaks=list(sm.breaks),
            min_size=sm.min_size, max_size=sm.max_size,
        ),
    )


def export_configuration(session: MapSession) -> dict:
    """Snapshot ``session`` as a JSON-ready configuration dict."""
    config = MapConfiguration(
        version=settings.config_version,
        view_state=ViewStateModel(
            latitude=session.view.latitude,
            longitude=session.view.longitude,
            zoom=session.view.zoom,
        ),
        basemap=session.basemap,
        layers=[_layer_config(session, layer) for layer in session.list_layers()],
    )
    return config.model_dump(mode="json", by_alias=True)


def export_configuration_json(session: MapSession, indent: int = 2) -> str:
    return json.dumps(export_configuration(session), indent=indent)


# ---------------------------------------------------------------------------
# Import
# ---------------------------------------------------------------------------

def _point_records(data: Any, name: str) -> list[PointRecord]:
    if not isinstance(data, list):
        raise InvalidConfiguration(f"Layer '{name}': point data must be a list of records")
    records = []
    for idx, raw in enumerate(data):
        item = PointData.model_validate(raw)
        lng, lat = item.position
        if not valid_position(lat, lng):
            raise InvalidConfiguration(f"Layer '{name}': record {idx} has out-of-range position {item.position}")
        records.append(PointRecord(record_id=idx, position=(lng, lat), properties=PropertyMap(item.properties)))
    return records


def _hex_records(data: Any, name: str) -> list[HexRecord]:
    if not isinstance(data, list):
        raise InvalidConfiguration(f"Layer '{name}': h3 data must be a list of records")
    records = []
    for idx, raw in enumerate(data):
        item = HexData.model_validate(raw)
        if not is_valid_h3(item.hex):
            raise InvalidConfiguration(f"Layer '{name}': record {idx} has invalid H3 cell {item.hex!r}")
        records.append(HexRecord(record_id=idx, hex=item.hex, properties=PropertyMap(item.properties)))
    return records


def _restore_layer(session: MapSession, entry: LayerConfig) -> Layer:
    data = copy.deepcopy(entry.data)
    attrs: dict[str, Any] = {
        "visible": entry.visible,
        "color": entry.color,
        "opacity": entry.opacity,
    }
    if entry.type == "geojson":
        records = build_features(parse_feature_collection(data), entry.selected_properties).records
    elif entry.type == "point":
        records = _point_records(data, entry.name)
        attrs["columns"] = entry.columns
        if entry.point_size is not None:
            attrs["point_size"] = entry.point_size
    else:
        records = _hex_records(data, entry.name)
        attrs["h3_column"] = entry.h3_column

    layer = session.add_layer(entry.name, entry.type, records, filters=entry.filters, **attrs)
    session.set_color(layer.layer_id, entry.color)
    if entry.color_mapping is not None:
        cm = entry.color_mapping
        session.set_color_mapping(layer.layer_id, cm.column, cm.num_classes, cm.color_scale)
    if entry.size_mapping is not None:
        sm = entry.size_mapping
        session.set_size_mapping(layer.layer_id, sm.column, sm.num_classes, sm.min_size, sm.max_size)
    return layer


def import_configuration(payload: str | bytes | dict) -> MapSession:
    """Rebuild a session from a configuration document.

    Raises:
        InvalidConfiguration: The document is not JSON, lacks ``version``,
            or any layer/filter/mapping in it is invalid. Nothing is
            returned in that case.
    """
    if isinstance(payload, (str, bytes)):
        try:
            payload = json.loads(payload)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise InvalidConfiguration(f"Configuration is not valid JSON: {e}") from e
    if not isinstance(payload, dict):
        raise InvalidConfiguration("Configuration must be a JSON object")
    if not payload.get("version"):
        raise InvalidConfiguration("Invalid configuration file: missing 'version'")

    try:
        config = MapConfiguration.model_validate(payload)
        session = MapSession()
        session.view = ViewState(
            latitude=config.view_state.latitude,
            longitude=config.view_state.longitude,
            zoom=config.view_state.zoom,
        )
        session.basemap = config.basemap
        for entry in config.layers:
            _restore_layer(session, entry)
    except InvalidConfiguration:
        raise
    except (ValidationError, LayerError, ValueError, KeyError) as e:
        raise InvalidConfiguration(f"Invalid configuration file: {e}") from e

    logger.info(f"Imported configuration v{config.version}: {len(config.layers)} layers")
    return session
