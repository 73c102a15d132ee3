"""Map layer API — upload, style, filter, draw, and configuration export/import.

All state lives in the MapSession on ``app.state.map_session``.
"""

from __future__ import annotations

from dataclasses import asdict
from typing import Any, Optional

from fastapi import APIRouter, HTTPException, Request
from loguru import logger
from pydantic import BaseModel

from geoview.config import settings
from geoview.layers.errors import InvalidConfiguration, LayerError
from geoview.layers.exporters.geojson import export_geojson
from geoview.layers.filters import FilterDescriptor, describe
from geoview.layers.layer import Layer
from geoview.layers.mapconfig import export_configuration, import_configuration
from geoview.layers.render import draw_layer
from geoview.layers.session import MapSession

router = APIRouter(prefix="/api", tags=["layers"])


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------

class TextPayload(BaseModel):
    """Raw file content."""
    text: str


class CSVUpload(BaseModel):
    name: str
    text: str
    selected_columns: Optional[list[str]] = None


class GeoJSONUpload(BaseModel):
    name: str
    text: str
    selected_properties: Optional[list[str]] = None


class LayerUpdate(BaseModel):
    visible: Optional[bool] = None
    color: Optional[str] = None
    opacity: Optional[float] = None
    point_size: Optional[float] = None


class ColorMappingRequest(BaseModel):
    column: str
    num_classes: int = 5
    color_scale: Optional[str] = None


class SizeMappingRequest(BaseModel):
    column: str
    num_classes: int = 5
    min_size: Optional[float] = None
    max_size: Optional[float] = None


class BasemapRequest(BaseModel):
    basemap: str


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _get_session(request: Request) -> MapSession:
    """Get the map session from app state, creating it on first use."""
    session = getattr(request.app.state, "map_session", None)
    if session is None:
        session = MapSession()
        request.app.state.map_session = session
    return session


def _http_error(e: Exception) -> HTTPException:
    if isinstance(e, InvalidConfiguration):
        return HTTPException(status_code=422, detail=str(e))
    if isinstance(e, LayerError):
        return HTTPException(status_code=400, detail={"error": type(e).__name__, "message": str(e)})
    if isinstance(e, KeyError):
        return HTTPException(status_code=404, detail=str(e.args[0]) if e.args else "Not found")
    return HTTPException(status_code=400, detail=str(e))


def _layer_summary(session: MapSession, layer: Layer) -> dict:
    filters = session.get_filters(layer.layer_id)
    return {
        "id": layer.layer_id,
        "name": layer.name,
        "type": layer.kind,
        "visible": layer.visible,
        "color": layer.color,
        "opacity": layer.opacity,
        "point_size": layer.point_size if layer.kind == "point" else None,
        "columns": layer.columns,
        "h3_column": layer.h3_column,
        "record_count": len(layer.records),
        "filtered_count": len(session.filtered_records(layer.layer_id)),
        "filters": [
            {"descriptor": f.model_dump(), "label": describe(f)} for f in filters
        ],
        "color_mapping": asdict(layer.color_mapping) if layer.color_mapping else None,
        "size_mapping": asdict(layer.size_mapping) if layer.size_mapping else None,
    }


def _view(session: MapSession) -> dict:
    return {
        "latitude": session.view.latitude,
        "longitude": session.view.longitude,
        "zoom": session.view.zoom,
        "basemap": session.basemap,
    }


# ---------------------------------------------------------------------------
# Session-wide endpoints
# ---------------------------------------------------------------------------

@router.get("/basemaps")
async def list_basemaps():
    """Named basemap styles."""
    return settings.basemaps


@router.get("/view")
async def get_view(request: Request):
    return _view(_get_session(request))


@router.post("/view/basemap")
async def set_basemap(request: Request, body: BasemapRequest):
    session = _get_session(request)
    try:
        session.set_basemap(body.basemap)
    except ValueError as e:
        raise _http_error(e) from e
    return _view(session)


@router.get("/config")
async def export_config(request: Request):
    """Export the whole session as a map configuration document."""
    return export_configuration(_get_session(request))


@router.post("/config")
async def import_config(request: Request, body: dict[str, Any]):
    """Replace the session with one rebuilt from a configuration document."""
    try:
        session = import_configuration(body)
    except InvalidConfiguration as e:
        logger.warning(f"Configuration import rejected: {e}")
        raise _http_error(e) from e
    request.app.state.map_session = session
    return {
        "layers": [_layer_summary(session, layer) for layer in session.list_layers()],
        "view": _view(session),
    }


# ---------------------------------------------------------------------------
# Upload
# ---------------------------------------------------------------------------

@router.post("/layers/csv/preview")
async def preview_csv(request: Request, body: TextPayload):
    """Classify a CSV upload: detected columns and the first rows."""
    try:
        cls = _get_session(request).preview_csv(body.text)
    except LayerError as e:
        raise _http_error(e) from e
    return {
        "kind": cls.kind,
        "headers": cls.headers,
        "coordinates": cls.coordinates.to_dict() if cls.coordinates else None,
        "h3_column": cls.h3_column,
        "pinned": sorted(cls.pinned),
        "selected": cls.selected_columns(),
        "columns": [asdict(c) for c in cls.columns],
        "preview": cls.preview,
    }


@router.post("/layers/csv")
async def upload_csv(request: Request, body: CSVUpload):
    """Ingest a point or H3 CSV as a new layer."""
    session = _get_session(request)
    try:
        result = session.ingest_csv(body.name, body.text, body.selected_columns)
    except LayerError as e:
        logger.warning(f"CSV upload {body.name} rejected: {e}")
        raise _http_error(e) from e
    return {
        "layer": _layer_summary(session, result.layer),
        "valid": result.valid,
        "skipped": result.skipped,
        "view": _view(session),
    }


@router.post("/layers/geojson/preview")
async def preview_geojson(request: Request, body: TextPayload):
    try:
        preview = _get_session(request).preview_geojson(body.text)
    except LayerError as e:
        raise _http_error(e) from e
    return {"properties": preview.properties, "features": preview.features}


@router.post("/layers/geojson")
async def upload_geojson(request: Request, body: GeoJSONUpload):
    """Ingest a GeoJSON FeatureCollection as a new layer."""
    session = _get_session(request)
    try:
        result = session.ingest_geojson(body.name, body.text, body.selected_properties)
    except LayerError as e:
        logger.warning(f"GeoJSON upload {body.name} rejected: {e}")
        raise _http_error(e) from e
    return {
        "layer": _layer_summary(session, result.layer),
        "valid": result.valid,
        "view": _view(session),
    }


# ---------------------------------------------------------------------------
# Layers
# ---------------------------------------------------------------------------

@router.get("/layers")
async def list_layers(request: Request):
    session = _get_session(request)
    return [_layer_summary(session, layer) for layer in session.list_layers()]


@router.get("/layers/{layer_id}")
async def get_layer(layer_id: int, request: Request):
    session = _get_session(request)
    layer = session.get_layer(layer_id)
    if layer is None:
        raise HTTPException(status_code=404, detail=f"Layer not found: {layer_id}")
    return _layer_summary(session, layer)


@router.patch("/layers/{layer_id}")
async def update_layer(layer_id: int, request: Request, body: LayerUpdate):
    """Change visibility, base color, opacity or point size."""
    session = _get_session(request)
    try:
        if body.visible is not None:
            session.set_visibility(layer_id, body.visible)
        if body.color is not None:
            session.set_color(layer_id, body.color)
        if body.opacity is not None:
            session.set_opacity(layer_id, body.opacity)
        if body.point_size is not None:
            session.set_point_size(layer_id, body.point_size)
    except (KeyError, ValueError) as e:
        raise _http_error(e) from e
    return _layer_summary(session, session.get_layer(layer_id))


@router.delete("/layers/{layer_id}")
async def delete_layer(layer_id: int, request: Request):
    if not _get_session(request).remove_layer(layer_id):
        raise HTTPException(status_code=404, detail=f"Layer not found: {layer_id}")
    return {"deleted": layer_id}


@router.post("/layers/{layer_id}/fit")
async def fit_layer(layer_id: int, request: Request):
    """Move the view to a layer's extent."""
    session = _get_session(request)
    try:
        session.fit_view(layer_id)
    except KeyError as e:
        raise _http_error(e) from e
    return _view(session)


@router.get("/layers/{layer_id}/columns")
async def layer_columns(layer_id: int, request: Request):
    """Numeric columns (for mappings) and per-column filter summaries."""
    session = _get_session(request)
    try:
        numeric = session.numeric_columns(layer_id)
        summaries = session.column_summaries(layer_id)
    except KeyError as e:
        raise _http_error(e) from e
    return {"numeric": numeric, "columns": [asdict(s) for s in summaries]}


@router.get("/layers/{layer_id}/draw")
async def draw(layer_id: int, request: Request):
    """Draw-ready items (filtered) with resolved colors and sizes."""
    session = _get_session(request)
    layer = session.get_layer(layer_id)
    if layer is None:
        raise HTTPException(status_code=404, detail=f"Layer not found: {layer_id}")
    out = draw_layer(session, layer)
    return {
        "id": out.id,
        "kind": out.kind,
        "opacity": out.opacity,
        "items": [
            {
                "record_id": item.record_id,
                "fill_color": list(item.fill_color),
                "position": list(item.position) if item.position else None,
                "hex": item.hex,
                "geometry": item.geometry,
                "radius": item.radius,
                "properties": item.properties.to_dict(),
            }
            for item in out.items
        ],
    }


@router.get("/layers/{layer_id}/geojson")
async def layer_geojson(layer_id: int, request: Request):
    """Filtered records as a GeoJSON FeatureCollection."""
    session = _get_session(request)
    layer = session.get_layer(layer_id)
    if layer is None:
        raise HTTPException(status_code=404, detail=f"Layer not found: {layer_id}")
    return export_geojson(layer, session.filtered_records(layer_id))


# ---------------------------------------------------------------------------
# Filters and mappings
# ---------------------------------------------------------------------------

@router.post("/layers/{layer_id}/filters")
async def add_filter(layer_id: int, request: Request, body: FilterDescriptor):
    session = _get_session(request)
    try:
        session.add_filter(layer_id, body)
    except KeyError as e:
        raise _http_error(e) from e
    return _layer_summary(session, session.get_layer(layer_id))


@router.delete("/layers/{layer_id}/filters/{index}")
async def remove_filter(layer_id: int, index: int, request: Request):
    session = _get_session(request)
    try:
        session.remove_filter(layer_id, index)
    except (KeyError, ValueError) as e:
        raise _http_error(e) from e
    return _layer_summary(session, session.get_layer(layer_id))


@router.put("/layers/{layer_id}/color-mapping")
async def set_color_mapping(layer_id: int, request: Request, body: ColorMappingRequest):
    session = _get_session(request)
    try:
        session.set_color_mapping(layer_id, body.column, body.num_classes, body.color_scale)
    except (KeyError, ValueError) as e:
        raise _http_error(e) from e
    return _layer_summary(session, session.get_layer(layer_id))


@router.delete("/layers/{layer_id}/color-mapping")
async def clear_color_mapping(layer_id: int, request: Request):
    session = _get_session(request)
    try:
        session.clear_color_mapping(layer_id)
    except KeyError as e:
        raise _http_error(e) from e
    return _layer_summary(session, session.get_layer(layer_id))


@router.put("/layers/{layer_id}/size-mapping")
async def set_size_mapping(layer_id: int, request: Request, body: SizeMappingRequest):
    session = _get_session(request)
    try:
        session.set_size_mapping(layer_id, body.column, body.num_classes, body.min_size, body.max_size)
    except (KeyError, ValueError) as e:
        raise _http_error(e) from e
    return _layer_summary(session, session.get_layer(layer_id))


@router.delete("/layers/{layer_id}/size-mapping")
async def clear_size_mapping(layer_id: int, request: Request):
    session = _get_session(request)
    try:
        session.clear_size_mapping(layer_id)
    except KeyError as e:
        raise _http_error(e) from e
    return _layer_summary(session, session.get_layer(layer_id))
