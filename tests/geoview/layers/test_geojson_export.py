"""Tests for GeoJSON export of layer records."""

import pytest
from geoview.layers import MapSession
from geoview.layers.exporters.geojson import cell_polygon, export_geojson, record_to_feature

CELL = "8928308280fffff"


@pytest.fixture
def session():
    return MapSession()


class TestRecordToFeature:
    """Each record kind becomes a Feature."""

    def test_point(self, session):
        layer = session.ingest_csv("p.csv", "lat,lng,val\n10,20,5\n").layer
        feature = record_to_feature(layer.records[0])
        assert feature == {
            "type": "Feature",
            "geometry": {"type": "Point", "coordinates": [20.0, 10.0]},
            "properties": {"val": "5"},
        }

    def test_hex(self, session):
        layer = session.ingest_csv("h.csv", f"hex_id,count\n{CELL},3\n").layer
        feature = record_to_feature(layer.records[0])
        assert feature["id"] == CELL
        assert feature["geometry"]["type"] == "Polygon"
        assert feature["properties"] == {"count": "3"}

    def test_feature_pass_through(self, session):
        geometry = {"type": "LineString", "coordinates": [[0, 0], [1, 1]]}
        layer = session.ingest_geojson("f.geojson", {
            "type": "FeatureCollection",
            "features": [{"type": "Feature", "id": 7, "geometry": geometry, "properties": {"a": 1}}],
        }).layer
        feature = record_to_feature(layer.records[0])
        assert feature["geometry"] == geometry
        assert feature["id"] == 7

    def test_not_a_record(self):
        with pytest.raises(TypeError):
            record_to_feature({"type": "Feature"})


class TestCellPolygon:

    def test_closed_hexagon_ring(self):
        ring = cell_polygon(CELL)["coordinates"][0]
        assert len(ring) == 7
        assert ring[0] == ring[-1]
        lng, lat = ring[0]
        assert -123 < lng < -122
        assert 37 < lat < 38


class TestExportGeoJSON:

    def test_collection(self, session):
        layer = session.ingest_csv("p.csv", "lat,lng\n1,2\n3,4\n").layer
        out = export_geojson(layer)
        assert out["type"] == "FeatureCollection"
        assert len(out["features"]) == 2

    def test_subset(self, session):
        layer = session.ingest_csv("p.csv", "lat,lng\n1,2\n3,4\n").layer
        assert len(export_geojson(layer, layer.records[:1])["features"]) == 1
