"""Tests for map configuration export/import."""

import json

import pytest
from geoview.config import settings
from geoview.layers import InvalidConfiguration, MapSession
from geoview.layers.mapconfig import export_configuration, export_configuration_json, import_configuration

CELL = "8928308280fffff"

POINTS_CSV = "lat,lng,pop,kind\n10,20,1,cafe\n11,21,2,bar\n12,22,3,cafe\n13,23,4,bar\n14,24,5,cafe\n"

COLLECTION = {
    "type": "FeatureCollection",
    "features": [
        {"type": "Feature", "id": "a", "geometry": {"type": "Point", "coordinates": [10, 20]}, "properties": {"name": "A"}},
        {"type": "Feature", "geometry": {"type": "Point", "coordinates": [11, 21]}, "properties": {"name": "B", "note": None}},
    ],
}


@pytest.fixture
def session():
    s = MapSession()
    pts = s.ingest_csv("points.csv", POINTS_CSV).layer
    s.set_point_size(pts.layer_id, 7)
    s.add_filter(pts.layer_id, {"column": "kind", "type": "text", "value": {"type": "multiple", "values": ["cafe"]}})
    s.set_color_mapping(pts.layer_id, "pop", 3, "Greens")
    s.set_size_mapping(pts.layer_id, "pop", 4, 3.0, 12.0)
    cells = s.ingest_csv("cells.csv", f"hex_id,count\n{CELL},3\n").layer
    s.set_visibility(cells.layer_id, False)
    s.ingest_geojson("features.geojson", COLLECTION)
    s.set_basemap("Dark")
    return s


class TestExport:
    """Session to configuration document."""

    def test_document_shape(self, session):
        doc = export_configuration(session)
        assert doc["version"] == settings.config_version
        assert doc["basemap"] == settings.basemaps["Dark"]
        assert set(doc["viewState"]) == {"latitude", "longitude", "zoom"}
        assert [layer["type"] for layer in doc["layers"]] == ["point", "h3", "geojson"]

    def test_point_layer_entry(self, session):
        entry = export_configuration(session)["layers"][0]
        assert entry["pointSize"] == 7
        assert entry["columns"] == {"lat": "lat", "lng": "lng"}
        assert entry["data"][0] == {"position": [20.0, 10.0], "properties": {"pop": "1", "kind": "cafe"}}
        assert entry["filters"][0]["value"] == {"type": "multiple", "values": ["cafe"]}
        assert entry["colorMapping"]["colorScale"] == "Greens"
        assert entry["colorMapping"]["numClasses"] == 3
        assert entry["sizeMapping"]["minSize"] == 3.0
        assert entry["selectedProperties"] == ["pop", "kind"]

    def test_h3_and_geojson_entries(self, session):
        _, cells, features = export_configuration(session)["layers"]
        assert cells["h3Column"] == "hex_id"
        assert cells["visible"] is False
        assert cells["data"] == [{"hex": CELL, "properties": {"count": "3"}}]
        assert features["data"]["type"] == "FeatureCollection"
        assert features["data"]["features"][0]["id"] == "a"

    def test_json_text(self, session):
        assert json.loads(export_configuration_json(session)) == export_configuration(session)


class TestRoundTrip:
    """Export then import rebuilds an equivalent session."""

    def test_layers_filters_and_mappings_survive(self, session):
        restored = import_configuration(export_configuration_json(session))
        original = session.list_layers()
        rebuilt = restored.list_layers()
        assert [l.layer_id for l in rebuilt] == [1, 2, 3]
        for before, after in zip(original, rebuilt):
            assert after.name == before.name
            assert after.kind == before.kind
            assert after.visible == before.visible
            assert after.color == before.color
            assert after.opacity == before.opacity
            assert len(after.records) == len(before.records)
            assert restored.get_filters(after.layer_id) == session.get_filters(before.layer_id)
            assert after.color_mapping == before.color_mapping
            assert after.size_mapping == before.size_mapping

    def test_records_are_unfiltered(self, session):
        restored = import_configuration(export_configuration(session))
        layer = restored.get_layer(1)
        assert len(layer.records) == 5
        assert len(restored.filtered_records(1)) == 3

    def test_view_and_basemap(self, session):
        restored = import_configuration(export_configuration(session))
        assert restored.basemap == session.basemap
        assert restored.view == session.view

    def test_null_properties_preserved(self, session):
        restored = import_configuration(export_configuration(session))
        assert restored.get_layer(3).records[1].properties == {"name": "B", "note": None}

    def test_import_does_not_alias_input(self, session):
        doc = export_configuration(session)
        restored = import_configuration(doc)
        doc["layers"][2]["data"]["features"][0]["geometry"]["coordinates"][0] = 99
        assert restored.get_layer(3).records[0].geometry["coordinates"][0] == 10


class TestImportValidation:
    """Malformed documents are rejected as a whole."""

    @pytest.fixture
    def doc(self, session):
        return export_configuration(session)

    def test_not_json(self):
        with pytest.raises(InvalidConfiguration):
            import_configuration("{nope")

    def test_not_an_object(self):
        with pytest.raises(InvalidConfiguration):
            import_configuration("[1, 2]")

    @pytest.mark.parametrize("version", [None, ""])
    def test_missing_version(self, doc, version):
        doc["version"] = version
        with pytest.raises(InvalidConfiguration, match="version"):
            import_configuration(doc)

    def test_missing_view_state(self, doc):
        del doc["viewState"]
        with pytest.raises(InvalidConfiguration):
            import_configuration(doc)

    def test_bad_layer_type(self, doc):
        doc["layers"][0]["type"] = "kml"
        with pytest.raises(InvalidConfiguration):
            import_configuration(doc)

    def test_out_of_range_position(self, doc):
        doc["layers"][0]["data"][0]["position"] = [200, 10]
        with pytest.raises(InvalidConfiguration):
            import_configuration(doc)

    def test_invalid_cell(self, doc):
        doc["layers"][1]["data"][0]["hex"] = "zzz"
        with pytest.raises(InvalidConfiguration):
            import_configuration(doc)

    def test_invalid_filter(self, doc):
        doc["layers"][0]["filters"] = [{"column": "pop", "type": "numeric", "value": {"type": "multiple", "values": []}}]
        with pytest.raises(InvalidConfiguration):
            import_configuration(doc)

    def test_invalid_mapping(self, doc):
        doc["layers"][0]["colorMapping"]["numClasses"] = 20
        with pytest.raises(InvalidConfiguration):
            import_configuration(doc)

    def test_null_filters_allowed(self, doc):
        doc["layers"][0]["filters"] = None
        restored = import_configuration(doc)
        assert restored.get_filters(1) == []

    def test_minimal_document(self):
        restored = import_configuration({
            "version": "1.0.0",
            "viewState": {"latitude": 1, "longitude": 2, "zoom": 5},
            "basemap": settings.basemaps["Light"],
            "layers": [],
        })
        assert restored.list_layers() == []
        assert restored.view.zoom == 5
