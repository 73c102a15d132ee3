"""Tests for MapSession — ingestion, ids, styling, filters and mappings."""

import h3
import pytest
from geoview.config import settings
from geoview.layers import (
    MalformedInput,
    MapSession,
    NoValidRecords,
    UnsupportedFormat,
)

CELL = "8928308280fffff"

POINTS_CSV = "lat,lng,pop,kind\n10,20,1,cafe\n11,21,2,bar\n12,22,3,cafe\n13,23,4,bar\n14,24,5,cafe\n"

COLLECTION = {
    "type": "FeatureCollection",
    "features": [
        {"type": "Feature", "geometry": {"type": "Point", "coordinates": [10, 20]}, "properties": {"name": "A", "pop": 3}},
    ],
}


@pytest.fixture
def session():
    return MapSession()


@pytest.fixture
def points(session):
    return session.ingest_csv("points.csv", POINTS_CSV).layer


class TestRegistry:
    """Layer ids, listing, removal."""

    def test_ids_start_at_one_and_increase(self, session):
        a = session.ingest_csv("a.csv", POINTS_CSV).layer
        b = session.ingest_geojson("b.geojson", COLLECTION).layer
        assert (a.layer_id, b.layer_id) == (1, 2)
        assert session.list_layers() == [a, b]

    def test_failed_ingest_consumes_no_id(self, session):
        """A rejected upload leaves the session untouched."""
        with pytest.raises(NoValidRecords):
            session.ingest_csv("bad.csv", "lat,lng\n100,0\n")
        with pytest.raises(UnsupportedFormat):
            session.ingest_csv("bad.csv", "name,value\na,1\n")
        with pytest.raises(MalformedInput):
            session.ingest_geojson("bad.geojson", "{oops")
        assert session.list_layers() == []
        assert session.ingest_csv("ok.csv", POINTS_CSV).layer.layer_id == 1

    def test_ids_never_reused(self, session, points):
        session.remove_layer(points.layer_id)
        assert session.ingest_csv("again.csv", POINTS_CSV).layer.layer_id == 2

    def test_remove(self, session, points):
        assert session.remove_layer(points.layer_id) is True
        assert session.get_layer(points.layer_id) is None
        assert session.remove_layer(points.layer_id) is False

    def test_clear(self, session, points):
        session.clear()
        assert session.list_layers() == []
        assert session.ingest_csv("x.csv", POINTS_CSV).layer.layer_id == 2

    @pytest.mark.parametrize("method, args", [
        ("set_visibility", (False,)),
        ("set_color", ("#00ff00",)),
        ("set_opacity", (0.5,)),
        ("set_point_size", (4,)),
        ("remove_filter", (0,)),
        ("get_filters", ()),
        ("filtered_records", ()),
        ("numeric_columns", ()),
    ])
    def test_unknown_layer(self, session, method, args):
        with pytest.raises(KeyError):
            getattr(session, method)(99, *args)


class TestCSVIngestion:
    """Point and H3 uploads."""

    def test_point_layer(self, session):
        result = session.ingest_csv("pts.csv", "lat,lng,val\n10,20,5\n91,0,1\n")
        assert result.valid == 1
        assert result.skipped == 1
        layer = result.layer
        assert layer.kind == "point"
        assert layer.columns == {"lat": "lat", "lng": "lng"}
        assert layer.records[0].position == (20.0, 10.0)
        assert layer.records[0].properties == {"val": "5"}

    def test_defaults(self, points):
        assert points.visible is True
        assert points.color == settings.default_color
        assert points.opacity == settings.default_opacity
        assert points.point_size == settings.default_point_size

    def test_view_fits_points(self, session, points):
        assert session.view.latitude == pytest.approx(12.0)
        assert session.view.longitude == pytest.approx(22.0)

    def test_selected_columns(self, session):
        layer = session.ingest_csv("pts.csv", POINTS_CSV, selected_columns=["kind"]).layer
        assert list(layer.records[0].properties) == ["kind"]

    def test_h3_layer(self, session):
        result = session.ingest_csv("cells.csv", f"hex_id,count\n{CELL},3\n{CELL},4\nbogus,5\n")
        layer = result.layer
        assert layer.kind == "h3"
        assert layer.h3_column == "hex_id"
        assert result.valid == 2
        assert result.skipped == 1

    def test_h3_view_centers_on_first_cell(self, session):
        session.ingest_csv("cells.csv", f"hex_id\n{CELL}\n")
        lat, lng = h3.cell_to_latlng(CELL)
        assert session.view.latitude == pytest.approx(lat)
        assert session.view.longitude == pytest.approx(lng)
        assert session.view.zoom == settings.h3_initial_zoom

    def test_progress(self, session):
        seen = []
        session.ingest_csv("pts.csv", POINTS_CSV, on_progress=seen.append, chunk_size=2)
        assert seen[-1] == 100.0
        assert seen == sorted(seen)

    def test_preview(self, session):
        cls = session.preview_csv(POINTS_CSV)
        assert cls.kind == "point"
        assert session.list_layers() == []


class TestGeoJSONIngestion:
    """GeoJSON uploads."""

    def test_preview(self, session):
        preview = session.preview_geojson(COLLECTION)
        assert preview.properties == ["name", "pop"]
        assert preview.selected_properties() == ["name", "pop"]
        preview.toggle("name")
        assert preview.selected_properties() == ["pop"]
        preview.deselect_all()
        assert preview.selected_properties() == []

    def test_ingest_with_selection(self, session):
        layer = session.ingest_geojson("f.geojson", COLLECTION, ["pop"]).layer
        assert layer.kind == "geojson"
        assert layer.records[0].properties == {"pop": 3}

    def test_view_fits_single_point(self, session):
        session.ingest_geojson("f.geojson", COLLECTION)
        assert (session.view.latitude, session.view.longitude, session.view.zoom) == (20.0, 10.0, 20.0)

    def test_empty_collection_keeps_view(self, session):
        session.ingest_geojson("empty.geojson", {"type": "FeatureCollection", "features": []})
        assert session.view.zoom == settings.initial_zoom

    @pytest.mark.parametrize("coordinates", [[10, "abc"], [10, None], [None, None]])
    def test_malformed_point_keeps_view(self, session, coordinates):
        """Unusable coordinates pass through but never reach the view."""
        result = session.ingest_geojson("bad.geojson", {
            "type": "FeatureCollection",
            "features": [{"type": "Feature", "geometry": {"type": "Point", "coordinates": coordinates}, "properties": {}}],
        })
        assert [l.layer_id for l in session.list_layers()] == [result.layer.layer_id]
        assert result.layer.records[0].geometry["coordinates"] == coordinates
        assert (session.view.latitude, session.view.longitude, session.view.zoom) == (
            settings.initial_latitude, settings.initial_longitude, settings.initial_zoom,
        )

    def test_malformed_point_ignored_in_extent(self, session):
        session.ingest_geojson("mixed.geojson", {
            "type": "FeatureCollection",
            "features": [
                {"type": "Feature", "geometry": {"type": "Point", "coordinates": [10, None]}, "properties": {}},
                {"type": "Feature", "geometry": {"type": "Point", "coordinates": [1, 2]}, "properties": {}},
            ],
        })
        assert (session.view.latitude, session.view.longitude) == (2.0, 1.0)

    def test_oversized_integer_property(self, session):
        """Integers beyond float range are not numeric and do not break summaries."""
        layer = session.ingest_geojson("big.geojson", {
            "type": "FeatureCollection",
            "features": [{"type": "Feature", "geometry": None, "properties": {"v": 10 ** 400, "n": 1}}],
        }).layer
        assert session.numeric_columns(layer.layer_id) == ["n"]
        v = next(s for s in session.column_summaries(layer.layer_id) if s.name == "v")
        assert v.type == "text"
        session.add_filter(layer.layer_id, {"column": "v", "type": "numeric", "value": {"type": "range", "min": 0, "max": 1}})
        assert session.filtered_records(layer.layer_id) == []
        session.set_color_mapping(layer.layer_id, "v", 3)


class TestLayerAttributes:
    """Visibility, color, opacity, point size, basemap."""

    def test_setters(self, session, points):
        session.set_visibility(points.layer_id, False)
        session.set_color(points.layer_id, "#00ff00")
        session.set_opacity(points.layer_id, 0.25)
        session.set_point_size(points.layer_id, 8)
        assert (points.visible, points.color, points.opacity, points.point_size) == (False, "#00ff00", 0.25, 8)

    @pytest.mark.parametrize("setter, value", [
        ("set_color", "green"),
        ("set_opacity", 1.5),
        ("set_opacity", -0.1),
        ("set_point_size", 0),
    ])
    def test_invalid_values(self, session, points, setter, value):
        with pytest.raises(ValueError):
            getattr(session, setter)(points.layer_id, value)

    def test_kind_is_immutable(self, points):
        with pytest.raises(AttributeError):
            points.kind = "h3"

    def test_basemap(self, session):
        assert session.basemap == settings.basemaps["Light"]
        session.set_basemap("Dark")
        assert session.basemap == settings.basemaps["Dark"]
        session.set_basemap(settings.basemaps["Satellite"])
        assert session.basemap == settings.basemaps["Satellite"]
        with pytest.raises(ValueError):
            session.set_basemap("Watercolor")


class TestFiltersAndMappings:
    """Filters narrow the records and drive mapping breaks."""

    RANGE = {"column": "pop", "type": "numeric", "value": {"type": "range", "min": 3, "max": 5}}

    def test_add_and_remove_filter(self, session, points):
        session.add_filter(points.layer_id, self.RANGE)
        assert [r.properties["pop"] for r in session.filtered_records(points.layer_id)] == ["3", "4", "5"]
        assert len(points.records) == 5
        session.remove_filter(points.layer_id, 0)
        assert len(session.filtered_records(points.layer_id)) == 5

    def test_remove_filter_out_of_range(self, session, points):
        with pytest.raises(ValueError):
            session.remove_filter(points.layer_id, 0)

    def test_get_filters_is_a_copy(self, session, points):
        session.add_filter(points.layer_id, self.RANGE)
        session.get_filters(points.layer_id).clear()
        assert len(session.get_filters(points.layer_id)) == 1

    def test_color_mapping(self, session, points):
        mapping = session.set_color_mapping(points.layer_id, "pop", 5, "Blues")
        assert mapping.breaks == [2.0, 3.0, 4.0, 5.0]
        assert points.color_mapping is mapping
        session.clear_color_mapping(points.layer_id)
        assert points.color_mapping is None

    def test_breaks_follow_filters(self, session, points):
        session.set_color_mapping(points.layer_id, "pop", 3)
        session.add_filter(points.layer_id, self.RANGE)
        assert points.color_mapping.breaks == [4.0, 5.0]
        session.remove_filter(points.layer_id, 0)
        assert points.color_mapping.breaks == [2.0, 4.0]

    def test_color_mapping_validation(self, session, points):
        with pytest.raises(ValueError):
            session.set_color_mapping(points.layer_id, "pop", 11)
        with pytest.raises(ValueError):
            session.set_color_mapping(points.layer_id, "pop", 5, "Rainbow")

    def test_size_mapping(self, session, points):
        mapping = session.set_size_mapping(points.layer_id, "pop", 5, 1.0, 10.0)
        assert (mapping.min_size, mapping.max_size) == (1.0, 10.0)
        assert len(mapping.breaks) == 4
        with pytest.raises(ValueError):
            session.set_size_mapping(points.layer_id, "pop", 5, 10.0, 1.0)
        session.clear_size_mapping(points.layer_id)
        assert points.size_mapping is None

    def test_size_mapping_points_only(self, session):
        layer = session.ingest_csv("cells.csv", f"hex_id,count\n{CELL},3\n").layer
        with pytest.raises(ValueError):
            session.set_size_mapping(layer.layer_id, "count", 5)

    def test_numeric_columns_and_summaries(self, session, points):
        assert session.numeric_columns(points.layer_id) == ["pop"]
        names = [s.name for s in session.column_summaries(points.layer_id)]
        assert names == ["pop", "kind"]


class TestFitView:

    def test_fit_view(self, session, points):
        session.ingest_geojson("f.geojson", COLLECTION)
        view = session.fit_view(points.layer_id)
        assert view.latitude == pytest.approx(12.0)
        assert session.view is view

    def test_fit_h3(self, session):
        layer = session.ingest_csv("cells.csv", f"hex_id\n{CELL}\n").layer
        session.view.zoom = 3.0
        view = session.fit_view(layer.layer_id)
        assert view.zoom == 20.0
