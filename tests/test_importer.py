"""Tests for GeoJSON result import and annotation locking."""

import pytest
from conftest import FakeHost, feature_collection, square
from shapely.geometry import MultiPolygon, box

from tseg.core.annotations import Annotation
from tseg.core.errors import AnnotationLockedError, ResultNotFoundError, ResultParseError
from tseg.services.importer import (
    GeoJSONResultImporter,
    count_polygons,
    parse_annotations,
    read_annotations,
)


class TestReadAnnotations:
    """Test parsing of result files."""

    def test_feature_collection(self, write_geojson):
        """Test polygons become locked annotations with their properties."""
        payload = feature_collection(
            square(0, 0, 10),
            square(20, 20, 5),
            classification={"name": "Tumor", "color": [200, 0, 0]},
            score=0.9,
        )
        annotations = read_annotations(write_geojson(payload))
        assert len(annotations) == 2
        first = annotations[0]
        assert first.locked
        assert first.classification == "Tumor"
        assert first.properties == {"score": 0.9}
        assert first.geometry.area == pytest.approx(100)

    def test_plain_classification_and_id(self):
        """Test string classifications and feature ids are kept."""
        payload = {
            "type": "Feature",
            "id": "cell-7",
            "geometry": square(0, 0, 1),
            "properties": {"classification": "Stroma", "name": "region"},
        }
        (ann,) = parse_annotations(payload)
        assert ann.id == "cell-7"
        assert ann.name == "region"
        assert ann.classification == "Stroma"

    def test_feature_list(self):
        """Test a bare list of features is accepted."""
        payload = feature_collection(square(0, 0, 1), square(5, 5, 1))["features"]
        assert len(parse_annotations(payload)) == 2

    def test_multipolygon(self):
        """Test multipolygons are kept whole and counted by part."""
        multi = {
            "type": "MultiPolygon",
            "coordinates": [square(0, 0, 1)["coordinates"], square(5, 5, 1)["coordinates"]],
        }
        annotations = parse_annotations(feature_collection(multi, square(9, 9, 1)))
        assert isinstance(annotations[0].geometry, MultiPolygon)
        assert count_polygons(annotations) == 3

    def test_empty_collection(self):
        """Test a result without detections yields nothing."""
        assert parse_annotations(feature_collection()) == []

    def test_missing_file(self, tmp_path):
        """Test a missing file is reported as such."""
        with pytest.raises(ResultNotFoundError):
            read_annotations(tmp_path / "absent.geojson")

    def test_malformed_json(self, write_geojson):
        """Test unparsable content is a parse error."""
        with pytest.raises(ResultParseError):
            read_annotations(write_geojson("{not json"))

    @pytest.mark.parametrize(
        "payload",
        [
            {"type": "Point", "coordinates": [1, 2]},
            {"type": "FeatureCollection"},
            feature_collection({"type": "Point", "coordinates": [1, 2]}),
            feature_collection({"type": "Polygon", "coordinates": "nonsense"}),
            feature_collection(
                {"type": "Polygon", "coordinates": [[[0, 0], [2, 2], [2, 0], [0, 2], [0, 0]]]}
            ),
            {"type": "FeatureCollection", "features": [{"type": "Feature"}]},
        ],
        ids=["bare-geometry", "no-features", "point", "bad-coords", "bow-tie", "no-geometry"],
    )
    def test_rejects_invalid_content(self, payload):
        """Test non-polygonal, malformed or invalid geometries are rejected."""
        with pytest.raises(ResultParseError):
            parse_annotations(payload)


class TestGeoJSONResultImporter:
    """Test attaching imported polygons to the selection."""

    def test_import_attaches_and_locks(self, write_geojson, image):
        """Test children are added, the host is told and the target is locked."""
        target = Annotation(geometry=box(0, 0, 100, 100))
        host = FakeHost(image, target)
        path = write_geojson(feature_collection(square(0, 0, 10), square(20, 20, 10)))

        imported = GeoJSONResultImporter(host).import_result(target, path)

        assert len(imported) == 2
        assert target.children == imported
        assert all(child.parent is target for child in imported)
        assert host.added == imported
        assert target.locked

    def test_failed_import_leaves_hierarchy_unchanged(self, write_geojson, image):
        """Test one bad feature means nothing is imported."""
        target = Annotation(geometry=box(0, 0, 100, 100))
        host = FakeHost(image, target)
        payload = feature_collection(square(0, 0, 10), {"type": "Point", "coordinates": [1, 1]})

        with pytest.raises(ResultParseError):
            GeoJSONResultImporter(host).import_result(target, write_geojson(payload))

        assert target.children == []
        assert host.added == []
        assert not target.locked

    def test_missing_file_mutates_nothing(self, tmp_path, image):
        """Test a missing result file fails before touching the hierarchy."""
        target = Annotation(geometry=box(0, 0, 100, 100))
        host = FakeHost(image, target)
        with pytest.raises(ResultNotFoundError):
            GeoJSONResultImporter(host).import_result(target, tmp_path / "absent.geojson")
        assert target.children == []
        assert host.added == []
        assert not target.locked

    def test_import_twice_duplicates(self, write_geojson, image):
        """Test importing the same file again adds another set of children."""
        target = Annotation(geometry=box(0, 0, 100, 100))
        importer = GeoJSONResultImporter(FakeHost(image, target))
        path = write_geojson(feature_collection(square(0, 0, 10)))
        importer.import_result(target, path)
        importer.import_result(target, path)
        assert len(target.children) == 2


class TestAnnotation:
    """Test annotation hierarchy and locking."""

    def test_region_from_geometry(self):
        """Test the region is the geometry's bounding box."""
        ann = Annotation(geometry=box(10, 20, 110, 70))
        region = ann.region
        assert (region.x, region.y, region.width, region.height) == (10, 20, 100, 50)

    def test_locked_rejects_geometry_edit(self):
        """Test geometry edits require unlocking."""
        ann = Annotation(geometry=box(0, 0, 1, 1), locked=True)
        with pytest.raises(AnnotationLockedError):
            ann.set_geometry(box(0, 0, 2, 2))
        ann.unlock()
        ann.set_geometry(box(0, 0, 2, 2))
        assert ann.geometry.area == pytest.approx(4)

    def test_add_children_sets_parent(self):
        """Test children point back at their parent."""
        root = Annotation(geometry=box(0, 0, 10, 10))
        child = Annotation(geometry=box(0, 0, 5, 5))
        root.add_children([child])
        assert root.children == [child]
        assert child.parent is root

    def test_unique_ids(self):
        """Test each annotation gets its own id."""
        assert Annotation(geometry=box(0, 0, 1, 1)).id != Annotation(geometry=box(0, 0, 1, 1)).id
