from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Sequence

from shapely.errors import ShapelyError
from shapely.geometry import MultiPolygon, Polygon, shape
from shapely.geometry.base import BaseGeometry

from tseg.core.annotations import Annotation
from tseg.core.errors import ResultNotFoundError, ResultParseError
from tseg.services.interfaces import ResultImporter, ViewerHost

logger = logging.getLogger("tseg.importer")

_POLYGONAL = (Polygon, MultiPolygon)


def _features(payload: Any) -> list[dict[str, Any]]:
    if isinstance(payload, list):
        features = payload
    elif isinstance(payload, dict) and payload.get("type") == "FeatureCollection":
        features = payload.get("features")
        if not isinstance(features, list):
            raise ResultParseError("FeatureCollection has no 'features' list")
    elif isinstance(payload, dict) and payload.get("type") == "Feature":
        features = [payload]
    else:
        raise ResultParseError("Expected a GeoJSON FeatureCollection, Feature or feature list")
    for i, feat in enumerate(features):
        if not isinstance(feat, dict) or feat.get("type") != "Feature":
            raise ResultParseError(f"Entry {i} is not a GeoJSON Feature")
    return features


def _geometry(feature: dict[str, Any], index: int) -> BaseGeometry:
    raw = feature.get("geometry")
    if not isinstance(raw, dict):
        raise ResultParseError(f"Feature {index} has no geometry")
    try:
        geom = shape(raw)
    except (ShapelyError, ValueError, TypeError, KeyError, IndexError, AttributeError) as exc:
        raise ResultParseError(f"Feature {index} has malformed geometry: {exc}") from exc
    if not isinstance(geom, _POLYGONAL):
        raise ResultParseError(f"Feature {index} is a {geom.geom_type}, expected a polygon")
    if geom.is_empty:
        raise ResultParseError(f"Feature {index} has empty geometry")
    if not geom.is_valid:
        raise ResultParseError(f"Feature {index} has invalid geometry")
    return geom


def _classification(props: dict[str, Any]) -> str | None:
    value = props.get("classification")
    if isinstance(value, dict):
        value = value.get("name")
    return str(value) if value is not None else None


def parse_annotations(payload: Any) -> list[Annotation]:
    """Build locked annotations from a parsed GeoJSON document."""
    annotations: list[Annotation] = []
    for i, feat in enumerate(_features(payload)):
        geom = _geometry(feat, i)
        props = feat.get("properties") or {}
        if not isinstance(props, dict):
            raise ResultParseError(f"Feature {i} has non-object properties")
        extra = {k: v for k, v in props.items() if k not in ("name", "classification")}
        ann = Annotation(
            geometry=geom,
            name=props.get("name"),
            classification=_classification(props),
            properties=extra,
            locked=True,
        )
        if feat.get("id") is not None:
            ann.id = str(feat["id"])
        annotations.append(ann)
    return annotations


def read_annotations(path: Path) -> list[Annotation]:
    path = Path(path)
    if not path.is_file():
        raise ResultNotFoundError(f"Result file not found: {path}")
    try:
        with path.open("r", encoding="utf-8") as fh:
            payload = json.load(fh)
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise ResultParseError(f"Result file is not valid JSON: {path}: {exc}") from exc
    return parse_annotations(payload)


class GeoJSONResultImporter(ResultImporter):
    """Attaches polygons from a GeoJSON result file under the selected annotation.

    The file is fully parsed before the hierarchy is touched, so a parse error
    leaves both the host and the target unchanged. Calling it twice on the same
    file duplicates the children.
    """

    def __init__(self, host: ViewerHost) -> None:
        self.host = host

    def import_result(self, target: Annotation, result_file: Path) -> list[Annotation]:
        annotations = read_annotations(result_file)
        self.host.add_objects(annotations)
        target.add_children(annotations)
        target.lock()
        logger.info("Imported %d polygon(s) from %s.", len(annotations), result_file)
        return annotations


def count_polygons(annotations: Sequence[Annotation]) -> int:
    return sum(
        len(a.geometry.geoms) if isinstance(a.geometry, MultiPolygon) else 1 for a in annotations
    )
