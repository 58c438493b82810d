"""Shared fixtures: a ready inference layout and in-memory stand-ins for the host."""

from __future__ import annotations

import json
import threading
from pathlib import Path

import pytest
from shapely.geometry import box

from tseg.core.annotations import Annotation
from tseg.core.models import ImageInfo
from tseg.core.paths import DirectoryLayout
from tseg.services.interfaces import CompletedInvocation, TileExporter


def square(x: float, y: float, size: float) -> dict:
    return {
        "type": "Polygon",
        "coordinates": [[[x, y], [x + size, y], [x + size, y + size], [x, y + size], [x, y]]],
    }


def feature_collection(*geometries: dict, **properties) -> dict:
    return {
        "type": "FeatureCollection",
        "features": [
            {"type": "Feature", "geometry": g, "properties": dict(properties)} for g in geometries
        ],
    }


class FakeExporter(TileExporter):
    def __init__(self, count: int = 3, extension: str = ".png") -> None:
        self.count = count
        self.extension = extension
        self.error: Exception | None = None
        self.calls: list[tuple] = []
        self.present_before: list[str] = []

    def export(self, image, spec, output_dir: Path) -> None:
        self.calls.append((image, spec, Path(output_dir)))
        self.present_before = sorted(p.name for p in Path(output_dir).iterdir())
        if self.error is not None:
            raise self.error
        for i in range(self.count):
            (Path(output_dir) / f"tile_{i:03d}{self.extension}").write_bytes(b"\x89PNG")


class FakeInvoker:
    """Records invocations and plays back a canned process result.

    ``payload`` is written as the result GeoJSON into the ``--output-dir``
    argument; ``None`` writes nothing and a ``str`` is written verbatim.
    """

    def __init__(self) -> None:
        self.exit_code = 0
        self.stdout = json.dumps({"n_polygons": 2, "runtime_sec": 1.5})
        self.stderr = ""
        self.payload: dict | str | None = feature_collection(
            square(0, 0, 10), square(20, 20, 10), classification="Tumor"
        )
        self.calls: list[tuple[str, list[str], Path]] = []
        self.started = threading.Event()
        self.release: threading.Event | None = None

    def invoke(self, command, args, cwd) -> CompletedInvocation:
        args = list(args)
        self.calls.append((command, args, Path(cwd)))
        self.started.set()
        if self.release is not None:
            self.release.wait(timeout=10)
        if self.payload is not None:
            out_dir = Path(args[args.index("--output-dir") + 1])
            text = self.payload if isinstance(self.payload, str) else json.dumps(self.payload)
            (out_dir / "polygons.geojson").write_text(text, encoding="utf-8")
        return CompletedInvocation(self.exit_code, self.stdout, self.stderr)


class FakeHost:
    def __init__(self, image: ImageInfo | None, selection: Annotation | None) -> None:
        self.image = image
        self.selection = selection
        self.added: list[Annotation] = []

    def current_image(self):
        return self.image

    def selected_object(self):
        return self.selection

    def add_objects(self, annotations) -> None:
        self.added.extend(annotations)


@pytest.fixture
def layout(tmp_path: Path) -> DirectoryLayout:
    """Layout whose setup has completed and whose inference script is executable."""
    lay = DirectoryLayout.resolve(tmp_path, "tseg", "tseg-inference")
    lay.model_repo_dir.mkdir()
    script = lay.model_repo_dir / "infer.py"
    script.write_text("#!/bin/sh\nexit 0\n")
    script.chmod(0o755)
    lay.mark_setup_complete()
    return lay


@pytest.fixture
def exporter() -> FakeExporter:
    return FakeExporter()


@pytest.fixture
def invoker() -> FakeInvoker:
    return FakeInvoker()


@pytest.fixture
def image() -> ImageInfo:
    return ImageInfo(name="slide.svs", pixel_size_um=0.25, width=40000, height=30000)


@pytest.fixture
def selection() -> Annotation:
    return Annotation(geometry=box(100.4, 200.5, 400.4, 600.5), name="ROI")


@pytest.fixture
def host(image, selection) -> FakeHost:
    return FakeHost(image, selection)


@pytest.fixture
def write_geojson(tmp_path: Path):
    def _write(payload, name: str = "result.geojson") -> Path:
        path = tmp_path / name
        text = payload if isinstance(payload, str) else json.dumps(payload)
        path.write_text(text, encoding="utf-8")
        return path

    return _write
