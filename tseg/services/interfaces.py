from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol, Sequence

from tseg.core.annotations import Annotation
from tseg.core.export_spec import TileExportSpec
from tseg.core.models import ImageInfo


@dataclass(frozen=True)
class CompletedInvocation:
    exit_code: int
    stdout: str
    stderr: str


class TileExporter(ABC):
    """Writes the tiles of ``spec.region`` into ``output_dir``."""

    @abstractmethod
    def export(self, image: ImageInfo, spec: TileExportSpec, output_dir: Path) -> None: ...


class ResultImporter(ABC):
    @abstractmethod
    def import_result(self, target: Annotation, result_file: Path) -> list[Annotation]: ...


class ProcessInvoker(Protocol):
    def invoke(self, command: str, args: Sequence[str], cwd: Path) -> CompletedInvocation: ...


class ViewerHost(Protocol):
    """Capabilities consumed from the host image viewer."""

    def current_image(self) -> ImageInfo | None: ...

    def selected_object(self) -> Annotation | None: ...

    def add_objects(self, annotations: Sequence[Annotation]) -> None: ...
