from __future__ import annotations

import functools
import logging
from dataclasses import dataclass
from pathlib import Path

from tseg.core.config import SetupConfig
from tseg.core.errors import LayoutError

logger = logging.getLogger("tseg.paths")

MODELS_DIRNAME = "models"
TILE_SCRATCH_DIRNAME = ".roi"
OUTPUT_SCRATCH_DIRNAME = ".output"


@dataclass(frozen=True)
class DirectoryLayout:
    """Working directories of the inference environment, all under one root."""

    root: Path
    model_repo_dir: Path
    models_dir: Path
    tile_scratch_dir: Path
    output_scratch_dir: Path
    log_name: str = "infer.log"
    result_name: str = "polygons.geojson"
    marker_name: str = ".setup_successful"

    @classmethod
    def resolve(
        cls,
        base_dir: Path,
        root_name: str,
        repo_name: str,
        *,
        log_name: str = "infer.log",
        result_name: str = "polygons.geojson",
        marker_name: str = ".setup_successful",
    ) -> DirectoryLayout:
        """Compute the layout under ``base_dir / root_name`` and create missing directories.

        The model repository itself is installed by setup and is not created here.
        """
        root = Path(base_dir).expanduser().resolve() / root_name
        layout = cls(
            root=root,
            model_repo_dir=root / repo_name,
            models_dir=root / MODELS_DIRNAME,
            tile_scratch_dir=root / TILE_SCRATCH_DIRNAME,
            output_scratch_dir=root / OUTPUT_SCRATCH_DIRNAME,
            log_name=log_name,
            result_name=result_name,
            marker_name=marker_name,
        )
        layout.ensure()
        return layout

    @classmethod
    def from_config(cls, setup: SetupConfig) -> DirectoryLayout:
        return cls.resolve(
            setup.resolve_base_dir(),
            setup.root_dir_name,
            setup.repo_name,
            log_name=setup.log_name,
            result_name=setup.result_name,
            marker_name=setup.marker_name,
        )

    def ensure(self) -> None:
        for d in (self.root, self.models_dir, self.tile_scratch_dir, self.output_scratch_dir):
            try:
                d.mkdir(parents=True, exist_ok=True)
            except OSError as exc:
                raise LayoutError(f"Failed to create directory {d}: {exc}") from exc
        logger.debug("Inference directories ready under %s", self.root)

    @property
    def scratch_dirs(self) -> tuple[Path, Path]:
        return self.tile_scratch_dir, self.output_scratch_dir

    @property
    def log_file(self) -> Path:
        return self.root / self.log_name

    @property
    def result_file(self) -> Path:
        return self.output_scratch_dir / self.result_name

    @property
    def setup_marker(self) -> Path:
        return self.root / self.marker_name

    def has_completed_setup(self) -> bool:
        return self.setup_marker.exists()

    def mark_setup_complete(self) -> Path:
        try:
            self.setup_marker.touch(exist_ok=True)
        except OSError as exc:
            raise LayoutError(f"Failed to create setup marker {self.setup_marker}: {exc}") from exc
        return self.setup_marker


@functools.lru_cache(maxsize=None)
def _cached_layout(
    base_dir: Path,
    root_name: str,
    repo_name: str,
    log_name: str,
    result_name: str,
    marker_name: str,
) -> DirectoryLayout:
    return DirectoryLayout.resolve(
        base_dir,
        root_name,
        repo_name,
        log_name=log_name,
        result_name=result_name,
        marker_name=marker_name,
    )


def default_layout(setup: SetupConfig | None = None) -> DirectoryLayout:
    """Layout for the given setup, resolved once per process and reused afterwards."""
    setup = setup or SetupConfig()
    return _cached_layout(
        setup.resolve_base_dir().expanduser().resolve(),
        setup.root_dir_name,
        setup.repo_name,
        setup.log_name,
        setup.result_name,
        setup.marker_name,
    )
