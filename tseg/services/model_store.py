from __future__ import annotations

import logging
import shutil
from pathlib import Path

from tseg.core.errors import (
    InvalidArgumentError,
    ModelExistsError,
    ResultNotFoundError,
)
from tseg.core.models import SUPPORTED_MODEL_SUFFIX

logger = logging.getLogger("tseg.models")


def is_supported_model(path: Path) -> bool:
    return Path(path).name.lower().endswith(SUPPORTED_MODEL_SUFFIX)


class ModelStore:
    """User-added ONNX models kept in the layout's ``models`` directory."""

    def __init__(self, models_dir: Path, *, default_model: str | None = None) -> None:
        self.models_dir = Path(models_dir)
        self.default_model = default_model

    def list_models(self) -> list[Path]:
        if not self.models_dir.is_dir():
            return []
        return sorted(p for p in self.models_dir.iterdir() if p.is_file())

    def add(self, source: Path) -> Path:
        source = Path(source)
        if not is_supported_model(source):
            raise InvalidArgumentError(f"Unsupported model format: {source.name}")
        if not source.is_file():
            raise ResultNotFoundError(f"Model file not found: {source}")

        target = self.models_dir / source.name
        if source.resolve() == target.resolve():
            logger.warning("Model already in destination: %s", target)
            return target
        if target.exists():
            raise ModelExistsError(
                f"A model named {source.name} already exists. Please rename your model."
            )
        self.models_dir.mkdir(parents=True, exist_ok=True)
        shutil.copy2(source, target)
        logger.info("Added model %s", target.name)
        return target

    def resolve(self, name: str | None = None) -> Path:
        """Pick a model: explicit name, then the preferred default, then the first stored one."""
        for candidate in (name, self.default_model):
            if not candidate:
                continue
            path = Path(candidate)
            if not path.is_absolute():
                path = self.models_dir / path
            if not is_supported_model(path):
                raise InvalidArgumentError(f"Unsupported model format: {path.name}")
            if path.is_file():
                return path
            if candidate == name:
                raise ResultNotFoundError(f"Model not found: {path}")
            logger.warning("Preferred model %s is missing; falling back.", path)
        models = [p for p in self.list_models() if is_supported_model(p)]
        if not models:
            raise ResultNotFoundError(f"No models found in {self.models_dir}")
        return models[0]
