from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Sequence

from omegaconf import OmegaConf

from tseg.core.errors import InvalidArgumentError

BASE_DIR_ENV = "TSEG_BASE_DIR"


def _default_config_path() -> Path:
    return Path(__file__).resolve().parent.parent / "configs" / "defaults.yaml"


def _ensure_positive(value: float, name: str) -> float:
    if value <= 0:
        raise InvalidArgumentError(f"{name} must be > 0, got {value}")
    return value


def _ensure_fraction(value: float, name: str) -> float:
    if value < 0 or value > 1:
        raise InvalidArgumentError(f"{name} must be between 0 and 1, got {value}")
    return value


def _ensure_name(value: str, name: str) -> str:
    text = str(value).strip()
    if not text or "/" in text or "\\" in text:
        raise InvalidArgumentError(f"{name} must be a plain file name, got {value!r}")
    return text


@dataclass
class TileConfig:
    size: int = 512
    target_mpp: float = 0.5
    overlap: float = 0.1
    image_format: str = "png"

    @property
    def extension(self) -> str:
        return "." + self.image_format

    def validated(self) -> TileConfig:
        _ensure_positive(self.size, "tiles.size")
        _ensure_positive(self.target_mpp, "tiles.target_mpp")
        # overlap range is enforced by TileExportSpec at use time
        fmt = str(self.image_format).strip().lstrip(".").lower()
        if not fmt:
            raise InvalidArgumentError("image_format must not be empty")
        self.image_format = fmt
        return self


@dataclass
class InferenceSettings:
    confidence: float = 0.5
    default_model: str | None = None

    def validated(self) -> InferenceSettings:
        _ensure_fraction(self.confidence, "confidence")
        if self.default_model is not None and not str(self.default_model).strip():
            self.default_model = None
        return self


@dataclass
class SetupConfig:
    base_dir: Path | None = None
    root_dir_name: str = "tseg"
    repo_name: str = "tseg-inference"
    script_name: str = "infer.py"
    launcher: list[str] = field(default_factory=lambda: ["uv", "run"])
    log_name: str = "infer.log"
    result_name: str = "polygons.geojson"
    marker_name: str = ".setup_successful"

    def resolve_base_dir(self) -> Path:
        """Host user directory: explicit setting, then $TSEG_BASE_DIR, then home."""
        if self.base_dir is not None:
            return Path(self.base_dir).expanduser()
        env = os.environ.get(BASE_DIR_ENV)
        if env:
            return Path(env).expanduser()
        return Path.home()

    def validated(self) -> SetupConfig:
        for name in (
            "root_dir_name",
            "repo_name",
            "script_name",
            "log_name",
            "result_name",
            "marker_name",
        ):
            setattr(self, name, _ensure_name(getattr(self, name), name))
        self.launcher = [str(part) for part in self.launcher if str(part).strip()]
        if self.base_dir is not None:
            self.base_dir = Path(self.base_dir)
        return self


@dataclass
class TsegConfig:
    tiles: TileConfig = field(default_factory=TileConfig)
    inference: InferenceSettings = field(default_factory=InferenceSettings)
    setup: SetupConfig = field(default_factory=SetupConfig)

    def validated(self) -> TsegConfig:
        self.tiles = self.tiles.validated()
        self.inference = self.inference.validated()
        self.setup = self.setup.validated()
        return self


def _section(conf: Any, key: str) -> dict[str, Any]:
    node = conf.get(key)
    if node is None:
        return {}
    return dict(OmegaConf.to_container(node, resolve=True))  # type: ignore[arg-type]


def load_config(path: Path | None = None, overrides: Sequence[str] = ()) -> TsegConfig:
    """Load bundled defaults, merge an optional user YAML and ``key=value`` overrides."""
    layers = [OmegaConf.load(str(_default_config_path()))]
    if path is not None:
        if not Path(path).exists():
            raise FileNotFoundError(f"Config file not found: {path}")
        layers.append(OmegaConf.load(str(path)))
    if overrides:
        layers.append(OmegaConf.from_dotlist(list(overrides)))
    conf = OmegaConf.merge(*layers)

    try:
        cfg = TsegConfig(
            tiles=TileConfig(**_section(conf, "tiles")),
            inference=InferenceSettings(**_section(conf, "inference")),
            setup=SetupConfig(**_section(conf, "setup")),
        )
    except TypeError as exc:
        raise InvalidArgumentError(f"Invalid configuration: {exc}") from exc
    return cfg.validated()
