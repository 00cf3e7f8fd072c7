"""Archive configuration — TOML document with defaults and validation."""

from __future__ import annotations

import copy
import tomllib
from pathlib import Path
from typing import Any

from segarc.errors import ConfigError
from segarc.models.segment import Segment

DEFAULT_CONFIG_PATH = Path("config.toml")


def load_config(path: str | Path = DEFAULT_CONFIG_PATH) -> Config:
    """Read, validate and return the configuration at ``path``."""
    path = Path(path)
    try:
        with open(path, "rb") as f:
            data = tomllib.load(f)
    except OSError as e:
        raise ConfigError(f"Failed to read config file {path}: {e}") from e
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"Failed to parse config TOML {path}: {e}") from e
    return Config(data, source=path)


class Config:
    """Validated archive configuration.

    Unset optional paths are ``None``. Segment order follows declaration
    order in the document.
    """

    _DEFAULTS: dict[str, Any] = {
        "output_path": "/tmp",
        "root_path": "",
        "post_script": "",
        "skip_script": "",
        "hash_file": "",
        "log_file": "",
        "compression_level": 6,
        "max_size_bytes": None,
        "ignore": [],
        "segments": {},
    }

    def __init__(self, data: dict[str, Any] | None = None, source: Path | None = None) -> None:
        self._data = copy.deepcopy(self._DEFAULTS)
        self._data.update(data or {})
        self._source = source
        self._validate()

    # ── Validation ──

    def _validate(self) -> None:
        unknown = set(self._data) - set(self._DEFAULTS)
        if unknown:
            raise ConfigError(f"Unknown config keys: {', '.join(sorted(unknown))}")

        for key in ("output_path", "root_path", "post_script", "skip_script", "hash_file", "log_file"):
            if not isinstance(self._data[key], str):
                raise ConfigError(f"'{key}' must be a path string")

        segments = self._data["segments"]
        if not isinstance(segments, dict) or not segments:
            raise ConfigError("'segments' must map at least one name to a path")
        seen: dict[Path, str] = {}
        for name, raw in segments.items():
            if not isinstance(raw, str) or not raw:
                raise ConfigError(f"Segment '{name}' must map to a path string")
            if "/" in name or name in (".", ".."):
                raise ConfigError(f"Segment name '{name}' is not a valid file name")
            root = Path(raw)
            if root in seen:
                raise ConfigError(f"Segments '{seen[root]}' and '{name}' share the root {root}")
            seen[root] = name
            if self.root_path is not None and not root.is_relative_to(self.root_path):
                raise ConfigError(f"Segment '{name}' ({root}) is outside root_path {self.root_path}")

        level = self._data["compression_level"]
        if isinstance(level, bool) or not isinstance(level, int) or not 0 <= level <= 9:
            raise ConfigError(f"'compression_level' must be an integer 0-9, got {level!r}")

        max_size = self._data["max_size_bytes"]
        if max_size is not None and (isinstance(max_size, bool) or not isinstance(max_size, int) or max_size < 1):
            raise ConfigError(f"'max_size_bytes' must be a positive integer, got {max_size!r}")

        ignore = self._data["ignore"]
        if not isinstance(ignore, list) or not all(isinstance(p, str) for p in ignore):
            raise ConfigError("'ignore' must be a list of strings")

    def prepare_output_dir(self) -> Path:
        """Create the output directory if needed and return it."""
        out = self.output_path
        if out.exists() and not out.is_dir():
            raise ConfigError(f"Output path exists but is not a directory: {out}")
        if not out.parent.exists():
            raise ConfigError(f"Output directory not found: {out.parent}")
        out.mkdir(exist_ok=True)
        return out

    # ── Generic access ──

    def get(self, key: str, default: Any = None) -> Any:
        return self._data.get(key, default)

    def _optional_path(self, key: str) -> Path | None:
        raw = self._data.get(key, "")
        return Path(raw) if raw else None

    # ── Typed properties ──

    @property
    def source(self) -> Path | None:
        return self._source

    @property
    def output_path(self) -> Path:
        return Path(self._data["output_path"])

    @property
    def root_path(self) -> Path | None:
        return self._optional_path("root_path")

    @property
    def post_script(self) -> Path | None:
        return self._optional_path("post_script")

    @property
    def skip_script(self) -> Path | None:
        return self._optional_path("skip_script")

    @property
    def hash_file(self) -> Path | None:
        return self._optional_path("hash_file")

    @property
    def log_file(self) -> Path | None:
        return self._optional_path("log_file")

    @property
    def compression_level(self) -> int:
        return int(self._data["compression_level"])

    @property
    def max_size_bytes(self) -> int | None:
        return self._data["max_size_bytes"]

    @property
    def ignore(self) -> list[str]:
        return list(self._data["ignore"])

    @property
    def segments(self) -> list[Segment]:
        return [Segment(name=name, root_path=Path(raw)) for name, raw in self._data["segments"].items()]
