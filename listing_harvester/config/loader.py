"""YAML-backed storage of the global and per-source configuration."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Iterator

import yaml

from .models import GlobalConfig, SourceConfig

HOME_ENV = "LISTING_HARVESTER_HOME"
GLOBAL_CONFIG_FILENAME = "global_config.yaml"
SOURCE_SUFFIXES = (".yaml", ".yml")


def home_dir(default: Path | None = None) -> Path:
    """``$LISTING_HARVESTER_HOME`` when set, else ``default``, else the working directory."""

    env_root = os.environ.get(HOME_ENV)
    if env_root:
        return Path(env_root).expanduser().resolve()
    return (default or Path.cwd()).resolve()


def slugify(name: str) -> str:
    return "".join(ch.lower() if ch.isalnum() else "-" for ch in name).strip("-")


def _load_mapping(path: Path) -> dict:
    data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Configuration file must contain a mapping: {path}")
    return data


def _dump_mapping(path: Path, payload: dict) -> None:
    with path.open("w", encoding="utf-8") as stream:
        yaml.safe_dump(payload, stream, allow_unicode=True, sort_keys=False)


class ConfigLocator:
    """Directory layout of one harvester home.

    ``data/global_config.yaml``, ``data/sources/*.yaml``, ``data/store/`` for
    the listing database and ``logs/``. Directories are created eagerly.
    """

    def __init__(self, project_root: Path | None = None) -> None:
        self.project_root = home_dir(project_root)
        self.data_dir = self.project_root / "data"
        self.store_dir = self.data_dir / "store"
        self.sources_dir = self.data_dir / "sources"
        self.logs_dir = self.project_root / "logs"
        for directory in (self.store_dir, self.sources_dir, self.logs_dir):
            directory.mkdir(parents=True, exist_ok=True)

    def global_config_path(self) -> Path:
        return self.data_dir / GLOBAL_CONFIG_FILENAME


class ConfigRepository:
    """Load, validate and persist configuration files of one harvester home."""

    def __init__(self, locator: ConfigLocator | None = None) -> None:
        self.locator = locator or ConfigLocator()
        self._global_cache: GlobalConfig | None = None

    def load_global_config(self) -> GlobalConfig:
        # written with defaults on first use so users have a file to edit
        if self._global_cache is None:
            path = self.locator.global_config_path()
            if path.exists():
                self._global_cache = GlobalConfig.model_validate(_load_mapping(path))
            else:
                self.save_global_config(GlobalConfig())
        return self._global_cache

    def save_global_config(self, config: GlobalConfig) -> None:
        _dump_mapping(self.locator.global_config_path(), config.model_dump(mode="json"))
        self._global_cache = config

    def store_path(self) -> Path:
        return self.load_global_config().resolved_store_path(self.locator.project_root)

    def source_path(self, source_name: str) -> Path:
        return self.locator.sources_dir / f"{slugify(source_name)}.yaml"

    def _source_files(self) -> Iterator[Path]:
        for path in sorted(self.locator.sources_dir.iterdir()):
            if path.is_file() and path.suffix in SOURCE_SUFFIXES:
                yield path

    def list_sources(self) -> list[SourceConfig]:
        return [self.load_source(path) for path in self._source_files()]

    def load_source(self, identifier: str | Path) -> SourceConfig:
        path = identifier if isinstance(identifier, Path) else self.source_path(identifier)
        if not path.exists():
            raise FileNotFoundError(f"Source configuration not found: {identifier}")
        return SourceConfig.model_validate(_load_mapping(path))

    def save_source(self, config: SourceConfig) -> Path:
        path = self.source_path(config.source_name)
        _dump_mapping(path, config.model_dump(mode="json"))
        return path

    def delete_source(self, source_name: str) -> bool:
        path = self.source_path(source_name)
        if not path.exists():
            return False
        path.unlink()
        return True


__all__ = ["ConfigLocator", "ConfigRepository", "HOME_ENV", "home_dir", "slugify"]
