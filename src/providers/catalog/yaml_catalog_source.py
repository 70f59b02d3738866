"""Read-only model catalog backed by a YAML (or JSON) file."""

from __future__ import annotations

from pathlib import Path

import structlog
from pydantic import ValidationError

from src.config.loader import load_config
from src.interfaces.catalog_source import ICatalogSource
from src.models.catalog import PackSource, Preset
from src.utils.errors import ConfigurationError, NotFoundError

logger = structlog.get_logger(logger_name=__name__)


class YamlCatalogSource(ICatalogSource):
    """Loads presets and packs once at construction; lookups are by id."""

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)
        raw = load_config(self._path)
        try:
            self._presets = [Preset.model_validate(item) for item in raw["presets"]]
            self._packs = [PackSource.model_validate(item) for item in raw["packs"]]
        except ValidationError as exc:
            raise ConfigurationError(
                message=f"Invalid catalog entry in {self._path}: {exc}",
                component="catalog",
            ) from exc

        logger.info(
            "catalog_loaded",
            path=str(self._path),
            presets=len(self._presets),
            packs=len(self._packs),
        )

    def list_presets(self) -> list[Preset]:
        return list(self._presets)

    def get_preset(self, preset_id: str) -> Preset:
        for preset in self._presets:
            if preset.id == preset_id:
                return preset
        raise NotFoundError(message=f"Unknown preset: {preset_id}", component="catalog")

    def list_packs(self) -> list[PackSource]:
        return list(self._packs)

    def get_pack(self, key: str) -> PackSource:
        for pack in self._packs:
            if pack.id == key:
                return pack
        raise NotFoundError(message=f"Unknown model pack: {key}", component="catalog")
