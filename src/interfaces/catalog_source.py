"""Abstract base class for the read-only model catalog."""

from __future__ import annotations

from abc import ABC, abstractmethod

from src.models.catalog import PackSource, Preset


# Concrete implementations:
#   YamlCatalogSource -- config/catalog.yaml (or a JSON export)
# Located in: src/providers/catalog/
class ICatalogSource(ABC):
    """Contract for the static list of chat presets and downloadable packs."""

    @abstractmethod
    def list_presets(self) -> list[Preset]:
        """Return every chat preset in catalog order."""

    @abstractmethod
    def get_preset(self, preset_id: str) -> Preset:
        """Return one preset.

        Raises
        ------
        src.utils.errors.NotFoundError
            If *preset_id* is not in the catalog.
        """

    @abstractmethod
    def list_packs(self) -> list[PackSource]:
        """Return every downloadable model pack in catalog order."""

    @abstractmethod
    def get_pack(self, key: str) -> PackSource:
        """Return the download source for *key*.

        Raises
        ------
        src.utils.errors.NotFoundError
            If *key* is not in the catalog.
        """
