"""Catalog source adapters."""

from src.providers.catalog.yaml_catalog_source import YamlCatalogSource

__all__ = ["YamlCatalogSource"]
