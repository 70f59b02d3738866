"""YAML catalog loader.

# ─── CATALOG FILE ──────────────────────────────────────────────────────
#
# The model catalog is static data checked into the repo
# (config/catalog.yaml by default, CATALOG_PATH to override):
#
#   presets:   named chat configurations (system prompt, sampling params)
#   packs:     downloadable model artifacts {id, url, filename, size_bytes}
#
# JSON is a subset of YAML, so a catalog exported as JSON loads too.
# ──────────────────────────────────────────────────────────────────────
"""

from pathlib import Path

import yaml

from src.utils.errors import ConfigurationError

_EMPTY_CATALOG: dict = {"presets": [], "packs": []}


def load_config(path: str | Path = "config/catalog.yaml") -> dict:
    """Load the catalog file and fill in missing top-level sections.

    Args:
        path: Path to the YAML (or JSON) catalog file.

    Returns:
        Dict with ``presets`` and ``packs`` lists.  A missing file yields
        empty lists.

    Raises:
        ConfigurationError: When the file is not valid YAML or not a mapping.
    """
    config_path = Path(path)
    if not config_path.exists():
        return {key: list(value) for key, value in _EMPTY_CATALOG.items()}

    try:
        with open(config_path, encoding="utf-8") as f:
            raw = yaml.safe_load(f) or {}
    except yaml.YAMLError as exc:
        raise ConfigurationError(
            message=f"Catalog file {config_path} is not valid YAML: {exc}",
            component="catalog",
        ) from exc

    if not isinstance(raw, dict):
        raise ConfigurationError(
            message=f"Catalog file {config_path} must contain a mapping",
            component="catalog",
        )

    result = {key: list(value) for key, value in _EMPTY_CATALOG.items()}
    _deep_merge(result, raw)
    return result


def _deep_merge(base: dict, overrides: dict) -> None:
    """Recursively merge *overrides* into *base* in place."""
    for key, value in overrides.items():
        if key in base and isinstance(base[key], dict) and isinstance(value, dict):
            _deep_merge(base[key], value)
        elif value is not None:
            base[key] = value
