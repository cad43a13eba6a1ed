"""TOML configuration loader.

Loads quorum parameters and store settings from defaults.toml, or from
a user-supplied file with the same ``[consensus]``, ``[store]`` and
``[service]`` sections.
"""

from __future__ import annotations

import tomllib
from pathlib import Path

from pydantic import ValidationError

from kycquorum.errors import ConfigError
from kycquorum.schemas.config import (
    ConsensusConfig,
    ServiceConfig,
    Settings,
    StoreConfig,
)

# Default config directory relative to the kycquorum package
_CONFIG_DIR = Path(__file__).parent / "config"


def default_config_path() -> Path:
    """Path to the defaults.toml shipped with the package."""
    return _CONFIG_DIR / "defaults.toml"


def load_settings(config_path: Path | None = None) -> Settings:
    """Load settings from a TOML file.

    Args:
        config_path: Path to a TOML file. Defaults to the packaged
            kycquorum/config/defaults.toml.

    Returns:
        Settings with consensus and store sections.

    Raises:
        FileNotFoundError: If the config file does not exist.
        ConfigError: If the TOML is malformed or holds invalid values.
    """
    path = config_path or default_config_path()
    if not path.exists():
        raise FileNotFoundError(f"Config not found: {path}")

    try:
        with open(path, "rb") as f:
            raw = tomllib.load(f)
    except tomllib.TOMLDecodeError as exc:
        raise ConfigError(f"Invalid TOML in {path}: {exc}") from exc

    try:
        return Settings(
            consensus=ConsensusConfig(**raw.get("consensus", {})),
            store=StoreConfig(**raw.get("store", {})),
            service=ServiceConfig(**raw.get("service", {})),
        )
    except ValidationError as exc:
        raise ConfigError(f"Invalid configuration in {path}: {exc}") from exc
