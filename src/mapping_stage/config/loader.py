"""Configuration loader for stage.toml.

Reads the TOML file and returns a validated ``StageConfig``.
"""

import tomllib
from pathlib import Path

from mapping_stage.config.models import ServerProfile, StageConfig, StoreConfig


def load_stage_config(config_path: Path | None = None) -> StageConfig:
    """Load staging configuration from TOML file.

    Args:
        config_path: Path to stage.toml (default: ``Path.cwd() / "stage.toml"``)

    Returns:
        StageConfig with the store settings and all server profiles

    Raises:
        FileNotFoundError: If config file doesn't exist
        pydantic.ValidationError: If a table has the wrong shape
    """
    if config_path is None:
        config_path = Path.cwd() / "stage.toml"

    if not config_path.exists():
        raise FileNotFoundError(
            f"Stage config not found: {config_path}\n"
            f"Create stage.toml with a [store] table and at least one [profiles.<name>] table."
        )

    with open(config_path, "rb") as f:
        data = tomllib.load(f)

    profiles = {}
    for name, profile_data in data.get("profiles", {}).items():
        profiles[name] = ServerProfile(**profile_data)

    return StageConfig(
        store=StoreConfig(**data.get("store", {})),
        profiles=profiles,
    )
