"""Configuration management: profiles, TOML loading, and config models.

Usage:
    >>> from mapping_stage.config import load_stage_config, StageConfig, ServerProfile
"""

from mapping_stage.config.loader import load_stage_config
from mapping_stage.config.models import ServerProfile, StageConfig, StoreConfig

__all__ = ["load_stage_config", "StageConfig", "StoreConfig", "ServerProfile"]
