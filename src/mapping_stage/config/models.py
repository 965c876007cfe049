"""Pydantic models for stage.toml."""

from pydantic import BaseModel, Field


# ============================================================================
# Configuration Models
# ============================================================================


class StoreConfig(BaseModel):
    """Local entity store settings from the ``[store]`` table."""

    url: str = "sqlite:///.stage.db"
    echo: bool = False  # Log every SQL statement of the local store


class ServerProfile(BaseModel):
    """Mapping server connection profile from ``[profiles.<name>]``."""

    url: str
    description: str = ""
    db_password: str | None = None  # For [YOUR-PASSWORD] placeholder substitution
    table: str = "dms_tables"


class StageConfig(BaseModel):
    """Complete staging configuration from stage.toml."""

    store: StoreConfig = Field(default_factory=StoreConfig)
    profiles: dict[str, ServerProfile] = Field(default_factory=dict)
