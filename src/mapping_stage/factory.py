"""Workspace factory.

Resolves the active server profile from stage.toml and builds a
``StagingWorkspace`` wired to the local store and that server.

Profile resolution:
1. ``{env_prefix}STAGE_PROFILE`` env var (first load, CI/CD)
2. ``.stage-profile`` lock file in the working directory (written after a
   successful load)
3. Raise ProfileNotFoundError
"""

import logging
import os
from pathlib import Path
from urllib.parse import quote

from mapping_stage.adapters.sql import AsyncSQLAdapter
from mapping_stage.config.loader import load_stage_config
from mapping_stage.config.models import ServerProfile, StageConfig, StoreConfig
from mapping_stage.errors import ProfileNotFoundError
from mapping_stage.server.database import DatabaseMappingServer
from mapping_stage.staging.workspace import StagingWorkspace
from mapping_stage.store.sql_store import SQLEntityStore

logger = logging.getLogger(__name__)

_PROFILE_LOCK_NAME = ".stage-profile"


# ============================================================================
# Profile Lock File Operations
# ============================================================================


def _profile_lock_path() -> Path:
    return Path.cwd() / _PROFILE_LOCK_NAME


def read_profile_lock() -> str | None:
    """Read profile name from lock file.

    Returns:
        Profile name if lock file exists, None otherwise
    """
    lock_path = _profile_lock_path()
    if lock_path.exists():
        return lock_path.read_text().strip() or None
    return None


def write_profile_lock(profile_name: str) -> None:
    """Write profile name to lock file.

    Only call this after the profile was loaded successfully.
    """
    _profile_lock_path().write_text(profile_name)


def get_active_profile_name(env_prefix: str = "") -> str:
    """Get active profile name from env var or lock file.

    Args:
        env_prefix: Prefix for the env var, e.g. ``"APP_"`` reads
            ``APP_STAGE_PROFILE``.

    Returns:
        Profile name

    Raises:
        ProfileNotFoundError: If no profile is configured
    """
    env_var = f"{env_prefix}STAGE_PROFILE"
    env_profile = os.environ.get(env_var)
    if env_profile:
        return env_profile

    lock_profile = read_profile_lock()
    if lock_profile:
        return lock_profile

    raise ProfileNotFoundError(
        "No server profile configured.\n"
        f"Run: {env_var}=<name> mapping-stage load"
    )


def get_active_profile(
    env_prefix: str = "", config: StageConfig | None = None
) -> tuple[str, ServerProfile]:
    """Get active profile name and configuration.

    Raises:
        ProfileNotFoundError: If no profile configured
        KeyError: If profile not found in stage.toml
    """
    profile_name = get_active_profile_name(env_prefix)
    if config is None:
        config = load_stage_config()

    if profile_name not in config.profiles:
        raise KeyError(
            f"Profile '{profile_name}' not found in stage.toml.\n"
            f"Available profiles: {', '.join(config.profiles.keys())}"
        )

    return profile_name, config.profiles[profile_name]


# ============================================================================
# Workspace Construction
# ============================================================================


def resolve_url(profile: ServerProfile) -> str:
    """Resolve profile URL with password substitution.

    Example:
        >>> resolve_url(ServerProfile(url="postgresql://u:[YOUR-PASSWORD]@h/db", db_password="p@ss"))
        'postgresql://u:p%40ss@h/db'
    """
    url = profile.url
    if profile.db_password and "[YOUR-PASSWORD]" in url:
        url = url.replace("[YOUR-PASSWORD]", quote(profile.db_password, safe=""))
    return url


async def open_store(store_config: StoreConfig) -> SQLEntityStore:
    """Open the local entity store and create its tables."""
    store = SQLEntityStore(AsyncSQLAdapter(store_config.url, echo=store_config.echo))
    await store.initialize()
    return store


def create_server(profile: ServerProfile) -> DatabaseMappingServer:
    return DatabaseMappingServer(AsyncSQLAdapter(resolve_url(profile)), table=profile.table)


async def open_workspace(
    profile_name: str | None = None,
    env_prefix: str = "",
    config_path: Path | None = None,
) -> StagingWorkspace:
    """Build a workspace for a server profile.

    The local store keeps whatever the last load left in it; call
    ``workspace.load()`` to refresh it from the server.

    Args:
        profile_name: Profile from stage.toml. If None, the active profile
            is resolved from the env var or lock file.
        env_prefix: Prefix for the profile env var.
        config_path: Path to stage.toml (default: working directory).

    Raises:
        FileNotFoundError: If stage.toml is missing
        ProfileNotFoundError: If no profile is configured
        KeyError: If the profile is not in stage.toml

    Example:
        >>> workspace = await open_workspace("staging")
        >>> await workspace.load()
        >>> ...
        >>> await close_workspace(workspace)
    """
    config = load_stage_config(config_path)
    if profile_name is None:
        profile_name, profile = get_active_profile(env_prefix, config)
    elif profile_name in config.profiles:
        profile = config.profiles[profile_name]
    else:
        raise KeyError(
            f"Profile '{profile_name}' not found in stage.toml.\n"
            f"Available profiles: {', '.join(config.profiles.keys())}"
        )

    logger.debug(f"Opening workspace for profile {profile_name}")
    store = await open_store(config.store)
    return StagingWorkspace(store, create_server(profile))


async def close_workspace(workspace: StagingWorkspace) -> None:
    """Close the workspace's store and server connections."""
    await workspace.store.close()
    await workspace.server.close()
