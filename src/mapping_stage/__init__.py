"""mapping-stage: Offline staging and atomic commit of ETL field mappings.

Keeps a local, editable copy of the server's service -> database ->
table -> field mapping tree, validates structural edits, and sends the
accumulated changes to the server in one commit.

Usage:
    from mapping_stage import StagingWorkspace, SQLEntityStore, open_workspace
    from mapping_stage import hydrate, collect_changes, validate_before_commit
    from mapping_stage import load_stage_config, StageConfig, ServerProfile
"""

__version__ = "0.1.0"

# Adapters
from mapping_stage.adapters.base import DatabaseClient
from mapping_stage.adapters.sql import AsyncSQLAdapter

# Config
from mapping_stage.config.loader import load_stage_config
from mapping_stage.config.models import ServerProfile, StageConfig, StoreConfig

# Errors
from mapping_stage.errors import (
    CascadeError,
    EntityNotFoundError,
    MappingValidationError,
    ProfileNotFoundError,
    StageBusyError,
    StageError,
)

# Factory
from mapping_stage.factory import (
    close_workspace,
    get_active_profile_name,
    open_workspace,
    resolve_url,
)

# Server
from mapping_stage.server import DatabaseMappingServer, MappingServer

# Staging engine
from mapping_stage.staging import (
    ChangeSet,
    CommitResult,
    CommitState,
    HydrationSummary,
    StagingWorkspace,
    ValidationResult,
    collect_changes,
    hydrate,
    validate_before_commit,
)

# Store
from mapping_stage.store import (
    EntityKind,
    EntityStatus,
    EntityStore,
    SQLEntityStore,
)

__all__ = [
    # Adapters
    "DatabaseClient",
    "AsyncSQLAdapter",
    # Config
    "load_stage_config",
    "StageConfig",
    "StoreConfig",
    "ServerProfile",
    # Errors
    "StageError",
    "MappingValidationError",
    "EntityNotFoundError",
    "CascadeError",
    "StageBusyError",
    "ProfileNotFoundError",
    # Factory
    "open_workspace",
    "close_workspace",
    "get_active_profile_name",
    "resolve_url",
    # Server
    "MappingServer",
    "DatabaseMappingServer",
    # Staging
    "StagingWorkspace",
    "ChangeSet",
    "CommitResult",
    "CommitState",
    "HydrationSummary",
    "ValidationResult",
    "hydrate",
    "collect_changes",
    "validate_before_commit",
    # Store
    "EntityStore",
    "SQLEntityStore",
    "EntityKind",
    "EntityStatus",
]
