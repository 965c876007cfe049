"""Staging engine: hydration, edits, validation, diff and commit.

Usage:
    from mapping_stage.staging import StagingWorkspace, collect_changes, hydrate
"""

from mapping_stage.staging.models import (
    ChangeSet,
    CommitResult,
    CommitState,
    DatabaseUpdate,
    FieldAddition,
    FieldUpdate,
    HydrationSummary,
    ServiceUpdate,
    SourceRow,
    TableContext,
    TableUpdate,
    ValidationResult,
)
from mapping_stage.staging.diff import collect_changes
from mapping_stage.staging.hydration import hydrate
from mapping_stage.staging.validator import (
    check_database,
    check_field,
    check_service,
    check_table,
    validate_before_commit,
)
from mapping_stage.staging.workspace import StagingWorkspace

__all__ = [
    # Models
    "SourceRow",
    "HydrationSummary",
    "ChangeSet",
    "ServiceUpdate",
    "DatabaseUpdate",
    "TableUpdate",
    "FieldUpdate",
    "FieldAddition",
    "ValidationResult",
    "TableContext",
    "CommitResult",
    "CommitState",
    # Operations
    "hydrate",
    "collect_changes",
    "check_service",
    "check_database",
    "check_table",
    "check_field",
    "validate_before_commit",
    "StagingWorkspace",
]
