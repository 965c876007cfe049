"""Pydantic models for the staging engine's boundary contracts.

This module contains:
- Hydration input: SourceRow, plus the HydrationSummary it produces
- Commit payload: ChangeSet and its per-level sections
- Results: ValidationResult, TableContext, CommitResult, CommitState

Wire-facing models (SourceRow, ChangeSet) use the server's column names
(``service_name_original``, ``is_id``, ``row_num`` ...), not the store's.
"""

from enum import StrEnum
from typing import Any, Literal

from pydantic import AliasChoices, BaseModel, Field, field_validator


# ============================================================================
# Hydration Input
# ============================================================================


class SourceRow(BaseModel):
    """One flat server row: a field plus its denormalized ancestry.

    Accepts the alternate column spellings the server has used over time.
    Missing or null text columns read as ``""`` and null numbers as ``0``.

    Example:
        >>> row = SourceRow.model_validate(
        ...     {"id": 7, "service_name": "svc1", "source_table": "t1", "is_primary_key": True}
        ... )
        >>> (row.source_table_name, row.is_id, row.source_schema_name)
        ('t1', 1, '')
    """

    id: int
    service_name: str = ""
    target_db_type: str = ""
    source_db_name: str = ""
    source_db_type: str = ""
    source_schema_name: str = Field(
        default="", validation_alias=AliasChoices("source_schema_name", "source_schema")
    )
    source_table_name: str = Field(
        default="", validation_alias=AliasChoices("source_table_name", "source_table")
    )
    source_field_name: str = ""
    source_field_type: str = ""
    target_db_name: str = ""
    target_schema_name: str = Field(
        default="", validation_alias=AliasChoices("target_schema_name", "target_schema")
    )
    target_table_name: str = Field(
        default="", validation_alias=AliasChoices("target_table_name", "target_table")
    )
    target_field_name: str = ""
    target_field_type: str = ""
    target_field_value: str = Field(
        default="", validation_alias=AliasChoices("target_field_value", "target_value")
    )
    is_id: int = Field(default=0, validation_alias=AliasChoices("is_id", "is_primary_key"))
    row_num: int = Field(default=0, validation_alias=AliasChoices("row_num", "row_order"))

    @field_validator(
        "service_name",
        "target_db_type",
        "source_db_name",
        "source_db_type",
        "source_schema_name",
        "source_table_name",
        "source_field_name",
        "source_field_type",
        "target_db_name",
        "target_schema_name",
        "target_table_name",
        "target_field_name",
        "target_field_type",
        "target_field_value",
        mode="before",
    )
    @classmethod
    def _none_as_empty(cls, value: Any) -> Any:
        return "" if value is None else value

    @field_validator("is_id", "row_num", mode="before")
    @classmethod
    def _none_as_zero(cls, value: Any) -> Any:
        if value is None:
            return 0
        if isinstance(value, bool):
            return int(value)
        return value


class HydrationSummary(BaseModel):
    """Record counts written by one hydration."""

    services: int = 0
    databases: int = 0
    tables: int = 0
    fields: int = 0
    dropped_rows: int = 0


# ============================================================================
# Commit Payload
# ============================================================================


class ServiceUpdate(BaseModel):
    service_name_original: str
    service_name: str
    target_db_type: str


class DatabaseUpdate(BaseModel):
    source_db_name_original: str
    source_db_name: str
    source_schema_name: str
    target_db_name: str
    target_schema_name: str
    source_db_type: str


class TableUpdate(BaseModel):
    source_table_name_original: str
    source_table_name: str
    target_table_name: str


class FieldUpdate(BaseModel):
    id: int
    source_field_name: str
    source_field_type: str
    target_field_name: str
    target_field_type: str
    target_field_value: str
    is_id: int
    row_num: int


class FieldAddition(BaseModel):
    """A new field with its full ancestor context.

    The server creates any missing service/database/table rows from these
    names, so locally added parents are never sent on their own.
    """

    service_name: str
    source_db_name: str
    source_schema_name: str
    source_table_name: str
    source_field_name: str
    source_field_type: str
    target_db_name: str
    target_schema_name: str
    target_table_name: str
    target_field_name: str
    target_field_type: str
    target_field_value: str
    is_id: int
    row_num: int
    source_db_type: str
    target_db_type: str


class ServiceChanges(BaseModel):
    deleted: list[str] = Field(default_factory=list)  # service_name_original
    updated: list[ServiceUpdate] = Field(default_factory=list)


class DatabaseChanges(BaseModel):
    deleted: list[str] = Field(default_factory=list)  # source_db_name_original
    updated: list[DatabaseUpdate] = Field(default_factory=list)


class TableChanges(BaseModel):
    deleted: list[str] = Field(default_factory=list)  # source_table_name_original
    updated: list[TableUpdate] = Field(default_factory=list)


class FieldChanges(BaseModel):
    deleted: list[int] = Field(default_factory=list)  # field ids
    updated: list[FieldUpdate] = Field(default_factory=list)
    added: list[FieldAddition] = Field(default_factory=list)


class ChangeSet(BaseModel):
    """Everything one commit sends to the server.

    Example:
        >>> ChangeSet().is_empty
        True
        >>> ChangeSet(services=ServiceChanges(deleted=["billing"])).change_count
        1
    """

    services: ServiceChanges = Field(default_factory=ServiceChanges)
    databases: DatabaseChanges = Field(default_factory=DatabaseChanges)
    tables: TableChanges = Field(default_factory=TableChanges)
    fields: FieldChanges = Field(default_factory=FieldChanges)

    def summary(self) -> dict[str, dict[str, int]]:
        """Per-section bucket sizes, e.g. ``{"fields": {"added": 2, ...}, ...}``."""
        result: dict[str, dict[str, int]] = {}
        for section_name in ("services", "databases", "tables", "fields"):
            section = getattr(self, section_name)
            result[section_name] = {
                bucket: len(getattr(section, bucket))
                for bucket in type(section).model_fields
            }
        return result

    @property
    def change_count(self) -> int:
        return sum(sum(buckets.values()) for buckets in self.summary().values())

    @property
    def is_empty(self) -> bool:
        return self.change_count == 0


# ============================================================================
# Results
# ============================================================================


class ValidationResult(BaseModel):
    """Result of whole-tree pre-commit validation.

    Example:
        >>> ValidationResult(valid=True).format_report()
        'Mappings valid'
    """

    valid: bool
    errors: list[str] = Field(default_factory=list)

    @property
    def error_count(self) -> int:
        return len(self.errors)

    def format_report(self) -> str:
        """Format validation result as human-readable report."""
        if self.valid:
            return "Mappings valid"

        lines = [f"Mapping validation failed ({self.error_count}):"]
        for error in self.errors:
            lines.append(f"  - {error}")
        return "\n".join(lines)


class TableContext(BaseModel):
    """A table together with its ancestors' current names and types."""

    service_name: str
    target_db_type: str
    source_db_name: str
    source_schema: str
    target_db_name: str
    target_schema: str
    source_db_type: str
    table_name: str
    target_table_name: str


class CommitState(StrEnum):
    """Where the workspace is in the commit protocol."""

    IDLE = "idle"
    VALIDATING = "validating"
    COLLECTING = "collecting"
    SENDING = "sending"
    RECONCILING = "reconciling"


class CommitResult(BaseModel):
    """Outcome of ``StagingWorkspace.commit()``.

    Attributes:
        outcome: ``committed`` (server accepted), ``no_changes`` (nothing
            sent), ``invalid`` (validation failed, nothing sent) or
            ``failed`` (server rejected or unreachable; local edits kept).
        validation: Pre-commit validation result.
        changes: The change-set that was (or would have been) sent.
        change_count: Number of entries in ``changes``.
        error: Transport error text, or the reload failure after an
            accepted commit.
        hydration: Counts from the reload that followed a commit.
    """

    outcome: Literal["committed", "no_changes", "invalid", "failed"]
    validation: ValidationResult | None = None
    changes: ChangeSet | None = None
    change_count: int = 0
    error: str | None = None
    hydration: HydrationSummary | None = None

    @property
    def success(self) -> bool:
        return self.outcome in ("committed", "no_changes")
