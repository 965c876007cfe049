"""Tests for the staging boundary models."""

import pytest
from pydantic import ValidationError

from mapping_stage.staging.models import (
    ChangeSet,
    CommitResult,
    FieldChanges,
    ServiceChanges,
    ServiceUpdate,
    SourceRow,
    ValidationResult,
)


class TestSourceRow:
    """Alternate column spellings and null handling."""

    def test_alias_columns(self) -> None:
        """Older column names map onto the canonical attributes."""
        row = SourceRow.model_validate(
            {
                "id": 1,
                "source_schema": "public",
                "source_table": "users",
                "target_schema": "dw",
                "target_table": "dim_users",
                "target_value": "0",
                "is_primary_key": 1,
                "row_order": 4,
            }
        )
        assert row.source_schema_name == "public"
        assert row.source_table_name == "users"
        assert row.target_schema_name == "dw"
        assert row.target_table_name == "dim_users"
        assert row.target_field_value == "0"
        assert row.is_id == 1
        assert row.row_num == 4

    def test_nulls_become_defaults(self) -> None:
        """None reads as empty string or zero."""
        row = SourceRow.model_validate(
            {"id": 2, "service_name": None, "is_id": None, "row_num": None}
        )
        assert row.service_name == ""
        assert row.is_id == 0
        assert row.row_num == 0

    def test_bool_key_flag(self) -> None:
        """Boolean key flags become 0/1."""
        assert SourceRow.model_validate({"id": 3, "is_id": True}).is_id == 1

    def test_id_required(self) -> None:
        """A row without a field id is rejected."""
        with pytest.raises(ValidationError):
            SourceRow.model_validate({"service_name": "svc"})


class TestChangeSet:
    """Counting helpers."""

    def test_empty(self) -> None:
        """A fresh change-set has no entries."""
        changes = ChangeSet()
        assert changes.is_empty
        assert changes.change_count == 0

    def test_summary_counts_each_bucket(self) -> None:
        """summary() reports every bucket, fields including 'added'."""
        changes = ChangeSet(
            services=ServiceChanges(
                deleted=["old"],
                updated=[
                    ServiceUpdate(
                        service_name_original="a", service_name="b", target_db_type="mysql"
                    )
                ],
            ),
            fields=FieldChanges(deleted=[1, 2, 3]),
        )
        summary = changes.summary()
        assert summary["services"] == {"deleted": 1, "updated": 1}
        assert summary["fields"] == {"deleted": 3, "updated": 0, "added": 0}
        assert changes.change_count == 5
        assert not changes.is_empty

    def test_wire_shape(self) -> None:
        """model_dump() uses the server's section and bucket names."""
        dumped = ChangeSet().model_dump()
        assert set(dumped) == {"services", "databases", "tables", "fields"}
        assert set(dumped["fields"]) == {"deleted", "updated", "added"}
        assert set(dumped["tables"]) == {"deleted", "updated"}


class TestResults:
    """ValidationResult and CommitResult helpers."""

    def test_format_report_lists_every_error(self) -> None:
        """The report includes the count and each message."""
        result = ValidationResult(valid=False, errors=["first", "second"])
        report = result.format_report()
        assert result.error_count == 2
        assert "(2)" in report
        assert "  - first" in report
        assert "  - second" in report

    @pytest.mark.parametrize(
        "outcome, success",
        [("committed", True), ("no_changes", True), ("invalid", False), ("failed", False)],
    )
    def test_commit_success(self, outcome: str, success: bool) -> None:
        """success is true only when nothing is left to retry."""
        assert CommitResult(outcome=outcome).success is success
