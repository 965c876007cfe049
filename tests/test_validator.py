"""Tests for per-edit checks and pre-commit validation."""

from conftest import tree_rows

from mapping_stage.staging import mutators
from mapping_stage.staging.hydration import hydrate
from mapping_stage.staging.validator import (
    check_database,
    check_field,
    check_service,
    check_table,
    validate_before_commit,
)
from mapping_stage.store import EntityKind, SQLEntityStore


class TestPerEditChecks:
    """``check_*`` functions return every violation and exclude the edited record."""

    async def test_service_requires_name_and_type(self, store: SQLEntityStore) -> None:
        """Blank name and type are both reported."""
        errors = await check_service(store, "  ", "")
        assert errors == ["Service name is required", "Target DB type is required"]

    async def test_service_exclude_self(self, store: SQLEntityStore) -> None:
        """A service does not collide with itself."""
        await hydrate(store, tree_rows())
        assert await check_service(store, "svc1", "mysql", exclude_id=1) == []
        assert len(await check_service(store, "svc1", "mysql")) == 1

    async def test_database_requires_parent(self, store: SQLEntityStore) -> None:
        """A missing service id is reported alongside a blank name."""
        errors = await check_database(store, None, "")
        assert errors == ["Source database name is required", "Service ID is required"]

    async def test_table_uniqueness_scoped_to_database(self, store: SQLEntityStore) -> None:
        """Table "a" exists in both databases without conflict."""
        await hydrate(store, tree_rows())
        assert len(await check_table(store, 1, "a")) == 1
        assert await check_table(store, 1, "c") == []

    async def test_field_primary_key_flag_range(self, store: SQLEntityStore) -> None:
        """is_primary_key must be 0 or 1."""
        await hydrate(store, tree_rows())
        errors = await check_field(store, 1, "new", 2)
        assert errors == ["is_primary_key must be 0 or 1, got 2"]

    async def test_field_second_key(self, store: SQLEntityStore) -> None:
        """A second key is rejected, re-checking the existing key is not."""
        await hydrate(store, tree_rows())
        assert await check_field(store, 1, "new", 1) == [
            "Only one field can be marked as primary key per table"
        ]
        assert await check_field(store, 1, "col1", 1, exclude_id=101) == []


class TestValidateBeforeCommit:
    """Whole-tree validation."""

    async def test_hydrated_tree_is_valid(self, store: SQLEntityStore) -> None:
        """A well-formed server tree passes."""
        await hydrate(store, tree_rows())
        result = await validate_before_commit(store)
        assert result.valid
        assert result.errors == []

    async def test_empty_store_is_valid(self, store: SQLEntityStore) -> None:
        """Nothing to check means nothing wrong."""
        result = await validate_before_commit(store)
        assert result.valid

    async def test_no_primary_key(self, store: SQLEntityStore) -> None:
        """A table without a key field is named in the error."""
        await hydrate(store, tree_rows())
        await store.update(EntityKind.FIELD, 101, {"is_primary_key": 0})

        result = await validate_before_commit(store)

        assert not result.valid
        assert result.errors == [
            'Table "a" in database "d1" (service "svc1") has no field marked as '
            "primary key. Each table must have exactly one primary key field."
        ]

    async def test_two_primary_keys(self, store: SQLEntityStore) -> None:
        """A table with two key fields lists both."""
        await hydrate(store, tree_rows())
        await store.update(EntityKind.FIELD, 108, {"is_primary_key": 1})

        result = await validate_before_commit(store)

        assert result.error_count == 1
        assert 'Table "a" in database "d2" (service "svc1")' in result.errors[0]
        assert "has 2 fields marked as primary key (col1, col2)" in result.errors[0]

    async def test_deleted_fields_ignored(self, store: SQLEntityStore) -> None:
        """Tombstoned key fields no longer satisfy the rule."""
        await hydrate(store, tree_rows())
        await mutators.delete_field(store, 101)

        result = await validate_before_commit(store)

        assert not result.valid
        assert "no field marked as primary key" in result.errors[0]

    async def test_empty_levels(self, store: SQLEntityStore) -> None:
        """Services, databases and tables need at least one child."""
        await mutators.add_service(store, "new", "mysql")
        other = await mutators.add_service(store, "other", "mysql")
        database = await mutators.add_database(store, other.id, "db")
        third = await mutators.add_service(store, "third", "mysql")
        db3 = await mutators.add_database(store, third.id, "db3")
        await mutators.add_table(store, db3.id, "t")

        result = await validate_before_commit(store)

        assert result.error_count == 3
        assert 'Service "new" (mysql) has no databases' in result.errors[0]
        assert f'Database "{database.current_name}" in service "other" has no tables' in result.errors[1]
        assert 'Table "t" in database "db3" (service "third") has no fields' in result.errors[2]

    async def test_duplicate_service_rows(self, store: SQLEntityStore) -> None:
        """Services repeated by direct store writes are caught."""
        await hydrate(store, tree_rows())
        await mutators.add_service(store, "svc2", "mysql")
        await store.update(EntityKind.SERVICE, 2, {"current_name": "svc1"})

        result = await validate_before_commit(store)

        assert 'Service "svc1" (mysql) is defined more than once' in result.errors

    async def test_report(self, store: SQLEntityStore) -> None:
        """format_report lists every error."""
        await hydrate(store, tree_rows())
        await store.update(EntityKind.FIELD, 101, {"is_primary_key": 0})
        await store.update(EntityKind.FIELD, 104, {"is_primary_key": 0})

        report = (await validate_before_commit(store)).format_report()

        assert report.startswith("Mapping validation failed (2):")
        assert report.count("\n  - ") == 2
