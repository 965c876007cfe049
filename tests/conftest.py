"""Shared fixtures: a file-backed SQLite entity store and sample server rows."""

from pathlib import Path

import pytest

from mapping_stage.adapters.sql import AsyncSQLAdapter
from mapping_stage.store.sql_store import SQLEntityStore


def make_row(field_id: int, **overrides) -> dict:
    """One flat server row with sensible defaults."""
    row = {
        "id": field_id,
        "service_name": "svc1",
        "target_db_type": "mysql",
        "source_db_name": "d1",
        "source_db_type": "postgres",
        "source_schema_name": "",
        "source_table_name": "t1",
        "source_field_name": f"f{field_id}",
        "source_field_type": "int",
        "target_db_name": "dw",
        "target_schema_name": "stage",
        "target_table_name": "t1_tgt",
        "target_field_name": f"f{field_id}",
        "target_field_type": "INT",
        "target_field_value": "",
        "is_id": 0,
        "row_num": 1,
    }
    row.update(overrides)
    return row


def tree_rows() -> list[dict]:
    """svc1 with databases d1, d2; each with tables a, b; each with 3 fields (first is the key)."""
    rows = []
    field_id = 100
    for db in ("d1", "d2"):
        for table in ("a", "b"):
            for position in range(1, 4):
                field_id += 1
                rows.append(
                    make_row(
                        field_id,
                        source_db_name=db,
                        source_table_name=table,
                        target_table_name=f"{table}_tgt",
                        source_field_name=f"col{position}",
                        is_id=1 if position == 1 else 0,
                        row_num=position,
                    )
                )
    return rows


@pytest.fixture
async def store(tmp_path: Path):
    """Initialized SQLEntityStore on a temporary SQLite file."""
    store = SQLEntityStore(AsyncSQLAdapter(f"sqlite:///{tmp_path / 'stage.db'}"))
    await store.initialize()
    yield store
    await store.close()
