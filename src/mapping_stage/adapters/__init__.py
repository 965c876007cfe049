"""Database adapters package.

Provides the ``DatabaseClient`` Protocol and the SQLAlchemy-backed
``AsyncSQLAdapter``.

Usage:
    from mapping_stage.adapters import DatabaseClient, AsyncSQLAdapter
"""

from mapping_stage.adapters.base import DatabaseClient
from mapping_stage.adapters.sql import AsyncSQLAdapter, normalize_url

__all__ = [
    "DatabaseClient",
    "AsyncSQLAdapter",
    "normalize_url",
]
