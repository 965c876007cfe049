"""Mapping server protocol.

The staging engine reads the authoritative mapping rows and sends its
change-sets through this interface only. Transport, authentication and
the server's own storage are behind it.
"""

from typing import Any, Protocol

from mapping_stage.staging.models import ChangeSet


class MappingServer(Protocol):
    """Authoritative owner of the mapping rows.

    Usage:
        async def reload(server: MappingServer) -> list[dict]:
            return await server.fetch_rows()
    """

    async def fetch_rows(self) -> list[dict[str, Any]]:
        """Return every mapping row, one per field, with its denormalized ancestry."""
        ...

    async def save_all(self, changes: ChangeSet) -> None:
        """Apply a change-set as a whole or not at all.

        Raises:
            Exception: Any failure; nothing was applied.
        """
        ...

    async def close(self) -> None:
        """Release the server connection."""
        ...
