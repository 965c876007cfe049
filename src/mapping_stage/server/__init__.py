"""Server side of the commit protocol.

Usage:
    from mapping_stage.server import DatabaseMappingServer, MappingServer
"""

from mapping_stage.server.base import MappingServer
from mapping_stage.server.database import DatabaseMappingServer

__all__ = ["MappingServer", "DatabaseMappingServer"]
