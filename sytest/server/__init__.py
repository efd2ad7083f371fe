"""Homeserver process management."""

from sytest.server.database import database_config, write_database_config
from sytest.server.process import HomeserverProcess
from sytest.server.registry import ServerRegistry

__all__ = [
    "HomeserverProcess",
    "ServerRegistry",
    "database_config",
    "write_database_config",
]
