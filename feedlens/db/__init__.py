"""Database management for feedlens."""

from .connection import close_connection_pool, get_connection, get_connection_pool
from .init import init_database, validate_connection
from .records import RecordStore
from .sources import SourceStore

__all__ = [
    "RecordStore",
    "SourceStore",
    "close_connection_pool",
    "get_connection",
    "get_connection_pool",
    "init_database",
    "validate_connection",
]
