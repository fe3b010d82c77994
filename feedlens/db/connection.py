"""Postgres connection pool shared by the stores."""

import logging
import os
from contextlib import contextmanager
from typing import Any, Dict, Iterator, Optional

import psycopg
from psycopg.conninfo import make_conninfo
from psycopg.rows import dict_row
from psycopg_pool import ConnectionPool

logger = logging.getLogger(__name__)


def build_conninfo(config: Dict[str, Any]) -> str:
    """
    Build a libpq connection string from a postgres config dict.

    A password found through ``password_env`` wins over an inline one.
    """
    password = config.get("password")
    if config.get("password_env"):
        password = os.environ.get(config["password_env"]) or password

    return make_conninfo(
        host=config.get("host", "localhost"),
        port=config.get("port", 5432),
        dbname=config.get("database", "feedlens"),
        user=config.get("user", "feedlens_user"),
        password=password or None,
    )


_connection_pool: Optional[ConnectionPool] = None


def get_connection_pool(config: Dict[str, Any]) -> ConnectionPool:
    """Get or create the process-wide pool."""
    global _connection_pool
    if _connection_pool is None:
        _connection_pool = ConnectionPool(
            build_conninfo(config),
            min_size=1,
            max_size=10,
            kwargs={"row_factory": dict_row},
            name="feedlens",
            open=True,
        )
        logger.debug("Opened connection pool to %s", config.get("host", "localhost"))
    return _connection_pool


def close_connection_pool() -> None:
    """Close the shared pool if one was opened."""
    global _connection_pool
    if _connection_pool is not None:
        _connection_pool.close()
        _connection_pool = None


@contextmanager
def get_connection(config: Dict[str, Any]) -> Iterator[psycopg.Connection]:
    """Borrow a connection from the pool."""
    with get_connection_pool(config).connection() as conn:
        yield conn
