"""Source management in database."""

from typing import Any, Dict, List, Optional

from psycopg_pool import ConnectionPool

from ..config import SourceConfig
from ..models import Source

_EDITABLE_FIELDS = ("name", "url", "proxy_override", "parsing_script", "enabled")


class SourceStore:
    """Manage sources in database."""

    def __init__(self, pool: ConnectionPool) -> None:
        """Initialize source store."""
        self.pool = pool

    def sync_sources(self, sources: List[SourceConfig]) -> Dict[str, int]:
        """
        Sync sources from config to database.

        Returns:
            Mapping of source name to database ID
        """
        source_map = {}

        with self.pool.connection() as conn:
            with conn.cursor() as cur:
                for source in sources:
                    cur.execute(
                        """
                        INSERT INTO sources (name, url, proxy_override, parsing_script, enabled)
                        VALUES (%s, %s, %s, %s, %s)
                        ON CONFLICT (name) DO UPDATE SET
                            url = EXCLUDED.url,
                            proxy_override = EXCLUDED.proxy_override,
                            parsing_script = EXCLUDED.parsing_script,
                            enabled = EXCLUDED.enabled
                        RETURNING id
                        """,
                        (
                            source.name,
                            source.url,
                            source.proxy_override,
                            source.parsing_script,
                            source.enabled,
                        ),
                    )
                    source_map[source.name] = cur.fetchone()["id"]

        return source_map

    def list_sources(self, enabled_only: bool = False) -> List[Source]:
        """Get all sources from database."""
        query = "SELECT * FROM sources"
        if enabled_only:
            query += " WHERE enabled = TRUE"
        query += " ORDER BY id"

        with self.pool.connection() as conn:
            with conn.cursor() as cur:
                cur.execute(query)
                return [Source(**row) for row in cur.fetchall()]

    def get(self, source_id: int) -> Optional[Source]:
        """Get a single source."""
        with self.pool.connection() as conn:
            with conn.cursor() as cur:
                cur.execute("SELECT * FROM sources WHERE id = %s", (source_id,))
                row = cur.fetchone()
                return Source(**row) if row else None

    def add(self, source: SourceConfig) -> Source:
        """Insert a new source."""
        with self.pool.connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    INSERT INTO sources (name, url, proxy_override, parsing_script, enabled)
                    VALUES (%s, %s, %s, %s, %s)
                    RETURNING *
                    """,
                    (
                        source.name,
                        source.url,
                        source.proxy_override,
                        source.parsing_script,
                        source.enabled,
                    ),
                )
                return Source(**cur.fetchone())

    def update(self, source_id: int, changes: Dict[str, Any]) -> None:
        """Update editable fields of a source."""
        fields = [key for key in _EDITABLE_FIELDS if key in changes]
        if not fields:
            return

        assignments = ", ".join(f"{field} = %s" for field in fields)
        values = [changes[field] for field in fields]

        with self.pool.connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    f"UPDATE sources SET {assignments} WHERE id = %s",
                    (*values, source_id),
                )

    def delete(self, source_id: int) -> bool:
        """Delete a source; its records go with it."""
        with self.pool.connection() as conn:
            with conn.cursor() as cur:
                cur.execute("DELETE FROM sources WHERE id = %s", (source_id,))
                return cur.rowcount > 0

    def mark_success(self, source_id: int) -> None:
        """Reset the failure counter and stamp the update time."""
        with self.pool.connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    UPDATE sources
                    SET error_count = 0, last_updated = CURRENT_TIMESTAMP
                    WHERE id = %s
                    """,
                    (source_id,),
                )

    def mark_failure(self, source_id: int) -> None:
        """Count a failed fetch."""
        with self.pool.connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    "UPDATE sources SET error_count = error_count + 1 WHERE id = %s",
                    (source_id,),
                )
