"""Record storage and deduplication."""

from typing import Dict, List, Optional, Tuple

from psycopg_pool import ConnectionPool

from ..models import EmbeddingStatus, Record


class RecordStore:
    """Handle record storage and deduplication."""

    def __init__(self, pool: ConnectionPool) -> None:
        """Initialize record store."""
        self.pool = pool

    def insert(self, record: Record) -> Optional[int]:
        """
        Insert a new record.

        Returns:
            The new record ID, or None when the URL or (source, title) already exists
        """
        with self.pool.connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    INSERT INTO records (
                        source_id, title, url, body, summary, publish_date,
                        author, is_read, is_favorite, embedding_status
                    ) VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
                    ON CONFLICT DO NOTHING
                    RETURNING id
                    """,
                    (
                        record.source_id,
                        record.title,
                        record.url,
                        record.body,
                        record.summary,
                        record.publish_date,
                        record.author,
                        record.is_read,
                        record.is_favorite,
                        record.embedding_status.value,
                    ),
                )
                row = cur.fetchone()
                return row["id"] if row else None

    def get(self, record_id: int) -> Optional[Record]:
        """Get a record by ID."""
        with self.pool.connection() as conn:
            with conn.cursor() as cur:
                cur.execute("SELECT * FROM records WHERE id = %s", (record_id,))
                row = cur.fetchone()
                return Record(**row) if row else None

    def update_status(self, record_id: int, status: EmbeddingStatus) -> None:
        """Set the embedding status of a record."""
        with self.pool.connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    "UPDATE records SET embedding_status = %s WHERE id = %s",
                    (status.value, record_id),
                )

    def find_by_url(self, url: str) -> Optional[Record]:
        """Find a record by URL."""
        with self.pool.connection() as conn:
            with conn.cursor() as cur:
                cur.execute("SELECT * FROM records WHERE url = %s", (url,))
                row = cur.fetchone()
                return Record(**row) if row else None

    def find_by_source_and_title(self, source_id: int, title: str) -> Optional[Record]:
        """Find a record of a source by title."""
        with self.pool.connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    "SELECT * FROM records WHERE source_id = %s AND title = %s",
                    (source_id, title),
                )
                row = cur.fetchone()
                return Record(**row) if row else None

    def delete_empty_url_records(self, source_id: int) -> List[int]:
        """
        Purge records of a source whose URL is blank.

        Returns:
            IDs of the deleted records
        """
        with self.pool.connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    DELETE FROM records
                    WHERE source_id = %s AND (url IS NULL OR btrim(url) = '')
                    RETURNING id
                    """,
                    (source_id,),
                )
                return [row["id"] for row in cur.fetchall()]

    def list_by_source(
        self,
        source_id: int,
        exclude_status: Optional[EmbeddingStatus] = None,
    ) -> List[Record]:
        """List records of a source, newest first."""
        query = "SELECT * FROM records WHERE source_id = %s"
        params: Tuple = (source_id,)
        if exclude_status is not None:
            query += " AND embedding_status <> %s"
            params = (source_id, exclude_status.value)
        query += " ORDER BY id DESC"

        with self.pool.connection() as conn:
            with conn.cursor() as cur:
                cur.execute(query, params)
                return [Record(**row) for row in cur.fetchall()]

    def list_incomplete(self) -> List[int]:
        """IDs of records that still need embedding, oldest first."""
        with self.pool.connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    SELECT id FROM records
                    WHERE embedding_status IN ('none', 'pending')
                    ORDER BY id
                    """
                )
                return [row["id"] for row in cur.fetchall()]

    def count_by_source_and_status(self) -> Dict[int, Dict[str, int]]:
        """
        Count records per source and embedding status.

        Returns:
            Mapping of source ID to {status: count}
        """
        counts: Dict[int, Dict[str, int]] = {}
        with self.pool.connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    SELECT source_id, embedding_status, COUNT(*) AS n
                    FROM records
                    GROUP BY source_id, embedding_status
                    """
                )
                for row in cur.fetchall():
                    counts.setdefault(row["source_id"], {})[row["embedding_status"]] = row["n"]
        return counts

    def reset_all_statuses(self) -> int:
        """Set every record back to status none."""
        with self.pool.connection() as conn:
            with conn.cursor() as cur:
                cur.execute("UPDATE records SET embedding_status = 'none'")
                return cur.rowcount

    def mark_read(self, record_id: int, is_read: bool = True) -> None:
        """Set the read flag."""
        with self.pool.connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    "UPDATE records SET is_read = %s WHERE id = %s",
                    (is_read, record_id),
                )

    def toggle_favorite(self, record_id: int) -> Optional[bool]:
        """Flip the favorite flag; returns the new value."""
        with self.pool.connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    UPDATE records SET is_favorite = NOT is_favorite
                    WHERE id = %s
                    RETURNING is_favorite
                    """,
                    (record_id,),
                )
                row = cur.fetchone()
                return row["is_favorite"] if row else None
