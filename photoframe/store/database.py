"""SQLite schema, connection factory and album maintenance operations."""

import logging
import sqlite3
from pathlib import Path
from typing import Optional, Union

from ..display.composer import FRAME_BYTES, PORTRAIT_BYTES
from ..exceptions import DataCorruptionError
from .models import AlbumEntry, MediaItem, Orientation
from .pool import ResourcePool

logger = logging.getLogger(__name__)

ConnectionPool = ResourcePool[sqlite3.Connection]

SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS album (
        item_id TEXT PRIMARY KEY,
        product_url TEXT NOT NULL DEFAULT '',
        last_shown_ts INTEGER NOT NULL DEFAULT 0,
        portrait INTEGER NOT NULL DEFAULT 0,
        data BLOB NOT NULL
    )
    """,
    """
    CREATE INDEX IF NOT EXISTS idx_album_last_shown
    ON album(last_shown_ts)
    """,
    """
    CREATE TABLE IF NOT EXISTS telemetry (
        ts INTEGER NOT NULL,
        item_id TEXT,
        item_id_2 TEXT,
        device_identity TEXT NOT NULL UNIQUE,
        chip_id INTEGER,
        battery_voltage INTEGER,
        boot_code INTEGER,
        error_code INTEGER,
        return_code INTEGER,
        bytes_written INTEGER,
        remote_addrs TEXT NOT NULL DEFAULT '[]'
    )
    """,
    """
    CREATE INDEX IF NOT EXISTS idx_telemetry_ts
    ON telemetry(ts)
    """,
)


def connect(database_path: Union[Path, str], busy_timeout: float = 30.0) -> sqlite3.Connection:
    """Open a connection suitable for pooling across worker threads.

    The connection runs in autocommit mode; multi-statement operations open
    their own transactions with BEGIN IMMEDIATE.

    Args:
        database_path: Path to the SQLite database file
        busy_timeout: Seconds to wait on a locked database before failing

    Returns:
        Open sqlite3 connection with row access by column name
    """
    conn = sqlite3.connect(
        str(database_path),
        timeout=busy_timeout,
        isolation_level=None,
        check_same_thread=False,
    )
    conn.row_factory = sqlite3.Row
    # WAL keeps readers off the writer's lock and reduces SD card wear
    conn.execute("PRAGMA journal_mode=WAL")
    conn.execute("PRAGMA synchronous=NORMAL")
    return conn


def initialize_schema(conn: sqlite3.Connection) -> None:
    """Create the album and telemetry tables if they do not exist."""
    for statement in SCHEMA:
        conn.execute(statement)
    logger.debug("Database schema initialized")


def open_connection_pool(
    database_path: Union[Path, str], pool_size: int, busy_timeout: float = 30.0
) -> ConnectionPool:
    """Initialize the schema and open a pool of `pool_size` connections.

    Raises:
        sqlite3.Error: If the database cannot be opened
        ValueError: If pool_size is not positive
    """
    path = Path(database_path)
    path.parent.mkdir(parents=True, exist_ok=True)

    conn = connect(path, busy_timeout)
    try:
        initialize_schema(conn)
    finally:
        conn.close()

    return ResourcePool.create(lambda: connect(path, busy_timeout), pool_size, name="album")


def expected_size(orientation: Orientation) -> int:
    """Packed buffer length for an item of the given orientation."""
    return PORTRAIT_BYTES if orientation is Orientation.PORTRAIT else FRAME_BYTES


class AlbumRepository:
    """Operator-side maintenance of the album table.

    The serving path never deletes items; these operations back the CLI.
    """

    def __init__(self, conn: sqlite3.Connection) -> None:
        self.conn = conn

    def add_item(
        self,
        item_id: str,
        pixels: bytes,
        orientation: Orientation,
        product_url: str = "",
        last_shown: int = 0,
    ) -> None:
        """Insert or replace an album item.

        Raises:
            DataCorruptionError: If the buffer length does not match the orientation
        """
        expected = expected_size(orientation)
        if len(pixels) != expected:
            raise DataCorruptionError(
                "Refusing to store item with wrong buffer size",
                item_id=item_id,
                expected=expected,
                actual=len(pixels),
            )

        self.conn.execute(
            """
            INSERT INTO album (item_id, product_url, last_shown_ts, portrait, data)
            VALUES (?, ?, ?, ?, ?)
            ON CONFLICT (item_id) DO UPDATE SET
                product_url = excluded.product_url,
                portrait = excluded.portrait,
                data = excluded.data
            """,
            (
                item_id,
                product_url,
                last_shown,
                int(orientation is Orientation.PORTRAIT),
                sqlite3.Binary(pixels),
            ),
        )
        logger.info(f"Stored album item {item_id} ({orientation.value})")

    def remove_item(self, item_id: str) -> bool:
        """Delete an item; returns True if a row was removed."""
        cursor = self.conn.execute("DELETE FROM album WHERE item_id = ?", (item_id,))
        removed = cursor.rowcount > 0
        if removed:
            logger.info(f"Removed album item {item_id}")
        return removed

    def get_item(self, item_id: str) -> Optional[MediaItem]:
        row = self.conn.execute(
            """
            SELECT item_id, product_url, last_shown_ts, portrait, data
            FROM album WHERE item_id = ?
            """,
            (item_id,),
        ).fetchone()
        return MediaItem.from_row(row) if row is not None else None

    def item_ids(self) -> set[str]:
        return {row["item_id"] for row in self.conn.execute("SELECT item_id FROM album")}

    def count(self) -> int:
        return int(self.conn.execute("SELECT COUNT(*) FROM album").fetchone()[0])

    def list_items(self) -> list[AlbumEntry]:
        """List item metadata ordered by rotation position (next shown first)."""
        rows = self.conn.execute(
            """
            SELECT item_id, product_url, last_shown_ts, portrait, LENGTH(data) AS size_bytes
            FROM album
            ORDER BY last_shown_ts, item_id
            """
        ).fetchall()
        return [
            AlbumEntry(
                id=row["item_id"],
                product_url=row["product_url"] or "",
                last_shown=row["last_shown_ts"],
                orientation=Orientation.PORTRAIT if row["portrait"] else Orientation.LANDSCAPE,
                size_bytes=row["size_bytes"],
            )
            for row in rows
        ]
