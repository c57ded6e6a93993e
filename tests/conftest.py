"""Shared fixtures: throwaway SQLite albums, pooled connections and item buffers."""

import logging
import sqlite3
from collections.abc import Callable, Iterator
from pathlib import Path

import pytest

from photoframe.display.composer import FRAME_BYTES, PORTRAIT_BYTES
from photoframe.store.database import (
    AlbumRepository,
    ConnectionPool,
    connect,
    initialize_schema,
    open_connection_pool,
)
from photoframe.store.models import MediaItem, Orientation

ItemFactory = Callable[..., MediaItem]


@pytest.fixture(autouse=True)
def quiet_logging() -> Iterator[None]:
    """Keep package log output at WARNING and undo any handler setup a test performs."""
    logger = logging.getLogger("photoframe")
    level, handlers, propagate = logger.level, list(logger.handlers), logger.propagate
    logger.setLevel(logging.WARNING)
    yield
    for handler in list(logger.handlers):
        if handler not in handlers:
            logger.removeHandler(handler)
            handler.close()
    logger.setLevel(level)
    logger.propagate = propagate


@pytest.fixture
def db_path(tmp_path: Path) -> Path:
    """Path to a fresh database file."""
    return tmp_path / "album.db"


@pytest.fixture
def db_connection(db_path: Path) -> Iterator[sqlite3.Connection]:
    """Open connection to an initialized, empty database."""
    conn = connect(db_path, busy_timeout=5.0)
    initialize_schema(conn)
    yield conn
    conn.close()


@pytest.fixture
def album(db_connection: sqlite3.Connection) -> AlbumRepository:
    return AlbumRepository(db_connection)


@pytest.fixture
def connection_pool(db_path: Path) -> Iterator[ConnectionPool]:
    """Pool of two connections to an initialized database."""
    pool = open_connection_pool(db_path, pool_size=2, busy_timeout=5.0)
    yield pool
    pool.close()


def _pixel_buffer(orientation: Orientation, value: int = 0x11) -> bytes:
    size = PORTRAIT_BYTES if orientation is Orientation.PORTRAIT else FRAME_BYTES
    return bytes([value]) * size


@pytest.fixture
def pixel_buffer() -> Callable[..., bytes]:
    """Packed buffer of the right size for an orientation, filled with one byte value."""
    return _pixel_buffer


@pytest.fixture
def make_item() -> ItemFactory:
    """Factory for in-memory MediaItems."""

    def _make(
        item_id: str,
        orientation: Orientation = Orientation.LANDSCAPE,
        value: int = 0x11,
        last_shown: int = 0,
        pixels: bytes = b"",
    ) -> MediaItem:
        return MediaItem(
            id=item_id,
            orientation=orientation,
            last_shown=last_shown,
            pixels=pixels or _pixel_buffer(orientation, value),
        )

    return _make


@pytest.fixture
def add_item(album: AlbumRepository) -> Callable[..., None]:
    """Store an item in the album with a given last-shown time."""

    def _add(
        item_id: str,
        orientation: Orientation = Orientation.LANDSCAPE,
        last_shown: int = 0,
        value: int = 0x11,
    ) -> None:
        album.add_item(item_id, _pixel_buffer(orientation, value), orientation, last_shown=last_shown)

    return _add
