"""Least-recently-shown rotation over the album.

Selection and the advance of `last_shown_ts` happen in one BEGIN IMMEDIATE
transaction, and the advance is additionally a compare-and-update against the
album minimum, so concurrent workers sharing the database can never claim the
same least-recently-shown item.
"""

import logging
import random
import sqlite3
from typing import Optional

from .exceptions import EmptyAlbumError, SelectionFailedError
from .store.models import MediaItem, Selection

logger = logging.getLogger(__name__)

_MIN_CANDIDATES = """
    SELECT item_id, portrait FROM album
    WHERE last_shown_ts = (SELECT MIN(last_shown_ts) FROM album)
"""

_ADVANCE_PRIMARY = """
    UPDATE album SET last_shown_ts = MAX(?, last_shown_ts + 1)
    WHERE item_id = ?
      AND last_shown_ts = (SELECT MIN(last_shown_ts) FROM album)
"""

_PORTRAIT_PARTNERS = """
    SELECT item_id FROM album
    WHERE portrait = 1 AND item_id != ?
"""

_ADVANCE_SECONDARY = """
    UPDATE album SET last_shown_ts = MAX(?, last_shown_ts + 1)
    WHERE item_id = ?
      AND portrait = 1
      AND EXISTS (SELECT 1 FROM album WHERE item_id = ? AND portrait = 1)
"""


class RotationSelector:
    """Picks the next item(s) to display and marks them shown."""

    def __init__(self, rng: Optional[random.Random] = None) -> None:
        """Initialize the selector.

        Args:
            rng: Random source for tie-breaking, pairing and ordering
        """
        self.rng = rng or random.Random()

    def select_and_advance(self, conn: sqlite3.Connection, now: int) -> Selection:
        """Select the least recently shown item, pair it if portrait, advance both.

        Args:
            conn: Connection exclusively owned by the caller
            now: Current time in unix seconds

        Returns:
            Selection in randomized display order

        Raises:
            EmptyAlbumError: If the album has no items
            SelectionFailedError: On any store error or a lost compare-and-update
        """
        return self._run(conn, now, commit=True)

    def preview(self, conn: sqlite3.Connection, now: int) -> Selection:
        """Return what the next selection would be without advancing rotation."""
        return self._run(conn, now, commit=False)

    def _run(self, conn: sqlite3.Connection, now: int, commit: bool) -> Selection:
        try:
            selection = self._in_transaction(conn, now, commit)
        except SelectionFailedError:
            raise
        except sqlite3.Error as e:
            logger.error(f"Could not get record(s): {e}")
            raise SelectionFailedError("Store error during selection", {"error": str(e)}) from e

        logger.debug(
            f"Selected {[item.id for item in selection.items]} (primary {selection.primary_id})"
        )
        return selection

    def _in_transaction(self, conn: sqlite3.Connection, now: int, commit: bool) -> Selection:
        conn.execute("BEGIN IMMEDIATE")
        try:
            selection = self._select(conn, now)
            if commit:
                conn.execute("COMMIT")
            else:
                conn.execute("ROLLBACK")
        except BaseException:
            _rollback(conn)
            raise
        return selection

    def _select(self, conn: sqlite3.Connection, now: int) -> Selection:
        candidates = {row["item_id"]: bool(row["portrait"]) for row in conn.execute(_MIN_CANDIDATES)}
        if not candidates:
            raise EmptyAlbumError("album is empty")

        primary_id = self.rng.choice(sorted(candidates))
        if conn.execute(_ADVANCE_PRIMARY, (now, primary_id)).rowcount != 1:
            # compare-and-update matched no row
            raise SelectionFailedError(
                "Primary item left the album minimum during selection", {"item_id": primary_id}
            )

        selected = [primary_id]
        if candidates[primary_id]:
            partners = sorted(row["item_id"] for row in conn.execute(_PORTRAIT_PARTNERS, (primary_id,)))
            if partners:
                secondary_id = self.rng.choice(partners)
                conn.execute(_ADVANCE_SECONDARY, (now, secondary_id, primary_id))
                selected.append(secondary_id)

        placeholders = ", ".join("?" for _ in selected)
        rows = conn.execute(
            f"""
            SELECT item_id, product_url, last_shown_ts, portrait, data
            FROM album WHERE item_id IN ({placeholders})
            """,
            selected,
        ).fetchall()

        items = [MediaItem.from_row(row) for row in rows]
        self.rng.shuffle(items)
        return Selection(items=tuple(items), primary_id=primary_id)


def _rollback(conn: sqlite3.Connection) -> None:
    if not conn.in_transaction:
        return
    try:
        conn.execute("ROLLBACK")
    except sqlite3.Error as e:
        logger.warning(f"Rollback failed: {e}")
