"""
Service layer for the card registry.

``CardService`` is the only component that reads or writes the
``cards`` table.  Each owner has at most one row, guaranteed by the
``UNIQUE`` constraint on ``owner_id``.  Registration is a single
``INSERT ... ON CONFLICT(owner_id) DO UPDATE`` statement so that two
simultaneous registrations by the same owner can neither create a
second row nor lose one of the writes.

All queries use parameterized statements.  Every ``sqlite3`` error is
re-raised as :class:`StorageError`; the service never retries.
"""

from __future__ import annotations

import logging
import sqlite3
from typing import List

from card_registry.app.core.db import ConnectionPool
from card_registry.app.core.errors import NotFoundError, StorageError
from card_registry.app.schemas.card import Card

logger = logging.getLogger(__name__)

UPSERT_SQL = """
    INSERT INTO cards (id, owner_id, username)
    VALUES (?, ?, ?)
    ON CONFLICT(owner_id) DO UPDATE SET
        id = excluded.id,
        username = excluded.username,
        revision = cards.revision + 1
    RETURNING id, owner_id, username, revision
"""


class CardService:
    """Registry of owner → card mappings backed by a connection pool."""

    def __init__(self, pool: ConnectionPool) -> None:
        self.pool = pool

    @staticmethod
    def _row_to_card(row: sqlite3.Row) -> Card:
        return Card(
            id=row["id"],
            owner_id=row["owner_id"],
            username=row["username"],
            revision=row["revision"],
        )

    def upsert(self, owner_id: str, card_id: str, username: str) -> Card:
        """Insert the owner's card or overwrite the existing one.

        ``card_id`` must already be normalized and validated.  The
        returned card's ``created`` property tells whether a new row was
        inserted.
        """
        try:
            with self.pool.connection() as conn:
                # fetchall() steps the statement to completion before commit
                row = conn.execute(UPSERT_SQL, (card_id, owner_id, username)).fetchall()[0]
        except sqlite3.Error as exc:
            logger.error("Failed to store card for owner %s: %s", owner_id, exc)
            raise StorageError(f"could not store card: {exc}") from exc
        card = self._row_to_card(row)
        logger.info(
            "%s card %s for owner %s",
            "Created" if card.created else "Updated",
            card.id,
            owner_id,
        )
        return card

    def get(self, owner_id: str) -> Card:
        """Return the owner's card or raise :class:`NotFoundError`."""
        try:
            with self.pool.connection() as conn:
                row = conn.execute(
                    "SELECT id, owner_id, username, revision FROM cards WHERE owner_id = ?",
                    (owner_id,),
                ).fetchone()
        except sqlite3.Error as exc:
            logger.error("Failed to look up card for owner %s: %s", owner_id, exc)
            raise StorageError(f"could not look up card: {exc}") from exc
        if row is None:
            raise NotFoundError(f"no card registered for owner {owner_id}")
        return self._row_to_card(row)

    def list(self) -> List[Card]:
        """Return every card in insertion order."""
        try:
            with self.pool.connection() as conn:
                rows = conn.execute(
                    "SELECT id, owner_id, username, revision FROM cards ORDER BY rowid"
                ).fetchall()
        except sqlite3.Error as exc:
            logger.error("Failed to list cards: %s", exc)
            raise StorageError(f"could not list cards: {exc}") from exc
        return [self._row_to_card(row) for row in rows]
