"""
Shared fixtures: a fresh migrated SQLite database per test.
"""
from __future__ import annotations

import pytest

from card_registry.app.core.db import ConnectionPool, init_db
from card_registry.app.services.card_service import CardService
from card_registry.bot.commands import CardCommands


@pytest.fixture()
def pool(tmp_path):
    """Connection pool over a temporary database with the current schema."""
    pool = ConnectionPool(str(tmp_path / "cards.db"), size=5)
    init_db(pool)
    yield pool
    pool.close()


@pytest.fixture()
def card_service(pool):
    return CardService(pool)


@pytest.fixture()
def commands(card_service):
    return CardCommands(card_service)
