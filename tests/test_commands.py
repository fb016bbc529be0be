"""
Tests for the platform-independent card commands.
"""
from __future__ import annotations

from card_registry.app.core.errors import StorageError
from card_registry.bot.commands import CardCommands, Outcome


class FailingCardService:
    """Stand-in whose every call fails like a broken database."""

    def __init__(self):
        self.calls = 0

    def upsert(self, owner_id, card_id, username):
        self.calls += 1
        raise StorageError("disk I/O error")

    def get(self, owner_id):
        self.calls += 1
        raise StorageError("disk I/O error")


def test_register_then_lookup(commands):
    result = commands.register_or_update("U1", "1234567890abcdef", "alice")
    assert result.outcome is Outcome.CREATED
    assert result.card.id == "1234567890ABCDEF"

    found = commands.lookup_own("U1")
    assert found.outcome is Outcome.FOUND
    assert (found.card.username, found.card.id) == ("alice", "1234567890ABCDEF")


def test_whitespace_and_case_do_not_matter(commands, card_service):
    commands.register_or_update("U1", "1234567890abcdef", "alice")
    first = card_service.get("U1")
    result = commands.register_or_update("U1", "1234 5678 90AB cdef", "alice")
    assert result.outcome is Outcome.UPDATED
    second = card_service.get("U1")
    assert (second.id, second.owner_id, second.username) == (first.id, first.owner_id, first.username)


def test_second_registration_replaces_card(commands, card_service):
    commands.register_or_update("U1", "1111111111111111", "alice")
    result = commands.register_or_update("U1", "2222222222222222", "alice_renamed")
    assert result.outcome is Outcome.UPDATED
    cards = card_service.list()
    assert len(cards) == 1
    assert (cards[0].id, cards[0].username) == ("2222222222222222", "alice_renamed")


def test_invalid_card_is_rejected_without_write(commands, card_service):
    result = commands.register_or_update("U2", "not-a-card", "bob")
    assert result.outcome is Outcome.INVALID_FORMAT
    assert result.card is None
    assert not result.ok
    assert commands.lookup_own("U2").outcome is Outcome.NOT_REGISTERED
    assert card_service.list() == []


def test_invalid_card_does_not_touch_store():
    service = FailingCardService()
    result = CardCommands(service).register_or_update("U2", "1234", "bob")
    assert result.outcome is Outcome.INVALID_FORMAT
    assert service.calls == 0


def test_lookup_without_card(commands):
    result = commands.lookup_own("nobody")
    assert result.outcome is Outcome.NOT_REGISTERED
    assert result.card is None


def test_storage_failures_become_results():
    commands = CardCommands(FailingCardService())
    assert commands.register_or_update("U1", "1234567890ABCDEF", "alice").outcome is Outcome.STORAGE_FAILED
    assert commands.lookup_own("U1").outcome is Outcome.STORAGE_FAILED
