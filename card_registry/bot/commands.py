"""
Card commands independent of the chat platform.

``CardCommands`` implements the two user-facing operations, registering
(or replacing) one's card and looking it up, on top of the validator
and :class:`CardService`.  It returns a :class:`CommandResult` instead
of text so that each transport can phrase and localize the reply.  The
owner identity and display name come from the platform, which has
already authenticated the user.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from card_registry.app.core.errors import NotFoundError, StorageError, ValidationError
from card_registry.app.schemas.card import Card
from card_registry.app.services import validator
from card_registry.app.services.card_service import CardService

logger = logging.getLogger(__name__)


class Outcome(str, Enum):
    CREATED = "created"
    UPDATED = "updated"
    INVALID_FORMAT = "invalid_format"
    STORAGE_FAILED = "storage_failed"
    FOUND = "found"
    NOT_REGISTERED = "not_registered"


@dataclass(frozen=True)
class CommandResult:
    """Outcome of a command plus the card it concerns, when there is one."""

    outcome: Outcome
    card: Optional[Card] = None

    @property
    def ok(self) -> bool:
        return self.outcome in (Outcome.CREATED, Outcome.UPDATED, Outcome.FOUND)


class CardCommands:
    def __init__(self, card_service: CardService) -> None:
        self.card_service = card_service

    def register_or_update(self, owner_id: str, raw_card_id: str, display_name: str) -> CommandResult:
        """Register ``raw_card_id`` for ``owner_id``, replacing any previous card.

        Malformed identifiers are rejected without touching the store.
        """
        try:
            card_id = validator.clean_card_id(raw_card_id)
        except ValidationError:
            logger.info("Rejected malformed card id from owner %s", owner_id)
            return CommandResult(Outcome.INVALID_FORMAT)
        try:
            card = self.card_service.upsert(owner_id, card_id, display_name)
        except StorageError:
            return CommandResult(Outcome.STORAGE_FAILED)
        return CommandResult(Outcome.CREATED if card.created else Outcome.UPDATED, card)

    def lookup_own(self, owner_id: str) -> CommandResult:
        """Return the card registered by ``owner_id``."""
        try:
            card = self.card_service.get(owner_id)
        except NotFoundError:
            return CommandResult(Outcome.NOT_REGISTERED)
        except StorageError:
            return CommandResult(Outcome.STORAGE_FAILED)
        return CommandResult(Outcome.FOUND, card)
