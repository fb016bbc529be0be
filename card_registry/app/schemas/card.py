"""
Pydantic schemas for cards.

``Card`` is the full row as stored by :class:`CardService`.  The
export served by ``GET /cards.json`` uses the narrower ``CardOut``
(``id`` plus the display name under ``name``) grouped into pages.  A
single page is produced today; the ``pages`` wrapper leaves room for
splitting large registries later without changing the wire format.
"""

from typing import List

from pydantic import BaseModel, Field


class Card(BaseModel):
    """A registered card as stored in the database."""

    id: str = Field(..., description="Normalized 16-digit hexadecimal card identifier")
    owner_id: str = Field(..., description="Identity of the user owning the card")
    username: str = Field(..., description="Display name captured at the last registration")
    revision: int = Field(0, description="Number of times the row was overwritten")

    @property
    def created(self) -> bool:
        """True when the row has never been overwritten."""
        return self.revision == 0


class CardOut(BaseModel):
    """Card as exported by the query API."""

    id: str
    name: str

    @classmethod
    def from_card(cls, card: Card) -> "CardOut":
        return cls(id=card.id, name=card.username)


class Page(BaseModel):
    cards: List[CardOut]


class CardList(BaseModel):
    """Paginated export of the whole registry."""

    pages: List[Page]

    @classmethod
    def single_page(cls, cards: List[Card]) -> "CardList":
        return cls(pages=[Page(cards=[CardOut.from_card(card) for card in cards])])
