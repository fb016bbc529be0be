"""
Card export endpoint.

``GET /cards.json`` returns every registered card wrapped in a single
page.  The request must carry the configured secret in the
``password`` header; see :mod:`card_registry.app.core.security`.
"""

from fastapi import APIRouter, Depends, Request

from card_registry.app.core.security import require_api_password
from card_registry.app.schemas.card import CardList
from card_registry.app.services.card_service import CardService

router = APIRouter()


def get_card_service(request: Request) -> CardService:
    return request.app.state.card_service


@router.get(
    "/cards.json",
    response_model=CardList,
    dependencies=[Depends(require_api_password)],
)
def list_cards(service: CardService = Depends(get_card_service)) -> CardList:
    """Return the whole registry as ``{"pages": [{"cards": [...]}]}``.

    Defined as a plain function so FastAPI runs it in its thread pool
    and concurrent requests do not block the event loop on SQLite.
    """
    return CardList.single_page(service.list())
