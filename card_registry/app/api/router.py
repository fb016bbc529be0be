"""
Top‑level router for the query API.

The export lives at the application root (``/cards.json``) because
existing consumers fetch it from there.
"""

from fastapi import APIRouter

from .endpoints import cards

router = APIRouter()

router.include_router(cards.router, tags=["cards"])
