"""
Main entrypoint for the card query API.

This module assembles the FastAPI application.  ``create_app`` takes
the already-initialised :class:`CardService` and the API password so
that the HTTP front-end and the Telegram bot share one connection pool;
the supervisor serves the returned app with uvicorn.

Registry errors are mapped to plain-text HTTP responses here:
:class:`AuthError` becomes ``401 invalid password`` and
:class:`StorageError` becomes ``500``.
"""

import logging

from fastapi import FastAPI, Request, status
from fastapi.responses import PlainTextResponse

from .api.router import router
from .core.errors import AuthError, StorageError
from .services.card_service import CardService

logger = logging.getLogger(__name__)

PROJECT_NAME = "Card Registry API"
API_VERSION = "1.0.0"


async def auth_error_handler(request: Request, exc: AuthError) -> PlainTextResponse:
    logger.warning("Rejected %s %s: %s", request.method, request.url.path, exc)
    return PlainTextResponse("invalid password", status_code=status.HTTP_401_UNAUTHORIZED)


async def storage_error_handler(request: Request, exc: StorageError) -> PlainTextResponse:
    logger.error("Storage failure on %s %s: %s", request.method, request.url.path, exc)
    return PlainTextResponse(
        "could not get cards from database",
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
    )


def create_app(card_service: CardService, api_password: str) -> FastAPI:
    """Create and configure a FastAPI application.

    Parameters
    ----------
    card_service : CardService
        Registry shared with the Telegram bot.
    api_password : str
        Secret the ``password`` header must match.

    Returns
    -------
    FastAPI
        A configured FastAPI application instance.
    """
    app = FastAPI(title=PROJECT_NAME, version=API_VERSION)
    app.state.card_service = card_service
    app.state.api_password = api_password

    app.add_exception_handler(AuthError, auth_error_handler)
    app.add_exception_handler(StorageError, storage_error_handler)

    app.include_router(router)
    return app
