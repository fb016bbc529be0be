"""
Password check for the query API.

``GET /cards.json`` is protected by a single shared secret sent in the
``password`` request header.  The expected value is configured at
start-up and stored on ``app.state.api_password`` by ``create_app``.
"""

import hmac
from typing import Optional

from fastapi import Header, Request

from .errors import AuthError


def check_password(supplied: Optional[str], expected: str) -> None:
    """Raise :class:`AuthError` unless ``supplied`` equals ``expected`` exactly.

    The comparison is done on UTF-8 bytes in constant time.
    """
    if supplied is None:
        raise AuthError("missing password header")
    if not hmac.compare_digest(supplied.encode("utf-8"), expected.encode("utf-8")):
        raise AuthError("invalid password")


def require_api_password(request: Request, password: Optional[str] = Header(None)) -> None:
    """FastAPI dependency enforcing the ``password`` header."""
    check_password(password, request.app.state.api_password)
