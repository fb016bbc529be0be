"""Card identifier normalization and validation."""

import re

from card_registry.app.core.errors import ValidationError

CARD_ID_PATTERN = re.compile(r"[0-9A-F]{16}")


def normalize(raw: str) -> str:
    """Upper-case ``raw`` and drop every whitespace character.

    ``"1234 5678 90ab cdef"`` becomes ``"1234567890ABCDEF"``.
    """
    return "".join(ch for ch in raw.upper() if not ch.isspace())


def validate(normalized: str) -> bool:
    """Return True if ``normalized`` is exactly 16 hexadecimal digits (upper case)."""
    return CARD_ID_PATTERN.fullmatch(normalized) is not None


def clean_card_id(raw: str) -> str:
    """Return the normalized form of ``raw`` or raise :class:`ValidationError`."""
    normalized = normalize(raw)
    if not validate(normalized):
        raise ValidationError(f"not a 16-digit hexadecimal card id: {raw!r}")
    return normalized
