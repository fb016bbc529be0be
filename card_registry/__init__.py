"""
Top‑level package for the card registry.

The registry maps a Telegram user to exactly one card identifier.  It
is served by two front-ends running in one process: a Telegram bot
(``card_registry.bot``) for registering and looking up a card, and a
read-only HTTP API (``card_registry.app``) that exports the whole
registry.  ``card_registry.supervisor`` starts both.
"""

__all__ = []
