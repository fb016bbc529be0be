"""
Error taxonomy shared by the bot, the HTTP API and the card service.

Every error raised on purpose by the registry derives from
:class:`CardRegistryError`.  Adapters translate these into user-facing
messages (bot) or HTTP responses (API); only :class:`ConfigError` and
errors raised while opening the database at start-up are fatal.
"""


class CardRegistryError(Exception):
    """Base class for registry errors."""


class ValidationError(CardRegistryError):
    """A card identifier is not 16 hexadecimal characters."""


class NotFoundError(CardRegistryError):
    """The owner has no registered card."""


class AuthError(CardRegistryError):
    """The query API password is missing or wrong."""


class StorageError(CardRegistryError):
    """The database could not complete an operation."""


class ConfigError(CardRegistryError):
    """Required configuration is missing or malformed."""
