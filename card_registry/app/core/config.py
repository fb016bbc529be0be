"""
Configuration management.

Settings are read once at start-up from an optional ``config.toml``
file and from environment variables prefixed with ``CARDBOT_``;
environment variables win.  The resulting :class:`Settings` value is
immutable and is passed to the services that need it instead of being
imported as a module global.

Example ``config.toml``::

    db_file = "cards.db"
    api_password = "s3cret"
    bot_token = "123456:ABC..."
"""

import os
import tomllib
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

from .errors import ConfigError

ENV_PREFIX = "CARDBOT_"
DEFAULT_CONFIG_FILE = "config.toml"


@dataclass(frozen=True)
class Settings:
    """Application settings."""

    # Path of the SQLite database file.  Created on first start.
    db_file: str
    # Value the ``password`` header of ``GET /cards.json`` must equal.
    api_password: str
    # Token assigned by BotFather.
    bot_token: str
    api_host: str = "0.0.0.0"
    api_port: int = 3000
    # Capacity of the shared database connection pool.
    pool_size: int = 5
    log_level: str = "INFO"
    log_file: Optional[str] = None

    @property
    def database_path(self) -> str:
        """Absolute path of the database file, relative paths resolved against the CWD."""
        return str(Path(self.db_file).expanduser().resolve())


REQUIRED_KEYS = ("db_file", "api_password", "bot_token")
INT_KEYS = ("api_port", "pool_size")
OPTIONAL_KEYS = ("api_host", "log_level", "log_file")


def _read_config_file(path: Path) -> Dict[str, Any]:
    if not path.is_file():
        return {}
    try:
        with path.open("rb") as fh:
            return tomllib.load(fh)
    except (OSError, tomllib.TOMLDecodeError) as exc:
        raise ConfigError(f"cannot read {path}: {exc}") from exc


def load_settings(
    config_file: Optional[str] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> Settings:
    """Build :class:`Settings` from ``config.toml`` and the environment.

    ``config_file`` defaults to ``$CARDBOT_CONFIG`` or ``config.toml`` in
    the working directory; a missing file is not an error.  Raises
    :class:`ConfigError` when a required key is absent or an integer
    setting cannot be parsed.
    """
    env = os.environ if environ is None else environ
    path = Path(config_file or env.get(f"{ENV_PREFIX}CONFIG", DEFAULT_CONFIG_FILE))

    values: Dict[str, Any] = {}
    for key, value in _read_config_file(path).items():
        if key in REQUIRED_KEYS + INT_KEYS + OPTIONAL_KEYS:
            values[key] = value
    for key in REQUIRED_KEYS + INT_KEYS + OPTIONAL_KEYS:
        env_value = env.get(f"{ENV_PREFIX}{key.upper()}")
        if env_value is not None:
            values[key] = env_value

    missing = [key for key in REQUIRED_KEYS if not values.get(key)]
    if missing:
        names = ", ".join(f"{ENV_PREFIX}{key.upper()}" for key in missing)
        raise ConfigError(f"missing required settings: {names}")

    for key in INT_KEYS:
        if key in values:
            try:
                values[key] = int(values[key])
            except (TypeError, ValueError) as exc:
                raise ConfigError(f"{key} must be an integer, got {values[key]!r}") from exc
    if values.get("pool_size", 1) < 1:
        raise ConfigError("pool_size must be at least 1")

    return Settings(**{key: (str(v) if key not in INT_KEYS else v) for key, v in values.items()})
