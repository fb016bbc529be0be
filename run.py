"""Unified entry point for the Telegram bot and the card query API.

This script launches both services concurrently.  It is intended to be
executed from the project root, for example under Pterodactyl or
Docker, where you only specify a single Python file to run.

Settings are read from ``config.toml`` in the working directory and
from ``CARDBOT_*`` environment variables (``CARDBOT_DB_FILE``,
``CARDBOT_API_PASSWORD`` and ``CARDBOT_BOT_TOKEN`` are required).

Usage:
    python run.py
"""

from card_registry.supervisor import main


if __name__ == "__main__":
    main()
