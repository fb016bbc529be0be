"""A Telegram front-end for the card registry.

This module implements the bot without relying on a Telegram framework.
It talks to Telegram's HTTP Bot API with the ``requests`` library and
uses long polling to receive updates.  Supported commands:

``/add_card <card id>`` (Polish: ``/dodaj_karte``)
    Register a card, or replace the card already registered by the
    sender.  Spaces and letter case in the identifier do not matter.

``/my_card`` (Polish: ``/moja_karta``)
    Show the card registered by the sender.

``/start`` and ``/help``
    Short usage instructions.

The sender's Telegram user id is the owner identity and their Telegram
username is stored as the display name.  Replies are written in Polish
for users whose Telegram client reports ``language_code`` ``pl`` and in
English otherwise.

Polling is blocking, so :meth:`TelegramCardBot.run` is meant to run in
its own thread.  Each received update is handled on a worker thread so
slow database calls for one user do not delay the others.
"""

from __future__ import annotations

import logging
import queue
import random
import threading
import time
from typing import Any, Dict, List, Optional

import requests

from card_registry.app.core.errors import CardRegistryError
from card_registry.bot.commands import CardCommands, CommandResult, Outcome

logger = logging.getLogger(__name__)

TELEGRAM_API_BASE = "https://api.telegram.org"

# Command menus registered with Telegram; the ``None`` entry is the default
# shown to every user, the others apply to one client language.
BOT_COMMANDS: Dict[Optional[str], List[Dict[str, str]]] = {
    None: [
        {"command": "add_card", "description": "Adds a card to our database"},
        {"command": "my_card", "description": "Checks if a card is in our database"},
    ],
    "pl": [
        {"command": "dodaj_karte", "description": "Dodaje karte do naszej bazy kart"},
        {"command": "moja_karta", "description": "Sprawdza czy karta jest dodana do naszej bazy"},
    ],
}

COMMAND_ALIASES = {
    "add_card": "add_card",
    "dodaj_karte": "add_card",
    "my_card": "my_card",
    "moja_karta": "my_card",
    "start": "help",
    "help": "help",
}

MESSAGES: Dict[str, Dict[str, str]] = {
    "en": {
        "card_added": "Added {card} to the database.",
        "card_updated": "Card updated to {card}.",
        "invalid_card": "Invalid card ID.",
        "add_failed": "Couldn't add the card to the database.",
        "my_card": "{username} - {card}",
        "no_card": "No card in database.",
        "lookup_failed": "Couldn't read your card from the database.",
        "add_usage": "Usage: /add_card <card id>",
        "help": (
            "Register your card with /add_card <card id> "
            "(16 hexadecimal characters, spaces are ignored).\n"
            "Check the registered card with /my_card."
        ),
    },
    "pl": {
        "card_added": "Dodano karte {card} do bazy.",
        "card_updated": "Zaktualizowano kartę na {card}.",
        "invalid_card": "Nieprawidłowe ID karty.",
        "add_failed": "Nie udało się dodać karty do bazy.",
        "my_card": "{username} - {card}",
        "no_card": "Brak karty w bazie.",
        "lookup_failed": "Nie udało się odczytać karty z bazy.",
        "add_usage": "Użycie: /dodaj_karte <id karty>",
        "help": (
            "Dodaj swoją kartę poleceniem /dodaj_karte <id karty> "
            "(16 znaków szesnastkowych, spacje są pomijane).\n"
            "Sprawdź dodaną kartę poleceniem /moja_karta."
        ),
    },
}

ADD_CARD_REPLIES = {
    Outcome.CREATED: "card_added",
    Outcome.UPDATED: "card_updated",
    Outcome.INVALID_FORMAT: "invalid_card",
    Outcome.STORAGE_FAILED: "add_failed",
}

MY_CARD_REPLIES = {
    Outcome.FOUND: "my_card",
    Outcome.NOT_REGISTERED: "no_card",
    Outcome.STORAGE_FAILED: "lookup_failed",
}


class TelegramError(CardRegistryError):
    """The Bot API rejected a request in a way retrying cannot fix."""


class TelegramCardBot:
    """Long-polling Telegram bot exposing :class:`CardCommands`."""

    def __init__(
        self,
        bot_token: str,
        commands: CardCommands,
        *,
        poll_timeout: int = 30,
        max_workers: int = 4,
        backlog: int = 100,
        api_base: str = TELEGRAM_API_BASE,
    ) -> None:
        if not bot_token:
            raise ValueError("bot_token must not be empty")
        self.commands = commands
        self.poll_timeout = poll_timeout
        self.max_workers = max_workers
        # Updates waiting for a worker; polling pauses while this is full
        self._updates: "queue.Queue[Optional[Dict[str, Any]]]" = queue.Queue(maxsize=backlog)
        # Set from getMe when the bot starts
        self.username: Optional[str] = None
        self.telegram_api_url = f"{api_base}/bot{bot_token}"
        # Keep track of the last processed update to avoid repeated processing
        self.last_update_id = 0
        self._stop_event = threading.Event()

    # ------------------------------------------------------------------
    # Telegram API helpers
    # ------------------------------------------------------------------
    def _sleep_backoff(self, attempt: int, resp: Optional[requests.Response] = None) -> None:
        """Sleep for an exponentially increasing interval with jitter.

        If a ``Retry-After`` header is present on a 429 response it is
        respected.  Otherwise the delay doubles with each attempt up to a
        ceiling of 60 seconds and a random jitter is added.
        """
        delay = None
        if resp is not None and resp.status_code == 429:
            retry_after = resp.headers.get("Retry-After")
            if retry_after is not None:
                try:
                    delay = float(retry_after)
                except ValueError:
                    pass
        if delay is None:
            delay = min(2 ** (attempt - 1), 60) + random.random()
        logger.warning("Request failure #%d, sleeping %.1fs before retry", attempt, delay)
        time.sleep(delay)

    def _telegram_request(
        self,
        http_method: str,
        method: str,
        *,
        params: Optional[Dict[str, Any]] = None,
        payload: Optional[Dict[str, Any]] = None,
        timeout: int = 10,
        max_attempts: Optional[int] = None,
    ) -> Optional[Dict[str, Any]]:
        """Perform a request against the Telegram API with retries.

        Connection errors, 429 and 5xx responses are retried with
        backoff, indefinitely unless ``max_attempts`` is given.  Any
        other 4xx response (for example a revoked token) raises
        :class:`TelegramError` immediately.
        """
        url = f"{self.telegram_api_url}/{method}"
        attempt = 0
        while True:
            attempt += 1
            resp: Optional[requests.Response] = None
            try:
                resp = requests.request(
                    http_method,
                    url,
                    params=params,
                    json=payload,
                    timeout=timeout,
                )
            except requests.RequestException as exc:
                logger.error("Telegram %s error: %s", method, exc)
            else:
                if resp.status_code == 429 or resp.status_code >= 500:
                    logger.warning("Telegram %s returned HTTP %d", method, resp.status_code)
                elif resp.status_code >= 400:
                    raise TelegramError(
                        f"Telegram {method} failed with HTTP {resp.status_code}: {resp.text}"
                    )
                else:
                    try:
                        return resp.json()
                    except ValueError:
                        return None
            if max_attempts is not None and attempt >= max_attempts:
                raise TelegramError(f"Telegram {method} failed after {attempt} attempts")
            self._sleep_backoff(attempt, resp)

    def _get_updates(self, timeout: int = 30) -> List[Dict[str, Any]]:
        """Request new updates from Telegram.

        Args:
            timeout: Long polling timeout in seconds.
        Returns:
            A list of update objects, empty if Telegram reported an error.
        """
        params = {
            "timeout": timeout,
            "offset": self.last_update_id + 1,
        }
        data = self._telegram_request("get", "getUpdates", params=params, timeout=timeout + 5)
        if isinstance(data, dict) and data.get("ok"):
            return data.get("result", [])
        if data:
            logger.error("Telegram getUpdates failed: %s", data)
        return []

    def _send_message(self, chat_id: int, text: str) -> None:
        """Send a plain text message to a Telegram chat."""
        payload = {"chat_id": chat_id, "text": text}
        data = self._telegram_request("post", "sendMessage", payload=payload, max_attempts=5)
        if data and not data.get("ok"):
            logger.error("Telegram sendMessage failed: %s", data)

    def _load_identity(self) -> None:
        """Fetch the bot's own username so commands addressed to other bots can be ignored."""
        data = self._telegram_request("get", "getMe", max_attempts=5)
        result = (data or {}).get("result")
        if isinstance(result, dict) and result.get("username"):
            self.username = str(result["username"])
            logger.info("Logged in as @%s", self.username)

    def _register_commands(self) -> None:
        """Publish the command menus, one per language."""
        for language_code, commands in BOT_COMMANDS.items():
            payload: Dict[str, Any] = {"commands": commands}
            if language_code:
                payload["language_code"] = language_code
            self._telegram_request("post", "setMyCommands", payload=payload, max_attempts=5)
        logger.info("Registered bot commands")

    # ------------------------------------------------------------------
    # Messages
    # ------------------------------------------------------------------
    @staticmethod
    def _get_message(key: str, locale: Optional[str] = None, **values: str) -> str:
        """Return the reply ``key`` in the user's language, formatted with ``values``."""
        language = (locale or "en").split("-", 1)[0].lower()
        template = MESSAGES.get(language, MESSAGES["en"]).get(key, MESSAGES["en"][key])
        return template.format(**values)

    @staticmethod
    def _display_name(user: Dict[str, Any]) -> str:
        if user.get("username"):
            return str(user["username"])
        full_name = " ".join(
            part for part in (user.get("first_name"), user.get("last_name")) if part
        )
        return full_name or str(user.get("id"))

    # ------------------------------------------------------------------
    # Command handlers
    # ------------------------------------------------------------------
    def _reply(
        self,
        chat_id: int,
        user: Dict[str, Any],
        result: CommandResult,
        replies: Dict[Outcome, str],
    ) -> None:
        values = {}
        if result.card is not None:
            values = {"card": result.card.id, "username": result.card.username}
        text = self._get_message(replies[result.outcome], user.get("language_code"), **values)
        self._send_message(chat_id, text)

    def _handle_add_card(self, chat_id: int, user: Dict[str, Any], args: str) -> None:
        if not args.strip():
            self._send_message(chat_id, self._get_message("add_usage", user.get("language_code")))
            return
        result = self.commands.register_or_update(str(user["id"]), args, self._display_name(user))
        self._reply(chat_id, user, result, ADD_CARD_REPLIES)

    def _handle_my_card(self, chat_id: int, user: Dict[str, Any]) -> None:
        result = self.commands.lookup_own(str(user["id"]))
        self._reply(chat_id, user, result, MY_CARD_REPLIES)

    def _handle_help(self, chat_id: int, user: Dict[str, Any]) -> None:
        self._send_message(chat_id, self._get_message("help", user.get("language_code")))

    def _dispatch_update(self, update: Dict[str, Any]) -> None:
        """Process a single update from Telegram."""
        message = update.get("message")
        if not message:
            return
        chat_id = (message.get("chat") or {}).get("id")
        user = message.get("from") or {}
        text = (message.get("text") or "").strip()
        if chat_id is None or not user.get("id") or not text.startswith("/"):
            return
        parts = text.split(maxsplit=1)
        # Commands in group chats arrive as /command@botname
        command, _, mention = parts[0][1:].partition("@")
        if mention and self.username and mention.lower() != self.username.lower():
            return
        command = command.lower()
        args = parts[1] if len(parts) > 1 else ""

        action = COMMAND_ALIASES.get(command)
        if action == "add_card":
            self._handle_add_card(chat_id, user, args)
        elif action == "my_card":
            self._handle_my_card(chat_id, user)
        elif action == "help":
            self._handle_help(chat_id, user)

    def _handle_update_safely(self, update: Dict[str, Any]) -> None:
        try:
            self._dispatch_update(update)
        except Exception:
            logger.exception("Failed to handle update %s", update.get("update_id"))

    # ------------------------------------------------------------------
    # Main loop
    # ------------------------------------------------------------------
    def _worker(self) -> None:
        while True:
            update = self._updates.get()
            try:
                if update is None:
                    return
                self._handle_update_safely(update)
            finally:
                self._updates.task_done()

    def _start_workers(self) -> List[threading.Thread]:
        # Daemon threads: a handler still running when the process exits is abandoned
        workers = [
            threading.Thread(target=self._worker, name=f"card-bot-{i}", daemon=True)
            for i in range(self.max_workers)
        ]
        for worker in workers:
            worker.start()
        return workers

    def stop(self) -> None:
        """Ask :meth:`run` to return after the current poll."""
        self._stop_event.set()

    def run(self) -> None:
        """Register commands and process updates until :meth:`stop` is called.

        Updates are queued for the worker threads; once ``backlog`` updates
        are waiting, polling blocks until a worker frees a slot.  After
        :meth:`stop`, queued updates are handled before ``run`` returns.

        Raises :class:`TelegramError` when Telegram rejects the bot, for
        example because the token is invalid.
        """
        logger.info("Card bot is running...")
        self._load_identity()
        self._register_commands()
        workers = self._start_workers()
        while not self._stop_event.is_set():
            for update in self._get_updates(timeout=self.poll_timeout):
                self._updates.put(update)
                self.last_update_id = max(self.last_update_id, update.get("update_id", 0))
        for _ in workers:
            self._updates.put(None)
        self._updates.join()
        logger.info("Card bot stopped.")
