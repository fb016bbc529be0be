"""
Tests for running the two services side by side.
"""
from __future__ import annotations

import asyncio
import os
import socket
import subprocess
import sys
import textwrap
import threading
import time
from pathlib import Path

import pytest

from card_registry.app.core.config import Settings
from card_registry.supervisor import ServiceExit, main, run_api, run_bot, run_until_first_exit

PROJECT_ROOT = Path(__file__).resolve().parents[1]


async def forever(cancelled):
    try:
        await asyncio.Event().wait()
    except asyncio.CancelledError:
        cancelled.append(True)
        raise


async def fail_soon(message):
    await asyncio.sleep(0.01)
    raise RuntimeError(message)


async def return_soon():
    await asyncio.sleep(0.01)


def test_first_failure_stops_everything():
    cancelled = []
    outcome = asyncio.run(
        run_until_first_exit({"query-api": forever(cancelled), "telegram-bot": fail_soon("token rejected")})
    )
    assert outcome.name == "telegram-bot"
    assert isinstance(outcome.error, RuntimeError)
    assert outcome.exit_code == 1
    assert cancelled == [True]


def test_first_clean_exit_stops_everything():
    cancelled = []
    outcome = asyncio.run(
        run_until_first_exit({"query-api": return_soon(), "telegram-bot": forever(cancelled)})
    )
    assert outcome == ServiceExit("query-api")
    assert outcome.exit_code == 0
    assert cancelled == [True]


class FakeBot:
    def __init__(self, error=None):
        self.error = error
        self.stopped = threading.Event()

    def run(self):
        if self.error is not None:
            raise self.error
        self.stopped.wait(5)

    def stop(self):
        self.stopped.set()


def test_run_bot_propagates_failure():
    with pytest.raises(RuntimeError, match="bad token"):
        asyncio.run(run_bot(FakeBot(RuntimeError("bad token"))))


def test_run_bot_stops_bot_when_cancelled():
    bot = FakeBot()

    async def scenario():
        return await run_until_first_exit(
            {"query-api": fail_soon("bind failed"), "telegram-bot": run_bot(bot)}
        )

    outcome = asyncio.run(scenario())
    assert outcome.name == "query-api"
    assert bot.stopped.wait(1)


BUSY_HANDLER_SCRIPT = textwrap.dedent(
    """
    import asyncio
    import sys
    import time

    from card_registry.bot.telegram_card_bot import TelegramCardBot
    from card_registry.supervisor import run_bot, run_until_first_exit


    class SlowCommands:
        def lookup_own(self, owner_id):
            print("handling", flush=True)
            time.sleep(30)


    class OfflineBot(TelegramCardBot):
        def _telegram_request(self, http_method, method, **kwargs):
            return {"ok": True, "result": {}}

        def _get_updates(self, timeout=30):
            if self.last_update_id == 0:
                return [{"update_id": 1, "message": {"chat": {"id": 1}, "from": {"id": 7}, "text": "/my_card"}}]
            self._stop_event.wait(timeout)
            return []


    async def failing_api():
        await asyncio.sleep(1.0)
        raise RuntimeError("bind failed")


    bot = OfflineBot("1:TEST", SlowCommands())
    outcome = asyncio.run(run_until_first_exit({"query-api": failing_api(), "telegram-bot": run_bot(bot)}))
    sys.exit(outcome.exit_code)
    """
)


def test_process_exits_while_bot_handler_is_busy(tmp_path):
    script = tmp_path / "busy_handler.py"
    script.write_text(BUSY_HANDLER_SCRIPT, encoding="utf-8")
    env = dict(os.environ)
    env["PYTHONPATH"] = os.pathsep.join(filter(None, [str(PROJECT_ROOT), env.get("PYTHONPATH")]))

    started = time.monotonic()
    result = subprocess.run(
        [sys.executable, str(script)], env=env, capture_output=True, text=True, timeout=60
    )
    elapsed = time.monotonic() - started

    assert "handling" in result.stdout
    assert result.returncode == 1
    assert elapsed < 15, f"exit took {elapsed:.1f}s"


@pytest.fixture()
def clean_environment(tmp_path, monkeypatch):
    for key in list(os.environ):
        if key.startswith("CARDBOT_"):
            monkeypatch.delenv(key)
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("CARDBOT_CONFIG", str(tmp_path / "absent.toml"))
    return monkeypatch


def test_main_exits_on_missing_settings(clean_environment):
    clean_environment.setenv("CARDBOT_DB_FILE", "cards.db")
    with pytest.raises(SystemExit) as excinfo:
        main()
    assert excinfo.value.code == 1


def test_main_exits_when_database_cannot_be_opened(clean_environment, tmp_path):
    clean_environment.setenv("CARDBOT_DB_FILE", str(tmp_path / "missing-dir" / "cards.db"))
    clean_environment.setenv("CARDBOT_API_PASSWORD", "s3cret")
    clean_environment.setenv("CARDBOT_BOT_TOKEN", "123:ABC")
    with pytest.raises(SystemExit) as excinfo:
        main()
    assert excinfo.value.code == 1


def test_run_api_fails_when_port_is_taken(card_service):
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as taken:
        taken.bind(("127.0.0.1", 0))
        taken.listen()
        port = taken.getsockname()[1]
        settings = Settings(
            db_file="unused.db",
            api_password="s3cret",
            bot_token="123:ABC",
            api_host="127.0.0.1",
            api_port=port,
            log_level="critical",
        )
        with pytest.raises(RuntimeError, match="could not start HTTP server"):
            asyncio.run(run_api(settings, card_service))
