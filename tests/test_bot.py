# tests/test_bot.py
import asyncio
import threading

import pytest

import bot
from hypem_resolver import HypemConfig


def test_build_reply_with_resolved_url(monkeypatch):
    seen = {}

    def fake_resolve(text, config):
        seen["text"] = text
        return "http://soundcloud.com/artist/track"

    monkeypatch.setattr(bot, "load_config", lambda: HypemConfig(auth_cookie="AUTH=x"))
    monkeypatch.setattr(bot, "resolve_track", fake_resolve)

    assert bot.build_reply("http://hypem.com/track/2c87x") == "✅ http://soundcloud.com/artist/track"
    assert seen["text"] == "http://hypem.com/track/2c87x"


def test_build_reply_when_nothing_resolved(monkeypatch):
    monkeypatch.setattr(bot, "load_config", lambda: HypemConfig())
    monkeypatch.setattr(bot, "resolve_track", lambda text, config: None)
    assert bot.build_reply("zz999").startswith("⚠️")


def test_main_requires_token(monkeypatch):
    monkeypatch.setattr(bot, "load_dotenv", lambda *a, **kw: False)
    monkeypatch.delenv("TELEGRAM_BOT_TOKEN", raising=False)
    with pytest.raises(RuntimeError):
        bot.main()


class _FakeMessage:
    def __init__(self, text):
        self.text = text
        self.replies = []

    async def reply_text(self, text):
        self.replies.append(text)


class _FakeUpdate:
    def __init__(self, text):
        self.message = _FakeMessage(text)


def test_handle_text_resolves_off_the_event_loop(monkeypatch):
    threads = []

    def fake_build_reply(text):
        threads.append(threading.current_thread())
        return f"✅ resolved {text}"

    monkeypatch.setattr(bot, "build_reply", fake_build_reply)
    update = _FakeUpdate(" 2c87x ")

    asyncio.run(bot.handle_text(update, None))

    assert update.message.replies == ["✅ resolved 2c87x"]
    assert threads and threads[0] is not threading.main_thread()


def test_handle_text_ignores_empty_message(monkeypatch):
    monkeypatch.setattr(bot, "build_reply", lambda text: pytest.fail("should not resolve"))
    update = _FakeUpdate("   ")
    asyncio.run(bot.handle_text(update, None))
    assert update.message.replies == []
