import asyncio
from types import SimpleNamespace

import discord
import pytest

from spiffo_bot.bot import DiscordNotifier, SpiffoClient, strip_role_mention
from spiffo_bot.notifier import NotifierError


def test_strip_role_mention():
    assert strip_role_mention("<@&42> Restart in 5", 42) == "Restart in 5"
    assert strip_role_mention("<@&7> Restart in 5", 42) == "<@&7> Restart in 5"
    assert strip_role_mention("Restart in 5", None) == "Restart in 5"


class FakeChannel:
    def __init__(self):
        self.sent = []

    async def send(self, content, **kwargs):
        self.sent.append(content)


def make_message(channel_id, content):
    return SimpleNamespace(id=1, channel=SimpleNamespace(id=channel_id), content=content)


def test_relay_copies_notification_channel(monkeypatch):
    client = SpiffoClient(relay_from=10, relay_to=20, role_id=42)
    target = FakeChannel()
    requested = []

    async def fake_get(channel_id):
        requested.append(channel_id)
        return target

    monkeypatch.setattr(client, "get_text_channel", fake_get)

    asyncio.run(client.on_message(make_message(10, "<@&42> Server restart in 1 minute.")))
    asyncio.run(client.on_message(make_message(99, "unrelated")))

    assert requested == [20]
    assert target.sent == ["Server restart in 1 minute."]


def test_relay_disabled_without_target(monkeypatch):
    client = SpiffoClient(relay_from=10)

    async def fake_get(channel_id):
        raise AssertionError("should not relay")

    monkeypatch.setattr(client, "get_text_channel", fake_get)

    asyncio.run(client.on_message(make_message(10, "hello")))


def test_single_token_shares_one_client():
    notifier = DiscordNotifier("token", 1, broadcast_token="token")

    assert notifier.broadcast_client is notifier.client
    assert len(notifier.clients) == 1


def test_separate_broadcast_token_adds_client():
    notifier = DiscordNotifier("token", 1, broadcast_token="other")

    assert notifier.broadcast_client is not notifier.client
    assert len(notifier.clients) == 2


def test_notify_routes_to_channels(monkeypatch):
    notifier = DiscordNotifier("token", 1, notifications_channel_id=2, role_id=42)
    sent = []

    async def fake_send(channel_id, content, **kwargs):
        sent.append((channel_id, content))

    monkeypatch.setattr(notifier.client, "send_text", fake_send)

    record = SimpleNamespace(title="Mod", url="https://example.com/?id=1")
    asyncio.run(notifier.notify_changes([record]))
    asyncio.run(notifier.notify_broadcast("Server restart in 10 minutes."))

    assert sent[0][0] == 1
    assert sent[0][1].startswith("**Mod activity detected.**")
    assert sent[1] == (2, "<@&42> Server restart in 10 minutes.")


def fake_session(client, *, fail=None, die_after_ready=None):
    """Replace a client's gateway connection with a local one."""

    async def start(token):
        await client._async_setup_hook()
        if fail is not None:
            raise fail
        client._ready.set()
        if die_after_ready is not None:
            await asyncio.sleep(0.01)
            raise die_after_ready
        await asyncio.Event().wait()

    async def close():
        return None

    return start, close


def install_sessions(monkeypatch, notifier, **kwargs):
    for client in notifier.clients:
        start, close = fake_session(client, **kwargs)
        monkeypatch.setattr(client, "start", start)
        monkeypatch.setattr(client, "close", close)


def test_start_resolves_once_every_session_is_ready(monkeypatch):
    notifier = DiscordNotifier("token", 1, broadcast_token="other")
    install_sessions(monkeypatch, notifier)

    async def run():
        await asyncio.wait_for(notifier.start(), timeout=2)
        ready = [client.is_ready() for client in notifier.clients]
        await notifier.close()
        return ready

    assert asyncio.run(run()) == [True, True]


def test_start_raises_when_login_fails(monkeypatch):
    notifier = DiscordNotifier("token", 1)
    install_sessions(monkeypatch, notifier, fail=discord.LoginFailure("bad token"))

    async def run():
        try:
            await asyncio.wait_for(notifier.start(), timeout=2)
        finally:
            await notifier.close()

    with pytest.raises(NotifierError) as info:
        asyncio.run(run())

    assert isinstance(info.value.__cause__, discord.LoginFailure)


def test_session_dying_after_ready_is_logged(monkeypatch, caplog):
    notifier = DiscordNotifier("token", 1)
    install_sessions(monkeypatch, notifier, die_after_ready=RuntimeError("gateway closed"))

    async def run():
        await asyncio.wait_for(notifier.start(), timeout=2)
        await asyncio.sleep(0.05)
        await notifier.close()

    asyncio.run(run())

    assert "discord-session-0 stopped: gateway closed" in caplog.text
