"""
Tests for AlarmWebSocketClient
Tests: IDENTIFY on open, own-session kick, reconnect loop, stop
"""
import asyncio
import json
import time

import pytest
import websockets

from alarm_client.alarm_websocket_client import AlarmWebSocketClient

RECONNECT_DELAY = 0.05


class FakeConnection:
    """Połączenie, które wysyła zadaną listę wiadomości i się kończy"""

    def __init__(self, server, messages):
        self.server = server
        self.messages = messages

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        return False

    async def send(self, message):
        self.server.sent.append(json.loads(message))

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self):
        for message in self.messages:
            yield json.dumps(message)


class FakeServer:
    """
    Zastępuje websockets.connect.

    Pierwsze `failures` prób kończy się OSError, każda kolejna dostaje
    następną listę wiadomości z `sessions` (ostatnia jest powtarzana).
    """

    def __init__(self, sessions, failures=0):
        self.sessions = sessions
        self.failures = failures
        self.attempts = []
        self.urls = []
        self.sent = []

    def connect(self, url, **kwargs):
        self.attempts.append(time.monotonic())
        self.urls.append(url)
        if len(self.attempts) <= self.failures:
            raise OSError("connection refused")

        index = min(len(self.attempts) - self.failures, len(self.sessions)) - 1
        return FakeConnection(self, self.sessions[index])


@pytest.fixture
def server(monkeypatch):
    def install(sessions, failures=0):
        fake = FakeServer(sessions, failures)
        monkeypatch.setattr(websockets, "connect", fake.connect)
        return fake

    return install


def make_client(role="receiver"):
    client = AlarmWebSocketClient("http://localhost:3000", role, reconnect_delay=RECONNECT_DELAY)
    client.events = []
    client.on_connected = lambda: client.events.append("connected")
    client.on_disconnected = lambda: client.events.append("disconnected")
    client.on_kicked = lambda: client.events.append("kicked")
    client.on_message = lambda data: client.events.append(data["type"])
    return client


def run_until_finished(client, timeout=5.0):
    client.start()
    client.join(timeout)
    assert not client.is_alive()


def handle(client, message):
    asyncio.run(client._handle_message(json.dumps(message)))


class TestMessages:

    def test_connected_stores_session_id(self):
        client = make_client()

        handle(client, {"type": "CONNECTED", "sessionId": "abc"})

        assert client.session_id == "abc"
        assert client.events == ["CONNECTED"]

    def test_own_kick_stops_client(self):
        client = make_client()
        client._running = True

        handle(client, {"type": "CONNECTED", "sessionId": "abc"})
        handle(client, {"type": "KICKED", "targetId": "abc"})

        assert client.kicked is True
        assert client._running is False
        assert client.events == ["CONNECTED", "KICKED", "kicked"]

    def test_kick_of_other_session_is_ignored(self):
        client = make_client(role="main")
        client._running = True

        handle(client, {"type": "CONNECTED", "sessionId": "abc"})
        handle(client, {"type": "KICKED", "targetId": "other"})

        assert client.kicked is False
        assert client._running is True
        assert client.events == ["CONNECTED", "KICKED"]

    def test_kick_before_connected_is_ignored(self):
        client = make_client()

        handle(client, {"type": "KICKED", "targetId": None})

        assert client.kicked is False

    def test_message_callback_error_is_contained(self):
        client = make_client()

        def broken(data):
            raise RuntimeError("boom")

        client.on_message = broken

        handle(client, {"type": "CONNECTED", "sessionId": "abc"})

        assert client.session_id == "abc"

    @pytest.mark.parametrize("raw", ["not json", "[1, 2]"])
    def test_malformed_messages_are_skipped(self, raw):
        client = make_client()

        asyncio.run(client._handle_message(raw))

        assert client.events == []


class TestConnectLoop:

    def test_identifies_and_stops_on_own_kick(self, server):
        fake = server([[
            {"type": "CONNECTED", "sessionId": "s1"},
            {"type": "KICKED", "targetId": "s2"},
            {"type": "KICKED", "targetId": "s1"},
        ]])
        client = make_client()

        run_until_finished(client)

        assert fake.urls == ["ws://localhost:3000/api/alarms/ws"]
        assert fake.sent == [{"type": "IDENTIFY", "role": "receiver"}]
        assert client.kicked is True
        assert client.events == ["connected", "CONNECTED", "KICKED", "KICKED", "kicked", "disconnected"]

    def test_reconnects_after_fixed_delay(self, server):
        fake = server([[
            {"type": "CONNECTED", "sessionId": "s1"},
            {"type": "KICKED", "targetId": "s1"},
        ]], failures=2)
        client = make_client()
        errors = []
        client.on_error = errors.append

        run_until_finished(client)

        assert len(fake.attempts) == 3
        for earlier, later in zip(fake.attempts, fake.attempts[1:]):
            assert later - earlier >= RECONNECT_DELAY * 0.8
        assert len(errors) == 2
        assert all(error.startswith("Connection failed") for error in errors)
        assert fake.sent == [{"type": "IDENTIFY", "role": "receiver"}]

    def test_reconnects_after_server_closes_until_stopped(self, server):
        fake = server([[{"type": "CONNECTED", "sessionId": "s1"}]])
        client = make_client(role="main")
        disconnects = []

        def on_disconnected():
            disconnects.append(True)
            if len(disconnects) == 3:
                client.stop()

        client.on_disconnected = on_disconnected

        run_until_finished(client)

        assert len(fake.attempts) == 3
        assert fake.sent == [{"type": "IDENTIFY", "role": "main"}] * 3
        assert client.kicked is False

    def test_callback_error_does_not_end_reconnecting(self, server):
        fake = server([[
            {"type": "CONNECTED", "sessionId": "s1"},
            {"type": "KICKED", "targetId": "s1"},
        ]])
        client = make_client()
        calls = []

        def flaky_on_connected():
            calls.append(True)
            if len(calls) == 1:
                raise RuntimeError("ui not ready")

        client.on_connected = flaky_on_connected

        run_until_finished(client)

        assert len(fake.attempts) == 2
        assert client.kicked is True

    def test_no_reconnect_when_disabled(self, server):
        fake = server([[{"type": "CONNECTED", "sessionId": "s1"}]])
        client = make_client()
        client.auto_reconnect = False

        run_until_finished(client)

        assert len(fake.attempts) == 1
        assert client.is_connected() is False
