"""
Pytest fixtures for Sync Alarm tests
"""
import os

# Baza w pamięci i bez heartbeat - ustawione przed importem konfiguracji
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["HEARTBEAT_INTERVAL"] = "0"

import pytest
from fastapi.testclient import TestClient

from alarm_api.database import Base, SessionLocal, engine, get_db
from alarm_api.main import create_app
from alarm_api import alarms_models  # noqa: F401
from alarm_client.alarm_api_client import APIResponse


@pytest.fixture(scope="function")
def db_session():
    """Create a fresh database for each test"""
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def app():
    """Fresh application: own broadcast channel and presence registry"""
    return create_app(initialize_database=False)


@pytest.fixture(scope="function")
def client(app, db_session):
    """Create a test client with database session override"""
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def sample_alarm():
    """Sample alarm data for testing"""
    return {"title": "Wake up", "time": "07:00"}


class RecordingChannel:
    """Kanał zapisujący wysłane wiadomości zamiast wysyłać je przez sieć"""

    def __init__(self):
        self.broadcasts = []
        self.personal = []
        self.connected = {}

    async def connect(self, session_id, websocket):
        self.connected[session_id] = websocket

    async def disconnect(self, session_id):
        self.connected.pop(session_id, None)

    async def send_personal_message(self, message, websocket):
        self.personal.append((websocket, message))

    async def broadcast(self, message):
        self.broadcasts.append(message)

    def personal_for(self, websocket):
        return [message for ws, message in self.personal if ws is websocket]


@pytest.fixture
def channel():
    return RecordingChannel()


class FakeTransport:
    """
    Serwer w pamięci udający AlarmsAPIClient.

    `online = False` symuluje brak sieci (status_code=None).
    """

    def __init__(self):
        self.online = True
        self.alarms = {}
        self.next_id = 1
        self.calls = []

    def _offline(self):
        return APIResponse(success=False, error="Network error: connection refused")

    def _not_found(self, alarm_id):
        return APIResponse(success=False, error=f"Alarm {alarm_id} not found", status_code=404)

    def list_alarms(self):
        self.calls.append(("list",))
        if not self.online:
            return self._offline()
        data = sorted(self.alarms.values(), key=lambda a: (a["time"], a["id"]))
        return APIResponse(success=True, data=[dict(a) for a in data], status_code=200)

    def create_alarm(self, title, time):
        self.calls.append(("create", title, time))
        if not self.online:
            return self._offline()
        alarm = {"id": self.next_id, "title": title, "time": time, "enabled": True, "created_at": None}
        self.alarms[self.next_id] = alarm
        self.next_id += 1
        return APIResponse(success=True, data=dict(alarm), status_code=200)

    def set_enabled(self, alarm_id, enabled):
        self.calls.append(("update", alarm_id, enabled))
        if not self.online:
            return self._offline()
        if alarm_id not in self.alarms:
            return self._not_found(alarm_id)
        self.alarms[alarm_id]["enabled"] = enabled
        return APIResponse(success=True, data=dict(self.alarms[alarm_id]), status_code=200)

    def delete_alarm(self, alarm_id):
        self.calls.append(("delete", alarm_id))
        if not self.online:
            return self._offline()
        if alarm_id not in self.alarms:
            return self._not_found(alarm_id)
        del self.alarms[alarm_id]
        return APIResponse(success=True, data={"success": True, "id": alarm_id}, status_code=200)

    def snooze_alarm(self, alarm_id):
        self.calls.append(("snooze", alarm_id))
        if not self.online:
            return self._offline()
        if alarm_id not in self.alarms:
            return self._not_found(alarm_id)
        hours, minutes = map(int, self.alarms[alarm_id]["time"].split(":"))
        total = (hours * 60 + minutes + 5) % (24 * 60)
        self.alarms[alarm_id]["time"] = f"{total // 60:02d}:{total % 60:02d}"
        return APIResponse(success=True, data=dict(self.alarms[alarm_id]), status_code=200)

    def close(self):
        pass


@pytest.fixture
def transport():
    return FakeTransport()
