"""
Integration tests for the push channel (WebSocket)
Tests: presence, identify, kick, alarm events, malformed messages
"""
from fastapi import status

WS_URL = "/api/alarms/ws"


def open_session(ws):
    """Odbierz CONNECTED + początkowy PRESENCE_UPDATE; zwróć (session_id, presence)"""
    connected = ws.receive_json()
    assert connected["type"] == "CONNECTED"
    presence = ws.receive_json()
    assert presence["type"] == "PRESENCE_UPDATE"
    return connected["sessionId"], presence


class TestPresence:
    """Test presence registry over the WebSocket"""

    def test_initial_presence_sent_to_new_socket(self, client):
        with client.websocket_connect(WS_URL) as ws:
            session_id, presence = open_session(ws)

            assert session_id
            assert presence["count"] == 1
            assert presence["devices"] == []

    def test_identify_broadcasts_snapshot(self, client):
        with client.websocket_connect(WS_URL) as ws:
            session_id, _ = open_session(ws)

            ws.send_json({"type": "IDENTIFY", "role": "main"})
            presence = ws.receive_json()

            assert presence == {
                "type": "PRESENCE_UPDATE",
                "count": 1,
                "devices": [{"role": "main", "id": session_id}]
            }

    def test_two_devices(self, client):
        with client.websocket_connect(WS_URL) as main_ws:
            main_id, _ = open_session(main_ws)
            main_ws.send_json({"type": "IDENTIFY", "role": "main"})
            main_ws.receive_json()

            with client.websocket_connect(WS_URL) as receiver_ws:
                receiver_id, presence = open_session(receiver_ws)
                # Nowy socket widzi count=2, ale jeszcze bez siebie w devices
                assert presence["count"] == 2
                assert presence["devices"] == [{"role": "main", "id": main_id}]

                receiver_ws.send_json({"type": "IDENTIFY", "role": "receiver"})
                expected_devices = [
                    {"role": "main", "id": main_id},
                    {"role": "receiver", "id": receiver_id},
                ]
                assert receiver_ws.receive_json()["devices"] == expected_devices
                assert main_ws.receive_json()["devices"] == expected_devices

                stats = client.get("/api/alarms/ws/stats")
                assert stats.status_code == status.HTTP_200_OK
                assert stats.json() == {"count": 2, "devices": expected_devices}

            # Po rozłączeniu odbiornika main dostaje nowy snapshot
            presence = main_ws.receive_json()
            assert presence["type"] == "PRESENCE_UPDATE"
            assert presence["count"] == 1
            assert presence["devices"] == [{"role": "main", "id": main_id}]

    def test_reidentify_changes_role(self, client):
        with client.websocket_connect(WS_URL) as ws:
            session_id, _ = open_session(ws)

            ws.send_json({"type": "IDENTIFY", "role": "receiver"})
            ws.receive_json()
            ws.send_json({"type": "IDENTIFY", "role": "main"})

            assert ws.receive_json()["devices"] == [{"role": "main", "id": session_id}]

    def test_presence_cleared_after_disconnect(self, client):
        with client.websocket_connect(WS_URL) as ws:
            open_session(ws)
            ws.send_json({"type": "IDENTIFY", "role": "main"})
            ws.receive_json()

        assert client.get("/api/alarms/ws/stats").json() == {"count": 0, "devices": []}

    def test_channel_tracks_open_connections(self, client, app):
        channel = app.state.channel

        with client.websocket_connect(WS_URL) as first:
            open_session(first)
            with client.websocket_connect(WS_URL) as second:
                open_session(second)

                assert channel.connection_count() == 2

            first.receive_json()
            assert channel.connection_count() == 1

        assert channel.connection_count() == 0


class TestKick:
    """Test KICK_DEVICE handling"""

    def test_main_can_kick(self, client):
        with client.websocket_connect(WS_URL) as main_ws:
            open_session(main_ws)
            main_ws.send_json({"type": "IDENTIFY", "role": "main"})
            main_ws.receive_json()

            with client.websocket_connect(WS_URL) as receiver_ws:
                receiver_id, _ = open_session(receiver_ws)
                receiver_ws.send_json({"type": "IDENTIFY", "role": "receiver"})
                receiver_ws.receive_json()
                main_ws.receive_json()

                main_ws.send_json({"type": "KICK_DEVICE", "targetId": receiver_id})

                kicked = {"type": "KICKED", "targetId": receiver_id}
                assert receiver_ws.receive_json() == kicked
                assert main_ws.receive_json() == kicked

                # Serwer nie zamyka połączenia celu
                receiver_ws.send_json({"type": "PING"})
                assert receiver_ws.receive_json() == {"type": "PONG"}

    def test_receiver_kick_is_ignored(self, client):
        with client.websocket_connect(WS_URL) as ws:
            open_session(ws)
            ws.send_json({"type": "IDENTIFY", "role": "receiver"})
            ws.receive_json()

            ws.send_json({"type": "KICK_DEVICE", "targetId": "someone"})
            ws.send_json({"type": "PING"})

            assert ws.receive_json() == {"type": "PONG"}

    def test_anonymous_kick_is_ignored(self, client):
        with client.websocket_connect(WS_URL) as ws:
            open_session(ws)

            ws.send_json({"type": "KICK_DEVICE", "targetId": "someone"})
            ws.send_json({"type": "PING"})

            assert ws.receive_json() == {"type": "PONG"}

    def test_kick_without_target_is_error(self, client):
        with client.websocket_connect(WS_URL) as ws:
            open_session(ws)
            ws.send_json({"type": "IDENTIFY", "role": "main"})
            ws.receive_json()

            ws.send_json({"type": "KICK_DEVICE"})

            assert ws.receive_json()["type"] == "ERROR"


class TestAlarmEvents:
    """Test alarm changes reaching connected devices"""

    def test_crud_events_reach_all_sessions(self, client):
        with client.websocket_connect(WS_URL) as first, client.websocket_connect(WS_URL) as second:
            open_session(first)
            open_session(second)

            created = client.post("/api/alarms", json={"title": "Wake", "time": "07:00"}).json()
            for ws in (first, second):
                event = ws.receive_json()
                assert event["type"] == "ALARM_CREATED"
                assert event["alarm"]["id"] == created["id"]
                assert event["alarm"]["title"] == "Wake"

            client.patch(f"/api/alarms/{created['id']}", json={"enabled": False})
            for ws in (first, second):
                event = ws.receive_json()
                assert event["type"] == "ALARM_UPDATED"
                assert event["alarm"]["enabled"] is False

            client.post(f"/api/alarms/{created['id']}/snooze")
            for ws in (first, second):
                event = ws.receive_json()
                assert event["type"] == "ALARM_UPDATED"
                assert event["alarm"]["time"] == "07:05"

            client.delete(f"/api/alarms/{created['id']}")
            for ws in (first, second):
                assert ws.receive_json() == {"type": "ALARM_DELETED", "id": created["id"]}

    def test_events_in_commit_order(self, client):
        with client.websocket_connect(WS_URL) as ws:
            open_session(ws)

            ids = [
                client.post("/api/alarms", json={"title": f"A{i}", "time": "08:00"}).json()["id"]
                for i in range(3)
            ]

            assert [ws.receive_json()["alarm"]["id"] for _ in ids] == ids

    def test_failed_request_broadcasts_nothing(self, client):
        with client.websocket_connect(WS_URL) as ws:
            open_session(ws)

            assert client.delete("/api/alarms/999").status_code == status.HTTP_404_NOT_FOUND
            ws.send_json({"type": "PING"})

            assert ws.receive_json() == {"type": "PONG"}


class TestMalformedMessages:
    """Test that protocol violations do not end the session"""

    def test_invalid_json(self, client):
        with client.websocket_connect(WS_URL) as ws:
            open_session(ws)

            ws.send_text("not json")
            error = ws.receive_json()

            assert error["type"] == "ERROR"
            assert "Invalid JSON" in error["error"]

    def test_unknown_type_and_bad_role(self, client):
        with client.websocket_connect(WS_URL) as ws:
            open_session(ws)

            ws.send_json({"type": "SOMETHING"})
            assert ws.receive_json()["type"] == "ERROR"

            ws.send_json({"type": "IDENTIFY", "role": "admin"})
            assert ws.receive_json()["type"] == "ERROR"

            ws.send_json([1, 2, 3])
            assert ws.receive_json()["type"] == "ERROR"

            ws.send_json({"type": "PING"})
            assert ws.receive_json() == {"type": "PONG"}

    def test_binary_frames_are_accepted(self, client):
        with client.websocket_connect(WS_URL) as ws:
            open_session(ws)

            ws.send_bytes(b'{"type": "PING"}')

            assert ws.receive_json() == {"type": "PONG"}
