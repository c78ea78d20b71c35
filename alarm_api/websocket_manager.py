"""
WebSocket Manager dla real-time synchronizacji alarmów i obecności urządzeń.

Obsługuje:
- Połączenia WebSocket per sesja (urządzenie)
- Broadcasting zmian do wszystkich połączonych sesji (łącznie z nadawcą)
- Heartbeat dla utrzymania połączenia
- Automatyczne usuwanie połączeń, do których nie da się wysłać wiadomości
"""

from fastapi import WebSocket, WebSocketDisconnect
from typing import Dict, Optional
from datetime import datetime
import asyncio
from loguru import logger


class ConnectionManager:
    """
    Kanał rozgłoszeniowy - fan-out wiadomości do wszystkich sesji.

    Kolejne wywołania broadcast() są serializowane, więc każda sesja
    dostaje wiadomości w tej samej kolejności, w jakiej zostały zatwierdzone.
    """

    def __init__(self):
        # session_id -> WebSocket (kolejność dołączenia)
        self.active_connections: Dict[str, WebSocket] = {}
        self._lock = asyncio.Lock()

    async def connect(self, session_id: str, websocket: WebSocket):
        """Dodaj nowe połączenie WebSocket dla sesji"""
        async with self._lock:
            self.active_connections[session_id] = websocket

        logger.info(f"WebSocket connected: session={session_id}, total={self.connection_count()}")

    async def disconnect(self, session_id: str):
        """Usuń połączenie WebSocket"""
        async with self._lock:
            self.active_connections.pop(session_id, None)

        logger.info(f"WebSocket disconnected: session={session_id}, total={self.connection_count()}")

    async def send_personal_message(self, message: dict, websocket: WebSocket):
        """Wyślij wiadomość do konkretnego WebSocket"""
        try:
            await websocket.send_json(message)
        except Exception as e:
            logger.error(f"Error sending personal message: {e}")

    async def broadcast(self, message: dict):
        """Wyślij wiadomość do wszystkich połączonych sesji"""
        async with self._lock:
            # Kopia żeby uniknąć modyfikacji podczas iteracji
            connections = list(self.active_connections.items())

            disconnected = []
            for session_id, connection in connections:
                try:
                    await connection.send_json(message)
                except WebSocketDisconnect:
                    disconnected.append(session_id)
                except Exception as e:
                    logger.error(f"Error broadcasting to session {session_id}: {e}")
                    disconnected.append(session_id)

            # Usuń rozłączone połączenia
            for session_id in disconnected:
                self.active_connections.pop(session_id, None)

        logger.debug(
            f"Broadcast {message.get('type')}: {len(connections)} connections, {len(disconnected)} failed"
        )

    def connection_count(self) -> int:
        """Zwróć liczbę otwartych połączeń"""
        return len(self.active_connections)


# =============================================================================
# Event Types
# =============================================================================

class WSEventType:
    """Typy wiadomości push channel"""

    # Server -> Client
    CONNECTED = "CONNECTED"
    PRESENCE_UPDATE = "PRESENCE_UPDATE"
    ALARM_CREATED = "ALARM_CREATED"
    ALARM_UPDATED = "ALARM_UPDATED"
    ALARM_DELETED = "ALARM_DELETED"
    KICKED = "KICKED"
    HEARTBEAT = "HEARTBEAT"
    PONG = "PONG"
    ERROR = "ERROR"

    # Client -> Server
    IDENTIFY = "IDENTIFY"
    KICK_DEVICE = "KICK_DEVICE"
    PING = "PING"


# =============================================================================
# Message Builders
# =============================================================================

def build_connected(session_id: str) -> dict:
    """Zbuduj potwierdzenie połączenia z ID nadanym przez serwer"""
    return {
        "type": WSEventType.CONNECTED,
        "sessionId": session_id,
        "timestamp": datetime.utcnow().isoformat()
    }


def build_presence_update(snapshot: dict) -> dict:
    """
    Zbuduj pełny snapshot obecności.

    Args:
        snapshot: {"count": int, "devices": [{"role", "id"}]}
    """
    return {
        "type": WSEventType.PRESENCE_UPDATE,
        "count": snapshot["count"],
        "devices": snapshot["devices"]
    }


def build_alarm_created(alarm: dict) -> dict:
    return {"type": WSEventType.ALARM_CREATED, "alarm": alarm}


def build_alarm_updated(alarm: dict) -> dict:
    return {"type": WSEventType.ALARM_UPDATED, "alarm": alarm}


def build_alarm_deleted(alarm_id: int) -> dict:
    return {"type": WSEventType.ALARM_DELETED, "id": alarm_id}


def build_kicked(target_id: str) -> dict:
    return {"type": WSEventType.KICKED, "targetId": target_id}


def build_heartbeat() -> dict:
    """Zbuduj heartbeat message"""
    return {
        "type": WSEventType.HEARTBEAT,
        "timestamp": datetime.utcnow().isoformat()
    }


def build_error(error_message: str, details: Optional[dict] = None) -> dict:
    """Zbuduj error message"""
    return {
        "type": WSEventType.ERROR,
        "timestamp": datetime.utcnow().isoformat(),
        "error": error_message,
        "details": details or {}
    }


# =============================================================================
# Heartbeat Task
# =============================================================================

async def heartbeat_task(websocket: WebSocket, interval: int = 30):
    """
    Wysyłaj heartbeat co X sekund.

    Args:
        websocket: Połączenie WebSocket
        interval: Interwał w sekundach (domyślnie 30)
    """
    try:
        while True:
            await asyncio.sleep(interval)
            await websocket.send_json(build_heartbeat())
            logger.debug("Heartbeat sent")
    except asyncio.CancelledError:
        raise
    except WebSocketDisconnect:
        logger.debug("Heartbeat stopped - WebSocket disconnected")
    except Exception as e:
        logger.error(f"Heartbeat error: {e}")
