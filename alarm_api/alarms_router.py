"""
Alarms Router for Sync Alarm API
Endpointy HTTP dla alarmów oraz WebSocket dla obecności i synchronizacji
"""
from fastapi import APIRouter, Depends, HTTPException, Request, status, WebSocket
from sqlalchemy.orm import Session
from pydantic import BaseModel, Field
from typing import Optional, List
from datetime import datetime
from loguru import logger
import asyncio

from .config import settings
from .database import get_db
from .alarms_store import AlarmStore, AlarmNotFoundError, InvalidAlarmError, TIME_PATTERN, MAX_TITLE_LENGTH
from .presence import PresenceRegistry
from .session_protocol import DeviceSession
from .websocket_manager import ConnectionManager, heartbeat_task

router = APIRouter(prefix="/api/alarms", tags=["Alarms"])


# =============================================================================
# PYDANTIC MODELS (Request/Response schemas)
# =============================================================================

class CreateAlarmRequest(BaseModel):
    """Schemat żądania utworzenia alarmu"""
    title: str = Field(..., min_length=1, max_length=MAX_TITLE_LENGTH)
    time: str = Field(..., pattern=TIME_PATTERN, description="HH:MM, local wall-clock")


class UpdateAlarmRequest(BaseModel):
    """Schemat żądania PATCH - na razie tylko enabled"""
    enabled: Optional[bool] = None


class AlarmResponse(BaseModel):
    """Schemat odpowiedzi pojedynczego alarmu"""
    id: int
    title: str
    time: str
    enabled: bool
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class DeleteResponse(BaseModel):
    """Schemat odpowiedzi usunięcia"""
    success: bool = True
    id: int


class PresenceResponse(BaseModel):
    """Snapshot obecności"""
    count: int
    devices: List[dict]


# =============================================================================
# DEPENDENCIES
# =============================================================================

def get_channel(request: Request) -> ConnectionManager:
    return request.app.state.channel


def get_presence(request: Request) -> PresenceRegistry:
    return request.app.state.presence


def get_alarm_store(
    db: Session = Depends(get_db),
    channel: ConnectionManager = Depends(get_channel)
) -> AlarmStore:
    return AlarmStore(db, channel)


def _not_found(e: AlarmNotFoundError) -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))


def _internal_error(where: str, e: Exception, store: AlarmStore) -> HTTPException:
    logger.error(f"Error in {where}: {e}")
    store.db.rollback()
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail=f"Internal server error: {str(e)}"
    )


# =============================================================================
# ENDPOINTS
# =============================================================================

@router.get("", response_model=List[AlarmResponse], status_code=status.HTTP_200_OK)
async def list_alarms(store: AlarmStore = Depends(get_alarm_store)):
    """Pobierz wszystkie alarmy posortowane po czasie"""
    try:
        alarms = store.list()
        logger.debug(f"Retrieved {len(alarms)} alarms")
        return alarms
    except Exception as e:
        raise _internal_error("list_alarms", e, store)


@router.post("", response_model=AlarmResponse, status_code=status.HTTP_200_OK)
async def create_alarm(request: CreateAlarmRequest, store: AlarmStore = Depends(get_alarm_store)):
    """Utwórz alarm; wszystkie sesje dostaną ALARM_CREATED"""
    try:
        return await store.create(request.title, request.time)
    except InvalidAlarmError as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e))
    except Exception as e:
        raise _internal_error("create_alarm", e, store)


@router.get("/ws/stats", response_model=PresenceResponse)
async def websocket_stats(presence: PresenceRegistry = Depends(get_presence)):
    """Zwróć bieżący snapshot obecności urządzeń"""
    return presence.snapshot()


@router.get("/{alarm_id}", response_model=AlarmResponse, status_code=status.HTTP_200_OK)
async def get_alarm(alarm_id: int, store: AlarmStore = Depends(get_alarm_store)):
    """Pobierz konkretny alarm po ID"""
    try:
        return store.get(alarm_id)
    except AlarmNotFoundError as e:
        raise _not_found(e)


@router.patch("/{alarm_id}", response_model=AlarmResponse, status_code=status.HTTP_200_OK)
async def update_alarm(
    alarm_id: int,
    request: UpdateAlarmRequest,
    store: AlarmStore = Depends(get_alarm_store)
):
    """
    Włącz/wyłącz alarm.

    Bez pola enabled zwraca alarm bez zmian i niczego nie rozgłasza.
    """
    try:
        if request.enabled is None:
            return store.get(alarm_id)
        return await store.set_enabled(alarm_id, request.enabled)
    except AlarmNotFoundError as e:
        raise _not_found(e)
    except Exception as e:
        raise _internal_error("update_alarm", e, store)


@router.delete("/{alarm_id}", response_model=DeleteResponse, status_code=status.HTTP_200_OK)
async def delete_alarm(alarm_id: int, store: AlarmStore = Depends(get_alarm_store)):
    """Usuń alarm; wszystkie sesje dostaną ALARM_DELETED"""
    try:
        await store.delete(alarm_id)
        return DeleteResponse(id=alarm_id)
    except AlarmNotFoundError as e:
        raise _not_found(e)
    except Exception as e:
        raise _internal_error("delete_alarm", e, store)


@router.post("/{alarm_id}/snooze", response_model=AlarmResponse, status_code=status.HTTP_200_OK)
async def snooze_alarm(alarm_id: int, store: AlarmStore = Depends(get_alarm_store)):
    """Przesuń alarm o kilka minut (domyślnie 5, z zawijaniem doby)"""
    try:
        return await store.snooze(alarm_id)
    except AlarmNotFoundError as e:
        raise _not_found(e)
    except Exception as e:
        raise _internal_error("snooze_alarm", e, store)


# =============================================================================
# WEBSOCKET ENDPOINT
# =============================================================================

@router.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket):
    """
    WebSocket endpoint dla obecności i real-time synchronizacji.

    Message Format (Client -> Server):
        {"type": "IDENTIFY", "role": "main" | "receiver"}
        {"type": "KICK_DEVICE", "targetId": "session id"}
        {"type": "PING"}

    Message Format (Server -> Client):
        {"type": "CONNECTED", "sessionId": "..."}
        {"type": "PRESENCE_UPDATE", "count": int, "devices": [{"role", "id"}]}
        {"type": "ALARM_CREATED" | "ALARM_UPDATED", "alarm": {...}}
        {"type": "ALARM_DELETED", "id": int}
        {"type": "KICKED", "targetId": "..."}
        {"type": "HEARTBEAT" | "PONG" | "ERROR", ...}
    """
    channel: ConnectionManager = websocket.app.state.channel
    presence: PresenceRegistry = websocket.app.state.presence

    await websocket.accept()
    session = DeviceSession(websocket, presence, channel)
    heartbeat_task_handle = None

    try:
        await session.open()

        if settings.HEARTBEAT_INTERVAL > 0:
            heartbeat_task_handle = asyncio.create_task(
                heartbeat_task(websocket, interval=settings.HEARTBEAT_INTERVAL)
            )

        # Główna pętla - odbieraj wiadomości od klienta
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                logger.info(f"WebSocket disconnected normally: session={session.session_id}")
                break

            raw = message.get("text")
            if raw is None:
                raw = message.get("bytes")
            await session.receive(raw)

    except Exception as e:
        logger.error(f"WebSocket error: {e}")

    finally:
        # Zatrzymaj heartbeat
        if heartbeat_task_handle:
            heartbeat_task_handle.cancel()

        await session.close()
        logger.info(f"WebSocket closed: session={session.session_id}")
