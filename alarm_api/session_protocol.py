"""
Session Protocol - cykl życia jednego połączenia push channel.

Stany: CONNECTING -> IDENTIFIED -> CLOSED

- IDENTIFY{role} rejestruje sesję i rozgłasza pełny snapshot obecności
- KICK_DEVICE{targetId} jest honorowany tylko od sesji z rolą "main" i
  skutkuje rozgłoszeniem KICKED{targetId}; serwer nie zamyka połączenia
  celu - to urządzenie samo się rozłącza po otrzymaniu KICKED ze swoim ID
- wiadomości przed IDENTIFY są przyjmowane, ale sesja pozostaje anonimowa
- niepoprawna wiadomość nie przerywa sesji (błąd do nadawcy, dalej działamy)

Role nie są uwierzytelniane: każdy klient może zadeklarować "main",
więc KICK jest udogodnieniem, nie zabezpieczeniem.
"""
import json
import uuid
from enum import Enum
from typing import Any, Optional

from loguru import logger

from .presence import PresenceRegistry, ROLE_MAIN, VALID_ROLES
from .websocket_manager import (
    WSEventType,
    build_connected,
    build_error,
    build_kicked,
    build_presence_update,
)


class SessionState(Enum):
    """Stan sesji"""
    CONNECTING = "connecting"
    IDENTIFIED = "identified"
    CLOSED = "closed"


class ProtocolViolation(ValueError):
    """Niepoprawna wiadomość od klienta"""


def new_session_id() -> str:
    """Nieprzezroczyste, krótkie ID sesji"""
    return uuid.uuid4().hex[:8]


def parse_message(raw: Any) -> dict:
    """
    Zdekoduj wiadomość klienta.

    Raises:
        ProtocolViolation: gdy to nie jest obiekt JSON z polem "type"
    """
    if isinstance(raw, (str, bytes)):
        try:
            raw = json.loads(raw)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise ProtocolViolation(f"Invalid JSON: {e}") from e

    if not isinstance(raw, dict):
        raise ProtocolViolation("Message must be a JSON object")
    if not isinstance(raw.get("type"), str):
        raise ProtocolViolation("Message without type")
    return raw


class DeviceSession:
    """
    Jedna sesja urządzenia.

    Args:
        websocket: Transport (obiekt przekazywany do channel.send_personal_message)
        registry: Rejestr obecności procesu
        channel: Kanał rozgłoszeniowy (ConnectionManager)
        session_id: ID sesji; domyślnie generowane
    """

    def __init__(self, websocket, registry: PresenceRegistry, channel, session_id: Optional[str] = None):
        self.websocket = websocket
        self.registry = registry
        self.channel = channel
        self.session_id = session_id or new_session_id()
        self.state = SessionState.CONNECTING

    @property
    def role(self) -> Optional[str]:
        return self.registry.role_of(self.session_id)

    async def open(self):
        """Dołącz transport do kanału i wyślij nowemu urządzeniu jego ID oraz bieżącą obecność"""
        await self.channel.connect(self.session_id, self.websocket)
        self.registry.open(self.session_id)

        await self._reply(build_connected(self.session_id))
        await self._reply(build_presence_update(self.registry.snapshot()))

    async def receive(self, raw: Any):
        """Obsłuż surową wiadomość; błędy protokołu nie zamykają sesji"""
        try:
            await self.handle_message(parse_message(raw))
        except ProtocolViolation as e:
            logger.warning(f"Protocol violation from session {self.session_id}: {e}")
            await self._reply(build_error(str(e)))

    async def handle_message(self, message: dict):
        """Dispatch po polu type"""
        if self.state is SessionState.CLOSED:
            logger.debug(f"Ignoring message on closed session {self.session_id}")
            return

        msg_type = message.get("type")

        if msg_type == WSEventType.IDENTIFY:
            await self._identify(message.get("role"))

        elif msg_type == WSEventType.KICK_DEVICE:
            await self._kick(message.get("targetId"))

        elif msg_type == WSEventType.PING:
            await self._reply({"type": WSEventType.PONG})

        else:
            raise ProtocolViolation(f"Unknown message type: {msg_type}")

    async def close(self):
        """Wyrejestruj sesję i rozgłoś nowy snapshot (idempotentne)"""
        if self.state is SessionState.CLOSED:
            return
        self.state = SessionState.CLOSED

        self.registry.close(self.session_id)
        await self.channel.disconnect(self.session_id)
        await self.channel.broadcast(build_presence_update(self.registry.snapshot()))

    # =========================================================================
    # HANDLERS
    # =========================================================================

    async def _identify(self, role: Any):
        if role not in VALID_ROLES:
            raise ProtocolViolation(f"Invalid role: {role!r}")

        self.registry.register(self.session_id, role)
        self.state = SessionState.IDENTIFIED
        await self.channel.broadcast(build_presence_update(self.registry.snapshot()))

    async def _kick(self, target_id: Any):
        if self.role != ROLE_MAIN:
            logger.debug(f"Ignoring KICK_DEVICE from non-main session {self.session_id}")
            return

        if not isinstance(target_id, str) or not target_id:
            raise ProtocolViolation("KICK_DEVICE requires targetId")

        logger.info(f"Session {self.session_id} kicked {target_id}")
        await self.channel.broadcast(build_kicked(target_id))

    async def _reply(self, message: dict):
        await self.channel.send_personal_message(message, self.websocket)
