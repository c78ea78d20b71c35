"""
WebSocket Client dla obecności urządzeń i real-time synchronizacji alarmów.

Automatycznie łączy się z serwerem, po połączeniu wysyła IDENTIFY{role}
i nasłuchuje na zdarzenia:
- CONNECTED: ID sesji nadane przez serwer
- PRESENCE_UPDATE: Lista podłączonych urządzeń
- ALARM_CREATED / ALARM_UPDATED / ALARM_DELETED: Zmiany listy alarmów
- KICKED: Urządzenie główne wyrzuciło jakąś sesję
- HEARTBEAT / PONG: Heartbeat

Po rozłączeniu łączy się ponownie co RECONNECT_DELAY sekund (bez limitu
prób), chyba że zostało zatrzymane przez stop() albo wyrzucone (KICKED).
"""

import asyncio
import json
import threading
from typing import Callable, Optional

import websockets
from loguru import logger

from .config import config


class AlarmWebSocketClient(threading.Thread):
    """
    WebSocket client z auto-reconnect działający we własnym wątku.

    Callbacks (wołane z wątku klienta):
        on_connected(): Połączono i wysłano IDENTIFY
        on_disconnected(): Rozłączono
        on_message(dict): Każda wiadomość od serwera
        on_kicked(): Ta sesja została wyrzucona
        on_error(str): Błąd połączenia
    """

    def __init__(
        self,
        base_url: str,
        role: str,
        auto_reconnect: bool = True,
        reconnect_delay: Optional[float] = None
    ):
        """
        Initialize WebSocket client.

        Args:
            base_url: Base URL serwera (np. "http://localhost:3000")
            role: Rola urządzenia deklarowana w IDENTIFY ("main" / "receiver")
            auto_reconnect: Czy automatycznie reconnect po rozłączeniu
            reconnect_delay: Stałe opóźnienie między próbami (sekundy)
        """
        super().__init__(daemon=True, name="AlarmWebSocketClient")

        # Konwertuj HTTP na WS
        ws_url = base_url.rstrip('/').replace("http://", "ws://").replace("https://", "wss://")
        self.ws_url = f"{ws_url}/api/alarms/ws"

        self.role = role
        self.auto_reconnect = auto_reconnect
        self.reconnect_delay = reconnect_delay if reconnect_delay is not None else config.RECONNECT_DELAY

        self.session_id: Optional[str] = None
        self.kicked = False

        self.on_connected: Optional[Callable[[], None]] = None
        self.on_disconnected: Optional[Callable[[], None]] = None
        self.on_message: Optional[Callable[[dict], None]] = None
        self.on_kicked: Optional[Callable[[], None]] = None
        self.on_error: Optional[Callable[[str], None]] = None

        self._websocket = None
        self._connected = False
        self._running = False
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._main_task: Optional[asyncio.Task] = None

    def run(self):
        """Uruchom WebSocket client w osobnym wątku"""
        self._running = True

        # Utwórz event loop dla tego wątku
        self._loop = asyncio.new_event_loop()
        asyncio.set_event_loop(self._loop)

        try:
            self._main_task = self._loop.create_task(self._connect_loop())
            self._loop.run_until_complete(self._main_task)
        except asyncio.CancelledError:
            logger.debug("Alarm WebSocket loop cancelled")
        except Exception as e:
            logger.error(f"Alarm WebSocket client error: {e}")
            self._emit_error(str(e))
        finally:
            self._loop.close()

    async def _connect_loop(self):
        """Główna pętla z auto-reconnect (stałe opóźnienie, bez jittera)"""
        while self._running:
            try:
                await self._connect_and_listen()

            except (OSError, websockets.exceptions.WebSocketException) as e:
                logger.error(f"WebSocket connection failed: {e}")
                self._emit_error(f"Connection failed: {e}")

            except Exception as e:
                logger.error(f"Unexpected WebSocket error: {e}")
                self._emit_error(str(e))

            if not (self._running and self.auto_reconnect):
                break

            logger.info(f"Reconnecting in {self.reconnect_delay}s...")
            await asyncio.sleep(self.reconnect_delay)

    async def _connect_and_listen(self):
        """Połącz się, przedstaw się i nasłuchuj na wiadomości"""
        async with websockets.connect(self.ws_url, close_timeout=5) as websocket:
            self._websocket = websocket
            self._connected = True

            try:
                await websocket.send(json.dumps({"type": "IDENTIFY", "role": self.role}))
                logger.info(f"Alarm WebSocket connected as {self.role}")
                if self.on_connected:
                    self.on_connected()

                # Główna pętla odbierania wiadomości
                async for message in websocket:
                    await self._handle_message(message)
                    if not self._running:
                        break

            except websockets.exceptions.ConnectionClosed:
                logger.info("Alarm WebSocket connection closed")

            finally:
                self._websocket = None
                self._connected = False
                if self.on_disconnected:
                    self.on_disconnected()

    async def _handle_message(self, message):
        """
        Obsłuż wiadomość od serwera.

        Args:
            message: JSON string z wiadomością
        """
        try:
            data = json.loads(message)
        except json.JSONDecodeError as e:
            logger.error(f"Failed to decode message: {e}")
            self._emit_error(f"Invalid JSON: {e}")
            return

        if not isinstance(data, dict):
            logger.warning(f"Ignoring non-object message: {data!r}")
            return

        msg_type = data.get("type")

        if msg_type == "CONNECTED":
            self.session_id = data.get("sessionId")
            logger.info(f"Alarm WebSocket session id: {self.session_id}")

        elif msg_type == "KICKED":
            if self.session_id is not None and data.get("targetId") == self.session_id:
                logger.warning("This device was removed by the main device")
                self.kicked = True
                self._running = False

        elif msg_type == "ERROR":
            logger.error(f"Server error: {data.get('error', 'Unknown error')}")

        if self.on_message:
            try:
                self.on_message(data)
            except Exception as e:
                logger.error(f"Error handling message {msg_type}: {e}")

        if self.kicked and self.on_kicked:
            self.on_kicked()

    def _emit_error(self, error: str):
        if self.on_error:
            self.on_error(error)

    async def _send_message(self, message: dict):
        """Wyślij wiadomość do serwera"""
        if self._websocket is not None and self._connected:
            try:
                await self._websocket.send(json.dumps(message))
            except websockets.exceptions.WebSocketException as e:
                logger.error(f"Failed to send message: {e}")
                self._emit_error(f"Send failed: {e}")

    def send(self, message: dict) -> bool:
        """
        Wyślij wiadomość z dowolnego wątku.

        Returns:
            False jeśli klient nie jest połączony
        """
        if not (self._loop and self._loop.is_running() and self._connected):
            return False
        asyncio.run_coroutine_threadsafe(self._send_message(message), self._loop)
        return True

    def send_kick(self, target_id: str) -> bool:
        """Poproś serwer o wyrzucenie sesji target_id (honorowane tylko od main)"""
        return self.send({"type": "KICK_DEVICE", "targetId": target_id})

    def stop(self, timeout: float = 5.0):
        """Zatrzymaj WebSocket client (bez dalszych reconnectów)"""
        self._running = False

        if self._loop and self._loop.is_running() and self._main_task:
            self._loop.call_soon_threadsafe(self._main_task.cancel)

        if self.is_alive() and threading.current_thread() is not self:
            self.join(timeout)

        logger.info("Alarm WebSocket client stopped")

    def is_connected(self) -> bool:
        """Sprawdź czy połączony"""
        return self._connected


# =============================================================================
# Helper Functions
# =============================================================================

def create_websocket_client(
    base_url: str,
    role: str,
    on_message: Optional[Callable[[dict], None]] = None,
    on_connected: Optional[Callable[[], None]] = None,
    on_disconnected: Optional[Callable[[], None]] = None,
    on_kicked: Optional[Callable[[], None]] = None,
    auto_reconnect: bool = True
) -> AlarmWebSocketClient:
    """
    Utwórz i skonfiguruj WebSocket client.

    Returns:
        Skonfigurowany AlarmWebSocketClient (nie uruchomiony)

    Example:
        ws = create_websocket_client(
            base_url="http://localhost:3000",
            role="receiver",
            on_message=lambda data: print(data["type"]),
        )

        ws.start()  # Uruchom w tle

        # Później:
        ws.stop()  # Zatrzymaj
    """
    client = AlarmWebSocketClient(base_url, role, auto_reconnect)
    client.on_message = on_message
    client.on_connected = on_connected
    client.on_disconnected = on_disconnected
    client.on_kicked = on_kicked
    return client
