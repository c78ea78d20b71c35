"""
Alarm Module Logic - Menedżer alarmów urządzenia z synchronizacją
"""
from datetime import datetime
from pathlib import Path
from typing import Callable, List, Optional
import threading

from loguru import logger

from .alarm_api_client import AlarmsAPIClient, create_api_client
from .alarm_clock import AlarmState, NotificationCenter, compute_alarm_state, format_countdown, next_tick_delay
from .alarm_local_database import LocalDatabase
from .alarm_models import Alarm, DeviceRole
from .alarm_reconciliation import FlushResult, MutationResult, ReconciliationEngine
from .alarm_websocket_client import AlarmWebSocketClient, create_websocket_client
from .config import config


class AlarmManager:
    """
    Menedżer alarmów urządzenia.

    Features:
    - Cache lokalny (LocalDatabase) na zimny start bez sieci
    - Optymistyczne mutacje + kolejka offline (ReconciliationEngine)
    - Real-time updates i obecność (WebSocket)
    - Zegar sprawdzający alarmy co sekundę
    """

    def __init__(
        self,
        data_dir: Path,
        role: Optional[str] = None,
        api_base_url: Optional[str] = None,
        api_client: Optional[AlarmsAPIClient] = None,
        enable_sync: bool = True
    ):
        """
        Initialize AlarmManager.

        Args:
            data_dir: Katalog z danymi lokalnymi
            role: Rola urządzenia ("main" / "receiver"); None -> zapamiętana rola
            api_base_url: URL API serwera (np. "http://localhost:3000")
            api_client: Gotowy klient HTTP (np. w testach)
            enable_sync: Czy łączyć się z kanałem push i uruchamiać zegar w tle
        """
        self.data_dir = Path(data_dir)
        self.api_base_url = api_base_url or config.API_BASE_URL
        self.enable_sync = enable_sync

        self.local_db = LocalDatabase(self.data_dir / "alarms.db")
        self.api_client = api_client or create_api_client(self.api_base_url)
        self.engine = ReconciliationEngine()
        self.notifications = NotificationCenter()
        self.ws_client: Optional[AlarmWebSocketClient] = None

        if role is not None:
            DeviceRole(role)  # ValueError dla nieznanej roli
            self.local_db.set_role(role)
        self.role: Optional[str] = role or self.local_db.get_role()

        # Stan obecności i zegara
        self.is_connected = False
        self.connected_count = 0
        self.devices: List[dict] = []
        self.state = AlarmState()

        # UI callbacks dla real-time updates
        self.on_alarms_changed: Optional[Callable[[List[Alarm]], None]] = None
        self.on_presence_changed: Optional[Callable[[int, List[dict]], None]] = None
        self.on_state_changed: Optional[Callable[[AlarmState], None]] = None
        self.on_kicked: Optional[Callable[[], None]] = None

        self._tick_thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()

        self.engine.on_changed = self._handle_alarms_changed

        # Initialize
        self._load_data()

    # =========================================================================
    # ŁADOWANIE DANYCH
    # =========================================================================

    def _load_data(self):
        """Najpierw cache (natychmiast), potem lista z serwera"""
        cached = self.local_db.load_snapshot()
        if cached:
            self.engine.hydrate(cached)
            logger.info(f"Loaded {len(cached)} alarms from local cache")

        self.fetch_alarms()

    def fetch_alarms(self) -> bool:
        """
        Pobierz listę z serwera i zastąp stan lokalny.

        Returns:
            True jeśli sukces
        """
        response = self.api_client.list_alarms()
        if not response.success:
            logger.warning(f"Could not fetch alarms from server: {response.error}")
            return False

        self.engine.replace_all([Alarm.from_dict(item) for item in response.data or []])
        return True

    def _handle_alarms_changed(self, alarms: List[Alarm]):
        self.local_db.save_snapshot([a for a in alarms if not a.is_temporary])
        if self.on_alarms_changed:
            self.on_alarms_changed(alarms)

    @property
    def alarms(self) -> List[Alarm]:
        return self.engine.alarms

    def set_ui_callbacks(
        self,
        on_alarms_changed: Optional[Callable[[List[Alarm]], None]] = None,
        on_presence_changed: Optional[Callable[[int, List[dict]], None]] = None,
        on_state_changed: Optional[Callable[[AlarmState], None]] = None,
        on_kicked: Optional[Callable[[], None]] = None
    ):
        """Ustaw callbacki UI"""
        self.on_alarms_changed = on_alarms_changed
        self.on_presence_changed = on_presence_changed
        self.on_state_changed = on_state_changed
        self.on_kicked = on_kicked

    # =========================================================================
    # START / STOP
    # =========================================================================

    def start(self):
        """Uruchom kanał push (jeśli rola jest znana) i zegar"""
        if self.enable_sync:
            self.connect()
            self._start_ticking()

    def connect(self) -> bool:
        """Połącz się z kanałem push z bieżącą rolą"""
        if not self.role:
            logger.warning("Cannot connect without a device role")
            return False

        if self.ws_client and self.ws_client.is_alive():
            return True

        self.ws_client = create_websocket_client(
            base_url=self.api_base_url,
            role=self.role,
            on_message=self._handle_ws_message,
            on_connected=self._handle_ws_connected,
            on_disconnected=self._handle_ws_disconnected,
            on_kicked=self._handle_kicked
        )
        self.ws_client.start()
        logger.info(f"WebSocket client started as {self.role}")
        return True

    def disconnect(self):
        """Rozłącz kanał push (bez reconnectu)"""
        if self.ws_client:
            self.ws_client.stop()
            self.ws_client = None
        self.is_connected = False

    def set_role(self, role: str):
        """Zmień rolę urządzenia i połącz się ponownie"""
        DeviceRole(role)
        self.role = role
        self.local_db.set_role(role)
        logger.info(f"Device role set to {role}")

        if self.enable_sync:
            self.disconnect()
            self.connect()

    def cleanup(self):
        """
        Zatrzymaj wszystkie komponenty.

        Wywołaj przy zamykaniu aplikacji.
        """
        logger.info("Cleaning up AlarmManager...")

        self._stop_event.set()
        if self._tick_thread and self._tick_thread.is_alive():
            self._tick_thread.join(timeout=config.TICK_INTERVAL * 2)

        if self.ws_client:
            try:
                self.ws_client.stop()
                logger.info("WebSocket client stopped")
            except RuntimeError as e:
                logger.error(f"Error stopping WebSocket: {e}")

        self.api_client.close()
        logger.success("AlarmManager cleanup complete")

    # =========================================================================
    # OPERACJE NA ALARMACH
    # =========================================================================

    def add_alarm(self, title: str, time: str) -> MutationResult:
        """Dodaj alarm (offline -> zapisany lokalnie i w kolejce)"""
        result = self.engine.create(title, time, self.api_client)
        if result.queued:
            self.notifications.notify("Offline Mode", "Alarm saved locally. Will sync when online.")
        return result

    def set_enabled(self, alarm_id: int, enabled: bool) -> MutationResult:
        return self.engine.set_enabled(alarm_id, enabled, self.api_client)

    def toggle_alarm(self, alarm_id: int) -> MutationResult:
        return self.engine.toggle(alarm_id, self.api_client)

    def delete_alarm(self, alarm_id: int) -> MutationResult:
        return self.engine.delete(alarm_id, self.api_client)

    def snooze(self, alarm_id: int) -> bool:
        """
        Drzemka - serwer przesuwa alarm o kilka minut.

        Nie jest optymistyczna i nie trafia do kolejki offline.
        """
        server_id = self.engine.resolve_id(alarm_id)
        if server_id is None:
            logger.warning(f"Cannot snooze alarm {alarm_id} before it reaches the server")
            return False

        response = self.api_client.snooze_alarm(server_id)
        if not response.success:
            logger.error(f"Failed to snooze alarm {alarm_id}: {response.error}")
            return False

        self.engine.apply_server_alarm(Alarm.from_dict(response.data))
        return True

    def countdown(self, alarm: Alarm, now: Optional[datetime] = None) -> str:
        return format_countdown(alarm.time, now or datetime.now())

    # =========================================================================
    # SYNCHRONIZACJA
    # =========================================================================

    def sync_with_server(self) -> List[FlushResult]:
        """Odtwórz kolejkę offline, potem pobierz autorytatywną listę"""
        results = self.engine.flush(self.api_client)

        if self.fetch_alarms():
            self.notifications.notify("Synced", "Connection restored. Alarms updated.")
        return results

    def kick_device(self, target_id: str) -> bool:
        """Wyrzuć inną sesję (tylko urządzenie główne)"""
        if self.role != DeviceRole.MAIN.value:
            logger.warning("Only the main device can remove other devices")
            return False

        if not self.ws_client or not self.ws_client.send_kick(target_id):
            logger.warning("Cannot kick device while disconnected")
            return False

        logger.info(f"Requested removal of device {target_id}")
        return True

    @property
    def session_id(self) -> Optional[str]:
        return self.ws_client.session_id if self.ws_client else None

    # =========================================================================
    # HANDLERY KANAŁU PUSH
    # =========================================================================

    def _handle_ws_connected(self):
        self.is_connected = True
        # Poza wątkiem WebSocket, żeby nie blokować odbierania wiadomości
        threading.Thread(target=self.sync_with_server, daemon=True, name="AlarmSync").start()

    def _handle_ws_disconnected(self):
        self.is_connected = False

    def _handle_ws_message(self, data: dict):
        """Obsłuż wiadomość z kanału push"""
        msg_type = data.get('type')

        if msg_type == 'PRESENCE_UPDATE':
            self.connected_count = data.get('count', 0)
            self.devices = data.get('devices') or []
            logger.debug(f"Presence: {self.connected_count} connected, {len(self.devices)} identified")
            if self.on_presence_changed:
                self.on_presence_changed(self.connected_count, self.devices)

        elif self.engine.apply_remote_event(data):
            logger.debug(f"Applied remote event {msg_type}")

    def _handle_kicked(self):
        """Urządzenie główne wyrzuciło tę sesję: rozłącz i zapomnij rolę"""
        if self.ws_client:
            self.ws_client.stop()
        self.is_connected = False
        self.role = None
        self.local_db.set_role(None)

        self.notifications.notify("Disconnected", "You have been removed by the administrator.")
        if self.on_kicked:
            self.on_kicked()

    # =========================================================================
    # ZEGAR
    # =========================================================================

    def tick(self, now: Optional[datetime] = None) -> AlarmState:
        """Przelicz stan alarmów i wyślij powiadomienia dla tej sekundy"""
        self.notifications.expire()

        state = compute_alarm_state(self.engine.alarms, now or datetime.now())
        for notice in state.notices:
            self.notifications.post(notice)

        self.state = state
        if self.on_state_changed:
            self.on_state_changed(state)
        return state

    def _start_ticking(self):
        if self._tick_thread and self._tick_thread.is_alive():
            return

        self._stop_event.clear()
        self._tick_thread = threading.Thread(target=self._tick_loop, daemon=True, name="AlarmClock")
        self._tick_thread.start()

    def _tick_loop(self):
        while not self._stop_event.wait(next_tick_delay(datetime.now())):
            try:
                self.tick()
            except Exception as e:
                logger.error(f"Alarm clock tick failed: {e}")
