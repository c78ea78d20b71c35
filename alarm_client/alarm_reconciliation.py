"""
Reconciliation Engine - optymistyczna lista alarmów z kolejką offline.

Przepływ:
1. Każda mutacja jest najpierw stosowana lokalnie (optymistycznie)
2. Potem wysyłana do serwera
3. Brak odpowiedzi / 5xx -> zmiana zostaje lokalnie, akcja trafia do kolejki
4. Odrzucenie (4xx) -> zmiana jest cofana, nic nie trafia do kolejki
5. Po ponownym połączeniu flush() odtwarza kolejkę po kolei, a lista
   z serwera zastępuje stan lokalny (replace_all)

Alarmy utworzone offline dostają tymczasowe, ujemne ID. Odpowiedź serwera
zastępuje tymczasowy wpis, a późniejsze akcje z kolejki są przemapowywane
na ID nadane przez serwer.
"""
import threading
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Protocol

from loguru import logger

from .alarm_api_client import APIResponse
from .alarm_models import Alarm, PendingAction, PendingActionKind


class AlarmTransport(Protocol):
    """To, czego silnik potrzebuje od klienta HTTP (AlarmsAPIClient)"""

    def create_alarm(self, title: str, time: str) -> APIResponse: ...

    def set_enabled(self, alarm_id: int, enabled: bool) -> APIResponse: ...

    def delete_alarm(self, alarm_id: int) -> APIResponse: ...


@dataclass
class MutationResult:
    """Wynik optymistycznej mutacji"""
    alarm: Optional[Alarm] = None
    queued: bool = False
    error: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.error is None


@dataclass
class FlushResult:
    """Wynik odtworzenia jednej akcji z kolejki"""
    action: PendingAction
    success: bool
    error: Optional[str] = None


def sort_alarms(alarms: List[Alarm]) -> List[Alarm]:
    return sorted(alarms, key=lambda a: (a.time, a.id))


def apply_action(local: List[Alarm], action: PendingAction) -> List[Alarm]:
    """
    Zastosuj akcję do listy alarmów (czysta funkcja - zwraca nową listę).

    >>> alarms = [Alarm(id=1, title="Wake", time="07:00")]
    >>> [a.enabled for a in apply_action(alarms, PendingAction(PendingActionKind.UPDATE, {"id": 1, "enabled": False}))]
    [False]
    """
    payload = action.payload
    alarm_id = payload.get('id')

    if action.kind is PendingActionKind.CREATE:
        if any(a.id == alarm_id for a in local):
            return list(local)
        created = Alarm(id=alarm_id, title=payload['title'], time=payload['time'], enabled=True)
        return sort_alarms(list(local) + [created])

    if action.kind is PendingActionKind.UPDATE:
        return [
            Alarm(a.id, a.title, a.time, payload['enabled'], a.created_at) if a.id == alarm_id else a
            for a in local
        ]

    if action.kind is PendingActionKind.DELETE:
        return [a for a in local if a.id != alarm_id]

    raise ValueError(f"Unknown action kind: {action.kind}")


class ReconciliationEngine:
    """
    Lokalna kopia listy alarmów + kolejka akcji offline.

    Wszystkie zmiany stanu odbywają się pod blokadą; wywołania sieciowe
    poza nią, więc zdarzenia push mogą być scalane w trakcie requestu.

    Args:
        alarms: Stan początkowy (np. snapshot z cache)
    """

    def __init__(self, alarms: Optional[List[Alarm]] = None):
        self._alarms: List[Alarm] = sort_alarms(alarms or [])
        self._queue: List[PendingAction] = []
        self._temp_ids: Dict[int, int] = {}  # tymczasowe ID -> ID z serwera
        self._next_temp_id = -1
        self._lock = threading.RLock()

        # Callback wywoływany po każdej zmianie listy
        self.on_changed: Optional[Callable[[List[Alarm]], None]] = None

    # =========================================================================
    # STAN
    # =========================================================================

    @property
    def alarms(self) -> List[Alarm]:
        with self._lock:
            return list(self._alarms)

    def get(self, alarm_id: int) -> Optional[Alarm]:
        with self._lock:
            return self._find(alarm_id)

    def pending(self) -> List[PendingAction]:
        """Kopia kolejki akcji czekających na flush"""
        with self._lock:
            return list(self._queue)

    def queue(self, action: PendingAction):
        with self._lock:
            self._queue.append(action)
        logger.info(f"Queued offline action: {action.kind.value} {action.payload}")

    def resolve_id(self, alarm_id: int) -> Optional[int]:
        """ID z serwera dla alarmu (tymczasowe ID bez mapowania -> None)"""
        if alarm_id >= 0:
            return alarm_id
        with self._lock:
            return self._temp_ids.get(alarm_id)

    def hydrate(self, snapshot: List[Alarm]):
        """Wczytaj stan z lokalnego cache (zimny start)"""
        logger.debug(f"Hydrating {len(snapshot)} alarms from cache")
        self._replace(snapshot)

    def replace_all(self, alarms: List[Alarm]):
        """Lista z serwera jest autorytatywna i zastępuje stan lokalny"""
        logger.debug(f"Replacing local state with {len(alarms)} alarms from server")
        self._replace(alarms)

    def apply_server_alarm(self, alarm: Alarm):
        """Upsert alarmu otrzymanego od serwera"""
        with self._lock:
            self._alarms = sort_alarms([a for a in self._alarms if a.id != alarm.id] + [alarm])
        self._notify()

    # =========================================================================
    # MUTACJE OPTYMISTYCZNE
    # =========================================================================

    def create(self, title: str, time: str, transport: AlarmTransport) -> MutationResult:
        """Dodaj alarm lokalnie z tymczasowym ID, potem wyślij do serwera"""
        with self._lock:
            temp_id = self._next_temp_id
            self._next_temp_id -= 1
            action = PendingAction(PendingActionKind.CREATE, {'id': temp_id, 'title': title, 'time': time})
            self._alarms = apply_action(self._alarms, action)
        self._notify()

        response = transport.create_alarm(title, time)

        if response.success:
            alarm = self._confirm_create(temp_id, Alarm.from_dict(response.data))
            return MutationResult(alarm=alarm)

        if response.is_transport_failure:
            self.queue(action)
            return MutationResult(alarm=self.get(temp_id), queued=True)

        logger.warning(f"Server rejected new alarm '{title}': {response.error}")
        self._revert(temp_id, None)
        return MutationResult(error=response.error)

    def set_enabled(self, alarm_id: int, enabled: bool, transport: AlarmTransport) -> MutationResult:
        """Włącz/wyłącz alarm"""
        with self._lock:
            previous = self._find(alarm_id)
            if previous is None:
                return MutationResult(error=f"Alarm {alarm_id} not found")

            action = PendingAction(PendingActionKind.UPDATE, {'id': alarm_id, 'enabled': enabled})
            self._alarms = apply_action(self._alarms, action)
            sent = self._find(alarm_id)
        self._notify()

        server_id = self.resolve_id(alarm_id)
        if server_id is None:
            # Alarm jeszcze nie istnieje na serwerze
            self.queue(action)
            return MutationResult(alarm=self.get(alarm_id), queued=True)

        response = transport.set_enabled(server_id, enabled)

        if response.success:
            return MutationResult(alarm=self._confirm_update(sent, Alarm.from_dict(response.data)))

        if response.is_transport_failure:
            self.queue(action)
            return MutationResult(alarm=self.get(alarm_id), queued=True)

        logger.warning(f"Server rejected update of alarm {alarm_id}: {response.error}")
        self._revert(alarm_id, previous if response.status_code != 404 else None)
        return MutationResult(error=response.error)

    def toggle(self, alarm_id: int, transport: AlarmTransport) -> MutationResult:
        current = self.get(alarm_id)
        if current is None:
            return MutationResult(error=f"Alarm {alarm_id} not found")
        return self.set_enabled(alarm_id, not current.enabled, transport)

    def delete(self, alarm_id: int, transport: AlarmTransport) -> MutationResult:
        """Usuń alarm lokalnie, potem na serwerze"""
        with self._lock:
            previous = self._find(alarm_id)
            if previous is None:
                return MutationResult(error=f"Alarm {alarm_id} not found")

            action = PendingAction(PendingActionKind.DELETE, {'id': alarm_id})
            self._alarms = apply_action(self._alarms, action)
        self._notify()

        server_id = self.resolve_id(alarm_id)
        if server_id is None:
            self.queue(action)
            return MutationResult(queued=True)

        response = transport.delete_alarm(server_id)

        if response.success:
            return MutationResult()

        if response.is_transport_failure:
            self.queue(action)
            return MutationResult(queued=True)

        if response.status_code == 404:
            # Już usunięty na serwerze - stan lokalny jest zgodny
            return MutationResult()

        logger.warning(f"Server rejected delete of alarm {alarm_id}: {response.error}")
        self._revert(alarm_id, previous)
        return MutationResult(error=response.error)

    # =========================================================================
    # FLUSH KOLEJKI
    # =========================================================================

    def flush(self, transport: AlarmTransport) -> List[FlushResult]:
        """
        Odtwórz kolejkę akcji offline.

        Kolejka jest podmieniana atomowo, więc akcje dodane w trakcie
        czekają na następny flush. Akcje są wysyłane ściśle po kolei;
        nieudana akcja jest logowana i porzucana, reszta leci dalej.
        Żadna akcja nie jest ponawiana drugi raz.
        """
        with self._lock:
            actions, self._queue = self._queue, []

        if not actions:
            return []

        logger.info(f"Flushing {len(actions)} offline actions")
        results = [self._replay(action, transport) for action in actions]

        failed = sum(1 for r in results if not r.success)
        if failed:
            logger.warning(f"Flush finished: {len(results) - failed} replayed, {failed} dropped")
        else:
            logger.success(f"Flush finished: {len(results)} actions replayed")
        return results

    def _replay(self, action: PendingAction, transport: AlarmTransport) -> FlushResult:
        payload = action.payload
        queued = action.queued_at.strftime('%H:%M:%S')

        try:
            if action.kind is PendingActionKind.CREATE:
                response = transport.create_alarm(payload['title'], payload['time'])
                if response.success:
                    self._confirm_create(action.alarm_id, Alarm.from_dict(response.data))
            else:
                server_id = self.resolve_id(action.alarm_id)
                if server_id is None:
                    error = f"Unresolved temporary id {action.alarm_id}"
                    logger.warning(f"Dropping {action.kind.value} queued at {queued}: {error}")
                    return FlushResult(action, False, error)

                if action.kind is PendingActionKind.UPDATE:
                    response = transport.set_enabled(server_id, payload['enabled'])
                else:
                    response = transport.delete_alarm(server_id)

        except Exception as e:
            logger.error(f"Error replaying {action.kind.value} {payload} queued at {queued}: {e}")
            return FlushResult(action, False, str(e))

        if not response.success:
            logger.warning(f"Dropping {action.kind.value} {payload} queued at {queued}: {response.error}")
            return FlushResult(action, False, response.error)

        return FlushResult(action, True)

    # =========================================================================
    # ZDARZENIA PUSH
    # =========================================================================

    def apply_remote_event(self, message: dict) -> bool:
        """
        Scal zdarzenie z kanału push.

        Returns:
            True jeśli wiadomość dotyczyła listy alarmów
        """
        msg_type = message.get('type')

        if msg_type in ('ALARM_CREATED', 'ALARM_UPDATED'):
            self.apply_server_alarm(Alarm.from_dict(message['alarm']))
            return True

        if msg_type == 'ALARM_DELETED':
            alarm_id = message.get('id')
            with self._lock:
                self._alarms = [a for a in self._alarms if a.id != alarm_id]
            self._notify()
            return True

        return False

    # =========================================================================
    # HELPERS
    # =========================================================================

    def _find(self, alarm_id: int) -> Optional[Alarm]:
        for alarm in self._alarms:
            if alarm.id == alarm_id:
                return alarm
        return None

    def _confirm_create(self, temp_id: int, alarm: Alarm) -> Alarm:
        """Zastąp tymczasowy wpis alarmem z serwera (echo push mogło dojść pierwsze)"""
        with self._lock:
            self._temp_ids[temp_id] = alarm.id
            # Zdarzenia push dotarły przed odpowiedzią HTTP i są od niej nowsze
            alarm = self._find(alarm.id) or alarm
            self._alarms = sort_alarms(
                [a for a in self._alarms if a.id not in (temp_id, alarm.id)] + [alarm]
            )
        self._notify()
        return alarm

    def _confirm_update(self, sent: Alarm, alarm: Alarm) -> Optional[Alarm]:
        """Przyjmij odpowiedź serwera, chyba że kanał push zmienił alarm w trakcie żądania"""
        with self._lock:
            current = self._find(sent.id)
            if current != sent:
                logger.debug(f"Alarm {sent.id} changed while request was in flight, keeping local copy")
                return current
            self._alarms = sort_alarms([a for a in self._alarms if a.id != alarm.id] + [alarm])
        self._notify()
        return alarm

    def _revert(self, alarm_id: int, previous: Optional[Alarm]):
        with self._lock:
            remaining = [a for a in self._alarms if a.id != alarm_id]
            self._alarms = sort_alarms(remaining + [previous]) if previous else remaining
        self._notify()

    def _replace(self, alarms: List[Alarm]):
        with self._lock:
            self._alarms = sort_alarms(alarms)
        self._notify()

    def _notify(self):
        if self.on_changed:
            self.on_changed(self.alarms)
