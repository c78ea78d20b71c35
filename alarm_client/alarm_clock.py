"""
Alarm Clock - stan pochodny liczony co sekundę oraz powiadomienia

- triggering: alarmy, których HH:MM zgadza się z bieżącą minutą
- warning: alarmy zaczynające się za 0-5 pełnych minut (tego samego dnia)
- notices: powiadomienia do wyświetlenia w tej sekundzie
"""
import math
import threading
import time as time_module
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, Iterable, List, Optional, Set

from loguru import logger

from .alarm_models import Alarm, Notification
from .config import config

WARNING_MESSAGE = "Starting in {minutes} minutes!"
TRIGGER_MESSAGE = "ALARM NOW!"


@dataclass
class AlarmState:
    """Stan pochodny - nigdy nie jest zapisywany"""
    triggering: Set[int] = field(default_factory=set)
    warning: Set[int] = field(default_factory=set)
    notices: List[Notification] = field(default_factory=list)


def alarm_datetime(alarm_time: str, now: datetime) -> datetime:
    """Dzisiejsza data z godziną alarmu"""
    hours, minutes = (int(part) for part in alarm_time.split(':'))
    return now.replace(hour=hours, minute=minutes, second=0, microsecond=0)


def compute_alarm_state(alarms: Iterable[Alarm], now: datetime, warning_minutes: Optional[int] = None) -> AlarmState:
    """
    Policz zbiory triggering/warning i powiadomienia dla chwili now.

    Wyłączone alarmy nigdy nie trafiają do żadnego zbioru.
    """
    if warning_minutes is None:
        warning_minutes = config.WARNING_MINUTES

    now = now.replace(microsecond=0)
    current = now.strftime('%H:%M')
    state = AlarmState()

    for alarm in alarms:
        if not alarm.enabled:
            continue

        diff_seconds = (alarm_datetime(alarm.time, now) - now).total_seconds()
        diff_minutes = math.floor(diff_seconds / 60)

        if alarm.time == current:
            state.triggering.add(alarm.id)
            if now.second == 0:
                state.notices.append(Notification(alarm.title, TRIGGER_MESSAGE))

        if 0 <= diff_minutes <= warning_minutes:
            state.warning.add(alarm.id)

        if diff_seconds == warning_minutes * 60 and now.second == 0:
            state.notices.append(Notification(alarm.title, WARNING_MESSAGE.format(minutes=warning_minutes)))

    return state


def next_tick_delay(now: datetime, interval: Optional[float] = None) -> float:
    """
    Czas do następnego tyknięcia wyrównanego do pełnej sekundy zegara.

    Żadna sekunda (w szczególności :00) nie może zostać pominięta.
    """
    if interval is None:
        interval = config.TICK_INTERVAL
    return max(interval - now.microsecond / 1_000_000, 0.0)


def format_countdown(alarm_time: str, now: datetime) -> str:
    """
    Czas do najbliższego wystąpienia alarmu (godzina, która minęła -> jutro).

    >>> format_countdown("08:05", datetime(2024, 1, 1, 7, 0))
    '1h 5m'
    >>> format_countdown("07:05", datetime(2024, 1, 1, 7, 0, 30))
    '4m 30s'
    """
    now = now.replace(microsecond=0)
    target = alarm_datetime(alarm_time, now)
    if target < now:
        target += timedelta(days=1)

    remaining = int((target - now).total_seconds())
    hours, rest = divmod(remaining, 3600)
    minutes, seconds = divmod(rest, 60)

    if hours > 0:
        return f"{hours}h {minutes}m"
    if minutes > 0:
        return f"{minutes}m {seconds}s"
    return f"{seconds}s"


class NotificationCenter:
    """
    Aktywne powiadomienia.

    Powiadomienie o tym samym tytule i treści co już aktywne jest pomijane.
    Każde wygasa po NOTIFICATION_TTL sekundach (expire() wołane z ticka).

    Args:
        ttl: Czas życia powiadomienia w sekundach
        clock: Źródło czasu (monotoniczne), podmieniane w testach
    """

    def __init__(self, ttl: Optional[float] = None, clock: Callable[[], float] = time_module.monotonic):
        self.ttl = ttl if ttl is not None else config.NOTIFICATION_TTL
        self._clock = clock
        self._active: List[tuple] = []  # (deadline, Notification)
        self._lock = threading.Lock()
        self._listeners: List[Callable[[Notification], None]] = []

    def subscribe(self, listener: Callable[[Notification], None]):
        self._listeners.append(listener)

    def notify(self, title: str, message: str) -> Optional[Notification]:
        """
        Dodaj powiadomienie.

        Returns:
            Nowe powiadomienie albo None jeśli identyczne jest już aktywne
        """
        self.expire()
        notification = Notification(title, message)

        with self._lock:
            if any(n.key() == notification.key() for _, n in self._active):
                return None
            self._active.append((self._clock() + self.ttl, notification))

        logger.info(f"Notification: {title} - {message}")
        for listener in self._listeners:
            listener(notification)
        return notification

    def post(self, notification: Notification) -> Optional[Notification]:
        return self.notify(notification.title, notification.message)

    def expire(self) -> int:
        """Usuń wygasłe powiadomienia; zwraca ile usunięto"""
        now = self._clock()
        with self._lock:
            before = len(self._active)
            self._active = [(deadline, n) for deadline, n in self._active if deadline > now]
            return before - len(self._active)

    @property
    def active(self) -> List[Notification]:
        with self._lock:
            return [n for _, n in self._active]
