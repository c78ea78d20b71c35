"""
Alarm Store - trwała tabela alarmów.

Każda operacja modyfikująca:
1. zatwierdza pojedynczą transakcję w bazie
2. rozgłasza wynik przez kanał push (przed zwróceniem sterowania)

Oba kroki nie są atomowe: awaria między commitem a broadcastem
oznacza, że zmiana jest zapisana, ale nikt o niej nie usłyszał.
Klienci wyrównują to pobierając pełną listę po ponownym połączeniu.
"""
import re
from typing import List

from sqlalchemy.orm import Session
from loguru import logger

from .alarms_models import Alarm
from .config import settings
from .websocket_manager import (
    build_alarm_created,
    build_alarm_updated,
    build_alarm_deleted,
)


TIME_PATTERN = r"^([01][0-9]|2[0-3]):([0-5][0-9])$"
_TIME_RE = re.compile(TIME_PATTERN)
MAX_TITLE_LENGTH = 200
MINUTES_PER_DAY = 24 * 60


class AlarmNotFoundError(Exception):
    """Nieznane ID alarmu"""

    def __init__(self, alarm_id: int):
        super().__init__(f"Alarm {alarm_id} not found")
        self.alarm_id = alarm_id


class InvalidAlarmError(ValueError):
    """Niepoprawny tytuł lub czas alarmu"""


def validate_time(value: str) -> str:
    """Sprawdź format HH:MM (godzina 0-23, minuta 0-59)"""
    if not isinstance(value, str) or not _TIME_RE.match(value):
        raise InvalidAlarmError(f"Invalid time '{value}', expected HH:MM")
    return value


def validate_title(value: str) -> str:
    title = value.strip() if isinstance(value, str) else ""
    if not title:
        raise InvalidAlarmError("Title must not be empty")
    if len(title) > MAX_TITLE_LENGTH:
        raise InvalidAlarmError(f"Title longer than {MAX_TITLE_LENGTH} characters")
    return title


def shift_time(value: str, minutes: int) -> str:
    """
    Przesuń czas HH:MM o podaną liczbę minut w obrębie doby.

    >>> shift_time("23:57", 5)
    '00:02'
    """
    hours, mins = map(int, validate_time(value).split(":"))
    total = (hours * 60 + mins + minutes) % MINUTES_PER_DAY
    return f"{total // 60:02d}:{total % 60:02d}"


class AlarmStore:
    """
    Operacje na tabeli alarmów z rozgłaszaniem zmian.

    Args:
        db: Sesja SQLAlchemy
        channel: Obiekt z metodą `async broadcast(message: dict)`
    """

    def __init__(self, db: Session, channel):
        self.db = db
        self.channel = channel

    # =========================================================================
    # ODCZYT
    # =========================================================================

    def list(self) -> List[Alarm]:
        """Wszystkie alarmy posortowane rosnąco po czasie (HH:MM)"""
        return self.db.query(Alarm).order_by(Alarm.time.asc(), Alarm.id.asc()).all()

    def get(self, alarm_id: int) -> Alarm:
        alarm = self.db.get(Alarm, alarm_id)
        if alarm is None:
            raise AlarmNotFoundError(alarm_id)
        return alarm

    # =========================================================================
    # ZAPIS
    # =========================================================================

    async def create(self, title: str, time: str) -> Alarm:
        """Utwórz alarm i rozgłoś ALARM_CREATED"""
        alarm = Alarm(title=validate_title(title), time=validate_time(time), enabled=True)
        self.db.add(alarm)
        self._commit()
        self.db.refresh(alarm)

        logger.info(f"Created alarm {alarm.id} at {alarm.time}")
        await self.channel.broadcast(build_alarm_created(alarm.to_dict()))
        return alarm

    async def set_enabled(self, alarm_id: int, enabled: bool) -> Alarm:
        """Włącz/wyłącz alarm i rozgłoś ALARM_UPDATED"""
        alarm = self.get(alarm_id)
        alarm.enabled = bool(enabled)
        self._commit()
        self.db.refresh(alarm)

        logger.info(f"Alarm {alarm_id} enabled={alarm.enabled}")
        await self.channel.broadcast(build_alarm_updated(alarm.to_dict()))
        return alarm

    async def delete(self, alarm_id: int) -> None:
        """Usuń alarm i rozgłoś ALARM_DELETED"""
        alarm = self.get(alarm_id)
        self.db.delete(alarm)
        self._commit()

        logger.info(f"Deleted alarm {alarm_id}")
        await self.channel.broadcast(build_alarm_deleted(alarm_id))

    async def snooze(self, alarm_id: int) -> Alarm:
        """Przesuń alarm o SNOOZE_MINUTES (z zawijaniem doby) i rozgłoś ALARM_UPDATED"""
        alarm = self.get(alarm_id)
        previous = alarm.time
        alarm.time = shift_time(alarm.time, settings.SNOOZE_MINUTES)
        self._commit()
        self.db.refresh(alarm)

        logger.info(f"Snoozed alarm {alarm_id}: {previous} -> {alarm.time}")
        await self.channel.broadcast(build_alarm_updated(alarm.to_dict()))
        return alarm

    def _commit(self):
        try:
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
