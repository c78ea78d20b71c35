"""
Alarm Models - Modele danych po stronie urządzenia
"""
from datetime import datetime
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional
import uuid


class PendingActionKind(Enum):
    """Rodzaj akcji czekającej w kolejce offline"""
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


class DeviceRole(Enum):
    """Rola urządzenia deklarowana w IDENTIFY"""
    MAIN = "main"
    RECEIVER = "receiver"


@dataclass
class Alarm:
    """Model alarmu (kopia lokalna wiersza z serwera)"""
    id: int
    title: str
    time: str  # "HH:MM", lokalny czas ścienny
    enabled: bool = True
    created_at: Optional[datetime] = None

    @property
    def is_temporary(self) -> bool:
        """Alarm utworzony offline, jeszcze bez ID z serwera"""
        return self.id < 0

    def to_dict(self) -> dict:
        """Konwertuj na słownik"""
        return {
            'id': self.id,
            'title': self.title,
            'time': self.time,
            'enabled': self.enabled,
            'created_at': self.created_at.isoformat() if self.created_at else None
        }

    @staticmethod
    def from_dict(data: dict) -> 'Alarm':
        """Utwórz z słownika (odpowiedź HTTP lub wiadomość push)"""
        created_at = data.get('created_at')
        if isinstance(created_at, str):
            created_at = datetime.fromisoformat(created_at)

        return Alarm(
            id=int(data['id']),
            title=data['title'],
            time=data['time'],
            enabled=bool(data.get('enabled', True)),
            created_at=created_at
        )


@dataclass
class PendingAction:
    """
    Akcja zastosowana optymistycznie, ale jeszcze nie potwierdzona przez serwer.

    Payload:
        CREATE: {"id": temp_id, "title", "time"}
        UPDATE: {"id", "enabled"}
        DELETE: {"id"}
    """
    kind: PendingActionKind
    payload: Dict[str, Any]
    queued_at: datetime = field(default_factory=datetime.now)

    @property
    def alarm_id(self) -> Optional[int]:
        return self.payload.get('id')


@dataclass
class Notification:
    """Powiadomienie wyświetlane użytkownikowi"""
    title: str
    message: str
    id: str = field(default_factory=lambda: uuid.uuid4().hex[:8])
    created_at: datetime = field(default_factory=datetime.now)

    def key(self) -> tuple:
        return (self.title, self.message)
