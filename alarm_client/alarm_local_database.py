"""
Local Database Module - SQLite cache urządzenia
Ostatni znany snapshot alarmów oraz stan urządzenia (rola)

Cache służy wyłącznie do zimnego startu bez sieci - lista z serwera
zawsze go nadpisuje. Kolejka akcji offline nie jest tu zapisywana.
"""
import sqlite3
from pathlib import Path
from datetime import datetime
from typing import List, Optional
from loguru import logger

from .alarm_models import Alarm


class LocalDatabase:
    """
    Lokalna baza danych SQLite

    Args:
        db_path: Ścieżka do pliku bazy SQLite
    """

    def __init__(self, db_path: Path):
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_database()

    def _get_connection(self) -> sqlite3.Connection:
        """Utwórz połączenie z bazą danych"""
        conn = sqlite3.connect(str(self.db_path))
        conn.row_factory = sqlite3.Row  # Wyniki jako słowniki
        return conn

    def _init_database(self):
        """Inicjalizuj strukturę bazy danych"""
        with self._get_connection() as conn:
            cursor = conn.cursor()

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS alarms_cache (
                    id INTEGER PRIMARY KEY,
                    title TEXT NOT NULL,
                    alarm_time TEXT NOT NULL,
                    enabled INTEGER DEFAULT 1,
                    created_at TEXT,
                    cached_at TEXT NOT NULL
                )
            """)

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS device_state (
                    key TEXT PRIMARY KEY,
                    value TEXT
                )
            """)

            conn.commit()
            logger.info(f"Local database initialized at {self.db_path}")

    # =========================================================================
    # SNAPSHOT ALARMÓW
    # =========================================================================

    def save_snapshot(self, alarms: List[Alarm]) -> bool:
        """
        Zastąp zapisany snapshot nową listą

        Returns:
            True jeśli sukces
        """
        try:
            with self._get_connection() as conn:
                cursor = conn.cursor()
                now = datetime.now().isoformat()

                cursor.execute("DELETE FROM alarms_cache")
                cursor.executemany("""
                    INSERT INTO alarms_cache (id, title, alarm_time, enabled, created_at, cached_at)
                    VALUES (?, ?, ?, ?, ?, ?)
                """, [
                    (
                        alarm.id,
                        alarm.title,
                        alarm.time,
                        1 if alarm.enabled else 0,
                        alarm.created_at.isoformat() if alarm.created_at else None,
                        now
                    )
                    for alarm in alarms
                ])

                conn.commit()
                logger.debug(f"Saved snapshot of {len(alarms)} alarms")
                return True

        except sqlite3.Error as e:
            logger.error(f"Error saving alarms snapshot: {e}")
            return False

    def load_snapshot(self) -> List[Alarm]:
        """Wczytaj ostatni snapshot (posortowany po czasie)"""
        try:
            with self._get_connection() as conn:
                cursor = conn.cursor()
                cursor.execute("""
                    SELECT id, title, alarm_time, enabled, created_at
                    FROM alarms_cache
                    ORDER BY alarm_time, id
                """)

                return [self._row_to_alarm(row) for row in cursor.fetchall()]

        except sqlite3.Error as e:
            logger.error(f"Error loading alarms snapshot: {e}")
            return []

    def _row_to_alarm(self, row: sqlite3.Row) -> Alarm:
        """Konwertuj wiersz na obiekt Alarm"""
        return Alarm(
            id=row['id'],
            title=row['title'],
            time=row['alarm_time'],
            enabled=bool(row['enabled']),
            created_at=datetime.fromisoformat(row['created_at']) if row['created_at'] else None
        )

    # =========================================================================
    # STAN URZĄDZENIA
    # =========================================================================

    def get_role(self) -> Optional[str]:
        """Zapamiętana rola urządzenia ("main"/"receiver") albo None"""
        try:
            with self._get_connection() as conn:
                cursor = conn.cursor()
                cursor.execute("SELECT value FROM device_state WHERE key = 'role'")
                row = cursor.fetchone()
                return row['value'] if row else None

        except sqlite3.Error as e:
            logger.error(f"Error reading device role: {e}")
            return None

    def set_role(self, role: Optional[str]) -> bool:
        """Zapamiętaj rolę; None ją kasuje (np. po wyrzuceniu przez main)"""
        try:
            with self._get_connection() as conn:
                cursor = conn.cursor()
                if role is None:
                    cursor.execute("DELETE FROM device_state WHERE key = 'role'")
                else:
                    cursor.execute(
                        "INSERT OR REPLACE INTO device_state (key, value) VALUES ('role', ?)",
                        (role,)
                    )
                conn.commit()
                return True

        except sqlite3.Error as e:
            logger.error(f"Error saving device role: {e}")
            return False
