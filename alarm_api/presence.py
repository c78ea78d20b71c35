"""
Presence Registry - rejestr połączonych urządzeń i ich ról.

Rejestr nie wysyła niczego sam - po każdej zmianie członkostwa
protokół sesji rozgłasza pełny snapshot do wszystkich sesji.
"""
from typing import Dict, MutableMapping, Optional, Set
from loguru import logger


ROLE_MAIN = "main"
ROLE_RECEIVER = "receiver"
VALID_ROLES = (ROLE_MAIN, ROLE_RECEIVER)


class PresenceRegistry:
    """
    Rejestr obecności jednego procesu.

    Przechowuje dwie rzeczy:
    - otwarte połączenia transportowe (z nich liczony jest `count`)
    - zidentyfikowane sesje: session_id -> {"role": ...}

    `count` może chwilowo przewyższać liczbę urządzeń, gdy socket
    już się połączył, ale nie wysłał jeszcze IDENTIFY.
    """

    def __init__(self, store: Optional[MutableMapping[str, Dict[str, str]]] = None):
        """
        Args:
            store: Mapa session_id -> {"role"}; domyślnie nowy dict
        """
        self._sessions: MutableMapping[str, Dict[str, str]] = store if store is not None else {}
        self._connections: Set[str] = set()

    # =========================================================================
    # TRANSPORT
    # =========================================================================

    def open(self, session_id: str):
        """Zarejestruj otwarte połączenie transportowe"""
        self._connections.add(session_id)

    def close(self, session_id: str) -> bool:
        """
        Zamknij połączenie i wyrejestruj sesję.

        Returns:
            True jeśli sesja była zidentyfikowana
        """
        self._connections.discard(session_id)
        return self.unregister(session_id)

    # =========================================================================
    # SESJE
    # =========================================================================

    def register(self, session_id: str, role: str):
        """Zarejestruj (lub przerejestruj) sesję z podaną rolą"""
        if role not in VALID_ROLES:
            raise ValueError(f"Unknown role: {role}")

        previous = self._sessions.get(session_id)
        self._sessions[session_id] = {"role": role}

        if previous and previous["role"] != role:
            logger.info(f"Session {session_id} changed role {previous['role']} -> {role}")
        else:
            logger.info(f"Session {session_id} identified as {role}")

    def unregister(self, session_id: str) -> bool:
        """Usuń sesję z rejestru; zwraca False jeśli jej nie było"""
        if session_id not in self._sessions:
            return False
        del self._sessions[session_id]
        logger.info(f"Session {session_id} unregistered")
        return True

    def role_of(self, session_id: str) -> Optional[str]:
        """Rola sesji albo None, jeśli sesja się nie zidentyfikowała"""
        entry = self._sessions.get(session_id)
        return entry["role"] if entry else None

    def is_registered(self, session_id: str) -> bool:
        return session_id in self._sessions

    def snapshot(self) -> dict:
        """
        Pełny snapshot obecności.

        Returns:
            {"count": liczba otwartych połączeń,
             "devices": [{"role", "id"}] w kolejności rejestracji}
        """
        return {
            "count": len(self._connections),
            "devices": [
                {"role": entry["role"], "id": session_id}
                for session_id, entry in self._sessions.items()
            ]
        }
