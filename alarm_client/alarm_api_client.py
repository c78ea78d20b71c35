"""
API Client dla listy alarmów na serwerze.

Ten moduł odpowiada za komunikację HTTP z FastAPI backend.
Obsługuje:
- Pobieranie listy alarmów
- Tworzenie, włączanie/wyłączanie i usuwanie alarmów
- Drzemkę (snooze)

Błędy sieci nie są rzucane - wracają jako APIResponse(success=False,
status_code=None), co silnik uzgadniania traktuje jako brak połączenia.
"""

import requests
from typing import Optional, Any
from loguru import logger

from .config import config


class APIResponse:
    """Wrapper dla odpowiedzi API"""

    def __init__(self, success: bool, data: Any = None, error: Optional[str] = None, status_code: Optional[int] = None):
        self.success = success
        self.data = data
        self.error = error
        self.status_code = status_code

    @property
    def is_transport_failure(self) -> bool:
        """Brak odpowiedzi albo błąd 5xx - akcję warto powtórzyć po reconnect"""
        return not self.success and (self.status_code is None or self.status_code >= 500)

    def __repr__(self) -> str:
        if self.success:
            return f"<APIResponse success=True status={self.status_code}>"
        return f"<APIResponse success=False error='{self.error}' status={self.status_code}>"


class AlarmsAPIClient:
    """
    Klient API dla alarmów.

    Args:
        base_url: URL serwera (np. "http://192.168.1.10:3000")
        timeout: Timeout pojedynczego requestu w sekundach
    """

    def __init__(self, base_url: str, timeout: Optional[float] = None):
        self.base_url = base_url.rstrip('/')
        self.session = requests.Session()
        self.timeout = timeout if timeout is not None else config.HTTP_TIMEOUT

        # Domyślne headers
        self.session.headers.update({
            'Content-Type': 'application/json',
            'Accept': 'application/json',
        })

        logger.info(f"AlarmsAPIClient initialized with base_url: {base_url}")

    @property
    def alarms_url(self) -> str:
        return f"{self.base_url}/api/alarms"

    def _handle_response(self, response: requests.Response) -> APIResponse:
        """
        Obsłuż odpowiedź HTTP.

        Args:
            response: Odpowiedź requests

        Returns:
            APIResponse object
        """
        try:
            response.raise_for_status()
            data = response.json() if response.content else None
            return APIResponse(
                success=True,
                data=data,
                status_code=response.status_code
            )
        except requests.exceptions.HTTPError as e:
            error_message = str(e)
            try:
                error_message = response.json().get('detail', error_message)
            except ValueError:
                pass

            logger.error(f"HTTP Error {response.status_code}: {error_message}")
            return APIResponse(
                success=False,
                error=str(error_message),
                status_code=response.status_code
            )

    def _request(self, method: str, url: str, action: str, **kwargs) -> APIResponse:
        """Wykonaj request i zamień wyjątki sieciowe na APIResponse"""
        try:
            response = self.session.request(method, url, timeout=self.timeout, **kwargs)
            return self._handle_response(response)
        except requests.exceptions.RequestException as e:
            logger.warning(f"Network error during {action}: {e}")
            return APIResponse(success=False, error=f"Network error: {str(e)}")

    # =========================================================================
    # OPERACJE NA ALARMACH
    # =========================================================================

    def list_alarms(self) -> APIResponse:
        """Pobierz wszystkie alarmy (posortowane po czasie)"""
        logger.debug("Fetching alarms from server")
        return self._request('GET', self.alarms_url, 'list_alarms')

    def create_alarm(self, title: str, time: str) -> APIResponse:
        """
        Utwórz alarm.

        Args:
            title: Nazwa alarmu
            time: Godzina w formacie HH:MM

        Returns:
            APIResponse z utworzonym alarmem (ID nadane przez serwer)
        """
        logger.debug(f"Creating alarm '{title}' at {time}")
        return self._request(
            'POST',
            self.alarms_url,
            'create_alarm',
            json={'title': title, 'time': time}
        )

    def set_enabled(self, alarm_id: int, enabled: bool) -> APIResponse:
        """Włącz lub wyłącz alarm"""
        logger.debug(f"Setting alarm {alarm_id} enabled={enabled}")
        return self._request(
            'PATCH',
            f"{self.alarms_url}/{alarm_id}",
            'set_enabled',
            json={'enabled': enabled}
        )

    def delete_alarm(self, alarm_id: int) -> APIResponse:
        """Usuń alarm"""
        logger.debug(f"Deleting alarm {alarm_id}")
        return self._request('DELETE', f"{self.alarms_url}/{alarm_id}", 'delete_alarm')

    def snooze_alarm(self, alarm_id: int) -> APIResponse:
        """Przesuń alarm o kilka minut"""
        logger.debug(f"Snoozing alarm {alarm_id}")
        return self._request('POST', f"{self.alarms_url}/{alarm_id}/snooze", 'snooze_alarm')

    # =========================================================================
    # HEALTH CHECK
    # =========================================================================

    def health_check(self) -> bool:
        """
        Sprawdź czy serwer jest dostępny.

        Returns:
            True jeśli serwer odpowiada
        """
        try:
            response = self.session.get(f"{self.base_url}/health", timeout=5)
            return response.status_code == 200
        except requests.exceptions.RequestException as e:
            logger.warning(f"Health check failed: {e}")
            return False

    def close(self):
        """Zamknij sesję HTTP"""
        self.session.close()
        logger.info("AlarmsAPIClient session closed")


def create_api_client(base_url: Optional[str] = None) -> AlarmsAPIClient:
    """
    Factory function dla tworzenia API client.

    Args:
        base_url: URL serwera (jeśli None, użyje API_BASE_URL z config)

    Returns:
        Skonfigurowany AlarmsAPIClient
    """
    return AlarmsAPIClient(base_url=base_url or config.API_BASE_URL)
