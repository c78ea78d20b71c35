"""
Configuration Module for Sync Alarm API
Zarządzanie konfiguracją serwera z wykorzystaniem zmiennych środowiskowych
"""
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import List


class Settings(BaseSettings):
    """Konfiguracja serwera"""

    # Database Configuration
    DATABASE_URL: str = "sqlite:///./alarms.db"
    DATABASE_ECHO: bool = False  # Ustaw True dla debugowania SQL

    # API Configuration
    API_TITLE: str = "Sync Alarm API"
    API_VERSION: str = "1.0.0"
    API_DESCRIPTION: str = "Shared alarm list with live presence for main and receiver devices"

    # Server
    HOST: str = "0.0.0.0"
    PORT: int = 3000
    LOG_LEVEL: str = "info"

    # CORS Configuration
    CORS_ORIGINS: str = "*"

    # Push channel
    HEARTBEAT_INTERVAL: int = 30  # sekundy, 0 wyłącza heartbeat

    # Alarms
    SNOOZE_MINUTES: int = 5

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore"
    )

    @property
    def is_sqlite(self) -> bool:
        """Czy baza to SQLite (wymaga innych connect_args)"""
        return self.DATABASE_URL.startswith("sqlite")

    @property
    def CORS_ORIGINS_LIST(self) -> List[str]:
        """Zwraca listę dozwolonych origins dla CORS"""
        if self.CORS_ORIGINS == "*":
            return ["*"]
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",")]


# Singleton instance
settings = Settings()
