"""
Client Configuration Module
"""
import sys
from pathlib import Path
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field

# Determine BASE_DIR in a packaging-aware way (works for dev and PyInstaller 'frozen' exe)
if getattr(sys, "frozen", False):
    _BASE_DIR = Path(sys.executable).parent
else:
    _BASE_DIR = Path(__file__).resolve().parent.parent


class AppConfig(BaseSettings):
    """Device (client) configuration settings"""

    # Application Info
    APP_NAME: str = "Sync Alarm"
    APP_VERSION: str = "1.0.0"

    # Paths
    BASE_DIR: Path = _BASE_DIR
    DATA_DIR: Path = _BASE_DIR / "data"
    LOGS_DIR: Path = _BASE_DIR / "logs"

    # Server
    API_BASE_URL: str = Field(
        default="http://localhost:3000",
        description="API base URL for server communication"
    )
    HTTP_TIMEOUT: int = 10  # sekundy

    # Push channel
    RECONNECT_DELAY: float = 3.0  # stałe opóźnienie, bez limitu prób i bez jittera

    # Alarm clock
    TICK_INTERVAL: float = 1.0
    NOTIFICATION_TTL: float = 10.0
    WARNING_MINUTES: int = 5

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan>:<cyan>{function}</cyan> - <level>{message}</level>"
    LOG_ROTATION: str = "10 MB"
    LOG_RETENTION: str = "1 month"

    model_config = SettingsConfigDict(
        env_prefix="SYNC_ALARM_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore"
    )


# Global configuration instance
config = AppConfig()


def ensure_directories() -> None:
    """Create necessary directories if they don't exist"""
    for directory in (config.DATA_DIR, config.LOGS_DIR):
        directory.mkdir(parents=True, exist_ok=True)
