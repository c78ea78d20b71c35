"""
Database Module for Sync Alarm API
Zarządzanie połączeniem z bazą danych (domyślnie SQLite)
"""
from sqlalchemy import create_engine, text
from sqlalchemy.orm import sessionmaker, Session, declarative_base
from sqlalchemy.pool import StaticPool
from typing import Generator
from loguru import logger

from .config import settings


def _engine_options() -> dict:
    """Opcje silnika zależne od typu bazy"""
    if not settings.is_sqlite:
        return {"pool_pre_ping": True, "pool_recycle": 3600}

    # Pętla zdarzeń FastAPI i TestClient działają w innym wątku niż tworzenie połączenia
    options = {"connect_args": {"check_same_thread": False}}
    if settings.DATABASE_URL in ("sqlite://", "sqlite:///:memory:"):
        # Baza w pamięci musi współdzielić jedno połączenie
        options["poolclass"] = StaticPool
    return options


# SQLAlchemy setup
engine = create_engine(
    settings.DATABASE_URL,
    echo=settings.DATABASE_ECHO,
    **_engine_options()
)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()


# Dependency for FastAPI
def get_db() -> Generator[Session, None, None]:
    """
    Dependency do pobierania sesji bazy danych
    Używane w FastAPI endpoints
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db():
    """
    Inicjalizacja bazy danych - tworzenie tabel
    Importuje modele i tworzy tabele jeśli nie istnieją
    """
    # Import modeli aby SQLAlchemy je znało
    from . import alarms_models  # noqa: F401

    Base.metadata.create_all(bind=engine)
    logger.info("Database tables created/verified")


def test_connection() -> bool:
    """
    Test połączenia z bazą danych

    Returns:
        True jeśli połączenie działa, False w przeciwnym razie
    """
    try:
        with engine.connect() as connection:
            connection.execute(text("SELECT 1"))
        return True
    except Exception as e:
        logger.error(f"Database connection error: {e}")
        return False
