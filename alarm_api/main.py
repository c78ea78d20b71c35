"""
Main FastAPI Application for Sync Alarm API
Główny plik aplikacji - endpoints i konfiguracja
"""
from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from typing import Dict
import uvicorn
import logging

# Konfiguracja loggingu (uvicorn korzysta ze standardowego logging)
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[
        logging.StreamHandler()
    ]
)

from loguru import logger

from .config import settings
from .database import test_connection, init_db
from .alarms_router import router as alarms_router
from .presence import PresenceRegistry
from .websocket_manager import ConnectionManager


def create_app(initialize_database: bool = True) -> FastAPI:
    """
    Utwórz aplikację FastAPI.

    Każda aplikacja ma własny kanał rozgłoszeniowy i rejestr obecności
    (jeden proces = jeden rejestr).

    Args:
        initialize_database: Czy tworzyć tabele przy starcie
    """
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Start i zatrzymanie aplikacji"""
        logger.info(f"Starting {settings.API_TITLE} v{settings.API_VERSION}")

        if initialize_database:
            if test_connection():
                logger.info("Database connection successful")
                init_db()
            else:
                logger.error("Database connection failed!")

        yield

        logger.info(f"Shutting down {settings.API_TITLE}")

    app = FastAPI(
        title=settings.API_TITLE,
        version=settings.API_VERSION,
        description=settings.API_DESCRIPTION,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan
    )

    app.state.channel = ConnectionManager()
    app.state.presence = PresenceRegistry()

    # CORS Middleware - urządzenia-odbiorniki mogą działać z innego origin
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS_LIST,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(alarms_router)

    # =========================================================================
    # HEALTH CHECK & STATUS ENDPOINTS
    # =========================================================================

    @app.get("/", tags=["Status"])
    async def root() -> Dict[str, str]:
        """Root endpoint - informacje o API"""
        return {
            "name": settings.API_TITLE,
            "version": settings.API_VERSION,
            "status": "online",
            "description": settings.API_DESCRIPTION
        }

    @app.get("/health", tags=["Status"])
    async def health_check() -> Dict[str, str]:
        """Health check endpoint - sprawdza stan aplikacji i połączenia z bazą"""
        db_status = "connected" if test_connection() else "disconnected"

        return {
            "status": "healthy" if db_status == "connected" else "unhealthy",
            "database": db_status,
            "api_version": settings.API_VERSION
        }

    return app


app = create_app()


def run():
    """Uruchom serwer (uvicorn)"""
    uvicorn.run(
        app,
        host=settings.HOST,
        port=settings.PORT,
        log_level=settings.LOG_LEVEL
    )


# =============================================================================
# MAIN - do uruchamiania lokalnie
# =============================================================================

if __name__ == "__main__":
    run()
