"""
Tracker Runtime

Process-wide handle created once at start and passed to whatever needs it.

open():
1. Create the async engine and session factory
2. Bootstrap the schema (fatal on DatabaseUnavailable)
3. Build the media store, ingestion pipeline and history service

close() disposes the engine. The gateway is owned by the caller that
initialized it (the worker) and is destroyed there.
"""

import logging
from pathlib import Path

from basecore.db import create_engine_from_settings, create_sessionmaker
from basecore.settings import Settings
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from whatsapp_tracker.gateway.base import SessionGateway
from whatsapp_tracker.media.store import MediaStore
from whatsapp_tracker.persistence.schema import init_database
from whatsapp_tracker.service.history import HistoryService
from whatsapp_tracker.service.ingestion import IngestionPipeline

logger = logging.getLogger(__name__)


def build_gateway(settings: Settings) -> SessionGateway:
    """Get the session gateway selected by TRACKER_GATEWAY."""
    if settings.TRACKER_GATEWAY == "evolution":
        from whatsapp_tracker.gateway.evolution import EvolutionSessionGateway

        if not settings.EVOLUTION_API_URL:
            raise ValueError("EVOLUTION_API_URL is required for the evolution gateway")

        return EvolutionSessionGateway(
            api_url=settings.EVOLUTION_API_URL,
            api_key=settings.EVOLUTION_API_KEY,
            instance_name=settings.EVOLUTION_INSTANCE,
            webhook_public_url=settings.WEBHOOK_PUBLIC_URL or None,
            webhook_host=settings.webhook_host,
            webhook_port=settings.WEBHOOK_PORT,
            session_path=settings.SESSION_PATH,
        )

    from whatsapp_tracker.gateway.stub import StubSessionGateway

    return StubSessionGateway()


class TrackerRuntime:
    def __init__(self, settings: Settings, gateway: SessionGateway | None = None):
        self.settings = settings
        self.gateway = gateway if gateway is not None else build_gateway(settings)
        self.engine: AsyncEngine | None = None
        self.sessions: async_sessionmaker[AsyncSession] | None = None
        self.media_store = MediaStore(Path(settings.MEDIA_PATH))
        self.pipeline: IngestionPipeline | None = None
        self.history: HistoryService | None = None

    async def open(self) -> "TrackerRuntime":
        """
        Connect to the database and build the services.

        Raises:
            DatabaseUnavailable: the database cannot be reached or created
        """
        self.engine = create_engine_from_settings(self.settings)
        self.sessions = create_sessionmaker(self.engine)

        try:
            await init_database(self.engine)
        except Exception:
            await self.engine.dispose()
            self.engine = None
            raise

        self.pipeline = IngestionPipeline(
            self.sessions,
            self.media_store,
            self.gateway,
            self.settings.QR_FILE_PATH,
            echo_qr=not self.settings.HEADLESS,
        )
        self.history = HistoryService(self.sessions, self.media_store, self.gateway)

        logger.info(
            f"Tracker runtime open",
            extra={"gateway": type(self.gateway).__name__, "media_path": str(self.media_store.root)},
        )
        return self

    async def close(self) -> None:
        if self.engine is not None:
            await self.engine.dispose()
            self.engine = None
        logger.debug("Tracker runtime closed")

    async def __aenter__(self) -> "TrackerRuntime":
        return await self.open()

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()
