"""
Pytest fixtures for tracker tests.

Every test gets its own SQLite database (aiosqlite) and media directory
under tmp_path, and a stub session gateway.
"""

import pytest

from basecore.db import create_engine, create_sessionmaker
from whatsapp_tracker.contracts.records import MessageRecord
from whatsapp_tracker.gateway.stub import StubSessionGateway
from whatsapp_tracker.media.store import MediaStore
from whatsapp_tracker.persistence.schema import init_database
from whatsapp_tracker.service.history import HistoryService
from whatsapp_tracker.service.ingestion import IngestionPipeline


@pytest.fixture
def database_url(tmp_path):
    return f"sqlite+aiosqlite:///{tmp_path / 'tracker.db'}"


@pytest.fixture
async def engine(database_url):
    engine = create_engine(database_url)
    await init_database(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def sessions(engine):
    return create_sessionmaker(engine)


@pytest.fixture
def media_store(tmp_path):
    return MediaStore(tmp_path / "media")


@pytest.fixture
def gateway():
    return StubSessionGateway()


@pytest.fixture
def qr_file_path(tmp_path):
    return tmp_path / "whatsapp_qr.txt"


@pytest.fixture
def pipeline(sessions, media_store, gateway, qr_file_path):
    return IngestionPipeline(sessions, media_store, gateway, qr_file_path)


@pytest.fixture
def history(sessions, media_store, gateway):
    return HistoryService(sessions, media_store, gateway)


@pytest.fixture
def make_record():
    """Factory for MessageRecords with sensible defaults."""

    def _make(message_id="m1", chat_id="c1", timestamp=1_704_067_200_000, **overrides):
        values = {
            "id": message_id,
            "chat_id": chat_id,
            "body": "hi",
            "from_me": False,
            "author": None,
            "timestamp": timestamp,
            "type": "chat",
            "has_media": False,
            "has_quoted_msg": False,
        }
        values.update(overrides)
        return MessageRecord(**values)

    return _make
