"""
Tracker Persistence

SQLAlchemy models and repository for messages, contacts and media.
"""

from whatsapp_tracker.persistence.models import Contact, Media, Message, TrackerBase
from whatsapp_tracker.persistence.repo import (
    DatabaseUnavailable,
    ForeignKeyViolation,
    MetadataStoreError,
    TrackerRepository,
    repository_scope,
)
from whatsapp_tracker.persistence.schema import init_database

__all__ = [
    "Contact",
    "Media",
    "Message",
    "TrackerBase",
    "DatabaseUnavailable",
    "ForeignKeyViolation",
    "MetadataStoreError",
    "TrackerRepository",
    "repository_scope",
    "init_database",
]
