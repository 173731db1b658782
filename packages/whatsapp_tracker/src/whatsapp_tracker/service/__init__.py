"""
Tracker services: ingestion pipeline, event dispatcher and the history facade.
"""

from whatsapp_tracker.service.dispatcher import EventDispatcher
from whatsapp_tracker.service.history import ExportResult, HistoryService, MediaInfo
from whatsapp_tracker.service.ingestion import IngestionPipeline, IngestionResult, QRState

__all__ = [
    "EventDispatcher",
    "ExportResult",
    "HistoryService",
    "MediaInfo",
    "IngestionPipeline",
    "IngestionResult",
    "QRState",
]
