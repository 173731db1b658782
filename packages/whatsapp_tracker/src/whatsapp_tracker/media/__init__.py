"""Media Store: attachment files on disk."""

from whatsapp_tracker.media.store import (
    FileStatus,
    MediaStore,
    StorageWriteError,
    extension_for,
    filename_for,
)

__all__ = [
    "FileStatus",
    "MediaStore",
    "StorageWriteError",
    "extension_for",
    "filename_for",
]
