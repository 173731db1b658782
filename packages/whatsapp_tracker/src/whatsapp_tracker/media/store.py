"""
Media Store

Content-derived file persistence for attachment payloads.

Filenames are the MD5 hex digest of the message id plus an extension taken
from the MIME type, so re-processing a message always targets the same path
and overwrites instead of piling up copies.
"""

import asyncio
import hashlib
import logging
import os
import tempfile
from enum import Enum
from pathlib import Path

logger = logging.getLogger(__name__)

DEFAULT_EXTENSION = ".bin"

MIME_EXTENSIONS = {
    "image/jpeg": ".jpg",
    "image/png": ".png",
    "image/gif": ".gif",
    "image/webp": ".webp",
    "video/mp4": ".mp4",
    "audio/ogg": ".ogg",
    "audio/mpeg": ".mp3",
    "application/pdf": ".pdf",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document": ".docx",
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet": ".xlsx",
}


class StorageWriteError(Exception):
    """Media bytes could not be written to disk."""

    def __init__(self, message: str, path: Path | None = None):
        super().__init__(message)
        self.path = path


class FileStatus(str, Enum):
    """What is known about a media file on disk."""

    EXISTS = "exists"
    MISSING = "missing"  # Recorded, but moved or deleted since
    NOT_SAVED = "not_saved"  # No stored path at all


def extension_for(mime_type: str | None) -> str:
    """Map a MIME type (parameters ignored) to a file extension."""
    if not mime_type:
        return DEFAULT_EXTENSION
    base_type = mime_type.split(";", 1)[0].strip().lower()
    return MIME_EXTENSIONS.get(base_type, DEFAULT_EXTENSION)


def filename_for(message_id: str, mime_type: str | None) -> str:
    digest = hashlib.md5(message_id.encode("utf-8")).hexdigest()
    return f"{digest}{extension_for(mime_type)}"


class MediaStore:
    """Writes and reads attachment files under a root directory."""

    def __init__(self, root: str | Path):
        self.root = Path(root)

    def path_for(self, message_id: str, mime_type: str | None) -> Path:
        return self.root / filename_for(message_id, mime_type)

    async def store(self, message_id: str, mime_type: str | None, raw_bytes: bytes) -> Path:
        """
        Persist attachment bytes and return the path written.

        The bytes land in a temporary sibling first and are renamed into
        place, so the final path never holds a partial file.

        Raises:
            StorageWriteError: directory could not be created or the write
                failed (disk full, permission denied, ...)
        """
        path = self.path_for(message_id, mime_type)
        await asyncio.to_thread(self._write, path, raw_bytes)
        logger.debug(
            f"Stored media for {message_id}",
            extra={"path": str(path), "size": len(raw_bytes)},
        )
        return path

    def _write(self, path: Path, raw_bytes: bytes) -> None:
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageWriteError(f"Cannot create media directory {path.parent}: {e}", path) from e

        tmp_name = None
        try:
            fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=".", suffix=".part")
            with os.fdopen(fd, "wb") as fh:
                fh.write(raw_bytes)
                fh.flush()
                os.fsync(fh.fileno())
            os.replace(tmp_name, path)
        except OSError as e:
            if tmp_name and os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise StorageWriteError(f"Cannot write media file {path}: {e}", path) from e

    def exists(self, path: str | Path | None) -> bool:
        if not path:
            return False
        return Path(path).is_file()

    async def read(self, path: str | Path) -> bytes:
        return await asyncio.to_thread(Path(path).read_bytes)

    def file_status(self, path: str | Path | None) -> FileStatus:
        if not path:
            return FileStatus.NOT_SAVED
        if self.exists(path):
            return FileStatus.EXISTS
        return FileStatus.MISSING
