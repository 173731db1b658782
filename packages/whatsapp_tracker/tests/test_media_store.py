"""
Tests for the media store.
"""

import hashlib

import pytest

from whatsapp_tracker.media.store import (
    FileStatus,
    MediaStore,
    StorageWriteError,
    extension_for,
    filename_for,
)


class TestFilenames:
    """Tests for content-derived filenames."""

    def test_known_mime_types(self):
        assert extension_for("image/jpeg") == ".jpg"
        assert extension_for("image/png") == ".png"
        assert extension_for("video/mp4") == ".mp4"
        assert extension_for("application/pdf") == ".pdf"

    def test_mime_parameters_ignored(self):
        assert extension_for("audio/ogg; codecs=opus") == ".ogg"

    def test_unknown_mime_type_falls_back_to_bin(self):
        assert extension_for("application/x-something") == ".bin"
        assert extension_for("") == ".bin"
        assert extension_for(None) == ".bin"

    def test_filename_is_md5_of_message_id(self):
        expected = hashlib.md5(b"m2").hexdigest() + ".png"
        assert filename_for("m2", "image/png") == expected


class TestMediaStore:
    """Tests for MediaStore writes and reads."""

    async def test_store_writes_bytes(self, media_store):
        path = await media_store.store("m1", "image/png", b"0123456789")

        assert path.parent == media_store.root
        assert path.read_bytes() == b"0123456789"
        assert await media_store.read(path) == b"0123456789"

    async def test_store_is_deterministic(self, media_store):
        first = await media_store.store("m1", "image/png", b"first")
        second = await media_store.store("m1", "image/png", b"second")

        assert first == second
        assert second.read_bytes() == b"second"

    async def test_store_creates_directory(self, tmp_path):
        store = MediaStore(tmp_path / "nested" / "media")
        path = await store.store("m1", "image/jpeg", b"data")

        assert path.is_file()

    async def test_store_leaves_no_temp_files(self, media_store):
        await media_store.store("m1", "image/png", b"data")

        assert [p.name for p in media_store.root.iterdir()] == [filename_for("m1", "image/png")]

    async def test_store_failure_raises_storage_write_error(self, tmp_path):
        blocker = tmp_path / "blocker"
        blocker.write_text("not a directory")
        store = MediaStore(blocker / "media")

        with pytest.raises(StorageWriteError):
            await store.store("m1", "image/png", b"data")

    async def test_file_status(self, media_store):
        path = await media_store.store("m1", "image/png", b"data")
        assert media_store.file_status(path) == FileStatus.EXISTS

        path.unlink()
        assert media_store.file_status(path) == FileStatus.MISSING
        assert media_store.file_status(None) == FileStatus.NOT_SAVED

    def test_exists_for_missing_file(self, media_store):
        assert media_store.exists(media_store.root / "nope.png") is False
        assert media_store.exists(None) is False
