"""Tests for startup temp file cleanup.

Orphan .tmp files left by interrupted atomic writes are removed from the
staging and storage directories when a process starts.
"""

import logging
import tempfile
from pathlib import Path
from unittest.mock import patch

import pytest

from app.utils.atomic_io import cleanup_orphan_temp_files


@pytest.fixture
def temp_storage_dir():
    """Create a temporary object store layout."""
    with tempfile.TemporaryDirectory() as tmpdir:
        storage_dir = Path(tmpdir) / "storage"
        (storage_dir / "audio").mkdir(parents=True)
        (storage_dir / "cover_art").mkdir()
        yield storage_dir


class TestOrphanTempCleanup:
    """Tests for cleanup_orphan_temp_files function."""

    def test_cleanup_removes_tmp_files(self, temp_storage_dir):
        """Should remove .tmp files and keep published files."""
        (temp_storage_dir / "file1.wav.tmp").write_bytes(b"orphan1")
        (temp_storage_dir / "file2.wav.tmp").write_bytes(b"orphan2")
        (temp_storage_dir / "final.wav").write_bytes(b"real file")

        removed = cleanup_orphan_temp_files(temp_storage_dir)

        assert removed == 2
        assert not (temp_storage_dir / "file1.wav.tmp").exists()
        assert (temp_storage_dir / "final.wav").exists()

    def test_cleanup_is_recursive(self, temp_storage_dir):
        """Should clean up .tmp files in nested type directories."""
        (temp_storage_dir / "audio" / "a.mp3.tmp").write_bytes(b"orphan")
        (temp_storage_dir / "cover_art" / "c.png.tmp").write_bytes(b"orphan")
        (temp_storage_dir / "audio" / "b.mp3").write_bytes(b"real file")

        removed = cleanup_orphan_temp_files(temp_storage_dir)

        assert removed == 2
        assert (temp_storage_dir / "audio" / "b.mp3").exists()

    def test_cleanup_handles_empty_directory(self, temp_storage_dir):
        assert cleanup_orphan_temp_files(temp_storage_dir / "audio") == 0

    def test_cleanup_handles_nonexistent_directory(self):
        assert cleanup_orphan_temp_files("/nonexistent/path/12345") == 0


class TestStartupCleanupHook:
    """Tests for the startup cleanup hook in the API lifespan."""

    def test_startup_cleanup_covers_staging_and_storage(self, temp_storage_dir, caplog):
        import services.release_api.main as main_module

        staging_dir = temp_storage_dir.parent / "staging"
        staging_dir.mkdir()
        (staging_dir / "job1.wav.tmp").write_bytes(b"orphan")
        (temp_storage_dir / "audio" / "x.wav.tmp").write_bytes(b"orphan")

        with (
            patch.object(main_module, "STAGING_DIR", staging_dir),
            patch.object(main_module, "STORAGE_DIR", temp_storage_dir),
            caplog.at_level(logging.INFO),
        ):
            main_module._cleanup_orphan_temp_files_safe()

        assert not (staging_dir / "job1.wav.tmp").exists()
        assert not (temp_storage_dir / "audio" / "x.wav.tmp").exists()
        assert any("removed 2 orphan temp files" in r.getMessage() for r in caplog.records)

    def test_startup_cleanup_never_crashes(self):
        import services.release_api.main as main_module

        with patch(
            "app.utils.atomic_io.cleanup_orphan_temp_files",
            side_effect=PermissionError("Access denied"),
        ):
            # Should not raise
            main_module._cleanup_orphan_temp_files_safe()
