"""Tests for app.utils.atomic_io module."""

import io
import tempfile
from pathlib import Path
from unittest.mock import patch

import pytest

from app.utils.atomic_io import atomic_stream_to_file, atomic_write_bytes


class TestAtomicWriteBytes:
    """Tests for atomic_write_bytes function."""

    def test_creates_file(self):
        """Should create file with correct content."""
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "test.bin"
            data = b"test binary data"

            atomic_write_bytes(path, data)

            assert path.exists()
            assert path.read_bytes() == data

    def test_creates_parent_directories(self):
        """Should create parent directories if they do not exist."""
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "audio" / "abc123.wav"

            atomic_write_bytes(path, b"nested data")

            assert path.read_bytes() == b"nested data"

    def test_overwrites_existing_file(self):
        """Should atomically replace existing file."""
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "test.bin"
            path.write_bytes(b"old content")

            atomic_write_bytes(path, b"new content")

            assert path.read_bytes() == b"new content"

    def test_temp_file_cleaned_up_on_success(self):
        """Temp file should not exist after successful write."""
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "test.bin"
            temp_path = path.with_suffix(".bin.tmp")

            atomic_write_bytes(path, b"data")

            assert path.exists()
            assert not temp_path.exists()

    def test_idempotent_with_existing_temp(self):
        """Should succeed even if an orphaned temp file exists."""
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "test.bin"
            temp_path = path.with_suffix(".bin.tmp")
            temp_path.write_bytes(b"orphaned temp data")

            atomic_write_bytes(path, b"fresh data")

            assert path.read_bytes() == b"fresh data"
            assert not temp_path.exists()

    def test_failed_write_leaves_no_files(self):
        """A write error removes the temp file and never creates the final file."""
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "test.bin"

            with patch("app.utils.atomic_io.os.fsync", side_effect=OSError("I/O error")):
                with pytest.raises(OSError):
                    atomic_write_bytes(path, b"data")

            assert list(Path(tmpdir).iterdir()) == []

    def test_empty_data(self):
        """Should handle empty data correctly."""
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "empty.bin"
            atomic_write_bytes(path, b"")
            assert path.read_bytes() == b""


class TestAtomicStreamToFile:
    """Tests for atomic_stream_to_file function."""

    def test_streams_in_chunks(self):
        """Should write all chunks and return the byte count."""
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "staging" / "job.wav"
            data = b"0123456789" * 1000

            written = atomic_stream_to_file(io.BytesIO(data), path, chunk_size=333)

            assert written == len(data)
            assert path.read_bytes() == data
            assert not path.with_suffix(".wav.tmp").exists()

    def test_text_stream_encoded_as_utf8(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "notes.txt"

            atomic_stream_to_file(io.StringIO("café"), path)

            assert path.read_bytes() == "café".encode()

    def test_empty_stream(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "empty.bin"

            assert atomic_stream_to_file(io.BytesIO(b""), path) == 0
            assert path.exists()
