"""Shared pytest fixtures for Release Manager Pipeline tests.

This module contains common fixtures used across multiple test files:
temporary databases, a filesystem object store, seeded records and WAV data.
"""

import io
import tempfile
import uuid
import wave
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from app.db import create_upload_job, init_db
from app.gateway import PersistenceGateway
from app.models import Release, ReleaseStatus, Track, UploadJobType
from app.storage import LocalObjectStore
from services.release_api.main import app, override_session_factory

TEST_PUBLIC_BASE_URL = "http://media.test/files"


def make_wav_bytes(duration_sec: float = 1.0, sample_rate: int = 22050) -> bytes:
    """Build a minimal valid WAV file (mono, 16-bit silence) in memory."""
    buffer = io.BytesIO()
    with wave.open(buffer, "wb") as wf:
        wf.setnchannels(1)
        wf.setsampwidth(2)
        wf.setframerate(sample_rate)
        wf.writeframes(b"\x00" * int(sample_rate * duration_sec) * 2)
    return buffer.getvalue()


MP3_FRAME_HEADER = bytes([0xFF, 0xFB, 0x90, 0x00])  # MPEG1 Layer III, 128 kbps, 44.1 kHz
MP3_FRAME_SIZE = 417


def make_mp3_bytes(duration_sec: float = 1.0) -> bytes:
    """Build a constant-bitrate MP3 stream of silent frames (no ID3 tag)."""
    byte_rate = 128000 // 8
    frame_count = int((duration_sec + 0.5) * byte_rate / MP3_FRAME_SIZE)
    frame = MP3_FRAME_HEADER + b"\x00" * (MP3_FRAME_SIZE - len(MP3_FRAME_HEADER))
    return frame * frame_count


def make_flac_bytes(duration_sec: float = 1.0, sample_rate: int = 44100) -> bytes:
    """Build a FLAC header whose STREAMINFO block declares the given duration."""
    total_samples = int(duration_sec * sample_rate)
    # sample rate (20 bits), channels - 1 (3), bits per sample - 1 (5), total samples (36)
    packed = (sample_rate << 44) | (1 << 41) | (15 << 36) | total_samples
    streaminfo = (
        (4096).to_bytes(2, "big")
        + (4096).to_bytes(2, "big")
        + (0).to_bytes(3, "big")
        + (0).to_bytes(3, "big")
        + packed.to_bytes(8, "big")
        + b"\x00" * 16
    )
    block_header = bytes([0x80]) + len(streaminfo).to_bytes(3, "big")
    return b"fLaC" + block_header + streaminfo


@pytest.fixture
def make_wav():
    """Factory for in-memory WAV bytes of a given duration."""
    return make_wav_bytes


@pytest.fixture
def make_mp3():
    """Factory for in-memory MP3 bytes of roughly the given duration."""
    return make_mp3_bytes


@pytest.fixture
def make_flac():
    """Factory for in-memory FLAC bytes of the given duration."""
    return make_flac_bytes


@pytest.fixture
def temp_db():
    """Create a temporary database for testing.

    Creates an isolated SQLite database in a temporary directory.
    The database is cleaned up after the test completes.

    Yields:
        tuple: (db_path, engine, SessionFactory)
    """
    with tempfile.TemporaryDirectory() as tmpdir:
        db_path = Path(tmpdir) / "test.db"
        engine, SessionFactory = init_db(db_path)
        yield db_path, engine, SessionFactory
        engine.dispose()


@pytest.fixture
def session_factory(temp_db):
    return temp_db[2]


@pytest.fixture
def gateway(session_factory):
    return PersistenceGateway(session_factory)


@pytest.fixture
def store(tmp_path):
    """Filesystem object store rooted in the test's tmp_path."""
    return LocalObjectStore(root_dir=tmp_path / "storage", public_base_url=TEST_PUBLIC_BASE_URL)


@pytest.fixture
def staging_dir(tmp_path):
    path = tmp_path / "staging"
    path.mkdir()
    return path


@pytest.fixture
def make_release(session_factory):
    """Factory that inserts a Release and returns it (detached, readable)."""

    def _make(**overrides) -> Release:
        values = {
            "artist_id": "artist-1",
            "title": "Lagos Nights",
            "genre": "Afrobeats",
            "status": ReleaseStatus.DRAFT,
        }
        values.update(overrides)
        with session_factory() as session:
            release = Release(**values)
            session.add(release)
            session.commit()
            return release

    return _make


@pytest.fixture
def make_track(session_factory):
    """Factory that inserts a Track on the given release."""

    def _make(release_id: str, **overrides) -> Track:
        values = {"release_id": release_id, "title": "Track", "track_order": 1}
        values.update(overrides)
        with session_factory() as session:
            track = Track(**values)
            session.add(track)
            session.commit()
            return track

    return _make


@pytest.fixture
def make_job(session_factory, staging_dir):
    """Factory that stages a file and inserts an UploadJob for it.

    Extra keyword arguments (status, retry_count, created_at, updated_at, ...)
    are applied to the job before commit.
    """

    def _make(
        target_entity_id: str,
        job_type: UploadJobType = UploadJobType.AUDIO,
        data: bytes | None = None,
        filename: str = "song.wav",
        **overrides,
    ):
        local_path = staging_dir / f"{uuid.uuid4().hex}-{filename}"
        local_path.write_bytes(make_wav_bytes() if data is None else data)
        with session_factory() as session:
            job = create_upload_job(session, target_entity_id, job_type, str(local_path))
            for key, value in overrides.items():
                setattr(job, key, value)
            session.commit()
            return job

    return _make


@pytest.fixture
def client(temp_db, monkeypatch):
    """Create a FastAPI test client over the temp database, workers disabled.

    Yields:
        tuple: (test_client, SessionFactory)
    """
    _, _, SessionFactory = temp_db
    monkeypatch.setenv("RM_WORKERS_ENABLED", "0")
    override_session_factory(SessionFactory)

    with TestClient(app) as test_client:
        yield test_client, SessionFactory

    override_session_factory(None)
