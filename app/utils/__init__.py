"""Release Manager Pipeline - Utility modules."""

from app.utils.atomic_io import atomic_stream_to_file, atomic_write_bytes
from app.utils.audio_meta import extract_duration_seconds, guess_format_from_extension
from app.utils.paths import object_key, staged_upload_path

__all__ = [
    # atomic_io
    "atomic_write_bytes",
    "atomic_stream_to_file",
    # audio_meta
    "extract_duration_seconds",
    "guess_format_from_extension",
    # paths
    "staged_upload_path",
    "object_key",
]
