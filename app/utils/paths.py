"""Release Manager Pipeline - Canonical path utilities.

Returns canonical Paths and object keys. Does NOT create directories.
"""

from pathlib import Path

from app.config import STAGING_DIR


def staged_upload_path(job_id: str, ext: str, staging_dir: Path | None = None) -> Path:
    """Get the local path where an uploaded file waits for the upload worker.

    Args:
        job_id: The UploadJob id.
        ext: File extension (with or without leading dot).
        staging_dir: Optional override of config.STAGING_DIR.

    Returns:
        Path: data/staging/{job_id}.{ext}
    """
    ext = ext.lstrip(".")
    base = staging_dir if staging_dir is not None else STAGING_DIR
    return base / f"{job_id}.{ext}"


def object_key(job_type: str, object_id: str, ext: str) -> str:
    """Get the object store key for an uploaded file.

    Files are grouped by type: audio/{id}.mp3, cover_art/{id}.jpg

    Args:
        job_type: UploadJobType value ("AUDIO" or "COVER_ART").
        object_id: Unique id of the stored object.
        ext: File extension (with or without leading dot).

    Returns:
        Forward-slash separated key relative to the store root.
    """
    ext = ext.lstrip(".")
    return f"{str(job_type).lower()}/{object_id}.{ext}"
