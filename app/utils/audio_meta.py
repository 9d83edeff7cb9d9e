"""Release Manager Pipeline - Audio metadata extraction utilities.

Best-effort metadata extraction: stdlib wave for WAV data, mutagen for the
compressed formats (mp3, flac, m4a, aac). Extraction failures never block an
upload: absent metadata is not an error.
"""

import io
import wave
from dataclasses import dataclass
from pathlib import Path

from mutagen.aac import AAC
from mutagen.flac import FLAC
from mutagen.mp3 import MP3
from mutagen.mp4 import MP4

# Parser per extension; mutagen's own sniffing needs a filename to score raw
# MPEG and ADTS streams
_MUTAGEN_TYPES = {
    "mp3": MP3,
    "flac": FLAC,
    "m4a": MP4,
    "aac": AAC,
}


@dataclass
class RawAudioMetadata:
    """Raw audio metadata extracted from file data (best-effort).

    All fields may be None if extraction fails or is not supported.
    """

    duration_sec: float | None = None
    sample_rate: int | None = None
    channels: int | None = None
    format_guess: str | None = None


def extract_audio_metadata(data: bytes, filename: str) -> RawAudioMetadata:
    """Extract metadata from in-memory audio data.

    Best-effort extraction:
    - For WAV data: uses stdlib wave module
    - For mp3, flac, m4a and aac: uses mutagen's stream info
    - For other formats: returns format_guess from the extension only

    This function NEVER raises exceptions.

    Args:
        data: The audio file contents.
        filename: Original filename, used for the format guess.

    Returns:
        RawAudioMetadata with available fields filled in.
    """
    format_guess = guess_format_from_extension(filename)
    metadata = RawAudioMetadata(format_guess=format_guess)

    try:
        if format_guess == "wav":
            metadata = _extract_wav_metadata(data)
        elif format_guess in _MUTAGEN_TYPES:
            metadata = _extract_mutagen_metadata(data, format_guess)
    except Exception:
        # Best-effort: keep format guess on failure
        pass

    return metadata


def _extract_wav_metadata(data: bytes) -> RawAudioMetadata:
    """Read WAV header fields.

    Raises:
        Exception: If wave module cannot parse the data.
    """
    with wave.open(io.BytesIO(data), "rb") as wf:
        sample_rate = wf.getframerate()
        channels = wf.getnchannels()
        n_frames = wf.getnframes()

        duration_sec = n_frames / sample_rate if sample_rate > 0 else None

        return RawAudioMetadata(
            duration_sec=duration_sec,
            sample_rate=sample_rate,
            channels=channels,
            format_guess="wav",
        )


def _extract_mutagen_metadata(data: bytes, format_guess: str) -> RawAudioMetadata:
    """Read stream info through mutagen.

    Raises:
        mutagen.MutagenError: If the data is not a valid stream of that format.
    """
    info = _MUTAGEN_TYPES[format_guess](io.BytesIO(data)).info
    length = getattr(info, "length", None)

    return RawAudioMetadata(
        duration_sec=length if length else None,
        sample_rate=getattr(info, "sample_rate", None),
        channels=getattr(info, "channels", None),
        format_guess=format_guess,
    )


def extract_duration_seconds(data: bytes, filename: str) -> int | None:
    """Whole-second duration of the audio, or None when it cannot be determined."""
    duration_sec = extract_audio_metadata(data, filename).duration_sec
    if duration_sec is None:
        return None
    return int(duration_sec)


def guess_format_from_extension(filename: str) -> str | None:
    """Guess file format from filename extension.

    Args:
        filename: Filename or path string.

    Returns:
        Lowercase extension without dot, or None if no extension.
    """
    ext = Path(filename).suffix.lower().lstrip(".")
    return ext if ext else None


__all__ = [
    "RawAudioMetadata",
    "extract_audio_metadata",
    "extract_duration_seconds",
    "guess_format_from_extension",
]
