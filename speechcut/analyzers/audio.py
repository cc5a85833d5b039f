"""Demuxes the source audio track into a WAV for the transcriber."""

import logging
from pathlib import Path
from typing import Callable

from speechcut import ffutil
from speechcut.errors import Cancelled, UnreadableSource, UnsupportedFormat

logger = logging.getLogger(__name__)

WHISPER_SAMPLE_RATE = 16000


def extract_audio(
    video_path: Path,
    work_dir: Path,
    on_progress: Callable[[float], None] | None = None,
    cancel=None,
) -> Path:
    """Write the source's audio as 16 kHz mono WAV into ``work_dir``.

    The source file is only read. On any failure the partial WAV is removed.
    """
    video_path = Path(video_path)
    if not video_path.is_file():
        raise UnreadableSource(f"Video file not found: {video_path}")

    probe_result = ffutil.probe(video_path)
    if not probe_result.has_audio:
        raise UnsupportedFormat(f"No audio stream found in {video_path}")

    audio_path = Path(work_dir) / f"{video_path.stem}_audio.wav"
    logger.info("Extracting audio from %s to %s", video_path, audio_path)

    try:
        ffutil.extract_audio(
            video_path,
            audio_path,
            sample_rate=WHISPER_SAMPLE_RATE,
            duration=probe_result.duration,
            on_progress=on_progress,
            cancel=cancel,
        )
    except Cancelled:
        audio_path.unlink(missing_ok=True)
        raise
    except ffutil.FFmpegError as e:
        audio_path.unlink(missing_ok=True)
        raise UnreadableSource(f"Could not decode audio from {video_path}: {e}") from e

    return audio_path
