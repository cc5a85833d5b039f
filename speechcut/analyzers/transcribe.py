"""Speech-to-text analyzer using OpenAI Whisper."""

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Callable

import numpy as np

from speechcut.errors import (
    EmptyAudio,
    TranscriptionEngineFailure,
    UnreadableSource,
    raise_if_cancelled,
)
from speechcut.manifest import TranscribeConfig
from speechcut.models import Transcript, TranscriptSegment

logger = logging.getLogger(__name__)


def _load_audio(audio_path: Path) -> np.ndarray:
    import whisper

    if not Path(audio_path).is_file():
        raise UnreadableSource(f"Audio file not found: {audio_path}")
    try:
        return whisper.load_audio(str(audio_path))
    except RuntimeError as e:
        raise UnreadableSource(f"Could not decode {audio_path}: {e}") from e


def transcribe(
    audio_path: Path,
    config: TranscribeConfig,
    on_progress: Callable[[float], None] | None = None,
    cancel=None,
) -> Transcript:
    """Run Whisper over ``audio_path`` and return a time-ordered Transcript.

    The audio is fed to the model in ``config.chunk_seconds`` windows so that
    progress is real and cancellation takes effect between windows.
    """
    import whisper

    audio = _load_audio(audio_path)
    if audio.size == 0 or float(np.max(np.abs(audio))) < config.silence_floor:
        raise EmptyAudio(f"No audible content in {audio_path}")

    raise_if_cancelled(cancel)

    try:
        model = whisper.load_model(config.model)
    except Exception as e:
        raise TranscriptionEngineFailure(f"Failed to load Whisper model {config.model!r}: {e}") from e

    sr = whisper.SAMPLE_RATE
    chunk = max(int(config.chunk_seconds * sr), sr)
    total = audio.size
    segments: list[TranscriptSegment] = []

    for offset in range(0, total, chunk):
        raise_if_cancelled(cancel)
        window = audio[offset:offset + chunk]
        start_s = offset / sr
        logger.debug("Transcribing window at %.1fs (%d samples)", start_s, window.size)
        try:
            result = model.transcribe(window, language=config.language, verbose=None)
        except Exception as e:
            raise TranscriptionEngineFailure(f"Whisper inference failed: {e}") from e

        for seg in result["segments"]:
            start = start_s + float(seg["start"])
            end = max(start_s + float(seg["end"]), start)
            segments.append(TranscriptSegment(start=start, end=end, text=seg["text"].strip()))

        if on_progress:
            on_progress(min(offset + chunk, total) / total)

    raise_if_cancelled(cancel)
    transcript = Transcript.from_segments(segments)
    logger.info("Transcribed %s: %d segments", audio_path, len(transcript.segments))
    return transcript


def write_transcript(transcript: Transcript, path: Path) -> Path:
    """Persist a transcript as JSON, replacing ``path`` atomically."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(prefix=f".{path.stem}.", suffix=".json", dir=path.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(transcript.to_dict(), f, indent=2, ensure_ascii=False)
        os.replace(tmp, path)
    except BaseException:
        Path(tmp).unlink(missing_ok=True)
        raise
    return path


def read_transcript(path: Path) -> Transcript:
    """Load a transcript previously written by write_transcript."""
    try:
        data = json.loads(Path(path).read_text(encoding="utf-8"))
        return Transcript.from_dict(data)
    except (OSError, ValueError, KeyError, TypeError) as e:
        raise UnreadableSource(f"Cannot read transcript {path}: {e}") from e
