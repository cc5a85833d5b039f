"""Builders for test data shared across modules."""

from speechcut.models import ProbeResult, Transcript, TranscriptSegment


def make_probe(duration: float = 30.0, has_audio: bool = True) -> ProbeResult:
    return ProbeResult(
        duration=duration,
        width=1920,
        height=1080,
        fps=30.0,
        has_audio=has_audio,
        audio_sample_rate=44100 if has_audio else None,
        codec_video="h264",
        codec_audio="aac" if has_audio else None,
    )


def make_transcript(*spans: tuple[float, float]) -> Transcript:
    return Transcript.from_segments(
        [TranscriptSegment(start=s, end=e, text=f"words {i}") for i, (s, e) in enumerate(spans)]
    )
