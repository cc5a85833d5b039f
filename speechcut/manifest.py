"""JSON manifest schema shared by the CLI, the HTTP API and the engine."""

import json
from dataclasses import dataclass, field
from pathlib import Path

from speechcut.models import CutPoint


@dataclass
class TranscribeConfig:
    """Configuration for speech-to-text via Whisper."""

    model: str = "base"
    language: str | None = None
    chunk_seconds: float = 300.0
    silence_floor: float = 1e-4


@dataclass
class SegmentConfig:
    """Configuration for pause-based segmentation."""

    pause_threshold: float = 1.0


@dataclass
class ZoomConfig:
    """Configuration for the face-centred zoom at cut boundaries."""

    enabled: bool = False
    zoom_factor: float = 1.2
    window: float = 1.0
    sample_frames: int = 5
    min_face_size: int = 40


@dataclass
class RenderConfig:
    """Encoder settings for the final render."""

    video_codec: str = "libx264"
    preset: str = "medium"
    crf: int = 23
    audio_codec: str = "aac"
    audio_bitrate: str = "192k"


@dataclass
class Manifest:
    """Top-level editing manifest."""

    input: Path
    output: Path
    version: str = "1"
    transcript_path: Path | None = None
    cut_points: list[CutPoint] | None = None
    transcribe: TranscribeConfig = field(default_factory=TranscribeConfig)
    segment: SegmentConfig = field(default_factory=SegmentConfig)
    zoom: ZoomConfig = field(default_factory=ZoomConfig)
    render: RenderConfig = field(default_factory=RenderConfig)


def load_manifest(path: str | Path) -> Manifest:
    """Load and validate a manifest from a JSON file."""
    path = Path(path)
    data = json.loads(path.read_text())

    if "input" not in data or "output" not in data:
        raise ValueError("Manifest must contain 'input' and 'output' fields")

    transcribe = TranscribeConfig(**data["transcribe"]) if "transcribe" in data else TranscribeConfig()
    segment = SegmentConfig(**data["segment"]) if "segment" in data else SegmentConfig()
    zoom = ZoomConfig(**data["zoom"]) if "zoom" in data else ZoomConfig()
    render = RenderConfig(**data["render"]) if "render" in data else RenderConfig()

    cut_points = None
    if "cut_points" in data:
        cut_points = [CutPoint.from_dict(cp) for cp in data["cut_points"]]

    transcript_path = data.get("transcript_path")

    return Manifest(
        version=data.get("version", "1"),
        input=Path(data["input"]),
        output=Path(data["output"]),
        transcript_path=Path(transcript_path) if transcript_path else None,
        cut_points=cut_points,
        transcribe=transcribe,
        segment=segment,
        zoom=zoom,
        render=render,
    )
