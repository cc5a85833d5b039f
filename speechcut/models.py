"""Shared data types used across SpeechCut."""

import enum
from dataclasses import dataclass
from pathlib import Path


@dataclass
class TimeRange:
    """A start/end time pair in seconds."""

    start: float
    end: float

    @property
    def duration(self) -> float:
        return max(self.end - self.start, 0.0)


@dataclass(frozen=True)
class TranscriptSegment:
    """A timestamped span of recognized speech."""

    start: float
    end: float
    text: str

    def to_dict(self) -> dict:
        return {"start": self.start, "end": self.end, "text": self.text}

    @classmethod
    def from_dict(cls, data: dict) -> "TranscriptSegment":
        return cls(
            start=float(data["start"]),
            end=float(data["end"]),
            text=str(data.get("text", "")),
        )


@dataclass(frozen=True)
class Transcript:
    """Time-ordered transcript segments plus the full concatenated text."""

    segments: tuple[TranscriptSegment, ...] = ()
    text: str = ""

    @classmethod
    def from_segments(cls, segments: list[TranscriptSegment]) -> "Transcript":
        ordered = tuple(sorted(segments, key=lambda s: s.start))
        text = " ".join(s.text for s in ordered if s.text)
        return cls(segments=ordered, text=text)

    def to_dict(self) -> dict:
        return {
            "segments": [s.to_dict() for s in self.segments],
            "text": self.text,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Transcript":
        segments = tuple(TranscriptSegment.from_dict(s) for s in data.get("segments", []))
        return cls(segments=segments, text=str(data.get("text", "")))


@dataclass
class CutPoint:
    """A labeled [start_time, end_time) range of the source video to keep.

    Nothing here enforces ``0 <= start_time <= end_time <= duration``; the
    renderer copes with whatever the editor hands it.
    """

    start_time: float
    end_time: float
    description: str = ""

    def to_dict(self) -> dict:
        return {
            "startTime": self.start_time,
            "endTime": self.end_time,
            "description": self.description,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "CutPoint":
        start = data["startTime"] if "startTime" in data else data["start_time"]
        end = data["endTime"] if "endTime" in data else data["end_time"]
        return cls(
            start_time=float(start),
            end_time=float(end),
            description=str(data.get("description", "")),
        )


@dataclass(frozen=True)
class ProcessingOptions:
    """Everything one render invocation needs besides the source."""

    output_path: Path
    cut_points: tuple[CutPoint, ...]
    apply_zoom_effects: bool = False


class Stage(enum.IntEnum):
    """Pipeline stages, in the only order they may be visited."""

    SELECT_VIDEO = 0
    EXTRACT_AUDIO = 1
    TRANSCRIBE = 2
    ANALYZE_TRANSCRIPT = 3
    PROCESS_VIDEO = 4
    DONE = 5

    @property
    def label(self) -> str:
        return self.name.replace("_", " ").title()


@dataclass(frozen=True)
class PipelineState:
    """Snapshot of a pipeline's position, progress and last failure."""

    stage: Stage = Stage.SELECT_VIDEO
    progress: float = 0.0
    last_error: Exception | None = None

    def to_dict(self) -> dict:
        err = self.last_error
        return {
            "stage": self.stage.name,
            "progress": round(self.progress, 1),
            "error": str(err) if err else None,
            "error_kind": getattr(err, "kind", type(err).__name__) if err else None,
        }


@dataclass
class FaceBox:
    """Face bounding box in source-frame pixels."""

    x: int
    y: int
    width: int
    height: int

    @property
    def center(self) -> tuple[float, float]:
        return (self.x + self.width / 2, self.y + self.height / 2)

    @property
    def area(self) -> int:
        return self.width * self.height


@dataclass
class ZoomWindow:
    """A crop box held for the first ``duration`` seconds of a segment."""

    duration: float
    x: int
    y: int
    width: int
    height: int


@dataclass
class ProbeResult:
    """Metadata extracted from a media file via ffprobe."""

    duration: float
    width: int
    height: int
    fps: float
    has_audio: bool
    audio_sample_rate: int | None
    codec_video: str
    codec_audio: str | None
