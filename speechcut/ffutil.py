"""FFmpeg/ffprobe subprocess helpers."""

import json
import logging
import re
import shutil
import subprocess
import tempfile
from pathlib import Path
from typing import Callable

from speechcut.errors import Cancelled, UnreadableSource, UnsupportedFormat
from speechcut.models import ProbeResult, TimeRange, ZoomWindow

logger = logging.getLogger(__name__)

_OUT_TIME_US = re.compile(r"^out_time_(?:us|ms)=(\d+)$")
_OUT_TIME = re.compile(r"^out_time=(\d+):(\d+):([\d.]+)$")


class FFmpegNotFoundError(RuntimeError):
    pass


class FFmpegError(RuntimeError):
    """ffmpeg exited non-zero; ``stderr`` holds the tail of its log."""

    def __init__(self, returncode: int, stderr: str):
        self.returncode = returncode
        self.stderr = stderr
        super().__init__(f"ffmpeg failed (rc={returncode}): {stderr[-500:].strip()}")


def check_ffmpeg() -> None:
    """Raise FFmpegNotFoundError if ffmpeg/ffprobe are not on PATH."""
    for cmd in ("ffmpeg", "ffprobe"):
        if shutil.which(cmd) is None:
            raise FFmpegNotFoundError(f"{cmd} not found on PATH")


def probe(input_path: Path) -> ProbeResult:
    """Extract media metadata via ffprobe.

    Raises UnreadableSource when ffprobe cannot open the file and
    UnsupportedFormat when it holds no video stream.
    """
    cmd = [
        "ffprobe",
        "-v", "quiet",
        "-print_format", "json",
        "-show_format",
        "-show_streams",
        str(input_path),
    ]
    result = subprocess.run(cmd, capture_output=True, text=True)
    if result.returncode != 0:
        raise UnreadableSource(f"Cannot open or decode {input_path}")
    try:
        data = json.loads(result.stdout)
        duration = float(data["format"]["duration"])
    except (ValueError, KeyError, TypeError) as e:
        raise UnreadableSource(f"Unparseable ffprobe output for {input_path}: {e}") from e

    streams = data.get("streams", [])
    video_stream = next(
        (s for s in streams if s.get("codec_type") == "video"), None
    )
    audio_stream = next(
        (s for s in streams if s.get("codec_type") == "audio"), None
    )

    if video_stream is None:
        raise UnsupportedFormat(f"No video stream found in {input_path}")

    # Parse fps from r_frame_rate (e.g. "30/1")
    num, den = video_stream.get("r_frame_rate", "0/1").split("/")
    fps = int(num) / int(den) if int(den) else 0.0

    return ProbeResult(
        duration=duration,
        width=int(video_stream["width"]),
        height=int(video_stream["height"]),
        fps=fps,
        has_audio=audio_stream is not None,
        audio_sample_rate=int(audio_stream["sample_rate"]) if audio_stream else None,
        codec_video=video_stream["codec_name"],
        codec_audio=audio_stream["codec_name"] if audio_stream else None,
    )


def parse_progress(line: str) -> float | None:
    """Return the output position in seconds from one ``-progress`` line."""
    line = line.strip()
    m = _OUT_TIME_US.match(line)
    if m:
        return int(m.group(1)) / 1_000_000
    m = _OUT_TIME.match(line)
    if m:
        h, mnt, s = m.groups()
        return int(h) * 3600 + int(mnt) * 60 + float(s)
    return None


def run_ffmpeg(
    args: list[str],
    total_duration: float,
    on_progress: Callable[[float], None] | None = None,
    cancel=None,
) -> None:
    """Run ffmpeg with machine-readable progress on stdout.

    ``on_progress`` receives the fraction of ``total_duration`` written so far.
    Setting the ``cancel`` event terminates ffmpeg and raises Cancelled.
    """
    cmd = ["ffmpeg", "-y", "-nostats", "-progress", "pipe:1", *args]
    logger.debug("Running %s", " ".join(cmd))

    with tempfile.TemporaryFile(mode="w+") as errlog:
        proc = subprocess.Popen(cmd, stdout=subprocess.PIPE, stderr=errlog, text=True)
        try:
            for line in proc.stdout:
                if cancel is not None and cancel.is_set():
                    proc.terminate()
                    proc.wait()
                    raise Cancelled("ffmpeg run cancelled")
                pos = parse_progress(line)
                if pos is not None and on_progress and total_duration > 0:
                    on_progress(min(pos / total_duration, 1.0))
            proc.wait()
        finally:
            if proc.poll() is None:
                proc.kill()
                proc.wait()

        if cancel is not None and cancel.is_set():
            raise Cancelled("ffmpeg run cancelled")
        if proc.returncode != 0:
            errlog.seek(0)
            raise FFmpegError(proc.returncode, errlog.read())

    if on_progress:
        on_progress(1.0)


def extract_audio(
    input_path: Path,
    output_path: Path,
    sample_rate: int = 16000,
    duration: float = 0.0,
    on_progress: Callable[[float], None] | None = None,
    cancel=None,
) -> Path:
    """Extract audio as mono WAV at the given sample rate (for Whisper)."""
    args = [
        "-i", str(input_path),
        "-vn",
        "-acodec", "pcm_s16le",
        "-ar", str(sample_rate),
        "-ac", "1",
        str(output_path),
    ]
    run_ffmpeg(args, duration, on_progress=on_progress, cancel=cancel)
    return output_path


def _ts(seconds: float) -> str:
    # trim can't parse scientific notation such as 2e-05
    return f"{seconds:.6f}"


def build_concat_filter(
    segments: list[TimeRange],
    zooms: list[ZoomWindow | None],
    width: int,
    height: int,
    has_audio: bool = True,
) -> str:
    """Build a trim/atrim + concat filter_complex for the keep-segments.

    A segment with a ZoomWindow has its first ``zoom.duration`` seconds cropped
    to the zoom box and scaled back to ``width``x``height``.
    """
    if not segments:
        raise ValueError("build_concat_filter called with empty segment list")

    video_parts: list[str] = []
    video_labels: list[str] = []
    audio_parts: list[str] = []
    audio_labels: list[str] = []

    for i, seg in enumerate(segments):
        zoom = zooms[i] if i < len(zooms) else None
        if zoom is not None and zoom.duration > 0:
            split = min(seg.start + zoom.duration, seg.end)
            video_parts.append(
                f"[0:v]trim=start={_ts(seg.start)}:end={_ts(split)},setpts=PTS-STARTPTS,"
                f"crop={zoom.width}:{zoom.height}:{zoom.x}:{zoom.y},"
                f"scale={width}:{height},setsar=1[v{i}z]"
            )
            video_labels.append(f"[v{i}z]")
            if split < seg.end:
                video_parts.append(
                    f"[0:v]trim=start={_ts(split)}:end={_ts(seg.end)},"
                    f"setpts=PTS-STARTPTS,setsar=1[v{i}]"
                )
                video_labels.append(f"[v{i}]")
        else:
            video_parts.append(
                f"[0:v]trim=start={_ts(seg.start)}:end={_ts(seg.end)},"
                f"setpts=PTS-STARTPTS,setsar=1[v{i}]"
            )
            video_labels.append(f"[v{i}]")

        if has_audio:
            audio_parts.append(
                f"[0:a]atrim=start={_ts(seg.start)}:end={_ts(seg.end)},"
                f"asetpts=PTS-STARTPTS[a{i}]"
            )
            audio_labels.append(f"[a{i}]")

    parts = video_parts + audio_parts
    parts.append(f"{''.join(video_labels)}concat=n={len(video_labels)}:v=1:a=0[outv]")
    if has_audio:
        parts.append(f"{''.join(audio_labels)}concat=n={len(audio_labels)}:v=0:a=1[outa]")

    return ";\n".join(parts)


def concat_segments(
    input_path: Path,
    segments: list[TimeRange],
    output_path: Path,
    zooms: list[ZoomWindow | None],
    probe_result: ProbeResult,
    encode_args: list[str],
    on_progress: Callable[[float], None] | None = None,
    cancel=None,
) -> None:
    """Concatenate keep-segments using a single ffmpeg filter_complex call.

    Uses trim/atrim + concat filters so no intermediate files are needed and
    the approach works regardless of the input codec/container.
    """
    filter_complex = build_concat_filter(
        segments,
        zooms,
        probe_result.width,
        probe_result.height,
        has_audio=probe_result.has_audio,
    )

    args = ["-i", str(input_path), "-filter_complex", filter_complex, "-map", "[outv]"]
    if probe_result.has_audio:
        args += ["-map", "[outa]"]
    args += encode_args
    args.append(str(output_path))

    total = sum(seg.duration for seg in segments)
    run_ffmpeg(args, total, on_progress=on_progress, cancel=cancel)
