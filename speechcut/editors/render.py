"""Video renderer. Concatenates cut point ranges into the final output."""

import logging
import os
import tempfile
from pathlib import Path
from typing import Callable

from speechcut import ffutil
from speechcut.analyzers.faces import detect_face, load_cascade, zoom_window
from speechcut.errors import (
    EncodingFailure,
    NoCutPoints,
    OutputWriteFailure,
    raise_if_cancelled,
)
from speechcut.manifest import RenderConfig, ZoomConfig
from speechcut.models import (
    CutPoint,
    ProcessingOptions,
    Transcript,
    TimeRange,
    ZoomWindow,
)

logger = logging.getLogger(__name__)

# Share of the progress bar spent on face detection when zoom is on.
FACE_PHASE = 0.10


def clamp_ranges(cut_points: tuple[CutPoint, ...] | list[CutPoint], duration: float) -> list[TimeRange]:
    """Map cut points, in order, to ranges clamped to [0, duration].

    Zero-length results (including end-before-start) are dropped.
    """
    ranges: list[TimeRange] = []
    for cp in cut_points:
        start = min(max(cp.start_time, 0.0), duration)
        end = min(max(cp.end_time, 0.0), duration)
        if end <= start:
            logger.debug("Skipping empty range %r", cp)
            continue
        ranges.append(TimeRange(start=start, end=end))
    return ranges


def encode_args(config: RenderConfig) -> list[str]:
    return [
        "-c:v", config.video_codec,
        "-preset", config.preset,
        "-crf", str(config.crf),
        "-c:a", config.audio_codec,
        "-b:a", config.audio_bitrate,
    ]


def plan_zooms(
    video_path: Path,
    ranges: list[TimeRange],
    width: int,
    height: int,
    config: ZoomConfig,
    on_progress: Callable[[float], None] | None = None,
    cancel=None,
) -> list[ZoomWindow | None]:
    """Find a zoom window for the head of every range that follows a cut.

    Ranges without a detectable face get None and render unchanged.
    """
    zooms: list[ZoomWindow | None] = [None] * len(ranges)
    if config.zoom_factor <= 1.0 or config.window <= 0 or len(ranges) < 2:
        return zooms

    cascade = load_cascade()
    if cascade is None:
        return zooms

    boundaries = range(1, len(ranges))
    for n, i in enumerate(boundaries, 1):
        raise_if_cancelled(cancel)
        rng = ranges[i]
        head = min(config.window, rng.duration)
        face = detect_face(video_path, rng.start, rng.start + head, config, cascade)
        if face is not None:
            zooms[i] = zoom_window(face, width, height, head, config.zoom_factor)
        else:
            logger.info("No face near boundary %d at %.2fs; leaving it unzoomed", i, rng.start)
        if on_progress:
            on_progress(n / len(boundaries))
    return zooms


def _temp_output(output_path: Path) -> Path:
    try:
        output_path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(
            prefix=f".{output_path.stem}.", suffix=output_path.suffix, dir=output_path.parent
        )
    except OSError as e:
        raise OutputWriteFailure(f"Cannot write to {output_path.parent}: {e}") from e
    os.close(fd)
    return Path(tmp)


def render(
    video_path: Path,
    transcript: Transcript,
    options: ProcessingOptions,
    config: RenderConfig | None = None,
    zoom_config: ZoomConfig | None = None,
    on_progress: Callable[[float], None] | None = None,
    cancel=None,
) -> Path:
    """Render ``options.cut_points`` from ``video_path`` into ``options.output_path``.

    Cut points are used in the order given. The output is written to a
    temporary file beside the destination and moved into place only once
    ffmpeg succeeds, so a failed or cancelled render never leaves a partial
    file at ``output_path``.

    Args:
        video_path: Source video.
        transcript: Transcript of the source, used for reporting only.
        options: Output path, cut points and the zoom switch.
        config: Encoder settings.
        zoom_config: Face zoom tuning; its ``enabled`` flag is ignored in
            favour of ``options.apply_zoom_effects``.
        on_progress: Optional callback receiving a fraction in [0, 1].
        cancel: Optional threading.Event.
    """
    config = config or RenderConfig()
    zoom_config = zoom_config or ZoomConfig()
    output_path = Path(options.output_path)

    last = 0.0

    def _progress(frac: float) -> None:
        nonlocal last
        if frac > last:
            last = frac
            if on_progress:
                on_progress(frac)

    if not options.cut_points:
        raise NoCutPoints("Cannot render without at least one cut point")

    probe_result = ffutil.probe(Path(video_path))
    ranges = clamp_ranges(options.cut_points, probe_result.duration)
    if not ranges:
        raise NoCutPoints("Every cut point is empty after clamping to the source duration")

    spoken = sum(
        1 for s in transcript.segments
        if any(r.start <= s.start < r.end for r in ranges)
    )
    logger.info(
        "Rendering %d ranges (%.1fs, %d transcript segments) from %s",
        len(ranges), sum(r.duration for r in ranges), spoken, video_path,
    )

    encode_base = 0.0
    if options.apply_zoom_effects:
        zooms = plan_zooms(
            Path(video_path),
            ranges,
            probe_result.width,
            probe_result.height,
            zoom_config,
            on_progress=lambda f: _progress(f * FACE_PHASE),
            cancel=cancel,
        )
        encode_base = FACE_PHASE
    else:
        zooms = [None] * len(ranges)

    raise_if_cancelled(cancel)
    tmp_path = _temp_output(output_path)
    try:
        ffutil.concat_segments(
            Path(video_path),
            ranges,
            tmp_path,
            zooms,
            probe_result,
            encode_args(config),
            on_progress=lambda f: _progress(encode_base + f * (1.0 - encode_base)),
            cancel=cancel,
        )
        try:
            os.replace(tmp_path, output_path)
        except OSError as e:
            raise OutputWriteFailure(f"Cannot finalize {output_path}: {e}") from e
    except ffutil.FFmpegError as e:
        tmp_path.unlink(missing_ok=True)
        raise EncodingFailure(str(e)) from e
    except BaseException:
        tmp_path.unlink(missing_ok=True)
        raise

    _progress(1.0)
    return output_path
