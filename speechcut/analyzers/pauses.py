"""Pause-based segmentation of a transcript into cut points."""

from speechcut.models import CutPoint, Transcript

DEFAULT_PAUSE_THRESHOLD = 1.0


def segment(
    transcript: Transcript,
    pause_threshold: float = DEFAULT_PAUSE_THRESHOLD,
) -> list[CutPoint]:
    """Split the transcript wherever the gap between segments reaches the threshold.

    The first cut point always starts at 0.0 so leading silence is kept; each
    later one starts where speech resumes. Every qualifying pause yields its own
    boundary, with no coalescing.

    The comparison is inclusive: a pause exactly as long as the threshold
    splits too, so a 1.0s gap at the default 1.0s threshold is a cut. A strict
    "longer than" rule would keep such segments together.
    """
    segments = transcript.segments
    if not segments:
        return []

    cut_points: list[CutPoint] = []
    current_start = 0.0

    for prev, curr in zip(segments, segments[1:]):
        pause = curr.start - prev.end
        if pause >= pause_threshold:
            cut_points.append(
                CutPoint(
                    start_time=current_start,
                    end_time=prev.end,
                    description=f"Segment {len(cut_points) + 1}",
                )
            )
            current_start = curr.start

    cut_points.append(
        CutPoint(
            start_time=current_start,
            end_time=segments[-1].end,
            description=f"Segment {len(cut_points) + 1}",
        )
    )
    return cut_points
