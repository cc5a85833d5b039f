"""User-editable cut point list."""

import threading

from speechcut.errors import IndexOutOfRange
from speechcut.models import CutPoint, Transcript


def parse_timestamp(value: str | float | int) -> float:
    """Parse ``MM:SS`` (or ``HH:MM:SS``, or plain seconds) into seconds."""
    if isinstance(value, (int, float)):
        return float(value)
    parts = str(value).strip().split(":")
    if not 1 <= len(parts) <= 3:
        raise ValueError(f"Invalid timestamp: {value!r}")
    seconds = 0.0
    for part in parts:
        seconds = seconds * 60 + float(part)
    return seconds


def format_timestamp(seconds: float) -> str:
    """Format seconds as zero-padded ``MM:SS``."""
    minutes = int(seconds // 60)
    secs = int(seconds % 60)
    return f"{minutes:02d}:{secs:02d}"


class CutPointStore:
    """Positionally addressed, mutable list of cut points.

    Order is whatever the user made it: nothing is re-sorted, de-overlapped or
    validated here.
    """

    def __init__(self, cut_points: list[CutPoint] | None = None):
        self._items: list[CutPoint] = list(cut_points or [])
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self):
        return iter(self.snapshot())

    def __getitem__(self, index: int) -> CutPoint:
        with self._lock:
            self._check(index)
            return self._items[index]

    def _check(self, index: int) -> None:
        if not 0 <= index < len(self._items):
            raise IndexOutOfRange(
                f"Cut point index {index} out of range (have {len(self._items)})"
            )

    def insert(self, cut_point: CutPoint, index: int | None = None) -> int:
        """Append (or insert before ``index``); returns the new position."""
        with self._lock:
            if index is None:
                self._items.append(cut_point)
                return len(self._items) - 1
            if not 0 <= index <= len(self._items):
                raise IndexOutOfRange(
                    f"Insert position {index} out of range (have {len(self._items)})"
                )
            self._items.insert(index, cut_point)
            return index

    def update(self, index: int, cut_point: CutPoint) -> None:
        with self._lock:
            self._check(index)
            self._items[index] = cut_point

    def remove(self, index: int) -> CutPoint:
        with self._lock:
            self._check(index)
            return self._items.pop(index)

    def replace_all(self, cut_points: list[CutPoint]) -> None:
        with self._lock:
            self._items = list(cut_points)

    def add_default(self, transcript: Transcript) -> CutPoint | None:
        """Append a cut point spanning 0 to the transcript's last segment end."""
        if not transcript.segments:
            return None
        with self._lock:
            cp = CutPoint(
                start_time=0.0,
                end_time=transcript.segments[-1].end,
                description=f"Segment {len(self._items) + 1}",
            )
            self._items.append(cp)
        return cp

    def snapshot(self) -> tuple[CutPoint, ...]:
        with self._lock:
            return tuple(
                CutPoint(cp.start_time, cp.end_time, cp.description) for cp in self._items
            )

    def sorted_by_time(self) -> list[CutPoint]:
        return sorted(self.snapshot(), key=lambda cp: (cp.start_time, cp.end_time))

    def to_list(self) -> list[dict]:
        return [cp.to_dict() for cp in self.snapshot()]
