"""Face detection for the boundary zoom, using OpenCV's Haar cascade."""

import logging
from pathlib import Path

import cv2

from speechcut.manifest import ZoomConfig
from speechcut.models import FaceBox, ZoomWindow

logger = logging.getLogger(__name__)

CASCADE_FILE = "haarcascade_frontalface_default.xml"


def load_cascade() -> "cv2.CascadeClassifier | None":
    """Load the frontal face cascade bundled with OpenCV, or None if it is missing."""
    path = Path(cv2.data.haarcascades) / CASCADE_FILE
    cascade = cv2.CascadeClassifier(str(path))
    if cascade.empty():
        logger.warning("Could not load OpenCV cascade %s; zoom disabled", path)
        return None
    return cascade


def sample_times(start: float, end: float, count: int) -> list[float]:
    """Evenly spaced timestamps strictly inside [start, end)."""
    if end <= start or count <= 0:
        return []
    step = (end - start) / count
    return [start + step * (i + 0.5) for i in range(count)]


def detect_face(
    video_path: Path,
    start: float,
    end: float,
    config: ZoomConfig,
    cascade: "cv2.CascadeClassifier | None" = None,
) -> FaceBox | None:
    """Return the largest face seen in a fixed set of frames from [start, end).

    Pass a ``cascade`` from :func:`load_cascade` to reuse it across calls.
    Returns None when the window is empty, the cascade or the video can't be
    loaded, or no face is found.
    """
    times = sample_times(start, end, config.sample_frames)
    if not times:
        return None

    if cascade is None:
        cascade = load_cascade()
        if cascade is None:
            return None

    cap = cv2.VideoCapture(str(video_path))
    if not cap.isOpened():
        logger.warning("Face detection could not open %s", video_path)
        return None

    best: FaceBox | None = None
    try:
        for t in times:
            cap.set(cv2.CAP_PROP_POS_MSEC, t * 1000.0)
            ok, frame = cap.read()
            if not ok:
                continue
            gray = cv2.cvtColor(frame, cv2.COLOR_BGR2GRAY)
            faces = cascade.detectMultiScale(
                gray,
                scaleFactor=1.1,
                minNeighbors=5,
                minSize=(config.min_face_size, config.min_face_size),
            )
            for x, y, w, h in faces:
                box = FaceBox(x=int(x), y=int(y), width=int(w), height=int(h))
                if best is None or box.area > best.area:
                    best = box
    finally:
        cap.release()

    logger.debug("Face in %.2f-%.2fs of %s: %s", start, end, video_path, best)
    return best


def zoom_window(
    face: FaceBox,
    frame_width: int,
    frame_height: int,
    duration: float,
    zoom_factor: float,
) -> ZoomWindow:
    """Crop box of 1/zoom_factor the frame size, centred on the face.

    The box is clamped inside the frame and kept to even dimensions for h264.
    """
    crop_w = int(round(frame_width / zoom_factor))
    crop_h = int(round(frame_height / zoom_factor))
    crop_w -= crop_w % 2
    crop_h -= crop_h % 2

    cx, cy = face.center
    x = int(round(cx - crop_w / 2))
    y = int(round(cy - crop_h / 2))
    x = min(max(x, 0), frame_width - crop_w)
    y = min(max(y, 0), frame_height - crop_h)

    return ZoomWindow(duration=duration, x=x, y=y, width=crop_w, height=crop_h)
