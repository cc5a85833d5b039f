"""Pipeline state machine and a one-shot runner."""

import logging
import shutil
import tempfile
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable

from speechcut import ffutil
from speechcut.analyzers.audio import extract_audio
from speechcut.analyzers.pauses import segment
from speechcut.analyzers.transcribe import transcribe, write_transcript
from speechcut.cutpoints import CutPointStore
from speechcut.editors.render import render
from speechcut.errors import (
    InvalidTransition,
    NoCutPoints,
    PipelineBusy,
    PipelineError,
    raise_if_cancelled,
)
from speechcut.manifest import (
    Manifest,
    RenderConfig,
    SegmentConfig,
    TranscribeConfig,
    ZoomConfig,
)
from speechcut.models import (
    CutPoint,
    PipelineState,
    ProcessingOptions,
    Stage,
    Transcript,
)

logger = logging.getLogger(__name__)

AUTO_STAGES = (Stage.EXTRACT_AUDIO, Stage.TRANSCRIBE, Stage.ANALYZE_TRANSCRIPT)


class Pipeline:
    """Drives one video through extract → transcribe → analyze → render.

    Each stage runs on a worker thread. Observers registered with
    :meth:`subscribe` get a :class:`PipelineState` snapshot whenever the stage,
    progress or last error changes. A failing stage stays current with
    ``last_error`` set; :meth:`retry` re-runs it.

    The instance owns a private temporary directory for the extracted audio
    and the transcript JSON; :meth:`close` removes it.
    """

    def __init__(
        self,
        transcribe_config: TranscribeConfig | None = None,
        segment_config: SegmentConfig | None = None,
        zoom_config: ZoomConfig | None = None,
        render_config: RenderConfig | None = None,
        transcript_path: Path | None = None,
    ):
        self.transcribe_config = transcribe_config or TranscribeConfig()
        self.segment_config = segment_config or SegmentConfig()
        self.zoom_config = zoom_config or ZoomConfig()
        self.render_config = render_config or RenderConfig()

        self.work_dir = Path(tempfile.mkdtemp(prefix="speechcut_"))
        self.video_path: Path | None = None
        self.audio_path: Path | None = None
        self.transcript_path = Path(transcript_path) if transcript_path else None
        self.transcript: Transcript | None = None
        self.cut_points = CutPointStore()
        self.options: ProcessingOptions | None = None
        self.output_path: Path | None = None

        self._lock = threading.RLock()
        self._stage = Stage.SELECT_VIDEO
        self._progress = 0.0
        self._last_error: Exception | None = None
        self._listeners: list[Callable[[PipelineState], None]] = []
        self._worker: threading.Thread | None = None
        self._cancel = threading.Event()
        self._closed = False

    # --- observation ---

    @property
    def state(self) -> PipelineState:
        with self._lock:
            return PipelineState(self._stage, self._progress, self._last_error)

    @property
    def busy(self) -> bool:
        worker = self._worker
        return worker is not None and worker.is_alive()

    def subscribe(self, callback: Callable[[PipelineState], None]) -> Callable[[], None]:
        """Register an observer; returns a function that unregisters it."""
        with self._lock:
            self._listeners.append(callback)

        def unsubscribe() -> None:
            with self._lock:
                if callback in self._listeners:
                    self._listeners.remove(callback)

        return unsubscribe

    def _emit(self) -> None:
        snapshot = self.state
        with self._lock:
            listeners = list(self._listeners)
        for cb in listeners:
            cb(snapshot)

    def _enter(self, stage: Stage) -> None:
        with self._lock:
            self._stage = stage
            self._progress = 0.0
            self._last_error = None
        logger.info("Entering stage %s", stage.label)
        self._emit()

    def _set_progress(self, frac: float) -> None:
        pct = min(max(frac * 100.0, 0.0), 100.0)
        with self._lock:
            if pct <= self._progress:
                return
            self._progress = pct
        self._emit()

    def _fail(self, error: Exception) -> None:
        with self._lock:
            self._last_error = error
            stage = self._stage
        logger.error("Stage %s failed: %s", stage.label, error)
        self._emit()

    # --- workers ---

    def _start(self, target: Callable[[], None], name: str, stage: Stage) -> None:
        """Enter ``stage`` with fresh progress and run ``target`` on a worker.

        The cancel event is replaced before observers hear of the new stage,
        so a cancel() issued from a callback reaches this worker.
        """
        with self._lock:
            if self._closed:
                raise InvalidTransition("Pipeline is closed")
            if self.busy:
                raise PipelineBusy("A stage is already running")
            self._cancel = threading.Event()
            self._enter(stage)
            self._worker = threading.Thread(target=target, name=f"speechcut-{name}", daemon=True)
            self._worker.start()

    def _guarded(self, step: Callable[[], None]) -> bool:
        try:
            step()
        except Exception as e:
            if not isinstance(e, PipelineError):
                logger.exception("Unexpected error in stage %s", self._stage.label)
            self._fail(e)
            return False
        return True

    def _run_auto(self, first: Stage) -> None:
        steps = {
            Stage.EXTRACT_AUDIO: self._extract,
            Stage.TRANSCRIBE: self._transcribe,
            Stage.ANALYZE_TRANSCRIPT: self._analyze,
        }
        for stage in AUTO_STAGES[AUTO_STAGES.index(first):]:
            if self._stage != stage:
                self._enter(stage)
            if not self._guarded(steps[stage]):
                return

    def _extract(self) -> None:
        self.audio_path = extract_audio(
            self.video_path,
            self.work_dir,
            on_progress=self._set_progress,
            cancel=self._cancel,
        )

    def _transcribe(self) -> None:
        transcript = transcribe(
            self.audio_path,
            self.transcribe_config,
            on_progress=self._set_progress,
            cancel=self._cancel,
        )
        raise_if_cancelled(self._cancel)
        path = self.transcript_path or self.work_dir / f"{self.video_path.stem}_transcript.json"
        self.transcript_path = write_transcript(transcript, path)
        self.transcript = transcript
        if self.audio_path is not None:
            self.audio_path.unlink(missing_ok=True)
            self.audio_path = None

    def _analyze(self) -> None:
        cut_points = segment(self.transcript, self.segment_config.pause_threshold)
        self.cut_points.replace_all(cut_points)
        logger.info("Derived %d cut points", len(cut_points))
        self._set_progress(1.0)

    def _render(self) -> None:
        self.output_path = render(
            self.video_path,
            self.transcript,
            self.options,
            config=self.render_config,
            zoom_config=self.zoom_config,
            on_progress=self._set_progress,
            cancel=self._cancel,
        )
        self._enter(Stage.DONE)
        self._set_progress(1.0)

    # --- transitions ---

    def select_video(self, video_path: Path | None) -> bool:
        """Start the automatic stages for ``video_path``.

        ``None`` (an empty file-open dialog) is a user cancel: returns False
        and nothing changes.
        """
        if video_path is None:
            return False
        with self._lock:
            if self._stage != Stage.SELECT_VIDEO:
                raise InvalidTransition(f"Cannot select a video during {self._stage.label}")
            self.video_path = Path(video_path)
            self._start(lambda: self._run_auto(Stage.EXTRACT_AUDIO), "extract", Stage.EXTRACT_AUDIO)
        return True

    def process_video(
        self,
        output_path: Path | None,
        apply_zoom_effects: bool | None = None,
    ) -> bool:
        """Confirm the current cut points and render them to ``output_path``.

        ``None`` (an empty file-save dialog) is a user cancel: returns False.
        An empty cut point list records NoCutPoints and returns False.
        """
        if output_path is None:
            return False
        with self._lock:
            if self._stage != Stage.ANALYZE_TRANSCRIPT:
                raise InvalidTransition(f"Cannot process video during {self._stage.label}")
            if self.busy:
                raise PipelineBusy("A stage is already running")
        cut_points = self.cut_points.snapshot()
        if not cut_points:
            self._fail(NoCutPoints("Processing needs at least one cut point"))
            return False

        if apply_zoom_effects is None:
            apply_zoom_effects = self.zoom_config.enabled
        self.options = ProcessingOptions(
            output_path=Path(output_path),
            cut_points=cut_points,
            apply_zoom_effects=apply_zoom_effects,
        )
        self._start(lambda: self._guarded(self._render), "render", Stage.PROCESS_VIDEO)
        return True

    def retry(self) -> None:
        """Re-run the stage that last failed."""
        if self.busy:
            raise PipelineBusy("A stage is already running")
        with self._lock:
            stage, error = self._stage, self._last_error
        if error is None:
            raise InvalidTransition(f"Nothing to retry in {stage.label}")
        if stage in (Stage.EXTRACT_AUDIO, Stage.TRANSCRIBE):
            self._start(lambda: self._run_auto(stage), "retry", stage)
        elif stage == Stage.PROCESS_VIDEO:
            self._start(lambda: self._guarded(self._render), "retry", stage)
        else:
            raise InvalidTransition(f"Stage {stage.label} cannot be retried")

    def cancel(self) -> None:
        """Ask the running stage to stop; it records Cancelled when it does."""
        self._cancel.set()

    def wait(self, timeout: float | None = None) -> bool:
        """Block until the running stage finishes; True if nothing is running."""
        worker = self._worker
        if worker is not None:
            worker.join(timeout)
        return not self.busy

    def close(self) -> None:
        """Cancel any running stage and delete this pipeline's temp files."""
        self.cancel()
        self.wait()
        with self._lock:
            self._closed = True
        shutil.rmtree(self.work_dir, ignore_errors=True)
        self.audio_path = None

    def __enter__(self) -> "Pipeline":
        return self

    def __exit__(self, *exc) -> None:
        self.close()


@dataclass
class EngineResult:
    output_path: Path
    transcript_path: Path | None = None
    duration_original: float = 0.0
    duration_final: float = 0.0
    cut_points: list[CutPoint] = field(default_factory=list)
    transcript: Transcript | None = None


def _raise_on_error(pipeline: Pipeline) -> None:
    error = pipeline.state.last_error
    if error is not None:
        raise error


def process(
    manifest: Manifest,
    on_progress: Callable[[str, float], None] | None = None,
) -> EngineResult:
    """Execute the full pipeline without interaction.

    Uses the manifest's cut points when it lists any, otherwise the ones
    derived from pauses.

    Args:
        manifest: Validated editing manifest.
        on_progress: Optional callback(stage_name, fraction_complete).
    """
    ffutil.check_ffmpeg()

    duration_original = ffutil.probe(manifest.input).duration

    with Pipeline(
        transcribe_config=manifest.transcribe,
        segment_config=manifest.segment,
        zoom_config=manifest.zoom,
        render_config=manifest.render,
        transcript_path=manifest.transcript_path,
    ) as pipeline:
        if on_progress:
            pipeline.subscribe(lambda st: on_progress(st.stage.label, st.progress / 100.0))

        pipeline.select_video(manifest.input)
        pipeline.wait()
        _raise_on_error(pipeline)

        if manifest.cut_points is not None:
            pipeline.cut_points.replace_all(manifest.cut_points)

        if not pipeline.process_video(manifest.output, manifest.zoom.enabled):
            _raise_on_error(pipeline)
        pipeline.wait()
        _raise_on_error(pipeline)

        transcript_path = manifest.transcript_path
        result = EngineResult(
            output_path=manifest.output,
            transcript_path=transcript_path,
            duration_original=duration_original,
            cut_points=list(pipeline.cut_points.snapshot()),
            transcript=pipeline.transcript,
        )

    result.duration_final = ffutil.probe(manifest.output).duration
    return result
