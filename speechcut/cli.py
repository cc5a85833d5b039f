"""Thin CLI entry point: builds a Manifest and calls the engine."""

import argparse
import json
import logging
import sys
from pathlib import Path

from speechcut.analyzers.pauses import segment
from speechcut.analyzers.transcribe import read_transcript
from speechcut.errors import PipelineError
from speechcut.manifest import (
    Manifest,
    SegmentConfig,
    TranscribeConfig,
    ZoomConfig,
    load_manifest,
)
from speechcut.models import CutPoint, ProcessingOptions, Transcript


def _print_progress(stage: str, frac: float) -> None:
    print(f"  [{frac:4.0%}] {stage}")


def _cmd_process(args: argparse.Namespace) -> None:
    from speechcut.engine import process

    if args.manifest:
        m = load_manifest(args.manifest)
    elif args.video:
        output = args.output or args.video.with_stem(args.video.stem + "_edited")
        m = Manifest(
            input=args.video,
            output=output,
            transcript_path=args.transcript,
            transcribe=TranscribeConfig(model=args.model, language=args.language),
            segment=SegmentConfig(pause_threshold=args.pause_threshold),
            zoom=ZoomConfig(enabled=args.zoom, zoom_factor=args.zoom_factor),
        )
    else:
        print("Error: provide either a VIDEO argument or --manifest.", file=sys.stderr)
        sys.exit(1)

    result = process(m, on_progress=_print_progress)

    print()
    print(f"Done! Output: {result.output_path}")
    print(f"  Duration: {result.duration_original:.1f}s -> {result.duration_final:.1f}s")
    print(f"  Cut points rendered: {len(result.cut_points)}")
    if result.transcript_path:
        print(f"  Transcript: {result.transcript_path}")


def _cmd_transcribe(args: argparse.Namespace) -> None:
    from speechcut.engine import Pipeline

    output = args.output or args.video.with_name(args.video.stem + "_transcript.json")
    with Pipeline(
        transcribe_config=TranscribeConfig(model=args.model, language=args.language),
        transcript_path=output,
    ) as pipeline:
        pipeline.subscribe(lambda st: _print_progress(st.stage.label, st.progress / 100.0))
        pipeline.select_video(args.video)
        pipeline.wait()
        error = pipeline.state.last_error
        if error is not None:
            raise error
    print(f"Transcript: {output}")


def _cmd_analyze(args: argparse.Namespace) -> None:
    transcript = read_transcript(args.transcript)
    cut_points = segment(transcript, args.pause_threshold)
    payload = json.dumps([cp.to_dict() for cp in cut_points], indent=2)
    if args.output:
        args.output.write_text(payload + "\n", encoding="utf-8")
        print(f"{len(cut_points)} cut points written to {args.output}")
    else:
        print(payload)


def _cmd_render(args: argparse.Namespace) -> None:
    from speechcut import ffutil
    from speechcut.editors.render import render

    ffutil.check_ffmpeg()
    data = json.loads(args.cut_points.read_text(encoding="utf-8"))
    cut_points = tuple(CutPoint.from_dict(cp) for cp in data)
    transcript = read_transcript(args.transcript) if args.transcript else Transcript()
    options = ProcessingOptions(
        output_path=args.output,
        cut_points=cut_points,
        apply_zoom_effects=args.zoom,
    )
    out = render(
        args.video,
        transcript,
        options,
        zoom_config=ZoomConfig(enabled=args.zoom, zoom_factor=args.zoom_factor),
        on_progress=lambda f: _print_progress("Rendering", f),
    )
    print(f"Done! Output: {out}")


def main() -> None:
    parser = argparse.ArgumentParser(
        prog="speechcut",
        description="SpeechCut: cut talking-head video at pauses in speech.",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    sub = parser.add_subparsers(dest="command")

    proc = sub.add_parser("process", help="Run the full pipeline on a video file")
    proc.add_argument("video", nargs="?", type=Path, help="Input video file")
    proc.add_argument("--manifest", "-m", type=Path, help="Path to a JSON manifest file")
    proc.add_argument("--output", "-o", type=Path, help="Output file path")
    proc.add_argument("--transcript", type=Path, help="Where to keep the transcript JSON")
    proc.add_argument("--pause-threshold", type=float, default=1.0, help="Pause length (seconds) that starts a new cut point")
    proc.add_argument("--model", type=str, default="base", help="Whisper model size")
    proc.add_argument("--language", type=str, default=None, help="Spoken language (auto-detect if omitted)")
    proc.add_argument("--zoom", action="store_true", help="Zoom in on faces at cut boundaries")
    proc.add_argument("--zoom-factor", type=float, default=1.2, help="Zoom magnification")

    tr = sub.add_parser("transcribe", help="Extract audio and write a transcript JSON")
    tr.add_argument("video", type=Path, help="Input video file")
    tr.add_argument("--output", "-o", type=Path, help="Transcript JSON path")
    tr.add_argument("--model", type=str, default="base", help="Whisper model size")
    tr.add_argument("--language", type=str, default=None, help="Spoken language")

    an = sub.add_parser("analyze", help="Derive cut points from a transcript JSON")
    an.add_argument("transcript", type=Path, help="Transcript JSON file")
    an.add_argument("--pause-threshold", type=float, default=1.0, help="Pause length in seconds")
    an.add_argument("--output", "-o", type=Path, help="Cut points JSON path (stdout if omitted)")

    rd = sub.add_parser("render", help="Render a video from a cut points JSON")
    rd.add_argument("video", type=Path, help="Input video file")
    rd.add_argument("cut_points", type=Path, help="Cut points JSON file")
    rd.add_argument("--output", "-o", type=Path, required=True, help="Output file path")
    rd.add_argument("--transcript", type=Path, help="Transcript JSON of the source")
    rd.add_argument("--zoom", action="store_true", help="Zoom in on faces at cut boundaries")
    rd.add_argument("--zoom-factor", type=float, default=1.2, help="Zoom magnification")

    serve = sub.add_parser("serve", help="Launch the HTTP API")
    serve.add_argument("--port", type=int, default=8321, help="Port to listen on")
    serve.add_argument("--host", type=str, default="127.0.0.1", help="Host to bind to")

    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.command is None:
        parser.print_help()
        sys.exit(0)

    if args.command == "serve":
        from speechcut.web import create_app
        app = create_app()
        print(f"SpeechCut API: http://{args.host}:{args.port}")
        app.run(host=args.host, port=args.port, debug=False, threaded=True)
        return

    commands = {
        "process": _cmd_process,
        "transcribe": _cmd_transcribe,
        "analyze": _cmd_analyze,
        "render": _cmd_render,
    }
    try:
        commands[args.command](args)
    except PipelineError as e:
        print(f"Error ({e.kind}): {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
