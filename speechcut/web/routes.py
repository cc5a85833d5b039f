"""HTTP routes exposing a Pipeline per uploaded video."""

import json
import logging
import queue
import shutil
import uuid
from pathlib import Path

from flask import (
    Blueprint,
    Response,
    current_app,
    jsonify,
    request,
    send_file,
)

from speechcut.cutpoints import parse_timestamp
from speechcut.engine import Pipeline
from speechcut.errors import IndexOutOfRange, InvalidTransition, PipelineBusy
from speechcut.models import CutPoint, Stage

logger = logging.getLogger(__name__)

bp = Blueprint("api", __name__)

# In-memory job store: job_id -> job dict
_jobs: dict[str, dict] = {}


def _get_job(job_id: str) -> dict | None:
    return _jobs.get(job_id)


def _not_found():
    return jsonify({"error": "Job not found"}), 404


def _cut_point_from_json(data: dict, default_description: str) -> CutPoint:
    start = data.get("startTime", data.get("start_time"))
    end = data.get("endTime", data.get("end_time"))
    if start is None or end is None:
        raise ValueError("startTime and endTime are required")
    return CutPoint(
        start_time=parse_timestamp(start),
        end_time=parse_timestamp(end),
        description=str(data.get("description", default_description)),
    )


@bp.route("/api/upload", methods=["POST"])
def upload():
    if "file" not in request.files:
        return jsonify({"error": "No file provided"}), 400

    f = request.files["file"]
    if not f.filename:
        return jsonify({"error": "Empty filename"}), 400

    job_id = uuid.uuid4().hex[:12]
    job_dir = Path(current_app.config["WORK_DIR"]) / job_id
    job_dir.mkdir(parents=True, exist_ok=True)

    ext = Path(f.filename).suffix or ".mp4"
    input_path = job_dir / f"input{ext}"
    f.save(input_path)

    pipeline = Pipeline(transcript_path=job_dir / "transcript.json")
    _jobs[job_id] = {
        "dir": job_dir,
        "input_path": input_path,
        "filename": f.filename,
        "pipeline": pipeline,
    }
    pipeline.select_video(input_path)
    logger.info("Job %s started for %s", job_id, f.filename)

    return jsonify({"job_id": job_id, "filename": f.filename})


@bp.route("/api/jobs/<job_id>/status")
def job_status(job_id: str):
    job = _get_job(job_id)
    if job is None:
        return _not_found()

    resp = job["pipeline"].state.to_dict()
    resp["filename"] = job["filename"]
    resp["busy"] = job["pipeline"].busy
    return jsonify(resp)


@bp.route("/api/jobs/<job_id>/transcript")
def get_transcript(job_id: str):
    job = _get_job(job_id)
    if job is None:
        return _not_found()

    transcript = job["pipeline"].transcript
    if transcript is None:
        return jsonify({"error": "Transcript not ready"}), 409
    return jsonify(transcript.to_dict())


@bp.route("/api/jobs/<job_id>/cut-points", methods=["GET"])
def list_cut_points(job_id: str):
    job = _get_job(job_id)
    if job is None:
        return _not_found()
    return jsonify(job["pipeline"].cut_points.to_list())


@bp.route("/api/jobs/<job_id>/cut-points", methods=["POST"])
def add_cut_point(job_id: str):
    job = _get_job(job_id)
    if job is None:
        return _not_found()

    pipeline: Pipeline = job["pipeline"]
    store = pipeline.cut_points
    data = request.get_json(silent=True) or {}

    if data.get("default"):
        if pipeline.transcript is None:
            return jsonify({"error": "Transcript not ready"}), 409
        cp = store.add_default(pipeline.transcript)
        if cp is None:
            return jsonify({"error": "Transcript has no segments"}), 400
        return jsonify({"index": len(store) - 1, "cut_point": cp.to_dict()}), 201

    try:
        cp = _cut_point_from_json(data, f"Segment {len(store) + 1}")
        position = data.get("index")
        index = store.insert(cp, int(position) if position is not None else None)
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    except IndexOutOfRange as e:
        return jsonify({"error": str(e)}), 404
    return jsonify({"index": index, "cut_point": cp.to_dict()}), 201


@bp.route("/api/jobs/<job_id>/cut-points/<int:index>", methods=["PUT"])
def update_cut_point(job_id: str, index: int):
    job = _get_job(job_id)
    if job is None:
        return _not_found()

    store = job["pipeline"].cut_points
    data = request.get_json(silent=True) or {}
    try:
        current = store[index]
        merged = current.to_dict()
        merged["startTime"] = data.get("startTime", data.get("start_time", merged["startTime"]))
        merged["endTime"] = data.get("endTime", data.get("end_time", merged["endTime"]))
        merged["description"] = data.get("description", merged["description"])
        cp = _cut_point_from_json(merged, current.description)
        store.update(index, cp)
    except IndexOutOfRange as e:
        return jsonify({"error": str(e)}), 404
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    return jsonify({"index": index, "cut_point": cp.to_dict()})


@bp.route("/api/jobs/<job_id>/cut-points/<int:index>", methods=["DELETE"])
def delete_cut_point(job_id: str, index: int):
    job = _get_job(job_id)
    if job is None:
        return _not_found()

    try:
        removed = job["pipeline"].cut_points.remove(index)
    except IndexOutOfRange as e:
        return jsonify({"error": str(e)}), 404
    return jsonify({"removed": removed.to_dict()})


@bp.route("/api/jobs/<job_id>/process", methods=["POST"])
def start_process(job_id: str):
    job = _get_job(job_id)
    if job is None:
        return _not_found()

    pipeline: Pipeline = job["pipeline"]
    config = request.get_json(silent=True) or {}
    output_path = job["dir"] / f"output{job['input_path'].suffix}"

    try:
        started = pipeline.process_video(
            output_path,
            apply_zoom_effects=config.get("apply_zoom_effects"),
        )
    except (InvalidTransition, PipelineBusy) as e:
        return jsonify({"error": str(e)}), 409

    if not started:
        return jsonify(pipeline.state.to_dict()), 400
    return jsonify({"status": "started"})


@bp.route("/api/jobs/<job_id>/retry", methods=["POST"])
def retry(job_id: str):
    job = _get_job(job_id)
    if job is None:
        return _not_found()

    try:
        job["pipeline"].retry()
    except (InvalidTransition, PipelineBusy) as e:
        return jsonify({"error": str(e)}), 409
    return jsonify({"status": "started"})


@bp.route("/api/jobs/<job_id>/cancel", methods=["POST"])
def cancel(job_id: str):
    job = _get_job(job_id)
    if job is None:
        return _not_found()

    job["pipeline"].cancel()
    return jsonify({"status": "cancelling" if job["pipeline"].busy else "idle"})


@bp.route("/api/jobs/<job_id>/progress")
def progress_stream(job_id: str):
    job = _get_job(job_id)
    if job is None:
        return _not_found()

    pipeline: Pipeline = job["pipeline"]

    def generate():
        q: queue.Queue = queue.Queue()
        unsubscribe = pipeline.subscribe(q.put)
        try:
            yield f"data: {json.dumps(pipeline.state.to_dict())}\n\n"
            while True:
                try:
                    state = q.get(timeout=1.0)
                except queue.Empty:
                    if not pipeline.busy:
                        break
                    continue
                yield f"data: {json.dumps(state.to_dict())}\n\n"
            final = pipeline.state.to_dict()
            final["final"] = True
            yield f"data: {json.dumps(final)}\n\n"
        finally:
            unsubscribe()

    return Response(generate(), mimetype="text/event-stream")


@bp.route("/api/jobs/<job_id>/result")
def download_result(job_id: str):
    job = _get_job(job_id)
    if job is None:
        return _not_found()

    pipeline: Pipeline = job["pipeline"]
    if pipeline.state.stage != Stage.DONE:
        return jsonify({"error": "Job not complete"}), 409

    return send_file(pipeline.output_path, as_attachment=False)


@bp.route("/api/jobs/<job_id>", methods=["DELETE"])
def delete_job(job_id: str):
    job = _jobs.pop(job_id, None)
    if job is None:
        return _not_found()

    job["pipeline"].close()
    shutil.rmtree(job["dir"], ignore_errors=True)
    return jsonify({"status": "deleted"})
