"""Unit tests for the SpeechCut HTTP API."""

import io
import json
from pathlib import Path
from unittest.mock import patch

import pytest

from speechcut.errors import UnreadableSource
from speechcut.web import create_app
from speechcut.web import routes

from tests.helpers import make_transcript

TRANSCRIPT = make_transcript((0.0, 2.0), (3.5, 5.0))


def _fake_extract(video_path, work_dir, on_progress=None, cancel=None):
    return Path(work_dir) / "audio.wav"


def _fake_render(video_path, transcript, options, **kwargs):
    Path(options.output_path).write_bytes(b"VIDEO")
    return Path(options.output_path)


@pytest.fixture(autouse=True)
def stages():
    with patch("speechcut.engine.extract_audio", side_effect=_fake_extract) as ex, \
            patch("speechcut.engine.transcribe", return_value=TRANSCRIPT) as tr, \
            patch("speechcut.engine.render", side_effect=_fake_render) as rd:
        yield ex, tr, rd
    for job in routes._jobs.values():
        job["pipeline"].close()
    routes._jobs.clear()


@pytest.fixture
def app(tmp_path):
    app = create_app(work_dir=tmp_path)
    app.config["TESTING"] = True
    return app


@pytest.fixture
def client(app):
    return app.test_client()


def _upload(client, filename="test.mp4", content=b"fake video data"):
    return client.post(
        "/api/upload",
        data={"file": (io.BytesIO(content), filename)},
        content_type="multipart/form-data",
    )


def _ready_job(client) -> str:
    job_id = _upload(client).get_json()["job_id"]
    assert routes._jobs[job_id]["pipeline"].wait(5)
    return job_id


class TestUpload:
    def test_upload_success(self, client):
        resp = _upload(client)
        assert resp.status_code == 200
        data = resp.get_json()
        assert "job_id" in data
        assert data["filename"] == "test.mp4"

    def test_upload_no_file(self, client):
        resp = client.post("/api/upload")
        assert resp.status_code == 400

    def test_upload_over_limit(self, tmp_path):
        app = create_app(work_dir=tmp_path, max_upload_bytes=1024 ** 2)
        app.config["TESTING"] = True
        resp = _upload(app.test_client(), content=b"x" * (2 * 1024 ** 2))
        assert resp.status_code == 413
        assert resp.get_json() == {"error": "Upload exceeds the 1 MB limit"}
        assert routes._jobs == {}

    def test_unknown_route_is_json(self, client):
        resp = client.get("/api/nothing-here")
        assert resp.status_code == 404
        assert resp.get_json() == {"error": "Not found"}

    def test_upload_creates_file(self, client, tmp_path):
        resp = _upload(client, content=b"CONTENT")
        job_id = resp.get_json()["job_id"]
        input_file = tmp_path / job_id / "input.mp4"
        assert input_file.exists()
        assert input_file.read_bytes() == b"CONTENT"

    def test_upload_starts_pipeline(self, client, tmp_path):
        job_id = _ready_job(client)
        assert (tmp_path / job_id / "transcript.json").exists()


class TestStatus:
    def test_status_after_analysis(self, client):
        job_id = _ready_job(client)
        resp = client.get(f"/api/jobs/{job_id}/status")
        assert resp.status_code == 200
        data = resp.get_json()
        assert data["stage"] == "ANALYZE_TRANSCRIPT"
        assert data["progress"] == 100.0
        assert data["error"] is None
        assert data["busy"] is False

    def test_status_reports_error_kind(self, client, stages):
        ex, _, _ = stages
        ex.side_effect = UnreadableSource("cannot open")
        job_id = _ready_job(client)
        data = client.get(f"/api/jobs/{job_id}/status").get_json()
        assert data["stage"] == "EXTRACT_AUDIO"
        assert data["error_kind"] == "UnreadableSource"
        assert data["error"] == "cannot open"

    def test_status_unknown_job(self, client):
        resp = client.get("/api/jobs/nonexistent/status")
        assert resp.status_code == 404


class TestTranscript:
    def test_transcript(self, client):
        job_id = _ready_job(client)
        data = client.get(f"/api/jobs/{job_id}/transcript").get_json()
        assert len(data["segments"]) == 2
        assert data["segments"][0] == {"start": 0.0, "end": 2.0, "text": "words 0"}

    def test_transcript_not_ready(self, client, stages):
        _, tr, _ = stages
        tr.side_effect = UnreadableSource("bad audio")
        job_id = _ready_job(client)
        assert client.get(f"/api/jobs/{job_id}/transcript").status_code == 409


class TestCutPoints:
    def test_list(self, client):
        job_id = _ready_job(client)
        data = client.get(f"/api/jobs/{job_id}/cut-points").get_json()
        assert data == [
            {"startTime": 0.0, "endTime": 2.0, "description": "Segment 1"},
            {"startTime": 3.5, "endTime": 5.0, "description": "Segment 2"},
        ]

    def test_add_with_timestamps(self, client):
        job_id = _ready_job(client)
        resp = client.post(
            f"/api/jobs/{job_id}/cut-points",
            json={"startTime": "00:01", "endTime": "00:02", "description": "Extra"},
        )
        assert resp.status_code == 201
        assert resp.get_json()["index"] == 2
        assert len(client.get(f"/api/jobs/{job_id}/cut-points").get_json()) == 3

    def test_add_default(self, client):
        job_id = _ready_job(client)
        resp = client.post(f"/api/jobs/{job_id}/cut-points", json={"default": True})
        assert resp.status_code == 201
        assert resp.get_json()["cut_point"] == {
            "startTime": 0.0, "endTime": 5.0, "description": "Segment 3",
        }

    def test_add_missing_times(self, client):
        job_id = _ready_job(client)
        resp = client.post(f"/api/jobs/{job_id}/cut-points", json={"description": "x"})
        assert resp.status_code == 400

    def test_update_partial(self, client):
        job_id = _ready_job(client)
        resp = client.put(f"/api/jobs/{job_id}/cut-points/1", json={"endTime": 4.5})
        assert resp.status_code == 200
        assert resp.get_json()["cut_point"] == {
            "startTime": 3.5, "endTime": 4.5, "description": "Segment 2",
        }

    def test_update_out_of_range(self, client):
        job_id = _ready_job(client)
        resp = client.put(f"/api/jobs/{job_id}/cut-points/7", json={"endTime": 4.5})
        assert resp.status_code == 404
        assert len(client.get(f"/api/jobs/{job_id}/cut-points").get_json()) == 2

    def test_delete(self, client):
        job_id = _ready_job(client)
        resp = client.delete(f"/api/jobs/{job_id}/cut-points/0")
        assert resp.status_code == 200
        assert resp.get_json()["removed"]["description"] == "Segment 1"

    def test_delete_out_of_range(self, client):
        job_id = _ready_job(client)
        assert client.delete(f"/api/jobs/{job_id}/cut-points/2").status_code == 404


class TestProcess:
    def test_process_unknown_job(self, client):
        resp = client.post("/api/jobs/nonexistent/process", json={})
        assert resp.status_code == 404

    def test_process_and_download(self, client, stages):
        _, _, rd = stages
        job_id = _ready_job(client)

        resp = client.post(f"/api/jobs/{job_id}/process", json={"apply_zoom_effects": True})
        assert resp.status_code == 200
        assert resp.get_json()["status"] == "started"
        assert routes._jobs[job_id]["pipeline"].wait(5)
        assert rd.call_args[0][2].apply_zoom_effects is True

        resp = client.get(f"/api/jobs/{job_id}/result")
        assert resp.status_code == 200
        assert resp.data == b"VIDEO"

    def test_process_without_cut_points(self, client):
        job_id = _ready_job(client)
        for _ in range(2):
            client.delete(f"/api/jobs/{job_id}/cut-points/0")
        resp = client.post(f"/api/jobs/{job_id}/process", json={})
        assert resp.status_code == 400
        assert resp.get_json()["error_kind"] == "NoCutPoints"

    def test_process_wrong_stage(self, client, stages):
        ex, _, _ = stages
        ex.side_effect = UnreadableSource("nope")
        job_id = _ready_job(client)
        assert client.post(f"/api/jobs/{job_id}/process", json={}).status_code == 409

    def test_download_not_complete(self, client):
        job_id = _ready_job(client)
        resp = client.get(f"/api/jobs/{job_id}/result")
        assert resp.status_code == 409

    def test_download_unknown_job(self, client):
        resp = client.get("/api/jobs/nonexistent/result")
        assert resp.status_code == 404


class TestRetryAndCancel:
    def test_retry_after_failure(self, client, stages):
        _, tr, _ = stages
        tr.side_effect = [UnreadableSource("locked"), TRANSCRIPT]
        job_id = _ready_job(client)
        assert client.get(f"/api/jobs/{job_id}/status").get_json()["stage"] == "TRANSCRIBE"

        assert client.post(f"/api/jobs/{job_id}/retry").status_code == 200
        assert routes._jobs[job_id]["pipeline"].wait(5)
        assert client.get(f"/api/jobs/{job_id}/status").get_json()["stage"] == "ANALYZE_TRANSCRIPT"

    def test_retry_nothing_failed(self, client):
        job_id = _ready_job(client)
        assert client.post(f"/api/jobs/{job_id}/retry").status_code == 409

    def test_cancel_idle(self, client):
        job_id = _ready_job(client)
        resp = client.post(f"/api/jobs/{job_id}/cancel")
        assert resp.get_json()["status"] == "idle"


class TestProgressStream:
    def test_stream_ends_with_final_state(self, client):
        job_id = _ready_job(client)
        resp = client.get(f"/api/jobs/{job_id}/progress")
        assert resp.mimetype == "text/event-stream"
        events = [
            json.loads(line[len("data: "):])
            for line in resp.get_data(as_text=True).splitlines()
            if line.startswith("data: ")
        ]
        assert events[-1]["final"] is True
        assert events[-1]["stage"] == "ANALYZE_TRANSCRIPT"


class TestDeleteJob:
    def test_delete_cleans_up(self, client, tmp_path):
        job_id = _ready_job(client)
        work_dir = routes._jobs[job_id]["pipeline"].work_dir
        assert client.delete(f"/api/jobs/{job_id}").status_code == 200
        assert not (tmp_path / job_id).exists()
        assert not work_dir.exists()
        assert client.get(f"/api/jobs/{job_id}/status").status_code == 404
