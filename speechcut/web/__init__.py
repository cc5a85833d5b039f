"""Flask application factory for the SpeechCut HTTP API."""

import tempfile
from pathlib import Path

from flask import Flask, jsonify

DEFAULT_MAX_UPLOAD_BYTES = 4 * 1024 ** 3


def create_app(
    work_dir: Path | None = None,
    max_upload_bytes: int = DEFAULT_MAX_UPLOAD_BYTES,
) -> Flask:
    """Build the API app. Each uploaded video gets a job directory under ``work_dir``."""
    app = Flask(__name__)
    app.config["WORK_DIR"] = Path(work_dir or tempfile.mkdtemp(prefix="speechcut_web_"))
    app.config["MAX_CONTENT_LENGTH"] = max_upload_bytes

    from speechcut.web.routes import bp
    app.register_blueprint(bp)

    @app.errorhandler(404)
    def not_found(error):
        return jsonify({"error": "Not found"}), 404

    @app.errorhandler(413)
    def upload_too_large(error):
        limit_mb = app.config["MAX_CONTENT_LENGTH"] / 1024 ** 2
        return jsonify({"error": f"Upload exceeds the {limit_mb:.0f} MB limit"}), 413

    return app
