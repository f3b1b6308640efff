## routes.py
from __future__ import annotations

from pathlib import Path

from flask import Blueprint, Flask, abort, send_from_directory

INDEX_NAME = "index.html"


def _resolve(public_dir: Path, filename: str) -> Path:
    full = (public_dir / filename).resolve()
    root = public_dir.resolve()
    if full != root and root not in full.parents:
        abort(403)
    if full.is_dir():
        full = full / INDEX_NAME
    if not full.is_file():
        abort(404)
    return full


def create_blueprint(public_dir: Path) -> Blueprint:
    bp = Blueprint("preview", __name__)

    @bp.get("/")
    def index():
        full = _resolve(public_dir, INDEX_NAME)
        return send_from_directory(str(full.parent), full.name)

    @bp.get("/<path:filename>")
    def static_file(filename: str):
        full = _resolve(public_dir, filename)
        return send_from_directory(str(full.parent), full.name)

    @bp.after_app_request
    def no_cache(response):
        # Every rebuild should show up on the next reload.
        response.headers["Cache-Control"] = "no-store"
        return response

    return bp


def create_preview_app(public_dir: Path) -> Flask:
    app = Flask(__name__, static_folder=None)
    app.config["SEND_FILE_MAX_AGE_DEFAULT"] = 0
    app.register_blueprint(create_blueprint(public_dir))
    return app
