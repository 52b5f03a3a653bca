from __future__ import annotations
import os

from flask import Blueprint, current_app, jsonify, send_from_directory

spa_bp = Blueprint("spa", __name__)

PUBLIC_DIR = "public"


def _public_dir() -> str:
    return os.path.join(current_app.root_path, PUBLIC_DIR)


def _no_cache(response):
    response.headers["Cache-Control"] = "no-cache, no-store, must-revalidate"
    response.headers["Pragma"] = "no-cache"
    response.headers["Expires"] = "0"
    return response


@spa_bp.route("/")
def index():
    return _no_cache(send_from_directory(_public_dir(), "index.html"))


@spa_bp.route("/health", methods=["GET", "POST"])
def health_check():
    """
    Health check endpoint for deployment monitoring.

    Returns immediately without touching Drive or credentials.
    """
    return jsonify({"ok": True}), 200


@spa_bp.route("/<path:filename>")
def serve_static(filename: str):
    return send_from_directory(_public_dir(), filename)
