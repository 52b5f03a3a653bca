"""
Construction Photo Upload - Flask Backend
=========================================

OVERVIEW:
Receives site photos from the web form and files them in Google Drive under
``<root folder>/<date>/<work type>/``. Optionally appends one metadata row per
upload batch to a Google Sheet.

API ENDPOINTS:
- GET|POST /health - liveness, no Drive access
- GET / - landing page (public/index.html) and static assets from public/
- POST /upload - multipart form upload
- POST /upload-json - JSON upload with base64 file data

KNOWN LIMITATIONS:
- Folder lookup-or-create is serialized per process only; two workers can
  still create the same folder twice
- Files of a failed batch that were already sent stay in Drive
- No end-user authentication
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from dotenv import find_dotenv, load_dotenv
from flask import Flask
from flask_cors import CORS
from werkzeug.exceptions import HTTPException, RequestEntityTooLarge

from config_loader import UploadSettings, load_config
from logging_setup import init_request_logging, setup_logging
from routes.spa import spa_bp
from routes.upload_api import EXTENSION_KEY, error_envelope, error_response, upload_api_bp
from services.errors import UploadServiceError
from services.photo_upload import PhotoUploadService, build_upload_service

logger = logging.getLogger(__name__)


def _load_dotenv() -> Optional[str]:
    # Real env vars always win over .env entries.
    dotenv_path = find_dotenv(usecwd=True)
    if not dotenv_path:
        return None
    load_dotenv(dotenv_path=dotenv_path, override=False)
    return dotenv_path


def register_error_handlers(app: Flask) -> None:
    """Every failure leaves as a JSON envelope, never an HTML error page."""

    @app.errorhandler(UploadServiceError)
    def _service_error(e: UploadServiceError):
        return error_response(e)

    @app.errorhandler(RequestEntityTooLarge)
    def _too_large(e: RequestEntityTooLarge):
        logger.warning("Request rejected: payload too large (%s bytes)", app.config.get("MAX_CONTENT_LENGTH"))
        return error_envelope("request too large", e.description or "payload too large", 400)

    @app.errorhandler(HTTPException)
    def _http_error(e: HTTPException):
        status = e.code or 500
        message = "bad request" if status == 400 else (e.name or "error").lower()
        return error_envelope(message, e.description or str(e), status)

    @app.errorhandler(Exception)
    def _unhandled(e: Exception):
        logger.exception("Unhandled error")
        return error_envelope("server error", str(e), 500)


def create_app(
    cfg: Optional[Dict[str, Any]] = None,
    *,
    upload_service: Optional[PhotoUploadService] = None,
) -> Flask:
    """
    Build the Flask app.

    Configuration and the Google clients are created once here and injected
    into the upload pipeline; missing credentials fail startup with
    ``ConfigurationError``.
    """
    dotenv_path = None
    if cfg is None:
        dotenv_path = _load_dotenv()
        cfg = load_config()
    setup_logging(cfg)
    if dotenv_path:
        logger.info("Loaded environment variables from %s", dotenv_path)

    settings = upload_service.settings if upload_service is not None else UploadSettings.from_config(cfg)
    if upload_service is None:
        upload_service = build_upload_service(settings)

    app = Flask(__name__, static_folder=None)
    app.config["APP_CFG"] = cfg
    app.config["UPLOAD_SETTINGS"] = settings
    app.config["MAX_CONTENT_LENGTH"] = settings.max_request_bytes
    app.extensions[EXTENSION_KEY] = upload_service

    CORS(app, origins=list(settings.cors_origins))
    init_request_logging(app)
    register_error_handlers(app)

    app.register_blueprint(upload_api_bp)
    app.register_blueprint(spa_bp)

    logger.info(
        "App ready root=%r shared_drive=%s spreadsheet=%s",
        settings.root_folder_name,
        settings.shared_drive_id or "-",
        settings.spreadsheet_id or "-",
    )
    return app
