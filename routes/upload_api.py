from __future__ import annotations

import base64
import binascii
import logging
import os
import uuid
from typing import Any, Dict, Iterable, List, Tuple

from flask import Blueprint, current_app, g, jsonify, request

from services.errors import UploadServiceError, ValidationError
from services.field_normalizer import pick_file_parts
from services.photo_upload import PhotoUploadService
from services.upload_dispatcher import FileBlob, release_temp_path

upload_api_bp = Blueprint("upload_api", __name__)
logger = logging.getLogger(__name__)

EXTENSION_KEY = "photo_upload"


def get_upload_service() -> PhotoUploadService:
    return current_app.extensions[EXTENSION_KEY]


def error_envelope(message: str, error: str, status: int):
    return jsonify({"success": False, "message": message, "error": error}), status


def error_response(exc: UploadServiceError):
    return error_envelope(exc.message, exc.detail, exc.status_code)


def _temp_path(upload_dir: str) -> str:
    os.makedirs(upload_dir, exist_ok=True)
    return os.path.join(upload_dir, uuid.uuid4().hex)


def _save_parts(parts: Iterable[Any], upload_dir: str) -> List[FileBlob]:
    """Write multipart file parts to request-private temp files."""
    blobs: List[FileBlob] = []
    path = None
    try:
        for part in parts:
            path = _temp_path(upload_dir)
            part.save(path)
            blobs.append(
                FileBlob(
                    temporary_path=path,
                    original_name=part.filename or "",
                    mime_type=part.mimetype or "application/octet-stream",
                    size_bytes=os.path.getsize(path),
                )
            )
            path = None
    except OSError:
        for p in [b.temporary_path for b in blobs] + ([path] if path else []):
            release_temp_path(p)
        raise
    return blobs


def _decode_data(data: str) -> bytes:
    # Accept both raw base64 and data URLs ("data:image/jpeg;base64,....").
    if data.startswith("data:") and "," in data:
        data = data.split(",", 1)[1]
    return base64.b64decode(data, validate=True)


def _mime_from_data_url(data: str) -> str:
    if data.startswith("data:") and ";" in data:
        return data[5:].split(";", 1)[0]
    return ""


def _save_json_files(items: Any, upload_dir: str) -> List[FileBlob]:
    if not isinstance(items, list):
        raise ValidationError("files must be a list", message="invalid payload")

    blobs: List[FileBlob] = []
    try:
        for idx, item in enumerate(items, start=1):
            if not isinstance(item, dict) or not item.get("data"):
                raise ValidationError(f"file #{idx} has no data", message="invalid payload")
            raw = str(item["data"])
            try:
                content = _decode_data(raw)
            except (binascii.Error, ValueError):
                raise ValidationError(f"file #{idx} is not valid base64", message="invalid payload")

            path = _temp_path(upload_dir)
            with open(path, "wb") as f:
                f.write(content)
            blobs.append(
                FileBlob(
                    temporary_path=path,
                    original_name=str(item.get("name") or item.get("filename") or ""),
                    mime_type=str(item.get("mimeType") or item.get("type") or _mime_from_data_url(raw) or "application/octet-stream"),
                    size_bytes=len(content),
                )
            )
    except (ValidationError, OSError):
        for b in blobs:
            release_temp_path(b.temporary_path)
        raise
    return blobs


def _run(raw_body: Any, blobs: List[FileBlob]) -> Tuple[Any, int]:
    g.upload_file_count = len(blobs)
    service = get_upload_service()
    try:
        outcome = service.handle(raw_body, blobs)
    except UploadServiceError as e:
        if e.status_code >= 500:
            logger.error("Upload failed: %s", e.detail)
        else:
            logger.info("Upload rejected: %s", e.detail)
        return error_response(e)
    return jsonify(outcome.to_dict()), 200


@upload_api_bp.post("/upload")
def upload():
    service = get_upload_service()
    parts = pick_file_parts(request.files)
    try:
        blobs = _save_parts(parts, service.settings.upload_dir)
    except OSError as e:
        logger.exception("Could not store uploaded file")
        return error_envelope("server error", str(e), 500)
    return _run(request.form, blobs)


@upload_api_bp.post("/upload-json")
def upload_json():
    service = get_upload_service()
    payload: Dict[str, Any] = request.get_json(silent=True) or {}
    if not isinstance(payload, dict):
        return error_envelope("invalid payload", "JSON body must be an object", 400)

    try:
        blobs = _save_json_files(payload.get("files") or [], service.settings.upload_dir)
    except UploadServiceError as e:
        return error_response(e)
    except OSError as e:
        logger.exception("Could not store uploaded file")
        return error_envelope("server error", str(e), 500)
    return _run(payload, blobs)
