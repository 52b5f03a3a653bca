from __future__ import annotations

import json
import logging
import os
from typing import Any, Callable, Dict, Optional

import httplib2
from google.auth.exceptions import GoogleAuthError
from google.auth.transport.requests import Request
from google.oauth2 import service_account
from google_auth_httplib2 import AuthorizedHttp
from googleapiclient.discovery import build
from googleapiclient.http import HttpRequest

from services.errors import ConfigurationError

logger = logging.getLogger(__name__)

SCOPES = (
    "https://www.googleapis.com/auth/drive",
    "https://www.googleapis.com/auth/spreadsheets",
)


def _parse_json(raw: str, source: str) -> Dict[str, Any]:
    try:
        info = json.loads(raw)
    except ValueError as e:
        raise ConfigurationError(f"Service account JSON from {source} is not valid JSON: {e}")
    if not isinstance(info, dict):
        raise ConfigurationError(f"Service account JSON from {source} must be an object")
    return info


def load_service_account_info(
    *,
    file_path: Optional[str] = None,
    inline_json: Optional[str] = None,
    fallback_file: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Resolve service-account credentials.

    Precedence: explicit file path -> inline JSON -> local fallback file.
    Hosting dashboards often store the inline JSON with the private key
    double-escaped; literal ``\\n`` sequences left in the key after parsing
    are turned back into newlines so the key stays valid.
    """
    if file_path:
        if not os.path.isfile(file_path):
            raise ConfigurationError(f"Service account file not found: {file_path}")
        with open(file_path, "r", encoding="utf-8") as f:
            logger.info("Using service account file %s", file_path)
            return _parse_json(f.read(), file_path)

    if inline_json and inline_json.strip():
        logger.info("Using inline service account JSON")
        info = _parse_json(inline_json, "GOOGLE_SERVICE_ACCOUNT_JSON")
        key = info.get("private_key")
        if isinstance(key, str):
            info["private_key"] = key.replace("\\n", "\n")
        return info

    if fallback_file and os.path.isfile(fallback_file):
        with open(fallback_file, "r", encoding="utf-8") as f:
            logger.info("Using fallback service account file %s", fallback_file)
            return _parse_json(f.read(), fallback_file)

    raise ConfigurationError(
        "Missing Google credentials. Set GOOGLE_SERVICE_ACCOUNT_FILE or GOOGLE_SERVICE_ACCOUNT_JSON"
        + (f", or provide {fallback_file}" if fallback_file else "")
    )


def build_credentials(info: Dict[str, Any], *, verify: bool = False) -> service_account.Credentials:
    try:
        creds = service_account.Credentials.from_service_account_info(info, scopes=list(SCOPES))
    except (ValueError, KeyError) as e:
        raise ConfigurationError(f"Invalid service account credentials: {e}")

    if verify:
        # Optional auth check: fetch one token now instead of on the first upload.
        try:
            creds.refresh(Request())
        except GoogleAuthError as e:
            raise ConfigurationError(f"Service account authentication failed: {e}")
        logger.info("Service account %s authenticated", info.get("client_email"))
    return creds


def _request_builder(creds: Any) -> Callable[..., HttpRequest]:
    # httplib2.Http is not thread-safe: every request gets its own connection
    # authorized with the shared credentials.
    def build_request(http: Any, *args: Any, **kwargs: Any) -> HttpRequest:
        return HttpRequest(AuthorizedHttp(creds, http=httplib2.Http()), *args, **kwargs)

    return build_request


def build_drive_service(creds: Any) -> Any:
    return build("drive", "v3", credentials=creds, requestBuilder=_request_builder(creds), cache_discovery=False)


def build_sheets_service(creds: Any) -> Any:
    return build("sheets", "v4", credentials=creds, requestBuilder=_request_builder(creds), cache_discovery=False)
