"""
YAML-backed configuration loader with environment-variable overrides.

- Safe defaults from config.yml
- Environment variables override deployment-specific values (credentials,
  shared drive id, spreadsheet id, port)
- Read once at process start; ``UploadSettings`` is the immutable view that
  gets injected into the upload services
"""

from __future__ import annotations

from dataclasses import dataclass
import os
from typing import Any, Dict, List, Optional

import yaml

DEFAULT_ROOT_FOLDER_NAME = "공사사진"


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Recursively merge override into base (override wins)."""
    out: Dict[str, Any] = dict(base)
    for k, v in override.items():
        if isinstance(v, dict) and isinstance(out.get(k), dict):
            out[k] = _deep_merge(out[k], v)
        else:
            out[k] = v
    return out


def _parse_bool(value: Any, default: Optional[bool] = None) -> Optional[bool]:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    v = str(value).strip().lower()
    if v in ("1", "true", "yes", "y", "on"):
        return True
    if v in ("0", "false", "no", "n", "off"):
        return False
    return default


def _parse_int(value: Any, default: int) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


# env var -> config path
_ENV_STRINGS = {
    "GOOGLE_SHARED_DRIVE_ID": ("drive", "shared_drive_id"),
    "DRIVE_ROOT_FOLDER_NAME": ("drive", "root_folder_name"),
    "GOOGLE_SERVICE_ACCOUNT_FILE": ("google", "service_account_file"),
    "GOOGLE_SERVICE_ACCOUNT_JSON": ("google", "service_account_json"),
    "SPREADSHEET_ID": ("sheets", "spreadsheet_id"),
    "SHEET_NAME": ("sheets", "sheet_name"),
    "UPLOAD_DIR": ("uploads", "dir"),
    "LOG_LEVEL": ("logging", "level"),
}
_ENV_INTS = {
    "PORT": ("app", "port"),
    "MAX_FILE_MB": ("uploads", "max_file_mb"),
    "MAX_REQUEST_MB": ("uploads", "max_request_mb"),
}
_ENV_BOOLS = {
    "DRIVE_SHARE_WITH_ANYONE": ("drive", "share_with_anyone"),
    "KEEP_ORIGINAL_NAME": ("uploads", "keep_original_name"),
    "GOOGLE_VERIFY_ON_STARTUP": ("google", "verify_on_startup"),
}


def _nested(path: tuple, value: Any) -> Dict[str, Any]:
    section, key = path
    return {section: {key: value}}


def _env_override_dict() -> Dict[str, Any]:
    """
    Map env vars to config keys.
    Keep this small and explicit.
    """
    overrides: Dict[str, Any] = {}

    for name, path in _ENV_STRINGS.items():
        value = os.getenv(name)
        if value:
            overrides = _deep_merge(overrides, _nested(path, value))

    for name, path in _ENV_INTS.items():
        value = os.getenv(name)
        if value and value.strip().isdigit():
            overrides = _deep_merge(overrides, _nested(path, int(value)))

    for name, path in _ENV_BOOLS.items():
        flag = _parse_bool(os.getenv(name))
        if flag is not None:
            overrides = _deep_merge(overrides, _nested(path, flag))

    # CORS origins (comma-separated)
    cors_origins = os.getenv("CORS_ORIGINS")
    if cors_origins:
        origins = [o.strip() for o in cors_origins.split(",") if o.strip()]
        overrides = _deep_merge(overrides, {"app": {"cors": {"origins": origins}}})

    return overrides


def load_config(path: Optional[str] = None) -> Dict[str, Any]:
    """
    Load config.yml and apply environment overrides.
    """
    config_path = path or os.getenv("APP_CONFIG_PATH", "config.yml")
    if not os.path.exists(config_path):
        # Safe fallback: empty config; UploadSettings supplies defaults
        cfg: Dict[str, Any] = {}
    else:
        with open(config_path, "r", encoding="utf-8") as f:
            cfg = yaml.safe_load(f) or {}

    return _deep_merge(cfg, _env_override_dict())


@dataclass(frozen=True)
class UploadSettings:
    root_folder_name: str = DEFAULT_ROOT_FOLDER_NAME
    shared_drive_id: Optional[str] = None
    share_with_anyone: bool = False
    service_account_file: Optional[str] = None
    service_account_json: Optional[str] = None
    fallback_credentials_file: Optional[str] = "service-account.json"
    verify_credentials: bool = False
    spreadsheet_id: Optional[str] = None
    sheet_name: str = "Sheet1"
    upload_dir: str = "uploads"
    max_file_bytes: int = 25 * 1024 * 1024
    max_request_bytes: int = 200 * 1024 * 1024
    keep_original_name: bool = False
    port: int = 10000
    cors_origins: tuple = ("*",)

    @classmethod
    def from_config(cls, cfg: Optional[Dict[str, Any]] = None) -> "UploadSettings":
        cfg = cfg or {}
        drive = cfg.get("drive") or {}
        google = cfg.get("google") or {}
        sheets = cfg.get("sheets") or {}
        uploads = cfg.get("uploads") or {}
        app_cfg = cfg.get("app") or {}

        origins: List[str] = list(((app_cfg.get("cors") or {}).get("origins")) or ["*"])

        return cls(
            root_folder_name=str(drive.get("root_folder_name") or DEFAULT_ROOT_FOLDER_NAME),
            shared_drive_id=drive.get("shared_drive_id") or None,
            share_with_anyone=bool(_parse_bool(drive.get("share_with_anyone"), False)),
            service_account_file=google.get("service_account_file") or None,
            service_account_json=google.get("service_account_json") or None,
            fallback_credentials_file=google.get("fallback_file", "service-account.json") or None,
            verify_credentials=bool(_parse_bool(google.get("verify_on_startup"), False)),
            spreadsheet_id=sheets.get("spreadsheet_id") or None,
            sheet_name=str(sheets.get("sheet_name") or "Sheet1"),
            upload_dir=str(uploads.get("dir") or "uploads"),
            max_file_bytes=_parse_int(uploads.get("max_file_mb"), 25) * 1024 * 1024,
            max_request_bytes=_parse_int(uploads.get("max_request_mb"), 200) * 1024 * 1024,
            keep_original_name=bool(_parse_bool(uploads.get("keep_original_name"), False)),
            port=_parse_int(app_cfg.get("port"), 10000),
            cors_origins=tuple(origins),
        )
