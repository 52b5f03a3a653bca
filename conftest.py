"""In-memory stand-ins for the Drive v3 and Sheets v4 resources."""

from __future__ import annotations

import itertools
import re
import threading
import time
from typing import Any, Callable, Dict, List, Optional

import httplib2
import pytest
from googleapiclient.errors import HttpError

from app import create_app
from config_loader import UploadSettings
from services.drive_folders import FOLDER_MIME_TYPE, FolderResolver
from services.photo_upload import PhotoUploadService
from services.sheet_recorder import SheetRecorder
from services.upload_dispatcher import FileBlob, UploadDispatcher

_NAME_RE = re.compile(r"name = '((?:[^'\\]|\\.)*)'")
_PARENT_RE = re.compile(r"'((?:[^'\\]|\\.)*)' in parents")


def _unescape(value: str) -> str:
    return re.sub(r"\\(.)", r"\1", value)


def make_http_error(status: int = 500, message: str = "backend error") -> HttpError:
    content = ('{"error": {"code": %d, "message": "%s"}}' % (status, message)).encode("utf-8")
    return HttpError(httplib2.Response({"status": str(status)}), content)


class _Call:
    def __init__(self, fn: Callable[[], Any]) -> None:
        self._fn = fn

    def execute(self) -> Any:
        return self._fn()


class FakeDrive:
    def __init__(self, *, list_delay: float = 0.0) -> None:
        self.items: List[Dict[str, Any]] = []
        self.calls: List[tuple] = []
        self.permissions_created: List[Dict[str, Any]] = []
        self.uploaded_bytes: Dict[str, bytes] = {}
        self.fail_on_upload: Dict[int, HttpError] = {}
        self.fail_next_list: Optional[HttpError] = None
        self.list_delay = list_delay
        self._upload_count = 0
        self._ids = itertools.count(1)
        self._lock = threading.Lock()

    # resource accessors
    def files(self) -> "FakeDrive":
        return self

    def permissions(self) -> "_Permissions":
        return _Permissions(self)

    @property
    def folders(self) -> List[Dict[str, Any]]:
        return [i for i in self.items if i["mimeType"] == FOLDER_MIME_TYPE]

    @property
    def uploads(self) -> List[Dict[str, Any]]:
        return [i for i in self.items if i["mimeType"] != FOLDER_MIME_TYPE]

    def list(self, q: str, **kwargs: Any) -> _Call:
        def run() -> Dict[str, Any]:
            self.calls.append(("list", q, kwargs))
            if self.fail_next_list is not None:
                err, self.fail_next_list = self.fail_next_list, None
                raise err
            if self.list_delay:
                time.sleep(self.list_delay)
            name = _unescape(_NAME_RE.search(q).group(1))
            parent_match = _PARENT_RE.search(q)
            parent = _unescape(parent_match.group(1)) if parent_match else None
            with self._lock:
                found = [
                    {"id": i["id"], "name": i["name"]}
                    for i in self.folders
                    if i["name"] == name and (parent is None or parent in i["parents"])
                ]
            return {"files": found}

        return _Call(run)

    def create(self, body: Dict[str, Any], fields: str = "", media_body: Any = None, **kwargs: Any) -> _Call:
        def run() -> Dict[str, Any]:
            self.calls.append(("create", body, kwargs))
            with self._lock:
                if media_body is not None:
                    self._upload_count += 1
                    if self._upload_count in self.fail_on_upload:
                        raise self.fail_on_upload[self._upload_count]
                    prefix = "file"
                else:
                    prefix = "folder"
                item_id = f"{prefix}-{next(self._ids)}"
                item = {
                    "id": item_id,
                    "name": body["name"],
                    "mimeType": body.get("mimeType") or (media_body.mimetype() if media_body else ""),
                    "parents": list(body.get("parents") or ["root"]),
                }
                self.items.append(item)
                if media_body is not None:
                    self.uploaded_bytes[item_id] = media_body.getbytes(0, media_body.size())
            return {
                "id": item_id,
                "name": body["name"],
                "webViewLink": f"https://drive.google.com/file/d/{item_id}/view",
            }

        return _Call(run)


class _Permissions:
    def __init__(self, drive: FakeDrive) -> None:
        self._drive = drive

    def create(self, fileId: str, body: Dict[str, Any], **kwargs: Any) -> _Call:
        def run() -> Dict[str, Any]:
            self._drive.permissions_created.append({"fileId": fileId, **body})
            return {"id": "perm-1"}

        return _Call(run)


class FakeSheets:
    def __init__(self) -> None:
        self.appended: List[Dict[str, Any]] = []
        self.fail_with: Optional[HttpError] = None

    def spreadsheets(self) -> "FakeSheets":
        return self

    def values(self) -> "FakeSheets":
        return self

    def append(self, **kwargs: Any) -> _Call:
        def run() -> Dict[str, Any]:
            if self.fail_with is not None:
                raise self.fail_with
            self.appended.append(kwargs)
            return {"updates": {"updatedRows": 1}}

        return _Call(run)


@pytest.fixture
def fake_drive() -> FakeDrive:
    return FakeDrive()


@pytest.fixture
def fake_sheets() -> FakeSheets:
    return FakeSheets()


@pytest.fixture
def upload_dir(tmp_path):
    path = tmp_path / "uploads"
    path.mkdir()
    return path


@pytest.fixture
def settings(upload_dir) -> UploadSettings:
    return UploadSettings(upload_dir=str(upload_dir), spreadsheet_id="sheet-123", sheet_name="사진기록")


@pytest.fixture
def make_blob(upload_dir):
    counter = itertools.count(1)

    def _make(original_name: str = "photo.jpg", data: bytes = b"\xff\xd8fake-jpeg", mime_type: str = "image/jpeg") -> FileBlob:
        path = upload_dir / f"tmp-{next(counter)}"
        path.write_bytes(data)
        return FileBlob(str(path), original_name, mime_type, len(data))

    return _make


@pytest.fixture
def upload_service(settings, fake_drive, fake_sheets) -> PhotoUploadService:
    return PhotoUploadService(
        settings,
        FolderResolver(fake_drive, shared_drive_id=settings.shared_drive_id),
        UploadDispatcher(fake_drive),
        SheetRecorder(fake_sheets, settings.spreadsheet_id, sheet_name=settings.sheet_name),
    )


@pytest.fixture
def app(upload_service):
    flask_app = create_app({}, upload_service=upload_service)
    flask_app.config["TESTING"] = True
    return flask_app


@pytest.fixture
def client(app):
    return app.test_client()
