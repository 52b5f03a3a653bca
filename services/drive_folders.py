"""
Drive folder lookup-or-create and the ``root/date/work type`` path builder.

Drive has no conditional create, so ``resolve_or_create`` is a list followed
by an optional create. Calls for the same (name, parent) pair are serialized
inside this process; two processes can still both create the same folder, in
which case later lookups simply take the first one returned.
"""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Dict, Iterator, List, Optional, Tuple

from google.auth.exceptions import GoogleAuthError
from googleapiclient.errors import HttpError
from httplib2 import HttpLib2Error

from services.errors import InvalidArgument, RemoteStorageError

logger = logging.getLogger(__name__)

FOLDER_MIME_TYPE = "application/vnd.google-apps.folder"

# Failures of the remote client: API errors, auth, transport.
REMOTE_ERRORS = (HttpError, GoogleAuthError, HttpLib2Error, OSError)


@dataclass(frozen=True)
class FolderRef:
    name: str
    parent_id: Optional[str]
    id: str


def escape_query_value(value: str) -> str:
    return value.replace("\\", "\\\\").replace("'", "\\'")


class _KeyedLocks:
    """One lock per key, dropped again once nobody holds or waits for it."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: Dict[Tuple[str, Optional[str]], List[Any]] = {}

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)

    @contextmanager
    def hold(self, key: Tuple[str, Optional[str]]) -> Iterator[None]:
        with self._guard:
            entry = self._locks.get(key)
            if entry is None:
                entry = self._locks[key] = [threading.Lock(), 0]
            entry[1] += 1
        try:
            with entry[0]:
                yield
        finally:
            with self._guard:
                entry[1] -= 1
                if entry[1] == 0:
                    del self._locks[key]


class FolderResolver:
    def __init__(self, drive: Any, *, shared_drive_id: Optional[str] = None) -> None:
        self._drive = drive
        self._shared_drive_id = shared_drive_id or None
        self._locks = _KeyedLocks()

    def _list_kwargs(self) -> Dict[str, Any]:
        kwargs: Dict[str, Any] = {"fields": "files(id, name)", "pageSize": 10}
        if self._shared_drive_id:
            kwargs.update(
                corpora="drive",
                driveId=self._shared_drive_id,
                includeItemsFromAllDrives=True,
                supportsAllDrives=True,
            )
        return kwargs

    def _query(self, name: str, parent_id: Optional[str]) -> str:
        clauses = [
            f"name = '{escape_query_value(name)}'",
            f"mimeType = '{FOLDER_MIME_TYPE}'",
            "trashed = false",
        ]
        if parent_id:
            clauses.append(f"'{escape_query_value(parent_id)}' in parents")
        elif not self._shared_drive_id:
            clauses.append("'root' in parents")
        return " and ".join(clauses)

    def find(self, name: str, parent_id: Optional[str] = None) -> Optional[str]:
        resp = self._drive.files().list(q=self._query(name, parent_id), **self._list_kwargs()).execute()
        files = (resp or {}).get("files") or []
        if files:
            return files[0]["id"]
        return None

    def create(self, name: str, parent_id: Optional[str] = None) -> str:
        body: Dict[str, Any] = {"name": name, "mimeType": FOLDER_MIME_TYPE}
        parent = parent_id or self._shared_drive_id
        if parent:
            body["parents"] = [parent]
        created = self._drive.files().create(body=body, fields="id", supportsAllDrives=True).execute()
        return created["id"]

    def resolve(self, name: str, parent_id: Optional[str] = None) -> FolderRef:
        clean = (name or "").strip()
        if not clean:
            raise InvalidArgument("Folder name must not be empty", message="invalid folder name")

        with self._locks.hold((clean, parent_id)):
            try:
                folder_id = self.find(clean, parent_id)
                if folder_id:
                    return FolderRef(clean, parent_id, folder_id)
                folder_id = self.create(clean, parent_id)
            except REMOTE_ERRORS as e:
                logger.exception("Drive folder lookup/create failed name=%r parent=%s", clean, parent_id)
                raise RemoteStorageError(str(e))

        logger.info("Created Drive folder %r id=%s parent=%s", clean, folder_id, parent_id)
        return FolderRef(clean, parent_id, folder_id)

    def resolve_or_create(self, name: str, parent_id: Optional[str] = None) -> str:
        return self.resolve(name, parent_id).id

    def build_path(self, root_name: str, date: str, work_type: str) -> str:
        # Each level needs the previous id, so this is strictly sequential.
        root_id = self.resolve_or_create(root_name)
        date_id = self.resolve_or_create(date, root_id)
        return self.resolve_or_create(work_type, date_id)
