from __future__ import annotations

import logging
import mimetypes
import os
import re
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

from googleapiclient.http import MediaIoBaseUpload

from services.drive_folders import REMOTE_ERRORS
from services.errors import RemoteStorageError

logger = logging.getLogger(__name__)

DEFAULT_EXTENSION = "jpg"
_FORBIDDEN_CHARS = re.compile(r'[\\/:*?"<>|]')
_WHITESPACE = re.compile(r"\s+")


@dataclass(frozen=True)
class FileBlob:
    temporary_path: str
    original_name: str
    mime_type: str
    size_bytes: int


@dataclass(frozen=True)
class UploadResult:
    remote_file_id: str
    share_link: str
    name: str = ""

    def to_dict(self) -> Dict[str, str]:
        return {"fileId": self.remote_file_id, "link": self.share_link, "name": self.name}


@dataclass(frozen=True)
class NamingContext:
    uploader: str
    date: str
    work_type: str
    timestamp: datetime


def sanitize_component(value: str) -> str:
    """Drop characters Drive and most filesystems reject, collapse whitespace."""
    s = _FORBIDDEN_CHARS.sub("", value or "")
    s = _WHITESPACE.sub(" ", s)
    return s.strip()


def guess_extension(original_name: str, mime_type: str) -> str:
    _, ext = os.path.splitext(original_name or "")
    ext = sanitize_component(ext.lstrip(".")).replace(" ", "")
    if ext:
        return ext.lower()
    guessed = mimetypes.guess_extension(mime_type or "") if mime_type else None
    if guessed:
        return guessed.lstrip(".")
    return DEFAULT_EXTENSION


def build_filename(blob: FileBlob, naming: NamingContext, seq: int, *, keep_original_name: bool = False) -> str:
    """
    Output name for one file.

    Default pattern: ``{uploader}_{date}_{workType}_{HHMMSS}_{seq}.{ext}``.
    With ``keep_original_name`` the sanitized original name is used when
    anything is left of it.
    """
    if keep_original_name:
        original = sanitize_component(os.path.basename((blob.original_name or "").replace("\\", "/")))
        if original and original.strip("."):
            return original

    parts = [
        sanitize_component(naming.uploader),
        sanitize_component(naming.date),
        sanitize_component(naming.work_type),
        naming.timestamp.strftime("%H%M%S"),
        f"{seq:02d}",
    ]
    stem = "_".join(p for p in parts if p)
    return f"{stem}.{guess_extension(blob.original_name, blob.mime_type)}"


def release_temp_path(path: str) -> None:
    # Best-effort release: a leaked temp file must never fail the request.
    try:
        if path and os.path.exists(path):
            os.remove(path)
    except OSError as e:
        logger.warning("Could not remove temp file %s: %s", path, e)


def release_temp_file(blob: FileBlob) -> None:
    release_temp_path(blob.temporary_path)


class UploadDispatcher:
    def __init__(self, drive: Any, *, share_with_anyone: bool = False, keep_original_name: bool = False) -> None:
        self._drive = drive
        self._share_with_anyone = share_with_anyone
        self._keep_original_name = keep_original_name

    def _upload_one(self, blob: FileBlob, name: str, folder_id: str) -> UploadResult:
        with open(blob.temporary_path, "rb") as fh:
            media = MediaIoBaseUpload(fh, mimetype=blob.mime_type or "application/octet-stream", resumable=True)
            created = (
                self._drive.files()
                .create(
                    body={"name": name, "parents": [folder_id]},
                    media_body=media,
                    fields="id, name, webViewLink",
                    supportsAllDrives=True,
                )
                .execute()
            )
        file_id = created["id"]

        if self._share_with_anyone:
            self._drive.permissions().create(
                fileId=file_id,
                body={"type": "anyone", "role": "reader"},
                supportsAllDrives=True,
            ).execute()

        link = created.get("webViewLink") or f"https://drive.google.com/file/d/{file_id}/view"
        return UploadResult(remote_file_id=file_id, share_link=link, name=created.get("name") or name)

    def dispatch(
        self,
        files: Sequence[FileBlob],
        destination_folder_id: str,
        naming: NamingContext,
    ) -> List[UploadResult]:
        """
        Upload files one at a time, in order, into ``destination_folder_id``.

        Every temporary file is released whether its upload succeeded or not.
        A failure aborts the batch; files already sent stay in Drive and are
        not reported back.
        """
        results: List[UploadResult] = []
        attempted = 0
        try:
            for seq, blob in enumerate(files, start=1):
                name = build_filename(blob, naming, seq, keep_original_name=self._keep_original_name)
                try:
                    result = self._upload_one(blob, name, destination_folder_id)
                except REMOTE_ERRORS as e:
                    logger.exception("Drive upload failed file=%r seq=%s", blob.original_name, seq)
                    raise RemoteStorageError(str(e))
                finally:
                    release_temp_file(blob)
                    attempted = seq

                logger.info("Uploaded %s -> %s (%s bytes)", name, result.remote_file_id, blob.size_bytes)
                results.append(result)
        finally:
            for blob in files[attempted:]:
                release_temp_file(blob)
        return results


def naming_context(uploader: str, date: str, work_type: str, *, now: Optional[datetime] = None) -> NamingContext:
    return NamingContext(uploader=uploader, date=date, work_type=work_type, timestamp=now or datetime.now())
