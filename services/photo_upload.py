"""
Upload pipeline: Normalize -> Validate -> Resolve path -> Upload each file ->
Record metadata (optional).

Everything remote is built once at process start (``build_upload_service``)
and injected; nothing here keeps module-level clients.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional, Sequence

from config_loader import UploadSettings
from services import google_credentials
from services.drive_folders import FolderResolver
from services.errors import RemoteStorageError, ValidationError
from services.field_normalizer import CanonicalFields, missing_required, normalize
from services.sheet_recorder import SheetRecorder, make_row
from services.upload_dispatcher import (
    FileBlob,
    UploadDispatcher,
    UploadResult,
    naming_context,
    release_temp_file,
)

logger = logging.getLogger(__name__)


@dataclass
class UploadOutcome:
    fields: CanonicalFields
    folder_id: str
    results: List[UploadResult] = field(default_factory=list)
    recorded: bool = False

    @property
    def links(self) -> List[str]:
        return [r.share_link for r in self.results]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": True,
            "message": "uploaded",
            "links": self.links,
            "files": [r.to_dict() for r in self.results],
            "folderId": self.folder_id,
            "recorded": self.recorded,
        }


class PhotoUploadService:
    def __init__(
        self,
        settings: UploadSettings,
        resolver: FolderResolver,
        dispatcher: UploadDispatcher,
        recorder: Optional[SheetRecorder] = None,
    ) -> None:
        self.settings = settings
        self.resolver = resolver
        self.dispatcher = dispatcher
        self.recorder = recorder

    def validate(self, fields: CanonicalFields, files: Sequence[FileBlob]) -> None:
        missing = missing_required(fields)
        if not files:
            if not missing:
                raise ValidationError("no file", missing=["file"], message="no file")
            missing = ["file"] + missing

        if missing:
            raise ValidationError(
                f"missing required fields: {', '.join(missing)}",
                missing=missing,
                message="missing required fields",
            )

        oversized = [f.original_name for f in files if f.size_bytes > self.settings.max_file_bytes]
        if oversized:
            limit_mb = self.settings.max_file_bytes // (1024 * 1024)
            raise ValidationError(
                f"file too large (limit {limit_mb}MB): {', '.join(oversized)}",
                message="file too large",
            )

    def record(self, outcome: UploadOutcome, *, now: Optional[datetime] = None) -> bool:
        if self.recorder is None or not self.recorder.enabled:
            return False
        f = outcome.fields
        row = make_row(f.date, f.work_type, f.address, f.uploader, f.memo, outcome.links, now=now)
        try:
            return self.recorder.append_row(row)
        except RemoteStorageError:
            # Fire-and-forget: the photos are already stored.
            logger.exception("Sheet append failed for folder %s", outcome.folder_id)
            return False

    def handle(self, raw_body: Mapping[str, Any], files: Sequence[FileBlob]) -> UploadOutcome:
        """
        Run one request through the pipeline.

        Temporary files are released on every exit path, including
        validation failures before any remote call.
        """
        try:
            fields = normalize(raw_body)
            self.validate(fields, files)

            folder_id = self.resolver.build_path(self.settings.root_folder_name, fields.date, fields.work_type)
            naming = naming_context(fields.uploader, fields.date, fields.work_type)
            results = self.dispatcher.dispatch(files, folder_id, naming)
        finally:
            for blob in files:
                release_temp_file(blob)

        outcome = UploadOutcome(fields=fields, folder_id=folder_id, results=results)
        outcome.recorded = self.record(outcome)
        logger.info(
            "Upload done date=%s workType=%s files=%d folder=%s recorded=%s",
            fields.date,
            fields.work_type,
            len(results),
            folder_id,
            outcome.recorded,
        )
        return outcome


def build_upload_service(settings: UploadSettings) -> PhotoUploadService:
    """Authenticate once and wire the Google clients into the pipeline."""
    info = google_credentials.load_service_account_info(
        file_path=settings.service_account_file,
        inline_json=settings.service_account_json,
        fallback_file=settings.fallback_credentials_file,
    )
    creds = google_credentials.build_credentials(info, verify=settings.verify_credentials)
    drive = google_credentials.build_drive_service(creds)

    recorder = None
    if settings.spreadsheet_id:
        recorder = SheetRecorder(
            google_credentials.build_sheets_service(creds),
            settings.spreadsheet_id,
            sheet_name=settings.sheet_name,
        )
    else:
        logger.info("No spreadsheet configured; metadata rows are not recorded")

    return PhotoUploadService(
        settings,
        FolderResolver(drive, shared_drive_id=settings.shared_drive_id),
        UploadDispatcher(
            drive,
            share_with_anyone=settings.share_with_anyone,
            keep_original_name=settings.keep_original_name,
        ),
        recorder,
    )
