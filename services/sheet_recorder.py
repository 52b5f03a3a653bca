from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Optional, Sequence, Tuple

from services.drive_folders import REMOTE_ERRORS
from services.errors import RemoteStorageError

logger = logging.getLogger(__name__)

SheetRow = Tuple[str, str, str, str, str, str, str]


def make_row(
    date: str,
    work_type: str,
    address: str,
    uploader: str,
    memo: str,
    links: Sequence[str],
    *,
    now: Optional[datetime] = None,
) -> SheetRow:
    stamp = (now or datetime.now()).strftime("%Y-%m-%d %H:%M:%S")
    return (date, work_type, address, uploader, memo, "\n".join(links), stamp)


class SheetRecorder:
    """Appends one metadata row per successful upload batch."""

    def __init__(self, sheets: Any, spreadsheet_id: Optional[str], *, sheet_name: str = "Sheet1") -> None:
        self._sheets = sheets
        self._spreadsheet_id = spreadsheet_id or None
        self._sheet_name = sheet_name or "Sheet1"

    @property
    def enabled(self) -> bool:
        return bool(self._sheets is not None and self._spreadsheet_id)

    def append_row(self, row: SheetRow) -> bool:
        """Returns False when recording is not configured."""
        if not self.enabled:
            return False
        try:
            self._sheets.spreadsheets().values().append(
                spreadsheetId=self._spreadsheet_id,
                range=f"{self._sheet_name}!A1",
                valueInputOption="RAW",
                insertDataOption="INSERT_ROWS",
                body={"values": [list(row)]},
            ).execute()
        except REMOTE_ERRORS as e:
            raise RemoteStorageError(str(e))
        return True
