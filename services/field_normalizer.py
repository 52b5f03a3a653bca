"""
Canonical upload fields from inconsistent front-end payloads.

Different versions of the upload form post the same information under
different keys (``date`` vs ``workDate`` vs ``selectedDate`` ...). The alias
tables below are evaluated in priority order: the first alias with a
non-empty value wins.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

FIELD_ALIASES: Dict[str, Tuple[str, ...]] = {
    "date": ("date", "workDate", "work_date", "selectedDate"),
    "work_type": ("workType", "work_type", "category", "work", "type"),
    "address": ("address", "addr", "location"),
    "uploader": ("uploader", "uploaderName", "name"),
    "memo": ("memo", "note"),
}

# Public (wire) names, used in validation messages.
PUBLIC_NAMES: Dict[str, str] = {
    "date": "date",
    "work_type": "workType",
    "address": "address",
    "uploader": "uploader",
    "memo": "memo",
}

REQUIRED_FIELDS: Tuple[str, ...] = ("date", "work_type", "address", "uploader")

FILE_FIELD_ALIASES: Tuple[str, ...] = ("photos", "photo", "files", "file", "images", "image", "upload")


@dataclass(frozen=True)
class CanonicalFields:
    date: str = ""
    work_type: str = ""
    address: str = ""
    uploader: str = ""
    memo: str = ""

    def to_dict(self) -> Dict[str, str]:
        return {PUBLIC_NAMES[k]: getattr(self, k) for k in FIELD_ALIASES}


def _as_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, (list, tuple)):
        for item in value:
            text = _as_text(item)
            if text:
                return text
        return ""
    return str(value).strip()


def first_present(raw: Mapping[str, Any], aliases: Sequence[str]) -> str:
    for key in aliases:
        if key not in raw:
            continue
        # MultiDict: a repeated field may carry a blank first copy.
        value = raw.getlist(key) if hasattr(raw, "getlist") else raw.get(key)
        text = _as_text(value)
        if text:
            return text
    return ""


def normalize(raw_body: Optional[Mapping[str, Any]]) -> CanonicalFields:
    raw = raw_body or {}
    return CanonicalFields(**{field: first_present(raw, aliases) for field, aliases in FIELD_ALIASES.items()})


def missing_required(fields: CanonicalFields) -> List[str]:
    return [PUBLIC_NAMES[f] for f in REQUIRED_FIELDS if not getattr(fields, f)]


def pick_file_parts(files: Any) -> List[Any]:
    """
    Select uploaded file parts from a Werkzeug ``MultiDict`` of FileStorage.

    Known field names are tried in order; if none carries a file, every file
    part is accepted in request order.
    """
    if not files:
        return []

    def _non_empty(parts: Sequence[Any]) -> List[Any]:
        return [p for p in parts if p is not None and getattr(p, "filename", None)]

    for alias in FILE_FIELD_ALIASES:
        parts = _non_empty(files.getlist(alias)) if alias in files else []
        if parts:
            return parts

    collected: List[Any] = []
    for _key, part in files.items(multi=True):
        collected.extend(_non_empty([part]))
    return collected
