"""Name/path helpers shared by folder_service and file_service.

- Node names are basenames: no '/' or '\\', not '.' or '..', at most 255 chars;
- Paths are slash-joined ancestor names without a leading '/' ("Reports/2024");
- Permission bits are unix-style octal strings of exactly three digits.
"""

from __future__ import annotations

import re
from typing import Optional

from filehub.packages.drive.core.constants import MAX_NAME_LENGTH, PATH_SEPARATOR, PERMISSIONS_PATTERN
from filehub.packages.drive.core.exceptions import ValidationError

_PERMISSIONS_RE = re.compile(PERMISSIONS_PATTERN)


def normalize_name(raw: Optional[str], *, kind: str = "Folder") -> str:
    name = (raw or "").strip()
    if not name:
        raise ValidationError(f"{kind} name is required")
    if len(name) > MAX_NAME_LENGTH:
        raise ValidationError(f"{kind} name must be at most {MAX_NAME_LENGTH} characters")
    if "/" in name or "\\" in name or name in {".", ".."}:
        raise ValidationError(f"Invalid {kind.lower()} name: {name}")
    return name


def validate_permissions(raw: Optional[str], *, default: str) -> str:
    value = default if raw is None else raw.strip()
    if not _PERMISSIONS_RE.match(value):
        raise ValidationError("Invalid permissions format. Must be 3 digits (0-7).")
    return value


def join_path(parent_path: Optional[str], name: str) -> str:
    return f"{parent_path}{PATH_SEPARATOR}{name}" if parent_path else name
