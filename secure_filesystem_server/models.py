from __future__ import annotations

import os
import stat
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Optional

from .content import ContentDecision


def _timestamp(value: float) -> datetime:
    return datetime.fromtimestamp(value).astimezone()


@dataclass(frozen=True, slots=True)
class FileStat:
    """Metadata for a resolved path, read fresh from the OS on every query."""

    size: int
    created: datetime
    modified: datetime
    accessed: datetime
    is_directory: bool
    is_file: bool
    permissions: str

    @classmethod
    def from_os(cls, st: os.stat_result) -> "FileStat":
        is_dir = stat.S_ISDIR(st.st_mode)
        # Birth time only exists on some platforms; fall back to mtime elsewhere.
        birth = getattr(st, "st_birthtime", None) or st.st_mtime
        return cls(
            size=st.st_size,
            created=_timestamp(birth),
            modified=_timestamp(st.st_mtime),
            accessed=_timestamp(st.st_atime),
            is_directory=is_dir,
            is_file=not is_dir,
            permissions=format(stat.S_IMODE(st.st_mode) & 0o777, "o"),
        )

    @classmethod
    def of(cls, path: Path) -> "FileStat":
        return cls.from_os(os.stat(path))


@dataclass(frozen=True, slots=True)
class DirectoryEntry:
    name: str
    path: Path
    is_directory: bool
    size: Optional[int] = None


@dataclass(frozen=True, slots=True)
class SearchMatch:
    path: Path
    stat: FileStat


@dataclass(frozen=True, slots=True)
class ReadOutcome:
    """What a read found: a directory, or a file plus its delivery decision."""

    path: Path
    stat: FileStat
    decision: Optional[ContentDecision] = None
    data: Optional[bytes] = None

    @property
    def is_directory(self) -> bool:
        return self.stat.is_directory
