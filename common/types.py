"""Shared data type definitions (DirectoryEntry, UploadDescriptor, RelocationOutcome)."""

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

EPOCH = datetime.fromtimestamp(0, tz=timezone.utc)


class EntryKind(str, Enum):
    FILE = "file"
    DIRECTORY = "directory"


@dataclass(frozen=True)
class DirectoryEntry:
    """
    One immediate child of a listed directory.
    """
    name: str
    kind: EntryKind
    path: str
    size: int
    mtime: datetime

    @property
    def is_directory(self) -> bool:
        return self.kind is EntryKind.DIRECTORY


@dataclass(frozen=True)
class UploadDescriptor:
    """
    A staged upload payload and where it should end up.

    relative_path is relative to the batch destination directory and already
    decoded from the wire format.
    """
    relative_path: str
    staged_path: str


class RelocationStatus(str, Enum):
    MOVED = "moved"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass(frozen=True)
class RelocationOutcome:
    """
    Result of relocating one staged upload into the shared tree.
    """
    relative_path: str
    status: RelocationStatus
    error: Optional[str] = None
