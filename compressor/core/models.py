"""Data structures shared across the admission and processing pipeline."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Optional


class StabilityStatus(Enum):
    STABLE = "stable"
    NOT_FOUND = "not_found"
    ERROR = "error"
    CANCELLED = "cancelled"


class ProcessOutcome(Enum):
    """Terminal state of one processing invocation."""

    COMMITTED = "committed"
    ROLLED_BACK = "rolled_back"
    SKIPPED = "skipped"
    CANCELLED = "cancelled"
    FAILED = "failed"


@dataclass(frozen=True)
class StabilityCheck:
    status: StabilityStatus
    detail: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status == StabilityStatus.STABLE


@dataclass(frozen=True)
class ProcessResult:
    path: Path
    outcome: ProcessOutcome
    output_path: Optional[Path] = None
    message: Optional[str] = None


@dataclass(frozen=True)
class FileIdentity:
    """Size and modification time of a file, preserved across renames."""

    size: int
    mtime_ns: int

    @classmethod
    def of(cls, path: Path) -> Optional["FileIdentity"]:
        try:
            st = path.stat()
        except OSError:
            return None
        return cls(size=st.st_size, mtime_ns=st.st_mtime_ns)
