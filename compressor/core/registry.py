"""Thread-safe path sets used for admission dedup and loop suppression.

Both structures are keyed by the canonical (absolute, normalised) path string
and expose only single-key operations guarded by one lock each.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, Optional, Set, Union

from compressor.core.models import FileIdentity

PathLike = Union[str, Path]


def canonical_key(path: PathLike) -> str:
    return str(Path(path))


class InProgressRegistry:
    """Paths admitted but not yet finished."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._paths: Set[str] = set()

    def add_if_absent(self, path: PathLike) -> bool:
        """Insert ``path``; returns False if another caller already holds it."""
        key = canonical_key(path)
        with self._lock:
            if key in self._paths:
                return False
            self._paths.add(key)
            return True

    def discard(self, path: PathLike) -> None:
        with self._lock:
            self._paths.discard(canonical_key(path))

    def __contains__(self, path: object) -> bool:
        if not isinstance(path, (str, Path)):
            return False
        with self._lock:
            return canonical_key(path) in self._paths

    def __len__(self) -> int:
        with self._lock:
            return len(self._paths)


@dataclass(frozen=True)
class _FinishedEntry:
    recorded_at: float
    identity: Optional[FileIdentity]


class RecentlyFinished:
    """Suppresses re-admission of paths the pipeline has just handled.

    Inside ``ttl`` seconds every recorded path is suppressed. Past the window a
    pinned entry (one recorded with a file identity) keeps suppressing the path
    while the file on disk still matches that identity; unpinned entries and
    entries whose file changed or vanished are dropped.
    """

    def __init__(self, ttl: float, clock: Callable[[], float] = time.monotonic) -> None:
        self.ttl = max(0.0, float(ttl))
        self._clock = clock
        self._lock = threading.Lock()
        self._entries: Dict[str, _FinishedEntry] = {}

    def record(self, path: PathLike, identity: Optional[FileIdentity] = None) -> None:
        with self._lock:
            self._entries[canonical_key(path)] = _FinishedEntry(self._clock(), identity)

    def discard(self, path: PathLike) -> None:
        with self._lock:
            self._entries.pop(canonical_key(path), None)

    def is_suppressed(self, path: PathLike) -> bool:
        key = canonical_key(path)
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return False
            if self._clock() - entry.recorded_at < self.ttl:
                return True
            if entry.identity is not None and FileIdentity.of(Path(key)) == entry.identity:
                return True
            del self._entries[key]
            return False

    def prune(self) -> int:
        """Drop every entry that no longer suppresses anything."""
        with self._lock:
            keys = list(self._entries)
        removed = 0
        for key in keys:
            if not self.is_suppressed(key):
                removed += 1
        return removed

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
