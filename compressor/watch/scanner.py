"""Periodic full-directory scan producer."""

from __future__ import annotations

import os
import threading
from pathlib import Path
from threading import Event
from typing import Callable, Optional

from compressor.core.logger import setup_logger
from compressor.core.registry import RecentlyFinished

logger = setup_logger(__name__)

Admit = Callable[[Path], bool]


def scan_directory(directory: Path, admit: Admit) -> int:
    """Offer every non-directory entry of ``directory`` to ``admit``.

    Not recursive. Returns how many paths were admitted. Raises OSError if
    the directory cannot be listed.
    """
    admitted = 0
    with os.scandir(directory) as entries:
        for entry in entries:
            try:
                if entry.is_dir():
                    continue
            except OSError:
                continue
            if admit(Path(entry.path)):
                admitted += 1
    return admitted


class PeriodicScanner:
    """Scans once per ``interval`` seconds until ``stop_flag`` is set."""

    def __init__(
        self,
        directory: Path,
        admit: Admit,
        interval: float,
        stop_flag: Event,
        recently_finished: Optional[RecentlyFinished] = None,
    ) -> None:
        self.directory = directory
        self.admit = admit
        self.interval = interval
        self.stop_flag = stop_flag
        self.recently_finished = recently_finished
        self._thread: Optional[threading.Thread] = None

    def scan_once(self, label: str = "periodic") -> int:
        if self.recently_finished is not None:
            self.recently_finished.prune()
        try:
            admitted = scan_directory(self.directory, self.admit)
        except OSError as e:
            logger.error(f"{label.capitalize()} scan failed: {e}")
            return 0
        if admitted:
            logger.debug(f"{label.capitalize()} scan admitted {admitted} file(s)")
        return admitted

    def start(self) -> None:
        if self._thread is not None:
            return
        self._thread = threading.Thread(target=self._loop, name="PeriodicScan", daemon=True)
        self._thread.start()

    def _loop(self) -> None:
        # Event.wait doubles as the ticker and the shutdown signal
        while not self.stop_flag.wait(self.interval):
            self.scan_once()

    def join(self, timeout: Optional[float] = None) -> None:
        if self._thread is not None:
            self._thread.join(timeout)
