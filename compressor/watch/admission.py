"""Admission gate shared by both discovery sources.

Safe to call concurrently: the final in-progress insert is atomic, so when
two sources report the same path at once exactly one caller wins.
"""

from __future__ import annotations

import os
import stat
from pathlib import Path
from typing import Callable, Union

from compressor.config.settings import Settings
from compressor.core.logger import setup_logger
from compressor.core.registry import InProgressRegistry, RecentlyFinished

logger = setup_logger(__name__)

Submit = Callable[[Path], bool]


class AdmissionGate:
    def __init__(
        self,
        settings: Settings,
        in_progress: InProgressRegistry,
        recently_finished: RecentlyFinished,
        submit: Submit,
    ) -> None:
        self.settings = settings
        self.watch_dir = Path(os.path.abspath(settings.input_dir))
        self.in_progress = in_progress
        self.recently_finished = recently_finished
        self.submit = submit

    def _is_within_watch_dir(self, path: Path) -> bool:
        try:
            return os.path.commonpath([self.watch_dir, path]) == str(self.watch_dir) and path != self.watch_dir
        except ValueError:
            return False

    def is_candidate(self, path: Path) -> bool:
        """Stateless checks: location, file type, name and extension."""
        if not self._is_within_watch_dir(path):
            return False

        try:
            st = os.stat(path)
        except OSError:
            return False
        if not stat.S_ISREG(st.st_mode):
            return False

        if path.name.startswith("."):
            return False
        if path.name.endswith(self.settings.processing_suffix):
            return False

        return path.suffix.lower() in self.settings.extensions

    def admit(self, raw_path: Union[str, Path]) -> bool:
        """Admit ``raw_path`` into processing exactly once.

        Returns True only for the caller that inserted the in-progress record
        and handed the path to the dispatcher.
        """
        path = Path(os.path.abspath(raw_path))

        if not self.is_candidate(path):
            return False
        if self.recently_finished.is_suppressed(path):
            return False
        if not self.in_progress.add_if_absent(path):
            return False

        if not self.submit(path):
            logger.debug(f"Dispatcher refused {path.name}")
            return False

        logger.info(f"Admitted {path.name}")
        return True
