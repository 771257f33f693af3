"""Write-stability detection by polling file size."""

import os
import stat
import time
from pathlib import Path
from threading import Event
from typing import Callable

from compressor.core.logger import setup_logger
from compressor.core.models import StabilityCheck, StabilityStatus

logger = setup_logger(__name__)

POLL_INTERVAL = 0.5


def wait_for_stable(
    path: Path,
    window: float,
    cancel_flag: Event,
    tick: float = POLL_INTERVAL,
    clock: Callable[[], float] = time.monotonic,
) -> StabilityCheck:
    """Block until ``path`` keeps the same size for ``window`` seconds.

    Any size change restarts the window. Returns NOT_FOUND if the file
    disappears, ERROR if it cannot be stat'ed or is not a regular file, and
    CANCELLED when ``cancel_flag`` is set while waiting.
    """
    if window <= 0:
        return StabilityCheck(StabilityStatus.STABLE)

    previous_size = -1
    stable_since = None

    while True:
        if cancel_flag.wait(tick):
            return StabilityCheck(StabilityStatus.CANCELLED, "cancelled")

        try:
            st = os.stat(path)
        except FileNotFoundError:
            return StabilityCheck(StabilityStatus.NOT_FOUND)
        except OSError as e:
            return StabilityCheck(StabilityStatus.ERROR, str(e))

        if not stat.S_ISREG(st.st_mode):
            return StabilityCheck(StabilityStatus.ERROR, f"{path} is not a regular file")

        if st.st_size != previous_size:
            if previous_size >= 0:
                logger.debug(f"{path.name} still growing ({previous_size} -> {st.st_size} bytes)")
            previous_size = st.st_size
            stable_since = None
            continue

        if stable_since is None:
            stable_since = clock()
        if clock() - stable_since >= window:
            return StabilityCheck(StabilityStatus.STABLE)
