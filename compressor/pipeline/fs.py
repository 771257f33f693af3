"""Rename-based filesystem operations for crash-safe file handling.

The rename of ``<name>`` to ``<name><suffix>`` is the only mutual-exclusion
signal between handlers: whoever wins the rename owns the file until it is
renamed back or removed. A leftover marker after a crash means the file was
interrupted and can be restored safely.
"""

import errno
import os
from pathlib import Path
from typing import List

from compressor.core.logger import setup_logger

logger = setup_logger(__name__)

MAX_OUTPUT_ATTEMPTS = 10_000


class OutputPathExhausted(RuntimeError):
    """No free output name was found within the attempt limit."""


def processing_path_for(original: Path, suffix: str) -> Path:
    return original.with_name(original.name + suffix)


def resolve_output_path(
    output_dir: Path,
    base: str,
    extension: str,
    max_attempts: int = MAX_OUTPUT_ATTEMPTS,
) -> Path:
    """Claim ``output_dir/base.ext`` or the first free ``base_<n>.ext``.

    The returned name is reserved by an empty placeholder file, so concurrent
    callers never receive the same path. The transform overwrites it.

    Args:
        output_dir: Directory the output is written to (created if missing)
        base: Base name without extension
        extension: Extension including the leading dot
        max_attempts: Probes before giving up

    Raises:
        OutputPathExhausted: If every probed name is taken
    """
    output_dir.mkdir(parents=True, exist_ok=True)

    for attempt in range(max_attempts):
        try_path = output_dir / (f"{base}{extension}" if attempt == 0 else f"{base}_{attempt}{extension}")
        try:
            # O_CREAT | O_EXCL fails atomically if the name exists, dangling symlinks included
            fd = os.open(str(try_path), os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o666)
        except FileExistsError:
            continue
        os.close(fd)
        if attempt > 0:
            logger.info(f"Output collision resolved: {try_path.name}")
        return try_path

    raise OutputPathExhausted(f"unable to find free output name for {base}{extension} in {output_dir}")


def output_path_for(original: Path, output_dir: Path, output_extension: str) -> Path:
    """Resolve the output path for ``original``, keeping its extension when none is configured."""
    extension = output_extension or original.suffix
    if extension and not extension.startswith("."):
        extension = "." + extension
    return resolve_output_path(output_dir, original.stem, extension)


def protect(original: Path, suffix: str) -> Path:
    """Rename ``original`` to its processing marker.

    Raises FileNotFoundError when the source vanished, OSError otherwise.
    """
    processing = processing_path_for(original, suffix)
    os.rename(original, processing)
    logger.debug(f"Protected {original.name} as {processing.name}")
    return processing


def restore(processing: Path, original: Path) -> bool:
    """Rename the marker back to ``original``. Returns False if nothing was restored."""
    try:
        os.rename(processing, original)
    except FileNotFoundError:
        return False
    except OSError as e:
        logger.error(f"Restore failed for {processing}: {e}")
        return False
    return True


def remove_quietly(path: Path, label: str) -> bool:
    """Unlink ``path``; a missing file is not an error."""
    try:
        path.unlink()
    except FileNotFoundError:
        return False
    except OSError as e:
        logger.error(f"Removing {label} {path} failed: {e}")
        return False
    return True


def recover_processing_markers(input_dir: Path, suffix: str) -> List[Path]:
    """Restore markers left behind by an interrupted run.

    Returns the restored original paths. Markers whose original name is taken
    are left in place for an operator.
    """
    restored: List[Path] = []
    try:
        entries = list(os.scandir(input_dir))
    except OSError as e:
        logger.error(f"Cannot scan {input_dir} for interrupted files: {e}")
        return restored

    for entry in entries:
        if not entry.name.endswith(suffix) or entry.name == suffix:
            continue
        if not entry.is_file(follow_symlinks=False):
            continue

        marker = Path(entry.path)
        original = marker.with_name(entry.name[: -len(suffix)])
        if os.path.lexists(original):
            logger.warning(f"Leaving interrupted file {marker.name}: {original.name} already exists")
            continue
        try:
            os.rename(marker, original)
        except OSError as e:
            if e.errno != errno.ENOENT:
                logger.error(f"Could not restore interrupted file {marker}: {e}")
            continue
        logger.info(f"Restored interrupted file {original.name}")
        restored.append(original)

    return restored
