"""External ffmpeg/ffprobe invocations.

Commands inherit stdout. Stderr is forwarded line by line to the service's
stderr and the last lines are kept so failures can be reported verbatim.
"""

from __future__ import annotations

import json
import os
import shlex
import subprocess
import sys
import tempfile
import threading
import uuid
from collections import deque
from pathlib import Path
from threading import Event
from typing import Deque, IO, List, Sequence

from compressor.core.logger import setup_logger

logger = setup_logger(__name__)

INPUT_PLACEHOLDER = "{{input}}"
OUTPUT_PLACEHOLDER = "{{output}}"

POLL_INTERVAL = 0.25
TERMINATE_GRACE = 10.0
STDERR_TAIL_LINES = 20
PROBE_TIMEOUT = 60
DEFAULT_DURATION = 10.0


class TranscodeError(Exception):
    """The external command failed to start or exited non-zero."""


class TranscodeCancelled(TranscodeError):
    """The external command was terminated because of shutdown."""


def build_command(binary: str, template: str, input_path: Path, output_path: Path) -> List[str]:
    """Substitute quoted paths into ``template`` and split it into argv."""
    substituted = template.replace(INPUT_PLACEHOLDER, shlex.quote(str(input_path)))
    substituted = substituted.replace(OUTPUT_PLACEHOLDER, shlex.quote(str(output_path)))
    try:
        args = shlex.split(substituted)
    except ValueError as e:
        raise TranscodeError(f"parse ffmpeg args: {e}") from e
    return [binary, *args]


def _forward_stderr(stream: IO[str], tail: Deque[str]) -> None:
    for line in stream:
        tail.append(line.rstrip())
        sys.stderr.write(line)
    stream.close()


def run_command(args: Sequence[str], cancel_flag: Event, label: str) -> None:
    """Run ``args`` to completion, terminating it if ``cancel_flag`` is set.

    Raises:
        TranscodeCancelled: The command was terminated by ``cancel_flag``
        TranscodeError: The command could not start or exited non-zero
    """
    try:
        process = subprocess.Popen(
            list(args),
            stdout=None,
            stderr=subprocess.PIPE,
            text=True,
            errors="replace",
            env=os.environ.copy(),
        )
    except OSError as e:
        raise TranscodeError(f"{label} failed to start: {e}") from e

    tail: Deque[str] = deque(maxlen=STDERR_TAIL_LINES)
    reader = threading.Thread(
        target=_forward_stderr,
        args=(process.stderr, tail),
        name=f"{label}-stderr",
        daemon=True,
    )
    reader.start()

    cancelled = False
    while True:
        try:
            process.wait(timeout=POLL_INTERVAL)
            break
        except subprocess.TimeoutExpired:
            pass
        if cancel_flag.is_set():
            cancelled = True
            logger.info(f"Terminating {label} (pid {process.pid}) for shutdown")
            process.terminate()
            try:
                process.wait(timeout=TERMINATE_GRACE)
            except subprocess.TimeoutExpired:
                logger.warning(f"{label} ignored SIGTERM, killing pid {process.pid}")
                process.kill()
                process.wait()
            break

    reader.join(timeout=5)

    if cancelled:
        raise TranscodeCancelled(f"{label} cancelled")
    if process.returncode != 0:
        message = f"{label} failed: exit status {process.returncode}"
        if tail:
            message = f"{message}\n" + "\n".join(tail)
        raise TranscodeError(message)


class FFmpegTranscoder:
    """Runs the configured ffmpeg template and produces preview thumbnails."""

    def __init__(self, binary: str, template: str) -> None:
        self.binary = binary
        self.template = template

    @property
    def probe_binary(self) -> str:
        return self.binary.replace("ffmpeg", "ffprobe", 1)

    def transcode(self, input_path: Path, output_path: Path, cancel_flag: Event) -> None:
        try:
            output_path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise TranscodeError(f"prepare output dir: {e}") from e

        args = build_command(self.binary, self.template, input_path, output_path)
        logger.info(f"ffmpeg start: {input_path} -> {output_path}")
        run_command(args, cancel_flag, "ffmpeg")

    def probe_duration(self, media_path: Path) -> float:
        """Return the container duration of ``media_path`` in seconds."""
        args = [
            self.probe_binary,
            "-v", "quiet",
            "-print_format", "json",
            "-show_format",
            str(media_path),
        ]
        try:
            result = subprocess.run(args, check=True, capture_output=True, text=True, timeout=PROBE_TIMEOUT)
        except (OSError, subprocess.CalledProcessError, subprocess.TimeoutExpired) as e:
            raise TranscodeError(f"ffprobe failed: {e}") from e

        try:
            payload = json.loads(result.stdout)
            return float(payload["format"]["duration"])
        except (ValueError, KeyError, TypeError) as e:
            raise TranscodeError(f"parse ffprobe output: {e}") from e

    def generate_thumbnail(self, video_path: Path, thumbnail_path: Path, cancel_flag: Event) -> None:
        """Extract one key frame at 10% of the duration (at least 1s)."""
        thumbnail_path.parent.mkdir(parents=True, exist_ok=True)

        try:
            duration = self.probe_duration(video_path)
        except TranscodeError as e:
            logger.warning(f"Failed to get video duration, using default seek: {e}")
            duration = DEFAULT_DURATION

        seek = max(1.0, duration * 0.1)
        args = [
            self.binary,
            "-skip_frame", "nokey",
            "-i", str(video_path),
            "-ss", f"{seek:.3f}",
            "-vframes", "1",
            "-y",
            str(thumbnail_path),
        ]
        logger.info(f"Generating thumbnail: {video_path} -> {thumbnail_path} (seek to {seek:.1f}s)")
        run_command(args, cancel_flag, "thumbnail")


def thumbnail_path_for(original: Path) -> Path:
    """Unique preview location in the system temp directory."""
    return Path(tempfile.gettempdir()) / f"compressor_thumb_{original.stem}_{uuid.uuid4().hex[:12]}.jpg"
