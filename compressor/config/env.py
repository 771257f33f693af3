"""Environment variable parsing and bootstrap defaults."""

from __future__ import annotations

import re
from typing import Mapping, Optional

from compressor.core.logger import setup_logger

logger = setup_logger(__name__)

DEFAULT_INPUT_DIR = "/input"
DEFAULT_OUTPUT_DIR = "/output"
DEFAULT_PROCESSING_SUFFIX = ".processing"
DEFAULT_OUTPUT_EXTENSION = ".mp4"
DEFAULT_QUEUE_SIZE = 128
DEFAULT_MAX_CONCURRENT = 3
DEFAULT_RESCAN_INTERVAL = 30.0
DEFAULT_STABILITY_WINDOW = 3.0
DEFAULT_RECENT_TTL = 60.0

DEFAULT_FFMPEG_COMMAND = (
    "-y -hide_banner -nostats -hwaccel cuda -hwaccel_device 0 -i {{input}} "
    "-c:v hevc_nvenc -vf format=nv12 -qp 25 -preset p6 -gpu 0 -b_qfactor 1.1 "
    "-b_ref_mode middle -bf 3 -g 250 -i_qfactor 0.75 -max_muxing_queue_size 1024 "
    "-multipass 1 -rc vbr -rc-lookahead 20 -temporal-aq 1 -tune hq "
    "-c:a aac -af volume=2.0 {{output}}"
)

DEFAULT_FFMPEG_COMMAND_CPU = (
    "-y -hide_banner -nostats -i {{input}} -c:v libx265 -preset slow -crf 24 "
    "-c:a aac -af volume=2.0 {{output}}"
)

DEFAULT_EXTENSIONS = (".mp4", ".mkv", ".mov", ".avi", ".flv", ".wmv", ".m4v", ".webm", ".ts")

_TRUE_VALUES = {"1", "true", "yes", "on"}

# Go-style durations: "300ms", "1.5h", "2h45m", "1m30s"
_DURATION_PART = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|ms|s|m|h)")
_UNIT_SECONDS = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}


def string_to_bool(value: Optional[str]) -> bool:
    if value is None:
        return False
    return value.strip().lower() in _TRUE_VALUES


def parse_duration(value: str) -> float:
    """Parse a duration string into seconds.

    Bare numbers are seconds. Raises ValueError for anything else that is not
    a sequence of ``<number><unit>`` parts.
    """
    text = value.strip()
    if not text:
        raise ValueError("empty duration")

    try:
        return float(text)
    except ValueError:
        pass

    sign = 1.0
    if text[0] in "+-":
        sign = -1.0 if text[0] == "-" else 1.0
        text = text[1:]

    total = 0.0
    pos = 0
    for match in _DURATION_PART.finditer(text):
        if match.start() != pos:
            break
        total += float(match.group(1)) * _UNIT_SECONDS[match.group(2)]
        pos = match.end()

    if pos != len(text) or pos == 0:
        raise ValueError(f"invalid duration {value!r}")
    return sign * total


def get_str(environ: Mapping[str, str], key: str, default: str = "") -> str:
    value = environ.get(key, "").strip()
    return value if value else default


def get_bool(environ: Mapping[str, str], key: str) -> bool:
    return string_to_bool(environ.get(key))


def get_int(environ: Mapping[str, str], key: str, default: int) -> int:
    raw = environ.get(key, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError as e:
        logger.warning(f"Invalid int for {key}: {e}")
        return default


def get_duration(environ: Mapping[str, str], key: str, default: float) -> float:
    raw = environ.get(key, "").strip()
    if not raw:
        return default
    try:
        return parse_duration(raw)
    except ValueError as e:
        logger.warning(f"Invalid duration for {key}: {e}")
        return default


def parse_extensions(raw: str) -> frozenset:
    """Normalise a comma-separated list of extensions to ``{".ext", ...}``."""
    extensions = set()
    for part in raw.split(","):
        trimmed = part.strip()
        if not trimmed:
            continue
        if not trimmed.startswith("."):
            trimmed = "." + trimmed
        extensions.add(trimmed.lower())
    return frozenset(extensions)
