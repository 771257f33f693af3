"""Service settings loaded once from the environment."""

from __future__ import annotations

import os
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Mapping, Optional

from compressor.config import env
from compressor.core.logger import setup_logger

logger = setup_logger(__name__)


class ConfigError(Exception):
    """Raised when the environment does not describe a usable configuration."""


@dataclass(frozen=True)
class Settings:
    input_dir: Path
    output_dir: Path
    ffmpeg_binary: str
    ffmpeg_command: str
    delete_source: bool
    processing_suffix: str
    output_extension: str
    extensions: frozenset
    queue_size: int
    max_concurrent: int
    rescan_interval: float
    stability_window: float
    recent_ttl: float
    http_port: str = ""
    discord_webhook_url: str = ""

    @property
    def notifications_enabled(self) -> bool:
        return bool(self.discord_webhook_url)

    @property
    def status_enabled(self) -> bool:
        return bool(self.http_port)


def detect_gpu() -> bool:
    """Return True when ``nvidia-smi`` runs successfully."""
    try:
        subprocess.run(["nvidia-smi"], check=True, capture_output=True, timeout=15)
    except (OSError, subprocess.CalledProcessError, subprocess.TimeoutExpired):
        return False
    return True


def load_settings(
    environ: Optional[Mapping[str, str]] = None,
    gpu_available: Optional[Callable[[], bool]] = None,
) -> Settings:
    """Build ``Settings`` from ``environ`` (defaults to ``os.environ``)."""
    if environ is None:
        environ = os.environ
    if gpu_available is None:
        gpu_available = detect_gpu

    input_dir = env.get_str(environ, "INPUT_DIR", env.DEFAULT_INPUT_DIR)
    output_dir = env.get_str(environ, "OUTPUT_DIR", env.DEFAULT_OUTPUT_DIR)

    # Custom input with the default output dir is a local run: keep output beside input
    if output_dir == env.DEFAULT_OUTPUT_DIR and input_dir != env.DEFAULT_INPUT_DIR:
        output_dir = str(Path(input_dir).parent / "test_output")

    max_concurrent = env.get_int(environ, "MAX_CONCURRENT", env.DEFAULT_MAX_CONCURRENT)
    if max_concurrent < 1:
        max_concurrent = 1

    queue_size = env.get_int(environ, "QUEUE_SIZE", env.DEFAULT_QUEUE_SIZE)
    if queue_size < max_concurrent:
        queue_size = max_concurrent * 2

    processing_suffix = env.get_str(environ, "PROCESSING_SUFFIX", env.DEFAULT_PROCESSING_SUFFIX)

    output_extension = env.get_str(environ, "OUTPUT_EXTENSION", env.DEFAULT_OUTPUT_EXTENSION)
    if output_extension and not output_extension.startswith("."):
        output_extension = "." + output_extension

    raw_extensions = environ.get("VIDEO_EXTENSIONS", "")
    if not raw_extensions.strip():
        raw_extensions = ",".join(env.DEFAULT_EXTENSIONS)
    extensions = env.parse_extensions(raw_extensions)
    if not extensions:
        raise ConfigError("no video extensions configured")

    if gpu_available():
        ffmpeg_command = env.get_str(environ, "FFMPEG_COMMAND", env.DEFAULT_FFMPEG_COMMAND)
    else:
        logger.info("GPU not detected, falling back to CPU encoding")
        # Set-but-blank disables the CPU fallback instead of restoring the default
        ffmpeg_command = environ.get("FFMPEG_COMMAND_CPU", env.DEFAULT_FFMPEG_COMMAND_CPU).strip()
        if not ffmpeg_command:
            raise ConfigError("GPU not available and no CPU ffmpeg command configured")

    return Settings(
        input_dir=Path(os.path.abspath(input_dir)),
        output_dir=Path(os.path.abspath(output_dir)),
        ffmpeg_binary=env.get_str(environ, "FFMPEG_BIN", "ffmpeg"),
        ffmpeg_command=ffmpeg_command,
        delete_source=env.get_bool(environ, "DELETE_SOURCE"),
        processing_suffix=processing_suffix,
        output_extension=output_extension,
        extensions=extensions,
        queue_size=queue_size,
        max_concurrent=max_concurrent,
        rescan_interval=env.get_duration(environ, "RESCAN_INTERVAL", env.DEFAULT_RESCAN_INTERVAL),
        stability_window=env.get_duration(environ, "FILE_STABILITY_DURATION", env.DEFAULT_STABILITY_WINDOW),
        recent_ttl=env.get_duration(environ, "RECENT_TTL", env.DEFAULT_RECENT_TTL),
        http_port=env.get_str(environ, "PORT"),
        discord_webhook_url=env.get_str(environ, "DISCORD_WEBHOOK_URL"),
    )


def log_settings(settings: Settings) -> None:
    logger.info("Configuration loaded:")
    logger.info(f"  Input Dir: {settings.input_dir}")
    logger.info(f"  Output Dir: {settings.output_dir}")
    logger.info(f"  FFmpeg Binary: {settings.ffmpeg_binary}")
    logger.info(f"  FFmpeg Command: {settings.ffmpeg_command}")
    logger.info(f"  Delete Source: {settings.delete_source}")
    logger.info(f"  Processing Suffix: {settings.processing_suffix}")
    logger.info(f"  Output Extension: {settings.output_extension or '(source extension)'}")
    if settings.status_enabled:
        logger.info(f"  HTTP Port: {settings.http_port}")
    else:
        logger.info("  HTTP server disabled")
    logger.info(f"  Discord notifications {'enabled' if settings.notifications_enabled else 'disabled'}")
    logger.info(f"  Rescan Interval: {settings.rescan_interval:g}s")
    logger.info(f"  Stability Window: {settings.stability_window:g}s")
    logger.info(f"  Recently-Finished TTL: {settings.recent_ttl:g}s")
    logger.info(f"  Queue Size: {settings.queue_size}")
    logger.info(f"  Max Concurrent: {settings.max_concurrent}")
    logger.info(f"  Video Extensions: {', '.join(sorted(settings.extensions))}")
