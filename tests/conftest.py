"""Shared fixtures: settings factory and in-memory collaborators."""

import time
from pathlib import Path
from threading import Event
from typing import Callable, List, Optional, Tuple

import pytest

from compressor.config import env
from compressor.config.settings import Settings
from compressor.notify import Notifier
from compressor.pipeline.transcode import TranscodeCancelled


class FakeTranscoder:
    """Stands in for ffmpeg: writes ``payload`` to the output path."""

    def __init__(
        self,
        payload: bytes = b"compressed",
        error: Optional[Exception] = None,
        write_partial: bool = False,
        wait_for_cancel: bool = False,
        thumbnail_error: Optional[Exception] = None,
    ):
        self.payload = payload
        self.error = error
        self.write_partial = write_partial
        self.wait_for_cancel = wait_for_cancel
        self.thumbnail_error = thumbnail_error
        self.calls: List[Tuple[Path, Path]] = []
        self.input_existed: List[bool] = []
        self.thumbnails: List[Path] = []
        self.started = Event()

    def transcode(self, input_path: Path, output_path: Path, cancel_flag: Event) -> None:
        self.calls.append((input_path, output_path))
        self.input_existed.append(input_path.exists())
        self.started.set()
        if self.write_partial:
            output_path.write_bytes(b"partial")
        if self.wait_for_cancel:
            cancel_flag.wait(10)
            raise TranscodeCancelled("ffmpeg cancelled")
        if self.error is not None:
            raise self.error
        output_path.write_bytes(self.payload)

    def generate_thumbnail(self, video_path: Path, thumbnail_path: Path, cancel_flag: Event) -> None:
        self.thumbnails.append(thumbnail_path)
        if self.thumbnail_error is not None:
            raise self.thumbnail_error
        thumbnail_path.write_bytes(b"\xff\xd8jpeg")


class RecordingNotifier(Notifier):
    def __init__(self, wants_preview: bool = False, raise_on_notify: bool = False):
        self.wants_preview = wants_preview
        self.raise_on_notify = raise_on_notify
        self.successes: List[Tuple[Path, int, int, Optional[Path], bool]] = []
        self.failures: List[Tuple[Path, str]] = []

    def notify_success(self, path, original_size, new_size, preview_path=None):
        preview_existed = preview_path is not None and preview_path.exists()
        self.successes.append((path, original_size, new_size, preview_path, preview_existed))
        if self.raise_on_notify:
            raise RuntimeError("webhook exploded")

    def notify_failure(self, path, reason):
        self.failures.append((path, reason))
        if self.raise_on_notify:
            raise RuntimeError("webhook exploded")


@pytest.fixture
def make_settings(tmp_path) -> Callable[..., Settings]:
    """Build Settings rooted in ``tmp_path`` with test-friendly timings."""

    def _make(**overrides) -> Settings:
        input_dir = tmp_path / "input"
        output_dir = tmp_path / "output"
        input_dir.mkdir(exist_ok=True)
        output_dir.mkdir(exist_ok=True)
        values = {
            "input_dir": input_dir,
            "output_dir": output_dir,
            "ffmpeg_binary": "ffmpeg",
            "ffmpeg_command": env.DEFAULT_FFMPEG_COMMAND_CPU,
            "delete_source": False,
            "processing_suffix": ".processing",
            "output_extension": ".mp4",
            "extensions": frozenset({".mp4", ".mkv", ".mov"}),
            "queue_size": 8,
            "max_concurrent": 2,
            "rescan_interval": 30.0,
            "stability_window": 0.0,
            "recent_ttl": 60.0,
        }
        values.update(overrides)
        return Settings(**values)

    return _make


@pytest.fixture
def fake_transcoder() -> FakeTranscoder:
    return FakeTranscoder()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def transcoder_factory():
    return FakeTranscoder


@pytest.fixture
def notifier_factory():
    return RecordingNotifier


@pytest.fixture
def wait_until():
    """Poll ``predicate`` until it is truthy or ``timeout`` elapses."""

    def _wait(predicate: Callable[[], bool], timeout: float = 5.0, interval: float = 0.02) -> bool:
        deadline = time.monotonic() + timeout
        while time.monotonic() < deadline:
            if predicate():
                return True
            time.sleep(interval)
        return bool(predicate())

    return _wait
