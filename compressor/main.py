"""Service entry point: wires discovery, admission, dispatch and processing."""

from __future__ import annotations

import os
import signal
import sys
from threading import Event
from typing import Optional

from compressor.api.status import StatusServer
from compressor.config.settings import ConfigError, Settings, load_settings, log_settings
from compressor.core.logger import setup_logger
from compressor.core.registry import InProgressRegistry, RecentlyFinished
from compressor.notify import Notifier, build_notifier
from compressor.pipeline.fs import recover_processing_markers
from compressor.pipeline.orchestrator import Dispatcher
from compressor.pipeline.processor import FileProcessor
from compressor.pipeline.transcode import FFmpegTranscoder
from compressor.watch.admission import AdmissionGate
from compressor.watch.events import DirectoryWatcher
from compressor.watch.scanner import PeriodicScanner

logger = setup_logger(__name__)


class StartupError(Exception):
    """The service cannot start with the current environment."""


class CompressorService:
    def __init__(
        self,
        settings: Settings,
        notifier: Optional[Notifier] = None,
        transcoder: Optional[FFmpegTranscoder] = None,
        cancel_flag: Optional[Event] = None,
    ) -> None:
        self.settings = settings
        self.cancel_flag = cancel_flag or Event()

        self.in_progress = InProgressRegistry()
        self.recently_finished = RecentlyFinished(settings.recent_ttl)

        self.processor = FileProcessor(
            settings,
            transcoder or FFmpegTranscoder(settings.ffmpeg_binary, settings.ffmpeg_command),
            notifier or build_notifier(settings.discord_webhook_url),
            self.recently_finished,
        )
        self.dispatcher = Dispatcher(
            self.processor.process,
            self.in_progress,
            queue_size=settings.queue_size,
            max_concurrent=settings.max_concurrent,
            cancel_flag=self.cancel_flag,
        )
        self.gate = AdmissionGate(settings, self.in_progress, self.recently_finished, self.dispatcher.submit)
        self.scanner = PeriodicScanner(
            settings.input_dir,
            self.gate.admit,
            settings.rescan_interval,
            self.cancel_flag,
            self.recently_finished,
        )
        self.watcher = DirectoryWatcher(settings.input_dir, self.gate.admit)
        self.status_server: Optional[StatusServer] = None

    def check_directories(self) -> None:
        for label, directory in (("input", self.settings.input_dir), ("output", self.settings.output_dir)):
            if not directory.is_dir():
                raise StartupError(f"{label} dir does not exist: {directory}")
            if not os.access(directory, os.R_OK | os.W_OK | os.X_OK):
                raise StartupError(f"{label} dir is not accessible: {directory}")

    def start(self) -> None:
        self.check_directories()

        restored = recover_processing_markers(self.settings.input_dir, self.settings.processing_suffix)
        if restored:
            logger.info(f"Recovered {len(restored)} interrupted file(s)")

        self.dispatcher.start()
        self.scanner.scan_once("initial")

        try:
            self.watcher.start()
        except OSError as e:
            raise StartupError(f"watch dir: {e}") from e

        self.scanner.start()

        if self.settings.status_enabled:
            try:
                self.status_server = StatusServer(int(self.settings.http_port))
                self.status_server.start()
            except (OSError, ValueError) as e:
                logger.error(f"Status endpoint unavailable: {e}")
                self.status_server = None

        logger.info("Startup Done")

    def stop(self) -> None:
        logger.info("Shutting down...")
        self.cancel_flag.set()
        self.watcher.stop()
        self.scanner.join()
        self.dispatcher.close()
        if self.status_server is not None:
            self.status_server.stop()


def main() -> int:
    try:
        settings = load_settings()
    except ConfigError as e:
        logger.error(f"Config error: {e}")
        return 1

    log_settings(settings)

    service = CompressorService(settings)

    def _request_shutdown(signum, _frame) -> None:
        logger.info(f"Received {signal.Signals(signum).name}")
        service.cancel_flag.set()

    signal.signal(signal.SIGINT, _request_shutdown)
    signal.signal(signal.SIGTERM, _request_shutdown)

    try:
        service.start()
    except StartupError as e:
        logger.error(str(e))
        service.stop()
        return 1

    while not service.cancel_flag.wait(1.0):
        pass

    service.stop()
    return 0


if __name__ == "__main__":
    sys.exit(main())
