"""Live filesystem change feed built on watchdog."""

from __future__ import annotations

from pathlib import Path
from typing import Callable, Optional

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from compressor.core.logger import setup_logger

logger = setup_logger(__name__)

Admit = Callable[[Path], bool]


class AdmissionEventHandler(FileSystemEventHandler):
    """Forwards create, move and write events to the admission gate."""

    def __init__(self, admit: Admit) -> None:
        super().__init__()
        self.admit = admit

    def _offer(self, raw_path) -> None:
        if isinstance(raw_path, bytes):
            raw_path = raw_path.decode(errors="surrogateescape")
        try:
            self.admit(Path(raw_path))
        except Exception as e:
            logger.error_trace(f"Admission of {raw_path} raised: {e}")

    def on_created(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._offer(event.src_path)

    def on_moved(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._offer(event.dest_path)

    def on_modified(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._offer(event.src_path)


class DirectoryWatcher:
    """Non-recursive watchdog observer on one directory."""

    def __init__(self, directory: Path, admit: Admit) -> None:
        self.directory = directory
        self.handler = AdmissionEventHandler(admit)
        self._observer: Optional[Observer] = None

    def start(self) -> None:
        """Start observing. Raises OSError if the directory cannot be watched."""
        if self._observer is not None:
            return
        observer = Observer()
        observer.schedule(self.handler, str(self.directory), recursive=False)
        observer.start()
        self._observer = observer
        logger.info(f"Watching {self.directory}")

    def stop(self) -> None:
        if self._observer is None:
            return
        self._observer.stop()
        self._observer.join()
        self._observer = None
        logger.info("Watcher stopped")
