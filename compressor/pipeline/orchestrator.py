"""Bounded queue and worker pool that drain admitted paths.

One coordinator thread pulls paths from the queue, acquires a concurrency
slot (the only deliberate backpressure point) and submits the processing
invocation to a thread pool. When an invocation finishes, however it ends,
its slot is released and its in-progress record is removed.
"""

from __future__ import annotations

import queue
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from pathlib import Path
from threading import Event, Lock
from typing import Callable, Optional, Set

from compressor.core.logger import setup_logger
from compressor.core.models import ProcessOutcome, ProcessResult
from compressor.core.registry import InProgressRegistry

logger = setup_logger(__name__)

# How often blocked waits re-check for shutdown
WAIT_INTERVAL = 0.25

ProcessHandler = Callable[[Path, Event], ProcessResult]


class Dispatcher:
    def __init__(
        self,
        handler: ProcessHandler,
        in_progress: InProgressRegistry,
        queue_size: int,
        max_concurrent: int,
        cancel_flag: Event,
    ) -> None:
        self.handler = handler
        self.in_progress = in_progress
        self.max_concurrent = max(1, int(max_concurrent))
        self.cancel_flag = cancel_flag

        self._queue: "queue.Queue[Path]" = queue.Queue(maxsize=max(1, int(queue_size)))
        self._slots = threading.BoundedSemaphore(self.max_concurrent)
        self._closed = Event()
        self._executor = ThreadPoolExecutor(max_workers=self.max_concurrent, thread_name_prefix="Transcode")
        self._coordinator: Optional[threading.Thread] = None

        self._handoffs: Set[threading.Thread] = set()
        self._handoffs_lock = Lock()
        self._active: Set[Future] = set()
        self._active_lock = Lock()

    # =========================================================================
    # Producer side
    # =========================================================================

    def submit(self, path: Path) -> bool:
        """Queue an admitted path without blocking the caller.

        The caller must already hold ``path`` in the in-progress registry.
        When the queue is full a detached hand-off thread waits for room
        instead of dropping the path. Returns False once the dispatcher is
        closed; the in-progress record is released in that case.
        """
        if self._closed.is_set():
            self.in_progress.discard(path)
            return False

        try:
            self._queue.put_nowait(path)
            return True
        except queue.Full:
            pass

        logger.debug(f"Queue full, handing off {path.name}")
        handoff = threading.Thread(target=self._handoff, args=(path,), name="QueueHandoff", daemon=True)
        with self._handoffs_lock:
            self._handoffs.add(handoff)
        handoff.start()
        return True

    def _handoff(self, path: Path) -> None:
        try:
            while not self._closed.is_set():
                try:
                    self._queue.put(path, timeout=WAIT_INTERVAL)
                    return
                except queue.Full:
                    continue
            logger.debug(f"Dispatcher closed before {path.name} could be queued")
            self.in_progress.discard(path)
        finally:
            with self._handoffs_lock:
                self._handoffs.discard(threading.current_thread())

    # =========================================================================
    # Consumer side
    # =========================================================================

    def start(self) -> None:
        """Start the coordinator thread. Safe to call multiple times."""
        if self._coordinator is not None:
            return
        self._coordinator = threading.Thread(target=self._drain_loop, name="DispatchCoordinator", daemon=True)
        self._coordinator.start()
        logger.info(f"Dispatcher started with {self.max_concurrent} concurrent workers")

    def _drain_loop(self) -> None:
        while not self._closed.is_set():
            try:
                path = self._queue.get(timeout=WAIT_INTERVAL)
            except queue.Empty:
                continue

            if not self._acquire_slot():
                self.in_progress.discard(path)
                break

            future = self._executor.submit(self._run, path)
            with self._active_lock:
                self._active.add(future)
            future.add_done_callback(self._finished)

        self._release_queued()

    def _acquire_slot(self) -> bool:
        while not self._closed.is_set():
            if self._slots.acquire(timeout=WAIT_INTERVAL):
                return True
        return False

    def _run(self, path: Path) -> ProcessResult:
        try:
            result = self.handler(path, self.cancel_flag)
        except Exception as e:
            logger.error_trace(f"Processing {path} raised: {e}")
            result = ProcessResult(path, ProcessOutcome.FAILED, message=str(e))
        finally:
            self.in_progress.discard(path)
            self._slots.release()

        logger.debug(f"{path.name} finished: {result.outcome.value}")
        return result

    def _finished(self, future: Future) -> None:
        with self._active_lock:
            self._active.discard(future)

    def _release_queued(self) -> None:
        while True:
            try:
                path = self._queue.get_nowait()
            except queue.Empty:
                return
            self.in_progress.discard(path)

    # =========================================================================
    # Shutdown
    # =========================================================================

    @property
    def active_count(self) -> int:
        with self._active_lock:
            return len(self._active)

    @property
    def queued_count(self) -> int:
        return self._queue.qsize()

    def close(self, wait: bool = True) -> None:
        """Stop accepting work and wait for hand-offs and running invocations.

        Running invocations are stopped by the shared cancel flag, which the
        caller sets before closing.
        """
        self._closed.set()

        with self._handoffs_lock:
            handoffs = list(self._handoffs)
        for handoff in handoffs:
            handoff.join()

        if self._coordinator is not None:
            self._coordinator.join()
        self._release_queued()

        self._executor.shutdown(wait=wait)
        logger.info("Dispatcher stopped")
