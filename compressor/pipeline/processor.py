"""Per-file processing: stabilise, protect, transcode, then commit or roll back.

States run strictly in order for one path:

    admitted -> stabilizing -> protected -> transforming -> committed | rolled back

Every failure is contained here. It is logged and reported to the notifier,
and never raised to the dispatcher.
"""

from __future__ import annotations

from pathlib import Path
from threading import Event
from typing import Optional

from compressor.config.settings import Settings
from compressor.core.logger import setup_logger
from compressor.core.models import FileIdentity, ProcessOutcome, ProcessResult, StabilityStatus
from compressor.core.registry import RecentlyFinished
from compressor.notify import Notifier
from compressor.pipeline import fs
from compressor.pipeline.stability import POLL_INTERVAL, wait_for_stable
from compressor.pipeline.transcode import (
    FFmpegTranscoder,
    TranscodeCancelled,
    TranscodeError,
    thumbnail_path_for,
)

logger = setup_logger(__name__)


class FileProcessor:
    def __init__(
        self,
        settings: Settings,
        transcoder: FFmpegTranscoder,
        notifier: Notifier,
        recently_finished: RecentlyFinished,
        stability_tick: float = POLL_INTERVAL,
    ) -> None:
        self.settings = settings
        self.transcoder = transcoder
        self.notifier = notifier
        self.recently_finished = recently_finished
        self.stability_tick = stability_tick

    def process(self, original: Path, cancel_flag: Event) -> ProcessResult:
        """Run the full state machine for ``original``."""
        check = wait_for_stable(original, self.settings.stability_window, cancel_flag, tick=self.stability_tick)
        if check.status == StabilityStatus.NOT_FOUND:
            logger.debug(f"{original.name} disappeared while waiting for stability")
            return ProcessResult(original, ProcessOutcome.SKIPPED, message="not found")
        if check.status == StabilityStatus.CANCELLED:
            return ProcessResult(original, ProcessOutcome.CANCELLED, message="cancelled before processing")
        if check.status == StabilityStatus.ERROR:
            reason = f"stability check: {check.detail}"
            self._report_failure(original, reason)
            return ProcessResult(original, ProcessOutcome.FAILED, message=reason)

        try:
            processing = fs.protect(original, self.settings.processing_suffix)
        except FileNotFoundError:
            logger.debug(f"{original.name} claimed or removed before it could be protected")
            return ProcessResult(original, ProcessOutcome.SKIPPED, message="not found")
        except OSError as e:
            reason = f"rename for processing: {e}"
            self._report_failure(original, reason)
            return ProcessResult(original, ProcessOutcome.FAILED, message=reason)

        identity = FileIdentity.of(processing)
        original_size = identity.size if identity else 0

        try:
            output = fs.output_path_for(original, self.settings.output_dir, self.settings.output_extension)
        except (fs.OutputPathExhausted, OSError) as e:
            reason = f"build output path: {e}"
            self._report_failure(original, reason)
            self._rollback(processing, original, None)
            return ProcessResult(original, ProcessOutcome.ROLLED_BACK, message=reason)

        try:
            self.transcoder.transcode(processing, output, cancel_flag)
        except TranscodeCancelled:
            logger.info(f"Transcode of {original.name} cancelled, restoring source")
            self._rollback(processing, original, output)
            return ProcessResult(original, ProcessOutcome.CANCELLED, output_path=output, message="cancelled")
        except TranscodeError as e:
            self._report_failure(original, str(e))
            self._rollback(processing, original, output)
            return ProcessResult(original, ProcessOutcome.ROLLED_BACK, output_path=output, message=str(e))
        except Exception as e:
            logger.error_trace(f"Unexpected error transcoding {original}: {e}")
            self._report_failure(original, f"{type(e).__name__}: {e}")
            self._rollback(processing, original, output)
            return ProcessResult(original, ProcessOutcome.ROLLED_BACK, output_path=output, message=str(e))

        self._commit(processing, original)
        logger.info(f"Processed {original} -> {output}")
        self._notify_success(original, original_size, output, cancel_flag)
        return ProcessResult(original, ProcessOutcome.COMMITTED, output_path=output)

    def _commit(self, processing: Path, original: Path) -> None:
        # The transcode already succeeded; failures here are only logged
        if self.settings.delete_source:
            fs.remove_quietly(processing, "processed source")
            self.recently_finished.record(original)
            return

        if not fs.restore(processing, original):
            logger.error(f"Restore original failed for {processing}")
            self.recently_finished.record(original)
            return
        self.recently_finished.record(original, FileIdentity.of(original))

    def _rollback(self, processing: Path, original: Path, output: Optional[Path]) -> None:
        # ``output`` is only ever a name this invocation claimed
        if output is not None and fs.remove_quietly(output, "partial output"):
            logger.info(f"Removed partial output {output}")

        if processing.exists():
            if fs.restore(processing, original):
                logger.info(f"Restored {original.name} after failure")
            else:
                logger.error(f"Restore after failure failed for {processing}")

        # Suppress the restore rename's own event; the next pass after the window retries
        self.recently_finished.record(original)

    def _report_failure(self, path: Path, reason: str) -> None:
        logger.error(f"Processing failed for {path}: {reason}")
        try:
            self.notifier.notify_failure(path, reason)
        except Exception as e:
            logger.warning_trace(f"Failure notification for {path.name} raised: {e}")

    def _notify_success(self, original: Path, original_size: int, output: Path, cancel_flag: Event) -> None:
        try:
            new_size = output.stat().st_size
        except OSError as e:
            logger.warning(f"Cannot stat output {output}, skipping notification: {e}")
            return

        preview: Optional[Path] = None
        if self.notifier.wants_preview:
            preview = thumbnail_path_for(original)
            try:
                self.transcoder.generate_thumbnail(output, preview, cancel_flag)
            except (TranscodeError, OSError) as e:
                logger.warning(f"Failed to generate thumbnail: {e}")
                fs.remove_quietly(preview, "thumbnail")
                preview = None

        try:
            self.notifier.notify_success(original, original_size, new_size, preview)
        except Exception as e:
            logger.warning_trace(f"Success notification for {original.name} raised: {e}")
        finally:
            if preview is not None:
                fs.remove_quietly(preview, "thumbnail")
