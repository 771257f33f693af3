"""Notification sinks invoked at the pipeline's success/failure boundaries.

Implementations must not raise back into the pipeline; the processor still
guards every call.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional


class NotificationError(Exception):
    """Raised when a notification cannot be delivered."""


class Notifier:
    """Base notifier; every hook is a no-op."""

    wants_preview = False

    def notify_success(
        self,
        path: Path,
        original_size: int,
        new_size: int,
        preview_path: Optional[Path] = None,
    ) -> None:
        return None

    def notify_failure(self, path: Path, reason: str) -> None:
        return None


class NullNotifier(Notifier):
    """Used when no notification target is configured."""


def build_notifier(webhook_url: str) -> Notifier:
    if not webhook_url:
        return NullNotifier()

    from compressor.notify.discord import DiscordNotifier

    return DiscordNotifier(webhook_url)


__all__ = [
    "NotificationError",
    "Notifier",
    "NullNotifier",
    "build_notifier",
]
