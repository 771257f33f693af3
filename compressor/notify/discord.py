"""Discord webhook notifications."""

from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

import requests

from compressor.core.logger import setup_logger
from compressor.notify import NotificationError, Notifier

logger = setup_logger(__name__)

COLOR_SUCCESS = 0x00FF00
COLOR_FAILURE = 0xFF0000
FIELD_VALUE_LIMIT = 1024
ATTACHMENT_NAME = "thumbnail.jpg"
REQUEST_TIMEOUT = 30


def format_file_size(size: int) -> str:
    """Human-readable size with binary units (``1.5 MB``)."""
    unit = 1024
    if size < unit:
        return f"{size} B"
    div, exp = unit, 0
    n = size // unit
    while n >= unit:
        div *= unit
        exp += 1
        n //= unit
    return f"{size / div:.1f} {'KMGTPE'[exp]}B"


def compression_ratio(original_size: int, new_size: int) -> str:
    if original_size <= 0:
        return "n/a"
    return f"{new_size / original_size * 100:.1f}%"


def _field(name: str, value: str, inline: bool = True) -> Dict[str, Any]:
    if len(value) > FIELD_VALUE_LIMIT:
        value = value[: FIELD_VALUE_LIMIT - 3] + "..."
    return {"name": name, "value": value or "-", "inline": inline}


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds")


def build_success_embed(
    file_name: str,
    original_size: int,
    new_size: int,
    with_image: bool = False,
) -> Dict[str, Any]:
    embed: Dict[str, Any] = {
        "title": "✅ Compression Successful",
        "description": f"compressed: **{file_name}**",
        "color": COLOR_SUCCESS,
        "fields": [
            _field("Original Size", format_file_size(original_size)),
            _field("Compressed Size", format_file_size(new_size)),
            _field("Space Saved", format_file_size(max(0, original_size - new_size))),
            _field("Compression Ratio", compression_ratio(original_size, new_size)),
        ],
        "timestamp": _timestamp(),
    }
    if with_image:
        embed["image"] = {"url": f"attachment://{ATTACHMENT_NAME}"}
    return embed


def build_failure_embed(file_name: str, reason: str) -> Dict[str, Any]:
    return {
        "title": "❌ Compression Failed",
        "description": f"Failed to compress **{file_name}**",
        "color": COLOR_FAILURE,
        "fields": [_field("Error", reason, inline=False)],
        "timestamp": _timestamp(),
    }


class DiscordNotifier(Notifier):
    wants_preview = True

    def __init__(self, webhook_url: str, timeout: float = REQUEST_TIMEOUT) -> None:
        self.webhook_url = webhook_url
        self.timeout = timeout

    def notify_success(
        self,
        path: Path,
        original_size: int,
        new_size: int,
        preview_path: Optional[Path] = None,
    ) -> None:
        embed = build_success_embed(path.name, original_size, new_size, with_image=preview_path is not None)
        self._deliver([embed], preview_path)

    def notify_failure(self, path: Path, reason: str) -> None:
        self._deliver([build_failure_embed(path.name, reason)])

    def _deliver(self, embeds: List[Dict[str, Any]], attachment: Optional[Path] = None) -> None:
        try:
            self.send(embeds, attachment)
        except NotificationError as e:
            logger.warning(f"Discord notification failed: {e}")

    def send(self, embeds: List[Dict[str, Any]], attachment: Optional[Path] = None) -> None:
        """Post ``embeds``, as multipart with ``attachment`` when given.

        Raises:
            NotificationError: On transport errors or a status other than 200/204
        """
        message = {"embeds": embeds}

        try:
            if attachment is None:
                response = requests.post(self.webhook_url, json=message, timeout=self.timeout)
            else:
                with attachment.open("rb") as handle:
                    response = requests.post(
                        self.webhook_url,
                        data={"payload_json": json.dumps(message)},
                        files={"file": (ATTACHMENT_NAME, handle, "image/jpeg")},
                        timeout=self.timeout,
                    )
        except requests.exceptions.Timeout as e:
            raise NotificationError("webhook request timed out") from e
        except requests.exceptions.RequestException as e:
            raise NotificationError(f"webhook request failed: {e}") from e
        except OSError as e:
            raise NotificationError(f"cannot read attachment {attachment}: {e}") from e

        if response.status_code not in (200, 204):
            body = response.text.strip()[:200] if response.text else ""
            detail = f": {body}" if body else ""
            raise NotificationError(f"webhook returned status {response.status_code}{detail}")
