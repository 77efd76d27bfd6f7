"""On-disk storage of captured screenshots."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

LOGGER = logging.getLogger(__name__)


def default_screenshot_dir() -> Path:
    return Path.cwd() / ".shortest" / "screenshots"


def screenshot_filename(now: datetime, suffix: int = 0) -> str:
    """Build ``screenshot-<ISO 8601 timestamp>.png`` with ':' and '.' replaced by '-'."""

    stamp = now.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ")
    stamp = stamp.replace(":", "-").replace(".", "-")
    if suffix:
        stamp = f"{stamp}-{suffix}"
    return f"screenshot-{stamp}.png"


class ScreenshotStore:
    """Append-only screenshot directory keyed by capture time.

    Timestamps have microsecond resolution; if two captures still land on the
    same name a numeric suffix is appended instead of overwriting.
    """

    def __init__(self, directory: Optional[Path] = None) -> None:
        self._directory = directory or default_screenshot_dir()

    @property
    def directory(self) -> Path:
        return self._directory

    def ensure_directory(self) -> Path:
        self._directory.mkdir(parents=True, exist_ok=True)
        return self._directory

    def save(self, data: bytes, *, now: Optional[datetime] = None) -> Path:
        self.ensure_directory()
        now = now or datetime.now(timezone.utc)
        suffix = 0
        while True:
            path = self._directory / screenshot_filename(now, suffix)
            try:
                with path.open("xb") as handle:
                    handle.write(data)
            except FileExistsError:
                suffix += 1
                continue
            LOGGER.debug("Saved screenshot to %s", path)
            return path
