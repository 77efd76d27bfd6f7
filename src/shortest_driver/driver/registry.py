"""Registry of the browsers created by one driver."""

from __future__ import annotations

import threading
from typing import Dict, List

from ..browser.base import Browser
from ..errors import SessionNotFoundError


class SessionRegistry:
    """Thread-safe mapping of browser id to browser."""

    def __init__(self) -> None:
        self._browsers: Dict[str, Browser] = {}
        self._lock = threading.Lock()

    def add(self, browser: Browser) -> None:
        with self._lock:
            if browser.id in self._browsers:
                raise ValueError(f"Browser session with ID {browser.id} is already registered.")
            self._browsers[browser.id] = browser

    def get(self, browser_id: str) -> Browser:
        with self._lock:
            try:
                return self._browsers[browser_id]
            except KeyError:
                raise SessionNotFoundError(browser_id) from None

    def remove(self, browser_id: str) -> Browser:
        with self._lock:
            try:
                return self._browsers.pop(browser_id)
            except KeyError:
                raise SessionNotFoundError(browser_id) from None

    def clear(self) -> None:
        with self._lock:
            self._browsers.clear()

    def ids(self) -> List[str]:
        with self._lock:
            return list(self._browsers)

    def values(self) -> List[Browser]:
        with self._lock:
            return list(self._browsers.values())

    def __contains__(self, browser_id: object) -> bool:
        with self._lock:
            return browser_id in self._browsers

    def __len__(self) -> int:
        with self._lock:
            return len(self._browsers)
