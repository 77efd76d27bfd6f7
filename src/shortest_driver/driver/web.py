"""Playwright driver for the web platform."""

from __future__ import annotations

import logging
from typing import Any, Optional

from playwright.async_api import Browser as PlaywrightBrowser
from playwright.async_api import Playwright, async_playwright

from ..browser.web import WebBrowser
from ..errors import SessionNotInitializedError, log_failure
from ..models import DeviceInfo, ImageDimension, Platform
from .base import Driver

LOGGER = logging.getLogger(__name__)


class WebDriver(Driver):
    """Launches Chromium and hands out one browser context per browser."""

    platform = Platform.WEB

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self._playwright: Optional[Playwright] = None
        self._browser: Optional[PlaywrightBrowser] = None

    @property
    def _viewport(self) -> ImageDimension:
        web = self._config.web
        return ImageDimension(width=web.viewport_width, height=web.viewport_height)

    async def _initialize(self) -> None:
        web = self._config.web
        self._logger.debug("Starting Playwright browser (headless=%s)", web.headless)
        self._playwright = await async_playwright().start()
        try:
            self._browser = await self._playwright.chromium.launch(
                headless=web.headless,
                args=list(web.launch_args),
            )
        except Exception:
            await self._playwright.stop()
            self._playwright = None
            raise
        self._device_info = DeviceInfo(platform=self.platform, viewport=self._viewport)

    async def _new_browser(self) -> WebBrowser:
        if self._browser is None:
            raise log_failure(
                self._logger,
                SessionNotInitializedError(
                    "Playwright browser is not running.", context={"platform": self.platform.value}
                ),
            )
        viewport = self._viewport
        context = await self._browser.new_context(
            viewport={"width": viewport.width, "height": viewport.height},
        )
        return WebBrowser(
            context,
            navigation_timeout_ms=self._config.navigation_timeout_ms,
            default_viewport=viewport,
            **self._browser_kwargs(),
        )

    def _session(self) -> Optional[PlaywrightBrowser]:
        return self._browser

    async def _release(self) -> None:
        self._logger.debug("Stopping Playwright browser")
        try:
            if self._browser:
                await self._browser.close()
        finally:
            if self._playwright:
                await self._playwright.stop()
            self._browser = None
            self._playwright = None
