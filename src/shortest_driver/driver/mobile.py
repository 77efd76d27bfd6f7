"""Appium drivers for Android (UiAutomator2) and iOS (XCUITest)."""

from __future__ import annotations

import asyncio
import logging
from abc import abstractmethod
from typing import Any, Optional, Type

import httpx
from appium import webdriver
from appium.options.android import UiAutomator2Options
from appium.options.common.base import AppiumOptions
from appium.options.ios import XCUITestOptions

from ..browser.mobile import AndroidBrowser, IOSBrowser, MobileBrowser
from ..errors import DriverInitializationError, log_failure
from ..models import DeviceInfo, ImageDimension, Platform
from ..retry import retry
from .base import Driver

LOGGER = logging.getLogger(__name__)


class MobileDriver(Driver):
    """Connects to an Appium server and shares the session with its browsers."""

    automation_name: str
    browser_class: Type[MobileBrowser]

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self._remote: Optional[webdriver.Remote] = None

    async def _initialize(self) -> None:
        mobile = self._config.mobile
        try:
            remote = await retry(
                self._connect,
                attempts=mobile.connect_attempts,
                delay=mobile.connect_delay,
                logger=self._logger,
                description=f"connecting to Appium at {mobile.server_url}",
            )
        except Exception as exc:
            raise log_failure(
                self._logger,
                DriverInitializationError(
                    f"Could not connect to the Appium server at {mobile.server_url}.",
                    cause=exc,
                    context={
                        "server_url": mobile.server_url,
                        "attempts": mobile.connect_attempts,
                        "platform": self.platform.value,
                    },
                ),
            ) from exc
        await self._load_device_info(remote)
        await self._launch(remote)

    async def _connect(self) -> webdriver.Remote:
        if self._remote is None:
            await self._check_server_status()
            self._remote = await asyncio.to_thread(self._create_session)
        return self._remote

    async def _check_server_status(self) -> None:
        mobile = self._config.mobile
        async with httpx.AsyncClient(base_url=mobile.server_url, timeout=mobile.status_timeout) as client:
            response = await client.get("/status")
            response.raise_for_status()

    def _create_session(self) -> webdriver.Remote:
        return webdriver.Remote(self._config.mobile.server_url, options=self._options())

    def _capabilities(self) -> dict[str, Any]:
        return {
            "platformName": self.platform.value,
            "appium:automationName": self.automation_name,
            "appium:noReset": True,
            **self._config.mobile.capabilities,
        }

    @abstractmethod
    def _options(self) -> AppiumOptions:
        """Build the Appium options for this platform."""

    async def _load_device_info(self, remote: webdriver.Remote) -> None:
        rect = await asyncio.to_thread(remote.get_window_rect)
        self._device_info = DeviceInfo(
            platform=self.platform,
            viewport=ImageDimension(width=int(rect["width"]), height=int(rect["height"])),
        )

    async def _launch(self, remote: webdriver.Remote) -> None:
        app_id = self._config.mobile.app_id
        if not app_id:
            return
        self._logger.info("Activating app %s", app_id)
        await asyncio.to_thread(remote.activate_app, app_id)

    async def _new_browser(self) -> MobileBrowser:
        return self.browser_class(
            self._remote,
            device_info=self._device_info,
            tap_settle_ms=self._config.mobile.tap_settle_ms,
            **self._browser_kwargs(),
        )

    def _session(self) -> Optional[webdriver.Remote]:
        return self._remote

    async def _release(self) -> None:
        if self._remote is None:
            return
        remote, self._remote = self._remote, None
        await asyncio.to_thread(remote.quit)


class AndroidDriver(MobileDriver):
    platform = Platform.ANDROID
    automation_name = "UiAutomator2"
    browser_class = AndroidBrowser

    def _options(self) -> AppiumOptions:
        return UiAutomator2Options().load_capabilities(self._capabilities())


class IOSDriver(MobileDriver):
    platform = Platform.IOS
    automation_name = "XCUITest"
    browser_class = IOSBrowser

    def _options(self) -> AppiumOptions:
        return XCUITestOptions().load_capabilities(self._capabilities())
