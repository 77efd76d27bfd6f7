"""Driver abstraction: owner of one automation session and its browsers."""

from __future__ import annotations

import enum
import logging
from abc import ABC, abstractmethod
from typing import Any, List, Optional

from ..browser.base import Browser
from ..browser.screenshots import ScreenshotStore
from ..config import DriverSettings
from ..errors import (
    DriverInitializationError,
    SessionNotFoundError,
    SessionNotInitializedError,
    log_failure,
)
from ..models import DeviceInfo, Platform
from .registry import SessionRegistry

LOGGER = logging.getLogger(__name__)


class DriverState(str, enum.Enum):
    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    READY = "ready"
    DESTROYED = "destroyed"


class Driver(ABC):
    """Platform specific owner of a session and the browsers created under it."""

    platform: Platform

    def __init__(
        self,
        config: Optional[DriverSettings] = None,
        *,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._config = config or DriverSettings(platform=self.platform)
        self._logger = logger or LOGGER
        self._registry = SessionRegistry()
        self._state = DriverState.UNINITIALIZED
        self._device_info: Optional[DeviceInfo] = None

    @property
    def state(self) -> DriverState:
        return self._state

    @property
    def config(self) -> DriverSettings:
        return self._config

    @property
    def registry(self) -> SessionRegistry:
        return self._registry

    async def init(self) -> None:
        """Connect to the automation session and load device metadata."""

        if self._state is DriverState.READY:
            return
        if self._state is DriverState.DESTROYED:
            raise log_failure(
                self._logger,
                SessionNotInitializedError(
                    "Driver has been destroyed.", context={"platform": self.platform.value}
                ),
            )
        self._state = DriverState.INITIALIZING
        try:
            await self._initialize()
        except DriverInitializationError:
            self._state = DriverState.UNINITIALIZED
            raise
        except Exception as exc:
            self._state = DriverState.UNINITIALIZED
            raise log_failure(
                self._logger,
                DriverInitializationError(
                    "Driver initialization failed.",
                    cause=exc,
                    context={"platform": self.platform.value},
                ),
            ) from exc
        self._state = DriverState.READY

    async def create_browser(self) -> Browser:
        self._require_ready()
        browser = await self._new_browser()
        self._registry.add(browser)
        self._logger.info("Browser session with ID %s created successfully.", browser.id)
        return browser

    async def close_browser(self, browser_id: str) -> None:
        try:
            browser = self._registry.get(browser_id)
        except SessionNotFoundError as exc:
            raise log_failure(self._logger, exc)
        await browser.destroy()
        self._registry.remove(browser_id)
        self._logger.info("Browser session with ID %s closed successfully.", browser_id)

    def get_browser(self, browser_id: str) -> Browser:
        return self._registry.get(browser_id)

    def browsers(self) -> List[Browser]:
        return self._registry.values()

    def get_device_info(self) -> DeviceInfo:
        if self._state is not DriverState.READY or self._device_info is None:
            raise SessionNotInitializedError(
                "Device information not available. Ensure that init() is called first.",
                context={"platform": self.platform.value, "state": self._state.value},
            )
        return self._device_info

    def get_session(self) -> Any:
        """Return the underlying automation session."""

        self._require_ready()
        return self._session()

    async def destroy(self) -> None:
        """Close every browser and release the session."""

        if self._state is DriverState.DESTROYED:
            return
        for browser_id in self._registry.ids():
            try:
                await self.close_browser(browser_id)
            except Exception as exc:
                self._logger.warning("Failed to close browser %s during teardown: %s", browser_id, exc)
        try:
            await self._release()
        finally:
            self._registry.clear()
            self._device_info = None
            self._state = DriverState.DESTROYED
        self._logger.info("%s driver destroyed.", self.platform.value)

    def _require_ready(self) -> None:
        if self._state is not DriverState.READY:
            raise log_failure(
                self._logger,
                SessionNotInitializedError(
                    "Driver not initialized.",
                    context={"platform": self.platform.value, "state": self._state.value},
                ),
            )

    def _browser_kwargs(self) -> dict[str, Any]:
        return {
            "stability": self._config.stability,
            "screenshots": ScreenshotStore(self._config.screenshots.directory),
            "vision_resize": self._config.vision_resize_enabled(self.platform),
            "logger": self._logger,
        }

    @abstractmethod
    async def _initialize(self) -> None:
        """Establish the session; called while INITIALIZING."""

    @abstractmethod
    async def _new_browser(self) -> Browser:
        """Build a browser bound to the current session."""

    @abstractmethod
    def _session(self) -> Any:
        """Return the session object."""

    @abstractmethod
    async def _release(self) -> None:
        """Release the session."""
