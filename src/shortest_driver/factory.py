"""Factories for constructing drivers from configuration."""

from __future__ import annotations

import logging
from typing import Optional, Type, Union

from .config import DriverSettings
from .driver.base import Driver
from .driver.mobile import AndroidDriver, IOSDriver
from .driver.web import WebDriver
from .errors import UnsupportedPlatformError, log_failure
from .models import Platform

LOGGER = logging.getLogger(__name__)

DRIVERS: dict[Platform, Type[Driver]] = {
    Platform.WEB: WebDriver,
    Platform.ANDROID: AndroidDriver,
    Platform.IOS: IOSDriver,
}


def resolve_platform(platform: Union[str, Platform]) -> Platform:
    try:
        return Platform(str(getattr(platform, "value", platform)).lower())
    except ValueError:
        raise UnsupportedPlatformError(
            f"Unsupported platform: {platform}",
            context={"platform": str(platform), "supported": [item.value for item in Platform]},
        ) from None


async def build_driver(
    config: Optional[DriverSettings] = None,
    *,
    platform: Union[str, Platform, None] = None,
    logger: Optional[logging.Logger] = None,
    initialize: bool = True,
) -> Driver:
    """Create the driver for ``platform`` (or ``config.platform``) and initialize it."""

    log = logger or LOGGER
    config = config or DriverSettings()
    try:
        selected = resolve_platform(platform if platform is not None else config.platform)
    except UnsupportedPlatformError as exc:
        raise log_failure(log, exc)
    if selected is not config.platform:
        config = config.model_copy(update={"platform": selected})
    log.info("Initializing driver for %s platform", selected.value)
    driver = DRIVERS[selected](config, logger=logger)
    if initialize:
        await driver.init()
        log.info("Driver initialized")
    return driver
