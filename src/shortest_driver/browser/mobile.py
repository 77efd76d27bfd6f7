"""Appium-powered browser implementations for Android and iOS."""

from __future__ import annotations

import asyncio
import base64
import logging
from abc import abstractmethod
from typing import Any, Callable, Optional, Sequence, TypeVar, Union

from appium.webdriver.webdriver import WebDriver as AppiumSession

from ..models import (
    ActionMetadata,
    ActionResult,
    BrowserState,
    DeviceInfo,
    ImageDimension,
    NavigateOptions,
    Platform,
    PointerOptions,
    ScrollDirection,
    ScrollOptions,
    WindowState,
)
from ..stability import MobileStabilityDetector
from .base import Browser, Coordinate, clamp_sleep, gesture_direction, is_number

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")

DRAG_DURATION_MS = 500
SWIPE_DURATION_MS = 300

ANDROID_KEYCODES = {
    "enter": 66,
    "return": 66,
    "back": 4,
    "home": 3,
    "tab": 61,
    "space": 62,
    "backspace": 67,
    "delete": 112,
    "escape": 111,
}

IOS_BUTTONS = {"home": "home", "volumeup": "volumeUp", "volumedown": "volumeDown"}


class MobileBrowser(Browser):
    """Browser bound to an Appium session owned by a mobile driver.

    The session is shared with the driver: destroying the browser detaches it
    and the driver quits the session when it is destroyed itself.
    """

    def __init__(
        self,
        session: AppiumSession,
        *,
        device_info: Optional[DeviceInfo] = None,
        tap_settle_ms: int = 5000,
        **kwargs: Any,
    ) -> None:
        kwargs.setdefault("vision_resize", True)
        super().__init__(**kwargs)
        self._session: Optional[AppiumSession] = session
        self._device_info = device_info
        self._tap_settle_ms = tap_settle_ms

    @property
    def session(self) -> AppiumSession:
        if self._session is None:
            raise self._not_initialized()
        return self._session

    def _ensure_active(self) -> None:
        if self._session is None:
            raise self._not_initialized()

    async def _call(self, func: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        return await asyncio.to_thread(func, *args, **kwargs)

    async def _pause(self, ms: int) -> None:
        await asyncio.sleep(ms / 1000)

    async def viewport(self) -> ImageDimension:
        if self._device_info is not None:
            return self._device_info.viewport
        rect = await self._call(self.session.get_window_rect)
        return ImageDimension(width=int(rect["width"]), height=int(rect["height"]))

    @abstractmethod
    async def _tap(self, x: float, y: float) -> None:
        """Tap the screen at device coordinates."""

    @abstractmethod
    async def _press(self, key: str) -> None:
        """Press a hardware or keyboard key."""

    async def _current_title(self) -> Optional[str]:
        return None

    async def navigate(self, url: str, options: Optional[NavigateOptions] = None) -> ActionResult:
        self._ensure_active()
        return self._unsupported("navigate")

    async def locate_at(self, x: float, y: float, options: Optional[PointerOptions] = None) -> ActionResult:
        self._ensure_active()
        return self._unsupported("locate_at")

    async def cleanup(self) -> ActionResult:
        self._ensure_active()
        return self._unsupported("cleanup")

    async def click(self, x: Coordinate, y: Coordinate, options: Optional[PointerOptions] = None) -> ActionResult:
        self._ensure_active()
        try:
            x, y = await self._resolve_click_target(x, y, options)
            await self._tap(x, y)
        except Exception as exc:
            raise self._fail("Failed to tap.", exc, x=x, y=y) from exc
        self._set_cursor(x, y)
        if self._tap_settle_ms:
            await self._pause(self._tap_settle_ms)
        state = await self._refresh_state()
        return ActionResult(
            message=f"Tap performed at ({x}, {y})",
            metadata=ActionMetadata(browser_state=state, x=x, y=y),
        )

    async def move_cursor(self, x: Coordinate, y: Coordinate, options: Optional[PointerOptions] = None) -> ActionResult:
        # Touch screens have no hover; the position is remembered for later taps.
        self._ensure_active()
        try:
            if not (is_number(x) and is_number(y)):
                raise ValueError("Coordinates required for mouse move.")
            x, y = await self._to_device(x, y, options)
        except Exception as exc:
            raise self._fail("Failed to move cursor.", exc, x=x, y=y) from exc
        self._set_cursor(x, y)
        return ActionResult(message=f"Cursor moved to {x} {y}.", metadata=ActionMetadata(x=x, y=y))

    async def drag(self, x: Coordinate, y: Coordinate, options: Optional[PointerOptions] = None) -> ActionResult:
        self._ensure_active()
        try:
            if not (is_number(x) and is_number(y)):
                raise ValueError("No coordinates provided.")
            x, y = await self._to_device(x, y, options)
            await self._call(
                self.session.swipe,
                int(self._cursor.x),
                int(self._cursor.y),
                int(x),
                int(y),
                DRAG_DURATION_MS,
            )
        except Exception as exc:
            raise self._fail("Failed to drag.", exc, x=x, y=y) from exc
        self._set_cursor(x, y)
        return ActionResult(message="Element dragged.", payload={}, metadata=ActionMetadata(x=x, y=y))

    async def press_key(self, keys: Union[str, Sequence[str]]) -> ActionResult:
        self._ensure_active()
        keys = [keys] if isinstance(keys, str) else list(keys)
        try:
            if not keys:
                raise ValueError("Key required for press_key action.")
            for key in keys:
                await self._press(key)
        except Exception as exc:
            raise self._fail("Failed to press key.", exc, keys=keys) from exc
        return ActionResult(message=f"Pressed key: {'+'.join(keys)}")

    async def type(self, text: str) -> ActionResult:
        self._ensure_active()
        try:
            if not text or not text.strip():
                raise ValueError("Text required for type action.")
            element = await self._call(lambda: self.session.switch_to.active_element)
            await self._call(element.send_keys, text)
        except Exception as exc:
            raise self._fail("Failed to type.", exc, text=text) from exc
        return ActionResult(message=f"Typed: {text}")

    async def scroll(
        self,
        direction: Union[str, ScrollDirection],
        options: Optional[ScrollOptions] = None,
    ) -> ActionResult:
        options = options or ScrollOptions()
        self._ensure_active()
        try:
            gesture = gesture_direction(direction)
            viewport = await self.viewport()
            center_x, center_y = viewport.width // 2, viewport.height // 2
            half = options.amount // 2
            start, end = {
                ScrollDirection.UP: ((center_x, center_y + half), (center_x, center_y - half)),
                ScrollDirection.DOWN: ((center_x, center_y - half), (center_x, center_y + half)),
                ScrollDirection.LEFT: ((center_x + half, center_y), (center_x - half, center_y)),
                ScrollDirection.RIGHT: ((center_x - half, center_y), (center_x + half, center_y)),
            }[gesture]
            await self._call(self.session.swipe, *start, *end, SWIPE_DURATION_MS)
        except Exception as exc:
            raise self._fail(
                "Failed to scroll.", exc, direction=str(direction), amount=options.amount
            ) from exc
        state = await self._refresh_state()
        return ActionResult(
            message=f"Scrolled {getattr(direction, 'value', direction)}.",
            metadata=ActionMetadata(browser_state=state),
        )

    async def screenshot(self) -> ActionResult:
        self._ensure_active()
        try:
            raw = await self._call(self.session.get_screenshot_as_png)
            image = await self._prepare_screenshot(raw)
            path = await asyncio.to_thread(self._screenshots.save, image)
        except Exception as exc:
            raise self._fail("Screenshot failed.", exc) from exc
        state = await self._refresh_state()
        return ActionResult(
            message="Screenshot taken",
            payload={"base64_image": base64.b64encode(image).decode("ascii"), "path": str(path)},
            metadata=ActionMetadata(browser_state=state),
        )

    async def sleep(self, ms: Optional[float]) -> ActionResult:
        self._ensure_active()
        duration = clamp_sleep(ms)
        if is_number(ms) and ms > duration:
            self._logger.warning(
                "Requested sleep duration %sms exceeds maximum of %sms. Using maximum.",
                ms,
                duration,
            )
        seconds = round(duration / 1000)
        self._logger.info("Waiting for %s second%s...", seconds, "" if seconds == 1 else "s")
        await self._pause(duration)
        return ActionResult(
            message=f"Slept for {seconds} second{'' if seconds == 1 else 's'}.",
            payload={"duration_ms": duration},
        )

    async def destroy(self) -> None:
        self._ensure_active()
        self._session = None
        self._logger.debug("Browser %s detached from its session", self.id)

    async def _snapshot(self) -> BrowserState:
        session = self.session
        await MobileStabilityDetector(session, self._stability, logger=self._logger).wait_until_stable()
        rect = await self._call(session.get_window_rect)
        return BrowserState(
            window=WindowState(
                title=await self._current_title(),
                size=ImageDimension(width=int(rect["width"]), height=int(rect["height"])),
            ),
            cursor=self.cursor,
        )


class AndroidBrowser(MobileBrowser):
    """UiAutomator2 flavoured mobile browser."""

    platform = Platform.ANDROID

    async def _tap(self, x: float, y: float) -> None:
        await self._call(
            self.session.execute_script,
            "mobile: clickGesture",
            {"x": int(x), "y": int(y)},
        )

    async def _press(self, key: str) -> None:
        code = ANDROID_KEYCODES.get(key.lower())
        if code is None:
            raise ValueError(f"Unsupported Android key: {key}")
        await self._call(self.session.press_keycode, code)

    async def _current_title(self) -> Optional[str]:
        return await self._call(lambda: self.session.current_activity)


class IOSBrowser(MobileBrowser):
    """XCUITest flavoured mobile browser."""

    platform = Platform.IOS

    async def _tap(self, x: float, y: float) -> None:
        await self._call(
            self.session.execute_script,
            "mobile: tap",
            {"x": int(x), "y": int(y)},
        )

    async def _press(self, key: str) -> None:
        lowered = key.lower()
        if lowered in {"enter", "return"}:
            element = await self._call(lambda: self.session.switch_to.active_element)
            await self._call(element.send_keys, "\n")
            return
        button = IOS_BUTTONS.get(lowered)
        if button is None:
            raise ValueError(f"Unsupported iOS key: {key}")
        await self._call(self.session.execute_script, "mobile: pressButton", {"name": button})
