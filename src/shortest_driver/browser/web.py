"""Playwright-powered browser implementation."""

from __future__ import annotations

import asyncio
import base64
import logging
from typing import Any, Optional, Sequence, Union

from playwright.async_api import BrowserContext, Page

from ..models import (
    ActionMetadata,
    ActionResult,
    BrowserState,
    ImageDimension,
    NavigateOptions,
    Platform,
    PointerOptions,
    ScrollDirection,
    ScrollOptions,
    WindowState,
)
from ..retry import retry
from ..stability import WebStabilityDetector
from .base import (
    Browser,
    Coordinate,
    clamp_sleep,
    gesture_direction,
    is_number,
    normalize_url,
)

LOGGER = logging.getLogger(__name__)

CURSOR_INIT_ATTEMPTS = 3
CURSOR_INIT_DELAY = 0.1
CLICK_SETTLE_MS = 500
TYPING_PAUSE_MS = 100
DRAG_STEPS = 10

CURSOR_OVERLAY_SCRIPT = """
() => {
  if (document.getElementById("__shortest_cursor")) {
    return;
  }
  const cursor = document.createElement("div");
  cursor.id = "__shortest_cursor";
  Object.assign(cursor.style, {
    position: "fixed",
    left: "0px",
    top: "0px",
    width: "16px",
    height: "16px",
    borderRadius: "50%",
    border: "2px solid white",
    background: "rgba(255, 0, 0, 0.6)",
    transform: "translate(-50%, -50%)",
    pointerEvents: "none",
    zIndex: "2147483647",
  });
  document.body.appendChild(cursor);
  document.addEventListener("mousemove", (event) => {
    cursor.style.left = `${event.clientX}px`;
    cursor.style.top = `${event.clientY}px`;
  }, true);
  document.addEventListener("mousedown", () => {
    cursor.style.background = "rgba(255, 200, 0, 0.8)";
  }, true);
  document.addEventListener("mouseup", () => {
    cursor.style.background = "rgba(255, 0, 0, 0.6)";
  }, true);
}
"""

# Playwright cannot return the element at a point, so it is read from the DOM
# and reduced to a stable description used to detect UI changes.
# https://github.com/microsoft/playwright/issues/13273
ELEMENT_AT_POINT_SCRIPT = """
({ x, y, allowedAttributes }) => {
  const element = document.elementFromPoint(x, y);
  if (!element) {
    return "";
  }
  let deepest = element.cloneNode(true);
  let maxDepth = 0;
  const traverse = (node, depth) => {
    if (depth > maxDepth) {
      maxDepth = depth;
      deepest = node;
    }
    Array.from(node.children).forEach((child) => traverse(child, depth + 1));
  };
  traverse(deepest, 0);
  const node = deepest.parentElement
    ? deepest.parentElement.parentElement || deepest.parentElement
    : deepest;
  const clean = (target) => {
    Array.from(target.attributes).forEach((attr) => {
      if (!allowedAttributes.includes(attr.name)) {
        target.removeAttribute(attr.name);
      }
    });
    Array.from(target.children).forEach(clean);
  };
  clean(node);
  return node.outerHTML.trim().replace(/\\s+/g, " ");
}
"""

ALLOWED_ATTRIBUTES = ["type", "name", "placeholder", "aria-label", "role", "title", "alt", "d"]

CLEAR_STORAGE_SCRIPT = """
() => {
  try {
    localStorage.clear();
    sessionStorage.clear();
    indexedDB.deleteDatabase("shortest");
  } catch (error) {
    // opaque origins such as about:blank have no storage
  }
}
"""


def _wheel_delta(gesture: ScrollDirection, amount: int) -> tuple[int, int]:
    return {
        ScrollDirection.UP: (0, amount),
        ScrollDirection.DOWN: (0, -amount),
        ScrollDirection.LEFT: (amount, 0),
        ScrollDirection.RIGHT: (-amount, 0),
    }[gesture]


class WebBrowser(Browser):
    """Browser bound to one Playwright browser context."""

    platform = Platform.WEB

    def __init__(
        self,
        context: BrowserContext,
        *,
        navigation_timeout_ms: int = 30000,
        default_viewport: Optional[ImageDimension] = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(**kwargs)
        self._context: Optional[BrowserContext] = context
        self._navigation_timeout_ms = navigation_timeout_ms
        self._default_viewport = default_viewport or ImageDimension(width=1920, height=1080)

    @property
    def context(self) -> BrowserContext:
        if self._context is None:
            raise self._not_initialized()
        return self._context

    def current_page(self) -> Optional[Page]:
        """Return the most recently opened page, if any."""

        pages = self.context.pages
        return pages[-1] if pages else None

    def _ensure_active(self) -> None:
        if self._context is None:
            raise self._not_initialized()

    def _page(self) -> Page:
        page = self.current_page()
        if page is None:
            raise RuntimeError("No page found.")
        return page

    async def viewport(self) -> ImageDimension:
        page = self.current_page()
        size = page.viewport_size if page else None
        if not size:
            return self._default_viewport
        return ImageDimension(width=size["width"], height=size["height"])

    async def navigate(self, url: str, options: Optional[NavigateOptions] = None) -> ActionResult:
        options = options or NavigateOptions()
        self._ensure_active()
        try:
            page = await self.context.new_page()
            await page.goto(normalize_url(url), timeout=self._navigation_timeout_ms)
            if options.should_initialize:
                await self._init_page(page)
            state = BrowserState(
                window=WindowState(
                    url=page.url,
                    title=await page.title(),
                    size=await self.viewport(),
                ),
                cursor=self.cursor,
            )
        except Exception as exc:
            raise self._fail(
                "Navigation failed.", exc, url=url, options=options.model_dump()
            ) from exc
        self._state = state
        return ActionResult(
            message="Navigation successful.",
            metadata=ActionMetadata(browser_state=state),
        )

    async def locate_at(self, x: float, y: float, options: Optional[PointerOptions] = None) -> ActionResult:
        self._ensure_active()
        try:
            x, y = await self._to_device(x, y, options)
            element = await self._page().evaluate(
                ELEMENT_AT_POINT_SCRIPT,
                {"x": x, "y": y, "allowedAttributes": ALLOWED_ATTRIBUTES},
            )
        except Exception as exc:
            raise self._fail("Failed to locate element.", exc, x=x, y=y) from exc
        return ActionResult(
            message="Found element located at coordinates.",
            payload={"element": element},
            metadata=ActionMetadata(x=x, y=y),
        )

    async def click(self, x: Coordinate, y: Coordinate, options: Optional[PointerOptions] = None) -> ActionResult:
        self._ensure_active()
        try:
            page = self._page()
            x, y = await self._resolve_click_target(x, y, options)
            await page.mouse.click(x, y)
        except Exception as exc:
            raise self._fail("Failed to click.", exc, x=x, y=y) from exc
        self._set_cursor(x, y)
        state = await self._refresh_state(settle_ms=CLICK_SETTLE_MS)
        return ActionResult(
            message=f"Mouse clicked at ({x}, {y})",
            metadata=ActionMetadata(browser_state=state, x=x, y=y),
        )

    async def move_cursor(self, x: Coordinate, y: Coordinate, options: Optional[PointerOptions] = None) -> ActionResult:
        self._ensure_active()
        try:
            if not (is_number(x) and is_number(y)):
                raise ValueError("Coordinates required for mouse move.")
            page = self._page()
            x, y = await self._to_device(x, y, options)
            await page.mouse.move(x, y)
        except Exception as exc:
            raise self._fail("Failed to move cursor.", exc, x=x, y=y) from exc
        self._set_cursor(x, y)
        return ActionResult(message=f"Cursor moved to {x} {y}.", metadata=ActionMetadata(x=x, y=y))

    async def drag(self, x: Coordinate, y: Coordinate, options: Optional[PointerOptions] = None) -> ActionResult:
        self._ensure_active()
        try:
            if not (is_number(x) and is_number(y)):
                raise ValueError("No coordinates provided.")
            page = self._page()
            x, y = await self._to_device(x, y, options)
            await page.mouse.move(self._cursor.x, self._cursor.y)
            await page.mouse.down()
            await page.mouse.move(x, y, steps=DRAG_STEPS)
            await page.mouse.up()
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
            page = self._page()
            await page.wait_for_timeout(TYPING_PAUSE_MS)
            *modifiers, key = keys
            for modifier in modifiers:
                await page.keyboard.down(modifier)
            await page.keyboard.press(key)
            for modifier in reversed(modifiers):
                await page.keyboard.up(modifier)
            await page.wait_for_timeout(TYPING_PAUSE_MS)
        except Exception as exc:
            raise self._fail("Failed to press key.", exc, keys=keys) from exc
        return ActionResult(message=f"Pressed key: {'+'.join(keys)}")

    async def type(self, text: str) -> ActionResult:
        self._ensure_active()
        try:
            if not text or not text.strip():
                raise ValueError("Text required for type action.")
            page = self._page()
            await page.wait_for_timeout(TYPING_PAUSE_MS)
            await page.keyboard.type(text)
            await page.wait_for_timeout(TYPING_PAUSE_MS)
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
            page = self._page()
            delta_x, delta_y = _wheel_delta(gesture, options.amount)
            await page.mouse.wheel(delta_x, delta_y)
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
            raw = await self._page().screenshot(type="png", full_page=False, scale="device")
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
        try:
            page = self.current_page()
            if page is not None:
                await page.wait_for_timeout(duration)
            else:
                await asyncio.sleep(duration / 1000)
        except Exception as exc:
            raise self._fail("Failed to sleep.", exc, ms=ms) from exc
        return ActionResult(
            message=f"Slept for {seconds} second{'' if seconds == 1 else 's'}.",
            payload={"duration_ms": duration},
        )

    async def cleanup(self) -> ActionResult:
        """Clear cookies, storage and permissions, blank every page and keep only one."""

        context = self.context
        try:
            pages = list(context.pages)
            await asyncio.gather(
                context.clear_cookies(),
                *(page.evaluate(CLEAR_STORAGE_SCRIPT) for page in pages),
                context.clear_permissions(),
            )
            await asyncio.gather(*(page.goto("about:blank") for page in pages))
            pages = list(context.pages)
            if len(pages) > 1:
                await asyncio.gather(*(page.close() for page in pages[1:]))
        except Exception as exc:
            raise self._fail("Failed to cleanup.", exc) from exc
        return ActionResult(message="Successfully cleaned up current browser.")

    async def destroy(self) -> None:
        context = self.context
        try:
            await context.close()
        except Exception as exc:
            raise self._fail("Failed to destroy browser.", exc, id=self.id) from exc
        self._context = None

    async def _snapshot(self) -> BrowserState:
        page = self.current_page()
        state = BrowserState(
            window=WindowState(
                url=page.url if page else "unknown",
                size=await self.viewport(),
            ),
            cursor=self.cursor,
        )
        if page is not None:
            state.window.title = await page.title()
            await WebStabilityDetector(page, self._stability, logger=self._logger).wait_until_stable()
        return state

    async def _refresh_state(self, settle_ms: int = 0) -> Optional[BrowserState]:
        if settle_ms:
            page = self.current_page()
            try:
                if page is not None:
                    await page.wait_for_timeout(settle_ms)
            except Exception as exc:
                self._logger.debug("Settle wait failed: %s", exc)
                return None
        return await super()._refresh_state()

    async def _init_page(self, page: Page) -> None:
        """Inject the cursor overlay now and after every subsequent page load."""

        async def inject() -> None:
            try:
                await retry(
                    lambda: page.evaluate(CURSOR_OVERLAY_SCRIPT),
                    attempts=CURSOR_INIT_ATTEMPTS,
                    delay=CURSOR_INIT_DELAY,
                    logger=self._logger,
                    description="cursor initialization",
                )
            except Exception as exc:
                self._logger.warning("Cursor overlay could not be initialized: %s", exc)

        async def on_load(_: Page) -> None:
            await inject()

        await inject()
        page.on("load", on_load)
