"""Browser abstraction shared by the web and mobile variants."""

from __future__ import annotations

import asyncio
import logging
import math
import uuid
from abc import ABC, abstractmethod
from typing import Any, Optional, Sequence, Union

from ..config import StabilityConfig
from ..errors import (
    ActionFailedError,
    SessionNotInitializedError,
    UnsupportedPlatformActionError,
    log_failure,
)
from ..imaging import VisionPipeline
from ..models import (
    ActionResult,
    BrowserState,
    CursorPosition,
    ImageDimension,
    NavigateOptions,
    Platform,
    PointerOptions,
    ScrollDirection,
    ScrollOptions,
)
from .screenshots import ScreenshotStore

LOGGER = logging.getLogger(__name__)

DEFAULT_SLEEP_DURATION_MS = 1000
MAX_SLEEP_DURATION_MS = 60000

Coordinate = Optional[Union[int, float]]


def is_number(value: Any) -> bool:
    return (
        isinstance(value, (int, float))
        and not isinstance(value, bool)
        and not math.isnan(value)
    )


def clamp_sleep(ms: Any) -> int:
    """Clamp a requested sleep to ``[0, MAX_SLEEP_DURATION_MS]`` milliseconds."""

    if not is_number(ms):
        return DEFAULT_SLEEP_DURATION_MS
    return int(min(max(ms, 0), MAX_SLEEP_DURATION_MS))


def gesture_direction(direction: Union[str, ScrollDirection]) -> ScrollDirection:
    """Return the pointer gesture direction that scrolls content ``direction``.

    Revealing content further down means swiping up, so the gesture is the
    opposite of the logical direction.
    """

    try:
        logical = ScrollDirection(str(getattr(direction, "value", direction)).lower())
    except ValueError:
        raise ValueError(f"Unrecognized scroll direction: {direction!r}") from None
    return logical.opposite


def normalize_url(url: str) -> str:
    url = url.strip()
    if "://" in url or url.startswith(("about:", "data:")):
        return url
    return f"https://{url}"


class Browser(ABC):
    """Uniform action contract against one page or app context.

    Every action returns an :class:`ActionResult`. Failures are logged with
    their cause and inputs and raised as :class:`ActionFailedError`; only the
    browser state attached after a successful action is best effort.
    """

    platform: Platform

    def __init__(
        self,
        *,
        stability: Optional[StabilityConfig] = None,
        screenshots: Optional[ScreenshotStore] = None,
        pipeline: Optional[VisionPipeline] = None,
        vision_resize: bool = False,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._id = str(uuid.uuid4())
        self._cursor = CursorPosition()
        self._state = BrowserState()
        self._stability = stability or StabilityConfig()
        self._screenshots = screenshots or ScreenshotStore()
        self._pipeline = pipeline or VisionPipeline()
        self._vision_resize = vision_resize
        self._logger = logger or LOGGER
        self._screenshots.ensure_directory()

    @property
    def id(self) -> str:
        return self._id

    @property
    def cursor(self) -> CursorPosition:
        return self._cursor.model_copy()

    @property
    def state(self) -> BrowserState:
        """Last known state; refreshed opportunistically after actions."""

        return self._state.model_copy(deep=True)

    @property
    def pipeline(self) -> VisionPipeline:
        return self._pipeline

    @abstractmethod
    async def navigate(self, url: str, options: Optional[NavigateOptions] = None) -> ActionResult:
        """Open ``url``."""

    @abstractmethod
    async def locate_at(self, x: float, y: float, options: Optional[PointerOptions] = None) -> ActionResult:
        """Describe the element rendered at ``(x, y)``."""

    @abstractmethod
    async def click(self, x: Coordinate, y: Coordinate, options: Optional[PointerOptions] = None) -> ActionResult:
        """Click at ``(x, y)``, or at the last cursor position when missing."""

    @abstractmethod
    async def move_cursor(self, x: Coordinate, y: Coordinate, options: Optional[PointerOptions] = None) -> ActionResult:
        """Move the pointer to ``(x, y)``."""

    @abstractmethod
    async def drag(self, x: Coordinate, y: Coordinate, options: Optional[PointerOptions] = None) -> ActionResult:
        """Drag from the current cursor position to ``(x, y)``."""

    @abstractmethod
    async def press_key(self, keys: Union[str, Sequence[str]]) -> ActionResult:
        """Press a key or a key combination."""

    @abstractmethod
    async def type(self, text: str) -> ActionResult:
        """Type ``text`` into the focused element."""

    @abstractmethod
    async def scroll(
        self,
        direction: Union[str, ScrollDirection],
        options: Optional[ScrollOptions] = None,
    ) -> ActionResult:
        """Scroll the content in ``direction``."""

    @abstractmethod
    async def screenshot(self) -> ActionResult:
        """Capture, store and return the current screen as base64."""

    @abstractmethod
    async def sleep(self, ms: Optional[float]) -> ActionResult:
        """Pause for ``ms`` milliseconds."""

    @abstractmethod
    async def cleanup(self) -> ActionResult:
        """Reset cookies, storage and pages without ending the session."""

    @abstractmethod
    async def destroy(self) -> None:
        """Release the session; the browser is unusable afterwards."""

    @abstractmethod
    async def viewport(self) -> ImageDimension:
        """Size of the device viewport in device pixels."""

    @abstractmethod
    async def _snapshot(self) -> BrowserState:
        """Read the current state from the session."""

    async def get_state(self) -> ActionResult:
        self._ensure_active()
        try:
            state = await self._snapshot()
        except Exception as exc:
            raise self._fail("Failed to retrieve state.", exc) from exc
        self._state = state
        return ActionResult(message="State retrieved.", payload={"state": state.model_dump()})

    @abstractmethod
    def _ensure_active(self) -> None:
        """Raise :class:`SessionNotInitializedError` once destroyed."""

    def _not_initialized(self) -> SessionNotInitializedError:
        return log_failure(
            self._logger,
            SessionNotInitializedError(
                "Browser session is not available.",
                context={"id": self._id, "platform": self.platform.value},
            ),
        )

    def _fail(self, message: str, cause: BaseException, **context: Any) -> ActionFailedError:
        return log_failure(
            self._logger,
            ActionFailedError(message, cause=cause, context=context),
        )

    def _unsupported(self, action: str) -> ActionResult:
        error = UnsupportedPlatformActionError(action, self.platform.value)
        self._logger.warning("%s", error.message)
        return ActionResult(
            message=error.message,
            payload={"unsupported": True, "action": action, "platform": self.platform.value},
        )

    async def _resolve_click_target(
        self, x: Coordinate, y: Coordinate, options: Optional[PointerOptions]
    ) -> tuple[float, float]:
        """Return the device point to click.

        Caller coordinates go through the canvas mapping; the remembered
        cursor is already in device pixels and is used as is.
        """

        if is_number(x) and is_number(y):
            return await self._to_device(x, y, options)  # type: ignore[arg-type]
        x, y = self._cursor.x, self._cursor.y
        self._logger.warning(
            "No coordinates provided. Using last remembered cursor position %s %s", x, y
        )
        return x, y

    async def _to_device(
        self, x: float, y: float, options: Optional[PointerOptions]
    ) -> tuple[float, float]:
        if options is None or not options.canvas:
            return x, y
        return self._pipeline.to_device(x, y, await self.viewport())

    def _set_cursor(self, x: float, y: float) -> None:
        self._cursor = CursorPosition(x=x, y=y)
        self._state.cursor = self._cursor.model_copy()

    async def _refresh_state(self) -> Optional[BrowserState]:
        try:
            state = await self._snapshot()
        except Exception as exc:
            self._logger.debug("Could not refresh browser state: %s", exc)
            return None
        self._state = state
        return state

    async def _prepare_screenshot(self, raw: bytes) -> bytes:
        if not self._vision_resize:
            return raw
        viewport = await self.viewport()
        return await asyncio.to_thread(self._pipeline.prepare, raw, viewport)
