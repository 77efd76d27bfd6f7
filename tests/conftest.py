from __future__ import annotations

import asyncio
import io
from types import SimpleNamespace
from typing import Any

import pytest
from PIL import Image

from shortest_driver.browser.mobile import AndroidBrowser
from shortest_driver.browser.screenshots import ScreenshotStore
from shortest_driver.browser.web import WebBrowser
from shortest_driver.config import StabilityConfig
from shortest_driver.models import DeviceInfo, ImageDimension, Platform


def png_bytes(width: int, height: int, color: tuple[int, int, int] = (200, 100, 50)) -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", (width, height), color).save(buffer, format="PNG")
    return buffer.getvalue()


FAST_STABILITY = StabilityConfig(
    load_timeout_ms=200,
    quiet_period_ms=10,
    max_quiet_wait_ms=200,
    poll_interval_ms=5,
)


class FakeMouse:
    def __init__(self) -> None:
        self.calls: list[tuple[Any, ...]] = []
        self.fail = False

    async def click(self, x: float, y: float) -> None:
        if self.fail:
            raise RuntimeError("mouse detached")
        self.calls.append(("click", x, y))

    async def move(self, x: float, y: float, steps: int = 1) -> None:
        self.calls.append(("move", x, y))

    async def down(self) -> None:
        self.calls.append(("down",))

    async def up(self) -> None:
        self.calls.append(("up",))

    async def wheel(self, delta_x: float, delta_y: float) -> None:
        self.calls.append(("wheel", delta_x, delta_y))


class FakeKeyboard:
    def __init__(self) -> None:
        self.calls: list[tuple[str, str]] = []

    async def press(self, key: str) -> None:
        self.calls.append(("press", key))

    async def down(self, key: str) -> None:
        self.calls.append(("down", key))

    async def up(self, key: str) -> None:
        self.calls.append(("up", key))

    async def type(self, text: str) -> None:
        self.calls.append(("type", text))


class FakePage:
    def __init__(self, context: "FakeContext") -> None:
        self._context = context
        self.url = "about:blank"
        self.page_title = "Blank"
        self.viewport_size = {"width": 1280, "height": 720}
        self.mouse = FakeMouse()
        self.keyboard = FakeKeyboard()
        self.waits: list[float] = []
        self.evaluated: list[str] = []
        self.evaluate_args: list[Any] = []
        self.handlers: dict[str, list[Any]] = {}
        self.overlay_failures = 0
        self.loaded = True
        self.quiet = True
        self.title_error: Exception | None = None
        self.closed = False

    async def goto(self, url: str, timeout: float | None = None) -> None:
        self.url = url
        self.goto_timeout = timeout

    async def title(self) -> str:
        if self.title_error is not None:
            raise self.title_error
        return self.page_title

    async def evaluate(self, script: str, arg: Any = None) -> Any:
        self.evaluated.append(script)
        self.evaluate_args.append(arg)
        if "__shortest_cursor" in script:
            if self.overlay_failures > 0:
                self.overlay_failures -= 1
                raise RuntimeError("document.body is null")
            return None
        if "MutationObserver" in script:
            return self.quiet
        if "elementFromPoint" in script:
            return '<button type="submit">Sign in</button>'
        return None

    async def wait_for_load_state(self, state: str, timeout: float | None = None) -> None:
        if not self.loaded:
            await asyncio.sleep(3600)

    async def wait_for_selector(self, selector: str, timeout: float | None = None) -> None:
        if not self.loaded:
            await asyncio.sleep(3600)

    async def wait_for_timeout(self, ms: float) -> None:
        self.waits.append(ms)

    def on(self, event: str, handler: Any) -> None:
        self.handlers.setdefault(event, []).append(handler)

    async def screenshot(self, **kwargs: Any) -> bytes:
        return png_bytes(self.viewport_size["width"], self.viewport_size["height"])

    async def close(self) -> None:
        self.closed = True
        self._context.pages.remove(self)


class FakeContext:
    def __init__(self) -> None:
        self.pages: list[FakePage] = []
        self.cookies_cleared = False
        self.permissions_cleared = False
        self.closed = False

    async def new_page(self) -> FakePage:
        page = FakePage(self)
        self.pages.append(page)
        return page

    async def clear_cookies(self) -> None:
        self.cookies_cleared = True

    async def clear_permissions(self) -> None:
        self.permissions_cleared = True

    async def close(self) -> None:
        self.closed = True


class FakeElement:
    def __init__(self) -> None:
        self.keys: list[str] = []

    def send_keys(self, text: str) -> None:
        self.keys.append(text)


class FakeAppiumSession:
    """Synchronous stand-in for ``appium.webdriver.Remote``."""

    def __init__(self, width: int = 1080, height: int = 1920) -> None:
        self.width = width
        self.height = height
        self.scripts: list[tuple[str, Any]] = []
        self.swipes: list[tuple[int, ...]] = []
        self.keycodes: list[int] = []
        self.activated: list[str] = []
        self.active = FakeElement()
        self.switch_to = SimpleNamespace(active_element=self.active)
        self.current_activity = ".MainActivity"
        self.page_source = "<hierarchy/>"
        self.quit_called = False

    def find_elements(self, by: str, value: str) -> list[object]:
        return [object()]

    def get_window_rect(self) -> dict[str, int]:
        return {"x": 0, "y": 0, "width": self.width, "height": self.height}

    def execute_script(self, script: str, *args: Any) -> None:
        self.scripts.append((script, args[0] if args else None))

    def swipe(self, start_x: int, start_y: int, end_x: int, end_y: int, duration: int = 0) -> None:
        self.swipes.append((start_x, start_y, end_x, end_y, duration))

    def press_keycode(self, code: int) -> None:
        self.keycodes.append(code)

    def get_screenshot_as_png(self) -> bytes:
        return png_bytes(self.width, self.height)

    def activate_app(self, app_id: str) -> None:
        self.activated.append(app_id)

    def quit(self) -> None:
        self.quit_called = True


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
def fake_context() -> FakeContext:
    return FakeContext()


@pytest.fixture
def fake_session() -> FakeAppiumSession:
    return FakeAppiumSession()


@pytest.fixture
def stability() -> StabilityConfig:
    return FAST_STABILITY


@pytest.fixture
def make_png():
    return png_bytes


@pytest.fixture
def web_browser(fake_context: FakeContext, tmp_path):
    browser = WebBrowser(
        fake_context,
        stability=FAST_STABILITY,
        screenshots=ScreenshotStore(tmp_path / "screenshots"),
    )
    fake_context.pages.append(FakePage(fake_context))
    return browser


@pytest.fixture
def android_browser(fake_session: FakeAppiumSession, tmp_path):
    return AndroidBrowser(
        fake_session,
        device_info=DeviceInfo(
            platform=Platform.ANDROID,
            viewport=ImageDimension(width=fake_session.width, height=fake_session.height),
        ),
        tap_settle_ms=0,
        stability=FAST_STABILITY,
        screenshots=ScreenshotStore(tmp_path / "screenshots"),
    )
