"""Shared models used across the shortest driver."""

from __future__ import annotations

import enum
from typing import Any, Optional

from pydantic import BaseModel, Field


class Platform(str, enum.Enum):
    """Platforms a driver can automate."""

    WEB = "web"
    ANDROID = "android"
    IOS = "ios"


class ScrollDirection(str, enum.Enum):
    """Logical scroll directions."""

    UP = "up"
    DOWN = "down"
    LEFT = "left"
    RIGHT = "right"

    @property
    def opposite(self) -> "ScrollDirection":
        return {
            ScrollDirection.UP: ScrollDirection.DOWN,
            ScrollDirection.DOWN: ScrollDirection.UP,
            ScrollDirection.LEFT: ScrollDirection.RIGHT,
            ScrollDirection.RIGHT: ScrollDirection.LEFT,
        }[self]


class ImageDimension(BaseModel):
    """Pixel size of an image or viewport."""

    width: int
    height: int


class CursorPosition(BaseModel):
    x: float = 0
    y: float = 0


class WindowState(BaseModel):
    url: Optional[str] = None
    title: Optional[str] = None
    size: Optional[ImageDimension] = None


class BrowserState(BaseModel):
    """Snapshot of the page or app the browser is attached to."""

    window: WindowState = Field(default_factory=WindowState)
    cursor: CursorPosition = Field(default_factory=CursorPosition)


class ActionMetadata(BaseModel):
    browser_state: Optional[BrowserState] = None
    x: Optional[float] = None
    y: Optional[float] = None


class ActionResult(BaseModel):
    """Uniform outcome returned by every browser action."""

    message: str
    payload: Optional[dict[str, Any]] = None
    metadata: Optional[ActionMetadata] = None

    @property
    def unsupported(self) -> bool:
        return bool(self.payload and self.payload.get("unsupported"))


class DeviceInfo(BaseModel):
    """Platform and viewport of the device a driver is connected to."""

    platform: Platform
    viewport: ImageDimension


class NavigateOptions(BaseModel):
    should_initialize: bool = Field(
        default=True,
        description="Inject the cursor overlay after the page loads.",
    )


class PointerOptions(BaseModel):
    canvas: bool = Field(
        default=False,
        description="Coordinates refer to the padded screenshot, not the device.",
    )


class ScrollOptions(BaseModel):
    amount: int = Field(default=300, description="Distance of the scroll in device pixels.")
