"""Screenshot normalisation for vision models.

Vision models accept a small set of canvas sizes. Screenshots are scaled to
fit one of them and padded with a solid background colour, never cropped or
distorted. Because the model reports pointer targets in canvas space, the
inverse transform is needed to turn those targets back into device pixels.

See https://docs.anthropic.com/en/docs/build-with-claude/vision#evaluate-image-size
"""

from __future__ import annotations

import io
from dataclasses import dataclass
from typing import Optional

from PIL import Image, ImageChops, ImageOps

from .models import ImageDimension

PADDING_COLOR = (0, 0, 0)
# Per-channel difference from the padding colour still treated as padding.
TRIM_THRESHOLD = 10

ASPECT_RATIO_DIMENSIONS: dict[str, ImageDimension] = {
    "1:1": ImageDimension(width=1092, height=1092),
    "3:4": ImageDimension(width=951, height=1268),
    "2:3": ImageDimension(width=896, height=1344),
    "9:16": ImageDimension(width=819, height=1456),
    "1:2": ImageDimension(width=784, height=1568),
}

DEFAULT_BUCKET = "9:16"


def select_bucket(viewport: ImageDimension) -> str:
    """Return the aspect-ratio bucket used for ``viewport``.

    Always ``"9:16"`` for now; the viewport is accepted so callers do not
    change once buckets are picked from the real aspect ratio.
    """

    return DEFAULT_BUCKET


def resize_to_dimension(image: bytes, target: ImageDimension) -> bytes:
    """Scale ``image`` to fit inside ``target`` and pad the rest.

    The aspect ratio of the source is preserved and the content is centred on
    a canvas of exactly ``target`` pixels. Returns PNG bytes.
    """

    with Image.open(io.BytesIO(image)) as source:
        padded = ImageOps.pad(
            source.convert("RGB"),
            (target.width, target.height),
            method=Image.Resampling.LANCZOS,
            color=PADDING_COLOR,
            centering=(0.5, 0.5),
        )
    buffer = io.BytesIO()
    padded.save(buffer, format="PNG")
    return buffer.getvalue()


def content_dimensions(image: bytes) -> ImageDimension:
    """Return the size of the non-padding region of ``image``."""

    with Image.open(io.BytesIO(image)) as source:
        rgb = source.convert("RGB")
    background = Image.new("RGB", rgb.size, PADDING_COLOR)
    diff = ImageChops.difference(rgb, background).convert("L")
    mask = diff.point(lambda value: 255 if value > TRIM_THRESHOLD else 0)
    bbox = mask.getbbox()
    if bbox is None:
        return ImageDimension(width=0, height=0)
    left, top, right, bottom = bbox
    return ImageDimension(width=right - left, height=bottom - top)


def _padding(canvas: ImageDimension, content: ImageDimension) -> tuple[float, float]:
    if content.width <= 0 or content.height <= 0:
        raise ValueError("Screenshot has no content region to map coordinates onto")
    return (canvas.width - content.width) / 2, (canvas.height - content.height) / 2


def adjust_coords(
    x: float,
    y: float,
    viewport: ImageDimension,
    canvas: ImageDimension,
    content: ImageDimension,
) -> tuple[int, int]:
    """Map a point on the padded canvas to device pixels."""

    pad_x, pad_y = _padding(canvas, content)
    device_x = round((x - pad_x) * viewport.width / content.width)
    device_y = round((y - pad_y) * viewport.height / content.height)
    return device_x, device_y


def resize_coords(
    x: float,
    y: float,
    viewport: ImageDimension,
    canvas: ImageDimension,
    content: ImageDimension,
) -> tuple[float, float]:
    """Map a device point onto the padded canvas (inverse of ``adjust_coords``)."""

    pad_x, pad_y = _padding(canvas, content)
    return (
        x * content.width / viewport.width + pad_x,
        y * content.height / viewport.height + pad_y,
    )


@dataclass
class PaddedScreenshot:
    data: bytes
    canvas: ImageDimension
    content: ImageDimension


class VisionPipeline:
    """Prepares screenshots for a vision model and maps its coordinates back.

    The most recent padded screenshot is kept per instance; coordinate
    translation always uses the geometry of that screenshot.
    """

    def __init__(self) -> None:
        self._latest: Optional[PaddedScreenshot] = None

    @property
    def latest(self) -> Optional[PaddedScreenshot]:
        return self._latest

    def prepare(self, image: bytes, viewport: ImageDimension) -> bytes:
        canvas = ASPECT_RATIO_DIMENSIONS[select_bucket(viewport)]
        data = resize_to_dimension(image, canvas)
        self._latest = PaddedScreenshot(data=data, canvas=canvas, content=content_dimensions(data))
        return data

    def to_device(self, x: float, y: float, viewport: ImageDimension) -> tuple[int, int]:
        latest = self._require_latest()
        return adjust_coords(x, y, viewport, latest.canvas, latest.content)

    def to_canvas(self, x: float, y: float, viewport: ImageDimension) -> tuple[float, float]:
        latest = self._require_latest()
        return resize_coords(x, y, viewport, latest.canvas, latest.content)

    def _require_latest(self) -> PaddedScreenshot:
        if self._latest is None:
            raise ValueError("No vision-compatible screenshot has been taken yet")
        return self._latest
