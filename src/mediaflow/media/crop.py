"""Crop rectangles and image cropping."""
import asyncio
import io
import math
from dataclasses import dataclass
from typing import Optional, Tuple

import httpx
from PIL import Image, UnidentifiedImageError

from mediaflow.media.artifacts import load_bytes, to_data_url


def _clamp(value: float, low: float = 0.0, high: float = 100.0) -> float:
    if value is None or math.isnan(value):
        return low
    return max(low, min(high, float(value)))


@dataclass(frozen=True)
class CropBox:
    """
    Crop rectangle in percent of the source image.

    Out-of-range input is clamped, never rejected: each value is clamped to
    [0, 100], then width/height shrink so that x + width <= 100 and
    y + height <= 100.
    """

    x_percent: float = 0
    y_percent: float = 0
    width_percent: float = 100
    height_percent: float = 100

    def clamped(self) -> "CropBox":
        x = _clamp(self.x_percent)
        y = _clamp(self.y_percent)
        width = min(_clamp(self.width_percent), 100.0 - x)
        height = min(_clamp(self.height_percent), 100.0 - y)
        return CropBox(x_percent=x, y_percent=y, width_percent=width, height_percent=height)

    def to_pixels(self, width: int, height: int) -> Tuple[int, int, int, int]:
        """Pixel box (left, top, right, bottom); never smaller than 1x1."""
        box = self.clamped()
        left = min(int(round(box.x_percent / 100 * width)), width - 1)
        top = min(int(round(box.y_percent / 100 * height)), height - 1)
        right = max(left + 1, min(width, int(round((box.x_percent + box.width_percent) / 100 * width))))
        bottom = max(top + 1, min(height, int(round((box.y_percent + box.height_percent) / 100 * height))))
        return left, top, right, bottom


def crop_image_bytes(data: bytes, box: CropBox) -> Tuple[bytes, str]:
    """Crop encoded image bytes; returns PNG bytes and their mime type."""
    try:
        with Image.open(io.BytesIO(data)) as image:
            image.load()
            cropped = image.crop(box.to_pixels(image.width, image.height))
    except UnidentifiedImageError as e:
        raise ValueError("Unsupported image data") from e

    if cropped.mode not in ("RGB", "RGBA", "L", "LA"):
        cropped = cropped.convert("RGBA")
    buffer = io.BytesIO()
    cropped.save(buffer, format="PNG")
    return buffer.getvalue(), "image/png"


async def crop_image(
    image_ref: str,
    box: CropBox,
    timeout_s: float,
    client: Optional[httpx.AsyncClient] = None,
) -> str:
    """Crop an image reference and return the result as a data URL."""
    data, _ = await load_bytes(image_ref, timeout_s=timeout_s, client=client)
    cropped, mime_type = await asyncio.to_thread(crop_image_bytes, data, box)
    return to_data_url(cropped, mime_type)
