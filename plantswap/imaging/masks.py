from __future__ import annotations

from typing import Tuple

from PIL import Image, ImageDraw

from plantswap.imaging.encoding import open_image, to_png_bytes
from plantswap.imaging.regions import EllipseGeometry, RegionDescriptor

OVERLAY_COLOR: Tuple[int, int, int, int] = (239, 68, 68, 128)


def mask_geometry(width: int, height: int, region: RegionDescriptor) -> EllipseGeometry:
    return region.to_pixels(width, height)


def _pixel_bbox(geometry: EllipseGeometry) -> Tuple[int, int, int, int]:
    cx, cy = round(geometry.cx), round(geometry.cy)
    rx, ry = round(geometry.rx), round(geometry.ry)
    return (cx - rx, cy - ry, cx + rx, cy + ry)


def render_overlay(
    image_bytes: bytes,
    region: RegionDescriptor,
    color: Tuple[int, int, int, int] = OVERLAY_COLOR,
) -> bytes:
    """
    Draws a translucent ellipse over the full-resolution image and returns the masked canvas as PNG.
    """
    base = open_image(image_bytes).convert("RGBA")
    overlay = Image.new("RGBA", base.size, (0, 0, 0, 0))
    draw = ImageDraw.Draw(overlay)
    draw.ellipse(_pixel_bbox(mask_geometry(base.width, base.height, region)), fill=tuple(color))
    return to_png_bytes(Image.alpha_composite(base, overlay))


def render_binary_mask(width: int, height: int, region: RegionDescriptor) -> bytes:
    mask = Image.new("L", (width, height), color=0)
    draw = ImageDraw.Draw(mask)
    draw.ellipse(_pixel_bbox(mask_geometry(width, height, region)), fill=255)
    return to_png_bytes(mask)
