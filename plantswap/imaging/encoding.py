from __future__ import annotations

import base64
import io
from typing import Tuple

from PIL import Image


def open_image(data: bytes) -> Image.Image:
    img = Image.open(io.BytesIO(data))
    img.load()
    return img


def image_size(data: bytes) -> Tuple[int, int]:
    return open_image(data).size


def to_png_bytes(img: Image.Image) -> bytes:
    buffer = io.BytesIO()
    img.save(buffer, format="PNG")
    return buffer.getvalue()


def sniff_mime(data: bytes) -> str:
    if data[:8] == b"\x89PNG\r\n\x1a\n":
        return "image/png"
    if data[:3] == b"\xff\xd8\xff":
        return "image/jpeg"
    if data[:4] == b"RIFF" and data[8:12] == b"WEBP":
        return "image/webp"
    return "application/octet-stream"


def to_data_url(data: bytes) -> str:
    encoded = base64.b64encode(data).decode("utf-8")
    return f"data:{sniff_mime(data)};base64,{encoded}"


def prepare_next_input(data: bytes, max_width: int = 2400, quality: int = 95) -> bytes:
    """
    Re-encode an accepted candidate before it becomes the next step's input.
    Downscales to ``max_width`` (never enlarges) and writes a high-quality JPEG.
    """
    img = open_image(data).convert("RGB")
    if img.width > max_width:
        new_h = max(1, int(round(img.height * max_width / img.width)))
        img = img.resize((max_width, new_h), resample=Image.LANCZOS)
    buffer = io.BytesIO()
    img.save(buffer, format="JPEG", quality=quality)
    return buffer.getvalue()
