from __future__ import annotations

import logging
from typing import Tuple

import numpy as np
from PIL import Image

from plantswap.imaging.encoding import open_image
from plantswap.imaging.regions import PreserveRegion, RegionDescriptor
from plantswap.workflow.models import VerificationMode

logger = logging.getLogger(__name__)


def _mean_abs_similarity(a: np.ndarray, b: np.ndarray) -> float:
    if a.size == 0:
        return 1.0
    diff = np.abs(a.astype(np.int32) - b.astype(np.int32))
    score = 1.0 - float(diff.sum()) / a.size / 255.0
    return min(1.0, max(0.0, score))


def compare_outside_region(
    image_a: bytes,
    image_b: bytes,
    region: RegionDescriptor,
    working_width: int = 400,
) -> float:
    """
    Similarity of the pixels outside ``region`` at a fixed working resolution.

    Both images are resized to ``working_width`` x proportional height (taken from ``image_a``)
    so fractions map to the same pixels whatever the native resolutions are.
    1.0 means the outside area is identical, 0.0 means maximal divergence.
    """
    img_a = open_image(image_a).convert("RGB")
    img_b = open_image(image_b).convert("RGB")
    target_h = max(1, int(round(img_a.height * working_width / img_a.width)))
    size = (working_width, target_h)
    arr_a = np.asarray(img_a.resize(size, resample=Image.BILINEAR))
    arr_b = np.asarray(img_b.resize(size, resample=Image.BILINEAR))
    if arr_a.shape != arr_b.shape:
        logger.warning("Shape mismatch after resize: %s vs %s", arr_a.shape, arr_b.shape)
        return 0.0

    geometry = region.to_pixels(working_width, target_h)
    ys, xs = np.mgrid[0:target_h, 0:working_width]
    if geometry.rx <= 0 or geometry.ry <= 0:
        outside = np.ones((target_h, working_width), dtype=bool)
    else:
        dx = (xs - geometry.cx) / geometry.rx
        dy = (ys - geometry.cy) / geometry.ry
        outside = dx * dx + dy * dy > 1
    if not outside.any():
        return 1.0
    return _mean_abs_similarity(arr_a[outside], arr_b[outside])


def _extract_tile(img: Image.Image, preserve: PreserveRegion, tile_size: int) -> np.ndarray:
    box = preserve.to_box(img.width, img.height)
    tile = img.crop(box).resize((tile_size, tile_size), resample=Image.BILINEAR)
    return np.asarray(tile)


def compare_preserve_region(
    image_a: bytes,
    image_b: bytes,
    preserve: PreserveRegion,
    tile_size: int = 100,
) -> float:
    img_a = open_image(image_a).convert("RGB")
    img_b = open_image(image_b).convert("RGB")
    tile_a = _extract_tile(img_a, preserve, tile_size)
    tile_b = _extract_tile(img_b, preserve, tile_size)
    if tile_a.shape != tile_b.shape:
        logger.warning("Preserve tile mismatch: %s vs %s", tile_a.shape, tile_b.shape)
        return 0.0
    return _mean_abs_similarity(tile_a, tile_b)


class SimilarityVerifier:
    """Scores a candidate against the step input using the verification mode the edit declares."""

    def __init__(self, cfg) -> None:
        self.cfg = cfg

    def threshold_for(self, mode: str) -> float:
        if mode == VerificationMode.PRESERVE.value:
            return self.cfg.preserve_threshold
        return self.cfg.outside_threshold

    def score(self, input_image: bytes, candidate: bytes, edit, region: RegionDescriptor) -> Tuple[float, float, str]:
        mode = VerificationMode(edit.verification).value
        if mode == VerificationMode.PRESERVE.value:
            value = compare_preserve_region(
                input_image,
                candidate,
                edit.preserve_region,
                tile_size=self.cfg.tile_size,
            )
        else:
            value = compare_outside_region(
                input_image,
                candidate,
                region,
                working_width=self.cfg.working_width,
            )
        return value, self.threshold_for(mode), mode
