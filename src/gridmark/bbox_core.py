# src/gridmark/bbox_core.py
from __future__ import annotations

import logging
from dataclasses import dataclass

import numpy as np

from .errors import NoContentDetected
from .scoring_defaults import SheetDefaults

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BoundingBox:
    min_x: int
    min_y: int
    max_x: int
    max_y: int

    @property
    def width(self) -> int:
        return self.max_x - self.min_x

    @property
    def height(self) -> int:
        return self.max_y - self.min_y

    @property
    def area(self) -> int:
        return self.width * self.height

    def contained_in(self, width: int, height: int) -> bool:
        return 0 <= self.min_x < self.max_x <= width and 0 <= self.min_y < self.max_y <= height


def _ink_extent(line: np.ndarray, ink_threshold: int):
    """(first, last) index of ink pixels on a 1-D line, or None when there is none."""
    idx = np.flatnonzero(line < ink_threshold)
    if idx.size == 0:
        return None
    return int(idx[0]), int(idx[-1])


def _fallback_box(w: int, h: int, margin: float) -> BoundingBox:
    mx = int(w * margin)
    my = int(h * margin)
    return BoundingBox(mx, my, max(mx + 1, w - mx), max(my + 1, h - my))


def detect_content_box(gray: np.ndarray, sheet: SheetDefaults) -> BoundingBox:
    """
    Locate the answer grid by scanning for ink along the image's central cross:
      - one horizontal line at mid-height gives min/max X,
      - vertical lines at `sheet.vertical_lines` (fractions of width) give min/max Y.
    The box is grown by `expand_ratio` of each dimension and clamped to the image.

    Raises NoContentDetected when the lines carry no ink, unless
    `missing_content == "fallback"`, in which case fixed margins are used.
    """
    h, w = gray.shape[:2]

    x_extent = _ink_extent(gray[h // 2, :], sheet.ink_threshold)

    y_lo, y_hi = h, 0
    for frac in sheet.vertical_lines:
        x = min(w - 1, max(0, int(w * frac)))
        ext = _ink_extent(gray[:, x], sheet.ink_threshold)
        if ext is not None:
            y_lo = min(y_lo, ext[0])
            y_hi = max(y_hi, ext[1])

    min_x, max_x = x_extent if x_extent is not None else (w, 0)
    min_y, max_y = y_lo, y_hi

    if min_x >= max_x or min_y >= max_y:
        if sheet.missing_content == "fallback":
            logger.warning("No ink on sampling lines; using fixed %.0f%% margins", sheet.fallback_margin * 100)
            return _fallback_box(w, h, sheet.fallback_margin)
        raise NoContentDetected("no printed content found on the sampling lines")

    pad_x = w * sheet.expand_ratio
    pad_y = h * sheet.expand_ratio
    box = BoundingBox(
        min_x=max(0, int(min_x - pad_x)),
        min_y=max(0, int(min_y - pad_y)),
        max_x=min(w, int(max_x + pad_x)),
        max_y=min(h, int(max_y + pad_y)),
    )
    logger.debug("Content box %s on %dx%d image", box, w, h)
    return box
