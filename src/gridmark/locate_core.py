# src/gridmark/locate_core.py
from __future__ import annotations

from typing import Tuple

import numpy as np

from .layout_core import GridConfig
from .scoring_defaults import LayoutDefaults


def refine_center(
    gray: np.ndarray,
    nominal: Tuple[float, float],
    grid: GridConfig,
    layout: LayoutDefaults,
) -> Tuple[int, int]:
    """
    Re-center on the darkest pixel near `nominal`.

    Samples a square of half-width int(option_width * search_ratio) on a
    `search_step` lattice through the nominal pixel, clamped to the image.
    Equal minima resolve to the sample nearest the nominal center, then to
    scan order.
    """
    h, w = gray.shape[:2]
    cx = min(w - 1, max(0, int(round(nominal[0]))))
    cy = min(h - 1, max(0, int(round(nominal[1]))))
    radius = max(0, int(grid.option_width * layout.search_ratio))
    step = max(1, int(layout.search_step))

    k = radius // step
    offsets = np.arange(-k, k + 1) * step
    xs = cx + offsets
    ys = cy + offsets
    xs = xs[(xs >= 0) & (xs < w)]
    ys = ys[(ys >= 0) & (ys < h)]

    patch = gray[np.ix_(ys, xs)]
    darkest = patch.min()
    d2 = (ys[:, None] - cy) ** 2 + (xs[None, :] - cx) ** 2
    d2 = np.where(patch == darkest, d2, np.iinfo(np.int64).max)
    r, c = np.unravel_index(int(np.argmin(d2)), d2.shape)
    return int(xs[c]), int(ys[r])
