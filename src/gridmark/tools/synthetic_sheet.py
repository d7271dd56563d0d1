# src/gridmark/tools/synthetic_sheet.py
"""
Render deterministic synthetic bubble sheets for tests and demos.

The canvas carries horizontal printed rules (top, bottom and one between each
pair of question rows) so the bounding-box detector finds ink on its sampling
lines. One separator is placed on the image's mid-line, which fixes the X
extent. The content box is obtained by running the real detector on the
unmarked template; every option cell is then painted at the nominal center
the grid layout computes for that box.
"""
from __future__ import annotations

import random
from dataclasses import dataclass
from typing import List, Optional, Sequence

import cv2
import numpy as np

from ..bbox_core import BoundingBox, detect_content_box
from ..layout_core import GridConfig, compute_grid, option_centers
from ..scoring_defaults import DEFAULTS, DecodeSettings

RULE_THICKNESS = 10     # multiple of the default sampling stride
PAPER = 255
BLANK = 220
FILLED = 60


@dataclass
class SyntheticSheet:
    image: np.ndarray                  # H x W uint8
    answers: List[Optional[int]]       # 1-based option per question, None = left blank
    box: BoundingBox
    grid: GridConfig


def _rule(img: np.ndarray, y_center: int, x0: int, x1: int) -> None:
    half = RULE_THICKNESS // 2
    img[max(0, y_center - half):y_center - half + RULE_THICKNESS, x0:x1 + 1] = 0


def random_answers(total_questions: int, seed: int | None = 1234, blank_rate: float = 0.0) -> List[Optional[int]]:
    rng = random.Random(seed)
    out: List[Optional[int]] = []
    for _ in range(total_questions):
        out.append(None if rng.random() < blank_rate else rng.randint(1, 4))
    return out


def render_synthetic_sheet(
    answers: Sequence[Optional[int]],
    width: int = 1000,
    height: int = 1400,
    settings: DecodeSettings = DEFAULTS,
    filled: int = FILLED,
    blank: int = BLANK,
) -> SyntheticSheet:
    """Paint `answers` (one entry per question) onto a fresh grayscale canvas."""
    total = len(answers)
    sheet, layout = settings.sheet, settings.layout
    rows = -(-total // layout.questions_per_row)
    if rows < 2:
        raise ValueError("synthetic sheets need at least two rows of questions")

    pad_x = width * sheet.expand_ratio
    pad_y = height * sheet.expand_ratio

    # Pick the separator closest to the middle and size the box so that
    # separator sits on the mid-line while the box stays inside 8%..92%.
    k = min(rows - 2, max(0, int(round(rows / 2 - 1.05))))
    off = abs(k + 1.05 - rows / 2)
    box_h = 0.84 * height / (1 + 2 * off / rows)
    row_h = box_h / rows
    option_w = width * 0.84 / layout.questions_per_row / layout.option_divisor
    # the bottom rule must stay outside the locator search of the last row
    if 0.45 * row_h - layout.search_ratio * option_w <= pad_y + RULE_THICKNESS:
        raise ValueError(f"canvas height {height} is too small for {rows} rows")

    min_y = int(round(height // 2 - (k + 1.05) * row_h))
    max_y = int(round(min_y + box_h))
    ink_x0 = int(round(width * 0.08 + pad_x))
    ink_x1 = int(round(width * 0.92 - pad_x))

    img = np.full((height, width), PAPER, dtype=np.uint8)
    top = int(round(min_y + pad_y))
    bottom = int(round(max_y - pad_y))
    img[top:top + RULE_THICKNESS, ink_x0:ink_x1 + 1] = 0
    img[bottom - RULE_THICKNESS + 1:bottom + 1, ink_x0:ink_x1 + 1] = 0
    for r in range(rows - 1):
        _rule(img, int(round(min_y + (r + 1.05) * row_h)), ink_x0, ink_x1)

    box = detect_content_box(img, sheet)
    grid = compute_grid(box, total, layout)
    half = max(2, int(grid.option_width * 0.35))

    for q, answer in enumerate(answers):
        for opt, (cx, cy) in enumerate(option_centers(grid, q, layout), start=1):
            x, y = int(round(cx)), int(round(cy))
            value = filled if answer == opt else blank
            cv2.rectangle(img, (x - half, y - half), (x + half, y + half), int(value), thickness=-1)

    return SyntheticSheet(image=img, answers=list(answers), box=box, grid=grid)


def encode_png(img: np.ndarray) -> bytes:
    ok, buf = cv2.imencode(".png", img)
    if not ok:
        raise RuntimeError("PNG encoding failed")
    return buf.tobytes()
